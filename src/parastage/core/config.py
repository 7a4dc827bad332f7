"""
Configuration schema and loading for parastage stages.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from parastage.contracts.types import HookFn

# Matches the object-mode buffer size of typical stream substrates
DEFAULT_MAX_CONCURRENCY = 16

ENVVAR_PREFIX = "PARASTAGE"


class StageConfig(BaseModel):
    """Stage configuration.

    Example YAML:
        max_concurrency: 8
        preserve_order: true
        name: enrich

    Attributes:
        max_concurrency: Maximum transforms running at once (>= 1)
        preserve_order: Emit outputs in input order instead of completion order
        name: Stage name used in logs, metrics and hook events
    """

    model_config = {"extra": "forbid", "frozen": True}

    max_concurrency: int = Field(
        default=DEFAULT_MAX_CONCURRENCY,
        ge=1,
        description="Maximum number of concurrently running transforms",
    )
    preserve_order: bool = Field(
        default=False,
        description="Release outputs in input order (head-of-line blocking)",
    )
    name: str = Field(
        default="parastage",
        description="Stage name for logs, metrics and lifecycle events",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank stage names."""
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


@dataclass(frozen=True)
class StageHooks:
    """Optional shutdown hooks run once, in order, after all items drain.

    Note: This is a runtime dataclass, not a Pydantic model, because hooks
    are callables supplied in code, not user-provided YAML config.

    Both hooks receive a Completion with the same contract as transforms:
    any number of emit() calls, then exactly one done()/fail().

    Attributes:
        finalize: Runs after every admitted item has been released
        flush: Runs immediately after finalize signals completion
    """

    finalize: HookFn | None = None
    flush: HookFn | None = None


def load_stage_config(config_path: Path | None = None, **overrides: Any) -> StageConfig:
    """Load stage configuration from file and environment.

    Uses Dynaconf for multi-source loading with precedence:
    1. Keyword overrides - highest priority
    2. Environment variables (PARASTAGE_*)
    3. Config file (YAML or TOML)
    4. Defaults from the Pydantic schema - lowest priority

    Args:
        config_path: Optional path to a configuration file
        **overrides: Explicit values that win over every other source

    Returns:
        Validated StageConfig instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config_path is given but doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=ENVVAR_PREFIX,
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
    )

    # Dynaconf returns uppercase keys and mixes in its own settings;
    # keep only the fields this schema knows about.
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items()}
    known = {k: v for k, v in raw_config.items() if k in StageConfig.model_fields}
    known.update(overrides)

    return StageConfig(**known)
