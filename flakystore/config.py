"""
Simulation parameters for the inconsistent store wrapper.

Usage:
    from flakystore.config import InconsistencyConfig, get_config

    config = InconsistencyConfig(delay_key_substring="*", delay_window_ms=2000)
    config = get_config()  # from FLAKYSTORE_* environment variables
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from flakystore.exceptions import FlakyStoreConfigError

# Keys containing this substring are subject to delayed visibility by default.
DEFAULT_DELAY_KEY_SUBSTRING = "DELAY_LISTING_ME"
DEFAULT_DELAY_KEY_MSEC = 5 * 1000
DEFAULT_DELAY_KEY_PROBABILITY = 1.0

# Config files cannot always hold an empty string; "*" stands in for it.
MATCH_ALL_KEYS = "*"

ENV_DELAY_KEY_SUBSTRING = "FLAKYSTORE_DELAY_KEY_SUBSTRING"
ENV_DELAY_PROBABILITY = "FLAKYSTORE_DELAY_PROBABILITY"
ENV_DELAY_MSEC = "FLAKYSTORE_DELAY_MSEC"
ENV_THROTTLE_PROBABILITY = "FLAKYSTORE_THROTTLE_PROBABILITY"
ENV_FAILURE_LIMIT = "FLAKYSTORE_FAILURE_LIMIT"


def valid_probability(p: float) -> float:
    """
    Validate a probability option.

    Raises:
        FlakyStoreConfigError: if p is outside [0, 1].
    """
    if not 0.0 <= p <= 1.0:
        raise FlakyStoreConfigError(
            f"Probability out of range 0 to 1 {p}",
            code="invalid_probability",
            details={"value": p},
        )
    return p


class InconsistencyConfig(BaseModel):
    """
    Validated simulation parameters.

    Attributes:
        delay_key_substring: Keys containing this are delay-eligible.
            Empty or "*" matches every key.
        delay_probability: Fraction of eligible puts/deletes actually delayed.
        delay_window_ms: How long a delayed event stays inconsistent.
        throttle_probability: Fraction of calls failed with a throttle error.
        failure_limit: Max injected failures before calls always pass.
            0 means no limit.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    delay_key_substring: str = DEFAULT_DELAY_KEY_SUBSTRING
    delay_probability: float = Field(
        default=DEFAULT_DELAY_KEY_PROBABILITY, ge=0.0, le=1.0
    )
    delay_window_ms: int = Field(default=DEFAULT_DELAY_KEY_MSEC, ge=0)
    throttle_probability: float = Field(default=0.0, ge=0.0, le=1.0)
    failure_limit: int = Field(default=0, ge=0)

    @field_validator("delay_key_substring")
    @classmethod
    def normalize_match_all(cls, value: str) -> str:
        # "" is a substring of all strings, use it to match all keys.
        if value == MATCH_ALL_KEYS:
            return ""
        return value

    @property
    def matches_all_keys(self) -> bool:
        return self.delay_key_substring == ""

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "InconsistencyConfig":
        """
        Build a config from FLAKYSTORE_* variables; unset ones keep defaults.

        Raises:
            FlakyStoreConfigError: on unparseable or out-of-range values.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        try:
            if ENV_DELAY_KEY_SUBSTRING in env:
                values["delay_key_substring"] = env[ENV_DELAY_KEY_SUBSTRING]
            if ENV_DELAY_PROBABILITY in env:
                values["delay_probability"] = float(env[ENV_DELAY_PROBABILITY])
            if ENV_DELAY_MSEC in env:
                values["delay_window_ms"] = int(env[ENV_DELAY_MSEC])
            if ENV_THROTTLE_PROBABILITY in env:
                values["throttle_probability"] = float(env[ENV_THROTTLE_PROBABILITY])
            if ENV_FAILURE_LIMIT in env:
                values["failure_limit"] = int(env[ENV_FAILURE_LIMIT])
            return cls(**values)
        except (ValueError, ValidationError) as exc:
            raise FlakyStoreConfigError(
                f"Invalid inconsistency configuration: {exc}",
                code="invalid_config",
                details={"values": values},
            ) from exc


@lru_cache()
def get_config() -> InconsistencyConfig:
    """Get cached environment-derived config."""
    return InconsistencyConfig.from_env()


def reset_config() -> None:
    """Clear config cache. For testing only."""
    get_config.cache_clear()
