"""Runtime settings for the Ordering context.

Settings are read from ``ORDERING_*`` environment variables once and cached.
Provides get_settings() / set_settings() / reset_settings() so tests and
tools can swap in explicit values:

    set_settings(OrderingSettings(payment_timeout_minutes=1))
"""

import os
from dataclasses import dataclass
from enum import Enum


class LateAdditionsPolicy(Enum):
    """What checkout does with cart lines added after the snapshot was read."""

    DROP = "drop"
    PRESERVE = "preserve"


_TRUTHY = {"1", "true", "yes", "on"}


def _int_from_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class OrderingSettings:
    payment_timeout_minutes: int = 30
    late_additions_policy: LateAdditionsPolicy = LateAdditionsPolicy.DROP
    webhook_max_attempts: int = 5
    webhook_dead_letter_limit: int = 1000
    currency: str = "INR"
    sweep_interval_seconds: int = 300
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "OrderingSettings":
        policy_raw = os.environ.get("ORDERING_LATE_ADDITIONS_POLICY", LateAdditionsPolicy.DROP.value)
        try:
            policy = LateAdditionsPolicy(policy_raw.strip().lower())
        except ValueError as exc:
            raise ValueError(f"ORDERING_LATE_ADDITIONS_POLICY must be 'drop' or 'preserve', got {policy_raw!r}") from exc

        return cls(
            payment_timeout_minutes=_int_from_env("ORDERING_PAYMENT_TIMEOUT_MINUTES", 30),
            late_additions_policy=policy,
            webhook_max_attempts=_int_from_env("ORDERING_WEBHOOK_MAX_ATTEMPTS", 5),
            webhook_dead_letter_limit=_int_from_env("ORDERING_WEBHOOK_DEAD_LETTER_LIMIT", 1000),
            currency=os.environ.get("ORDERING_CURRENCY", "INR"),
            sweep_interval_seconds=_int_from_env("ORDERING_SWEEP_INTERVAL_SECONDS", 300),
            log_level=os.environ.get("ORDERING_LOG_LEVEL", "INFO").upper(),
            log_json=os.environ.get("ORDERING_LOG_JSON", "").strip().lower() in _TRUTHY,
        )


_current_settings: OrderingSettings | None = None


def get_settings() -> OrderingSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = OrderingSettings.from_env()
    return _current_settings


def set_settings(settings: OrderingSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop overrides; the next get_settings() re-reads the environment."""
    global _current_settings
    _current_settings = None
