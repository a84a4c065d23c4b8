import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


# Tier limits configuration
# Trial: small one-off allowance, never reset by inspection
# Paid: monthly allowance, reset on first upgrade and on each renewal invoice
TRIAL_TOKEN_LIMIT = _int_env("TRIAL_TOKEN_LIMIT", 1000)
PAID_TOKEN_LIMIT = _int_env("PAID_TOKEN_LIMIT", 1_000_000)
PAID_PERIOD_DAYS = _int_env("PAID_PERIOD_DAYS", 30)  # Fallback when the provider gives no period end

# Admission flow tuning
ESTIMATE_MULTIPLIER = _float_env("ESTIMATE_MULTIPLIER", 2.5)  # Translation + commentary vs. input size
MIN_CONTENT_LENGTH = _int_env("MIN_CONTENT_LENGTH", 50)
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TierLimits:
    trial_token_limit: int = TRIAL_TOKEN_LIMIT
    paid_token_limit: int = PAID_TOKEN_LIMIT
    paid_period_days: int = PAID_PERIOD_DAYS
    estimate_multiplier: float = ESTIMATE_MULTIPLIER
    min_content_length: int = MIN_CONTENT_LENGTH

    def __post_init__(self):
        if self.trial_token_limit <= 0 or self.paid_token_limit <= 0:
            raise ValueError("Token limits must be positive")


DEFAULT_LIMITS = TierLimits()


def get_token_limit(tier: str, limits: TierLimits = DEFAULT_LIMITS) -> int:
    """Get the token limit for a tier ("trial" or "paid")."""
    if tier == "paid":
        return limits.paid_token_limit
    return limits.trial_token_limit
