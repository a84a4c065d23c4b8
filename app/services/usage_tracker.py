"""
Token quota ledger.
Answers "may this account consume more tokens?" and records consumption.

check_limit() and consume() are separate calls, so two concurrent requests
for the same account can both pass the check before either consumes. Callers
that need a hard stop use consume_within_limit(), which is a conditional
UPDATE at the storage layer.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from app.core.errors import NotFound
from app.core.plan_limits import CHARS_PER_TOKEN
from app.models.user import Tier, User
from app.services.repository import AccountRepository
from app.utils.timeutils import as_utc, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    tokens_used: int
    tokens_remaining: int
    limit: int
    tier: Tier

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "tokensUsed": self.tokens_used,
            "tokensRemaining": self.tokens_remaining,
            "limit": self.limit,
            "userType": self.tier.value,
        }


def estimate_tokens(text: Optional[str]) -> int:
    """
    Rough token estimate: ~4 characters per token.
    Deterministic and monotonic in length; not a real tokenizer.
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def evaluate_quota(user: User, at: datetime) -> QuotaCheckResult:
    """Pure admission decision for a loaded account at instant `at`."""
    tier = Tier(user.tier)
    tokens_remaining = max(0, user.token_limit - user.tokens_used)
    has_remaining_tokens = tokens_remaining > 0

    if tier == Tier.PAID:
        # Paid users also need a subscription that has not run out
        expires_at = as_utc(user.subscription_expires_at)
        subscription_active = expires_at is None or expires_at > as_utc(at)
        allowed = has_remaining_tokens and subscription_active
    else:
        allowed = has_remaining_tokens

    return QuotaCheckResult(
        allowed=allowed,
        tokens_used=user.tokens_used,
        tokens_remaining=tokens_remaining,
        limit=user.token_limit,
        tier=tier,
    )


class QuotaLedger:
    def __init__(self, accounts: AccountRepository, clock: Callable[[], datetime] = now_utc):
        self.accounts = accounts
        self.clock = clock

    def check_limit(self, account_id: str) -> QuotaCheckResult:
        """Side-effect free; recomputed from the stored account on every call."""
        user = self.accounts.get_account(account_id)
        if not user:
            raise NotFound("User not found")
        return evaluate_quota(user, self.clock())

    def consume(self, account_id: str, tokens: int) -> None:
        """
        Unconditionally add `tokens` to the account's usage.
        Admission is the caller's job (see check_limit).
        """
        if tokens < 0:
            raise ValueError("tokens must be >= 0")
        if not self.accounts.increment_tokens(account_id, tokens):
            raise NotFound("User not found")
        logger.info("Consumed %s tokens for user %s", tokens, account_id)

    def consume_within_limit(self, account_id: str, tokens: int) -> bool:
        """
        Add `tokens` only if the account stays within its limit.
        Returns False (and consumes nothing) when it would not.
        """
        if tokens < 0:
            raise ValueError("tokens must be >= 0")
        if self.accounts.increment_tokens_within_limit(account_id, tokens):
            logger.info("Consumed %s tokens for user %s", tokens, account_id)
            return True
        if not self.accounts.get_account(account_id):
            raise NotFound("User not found")
        logger.warning("Refused to consume %s tokens for user %s: limit would be exceeded", tokens, account_id)
        return False
