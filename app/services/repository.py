"""
Data access for accounts and article history.

Repositories wrap a SQLAlchemy Session handed in by the caller (normally the
`get_db` request dependency). SQLAlchemy failures are translated into the
storage error kinds so routes and services never see driver exceptions.
"""
import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, StorageNotProvisioned, StorageUnavailable
from app.core.plan_limits import DEFAULT_LIMITS, TierLimits
from app.models.article import Article
from app.models.user import Tier, User

logger = logging.getLogger(__name__)

# Fields an account patch may touch
ACCOUNT_FIELDS = frozenset({
    "email",
    "hashed_password",
    "name",
    "image",
    "tier",
    "tokens_used",
    "token_limit",
    "subscription_status",
    "subscription_expires_at",
    "payment_reference",
})


def is_missing_table_error(exc: Exception) -> bool:
    """True when the error means the table/schema was never created (Postgres 42P01 or SQLite equivalent)."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "42P01":
        return True
    message = str(exc).lower()
    return "no such table" in message or ("relation" in message and "does not exist" in message)


@contextmanager
def storage_errors(db: Session):
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        if is_missing_table_error(e):
            raise StorageNotProvisioned(original_exception=e) from e
        logger.error("Database error: %s", e)
        raise StorageUnavailable(original_exception=e) from e


class AccountRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_account(self, account_id: str) -> Optional[User]:
        with storage_errors(self.db):
            return self.db.query(User).filter(User.id == account_id).first()

    def find_account_by_email(self, email: str) -> Optional[User]:
        # Email is matched exactly as stored
        with storage_errors(self.db):
            return self.db.query(User).filter(User.email == email).first()

    def create_account(
        self,
        email: str,
        hashed_password: Optional[str] = None,
        name: Optional[str] = None,
        image: Optional[str] = None,
        limits: TierLimits = DEFAULT_LIMITS,
    ) -> User:
        """Create a trial account with a fresh quota."""
        user = User(
            email=email,
            hashed_password=hashed_password,
            name=name,
            image=image,
            tier=Tier.TRIAL,
            tokens_used=0,
            token_limit=limits.trial_token_limit,
        )
        with storage_errors(self.db):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        logger.info("Created trial account %s", user.id)
        return user

    def update_account(self, account_id: str, **patch) -> User:
        unknown = set(patch) - ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)}")
        with storage_errors(self.db):
            user = self.db.query(User).filter(User.id == account_id).first()
            if not user:
                raise NotFound("User not found")
            for field, value in patch.items():
                setattr(user, field, value)
            self.db.commit()
            self.db.refresh(user)
            return user

    def increment_tokens(self, account_id: str, tokens: int) -> bool:
        """Add to tokens_used in a single UPDATE. Returns False if the account does not exist."""
        with storage_errors(self.db):
            rows = (
                self.db.query(User)
                .filter(User.id == account_id)
                .update({User.tokens_used: User.tokens_used + tokens}, synchronize_session=False)
            )
            self.db.commit()
        return rows > 0

    def increment_tokens_within_limit(self, account_id: str, tokens: int) -> bool:
        """
        Compare-and-increment: add to tokens_used only while the result stays
        within token_limit. Returns False when no row matched (missing account
        or not enough quota left).
        """
        with storage_errors(self.db):
            rows = (
                self.db.query(User)
                .filter(
                    User.id == account_id,
                    User.tokens_used + tokens <= User.token_limit,
                )
                .update({User.tokens_used: User.tokens_used + tokens}, synchronize_session=False)
            )
            self.db.commit()
        return rows > 0


class ArticleRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_article(self, **fields) -> Article:
        article = Article(**fields)
        with storage_errors(self.db):
            self.db.add(article)
            self.db.commit()
            self.db.refresh(article)
        return article

    def list_articles(self, user_id: str, limit: int = 50) -> List[Article]:
        """Most recent first."""
        with storage_errors(self.db):
            return (
                self.db.query(Article)
                .filter(Article.user_id == user_id)
                .order_by(Article.created_at.desc(), Article.id.desc())
                .limit(limit)
                .all()
            )

    def get_article(self, article_id: str) -> Optional[Article]:
        with storage_errors(self.db):
            return self.db.query(Article).filter(Article.id == article_id).first()

    def delete_article(self, article_id: str, user_id: str) -> bool:
        """Delete only when owned by user_id. Returns whether a row was removed."""
        with storage_errors(self.db):
            rows = (
                self.db.query(Article)
                .filter(Article.id == article_id, Article.user_id == user_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        return rows > 0
