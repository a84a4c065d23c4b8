from app.models.user import User, Tier, SubscriptionStatus
from app.models.article import Article, InputType

__all__ = [
    "User",
    "Tier",
    "SubscriptionStatus",
    "Article",
    "InputType",
]
