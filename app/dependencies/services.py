"""
Per-request wiring of repositories and services.
Tests override get_db, get_content_extractor and get_generation_service.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.article_processor import ArticleProcessor
from app.services.content_extractor import ContentExtractor
from app.services.generation import GenerationService
from app.services.repository import AccountRepository, ArticleRepository
from app.services.subscription_lifecycle import SubscriptionLifecycle
from app.services.usage_tracker import QuotaLedger


def get_account_repository(db: Session = Depends(get_db)) -> AccountRepository:
    return AccountRepository(db)


def get_article_repository(db: Session = Depends(get_db)) -> ArticleRepository:
    return ArticleRepository(db)


def get_quota_ledger(accounts: AccountRepository = Depends(get_account_repository)) -> QuotaLedger:
    return QuotaLedger(accounts)


def get_subscription_lifecycle(
    accounts: AccountRepository = Depends(get_account_repository),
) -> SubscriptionLifecycle:
    return SubscriptionLifecycle(accounts)


def get_content_extractor() -> ContentExtractor:
    return ContentExtractor()


def get_generation_service() -> GenerationService:
    return GenerationService()


def get_article_processor(
    ledger: QuotaLedger = Depends(get_quota_ledger),
    articles: ArticleRepository = Depends(get_article_repository),
    extractor: ContentExtractor = Depends(get_content_extractor),
    generator: GenerationService = Depends(get_generation_service),
) -> ArticleProcessor:
    return ArticleProcessor(ledger, articles, extractor, generator)
