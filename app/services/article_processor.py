"""
Process an article end to end: admit, acquire text, estimate, generate,
re-check, consume, then save to history.

True cost is only known after generation, so quota is checked three times:
before anything external happens, against a pre-estimate, and against the
actual cost. Nothing is consumed unless every step up to generation
succeeded, and history persistence can never fail the request.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from app.core.errors import EmptyContent, InsufficientQuota, StorageNotProvisioned, SubscriptionRequired
from app.core.plan_limits import DEFAULT_LIMITS, TierLimits
from app.models.article import InputType
from app.models.user import Tier
from app.services.content_extractor import ContentExtractor
from app.services.generation import DEFAULT_STYLE, CommentaryStyle, GenerationService
from app.services.repository import ArticleRepository
from app.services.usage_tracker import QuotaCheckResult, QuotaLedger, estimate_tokens

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


@dataclass
class ProcessingResult:
    translation: str
    insights: str
    style: CommentaryStyle
    tokens_used: int
    quota: QuotaCheckResult
    article_id: Optional[str] = None
    requires_subscription: bool = False

    def to_dict(self) -> dict:
        return {
            "translation": self.translation,
            "insights": self.insights,
            "requiresSubscription": self.requires_subscription,
            "style": self.style.value,
            "tokensUsed": self.tokens_used,
            "tokensRemaining": self.quota.tokens_remaining,
            "tokensTotal": self.quota.tokens_used,
            "tokenLimit": self.quota.limit,
            "articleId": self.article_id,
        }


def derive_title(input_type: InputType, content: str, article_text: str, extracted_title: Optional[str] = None) -> str:
    title = (extracted_title or "").strip()
    if not title:
        if input_type == InputType.URL:
            host = urlparse(content).hostname
            if host:
                title = host.replace("www.", "", 1) + " - " + content[:60]
            else:
                title = content[:100]
        else:
            title = article_text[:100].replace("\n", " ").strip()
            if len(article_text) > 100:
                title += "..."

    if not title:
        title = "Article" if input_type == InputType.URL else "Text Article"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH] + "..."
    return title


def _insufficient(status: QuotaCheckResult, message: str, **extra) -> InsufficientQuota:
    return InsufficientQuota(
        tokens_used=status.tokens_used,
        limit=status.limit,
        tokens_remaining=status.tokens_remaining,
        message=message,
        **extra,
    )


class ArticleProcessor:
    def __init__(
        self,
        ledger: QuotaLedger,
        articles: ArticleRepository,
        extractor: ContentExtractor,
        generator: GenerationService,
        limits: TierLimits = DEFAULT_LIMITS,
    ):
        self.ledger = ledger
        self.articles = articles
        self.extractor = extractor
        self.generator = generator
        self.limits = limits

    def process(
        self,
        account_id: str,
        input_type: InputType,
        content: str,
        style: Optional[CommentaryStyle] = None,
    ) -> ProcessingResult:
        input_type = InputType(input_type)
        style = CommentaryStyle(style) if style else DEFAULT_STYLE

        # 1. Pre-check before any external cost
        status = self.ledger.check_limit(account_id)
        if not status.allowed:
            if status.tokens_remaining <= 0:
                message = "You have reached your token limit. Please upgrade to continue."
            else:
                message = "Your subscription has expired. Please renew to continue."
            raise _insufficient(status, message)

        # 2. Acquire text
        article_title = None
        if input_type == InputType.URL:
            extracted = self.extractor.extract(content)
            if extracted.requires_subscription:
                raise SubscriptionRequired(
                    "This article requires a subscription to access. "
                    "Please sign in to the website and paste the article text instead.",
                    details={"requiresSubscription": True, "url": content},
                )
            article_text = extracted.content
            article_title = extracted.title
        else:
            article_text = content

        # 3. Validate
        if not article_text or len(article_text.strip()) < self.limits.min_content_length:
            raise EmptyContent(details={"requiresSubscription": False})

        # 4. Pre-estimate the end-to-end cost
        estimated_total = math.ceil(estimate_tokens(article_text) * self.limits.estimate_multiplier)
        status = self.ledger.check_limit(account_id)
        if status.tier == Tier.TRIAL and status.tokens_remaining < estimated_total:
            raise _insufficient(
                status,
                f"This article requires approximately {estimated_total:,} tokens, but you only have "
                f"{status.tokens_remaining:,} tokens remaining. Please upgrade to continue.",
                estimated_tokens=estimated_total,
            )

        # 5. Generate; commentary only ever sees the translation
        translation = self.generator.translate(article_text)
        insights = self.generator.generate_commentary(translation, style)

        # 6. Final check against the actual cost
        total_tokens = estimate_tokens(article_text) + estimate_tokens(translation) + estimate_tokens(insights)
        status = self.ledger.check_limit(account_id)
        if status.tier == Tier.TRIAL and status.tokens_remaining < total_tokens:
            raise self._final_shortfall(status, total_tokens)

        # 7. Consume. Trial limits are a hard stop, so use the guarded update
        if status.tier == Tier.TRIAL:
            if not self.ledger.consume_within_limit(account_id, total_tokens):
                raise self._final_shortfall(self.ledger.check_limit(account_id), total_tokens)
        else:
            self.ledger.consume(account_id, total_tokens)

        updated_status = self.ledger.check_limit(account_id)

        # 8. Persist (best-effort)
        article_id = self.save_history(
            user_id=account_id,
            title=derive_title(input_type, content, article_text, article_title),
            original_content=article_text,
            translated_content=translation,
            insights=insights,
            input_type=input_type,
            source_url=content if input_type == InputType.URL else None,
            style=style.value,
            tokens_used=total_tokens,
        )

        return ProcessingResult(
            translation=translation,
            insights=insights,
            style=style,
            tokens_used=total_tokens,
            quota=updated_status,
            article_id=article_id,
        )

    def _final_shortfall(self, status: QuotaCheckResult, total_tokens: int) -> InsufficientQuota:
        return _insufficient(
            status,
            f"This operation requires {total_tokens:,} tokens, but you only have "
            f"{status.tokens_remaining:,} tokens remaining. Please upgrade to continue.",
            required_tokens=total_tokens,
        )

    def save_history(self, **fields) -> Optional[str]:
        """
        Save the article record. Errors are logged and swallowed; history is a
        convenience and must not discard a generation that already succeeded.
        """
        try:
            article = self.articles.create_article(**fields)
        except StorageNotProvisioned:
            logger.warning("Articles table does not exist. Run the database migrations to enable history.")
            return None
        except Exception as e:
            logger.error("Error saving article to database for user %s: %s", fields.get("user_id"), e)
            return None
        logger.info("Article saved successfully: %s", article.id)
        return article.id
