"""
Article processing and history routes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.errors import Forbidden, InvalidInput, NotFound, StorageNotProvisioned
from app.dependencies.auth import get_current_user_id
from app.dependencies.services import get_article_processor, get_article_repository
from app.schemas.article import ArticleDetail, ArticleSummary, ProcessArticleRequest
from app.services.article_processor import ArticleProcessor
from app.services.repository import ArticleRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process-article")
def process_article(
    request: ProcessArticleRequest,
    user_id: str = Depends(get_current_user_id),
    processor: ArticleProcessor = Depends(get_article_processor),
):
    """
    Translate an article (URL or pasted text) and generate commentary,
    metered against the caller's token quota.
    """
    result = processor.process(
        account_id=user_id,
        input_type=request.input_type,
        content=request.content,
        style=request.style,
    )
    return result.to_dict()


@router.get("/articles")
def list_articles(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    articles: ArticleRepository = Depends(get_article_repository),
):
    """List the caller's article history, most recent first."""
    try:
        records = articles.list_articles(user_id, limit)
    except StorageNotProvisioned as e:
        # Keep the UI working before the migration has been run
        logger.error("Articles table does not exist: %s", e.original_exception)
        return {
            "error": e.error_code,
            "message": e.message,
            "articles": [],
        }
    return {
        "articles": [ArticleSummary.model_validate(record).model_dump(mode="json") for record in records]
    }


@router.get("/articles/{article_id}")
def get_article(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    articles: ArticleRepository = Depends(get_article_repository),
):
    article = articles.get_article(article_id)
    if not article:
        raise NotFound("Article not found")
    if article.user_id != user_id:
        raise Forbidden("This article does not belong to you")
    return {"article": ArticleDetail.model_validate(article).model_dump(mode="json")}


def _delete_owned(article_id: str, user_id: str, articles: ArticleRepository) -> dict:
    # Ownership is enforced in the DELETE itself; zero rows means not ours (or gone)
    if not articles.delete_article(article_id, user_id):
        raise Forbidden("Article not found or does not belong to you")
    logger.info("Deleted article %s for user %s", article_id, user_id)
    return {"success": True}


@router.delete("/articles/{article_id}")
def delete_article(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    articles: ArticleRepository = Depends(get_article_repository),
):
    return _delete_owned(article_id, user_id, articles)


@router.delete("/articles")
def delete_article_by_query(
    id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    articles: ArticleRepository = Depends(get_article_repository),
):
    if not id:
        raise InvalidInput("Article ID is required")
    return _delete_owned(id, user_id, articles)
