from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.article import InputType
from app.services.generation import CommentaryStyle


class ProcessArticleRequest(BaseModel):
    input_type: InputType = Field(alias="inputType")
    content: str = Field(min_length=1)
    style: Optional[CommentaryStyle] = None

    class Config:
        populate_by_name = True


class ArticleSummary(BaseModel):
    id: str
    title: str
    input_type: InputType
    source_url: Optional[str] = None
    style: str
    tokens_used: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ArticleDetail(ArticleSummary):
    original_content: str
    translated_content: str
    insights: str

