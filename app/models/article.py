"""
Article history record: one row per successful end-to-end generation.
"""
import uuid
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from app.db.base import Base


class InputType(str, Enum):
    URL = "url"
    TEXT = "text"


class Article(Base):
    __tablename__ = "articles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(256), nullable=False)
    original_content = Column(Text, nullable=False)
    translated_content = Column(Text, nullable=False)
    insights = Column(Text, nullable=False)  # Generated commentary
    input_type = Column(
        SQLEnum(InputType, native_enum=False, length=8, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    source_url = Column(String, nullable=True)
    style = Column(String(32), nullable=False)
    tokens_used = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<Article(id={self.id}, user_id={self.user_id}, tokens_used={self.tokens_used})>"
