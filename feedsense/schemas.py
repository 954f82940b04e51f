"""
Pydantic schemas for request/response validation.
"""

import enum
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field

from feedsense.models import SubscriptionType


class SearchScope(str, enum.Enum):
    ALL = "ALL"
    SUBSCRIBED = "SUBSCRIBED"
    FAVORITE = "FAVORITE"


class FeedItem(BaseModel):
    """The list view of an article, shared by search results, recommendations and the feed."""
    id: int
    source_id: Optional[int] = None
    source_name: Optional[str] = None
    title: str
    cover_image: Optional[str] = None
    pub_date: Optional[datetime] = None
    word_count: Optional[int] = None

    class Config:
        from_attributes = True


class SourceOut(BaseModel):
    id: int
    name: str
    url: str
    enabled: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ArticleOut(BaseModel):
    id: int
    source_id: Optional[int] = None
    source_name: Optional[str] = None
    title: str
    link: str
    author: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    word_count: Optional[int] = None
    pub_date: Optional[datetime] = None
    overview: Optional[str] = None
    key_information: List[str] = []
    tags: List[str] = []
    is_favorite: bool = False


class TopicOut(BaseModel):
    id: int
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionOut(BaseModel):
    id: int
    type: SubscriptionType
    target_id: int
    name: str
    created_at: Optional[datetime] = None


class CreateTopicRequest(BaseModel):
    content: str


class CreateSubscriptionRequest(BaseModel):
    type: SubscriptionType
    target_id: int = Field(..., gt=0)


class CreateSourceRequest(BaseModel):
    url: str
    name: Optional[str] = None


class UpdateSourceRequest(BaseModel):
    enabled: bool
