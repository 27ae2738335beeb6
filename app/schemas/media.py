from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class MediaOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    media_type: str
    access_tier: str
    thumbnail_url: str | None = None
    is_purchaseable: bool
    price: Decimal | None = None
    is_published: bool
    created_at: datetime | None = None
    has_access: bool
    has_purchased: bool
    content_url: str | None = None  # только при has_access или для создателя


class LibraryItemOut(BaseModel):
    id: str
    title: str
    media_type: str
    thumbnail_url: str | None = None
    content_url: str | None = None
    access_tier: str
    source: str  # purchased / subscription
    purchased_at: datetime | None = None


class LibrarySubscriptionOut(BaseModel):
    plan_id: str
    plan_name: str
    access_tier: str
    can_message: bool
    current_period_end: datetime | None = None


class LibraryStatsOut(BaseModel):
    purchased_count: int
    subscription_count: int
    total_accessible: int


class LibraryOut(BaseModel):
    purchased_content: list[LibraryItemOut]
    subscription_content: list[LibraryItemOut]
    subscription: LibrarySubscriptionOut | None = None
    stats: LibraryStatsOut
