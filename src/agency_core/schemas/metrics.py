"""Pydantic models for normalized platform metrics and stored snapshots."""
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AdSpendMetrics(BaseModel):
    """Ad platform metrics for one day or an aggregated window."""

    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    link_clicks: int = 0
    landing_page_views: int = 0
    conversions: int = 0
    ctr: float = Field(0.0, description="Click-through rate, percent")
    cpc: float = Field(0.0, description="Cost per click")
    cpm: float = Field(0.0, description="Cost per 1000 impressions")
    cost_per_link_click: float = 0.0
    landing_page_view_rate: float = Field(0.0, description="LPV / link clicks, percent")
    conversion_rate: float = Field(0.0, description="Conversions / LPV, percent")
    days_with_data: int = 0


class ProductSales(BaseModel):
    """Per-product sales rollup."""

    product_id: str
    name: str
    quantity: int = 0
    revenue: float = 0.0


class CommerceMetrics(BaseModel):
    """Order/revenue metrics for a commerce store."""

    total_revenue: float = 0.0
    total_orders: int = Field(0, description="Orders in accepted statuses")
    completed_orders: int = 0
    processing_orders: int = 0
    pending_orders: int = 0
    on_hold_orders: int = 0
    cancelled_orders: int = 0
    refunded_orders: int = 0
    failed_orders: int = 0
    other_status_orders: int = 0
    average_order_value: float = 0.0
    top_products: list[ProductSales] = Field(default_factory=list)


class CampaignStats(BaseModel):
    """Stats for one sent email campaign."""

    id: str
    name: str
    sent: int = 0
    opens: int = 0
    clicks: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0


class EmailMetrics(BaseModel):
    """Subscriber and campaign metrics for an email platform."""

    total_subscribers: int = 0
    active_subscribers: int = 0
    unsubscribed: int = 0
    bounced: int = 0
    total_campaigns: int = 0
    campaigns_sent: int = 0
    campaigns_in_window: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    unsubscribe_rate: float = 0.0
    recent_campaigns: list[CampaignStats] = Field(default_factory=list)


class PostSummary(BaseModel):
    """Short description of a published item."""

    id: int
    title: str
    status: str
    date: str
    author: str


class MonthCount(BaseModel):
    month: str
    count: int


class ContentMetrics(BaseModel):
    """Publishing counters for a content site."""

    total_posts: int = 0
    total_pages: int = 0
    total_comments: int = 0
    total_users: int = 0
    published_posts: int = 0
    draft_posts: int = 0
    posts_in_window: int = 0
    recent_posts: list[PostSummary] = Field(default_factory=list)
    posts_by_month: list[MonthCount] = Field(default_factory=list)


class MetricsSnapshot(BaseModel):
    """One persisted metrics record for a day, platform and metric type.

    Unique on (client_id, integration_id, platform, metric_type, date).
    """

    id: Optional[int] = None
    client_id: str
    integration_id: str
    platform: str
    metric_type: str
    date: date
    metrics: dict[str, Any]
    created_at: Optional[datetime] = None
