"""Facebook Ads insights adapter (ad-spend platform)."""
import json
from typing import Any, Mapping, Optional

from ..exceptions import UpstreamError
from ..schemas.integrations import Platform
from ..schemas.metrics import AdSpendMetrics
from ..sync.window import SyncWindow
from .base import (
    FetchResult,
    PlatformAdapter,
    aggregate_daily,
    safe_div,
    to_float,
    to_int,
)


GRAPH_API_BASE = "https://graph.facebook.com/v18.0"
INSIGHT_FIELDS = "spend,impressions,clicks,inline_link_clicks,actions"

ADDITIVE_FIELDS = (
    "spend",
    "impressions",
    "clicks",
    "link_clicks",
    "landing_page_views",
    "conversions",
)
RATE_FIELDS = ("ctr", "cpc", "cpm")


def _action_value(row: dict, action_type: str) -> int:
    for action in row.get("actions") or []:
        if action.get("action_type") == action_type:
            return to_int(action.get("value"))
    return 0


def normalize_insight_day(row: dict) -> dict[str, float]:
    """Turn one daily insight row into a per-day record.

    Rates are derived from the raw counts so a zero denominator yields 0.
    """
    spend = to_float(row.get("spend"))
    impressions = to_int(row.get("impressions"))
    clicks = to_int(row.get("clicks"))

    return {
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
        "link_clicks": to_int(row.get("inline_link_clicks")),
        "landing_page_views": _action_value(row, "landing_page_view"),
        "conversions": _action_value(row, "purchase"),
        "ctr": safe_div(clicks, impressions) * 100,
        "cpc": safe_div(spend, clicks),
        "cpm": safe_div(spend, impressions) * 1000,
    }


def build_ad_metrics(day_records: list[dict[str, float]]) -> AdSpendMetrics:
    """Aggregate per-day records and derive window-level ratios."""
    totals = aggregate_daily(day_records, ADDITIVE_FIELDS, RATE_FIELDS)

    link_clicks = totals["link_clicks"]
    landing_page_views = totals["landing_page_views"]

    return AdSpendMetrics(
        spend=round(totals["spend"], 2),
        impressions=int(totals["impressions"]),
        clicks=int(totals["clicks"]),
        link_clicks=int(link_clicks),
        landing_page_views=int(landing_page_views),
        conversions=int(totals["conversions"]),
        ctr=totals["ctr"],
        cpc=totals["cpc"],
        cpm=totals["cpm"],
        cost_per_link_click=safe_div(totals["spend"], link_clicks),
        landing_page_view_rate=safe_div(landing_page_views, link_clicks) * 100,
        conversion_rate=safe_div(totals["conversions"], landing_page_views) * 100,
        days_with_data=int(totals["days_with_data"]),
    )


class FacebookAdsAdapter(PlatformAdapter):
    """Fetches account-level daily insights from the Meta Marketing API."""

    platform = Platform.FACEBOOK_ADS.value
    base_metric_type = "facebook_ads"
    required_credentials = ("access_token", "ad_account_id")

    async def _fetch(
        self,
        credentials: Mapping[str, Any],
        config: Mapping[str, Any],
        window: SyncWindow,
    ) -> FetchResult:
        ad_account_id = str(credentials["ad_account_id"])
        if not ad_account_id.startswith("act_"):
            ad_account_id = f"act_{ad_account_id}"

        url = f"{GRAPH_API_BASE}/{ad_account_id}/insights"
        base_params = {
            "access_token": str(credentials["access_token"]),
            "level": "account",
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps(
                {"since": window.start.isoformat(), "until": window.end.isoformat()}
            ),
            "time_increment": "1",
            "limit": str(self.page_size),
        }

        async def fetch_page(after: Optional[str]) -> tuple[list[dict], Optional[str]]:
            params = dict(base_params)
            if after:
                params["after"] = after
            payload, _ = await self._request_json(url, params=params)
            if not isinstance(payload, dict):
                raise UpstreamError(
                    self.platform, "malformed insights payload: expected an object"
                )
            data = self._expect_list(self.platform, payload.get("data", []), "insights")
            next_cursor = payload.get("paging", {}).get("cursors", {}).get("after")
            return data, next_cursor

        rows, pages = await self._paginate(fetch_page, first_cursor=None)

        if not rows:
            self.logger.info(
                "No Facebook Ads insights for %s..%s", window.start, window.end
            )
            return FetchResult(metrics=None, pages_fetched=pages)

        day_records = [normalize_insight_day(row) for row in rows]
        metrics = build_ad_metrics(day_records)
        return FetchResult(metrics=metrics, records_fetched=len(rows), pages_fetched=pages)
