"""MailerLite adapter (email-marketing platform)."""
from typing import Any, Mapping

from ..exceptions import UpstreamError
from ..schemas.integrations import Platform
from ..schemas.metrics import CampaignStats, EmailMetrics
from ..sync.window import SyncWindow
from .base import TOP_N, FetchResult, PlatformAdapter, safe_div, to_int


MAILERLITE_API_BASE = "https://connect.mailerlite.com/api"


def _campaign_sent_day(campaign: dict) -> str:
    sent_at = campaign.get("finished_at") or campaign.get("scheduled_for") or ""
    return str(sent_at)[:10]


class MailerLiteAdapter(PlatformAdapter):
    """Point-in-time subscriber counts plus sent-campaign statistics.

    Subscriber totals have no per-day history, so every window produces one
    record; the window only selects which campaigns count as in-window.
    """

    platform = Platform.MAILERLITE.value
    base_metric_type = "email"
    required_credentials = ("api_key",)

    async def _fetch(
        self,
        credentials: Mapping[str, Any],
        config: Mapping[str, Any],
        window: SyncWindow,
    ) -> FetchResult:
        headers = {
            "Authorization": f"Bearer {credentials['api_key']}",
            "Accept": "application/json",
        }

        subscribers, _ = await self._request_json(
            f"{MAILERLITE_API_BASE}/subscribers", params={"limit": "0"}, headers=headers
        )
        if not isinstance(subscribers, dict):
            raise UpstreamError(self.platform, "malformed subscribers payload")
        total_subscribers = to_int(
            subscribers.get("total", subscribers.get("meta", {}).get("total"))
        )

        groups, group_pages = await self._paginate(
            self._list_fetcher(f"{MAILERLITE_API_BASE}/groups", headers, {})
        )
        campaigns, campaign_pages = await self._paginate(
            self._list_fetcher(
                f"{MAILERLITE_API_BASE}/campaigns",
                headers,
                {"filter[status]": "sent"},
            )
        )

        metrics = normalize_email(total_subscribers, groups, campaigns, window)
        return FetchResult(
            metrics=metrics,
            records_fetched=len(groups) + len(campaigns),
            pages_fetched=1 + group_pages + campaign_pages,
        )

    def _list_fetcher(self, url: str, headers: dict, extra_params: dict):
        async def fetch_page(page: int) -> tuple[list[dict], int]:
            params = {"limit": str(self.page_size), "page": str(page), **extra_params}
            payload, _ = await self._request_json(url, params=params, headers=headers)
            if not isinstance(payload, dict):
                raise UpstreamError(self.platform, f"malformed payload from {url}")
            return self._expect_list(self.platform, payload.get("data", []), url), page + 1

        return fetch_page


def normalize_email(
    total_subscribers: int,
    groups: list[dict],
    campaigns: list[dict],
    window: SyncWindow,
) -> EmailMetrics:
    """Build email metrics from groups and sent campaigns.

    Rates are percentages over total emails sent across sent campaigns.
    """
    active = sum(to_int(group.get("active_count")) for group in groups)
    unsubscribed = sum(to_int(group.get("unsubscribed_count")) for group in groups)
    bounced = sum(to_int(group.get("bounced_count")) for group in groups)

    window_start = window.start.isoformat()
    window_end = window.end.isoformat()

    total_sent = total_opens = total_clicks = total_unsubscribes = 0
    campaigns_sent = 0
    campaigns_in_window = 0
    recent: list[CampaignStats] = []

    for campaign in campaigns:
        if campaign.get("status", "sent") != "sent":
            continue
        campaigns_sent += 1

        sent = to_int(campaign.get("emails_count"))
        opens = to_int((campaign.get("opened") or {}).get("count"))
        clicks = to_int((campaign.get("clicked") or {}).get("count"))
        total_sent += sent
        total_opens += opens
        total_clicks += clicks
        total_unsubscribes += to_int((campaign.get("unsubscribed") or {}).get("count"))

        if window_start <= _campaign_sent_day(campaign) <= window_end:
            campaigns_in_window += 1

        if len(recent) < TOP_N:
            recent.append(
                CampaignStats(
                    id=str(campaign.get("id", "")),
                    name=campaign.get("name") or "",
                    sent=sent,
                    opens=opens,
                    clicks=clicks,
                    open_rate=safe_div(opens, sent) * 100,
                    click_rate=safe_div(clicks, sent) * 100,
                )
            )

    return EmailMetrics(
        total_subscribers=total_subscribers,
        active_subscribers=active,
        unsubscribed=unsubscribed,
        bounced=bounced,
        total_campaigns=len(campaigns),
        campaigns_sent=campaigns_sent,
        campaigns_in_window=campaigns_in_window,
        open_rate=safe_div(total_opens, total_sent) * 100,
        click_rate=safe_div(total_clicks, total_sent) * 100,
        unsubscribe_rate=safe_div(total_unsubscribes, total_sent) * 100,
        recent_campaigns=recent,
    )
