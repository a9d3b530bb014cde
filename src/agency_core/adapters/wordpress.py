"""WordPress REST API adapter (content-site platform)."""
from typing import Any, Mapping

from ..exceptions import UpstreamError
from ..schemas.integrations import Platform
from ..schemas.metrics import ContentMetrics, MonthCount, PostSummary
from ..sync.window import SyncWindow
from .base import TOP_N, FetchResult, PlatformAdapter, to_int


DEFAULT_ENDPOINT = "/wp-json/wp/v2"
MONTHS_KEPT = 12
INVALID_PAGE_CODE = "rest_post_invalid_page_number"


class WordPressAdapter(PlatformAdapter):
    """Publishing counters read from the wp/v2 collections."""

    platform = Platform.WORDPRESS.value
    base_metric_type = "traffic"
    required_credentials = ("site_url", "api_key")

    async def _fetch(
        self,
        credentials: Mapping[str, Any],
        config: Mapping[str, Any],
        window: SyncWindow,
    ) -> FetchResult:
        site_url = str(credentials["site_url"]).rstrip("/")
        endpoint = credentials.get("endpoint") or DEFAULT_ENDPOINT
        base_url = f"{site_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {credentials['api_key']}",
            "Accept": "application/json",
        }
        totals: dict[str, int] = {}

        async def fetch_page(page: int) -> tuple[list[dict], int]:
            params = {
                "per_page": str(self.page_size),
                "page": str(page),
                "orderby": "date",
                "order": "desc",
            }
            try:
                payload, resp_headers = await self._request_json(
                    f"{base_url}/posts", params=params, headers=headers
                )
            except UpstreamError as exc:
                # WordPress answers 400 for a page past the end when the
                # total is an exact multiple of the page size.
                if page > 1 and exc.status == 400 and INVALID_PAGE_CODE in (exc.body or ""):
                    return [], page + 1
                raise
            if page == 1:
                totals["posts"] = to_int(resp_headers.get("X-WP-Total"))
            return self._expect_list(self.platform, payload, "posts"), page + 1

        posts, pages = await self._paginate(fetch_page)

        total_pages = await self._collection_total(f"{base_url}/pages", headers)
        total_comments = await self._collection_total(f"{base_url}/comments", headers)
        total_users = await self._collection_total(f"{base_url}/users", headers)

        metrics = normalize_posts(
            posts,
            window,
            total_posts=totals.get("posts", len(posts)),
            total_pages=total_pages,
            total_comments=total_comments,
            total_users=total_users,
        )
        return FetchResult(metrics=metrics, records_fetched=len(posts), pages_fetched=pages + 3)

    async def _collection_total(self, url: str, headers: dict) -> int:
        _, resp_headers = await self._request_json(
            url, params={"per_page": "1"}, headers=headers
        )
        return to_int(resp_headers.get("X-WP-Total"))


def normalize_posts(
    posts: list[dict],
    window: SyncWindow,
    total_posts: int,
    total_pages: int,
    total_comments: int,
    total_users: int,
) -> ContentMetrics:
    """Count publishing activity from posts listed newest first."""
    window_start = window.start.isoformat()
    window_end = window.end.isoformat()

    published = drafts = in_window = 0
    recent: list[PostSummary] = []
    by_month: dict[str, int] = {}

    for post in posts:
        status = post.get("status", "")
        if status == "publish":
            published += 1
        elif status == "draft":
            drafts += 1

        post_date = str(post.get("date") or "")
        if window_start <= post_date[:10] <= window_end:
            in_window += 1

        month = post_date[:7]
        if month:
            by_month[month] = by_month.get(month, 0) + 1

        if len(recent) < TOP_N:
            recent.append(
                PostSummary(
                    id=to_int(post.get("id")),
                    title=(post.get("title") or {}).get("rendered") or "Untitled",
                    status=status,
                    date=post_date,
                    author=str(post.get("author", "")),
                )
            )

    months = sorted(by_month.items(), key=lambda item: item[0], reverse=True)[:MONTHS_KEPT]

    return ContentMetrics(
        total_posts=total_posts,
        total_pages=total_pages,
        total_comments=total_comments,
        total_users=total_users,
        published_posts=published,
        draft_posts=drafts,
        posts_in_window=in_window,
        recent_posts=recent,
        posts_by_month=[MonthCount(month=month, count=count) for month, count in months],
    )
