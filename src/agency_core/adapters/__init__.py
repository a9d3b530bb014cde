"""Platform adapters: one per supported marketing platform."""
from ..exceptions import UnknownPlatformError
from .base import FetchResult, PlatformAdapter, aggregate_daily, safe_div, top_n
from .facebook_ads import FacebookAdsAdapter
from .mailerlite import MailerLiteAdapter
from .woocommerce import WooCommerceAdapter
from .wordpress import WordPressAdapter

ADAPTERS: dict[str, type[PlatformAdapter]] = {
    adapter.platform: adapter
    for adapter in (
        WooCommerceAdapter,
        FacebookAdsAdapter,
        MailerLiteAdapter,
        WordPressAdapter,
    )
}


def get_adapter_class(platform: str) -> type[PlatformAdapter]:
    """Look up the adapter for a platform tag.

    Raises:
        UnknownPlatformError: If no adapter handles the tag
    """
    try:
        return ADAPTERS[platform]
    except KeyError:
        raise UnknownPlatformError(platform) from None


__all__ = [
    "ADAPTERS",
    "FacebookAdsAdapter",
    "FetchResult",
    "MailerLiteAdapter",
    "PlatformAdapter",
    "WooCommerceAdapter",
    "WordPressAdapter",
    "aggregate_daily",
    "get_adapter_class",
    "safe_div",
    "top_n",
]
