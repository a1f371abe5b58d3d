"""
Domain Models - Immutable dataclasses shared by the verifier and sessions.

NO DICTIONARIES - Configuration and purchase state are strongly typed values.
Raw token claims stay a plain mapping: they are untrusted input that is
checked field by field.
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from iap_client.config import Settings
    from iap_client.services.adapter import MarketplaceAdapter, NativePayProvider
    from iap_client.services.window import WindowProvider

TEST_RECEIPT_TYPE = "test-receipt"


def get_url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, lower-cased."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"URL has no origin: {url!r}")
    return f"{parts.scheme}://{parts.netloc}".lower()


@dataclass(frozen=True)
class Product:
    """The item the caller expects to purchase."""

    product_id: str

    def __post_init__(self) -> None:
        """Validate product fields."""
        if not self.product_id:
            raise ValueError("product_id cannot be empty")


@dataclass(frozen=True)
class AppSelf:
    """Identity of an installed (packaged) app."""

    origin: str


@dataclass(frozen=True)
class TransactionInfo:
    """What the adapter hands back when a transaction starts."""

    token: str  # Signed pay request for the provider window
    status_url: str | None = None  # Where the adapter can poll for the receipt


class PurchaseState(str, Enum):
    """Lifecycle of a purchase session."""

    STARTING = "starting"
    AWAITING_TOKEN = "awaiting_token"
    WINDOW_OPEN = "window_open"
    AWAITING_MESSAGE = "awaiting_message"
    VERIFYING_RECEIPT = "verifying_receipt"
    SETTLED = "settled"


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable view of host configuration for one verification or session.

    Built from Settings plus the host's collaborators. The core reads this and
    nothing else.
    """

    allowed_verify_sites: frozenset[str]
    pay_provider_urls: Mapping[str, str]
    app_self: AppSelf | None = None
    host_window_origin: str | None = None
    fake_products_allowed: bool = False
    window_provider: "WindowProvider | None" = None
    adapter: "MarketplaceAdapter | None" = None
    native_pay: "NativePayProvider | None" = None
    api_url_base: str = ""
    api_version_prefix: str = ""
    pay_window_width: int = 276
    pay_window_height: int = 384
    unload_grace_delay: float = 0.3
    window_poll_interval: float = 0.5

    def __post_init__(self) -> None:
        """Normalise collections into read-only forms."""
        object.__setattr__(
            self,
            "allowed_verify_sites",
            frozenset(get_url_origin(site) for site in self.allowed_verify_sites),
        )
        if not isinstance(self.pay_provider_urls, MappingProxyType):
            object.__setattr__(
                self, "pay_provider_urls", MappingProxyType(dict(self.pay_provider_urls))
            )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        window_provider: "WindowProvider | None" = None,
        adapter: "MarketplaceAdapter | None" = None,
        native_pay: "NativePayProvider | None" = None,
        app_self: AppSelf | None = None,
        host_window_origin: str | None = None,
    ) -> "ConfigSnapshot":
        """Snapshot settings together with the host's collaborators."""
        if host_window_origin is None and window_provider is not None:
            host_window_origin = getattr(window_provider, "origin", None)

        return cls(
            allowed_verify_sites=frozenset(settings.receipt_check_sites),
            pay_provider_urls=settings.pay_provider_urls,
            app_self=app_self,
            host_window_origin=host_window_origin,
            fake_products_allowed=settings.fake_products,
            window_provider=window_provider,
            adapter=adapter,
            native_pay=native_pay,
            api_url_base=settings.api_url_base.rstrip("/"),
            api_version_prefix=settings.api_version_prefix,
            pay_window_width=settings.pay_window_width,
            pay_window_height=settings.pay_window_height,
            unload_grace_delay=settings.unload_grace_delay,
            window_poll_interval=settings.window_poll_interval,
        )

    def replace(self, **changes: Any) -> "ConfigSnapshot":
        """Return a copy with some fields changed."""
        return replace(self, **changes)
