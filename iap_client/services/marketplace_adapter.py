"""
Web Marketplace Adapter.

MarketplaceAdapter implementation for apps running on the web: prepares
in-app pay requests and polls the marketplace for the resulting receipt.
"""

import asyncio
from typing import Any

import httpx
from structlog import get_logger

from iap_client.config import Settings
from iap_client.exceptions import MarketplaceError
from iap_client.models.domain import TransactionInfo
from iap_client.observability.metrics import metrics

logger = get_logger(__name__)


class WebMarketplaceAdapter:
    """
    Marketplace web API adapter.

    Usage:
        adapter = WebMarketplaceAdapter.from_settings(settings)
        transaction = await adapter.start_transaction("some-uuid")
        receipt = await adapter.fetch_receipt(transaction)
    """

    def __init__(
        self,
        api_url_base: str,
        api_version_prefix: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
        poll_attempts: int = 30,
    ) -> None:
        self.api_url_base = api_url_base.rstrip("/")
        self.api_version_prefix = api_version_prefix
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self._client = client

        logger.info("web_marketplace_adapter_initialized", api_url_base=self.api_url_base)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "WebMarketplaceAdapter":
        return cls(
            settings.api_url_base,
            settings.api_version_prefix,
            client=client,
            timeout=settings.request_timeout,
            poll_interval=settings.receipt_poll_interval,
            poll_attempts=settings.receipt_poll_attempts,
        )

    def api_url(self, path: str) -> str:
        """Absolute URL for a versioned API path."""
        return f"{self.api_url_base}{self.api_version_prefix}{path}"

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Make a request to the marketplace and return its JSON body."""
        try:
            if self._client is not None:
                response = await self._client.request(method, url, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as exc:
            metrics.record_marketplace_request(operation, "network_error")
            logger.error("marketplace_request_failed", operation=operation, error=str(exc))
            raise MarketplaceError(f"{operation} request failed: {exc}") from exc

        metrics.record_marketplace_request(operation, str(response.status_code))

        if response.status_code == 401:
            raise MarketplaceError("Not authorized to purchase")
        elif response.status_code == 404:
            raise MarketplaceError(f"{operation}: resource not found")
        elif response.status_code >= 400:
            logger.error(
                "marketplace_api_error",
                operation=operation,
                status=response.status_code,
                error=response.text,
            )
            raise MarketplaceError(f"{operation}: API error {response.status_code}")

        try:
            result = response.json()
        except ValueError as exc:
            raise MarketplaceError(f"{operation}: response is not JSON") from exc
        if not isinstance(result, dict):
            raise MarketplaceError(f"{operation}: response is not a JSON object")
        return result

    async def start_transaction(self, product_id: str) -> TransactionInfo:
        """
        Ask the marketplace to prepare a pay request for a product.

        Raises:
            MarketplaceError: If the request fails or the response lacks a
                pay request
        """
        logger.info("starting_marketplace_transaction", product_id=product_id)

        result = await self._request(
            "prepare",
            "POST",
            self.api_url("/webpay/inapp/prepare/"),
            json={"inapp": product_id},
        )

        token = result.get("webpayJWT")
        if not isinstance(token, str) or not token:
            raise MarketplaceError("prepare: no pay request in response")

        status_url = result.get("contribStatusURL")
        logger.info("marketplace_transaction_started", product_id=product_id)
        return TransactionInfo(token=token, status_url=status_url)

    async def fetch_receipt(self, transaction: TransactionInfo) -> str:
        """
        Poll the transaction status until the marketplace issues a receipt.

        Raises:
            MarketplaceError: If the transaction has no status URL, fails,
                or does not complete within the polling budget
        """
        if not transaction.status_url:
            raise MarketplaceError("transaction has no status URL")

        url = f"{self.api_url_base}{transaction.status_url}"
        for attempt in range(1, self.poll_attempts + 1):
            result = await self._request("transaction_status", "GET", url)
            status = result.get("status")

            if status == "complete":
                receipt = result.get("receipt")
                if not isinstance(receipt, str) or not receipt:
                    raise MarketplaceError("completed transaction has no receipt")
                logger.info("marketplace_receipt_fetched", attempts=attempt)
                return receipt
            if status != "incomplete":
                logger.warning("marketplace_transaction_failed", status=status)
                raise MarketplaceError(f"transaction ended with status {status!r}")

            logger.debug("marketplace_transaction_incomplete", attempt=attempt)
            if attempt < self.poll_attempts:
                await asyncio.sleep(self.poll_interval)

        raise MarketplaceError(
            f"transaction did not complete after {self.poll_attempts} status checks"
        )
