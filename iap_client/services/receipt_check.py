"""
Remote Receipt Check.

Asks the verification authority named in a receipt to confirm it. The local
Receipt Verifier runs first, so receipts are only ever sent to allowed
receipt check sites.
"""

from typing import Any

import httpx
from structlog import get_logger

from iap_client.exceptions import ReceiptCheckError
from iap_client.models.domain import TEST_RECEIPT_TYPE, ConfigSnapshot, Product
from iap_client.observability.metrics import metrics
from iap_client.services.receipt_verifier import verify_receipt

logger = get_logger(__name__)


class ReceiptCheckClient:
    """Validates receipts with their verification authority."""

    def __init__(
        self,
        config: ConfigSnapshot,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self._client = client

    async def _post(self, url: str, receipt: str) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "content": receipt.encode("utf-8"),
            "headers": {"Content-Type": "text/plain"},
            "timeout": self.timeout,
        }
        if self._client is not None:
            return await self._client.post(url, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.post(url, **kwargs)

    async def validate(self, receipt: str, product: Product) -> dict[str, Any]:
        """
        Verify a receipt locally, then with its verification authority.

        Returns:
            The receipt claims

        Raises:
            InvalidReceiptError: If local verification fails
            TestReceiptNotAllowedError: If a test receipt is used outside test mode
            ReceiptCheckError: If the authority does not answer ``ok``
        """
        claims = verify_receipt(receipt, product, self.config)
        if claims.get("typ") == TEST_RECEIPT_TYPE:
            logger.info("receipt_check_skipped_for_test_receipt", product_id=product.product_id)
            return claims

        verify_url = claims["verify"]
        try:
            response = await self._post(verify_url, receipt)
        except httpx.HTTPError as exc:
            metrics.record_marketplace_request("receipt_check", "network_error")
            logger.error("receipt_check_request_failed", verify=verify_url, error=str(exc))
            raise ReceiptCheckError("network_error") from exc

        metrics.record_marketplace_request("receipt_check", str(response.status_code))
        if response.status_code >= 400:
            logger.error("receipt_check_http_error", verify=verify_url, status=response.status_code)
            raise ReceiptCheckError(f"http_{response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ReceiptCheckError("malformed_response") from exc

        status = body.get("status") if isinstance(body, dict) else None
        if status != "ok":
            logger.warning(
                "receipt_check_rejected",
                product_id=product.product_id,
                status=status,
            )
            raise ReceiptCheckError(str(status))

        logger.info("receipt_check_passed", product_id=product.product_id)
        return claims
