"""
Receipt Verifier.

Checks that a receipt token is well formed, was issued by a trusted
verification authority and belongs to this app. It performs no network I/O;
remote re-validation against ``claims["verify"]`` is ReceiptCheckClient's job.

Checks run in order and the first failure wins:
1. The token decodes into claims.
2. ``verify`` is a well-formed URL and ``product.storedata`` is a string.
3. Test receipts pass only in test mode (skipping the checks below).
4. The origin of ``verify`` is an allowed receipt check site.
5. ``product.url`` matches the app's origin (packaged or hosted mode).
"""

import re
from typing import Any
from urllib.parse import urlsplit

from structlog import get_logger

from iap_client.exceptions import (
    InvalidReceiptError,
    TestReceiptNotAllowedError,
    TokenDecodeError,
)
from iap_client.models.domain import TEST_RECEIPT_TYPE, ConfigSnapshot, Product, get_url_origin
from iap_client.observability.metrics import metrics
from iap_client.observability.tracing import trace_operation
from iap_client.services.token_codec import decode_token

logger = get_logger(__name__)

_SCHEME_PREFIX = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def _is_well_formed_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _strip_scheme(origin: str) -> str:
    return _SCHEME_PREFIX.sub("", origin, count=1)


def _check_product_url(product_url: Any, config: ConfigSnapshot) -> None:
    """Bind the receipt to this app's origin."""
    if not isinstance(product_url, str) or not product_url:
        raise InvalidReceiptError("receipt has no product URL")

    if config.app_self is not None:
        app_origin = config.app_self.origin
        # Some marketplaces record packaged app origins without the scheme,
        # so "app://the-origin" may come back as "the-origin".
        if product_url not in (app_origin, _strip_scheme(app_origin)):
            raise InvalidReceiptError(
                f"product URL {product_url!r} does not match app origin {app_origin!r}"
            )
        return

    if config.host_window_origin is not None:
        if product_url != config.host_window_origin:
            raise InvalidReceiptError(
                f"product URL {product_url!r} does not match site origin "
                f"{config.host_window_origin!r}"
            )
        return

    raise InvalidReceiptError("no app or site origin is configured to bind receipts to")


def _check_claims(claims: dict[str, Any], config: ConfigSnapshot) -> None:
    verify_url = claims.get("verify")
    if not _is_well_formed_url(verify_url):
        raise InvalidReceiptError("receipt has no valid verify URL")

    product = claims.get("product")
    if not isinstance(product, dict) or not isinstance(product.get("storedata"), str):
        raise InvalidReceiptError("receipt product.storedata must be a string")

    if claims.get("typ") == TEST_RECEIPT_TYPE:
        if config.fake_products_allowed:
            logger.info("test_receipt_accepted", verify=verify_url)
            return
        raise TestReceiptNotAllowedError(claims)

    verify_origin = get_url_origin(verify_url)
    if verify_origin not in config.allowed_verify_sites:
        raise InvalidReceiptError(f"receipt check site {verify_origin!r} is not allowed")

    _check_product_url(product.get("url"), config)


def verify_receipt(token: Any, product: Product, config: ConfigSnapshot) -> dict[str, Any]:
    """
    Verify a receipt token for a product.

    Args:
        token: The receipt as issued by the marketplace
        product: The product the caller expects to be entitled to
        config: Configuration snapshot for this verification

    Returns:
        The decoded receipt claims

    Raises:
        InvalidReceiptError: If the receipt is malformed, untrusted or foreign
        TestReceiptNotAllowedError: If a test receipt is used outside test mode
    """
    with trace_operation("receipt_verification", product_id=product.product_id) as span:
        try:
            claims = decode_token(token)
            span.set_attribute("receipt.typ", str(claims.get("typ")))
            _check_claims(claims, config)
        except TokenDecodeError as exc:
            metrics.record_receipt_verification("malformed")
            logger.warning(
                "receipt_rejected",
                product_id=product.product_id,
                reason=exc.reason,
            )
            raise
        except InvalidReceiptError as exc:
            metrics.record_receipt_verification("invalid")
            logger.warning(
                "receipt_rejected",
                product_id=product.product_id,
                reason=exc.reason,
            )
            raise
        except TestReceiptNotAllowedError:
            metrics.record_receipt_verification("test_not_allowed")
            logger.warning("test_receipt_rejected", product_id=product.product_id)
            raise

    metrics.record_receipt_verification("ok")
    logger.info(
        "receipt_verified",
        product_id=product.product_id,
        typ=claims.get("typ"),
    )
    return claims
