"""
In-app purchase client.

Buys products through a marketplace and a payment provider window, and
verifies the receipts that come back.
"""

from iap_client.exceptions import (
    InvalidReceiptError,
    PayError,
    PayErrorCode,
    PurchaseError,
    TestReceiptNotAllowedError,
)
from iap_client.models.domain import AppSelf, ConfigSnapshot, Product, TransactionInfo
from iap_client.services.pay import accept_pay_message, process_payment
from iap_client.services.purchase import PurchaseSession, PurchaseSessionManager
from iap_client.services.receipt_verifier import verify_receipt
from iap_client.services.token_codec import decode_token

__all__ = [
    "AppSelf",
    "ConfigSnapshot",
    "InvalidReceiptError",
    "PayError",
    "PayErrorCode",
    "Product",
    "PurchaseError",
    "PurchaseSession",
    "PurchaseSessionManager",
    "TestReceiptNotAllowedError",
    "TransactionInfo",
    "accept_pay_message",
    "decode_token",
    "process_payment",
    "verify_receipt",
]
