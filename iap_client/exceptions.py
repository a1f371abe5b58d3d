"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from enum import Enum
from typing import Any


class PayErrorCode(str, Enum):
    """Error codes a payment session can settle with."""

    UNKNOWN_MESSAGE_ORIGIN = "UNKNOWN_MESSAGE_ORIGIN"
    UNKNOWN_MESSAGE_STATUS = "UNKNOWN_MESSAGE_STATUS"
    PAY_WINDOW_FAIL_MESSAGE = "PAY_WINDOW_FAIL_MESSAGE"
    DIALOG_CLOSED_BY_USER = "DIALOG_CLOSED_BY_USER"
    MISSING_PAYMENT_WINDOW = "MISSING_PAYMENT_WINDOW"
    UNEXPECTED_JWT_TYPE = "UNEXPECTED_JWT_TYPE"


class PurchaseError(Exception):
    """Base exception for all purchase client errors."""

    pass


class InvalidReceiptError(PurchaseError):
    """Raised when a receipt is malformed or not bound to this app."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid receipt: {reason}")


class TokenDecodeError(InvalidReceiptError):
    """Raised when a token is not a well-formed three segment token."""

    pass


class TestReceiptNotAllowedError(PurchaseError):
    """Raised when a test receipt is presented while test mode is off."""

    __test__ = False  # not a pytest test class

    def __init__(self, claims: dict[str, Any]) -> None:
        self.claims = claims
        super().__init__("Test receipts are not allowed unless fake products are enabled")


class PayError(PurchaseError):
    """Raised when a payment session ends without a successful payment."""

    def __init__(self, code: PayErrorCode | str) -> None:
        self.code = code.value if isinstance(code, PayErrorCode) else code
        super().__init__(f"Payment failed: {self.code}")


class SessionStateError(PurchaseError):
    """Raised when an already settled outcome is settled again."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid session state: {message}")


class MarketplaceError(PurchaseError):
    """Raised when a marketplace API operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Marketplace error: {message}")


class ReceiptCheckError(PurchaseError):
    """Raised when the verification authority does not confirm a receipt."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Receipt check failed with status: {status}")
