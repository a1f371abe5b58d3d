"""
Payment window message models.

Messages arrive from another browsing context and are untrusted: the data
payload is validated with Pydantic before anything reads it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class MessageStatus(str, Enum):
    """Statuses a payment provider window can post."""

    OK = "ok"
    FAILED = "failed"
    UNLOADED = "unloaded"


@dataclass(frozen=True)
class MessageEvent:
    """Envelope of a cross-context message: sender origin plus payload."""

    origin: str
    data: Any = None


class PayMessageData(BaseModel):
    """Payload posted by the provider window."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = Field(..., min_length=1)
    error_code: Any = Field(None, alias="errorCode")


def parse_pay_message(data: Any) -> tuple[MessageStatus, PayMessageData] | None:
    """
    Validate a message payload.

    Returns None when the payload is absent, not an object, or carries a
    status this client does not know.
    """
    if not isinstance(data, dict):
        return None
    try:
        message = PayMessageData.model_validate(data)
        status = MessageStatus(message.status)
    except (ValidationError, ValueError):
        return None
    return status, message
