"""
Message Origin Validator.

Decides whether a cross-context message came from the provider window the
session opened.
"""

from structlog import get_logger

from iap_client.models.domain import get_url_origin

logger = get_logger(__name__)


def provider_origin(template: str) -> str:
    """Origin a provider window will post from, derived from its URL template."""
    return get_url_origin(template.replace("{jwt}", ""))


def is_expected_origin(event_origin: object, expected_origin: str) -> bool:
    """
    Check a message's sender origin.

    Origins are compared exactly; a browser reports them already normalised,
    so any difference means a different sender.
    """
    if not isinstance(event_origin, str) or event_origin != expected_origin:
        logger.warning(
            "pay_message_origin_mismatch",
            origin=event_origin,
            expected_origin=expected_origin,
        )
        return False
    return True
