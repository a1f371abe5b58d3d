"""
Window and messaging host capabilities.

The client never touches a global window object. Hosts supply a
WindowProvider (opens windows, dispatches cross-context messages) and the
windows it returns.
"""

from collections.abc import Callable
from typing import Any, Protocol

from structlog import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[Any], None]

PAY_WINDOW_NAME = "iap-pay"


class PaymentWindow(Protocol):
    """
    A browsing context showing the payment provider.

    Windows may also offer ``resize_to(width, height)`` and
    ``move_to(left, top)``; both are optional.
    """

    location: str

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class WindowProvider(Protocol):
    """
    The host's window and messaging context.

    Providers may expose ``origin`` (the hosting page's origin) and
    ``screen_width``/``screen_height`` for centring managed windows.
    """

    def open(self, url: str, name: str, features: str) -> PaymentWindow: ...

    def add_event_listener(self, event_type: str, handler: MessageHandler) -> None: ...

    def remove_event_listener(self, event_type: str, handler: MessageHandler) -> None: ...


def is_window_closed(window: Any) -> bool:
    """Windows that cannot report their state are treated as open."""
    return bool(getattr(window, "closed", False))


def window_position(provider: Any, width: int, height: int) -> tuple[int, int]:
    """Left/top that centre a window of the given size on the host screen."""
    screen_width = getattr(provider, "screen_width", None)
    screen_height = getattr(provider, "screen_height", None)
    if not screen_width or not screen_height:
        return 0, 0
    return max(0, (screen_width - width) // 2), max(0, (screen_height - height) // 2)


def window_features(provider: Any, width: int, height: int) -> str:
    """Feature string for opening a bare payment popup."""
    left, top = window_position(provider, width, height)
    return (
        "menubar=0,location=0,resizable=1,scrollbars=1,status=0,toolbar=0,"
        f"width={width},height={height},left={left},top={top}"
    )


def open_payment_window(provider: WindowProvider, width: int, height: int) -> PaymentWindow:
    """Open an empty popup that a session will later point at the provider."""
    window = provider.open("", PAY_WINDOW_NAME, window_features(provider, width, height))
    logger.debug("payment_window_opened", width=width, height=height)
    return window


def size_payment_window(window: Any, provider: Any, width: int, height: int) -> None:
    """Resize and centre a managed window when it supports it."""
    resize_to = getattr(window, "resize_to", None)
    if callable(resize_to):
        resize_to(width, height)

    move_to = getattr(window, "move_to", None)
    if callable(move_to):
        left, top = window_position(provider, width, height)
        move_to(left, top)
