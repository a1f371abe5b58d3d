"""
Payment message protocol.

Points a payment window at the provider for a signed pay request, listens for
the provider's cross-context messages and turns them into a single payment
outcome. A native platform payment API is used instead of a window when the
host configures one.

Message statuses:
- ok: payment completed
- failed: payment failed; ``errorCode`` says why when the provider knows
- unloaded: the provider page went away; this also fires on in-window
  navigation, so it only counts as abandonment if the window is still
  closed after a grace delay
"""

import asyncio
from collections.abc import Callable
from typing import Any, assert_never

from structlog import get_logger

from iap_client.exceptions import PayError, PayErrorCode, TokenDecodeError
from iap_client.models.domain import ConfigSnapshot
from iap_client.models.messages import MessageStatus, parse_pay_message
from iap_client.observability.metrics import metrics
from iap_client.services.origins import is_expected_origin, provider_origin
from iap_client.services.outcome import Outcome, OutcomeCallback
from iap_client.services.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from iap_client.services.token_codec import decode_token
from iap_client.services.window import is_window_closed, size_payment_window

logger = get_logger(__name__)

DEFAULT_GRACE_DELAY = 0.3


def resolve_provider_url(token: str, config: ConfigSnapshot) -> str:
    """
    Pick the provider URL for a pay request from its ``typ`` claim.

    Raises:
        PayError: UNEXPECTED_JWT_TYPE if the token cannot be decoded or no
            provider is configured for its type
    """
    try:
        typ = decode_token(token).get("typ")
    except TokenDecodeError as exc:
        logger.warning("pay_request_undecodable", reason=exc.reason)
        raise PayError(PayErrorCode.UNEXPECTED_JWT_TYPE) from exc

    template = config.pay_provider_urls.get(typ) if isinstance(typ, str) else None
    if template is None:
        logger.warning("pay_request_unknown_type", typ=typ)
        raise PayError(PayErrorCode.UNEXPECTED_JWT_TYPE)

    return template


def schedule_closed_check(
    window: Any,
    callback: OutcomeCallback,
    *,
    scheduler: Scheduler,
    grace_delay: float = DEFAULT_GRACE_DELAY,
    on_still_open: Callable[[], None] | None = None,
) -> TimerHandle:
    """After ``grace_delay``, settle with DIALOG_CLOSED_BY_USER if the window is closed."""

    def check() -> None:
        if is_window_closed(window):
            logger.info("payment_window_closed_by_user")
            callback(PayError(PayErrorCode.DIALOG_CLOSED_BY_USER))
            return
        logger.debug("payment_window_still_open")
        if on_still_open is not None:
            on_still_open()

    return scheduler.call_later(grace_delay, check)


def accept_pay_message(
    event: Any,
    expected_origin: str,
    window: Any,
    callback: OutcomeCallback,
    *,
    scheduler: Scheduler,
    grace_delay: float = DEFAULT_GRACE_DELAY,
    on_still_open: Callable[[], None] | None = None,
) -> TimerHandle | None:
    """
    Dispatch one message from a payment window.

    Terminal messages invoke ``callback`` right away with ``None`` or a
    PayError. An ``unloaded`` message instead arms a closed-window check and
    returns its timer so the caller can cancel it.

    Args:
        event: Message envelope with ``origin`` and ``data``
        expected_origin: Origin of the provider the window was pointed at
        window: The payment window
        callback: Receives the payment outcome
        scheduler: Timer source for the unloaded grace delay; pass
            ``AsyncioScheduler()`` only from code running on an event loop
        grace_delay: Seconds to wait before re-checking ``window.closed``
        on_still_open: Called if the window turns out not to be closed

    Returns:
        The grace timer for ``unloaded`` messages, otherwise None
    """
    if not is_expected_origin(getattr(event, "origin", None), expected_origin):
        metrics.record_pay_message("foreign")
        callback(PayError(PayErrorCode.UNKNOWN_MESSAGE_ORIGIN))
        return None

    parsed = parse_pay_message(getattr(event, "data", None))
    if parsed is None:
        metrics.record_pay_message("unknown")
        logger.warning("pay_message_unknown_status", data=repr(getattr(event, "data", None)))
        callback(PayError(PayErrorCode.UNKNOWN_MESSAGE_STATUS))
        return None

    status, message = parsed
    metrics.record_pay_message(status.value)
    logger.info("pay_message_received", status=status.value, error_code=message.error_code)

    match status:
        case MessageStatus.OK:
            callback(None)
            return None
        case MessageStatus.FAILED:
            # Providers are not consistent about the type of errorCode.
            code = str(message.error_code) if message.error_code else None
            callback(PayError(code or PayErrorCode.PAY_WINDOW_FAIL_MESSAGE))
            return None
        case MessageStatus.UNLOADED:
            return schedule_closed_check(
                window,
                callback,
                scheduler=scheduler,
                grace_delay=grace_delay,
                on_still_open=on_still_open,
            )
        case _:
            assert_never(status)


class WindowPayment:
    """
    A payment running in a provider window.

    Owns the message listener and the closed-window watchdog until the first
    terminal event, then releases both, closes the window if it is managed and
    reports the outcome once.
    """

    def __init__(
        self,
        token: str,
        config: ConfigSnapshot,
        window: Any,
        callback: OutcomeCallback,
        *,
        managed: bool,
        scheduler: Scheduler,
    ) -> None:
        self.token = token
        self.config = config
        self.window = window
        self.managed = managed
        self.scheduler = scheduler
        self.outcome: Outcome[None] = Outcome(callback, name="payment")
        self.expected_origin: str | None = None
        self._listening = False
        self._grace_timer: TimerHandle | None = None
        self._poll_timer: TimerHandle | None = None

    @property
    def listening(self) -> bool:
        return self._listening

    def start(self) -> None:
        """Point the window at the provider and wait for its messages."""
        try:
            template = resolve_provider_url(self.token, self.config)
        except PayError as exc:
            self._finish(exc)
            return

        self.expected_origin = provider_origin(template)
        self.window.location = template.replace("{jwt}", self.token)

        if self.managed:
            size_payment_window(
                self.window,
                self.config.window_provider,
                self.config.pay_window_width,
                self.config.pay_window_height,
            )

        self.config.window_provider.add_event_listener("message", self._on_message)
        self._listening = True
        self._schedule_poll()

        logger.info(
            "payment_window_pointed_at_provider",
            provider_origin=self.expected_origin,
            managed=self.managed,
        )

    def _on_message(self, event: Any) -> None:
        if self.outcome.resolved:
            logger.warning("pay_message_after_settlement", origin=getattr(event, "origin", None))
            return

        timer = accept_pay_message(
            event,
            self.expected_origin or "",
            self.window,
            self._finish,
            scheduler=self.scheduler,
            grace_delay=self.config.unload_grace_delay,
            on_still_open=self._clear_grace_timer,
        )
        if timer is not None:
            # A newer unloaded signal restarts the grace period.
            if self._grace_timer is not None:
                self._grace_timer.cancel()
            self._grace_timer = timer

    def _schedule_poll(self) -> None:
        if self.config.window_poll_interval <= 0:
            return
        self._poll_timer = self.scheduler.call_later(
            self.config.window_poll_interval, self._poll_window
        )

    def _poll_window(self) -> None:
        self._poll_timer = None
        if self.outcome.resolved:
            return
        if is_window_closed(self.window) and self._grace_timer is None:
            self._grace_timer = schedule_closed_check(
                self.window,
                self._finish,
                scheduler=self.scheduler,
                grace_delay=self.config.unload_grace_delay,
                on_still_open=self._clear_grace_timer,
            )
        self._schedule_poll()

    def cancel(self) -> None:
        """Stop waiting for the provider; settles with DIALOG_CLOSED_BY_USER."""
        if not self.outcome.resolved:
            self._finish(PayError(PayErrorCode.DIALOG_CLOSED_BY_USER))

    def _clear_grace_timer(self) -> None:
        self._grace_timer = None

    def _release(self) -> None:
        if self._listening:
            self.config.window_provider.remove_event_listener("message", self._on_message)
            self._listening = False
        for timer in (self._grace_timer, self._poll_timer):
            if timer is not None:
                timer.cancel()
        self._grace_timer = None
        self._poll_timer = None
        if self.managed:
            self.window.close()

    def _finish(self, error: BaseException | None) -> None:
        self._release()
        self.outcome.resolve(error)


class NativePayment:
    """A payment handed to the platform's own payment API."""

    def __init__(self, token: str, config: ConfigSnapshot, callback: OutcomeCallback) -> None:
        self.token = token
        self.config = config
        self.outcome: Outcome[None] = Outcome(callback, name="payment")
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self.config.native_pay.pay([self.token])
        )
        self._task.add_done_callback(self._on_done)
        logger.info("native_payment_started")

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _on_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            self.outcome.resolve(PayError(PayErrorCode.DIALOG_CLOSED_BY_USER))
            return
        error = task.exception()
        if error is not None:
            logger.warning("native_payment_failed", error=str(error))
        self.outcome.resolve(error)


PaymentChannel = WindowPayment | NativePayment


def process_payment(
    token: str,
    callback: OutcomeCallback,
    config: ConfigSnapshot,
    *,
    payment_window: Any = None,
    manage_payment_window: bool = False,
    scheduler: Scheduler | None = None,
) -> PaymentChannel | None:
    """
    Run a payment for a signed pay request.

    Uses the native payment API when configured, otherwise the given window.
    Without a ``scheduler`` the window timers run on the current event loop,
    so call it from a coroutine or pass one.

    Returns:
        The running payment, or None if it failed before starting
        (``callback`` has then already received MISSING_PAYMENT_WINDOW)
    """
    if config.native_pay is not None:
        native = NativePayment(token, config, callback)
        native.start()
        return native

    if payment_window is None or config.window_provider is None:
        logger.warning(
            "payment_window_missing",
            has_window=payment_window is not None,
            has_provider=config.window_provider is not None,
        )
        if manage_payment_window and payment_window is not None:
            payment_window.close()
        callback(PayError(PayErrorCode.MISSING_PAYMENT_WINDOW))
        return None

    payment = WindowPayment(
        token,
        config,
        payment_window,
        callback,
        managed=manage_payment_window,
        scheduler=scheduler or AsyncioScheduler(),
    )
    payment.start()
    return payment
