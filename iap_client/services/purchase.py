"""
Purchase Session Manager.

Drives one purchase from start to a single verified outcome:

    STARTING -> AWAITING_TOKEN -> WINDOW_OPEN -> AWAITING_MESSAGE
             -> VERIFYING_RECEIPT -> SETTLED

Every exit path (adapter error, unusable pay request, provider failure,
user abandonment, task cancellation, receipt rejection, success) releases the window listener
and watchdog, closes a managed window and invokes the outcome callback
exactly once.
"""

import asyncio
from typing import Any

from opentelemetry.trace import Span
from structlog import get_logger

from iap_client.config import ConfigurationError
from iap_client.exceptions import PayError, PayErrorCode
from iap_client.models.domain import ConfigSnapshot, Product, PurchaseState, TransactionInfo
from iap_client.observability.logging import log_context
from iap_client.observability.metrics import metrics
from iap_client.observability.tracing import record_state_change, set_span_error, trace_operation
from iap_client.services.outcome import Outcome, OutcomeCallback
from iap_client.services.pay import PaymentChannel, process_payment
from iap_client.services.receipt_verifier import verify_receipt
from iap_client.services.scheduler import AsyncioScheduler, Scheduler
from iap_client.services.window import is_window_closed, open_payment_window

logger = get_logger(__name__)


class PurchaseSession:
    """
    State of one ``purchase()`` call.

    Owns the payment window (when managed) and the payment channel for its
    lifetime. Await ``wait()`` for the verified Product, or pass a callback.
    """

    def __init__(
        self,
        product_id: str,
        config: ConfigSnapshot,
        callback: OutcomeCallback | None,
        *,
        scheduler: Scheduler,
        payment_window: Any = None,
        manage_payment_window: bool | None = None,
    ) -> None:
        self.product = Product(product_id)
        self.config = config
        self.scheduler = scheduler
        self.state = PurchaseState.STARTING
        self.outcome: Outcome[Product] = Outcome(callback, name="purchase")
        self.payment_window = payment_window
        self.is_managed_window = payment_window is None or manage_payment_window is True
        self.transaction: TransactionInfo | None = None
        self.channel: PaymentChannel | None = None
        self._started_at = scheduler.time()
        self._pay_result: asyncio.Future[BaseException | None] | None = None
        self.task: asyncio.Task[None] | None = None
        self._span: Span | None = None

    @property
    def product_id(self) -> str:
        return self.product.product_id

    @property
    def settled(self) -> bool:
        return self.state is PurchaseState.SETTLED

    async def wait(self) -> Product | None:
        """Wait for the session; returns the purchased product or raises its error."""
        return await self.outcome.wait()

    async def run(self) -> None:
        """
        Run the session to settlement.

        Cancelling the task counts as the user abandoning the purchase: the
        payment is released and the session settles with DIALOG_CLOSED_BY_USER
        before the cancellation propagates.
        """
        metrics.purchase_sessions_in_progress.inc()
        with log_context(product_id=self.product_id):
            with trace_operation("purchase_session", product_id=self.product_id) as span:
                self._span = span
                try:
                    error = await self._run()
                except asyncio.CancelledError:
                    self._abandon()
                    raise
                if error is not None:
                    set_span_error(span, error)

    async def _run(self) -> BaseException | None:
        logger.info("purchase_started", managed_window=self.is_managed_window)

        native = self.config.native_pay is not None
        if native:
            if self.payment_window is not None:
                logger.info(
                    "payment_window_unused_with_native_pay", managed=self.is_managed_window
                )
                self._close_managed_window()
            self.is_managed_window = False
            self.payment_window = None
        elif self.payment_window is None:
            if self.config.window_provider is None:
                return self._settle(PayError(PayErrorCode.MISSING_PAYMENT_WINDOW))
            self.payment_window = open_payment_window(
                self.config.window_provider,
                self.config.pay_window_width,
                self.config.pay_window_height,
            )

        self._set_state(PurchaseState.AWAITING_TOKEN)
        try:
            self.transaction = await self.config.adapter.start_transaction(self.product_id)
        except Exception as exc:
            logger.warning("purchase_transaction_failed", error=str(exc))
            return self._settle(exc)

        self._set_state(PurchaseState.WINDOW_OPEN)
        self._pay_result = asyncio.get_running_loop().create_future()
        self.channel = process_payment(
            self.transaction.token,
            self._on_pay_done,
            self.config,
            payment_window=self.payment_window,
            manage_payment_window=self.is_managed_window,
            scheduler=self.scheduler,
        )
        if not self._pay_result.done():
            self._set_state(PurchaseState.AWAITING_MESSAGE)

        pay_error = await self._pay_result
        if pay_error is not None:
            return self._settle(pay_error)

        self._set_state(PurchaseState.VERIFYING_RECEIPT)
        try:
            receipt = await self.config.adapter.fetch_receipt(self.transaction)
            verify_receipt(receipt, self.product, self.config)
        except Exception as exc:
            logger.warning("purchase_receipt_failed", error=str(exc))
            return self._settle(exc)

        return self._settle(None)

    def _set_state(self, state: PurchaseState) -> None:
        self.state = state
        if self._span is not None:
            record_state_change(self._span, state.value)

    def _on_pay_done(self, error: BaseException | None) -> None:
        if self._pay_result is not None and not self._pay_result.done():
            self._pay_result.set_result(error)

    def _close_managed_window(self) -> None:
        if not self.is_managed_window or self.payment_window is None:
            return
        # The payment channel may already have closed it.
        if not is_window_closed(self.payment_window):
            self.payment_window.close()

    def _abandon(self) -> None:
        logger.info("purchase_session_cancelled", state=self.state.value)
        if self.channel is not None:
            self.channel.cancel()
        if not self.outcome.resolved:
            self._settle(PayError(PayErrorCode.DIALOG_CLOSED_BY_USER))

    def _settle(self, error: BaseException | None) -> BaseException | None:
        self._close_managed_window()
        self._set_state(PurchaseState.SETTLED)
        duration = self.scheduler.time() - self._started_at
        outcome = "ok" if error is None else type(error).__name__
        metrics.record_purchase(outcome, duration)
        metrics.purchase_sessions_in_progress.dec()
        logger.info(
            "purchase_session_settled",
            product_id=self.product_id,
            outcome=outcome,
            error_code=getattr(error, "code", None),
        )
        self.outcome.resolve(error, None if error is not None else self.product)
        return error


class PurchaseSessionManager:
    """
    Entry point for purchases.

    Usage:
        manager = PurchaseSessionManager(config)

        session = manager.purchase("some-uuid", on_done)
        product = await session.wait()
    """

    def __init__(self, config: ConfigSnapshot, scheduler: Scheduler | None = None) -> None:
        if config.adapter is None:
            raise ConfigurationError("A marketplace adapter is required for purchases")
        self.config = config
        self.scheduler = scheduler or AsyncioScheduler()

    def purchase(
        self,
        product_id: str,
        callback: OutcomeCallback | None = None,
        *,
        payment_window: Any = None,
        manage_payment_window: bool | None = None,
    ) -> PurchaseSession:
        """
        Start buying a product.

        Returns immediately; the session runs on the current event loop and
        reports through ``callback`` and ``session.wait()``.

        Args:
            product_id: The product to buy
            callback: Called once with None on success or the error
            payment_window: A window the caller already opened
            manage_payment_window: Let the session resize and close
                ``payment_window``; windows the session opens itself are
                always managed
        """
        session = PurchaseSession(
            product_id,
            self.config,
            callback,
            scheduler=self.scheduler,
            payment_window=payment_window,
            manage_payment_window=manage_payment_window,
        )
        session.task = asyncio.get_running_loop().create_task(session.run())
        return session

    def process_payment(
        self,
        token: str,
        callback: OutcomeCallback,
        *,
        payment_window: Any = None,
        manage_payment_window: bool = False,
    ) -> PaymentChannel | None:
        """Run only the payment step for a pay request obtained elsewhere."""
        return process_payment(
            token,
            callback,
            self.config,
            payment_window=payment_window,
            manage_payment_window=manage_payment_window,
            scheduler=self.scheduler,
        )
