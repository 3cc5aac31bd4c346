import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from checkout_engine.application.checkout_service import CheckoutService
from checkout_engine.domain.cart import Cart
from checkout_engine.domain.exceptions import (
    InvalidCartOperationError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentError,
    SessionExpiredError,
    StaleOperationError,
    ValidationError,
)
from checkout_engine.domain.models import BuyerInfo, CartItem, EventRef, OrderSummary, Ticket
from checkout_engine.domain.promo import apply_discount, evaluate_promo_code
from checkout_engine.domain.state_machine import CheckoutStep, CheckoutStepMachine
from checkout_engine.domain.timer import (
    ALMOST_EXPIRED_SECONDS,
    CancellationToken,
    ExpiryTimer,
    utc_now,
)
from checkout_engine.domain.validation import validate_buyer_info, validate_payment_details

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESTART_MESSAGE = "Your checkout session could not be found. Please start again."


class CheckoutFlow:
    """
    Drives one visitor through ticket selection, buyer info and payment.

    A single deadline, armed when tickets are first requested, is shared by
    every step. Each async step runs under the current CancellationToken;
    cancel, reset and expiry replace the token, so results that arrive
    afterwards are dropped instead of reviving the old session.
    """

    def __init__(
        self,
        service: CheckoutService,
        event: EventRef,
        session_ttl_seconds: int = 600,
        almost_expired_seconds: int = ALMOST_EXPIRED_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self.event = event
        self.session_ttl = timedelta(seconds=session_ttl_seconds)
        self.almost_expired_seconds = almost_expired_seconds
        self.clock = clock

        self.step = CheckoutStep.IDLE
        self.cart = Cart()
        self.discount = Decimal("0")
        self.promo_code: str | None = None
        self.total_amount = Decimal("0")
        self.session_id: str | None = None
        self.buyer_info: BuyerInfo | None = None
        self.payment_intent_id: str | None = None
        self.client_secret: str | None = None
        self.order: OrderSummary | None = None
        self.error: str | None = None
        self.timer: ExpiryTimer | None = None

        self._token = CancellationToken()
        self._busy = False
        self._cleanup_tasks: set[asyncio.Task] = set()

    # -----------------------------
    # Ticket selection
    # -----------------------------
    def request_tickets(self) -> None:
        if self.step in (CheckoutStep.COMPLETED, CheckoutStep.EXPIRED):
            self._reset("new booking")
            return
        self._move(CheckoutStep.TICKET_SELECTION)
        if self.timer is None or not self.timer.running:
            self._arm_timer()

    def add_to_cart(self, ticket: Ticket) -> CartItem:
        self._require_ticket_selection()
        return self.cart.add_to_cart(ticket)

    def change_quantity(self, ticket_id: str, new_quantity: int) -> CartItem | None:
        self._require_ticket_selection()
        return self.cart.change_quantity(ticket_id, new_quantity)

    def remove_from_cart(self, ticket_id: str) -> None:
        self._require_ticket_selection()
        self.cart.remove_from_cart(ticket_id)

    async def apply_promo_code(self, code: str) -> dict:
        """
        Before checkout the code is only evaluated locally and carried into
        the session later; once a session exists the store records it.
        """
        if self.session_id is None:
            evaluation = evaluate_promo_code(code)
            if evaluation.is_valid:
                self.discount = evaluation.discount
                self.promo_code = code
            subtotal = self.cart.total
            return {
                "isValid": evaluation.is_valid,
                "discount": evaluation.discount,
                "message": evaluation.message,
                "totalBeforeDiscount": subtotal,
                "totalAfterDiscount": apply_discount(subtotal, evaluation.discount),
            }

        subtotal = self.total_amount
        result = await self._run_step(
            "apply_promo_code",
            lambda: self.service.apply_promo_code(self.session_id, code),
        )
        if result is None:
            return {
                "isValid": False,
                "discount": Decimal("0"),
                "message": self.error or "",
                "totalBeforeDiscount": subtotal,
                "totalAfterDiscount": subtotal,
            }
        if result["isValid"]:
            self.discount = result["discount"]
            self.promo_code = code
            if self.step is CheckoutStep.PAYMENT_INFO:
                await self._create_intent()
        return result

    async def proceed_to_checkout(self) -> dict | None:
        self._require_ticket_selection()
        if self.cart.is_empty():
            logger.info("Proceed to checkout ignored: cart is empty")
            return None

        items = self.cart.items
        deadline = self.timer.deadline if self.timer else None

        handle = await self._run_step(
            "initialize_session",
            lambda: self.service.initialize_session(items, self.event, expires_at=deadline),
            on_stale=lambda stale: self.service.discard_session(stale["sessionId"]),
        )
        if handle is None:
            return None

        self.session_id = handle["sessionId"]
        self.total_amount = handle["totalAmount"]
        if self.promo_code:
            await self._run_step(
                "apply_promo_code",
                lambda: self.service.apply_promo_code(self.session_id, self.promo_code),
            )

        self._move(CheckoutStep.BUYER_INFO)
        return handle

    # -----------------------------
    # Buyer info / payment
    # -----------------------------
    async def submit_buyer_info(self, data: dict) -> bool:
        """
        Validates the form locally, records it on the session and opens the
        payment step with a fresh payment intent.

        Raises:
            ValidationError: The form has invalid fields; step unchanged.
        """
        self._require_step(CheckoutStep.BUYER_INFO)
        if self._busy:
            return False

        buyer_info = validate_buyer_info(data)
        self._busy = True
        try:
            validated = await self._run_step(
                "validate_buyer_info",
                lambda: self.service.validate_buyer_info(self.session_id, buyer_info),
            )
            if validated is None:
                return False
            self.buyer_info = buyer_info
            if not await self._create_intent():
                return False
        finally:
            self._busy = False

        self._move(CheckoutStep.PAYMENT_INFO)
        return True

    async def submit_payment(self, data: dict) -> OrderSummary | None:
        """
        Raises:
            ValidationError: Card fields failed validation.
            PaymentError: The gateway declined; cart and buyer info are kept.
        """
        self._require_step(CheckoutStep.PAYMENT_INFO)
        if self._busy:
            return None

        details = validate_payment_details(data, today=self.clock().date())
        self._busy = True
        try:
            order = await self._run_step(
                "confirm_payment_success",
                lambda: self.service.confirm_payment_success(
                    self.session_id, self.payment_intent_id, details
                ),
            )
        finally:
            self._busy = False

        if order is None:
            return None

        self.order = order
        session_id = self.session_id
        self._clear_sensitive_state()
        self.session_id = None
        self._stop_timer()
        self._move(CheckoutStep.COMPLETED)
        await self.service.discard_session(session_id)
        logger.info("Checkout completed with order %s", order.order_id)
        return order

    async def go_back(self) -> None:
        if self.step is CheckoutStep.PAYMENT_INFO:
            self._move(CheckoutStep.BUYER_INFO)
            return

        self._require_step(CheckoutStep.BUYER_INFO)
        # the cart may change again, so the session snapshot is rebuilt on the next checkout
        session_id = self.session_id
        self.session_id = None
        self.buyer_info = None
        self._move(CheckoutStep.TICKET_SELECTION)
        if session_id:
            await self.service.discard_session(session_id)

    # -----------------------------
    # Cancel / expiry
    # -----------------------------
    async def cancel_booking(self) -> None:
        session_id = self._reset("cancelled")
        if session_id:
            await self.service.discard_session(session_id)
        logger.info("Booking cancelled for event %s", self.event.id)

    async def expire(self) -> None:
        session_id = self._expire_locally()
        if session_id:
            await self.service.discard_session(session_id)

    def return_to_event(self) -> None:
        self._require_step(CheckoutStep.EXPIRED)
        self._reset("returned to event")

    def tick(self) -> bool:
        if self.timer is None:
            return False
        return self.timer.tick()

    def start_timer(self, interval: float = 1.0) -> asyncio.Task | None:
        if self.timer is None:
            return None
        return self.timer.start(interval)

    def snapshot(self) -> dict:
        timer = self.timer
        subtotal = self.cart.total
        return {
            "step": self.step.value,
            "sessionId": self.session_id,
            "cartItems": [item.to_dict() for item in self.cart.items],
            "itemCount": self.cart.item_count,
            "totalAmount": subtotal,
            "discount": self.discount,
            "totalAfterDiscount": apply_discount(subtotal, self.discount),
            "minutes": timer.minutes if timer else 0,
            "seconds": timer.seconds if timer else 0,
            "isAlmostExpired": timer.is_almost_expired if timer else False,
            "error": self.error,
        }

    # -----------------------------
    # Internals
    # -----------------------------
    def _on_deadline(self) -> None:
        session_id = self._expire_locally()
        if not session_id:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[Session: %s] No event loop; session lapses at its deadline", session_id)
            return
        task = loop.create_task(self.service.discard_session(session_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    def _expire_locally(self) -> str | None:
        if self.step in (CheckoutStep.EXPIRED, CheckoutStep.IDLE, CheckoutStep.COMPLETED):
            return None
        logger.info("Checkout for event %s expired at step %s", self.event.id, self.step.value)
        session_id = self._clear("expired")
        self._move(CheckoutStep.EXPIRED)
        return session_id

    def _reset(self, reason: str) -> str | None:
        session_id = self._clear(reason)
        self._move(CheckoutStep.TICKET_SELECTION)
        self._arm_timer()
        return session_id

    def _arm_timer(self) -> None:
        deadline = self.clock() + self.session_ttl
        self.timer = ExpiryTimer(
            deadline,
            self._on_deadline,
            clock=self.clock,
            almost_expired_seconds=self.almost_expired_seconds,
        )
        self.timer.tick()
        logger.info("Ticket hold for event %s runs until %s", self.event.id, deadline.isoformat())

    def _clear(self, reason: str) -> str | None:
        self._token.cancel(reason)
        self._token = CancellationToken()
        self._busy = False
        self._stop_timer()
        self.timer = None

        session_id = self.session_id
        self.session_id = None
        self.cart.clear()
        self.discount = Decimal("0")
        self.promo_code = None
        self.total_amount = Decimal("0")
        self.order = None
        self._clear_sensitive_state()
        return session_id

    def _clear_sensitive_state(self) -> None:
        self.buyer_info = None
        self.payment_intent_id = None
        self.client_secret = None
        self.error = None

    def _stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.stop()

    async def _create_intent(self) -> bool:
        intent = await self._run_step(
            "create_payment_intent",
            lambda: self.service.create_payment_intent(self.session_id),
        )
        if intent is None:
            return False
        self.payment_intent_id = intent["paymentIntentId"]
        self.client_secret = intent["clientSecret"]
        return True

    async def _run_step(
        self,
        name: str,
        call: Callable[[], Awaitable[T]],
        on_stale: Callable[[T], Awaitable[object]] | None = None,
    ) -> T | None:
        """
        Awaits a store operation under the current token.

        Returns None when the result is stale or the session expired or
        vanished; those cases have already been turned into state changes.
        A stale result is handed to `on_stale` so whatever it created in
        the store can be released.
        """
        token = self._token
        self.error = None
        try:
            result = await call()
            if token.cancelled:
                if on_stale is not None:
                    await on_stale(result)
                raise StaleOperationError(token.reason or "superseded")
            return result
        except StaleOperationError as exc:
            logger.warning("Discarding result of %s: flow was %s", name, exc)
            return None
        except SessionExpiredError:
            if token.cancelled:
                return None
            await self.expire()
            return None
        except NotFoundError:
            if token.cancelled:
                logger.warning("Discarding result of %s: flow was %s", name, token.reason)
                return None
            logger.error("Session vanished during %s; restarting checkout", name)
            self._reset("session lost")
            self.error = RESTART_MESSAGE
            return None
        except (PaymentError, ValidationError) as exc:
            if token.cancelled:
                return None
            self.error = str(exc)
            raise

    def _move(self, to_step: CheckoutStep) -> None:
        CheckoutStepMachine.validate_transition(self.step, to_step)
        self.step = to_step

    def _require_step(self, step: CheckoutStep) -> None:
        if self.step is not step:
            raise InvalidStateTransitionError(self.step.value, step.value)

    def _require_ticket_selection(self) -> None:
        if self.step is not CheckoutStep.TICKET_SELECTION:
            raise InvalidCartOperationError("The cart can only be changed during ticket selection")
