import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable, Iterable, TypeVar
from uuid import uuid4

from checkout_engine.domain.cart import compute_total
from checkout_engine.domain.exceptions import (
    NotFoundError,
    PaymentError,
    SessionError,
    SessionExpiredError,
    TransientGatewayError,
)
from checkout_engine.domain.models import (
    BuyerInfo,
    CartItem,
    CheckoutSession,
    EventRef,
    OrderLine,
    OrderSummary,
    PaymentDetails,
)
from checkout_engine.domain.promo import apply_discount, evaluate_promo_code
from checkout_engine.domain.state_machine import SessionStateMachine, SessionStatus
from checkout_engine.domain.timer import utc_now
from checkout_engine.infrastructure.gateways.payment_gateway import PaymentGateway
from checkout_engine.infrastructure.repositories.session_repository import SessionRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SESSION_TTL_SECONDS = 600


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:13]}"


class CheckoutService:
    """
    Session store for checkout attempts.

    Every operation is a read-modify-write against the repository,
    serialized per session id. Gateway calls are retried on transient
    failures up to `max_gateway_retries` attempts.
    """

    def __init__(
        self,
        repository: SessionRepository,
        gateway: PaymentGateway,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        latency: float = 0.0,
        max_gateway_retries: int = 3,
        gateway_retry_delay: float = 0.5,
        currency: str = "usd",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.gateway = gateway
        self.session_ttl = timedelta(seconds=session_ttl_seconds)
        self.latency = latency
        self.max_gateway_retries = max(1, max_gateway_retries)
        self.gateway_retry_delay = gateway_retry_delay
        self.currency = currency
        self.clock = clock
        # session id -> (lock, number of operations holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    async def initialize_session(
        self,
        cart_items: Iterable[CartItem],
        event: EventRef | None,
        expires_at: datetime | None = None,
    ) -> dict:
        """
        Opens a session for the cart. `expires_at` lets the caller share an
        already running deadline; otherwise the session gets a fresh one.

        Raises:
            SessionError: If the cart is empty or the event is missing.
        """
        items = list(cart_items)
        if not items:
            raise SessionError("Cannot start checkout with an empty cart")
        if event is None or not event.id:
            raise SessionError("Cannot start checkout without an event")

        await self._simulate_latency()

        now = self.clock()
        session = CheckoutSession(
            id=_new_id("sess"),
            event_id=event.id,
            cart_items=items,
            total_amount=compute_total(items),
            currency=items[0].ticket.currency.lower() or self.currency,
            created_at=now,
            expires_at=expires_at or now + self.session_ttl,
        )
        self.repository.put(session)
        logger.info(
            "[Session: %s] Initialized for event %s: %s tickets, total %s",
            session.id,
            event.id,
            sum(item.quantity for item in items),
            session.total_amount,
        )

        return {
            "sessionId": session.id,
            "expiryTime": session.expires_at.isoformat(),
            "totalAmount": session.total_amount,
        }

    async def validate_buyer_info(self, session_id: str, buyer_info: BuyerInfo) -> dict:
        await self._simulate_latency()

        async with self._session_lock(session_id):
            session = self._load_live(session_id)
            self._transition(session, SessionStatus.BUYER_INFO_VALIDATED)
            session.buyer_info = buyer_info
            self.repository.put(session)

        logger.info("[Session: %s] Buyer info validated", session_id)
        return {
            "success": True,
            "message": "Buyer information validated successfully",
            "sessionId": session_id,
        }

    async def create_payment_intent(self, session_id: str) -> dict:
        await self._simulate_latency()

        async with self._session_lock(session_id):
            session = self._load_live(session_id)
            SessionStateMachine.validate_transition(
                session.status, SessionStatus.PAYMENT_INTENT_CREATED
            )
            amount = apply_discount(session.total_amount, session.discount)

            intent = await self._with_retries(
                "create_intent",
                session_id,
                lambda: self.gateway.create_intent(session_id, amount, session.currency),
            )

            self._transition(session, SessionStatus.PAYMENT_INTENT_CREATED)
            session.payment_intent = intent
            self.repository.put(session)

        logger.info("[Session: %s] Payment intent %s created for %s", session_id, intent.id, amount)
        return {
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
            "isSimulated": self.gateway.is_simulated,
            "amount": intent.amount,
            "currency": intent.currency,
        }

    async def confirm_payment_success(
        self,
        session_id: str,
        payment_intent_id: str,
        payment_details: PaymentDetails | None = None,
    ) -> OrderSummary:
        """
        Confirms the session's intent with the gateway and closes the sale.
        Repeating the call for an already paid intent returns the same order.

        Raises:
            NotFoundError: Unknown session id.
            SessionExpiredError: The deadline passed before confirmation.
            PaymentError: Intent mismatch or the gateway declined the charge.
        """
        await self._simulate_latency()

        async with self._session_lock(session_id):
            session = self._load(session_id)
            intent = session.payment_intent
            if intent is None or intent.id != payment_intent_id:
                raise PaymentError(
                    "Payment intent does not match this session",
                    code="intent_mismatch",
                )
            if session.status is SessionStatus.PAYMENT_SUCCEEDED:
                return self._order_summary(session)

            self._ensure_live(session)
            SessionStateMachine.validate_transition(
                session.status, SessionStatus.PAYMENT_SUCCEEDED
            )
            if payment_details is not None:
                logger.info(
                    "[Session: %s] Charging %s card ending %s",
                    session_id,
                    payment_details.card_brand,
                    payment_details.last4,
                )

            confirmed = await self._with_retries(
                "confirm_intent",
                session_id,
                lambda: self.gateway.confirm_intent(intent, payment_details),
            )

            self._transition(session, SessionStatus.PAYMENT_SUCCEEDED)
            session.payment_intent = confirmed
            session.order_id = _new_id("order")
            self.repository.put(session)

        logger.info("[Session: %s] Payment succeeded, order %s", session_id, session.order_id)
        return self._order_summary(session)

    async def apply_promo_code(self, session_id: str, code: str) -> dict:
        await self._simulate_latency()

        evaluation = evaluate_promo_code(code)

        async with self._session_lock(session_id):
            session = self._load_live(session_id)
            if session.status is SessionStatus.PAYMENT_SUCCEEDED:
                raise SessionError("Promo codes cannot be applied after payment")

            if evaluation.is_valid:
                session.discount = evaluation.discount
                if session.payment_intent is not None:
                    # the intent was created for the old amount
                    self._transition(session, SessionStatus.BUYER_INFO_VALIDATED)
                    session.payment_intent = None
                self.repository.put(session)
                logger.info("[Session: %s] Promo code applied: %s", session_id, evaluation.discount)
            else:
                logger.info("[Session: %s] Promo code rejected", session_id)

        discount = evaluation.discount
        return {
            "isValid": evaluation.is_valid,
            "discount": discount,
            "message": evaluation.message,
            "totalBeforeDiscount": session.total_amount,
            "totalAfterDiscount": apply_discount(session.total_amount, discount),
        }

    async def get_session_status(self, session_id: str) -> dict:
        await self._simulate_latency()

        async with self._session_lock(session_id):
            session = self._load(session_id)
            now = self.clock()
            time_remaining = session.time_remaining(now)
            is_expired = time_remaining <= 0

            if is_expired and not SessionStateMachine.is_terminal(session.status):
                self._expire(session)

        return {
            "status": session.status.value,
            "timeRemaining": time_remaining,
            "isExpired": is_expired,
            "expiryTime": session.expires_at.isoformat(),
        }

    async def discard_session(self, session_id: str) -> bool:
        async with self._session_lock(session_id):
            removed = self.repository.delete(session_id)
        if removed:
            logger.info("[Session: %s] Discarded", session_id)
        return removed

    # -----------------------------
    # Internals
    # -----------------------------
    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """
        Serializes operations on one session. The entry is dropped once the
        last holder leaves, so unknown and abandoned ids keep no lock alive.
        """
        lock, users = self._locks.get(session_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[session_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[session_id]
            if users <= 1:
                del self._locks[session_id]
            else:
                self._locks[session_id] = (lock, users - 1)

    async def _simulate_latency(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _load(self, session_id: str) -> CheckoutSession:
        session = self.repository.get(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    def _load_live(self, session_id: str) -> CheckoutSession:
        session = self._load(session_id)
        self._ensure_live(session)
        return session

    def _ensure_live(self, session: CheckoutSession) -> None:
        if session.status is SessionStatus.EXPIRED:
            raise SessionExpiredError(session.id)
        past_deadline = session.is_past_deadline(self.clock())
        if past_deadline and not SessionStateMachine.is_terminal(session.status):
            self._expire(session)
            raise SessionExpiredError(session.id)

    def _expire(self, session: CheckoutSession) -> None:
        self._transition(session, SessionStatus.EXPIRED)
        self.repository.put(session)
        logger.info("[Session: %s] Expired", session.id)

    @staticmethod
    def _transition(session: CheckoutSession, to_status: SessionStatus) -> None:
        SessionStateMachine.validate_transition(session.status, to_status)
        session.status = to_status

    async def _with_retries(
        self,
        operation: str,
        session_id: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        attempt = 1
        while True:
            try:
                return await call()
            except TransientGatewayError:
                if attempt >= self.max_gateway_retries:
                    logger.error(
                        "[Session: %s] %s failed after %s attempts",
                        session_id,
                        operation,
                        attempt,
                    )
                    raise
                logger.warning(
                    "[Session: %s] %s failed (attempt %s/%s). Retrying in %.1f seconds...",
                    session_id,
                    operation,
                    attempt,
                    self.max_gateway_retries,
                    self.gateway_retry_delay,
                )
                await asyncio.sleep(self.gateway_retry_delay)
                attempt += 1

    @staticmethod
    def _order_summary(session: CheckoutSession) -> OrderSummary:
        return OrderSummary(
            order_id=session.order_id,
            tickets=tuple(
                OrderLine(
                    ticket_id=item.ticket.id,
                    quantity=item.quantity,
                    price=item.ticket.price,
                    name=item.ticket.name,
                )
                for item in session.cart_items
            ),
            total_amount=session.total_amount,
            discount=session.discount,
            buyer_info=session.buyer_info,
            payment_intent_id=session.payment_intent.id if session.payment_intent else None,
        )
