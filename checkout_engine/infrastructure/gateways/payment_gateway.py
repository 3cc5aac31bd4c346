# checkout_engine/infrastructure/gateways/payment_gateway.py

"""Payment gateway adapters.

`PaymentGateway` is the capability the checkout service depends on.
`SimulatedPaymentGateway` mirrors the storefront's local mock and is fully
deterministic.
"""

import asyncio
import hashlib
import itertools
import logging
from abc import ABC, abstractmethod
from decimal import Decimal

from checkout_engine.domain.exceptions import PaymentError, TransientGatewayError
from checkout_engine.domain.models import PaymentDetails, PaymentIntentStub
from checkout_engine.domain.timer import utc_now

logger = logging.getLogger(__name__)

REQUIRES_PAYMENT_METHOD = "requires_payment_method"
SUCCEEDED = "succeeded"

# Card numbers the simulated gateway treats specially, after the usual
# provider test cards.
DECLINED_CARD = "4000000000000002"
INSUFFICIENT_FUNDS_CARD = "4000000000009995"
PROCESSING_ERROR_CARD = "4000000000000119"


class PaymentGateway(ABC):
    """Creates and confirms payment intents with a payment provider."""

    is_simulated: bool = False

    @abstractmethod
    async def create_intent(
        self,
        session_id: str,
        amount: Decimal,
        currency: str,
    ) -> PaymentIntentStub:
        """Return a new intent in status requires_payment_method."""
        ...

    @abstractmethod
    async def confirm_intent(
        self,
        intent: PaymentIntentStub,
        payment_details: PaymentDetails | None = None,
    ) -> PaymentIntentStub:
        """
        Return the intent in status succeeded.

        Raises:
            PaymentError: The provider declined the charge.
            TransientGatewayError: The provider could not be reached.
        """
        ...


class SimulatedPaymentGateway(PaymentGateway):

    is_simulated = True

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._sequence = itertools.count(1)
        self._intents: dict[str, PaymentIntentStub] = {}

    async def create_intent(
        self,
        session_id: str,
        amount: Decimal,
        currency: str,
    ) -> PaymentIntentStub:
        await asyncio.sleep(self.latency)

        intent_id = f"pi_sim_{next(self._sequence):06d}"
        digest = hashlib.sha256(f"{intent_id}:{session_id}".encode("utf-8")).hexdigest()
        intent = PaymentIntentStub(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{digest[:24]}",
            amount=amount,
            currency=currency,
            status=REQUIRES_PAYMENT_METHOD,
            created_at=utc_now(),
        )
        self._intents[intent_id] = intent
        return intent

    async def confirm_intent(
        self,
        intent: PaymentIntentStub,
        payment_details: PaymentDetails | None = None,
    ) -> PaymentIntentStub:
        await asyncio.sleep(self.latency)

        known = self._intents.get(intent.id)
        if known is None:
            raise PaymentError("No such payment intent", code="resource_missing")
        if known.status == SUCCEEDED:
            return known

        card = payment_details.card_number if payment_details else None
        if card in (DECLINED_CARD, INSUFFICIENT_FUNDS_CARD, PROCESSING_ERROR_CARD):
            logger.info("Simulated failure for intent %s with card ending %s", intent.id, card[-4:])
        if card == DECLINED_CARD:
            raise PaymentError("Your card was declined.", code="card_declined")
        if card == INSUFFICIENT_FUNDS_CARD:
            raise PaymentError("Your card has insufficient funds.", code="insufficient_funds")
        if card == PROCESSING_ERROR_CARD:
            raise TransientGatewayError("An error occurred while processing your card.")

        confirmed = known.with_status(SUCCEEDED)
        self._intents[intent.id] = confirmed
        return confirmed
