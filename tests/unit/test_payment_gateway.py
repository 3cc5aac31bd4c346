from decimal import Decimal

import pytest

from checkout_engine.domain.exceptions import PaymentError, TransientGatewayError
from checkout_engine.domain.models import PaymentDetails, PaymentIntentStub
from checkout_engine.infrastructure.gateways.payment_gateway import (
    DECLINED_CARD,
    INSUFFICIENT_FUNDS_CARD,
    PROCESSING_ERROR_CARD,
    SimulatedPaymentGateway,
)


def _card(number):
    return PaymentDetails("Jane Citizen", number, "12/30", "123", "2000", "visa")


@pytest.mark.asyncio
async def test_simulated_intent(gateway):
    intent = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")

    assert intent.id == "pi_sim_000001"
    assert intent.client_secret.startswith("pi_sim_000001_secret_")
    assert intent.status == "requires_payment_method"
    assert intent.amount == Decimal("39.00")


@pytest.mark.asyncio
async def test_simulated_confirm(gateway):
    intent = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")

    confirmed = await gateway.confirm_intent(intent, _card("4242424242424242"))

    assert confirmed.status == "succeeded"
    assert confirmed.id == intent.id
    assert await gateway.confirm_intent(intent) == confirmed


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "number, code",
    [
        (DECLINED_CARD, "card_declined"),
        (INSUFFICIENT_FUNDS_CARD, "insufficient_funds"),
    ],
)
async def test_simulated_declines(gateway, number, code):
    intent = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")

    with pytest.raises(PaymentError) as exc_info:
        await gateway.confirm_intent(intent, _card(number))

    assert exc_info.value.code == code


@pytest.mark.asyncio
async def test_simulated_processing_error_is_transient(gateway):
    intent = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")

    with pytest.raises(TransientGatewayError):
        await gateway.confirm_intent(intent, _card(PROCESSING_ERROR_CARD))


@pytest.mark.asyncio
async def test_simulated_unknown_intent(gateway):
    stranger = PaymentIntentStub("pi_other", "secret", Decimal("1.00"), "aud")

    with pytest.raises(PaymentError) as exc_info:
        await gateway.confirm_intent(stranger)

    assert exc_info.value.code == "resource_missing"


@pytest.mark.asyncio
async def test_intent_ids_are_sequential_per_gateway():
    gateway = SimulatedPaymentGateway()

    first = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")
    second = await gateway.create_intent("sess_1", Decimal("39.00"), "aud")

    assert (first.id, second.id) == ("pi_sim_000001", "pi_sim_000002")
    assert first.client_secret != second.client_secret
    assert gateway.is_simulated
