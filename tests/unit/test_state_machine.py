# tests/unit/test_state_machine.py

import pytest

from checkout_engine.domain.state_machine import (
    CheckoutStep,
    CheckoutStepMachine,
    SessionStateMachine,
    SessionStatus,
)
from checkout_engine.domain.exceptions import InvalidStateTransitionError


# ---------------------
# SESSION LIFECYCLE
# ---------------------

def test_session_happy_path():
    assert SessionStateMachine.can_transition(
        SessionStatus.INITIALIZED,
        SessionStatus.BUYER_INFO_VALIDATED,
    )

    assert SessionStateMachine.can_transition(
        SessionStatus.BUYER_INFO_VALIDATED,
        SessionStatus.PAYMENT_INTENT_CREATED,
    )

    assert SessionStateMachine.can_transition(
        SessionStatus.PAYMENT_INTENT_CREATED,
        SessionStatus.PAYMENT_SUCCEEDED,
    )


def test_buyer_info_can_be_resubmitted():
    assert SessionStateMachine.can_transition(
        SessionStatus.BUYER_INFO_VALIDATED,
        SessionStatus.BUYER_INFO_VALIDATED,
    )


def test_cannot_skip_buyer_info():
    with pytest.raises(InvalidStateTransitionError):
        SessionStateMachine.validate_transition(
            SessionStatus.INITIALIZED,
            SessionStatus.PAYMENT_INTENT_CREATED,
        )


def test_cannot_pay_without_intent():
    with pytest.raises(InvalidStateTransitionError):
        SessionStateMachine.validate_transition(
            SessionStatus.BUYER_INFO_VALIDATED,
            SessionStatus.PAYMENT_SUCCEEDED,
        )


@pytest.mark.parametrize(
    "status",
    [
        SessionStatus.INITIALIZED,
        SessionStatus.BUYER_INFO_VALIDATED,
        SessionStatus.PAYMENT_INTENT_CREATED,
    ],
)
def test_any_open_session_can_expire(status):
    assert SessionStateMachine.can_transition(status, SessionStatus.EXPIRED)


def test_terminal_state_expired():
    assert SessionStateMachine.is_terminal(SessionStatus.EXPIRED)

    with pytest.raises(InvalidStateTransitionError):
        SessionStateMachine.validate_transition(
            SessionStatus.EXPIRED,
            SessionStatus.BUYER_INFO_VALIDATED,
        )


def test_terminal_state_paid():
    assert SessionStateMachine.is_terminal(SessionStatus.PAYMENT_SUCCEEDED)

    with pytest.raises(InvalidStateTransitionError):
        SessionStateMachine.validate_transition(
            SessionStatus.PAYMENT_SUCCEEDED,
            SessionStatus.EXPIRED,
        )


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        SessionStateMachine.validate_transition(
            "initialized",  # invalid type
            SessionStatus.EXPIRED,
        )


# ---------------------
# CHECKOUT STEPS
# ---------------------

def test_step_forward_path():
    path = [
        CheckoutStep.IDLE,
        CheckoutStep.TICKET_SELECTION,
        CheckoutStep.BUYER_INFO,
        CheckoutStep.PAYMENT_INFO,
        CheckoutStep.COMPLETED,
    ]
    for current, following in zip(path, path[1:]):
        CheckoutStepMachine.validate_transition(current, following)


def test_step_back_navigation():
    assert CheckoutStepMachine.can_transition(
        CheckoutStep.PAYMENT_INFO,
        CheckoutStep.BUYER_INFO,
    )
    assert CheckoutStepMachine.can_transition(
        CheckoutStep.BUYER_INFO,
        CheckoutStep.TICKET_SELECTION,
    )


def test_cannot_jump_to_payment():
    with pytest.raises(InvalidStateTransitionError):
        CheckoutStepMachine.validate_transition(
            CheckoutStep.TICKET_SELECTION,
            CheckoutStep.PAYMENT_INFO,
        )


def test_expired_only_leads_back_to_tickets():
    assert CheckoutStepMachine.get_allowed_transitions(CheckoutStep.EXPIRED) == {
        CheckoutStep.TICKET_SELECTION
    }


def test_steps_are_not_session_statuses():
    with pytest.raises(TypeError):
        CheckoutStepMachine.can_transition(
            SessionStatus.INITIALIZED,
            CheckoutStep.BUYER_INFO,
        )
