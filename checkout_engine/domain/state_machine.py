# checkout_engine/domain/state_machine.py

from enum import Enum
from typing import ClassVar, Dict, Set

from checkout_engine.domain.exceptions import InvalidStateTransitionError


class SessionStatus(str, Enum):
    INITIALIZED = "initialized"
    BUYER_INFO_VALIDATED = "buyer_info_validated"
    PAYMENT_INTENT_CREATED = "payment_intent_created"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    EXPIRED = "expired"


class CheckoutStep(str, Enum):
    IDLE = "idle"
    TICKET_SELECTION = "ticketSelection"
    BUYER_INFO = "buyerInfo"
    PAYMENT_INFO = "paymentInfo"
    COMPLETED = "completed"
    EXPIRED = "expired"


class _TransitionTable:
    """
    Shared lookup logic for the two lifecycle controllers.
    Subclasses declare the enum they accept and the legal transitions.
    """

    _STATE_TYPE: ClassVar[type[Enum]]
    _ALLOWED_TRANSITIONS: ClassVar[Dict[Enum, Set[Enum]]]

    @classmethod
    def can_transition(cls, from_state, to_state) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_state(from_state)
        cls._ensure_valid_state(to_state)

        return to_state in cls._ALLOWED_TRANSITIONS.get(from_state, set())

    @classmethod
    def validate_transition(cls, from_state, to_state) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_state, to_state):
            raise InvalidStateTransitionError(
                from_state=from_state.value,
                to_state=to_state.value,
            )

    @classmethod
    def is_terminal(cls, state) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_state(state)
        return len(cls._ALLOWED_TRANSITIONS.get(state, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, state) -> Set[Enum]:
        cls._ensure_valid_state(state)
        return cls._ALLOWED_TRANSITIONS.get(state, set())

    @classmethod
    def _ensure_valid_state(cls, state) -> None:
        if not isinstance(state, cls._STATE_TYPE):
            raise TypeError(
                f"Expected {cls._STATE_TYPE.__name__}, got {type(state)}"
            )


class SessionStateMachine(_TransitionTable):
    """
    Lifecycle controller for persisted checkout sessions.
    Buyer info may be re-submitted after stepping back from payment,
    and a new intent may replace one that was never confirmed.
    """

    _STATE_TYPE = SessionStatus
    _ALLOWED_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
        SessionStatus.INITIALIZED: {
            SessionStatus.BUYER_INFO_VALIDATED,
            SessionStatus.EXPIRED,
        },
        SessionStatus.BUYER_INFO_VALIDATED: {
            SessionStatus.BUYER_INFO_VALIDATED,
            SessionStatus.PAYMENT_INTENT_CREATED,
            SessionStatus.EXPIRED,
        },
        SessionStatus.PAYMENT_INTENT_CREATED: {
            SessionStatus.BUYER_INFO_VALIDATED,
            SessionStatus.PAYMENT_INTENT_CREATED,
            SessionStatus.PAYMENT_SUCCEEDED,
            SessionStatus.EXPIRED,
        },
        SessionStatus.PAYMENT_SUCCEEDED: set(),
        SessionStatus.EXPIRED: set(),
    }


class CheckoutStepMachine(_TransitionTable):
    """
    Controller for the active checkout screen.
    Cancel resets any step to ticket selection; expiry can interrupt any
    active step and only "return to event" leaves the expired state.
    """

    _STATE_TYPE = CheckoutStep
    _ALLOWED_TRANSITIONS: Dict[CheckoutStep, Set[CheckoutStep]] = {
        CheckoutStep.IDLE: {
            CheckoutStep.TICKET_SELECTION,
        },
        CheckoutStep.TICKET_SELECTION: {
            CheckoutStep.TICKET_SELECTION,
            CheckoutStep.BUYER_INFO,
            CheckoutStep.EXPIRED,
        },
        CheckoutStep.BUYER_INFO: {
            CheckoutStep.TICKET_SELECTION,
            CheckoutStep.PAYMENT_INFO,
            CheckoutStep.EXPIRED,
        },
        CheckoutStep.PAYMENT_INFO: {
            CheckoutStep.BUYER_INFO,
            CheckoutStep.TICKET_SELECTION,
            CheckoutStep.COMPLETED,
            CheckoutStep.EXPIRED,
        },
        CheckoutStep.COMPLETED: {
            CheckoutStep.TICKET_SELECTION,
        },
        CheckoutStep.EXPIRED: {
            CheckoutStep.TICKET_SELECTION,
        },
    }
