class CheckoutEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the checkout engine.
    """


class InvalidStateTransitionError(CheckoutEngineError):
    """
    Raised when an illegal session or checkout-step transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class NotFoundError(CheckoutEngineError):
    """Raised when a session id cannot be resolved in the store."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Session not found")


class SessionError(CheckoutEngineError):
    """Raised when a session cannot be initialized from the given input."""


class SessionExpiredError(CheckoutEngineError):
    """Raised when a mutation targets a session past its deadline."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Checkout session has expired")


class ValidationError(CheckoutEngineError):
    """
    Raised when buyer or payment fields fail schema rules.
    Carries one message per offending field.
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid fields: {fields}")


class PaymentError(CheckoutEngineError):
    """Raised when the payment gateway rejects or cannot process a charge."""

    def __init__(self, message: str, code: str = "payment_failed"):
        self.code = code
        self.message = message
        super().__init__(message)


class TransientGatewayError(PaymentError):
    """Raised for gateway failures that are safe to retry."""

    def __init__(self, message: str):
        super().__init__(message, code="gateway_unavailable")


class InvalidCartOperationError(CheckoutEngineError):
    """Raised when a cart mutation violates the cart invariants."""


class StaleOperationError(CheckoutEngineError):
    """Raised when an async step finishes after its flow was reset."""
