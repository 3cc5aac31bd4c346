import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from checkout_engine import config
from checkout_engine.api.schemas.schemas import (
    ApplyPromoRequest,
    ApplyPromoResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreateIntentRequest,
    CreateIntentResponse,
    InitializeSessionRequest,
    InitializeSessionResponse,
    SessionStatusResponse,
    TicketResponse,
    ValidateBuyerRequest,
    ValidateBuyerResponse,
    ValidatePhoneRequest,
    ValidatePhoneResponse,
)
from checkout_engine.application.checkout_service import CheckoutService
from checkout_engine.domain.cart import Cart
from checkout_engine.domain.exceptions import (
    CheckoutEngineError,
    InvalidCartOperationError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentError,
    SessionError,
    SessionExpiredError,
    TransientGatewayError,
    ValidationError,
)
from checkout_engine.domain.timer import utc_now
from checkout_engine.domain.validation import (
    format_phone,
    validate_buyer_info,
    validate_payment_details,
)
from checkout_engine.infrastructure.db.session import SessionLocal
from checkout_engine.infrastructure.gateways.payment_gateway import SimulatedPaymentGateway
from checkout_engine.infrastructure.repositories.catalog_repository import CatalogRepository
from checkout_engine.infrastructure.repositories.session_repository import (
    build_session_repository,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache
def get_checkout_service() -> CheckoutService:
    return CheckoutService(
        repository=build_session_repository(config.SESSION_STORE, config.SESSION_STORE_PATH),
        gateway=SimulatedPaymentGateway(latency=config.SIMULATED_LATENCY_SECONDS),
        session_ttl_seconds=config.CHECKOUT_SESSION_TTL_SECONDS,
        latency=config.SIMULATED_LATENCY_SECONDS,
        max_gateway_retries=config.GATEWAY_MAX_RETRIES,
        gateway_retry_delay=config.GATEWAY_RETRY_DELAY,
        currency=config.PAYMENT_CURRENCY,
    )


def _http_error(exc: CheckoutEngineError) -> HTTPException:
    # order matters: TransientGatewayError is a PaymentError
    if isinstance(exc, SessionExpiredError):
        return HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422,
            detail={"message": str(exc), "errors": exc.errors},
        )
    if isinstance(exc, TransientGatewayError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": exc.code, "message": exc.message},
        )
    if isinstance(exc, PaymentError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"code": exc.code, "message": exc.message},
        )
    if isinstance(exc, InvalidStateTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (SessionError, InvalidCartOperationError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    logger.exception("Unhandled checkout error")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Something went wrong. Please try again.",
    )


@router.get("/health")
def health():
    return {"message": "Checkout Session Engine is running"}


@router.get("/events/{event_id}/tickets", response_model=list[TicketResponse])
def list_event_tickets(
    event_id: str,
    db: Session = Depends(get_db),
):
    catalog = CatalogRepository(db)
    if catalog.get_event(event_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )

    return [
        TicketResponse(
            id=ticket.id,
            name=ticket.name,
            description=ticket.description,
            price=ticket.price,
            currency=ticket.currency,
            available=ticket.available,
        )
        for ticket in catalog.list_tickets(event_id)
    ]


@router.post("/api/validate-phone", response_model=ValidatePhoneResponse)
def validate_phone(request: ValidatePhoneRequest):
    formatted = format_phone(request.phone, request.country_code)
    return ValidatePhoneResponse(is_valid=formatted is not None, formatted=formatted)


@router.post("/api/payment/initialize", response_model=InitializeSessionResponse)
async def initialize_session(
    request: InitializeSessionRequest,
    db: Session = Depends(get_db),
    service: CheckoutService = Depends(get_checkout_service),
):
    catalog = CatalogRepository(db)
    event = catalog.get_event(request.event_id)
    tickets = catalog.get_tickets_by_id(
        request.event_id,
        [item.ticket_id for item in request.cart_items],
    )

    cart = Cart()
    try:
        for item in request.cart_items:
            ticket = tickets.get(item.ticket_id)
            if ticket is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Ticket not found: {item.ticket_id}",
                )
            cart.add_to_cart(ticket)
            cart.change_quantity(ticket.id, item.quantity)

        handle = await service.initialize_session(cart.items, event)
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return InitializeSessionResponse(
        session_id=handle["sessionId"],
        expiry_time=handle["expiryTime"],
        total_amount=handle["totalAmount"],
    )


@router.post("/api/payment/validate-buyer", response_model=ValidateBuyerResponse)
async def validate_buyer(
    request: ValidateBuyerRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    try:
        buyer_info = validate_buyer_info(request.buyer_info)
        result = await service.validate_buyer_info(request.session_id, buyer_info)
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return ValidateBuyerResponse(
        success=result["success"],
        message=result["message"],
        session_id=result["sessionId"],
    )


@router.post("/api/payment/create-intent", response_model=CreateIntentResponse)
async def create_intent(
    request: CreateIntentRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    try:
        intent = await service.create_payment_intent(request.session_id)
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return CreateIntentResponse(
        client_secret=intent["clientSecret"],
        payment_intent_id=intent["paymentIntentId"],
        is_simulated=intent["isSimulated"],
        amount=intent["amount"],
        currency=intent["currency"],
    )


@router.post("/api/payment/confirm", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    try:
        details = None
        if request.payment_details is not None:
            details = validate_payment_details(request.payment_details, today=utc_now().date())
        order = await service.confirm_payment_success(
            request.session_id,
            request.payment_intent_id,
            details,
        )
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return ConfirmPaymentResponse.model_validate(order.to_dict())


@router.post("/api/payment/apply-promo", response_model=ApplyPromoResponse)
async def apply_promo(
    request: ApplyPromoRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    try:
        result = await service.apply_promo_code(request.session_id, request.promo_code)
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return ApplyPromoResponse.model_validate(result)


@router.get("/api/payment/session-status/{session_id}", response_model=SessionStatusResponse)
async def session_status(
    session_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    try:
        result = await service.get_session_status(session_id)
    except CheckoutEngineError as exc:
        raise _http_error(exc) from exc

    return SessionStatusResponse.model_validate(result)


@router.delete("/api/payment/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_session(
    session_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    if not await service.discard_session(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
