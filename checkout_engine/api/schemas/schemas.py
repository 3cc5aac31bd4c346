from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CartItemRequest(CamelModel):
    ticket_id: str = Field(alias="ticketId")
    quantity: int = Field(gt=0)


class InitializeSessionRequest(CamelModel):
    event_id: str = Field(alias="eventId")
    cart_items: list[CartItemRequest] = Field(alias="cartItems")


class InitializeSessionResponse(CamelModel):
    session_id: str = Field(alias="sessionId")
    expiry_time: str = Field(alias="expiryTime")
    total_amount: Decimal = Field(alias="totalAmount")


class ValidateBuyerRequest(CamelModel):
    session_id: str = Field(alias="sessionId")
    buyer_info: dict = Field(alias="buyerInfo")


class ValidateBuyerResponse(CamelModel):
    success: bool
    message: str
    session_id: str = Field(alias="sessionId")


class CreateIntentRequest(CamelModel):
    session_id: str = Field(alias="sessionId")


class CreateIntentResponse(CamelModel):
    client_secret: str = Field(alias="clientSecret")
    payment_intent_id: str = Field(alias="paymentIntentId")
    is_simulated: bool = Field(alias="isSimulated")
    amount: Decimal
    currency: str


class ConfirmPaymentRequest(CamelModel):
    session_id: str = Field(alias="sessionId")
    payment_intent_id: str = Field(alias="paymentIntentId")
    payment_details: dict | None = Field(default=None, alias="paymentDetails")


class OrderLineResponse(CamelModel):
    ticket_id: str = Field(alias="ticketId")
    quantity: int
    price: Decimal
    name: str


class ConfirmPaymentResponse(CamelModel):
    success: bool = True
    message: str = "Payment processed successfully"
    order_id: str = Field(alias="orderId")
    tickets: list[OrderLineResponse]
    total_amount: Decimal = Field(alias="totalAmount")
    discount: Decimal
    buyer_info: dict | None = Field(default=None, alias="buyerInfo")
    payment_intent_id: str | None = Field(default=None, alias="paymentIntentId")


class ApplyPromoRequest(CamelModel):
    session_id: str = Field(alias="sessionId")
    promo_code: str = Field(alias="promoCode")


class ApplyPromoResponse(CamelModel):
    is_valid: bool = Field(alias="isValid")
    discount: Decimal
    message: str
    total_before_discount: Decimal = Field(alias="totalBeforeDiscount")
    total_after_discount: Decimal = Field(alias="totalAfterDiscount")


class SessionStatusResponse(CamelModel):
    status: str
    time_remaining: float = Field(alias="timeRemaining")
    is_expired: bool = Field(alias="isExpired")
    expiry_time: str = Field(alias="expiryTime")


class ValidatePhoneRequest(CamelModel):
    phone: str
    country_code: str | None = Field(default=None, alias="countryCode")


class ValidatePhoneResponse(CamelModel):
    success: bool = True
    is_valid: bool = Field(alias="isValid")
    formatted: str | None = None


class TicketResponse(CamelModel):
    id: str
    name: str
    description: str
    price: Decimal
    currency: str
    available: int
