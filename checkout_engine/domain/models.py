"""Domain records for the checkout flow.

Plain dataclasses with no persistence concerns. Each record converts to and
from the JSON layout used by the session store (camelCase keys, Decimal as
string, datetimes as ISO-8601).
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from checkout_engine.domain.state_machine import SessionStatus


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Ticket:
    """Catalog entry for a purchasable ticket type."""

    id: str
    name: str
    price: Decimal
    currency: str = "usd"
    description: str = ""
    available: int = 0

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError("Ticket price cannot be negative")
        if self.available < 0:
            raise ValueError("Ticket availability cannot be negative")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": f"{self.price:.2f}",
            "currency": self.currency,
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Ticket":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description", ""),
            price=Decimal(str(data["price"])),
            currency=data.get("currency", "usd"),
            available=int(data.get("available", 0)),
        )


@dataclass(frozen=True)
class CartItem:
    ticket: Ticket
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("Cart item quantity must be at least 1")

    @property
    def line_total(self) -> Decimal:
        return self.ticket.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {"ticket": self.ticket.to_dict(), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(ticket=Ticket.from_dict(data["ticket"]), quantity=int(data["quantity"]))


@dataclass(frozen=True)
class EventRef:
    """The slice of an event the checkout needs."""

    id: str
    title: str = ""


@dataclass(frozen=True)
class BuyerInfo:
    first_name: str
    last_name: str
    email: str
    phone: str
    phone_country: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "phoneCountry": self.phone_country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuyerInfo":
        return cls(
            first_name=data["firstName"],
            last_name=data["lastName"],
            email=data["email"],
            phone=data["phone"],
            phone_country=data.get("phoneCountry"),
        )


@dataclass(frozen=True)
class PaymentDetails:
    """Card fields as entered. Never persisted."""

    cardholder_name: str
    card_number: str
    expiry: str
    cvc: str
    postal_code: str
    card_brand: str = "unknown"

    @property
    def last4(self) -> str:
        return self.card_number[-4:]


@dataclass(frozen=True)
class PaymentIntentStub:
    """Gateway-side token for an authorized-but-not-yet-confirmed charge."""

    id: str
    client_secret: str
    amount: Decimal
    currency: str
    status: str = "requires_payment_method"
    created_at: datetime | None = None

    def with_status(self, status: str) -> "PaymentIntentStub":
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "clientSecret": self.client_secret,
            "amount": f"{self.amount:.2f}",
            "currency": self.currency,
            "status": self.status,
            "created": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentIntentStub":
        return cls(
            id=data["id"],
            client_secret=data["clientSecret"],
            amount=Decimal(str(data["amount"])),
            currency=data["currency"],
            status=data["status"],
            created_at=_parse_dt(data.get("created")),
        )


@dataclass
class CheckoutSession:
    """One checkout attempt with its own deadline and lifecycle status."""

    id: str
    event_id: str
    cart_items: list[CartItem]
    total_amount: Decimal
    created_at: datetime
    expires_at: datetime
    status: SessionStatus = SessionStatus.INITIALIZED
    discount: Decimal = Decimal("0")
    buyer_info: BuyerInfo | None = None
    payment_intent: PaymentIntentStub | None = None
    order_id: str | None = None
    currency: str = "usd"

    def time_remaining(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())

    def is_past_deadline(self, now: datetime) -> bool:
        return self.time_remaining(now) <= 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "cartItems": [item.to_dict() for item in self.cart_items],
            "totalAmount": f"{self.total_amount:.2f}",
            "currency": self.currency,
            "createdAt": _iso(self.created_at),
            "expiryTime": _iso(self.expires_at),
            "status": self.status.value,
            "discount": str(self.discount),
            "buyerInfo": self.buyer_info.to_dict() if self.buyer_info else None,
            "paymentIntent": self.payment_intent.to_dict() if self.payment_intent else None,
            "orderId": self.order_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckoutSession":
        buyer = data.get("buyerInfo")
        intent = data.get("paymentIntent")
        return cls(
            id=data["id"],
            event_id=data["eventId"],
            cart_items=[CartItem.from_dict(item) for item in data["cartItems"]],
            total_amount=Decimal(data["totalAmount"]),
            currency=data.get("currency", "usd"),
            created_at=_parse_dt(data["createdAt"]),
            expires_at=_parse_dt(data["expiryTime"]),
            status=SessionStatus(data["status"]),
            discount=Decimal(str(data.get("discount", "0"))),
            buyer_info=BuyerInfo.from_dict(buyer) if buyer else None,
            payment_intent=PaymentIntentStub.from_dict(intent) if intent else None,
            order_id=data.get("orderId"),
        )


@dataclass(frozen=True)
class OrderLine:
    ticket_id: str
    quantity: int
    price: Decimal
    name: str


@dataclass(frozen=True)
class OrderSummary:
    order_id: str
    tickets: tuple[OrderLine, ...]
    total_amount: Decimal
    discount: Decimal
    buyer_info: BuyerInfo | None
    payment_intent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "tickets": [
                {
                    "ticketId": line.ticket_id,
                    "quantity": line.quantity,
                    "price": f"{line.price:.2f}",
                    "name": line.name,
                }
                for line in self.tickets
            ],
            "totalAmount": f"{self.total_amount:.2f}",
            "discount": str(self.discount),
            "buyerInfo": self.buyer_info.to_dict() if self.buyer_info else None,
            "paymentIntentId": self.payment_intent_id,
        }
