"""Cart state for ticket selection.

One ordered mapping of ticket id to CartItem. The list view, totals and
badge counts are all derived on read.
"""

import logging
from decimal import Decimal
from typing import Iterable

from checkout_engine.domain.exceptions import InvalidCartOperationError
from checkout_engine.domain.models import CartItem, Ticket

logger = logging.getLogger(__name__)


def compute_total(items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0"))


def compute_item_count(items: Iterable[CartItem]) -> int:
    return sum(item.quantity for item in items)


class Cart:

    def __init__(self, items: Iterable[CartItem] = ()):
        self._lines: dict[str, CartItem] = {}
        for item in items:
            self._lines[item.ticket.id] = item

    def add_to_cart(self, ticket: Ticket) -> CartItem:
        if ticket.id in self._lines:
            raise InvalidCartOperationError(
                f"Ticket {ticket.id} is already in the cart; change its quantity instead"
            )
        self._ensure_available(ticket, 1)

        item = CartItem(ticket=ticket, quantity=1)
        self._lines[ticket.id] = item
        logger.debug("Added ticket %s to cart", ticket.id)
        return item

    def change_quantity(self, ticket_id: str, new_quantity: int) -> CartItem | None:
        """
        Sets the quantity of an existing line.
        Zero or a negative value removes the line, same as remove_from_cart.
        """
        if new_quantity <= 0:
            self.remove_from_cart(ticket_id)
            return None

        current = self._lines.get(ticket_id)
        if current is None:
            raise InvalidCartOperationError(f"Ticket {ticket_id} is not in the cart")
        self._ensure_available(current.ticket, new_quantity)

        item = CartItem(ticket=current.ticket, quantity=new_quantity)
        self._lines[ticket_id] = item
        return item

    def remove_from_cart(self, ticket_id: str) -> None:
        if self._lines.pop(ticket_id, None) is not None:
            logger.debug("Removed ticket %s from cart", ticket_id)

    def clear(self) -> None:
        self._lines.clear()

    def quantity_of(self, ticket_id: str) -> int:
        item = self._lines.get(ticket_id)
        return item.quantity if item else 0

    @property
    def items(self) -> list[CartItem]:
        return list(self._lines.values())

    @property
    def total(self) -> Decimal:
        return compute_total(self._lines.values())

    @property
    def item_count(self) -> int:
        return compute_item_count(self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, ticket_id: object) -> bool:
        return ticket_id in self._lines

    @staticmethod
    def _ensure_available(ticket: Ticket, quantity: int) -> None:
        if quantity > ticket.available:
            raise InvalidCartOperationError(
                f"Only {ticket.available} '{ticket.name}' tickets available"
            )
