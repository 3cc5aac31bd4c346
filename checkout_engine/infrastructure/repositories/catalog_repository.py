# checkout_engine/infrastructure/repositories/catalog_repository.py

from sqlalchemy import select
from sqlalchemy.orm import Session

from checkout_engine.domain.models import EventRef, Ticket
from checkout_engine.infrastructure.db.models import Event, TicketType


def _to_ticket(row: TicketType) -> Ticket:
    return Ticket(
        id=row.id,
        name=row.name,
        description=row.description,
        price=row.price,
        currency=row.currency,
        available=row.available,
    )


class CatalogRepository:
    """Read-only access to events and their ticket types."""

    def __init__(self, db: Session):
        self.db = db

    def get_event(self, event_id: str) -> EventRef | None:
        event = self.db.execute(
            select(Event).where(Event.id == event_id)
        ).scalar_one_or_none()
        if not event:
            return None
        return EventRef(id=event.id, title=event.title)

    def list_tickets(self, event_id: str) -> list[Ticket]:
        stmt = (
            select(TicketType)
            .where(TicketType.event_id == event_id)
            .order_by(TicketType.price)
        )
        return [_to_ticket(row) for row in self.db.execute(stmt).scalars().all()]

    def get_tickets_by_id(self, event_id: str, ticket_ids: list[str]) -> dict[str, Ticket]:
        if not ticket_ids:
            return {}
        stmt = (
            select(TicketType)
            .where(TicketType.event_id == event_id)
            .where(TicketType.id.in_(ticket_ids))
        )
        return {row.id: _to_ticket(row) for row in self.db.execute(stmt).scalars().all()}
