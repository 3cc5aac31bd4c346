from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import delete, select

from checkout_engine.infrastructure.db.models import Base, Event, TicketType
from checkout_engine.infrastructure.db.session import SessionLocal, engine


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    aest = timezone(timedelta(hours=10))
    now_aest = datetime.now(aest)
    target = now_aest + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


EVENT_DEFS = [
    {
        "title": "Harbourside Live: Summer Sessions",
        "date_time": _dt(days_from_now=21, hour=18, minute=30),
        "location": "Darling Harbour Amphitheatre, Sydney",
        "tickets": [
            {
                "name": "Early Bird",
                "description": "Limited early bird pricing, general entry",
                "price": "29.00",
                "available": 10,
            },
            {
                "name": "General Admission",
                "description": "Standard entry to all stages",
                "price": "39.00",
                "available": 50,
            },
            {
                "name": "VIP Package",
                "description": "Priority entry, lounge access and a drink voucher",
                "price": "79.00",
                "available": 5,
            },
            {
                "name": "Group Ticket (4 people)",
                "description": "General entry for a group of four",
                "price": "99.00",
                "available": 8,
            },
            {
                "name": "Backstage Pass",
                "description": "VIP benefits plus a backstage tour",
                "price": "149.00",
                "available": 3,
            },
        ],
    },
]


def seed_events(db) -> list[Event]:
    seeded = []
    for item in EVENT_DEFS:
        existing = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if existing:
            db.execute(delete(TicketType).where(TicketType.event_id == existing.id))
            event = existing
            event.date_time = item["date_time"]
            event.location = item["location"]
        else:
            event = Event(
                title=item["title"],
                date_time=item["date_time"],
                location=item["location"],
            )
            db.add(event)
            db.flush()

        for ticket in item["tickets"]:
            db.add(
                TicketType(
                    event_id=event.id,
                    name=ticket["name"],
                    description=ticket["description"],
                    price=Decimal(ticket["price"]),
                    currency="aud",
                    available=ticket["available"],
                )
            )
        seeded.append(event)
    return seeded


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        events = seed_events(db)
        db.commit()
        for event in events:
            print(f"Seeded event {event.id}: {event.title}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
