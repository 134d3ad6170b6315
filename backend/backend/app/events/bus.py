from __future__ import annotations

from sqlalchemy.orm import Session

from app.events.outbox import OutboxEvent


def publish(db: Session, topic: str, payload: dict) -> OutboxEvent:
    """Publish an event by writing to the transactional outbox.

    The row joins the caller's transaction; it is not committed here, so a
    rolled-back run never leaves an event behind.
    """
    evt = OutboxEvent(
        topic=topic,
        payload=payload or {},
        delivered=False,
    )
    db.add(evt)
    return evt


def pending(db: Session, *, topic: str | None = None, limit: int = 50) -> list[OutboxEvent]:
    q = db.query(OutboxEvent).filter(OutboxEvent.delivered == False)  # noqa: E712
    if topic:
        q = q.filter(OutboxEvent.topic == topic)
    return q.order_by(OutboxEvent.created_at.asc()).limit(limit).all()
