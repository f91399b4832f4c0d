"""Read side of the tracking log: per-order history and recent updates."""

from dataclasses import dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from ordering.order.order import Order, as_utc


@dataclass(frozen=True)
class TrackingRecord:
    order_id: str
    order_number: str
    sequence: int
    status: str
    previous_status: str | None
    actor_id: str
    actor_name: str | None
    note: str | None
    timestamp: datetime


def _records_for(order) -> list[TrackingRecord]:
    return [
        TrackingRecord(
            order_id=str(order.id),
            order_number=order.order_number,
            sequence=entry.sequence,
            status=entry.status,
            previous_status=entry.previous_status,
            actor_id=entry.actor_id,
            actor_name=entry.actor_name,
            note=entry.note,
            timestamp=as_utc(entry.timestamp),
        )
        for entry in order.tracking_history()
    ]


def tracking_history(order_id) -> list[TrackingRecord]:
    """All transitions of one order, newest first."""
    order = current_domain.repository_for(Order).get(order_id)
    return _records_for(order)


def recent_updates(limit: int = 10) -> list[TrackingRecord]:
    """The latest transitions across all orders, newest first."""
    records = []
    for order in current_domain.repository_for(Order).all_orders():
        records.extend(_records_for(order))
    records.sort(key=lambda record: (record.timestamp, record.sequence), reverse=True)
    return records[:limit]
