"""Retry queue for webhook events that hit a transient failure.

The webhook endpoint acknowledges every delivery immediately. Events whose
processing failed for a retryable reason are stored as PendingWebhook
records and re-fed to the ingester by drain(), which the maintenance API
and the background runner call. Records live in the domain's repository,
so a runner process drains what the web process parked. Each retry waits
longer than the previous one; after ``webhook_max_attempts`` attempts the
record is kept as a dead letter. At most ``webhook_dead_letter_limit``
dead letters are kept, oldest dropped first.

Provides get_retry_queue() / set_retry_queue() / reset_retry_queue().
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from protean.fields import Boolean, DateTime, Dict, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.order.order import as_utc
from ordering.utils.locks import get_locks
from ordering.webhook.events import parse_event, to_payload

logger = structlog.get_logger(__name__)

# Backoff after attempt n (1-based): 1 min, 5 min, 30 min, then 2 hours
_RETRY_DELAYS = [60, 300, 1800, 7200]

_DRAIN_KEY = ("webhook-retries", "drain")


def _delay_after(attempts: int) -> timedelta:
    index = min(attempts, len(_RETRY_DELAYS)) - 1
    return timedelta(seconds=_RETRY_DELAYS[max(index, 0)])


@ordering.aggregate
class PendingWebhook:
    """A webhook event parked after a transient failure."""

    event_type = String(required=True, max_length=50)
    order_number = String(max_length=50)
    payload = Dict(required=True)
    attempts = Integer(required=True, min_value=1)
    last_error = Text()
    next_attempt_at = DateTime(required=True)
    failed_at = DateTime(required=True)
    dead_lettered = Boolean(default=False)

    def to_event(self):
        return parse_event(self.payload)


@ordering.repository(part_of=PendingWebhook)
class PendingWebhookRepository:
    def waiting(self) -> list[PendingWebhook]:
        records = self._dao.query.filter(dead_lettered=False).limit(None).all().items
        return sorted(records, key=lambda record: as_utc(record.next_attempt_at))

    def due(self, now: datetime) -> list[PendingWebhook]:
        return [record for record in self.waiting() if as_utc(record.next_attempt_at) <= now]

    def dead_letters(self) -> list[PendingWebhook]:
        records = self._dao.query.filter(dead_lettered=True).limit(None).all().items
        return sorted(records, key=lambda record: as_utc(record.failed_at))

    def discard(self, record: PendingWebhook) -> None:
        self._dao.delete(record)


@dataclass(frozen=True)
class DrainReport:
    retried: int = 0
    succeeded: int = 0
    requeued: int = 0
    dead_lettered: int = 0


class WebhookRetryQueue:
    def __init__(self, max_attempts: int | None = None, dead_letter_limit: int | None = None) -> None:
        settings = get_settings()
        self.max_attempts = max_attempts if max_attempts is not None else settings.webhook_max_attempts
        self.dead_letter_limit = (
            dead_letter_limit if dead_letter_limit is not None else settings.webhook_dead_letter_limit
        )

    @property
    def _repo(self) -> PendingWebhookRepository:
        return current_domain.repository_for(PendingWebhook)

    def push(self, event, error, attempts: int, now: datetime | None = None) -> bool:
        """Park ``event`` after its ``attempts``-th failed attempt.

        Returns False when the event ran out of attempts and was dead-lettered.
        """
        now = now or datetime.now(UTC)
        dead = attempts >= self.max_attempts
        record = PendingWebhook(
            event_type=event.event_type.value,
            order_number=event.order_number,
            payload=to_payload(event),
            attempts=attempts,
            last_error=str(error),
            next_attempt_at=now + _delay_after(attempts),
            failed_at=now,
            dead_lettered=dead,
        )
        self._repo.add(record)

        if dead:
            logger.error(
                "Webhook event dead-lettered",
                event_type=record.event_type,
                order_number=record.order_number,
                attempts=attempts,
                error=str(error),
            )
            self._trim_dead_letters()
            return False

        logger.warning(
            "Webhook event queued for retry",
            event_type=record.event_type,
            order_number=record.order_number,
            attempts=attempts,
            next_attempt_at=record.next_attempt_at.isoformat(),
            error=str(error),
        )
        return True

    def _trim_dead_letters(self) -> None:
        letters = self._repo.dead_letters()
        excess = len(letters) - self.dead_letter_limit
        for record in letters[: max(excess, 0)]:
            self._repo.discard(record)
            logger.warning(
                "Dropped oldest webhook dead letter",
                event_type=record.event_type,
                order_number=record.order_number,
            )

    def drain(self, ingester, now: datetime | None = None) -> DrainReport:
        """Re-run every due event through ``ingester``.

        A record is removed only after the ingester has dealt with it, so
        an error raised mid-drain leaves the rest queued for the next run.
        """
        now = now or datetime.now(UTC)
        succeeded = requeued = dead_lettered = 0

        with get_locks().hold(_DRAIN_KEY):
            due = self._repo.due(now)
            if not due:
                return DrainReport()

            for record in due:
                ack = ingester.handle(record.to_event(), attempts=record.attempts)
                self._repo.discard(record)
                if ack.requeued:
                    requeued += 1
                elif ack.dead_lettered:
                    dead_lettered += 1
                else:
                    succeeded += 1

        report = DrainReport(
            retried=len(due),
            succeeded=succeeded,
            requeued=requeued,
            dead_lettered=dead_lettered,
        )
        logger.info(
            "Webhook retry drain complete",
            retried=report.retried,
            succeeded=report.succeeded,
            requeued=report.requeued,
            dead_lettered=report.dead_lettered,
        )
        return report

    @property
    def dead_letters(self) -> list[PendingWebhook]:
        return self._repo.dead_letters()

    def clear_dead_letters(self) -> int:
        """Delete every dead letter; returns how many were removed."""
        letters = self._repo.dead_letters()
        for record in letters:
            self._repo.discard(record)
        logger.info("Cleared webhook dead letters", count=len(letters))
        return len(letters)

    def __len__(self) -> int:
        return len(self._repo.waiting())


_current_queue: WebhookRetryQueue | None = None


def get_retry_queue() -> WebhookRetryQueue:
    global _current_queue
    if _current_queue is None:
        _current_queue = WebhookRetryQueue()
    return _current_queue


def set_retry_queue(queue: WebhookRetryQueue) -> None:
    global _current_queue
    _current_queue = queue


def reset_retry_queue() -> None:
    global _current_queue
    _current_queue = None
