"""Ordering bounded context — carts, checkout and the order lifecycle.

Cart lines are reserved against live catalogue stock, checkout freezes
them into an immutable order snapshot, and the order status is advanced
by operators and by payment gateway webhooks. Every status change is
recorded in the order's tracking log.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
