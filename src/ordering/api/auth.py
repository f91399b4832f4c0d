"""Request identity for the Ordering API.

Authentication happens upstream; the gateway in front of this service
forwards the caller as ``X-User-Id``, ``X-User-Name`` and ``X-User-Role``
headers. Role ``operator`` unlocks the operator endpoints.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from ordering.order.order import Actor

OPERATOR_ROLE = "operator"


@dataclass(frozen=True)
class Principal:
    user_id: str
    name: str | None = None
    role: str | None = None

    @property
    def is_operator(self) -> bool:
        return self.role == OPERATOR_ROLE

    def as_actor(self) -> Actor:
        return Actor(actor_id=self.user_id, name=self.name)


async def current_user(
    x_user_id: str = Header(default=""),
    x_user_name: str = Header(default=""),
    x_user_role: str = Header(default=""),
) -> Principal:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Principal(user_id=x_user_id, name=x_user_name or None, role=x_user_role or None)


async def require_operator(user: Principal = Depends(current_user)) -> Principal:
    if not user.is_operator:
        raise HTTPException(status_code=403, detail="Operator access required")
    return user


def ensure_can_access(user: Principal, order) -> None:
    """Customers only see their own orders; operators see all of them."""
    if user.is_operator:
        return
    if str(order.customer_id) != user.user_id:
        raise HTTPException(status_code=403, detail="You do not have access to this order")
