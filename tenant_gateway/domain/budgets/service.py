"""Budget Service.

Budget is counted in request units stored on the credential record
(`remainingBudget`). Enforcement is reserve/settle/release:

- reserve: one atomic conditional decrement in the store. Concurrent
  requests on one credential can never jointly take more than the budget.
- settle: the request produced a response; the reserved unit stays spent.
- release: the request was rejected after reserving; the unit is refunded.

From the caller's point of view the budget therefore only moves for
requests that produced a response.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import credential_key
from tenant_gateway.domain.models import Identity
from tenant_gateway.errors import InsufficientBudget

logger = logging.getLogger(__name__)

# Minimum cost of one request
REQUEST_COST = 1
BUDGET_FIELD = "remainingBudget"


@dataclass
class Reservation:
    token: str
    tenant_id: str
    user_id: str
    amount: int
    remaining: int
    status: str = field(default="ACTIVE")  # ACTIVE, SETTLED, RELEASED


class BudgetService:
    """Core domain service for budget enforcement."""

    def __init__(self, store: StateStore, cost: int = REQUEST_COST):
        self.store = store
        self.cost = cost

    async def reserve(self, identity: Identity) -> Reservation:
        """Take `cost` units or raise InsufficientBudget. Never overdraws."""
        remaining = await self.store.decrement_field(
            credential_key(identity.token), BUDGET_FIELD, self.cost
        )
        if remaining is None:
            logger.info("budget_rejected", extra={
                "tenant_id": identity.tenant_id, "user_id": identity.user_id
            })
            raise InsufficientBudget()

        logger.debug("budget_reserved", extra={
            "tenant_id": identity.tenant_id, "user_id": identity.user_id, "remaining": remaining
        })
        return Reservation(
            token=identity.token,
            tenant_id=identity.tenant_id,
            user_id=identity.user_id,
            amount=self.cost,
            remaining=remaining,
        )

    async def settle(self, reservation: Reservation) -> None:
        """Idempotent: only an ACTIVE reservation is settled."""
        if reservation.status != "ACTIVE":
            return
        reservation.status = "SETTLED"
        logger.debug("budget_settled", extra={
            "tenant_id": reservation.tenant_id, "user_id": reservation.user_id
        })

    async def release(self, reservation: Reservation) -> Optional[int]:
        """Refund an ACTIVE reservation. Idempotent."""
        if reservation.status != "ACTIVE":
            return None
        reservation.status = "RELEASED"
        refunded = await self.store.increment_field(
            credential_key(reservation.token), BUDGET_FIELD, reservation.amount
        )
        if refunded is not None:
            reservation.remaining = refunded
        logger.info("budget_released", extra={
            "tenant_id": reservation.tenant_id, "user_id": reservation.user_id
        })
        return refunded
