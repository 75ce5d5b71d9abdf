"""Quota Guard: budget check, then rate check."""
import logging
from dataclasses import dataclass
from typing import Dict

from tenant_gateway.core.rate_limiter import RateLimiter
from tenant_gateway.domain.budgets.service import BudgetService, Reservation
from tenant_gateway.domain.interfaces import RateLimitResult
from tenant_gateway.domain.models import Identity, TenantConfig
from tenant_gateway.errors import GroupUnconfigured, RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class Admission:
    reservation: Reservation
    rate: RateLimitResult

    def headers(self) -> Dict[str, str]:
        headers = self.rate.headers()
        headers["X-Budget-Remaining"] = str(self.reservation.remaining)
        return headers


class QuotaGuard:
    def __init__(self, budgets: BudgetService, limiter: RateLimiter):
        self.budgets = budgets
        self.limiter = limiter

    async def admit(self, identity: Identity, tenant: TenantConfig) -> Admission:
        """Reserve budget, then count the request against the rate window.

        A rate rejection still counts in the window but gives the budget unit back.
        """
        reservation = await self.budgets.reserve(identity)

        policy = tenant.group(identity.group)
        if policy is None:
            await self.budgets.release(reservation)
            raise GroupUnconfigured()

        try:
            rate = await self.limiter.hit(
                identity.tenant_id, identity.user_id,
                policy.rate_limit, policy.rate_limit_window_seconds,
            )
        except Exception:
            await self.budgets.release(reservation)
            raise

        if not rate.allowed:
            await self.budgets.release(reservation)
            logger.info("rate_limited", extra={
                "tenant_id": identity.tenant_id,
                "user_id": identity.user_id,
                "count": rate.count,
                "limit": rate.limit,
            })
            raise RateLimitExceeded(headers=rate.headers())

        return Admission(reservation=reservation, rate=rate)

    async def settle(self, admission: Admission) -> None:
        await self.budgets.settle(admission.reservation)

    async def release(self, admission: Admission) -> None:
        await self.budgets.release(admission.reservation)
