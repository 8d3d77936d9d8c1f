"""Per-organization monthly plan quotas."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.errors import PlanLimitError
from casevia.db.base import utcnow
from casevia.db.models import PlanLimits
from casevia.db.repositories import PlanLimitsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Plan:
    id: str
    name: str
    case_studies: int
    storage_mb: int
    video_length_minutes: int


PLANS: dict[str, Plan] = {
    "free": Plan("free", "Free", 3, 500, 30),
    "freelancer": Plan("freelancer", "Freelancer", 10, 5_000, 60),
    "pro": Plan("pro", "Pro", 30, 20_000, 120),
    "agency": Plan("agency", "Agency", 100, 100_000, 240),
}
DEFAULT_PLAN = "free"


def get_plan(plan_id: str) -> Plan:
    try:
        return PLANS[plan_id]
    except KeyError:
        raise ValueError(f"Invalid plan: {plan_id}") from None


def next_reset(now: datetime | None = None) -> datetime:
    """First day of the month after ``now``, 00:00 UTC."""
    now = now or utcnow()
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=UTC)
    return datetime(now.year, now.month + 1, 1, tzinfo=UTC)


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@dataclass(slots=True)
class LimitCheck:
    allowed: bool
    reason: str | None = None
    limit_type: str | None = None

    def raise_for_refusal(self) -> None:
        if not self.allowed:
            raise PlanLimitError(self.reason or "Plan limit reached", self.limit_type or "unknown")


class PlanLimitsService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = PlanLimitsRepository(session)

    async def current(self, organization_id: str, now: datetime | None = None) -> PlanLimits:
        """Load the organization's counters, provisioning and resetting as needed."""
        now = now or utcnow()
        limits = await self.repo.get(organization_id)
        if limits is None:
            logger.info(f"Provisioning {DEFAULT_PLAN} plan limits for {organization_id}")
            return await self.repo.add(organization_id, DEFAULT_PLAN, next_reset(now))

        if now >= _aware(limits.reset_at):
            logger.info(f"Resetting monthly usage for {organization_id}")
            await self.repo.reset_monthly(organization_id, next_reset(now))
            await self.session.refresh(limits)
        return limits

    async def check_upload(
        self,
        organization_id: str,
        file_size_mb: int,
        duration_minutes: int,
        now: datetime | None = None,
    ) -> LimitCheck:
        limits = await self.current(organization_id, now)
        plan = get_plan(limits.plan_id)

        if limits.case_studies_used >= plan.case_studies:
            return LimitCheck(
                False,
                f"You've reached your monthly limit of {plan.case_studies} case studies. "
                "Upgrade to continue.",
                "caseStudies",
            )
        if limits.storage_used_mb + file_size_mb > plan.storage_mb:
            return LimitCheck(
                False,
                f"This upload would exceed your storage limit of {plan.storage_mb} MB. "
                "Upgrade for more storage.",
                "storage",
            )
        if duration_minutes > plan.video_length_minutes:
            return LimitCheck(
                False,
                f"Video length ({duration_minutes} min) exceeds your plan limit of "
                f"{plan.video_length_minutes} minutes.",
                "videoLength",
            )
        return LimitCheck(True)

    async def increment_usage(self, organization_id: str, file_size_mb: int) -> None:
        await self.repo.increment_usage(organization_id, file_size_mb)

    async def plan_for(self, organization_id: str) -> Plan:
        limits = await self.repo.get(organization_id)
        return get_plan(limits.plan_id if limits is not None else DEFAULT_PLAN)
