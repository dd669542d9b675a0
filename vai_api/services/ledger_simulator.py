"""Period simulator: books settled subscription and seat-overage charges.

For every plan assignment overlapping the requested range it emits one
``subscription`` movement per calendar month, plus an ``extra_asesor``
movement when the company has more active advisors than its seat cap.
Rows are keyed by (company, period, type) on the ``simulada`` gateway, so a
rerun without ``overwrite`` books nothing new. Disabled in live mode.
"""

import logging
from calendar import monthrange
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.exceptions import Conflict, InvalidInput
from vai_api.models.company import Advisor
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import FinancialMovement, Gateway, MovementState, MovementType
from vai_api.models.plan import Plan
from vai_api.services.proration import round2

logger = logging.getLogger(__name__)

SIMULATED_TYPES = (MovementType.SUBSCRIPTION.value, MovementType.EXTRA_ASESOR.value)
BOOKING_TIME = time(10, 0)
MAX_DETAILS = 50


@dataclass
class Month:
    key: str
    first: date
    last: date


@dataclass
class SimulationResult:
    inserted: int = 0
    skipped: int = 0
    overwritten: int = 0
    periods: List[str] = field(default_factory=list)
    details: List[dict] = field(default_factory=list)
    warning: Optional[str] = None


def months_between(date_from: date, date_to: date) -> List[Month]:
    """Calendar months overlapping [date_from, date_to], in order."""
    months = []
    year, month = date_from.year, date_from.month
    while (year, month) <= (date_to.year, date_to.month):
        last_day = monthrange(year, month)[1]
        months.append(Month(f"{year:04d}-{month:02d}", date(year, month, 1), date(year, month, last_day)))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


class LedgerSimulator:
    def __init__(
        self,
        db: AsyncSession,
        ledger_mode: str = "simulation",
        tax_rate: Decimal = Decimal("0.21"),
        currency: str = "ARS",
    ):
        self.db = db
        self.ledger_mode = (ledger_mode or "simulation").strip().lower()
        self.tax_rate = Decimal(str(tax_rate))
        self.currency = currency

    async def _overlapping_assignments(self, date_from: date, date_to: date, company_id: Optional[UUID]):
        query = (
            select(CompanyPlan, Plan)
            .join(Plan, Plan.id == CompanyPlan.plan_id)
            .where(
                CompanyPlan.start_date <= date_to,
                or_(CompanyPlan.end_date.is_(None), CompanyPlan.end_date >= date_from),
            )
            .order_by(CompanyPlan.company_id, CompanyPlan.start_date)
        )
        if company_id:
            query = query.where(CompanyPlan.company_id == company_id)
        result = await self.db.execute(query)
        return result.all()

    async def _active_advisor_counts(self, company_ids) -> Counter:
        if not company_ids:
            return Counter()
        result = await self.db.execute(
            select(Advisor.company_id, func.count(Advisor.id))
            .where(Advisor.company_id.in_(company_ids), Advisor.active.is_(True))
            .group_by(Advisor.company_id)
        )
        return Counter({company: count for company, count in result.all()})

    async def _delete_previous(self, periods: List[str], company_id: Optional[UUID]) -> int:
        """Best effort: a failed delete is logged and generation goes on."""
        query = delete(FinancialMovement).where(
            FinancialMovement.gateway == Gateway.SIMULADA.value,
            FinancialMovement.period.in_(periods),
            FinancialMovement.type.in_(SIMULATED_TYPES),
        )
        if company_id:
            query = query.where(FinancialMovement.company_id == company_id)
        try:
            result = await self.db.execute(query)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Could not delete previous simulated movements for %s: %s", periods, e)
            return 0
        return result.rowcount or 0

    async def _existing_keys(self, periods: List[str], company_id: Optional[UUID]) -> set:
        query = select(FinancialMovement.company_id, FinancialMovement.period, FinancialMovement.type).where(
            FinancialMovement.gateway == Gateway.SIMULADA.value,
            FinancialMovement.period.in_(periods),
            FinancialMovement.type.in_(SIMULATED_TYPES),
        )
        if company_id:
            query = query.where(FinancialMovement.company_id == company_id)
        result = await self.db.execute(query)
        return {(company, period, kind) for company, period, kind in result.all()}

    def _movement(self, company_id: UUID, month: Month, kind: str, net, description: str, extra: dict):
        net = round2(net)
        tax = round2(net * self.tax_rate)
        return FinancialMovement(
            company_id=company_id,
            date=datetime.combine(month.first, BOOKING_TIME),
            type=kind,
            state=MovementState.PAID.value,
            currency=self.currency,
            net_amount=net,
            tax=tax,
            total=net + tax,
            gateway=Gateway.SIMULADA.value,
            description=description,
            origin="sistema",
            period=month.key,
            extra={"periodo": month.key, "source": "simulation", **extra},
        )

    async def simulate_period(
        self,
        date_from: date,
        date_to: date,
        company_id: Optional[UUID] = None,
        overwrite: bool = False,
    ) -> SimulationResult:
        if self.ledger_mode == "live":
            raise Conflict("Simulation is disabled in live mode")
        if date_from is None or date_to is None or date_from > date_to:
            raise InvalidInput("Invalid date range")

        months = months_between(date_from, date_to)
        outcome = SimulationResult(periods=[m.key for m in months])

        rows = await self._overlapping_assignments(date_from, date_to, company_id)
        if not rows:
            outcome.warning = "No plan assignments overlap the range"
            return outcome

        if overwrite:
            outcome.overwritten = await self._delete_previous(outcome.periods, company_id)
            logger.info("Deleted %d previous simulated movements", outcome.overwritten)

        existing = await self._existing_keys(outcome.periods, company_id)
        seats_used = await self._active_advisor_counts({a.company_id for a, _ in rows})
        booked = set()

        for assignment, plan in rows:
            cap = assignment.max_advisors_override if assignment.max_advisors_override is not None else plan.max_advisors
            excess = max(0, seats_used[assignment.company_id] - (cap or 0))
            extra_price = Decimal(str(plan.extra_advisor_price or 0))

            for month in months:
                in_force = assignment.start_date <= month.last and (
                    assignment.end_date is None or assignment.end_date >= month.first
                )
                if not in_force:
                    continue

                candidates = [(
                    MovementType.SUBSCRIPTION.value,
                    Decimal(str(plan.net_price or 0)),
                    f"Plan {plan.name} {month.key}",
                    {},
                )]
                if excess > 0 and extra_price > 0:
                    candidates.append((
                        MovementType.EXTRA_ASESOR.value,
                        excess * extra_price,
                        f"{excess} extra advisors {month.key}",
                        {"excess": excess, "extra_advisor_price": float(extra_price)},
                    ))

                for kind, net, description, extra in candidates:
                    key = (assignment.company_id, month.key, kind)
                    if key in booked:
                        # two assignments of one company in the same month
                        continue
                    booked.add(key)
                    if key in existing:
                        outcome.skipped += 1
                        continue
                    self.db.add(self._movement(assignment.company_id, month, kind, net, description, extra))
                    outcome.inserted += 1
                    if len(outcome.details) < MAX_DETAILS:
                        outcome.details.append({
                            "company_id": str(assignment.company_id),
                            "period": month.key,
                            "type": kind,
                            "net_amount": float(round2(net)),
                        })

        await self.db.commit()
        logger.info(
            "Simulated %s..%s: inserted=%d skipped=%d overwritten=%d",
            date_from, date_to, outcome.inserted, outcome.skipped, outcome.overwritten,
        )
        return outcome
