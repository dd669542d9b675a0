"""Read-side cashflow reporting over assignments, advisors and the ledger.

Nothing here writes. MRR uses the same custom-plan formula as
vai_api.services.pricing so the report matches what a plan change charges.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from vai_api.core.config import settings
from vai_api.core.exceptions import InvalidInput
from vai_api.models.company import Company, Advisor
from vai_api.models.company_plan import CompanyPlan
from vai_api.models.financial_movement import FinancialMovement, MovementState, UPGRADE_PRORATION
from vai_api.models.plan import Plan
from vai_api.models.subscription import Subscription, SubscriptionStatus
from vai_api.services.pricing import (
    custom_plan_price,
    effective_custom_cap,
    is_custom_plan,
    premium_base_price,
)
from vai_api.services.proration import round2

logger = logging.getLogger(__name__)

SORT_KEYS = ("mrr", "income", "name", "movements", "last_movement")
PLAN_STATES = ("all", "active", "inactive")


@dataclass
class CompanySummary:
    company_id: UUID
    company_name: str
    tax_id: Optional[str]
    plan_name: Optional[str]
    plan_active: bool
    start_date: Optional[date]
    end_date: Optional[date]
    mrr: Decimal
    period_net_income: Decimal
    period_income_with_tax: Decimal
    movement_count: int
    last_movement_at: Optional[datetime]
    seats_used: int
    plan_cap: int
    seat_override: Optional[int]
    excess_seats: int


@dataclass
class SummaryPage:
    page: int
    page_size: int
    total: int
    items: List[CompanySummary] = field(default_factory=list)


@dataclass
class PeriodKpis:
    date_from: date
    date_to: date
    mrr: Decimal
    net_income: Decimal
    income_with_tax: Decimal
    arpu: Decimal
    active_companies: int
    churned_companies: int
    upgrades: int
    downgrades: int


@dataclass
class MovementRow:
    id: UUID
    company_id: UUID
    company_name: str
    date: datetime
    type: str
    state: str
    gateway: str
    description: Optional[str]
    currency: str
    net_amount: Decimal
    tax: Decimal
    total_with_tax: Decimal


@dataclass
class MovementPage:
    page: int
    page_size: int
    total: int
    items: List[MovementRow] = field(default_factory=list)


def current_month(today: Optional[date] = None) -> Tuple[date, date]:
    today = today or date.today()
    first = today.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def _bounds(date_from: date, date_to: date) -> Tuple[datetime, datetime]:
    """[start of date_from, start of the day after date_to) as naive datetimes."""
    if date_from > date_to:
        raise InvalidInput("date_from must not be after date_to")
    return datetime.combine(date_from, time.min), datetime.combine(date_to + timedelta(days=1), time.min)


def _with_tax(amount: Decimal, tax_rate: Decimal) -> Decimal:
    return round2(amount * (1 + Decimal(str(tax_rate))))


async def _seats_used(db: AsyncSession, company_ids) -> Counter:
    if not company_ids:
        return Counter()
    result = await db.execute(
        select(Advisor.company_id, func.count(Advisor.id))
        .where(Advisor.company_id.in_(company_ids), Advisor.active.is_(True))
        .group_by(Advisor.company_id)
    )
    return Counter({company: count for company, count in result.all()})


class _MrrCalculator:
    """Per-company monthly revenue, caching the Premium base price."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._premium_base: Optional[Decimal] = None

    async def mrr(self, assignment: CompanyPlan, plan: Plan, seats_used: int) -> Tuple[Decimal, int, int]:
        """Returns (mrr, effective cap, excess seats)."""
        override = assignment.max_advisors_override
        extra_price = Decimal(str(plan.extra_advisor_price or 0))

        if is_custom_plan(plan):
            if self._premium_base is None:
                self._premium_base = await premium_base_price(self.db, plan)
            cap = effective_custom_cap(override, plan.max_advisors)
            return round2(custom_plan_price(self._premium_base, cap, extra_price)), cap, max(0, seats_used - cap)

        if assignment.net_price_override is not None:
            base = Decimal(str(assignment.net_price_override))
        else:
            base = Decimal(str(plan.net_price or 0))
        cap = override if override is not None else (plan.max_advisors or 0)
        excess = max(0, seats_used - cap)
        return round2(base + excess * extra_price), cap, excess


def _representative(assignments: List[CompanyPlan], date_from: date) -> CompanyPlan:
    """The newest assignment still in force at date_from, else the newest overall."""
    current = [a for a in assignments if a.active and (a.end_date is None or a.end_date >= date_from)]
    pool = current or assignments
    return max(pool, key=lambda a: a.start_date or date.min)


async def company_summaries(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    q: Optional[str] = None,
    plan_name: Optional[str] = None,
    plan_state: str = "all",
    page: int = 1,
    page_size: int = 20,
    sort_by: Optional[str] = None,
    sort_dir: Optional[str] = None,
    tax_rate: Decimal = settings.TAX_RATE,
) -> SummaryPage:
    """Paginated per-company cashflow rows for the range."""
    start, end = _bounds(date_from, date_to)
    page = max(page, 1)
    page_size = max(page_size, 1)
    if plan_state not in PLAN_STATES:
        raise InvalidInput(f"plan_state must be one of {', '.join(PLAN_STATES)}")
    if sort_by and sort_by not in SORT_KEYS:
        raise InvalidInput(f"sort_by must be one of {', '.join(SORT_KEYS)}")
    sort_dir = (sort_dir or ("asc" if sort_by == "name" else "desc")).lower()

    query = select(CompanyPlan, Plan).join(Plan, Plan.id == CompanyPlan.plan_id)
    if plan_name:
        query = query.where(Plan.name == plan_name)
    if plan_state == "active":
        query = query.where(CompanyPlan.active.is_(True))
    elif plan_state == "inactive":
        query = query.where(CompanyPlan.active.is_(False))
    rows = (await db.execute(query)).all()
    if not rows:
        return SummaryPage(page=page, page_size=page_size, total=0)

    plans: Dict[UUID, Plan] = {}
    by_company: Dict[UUID, List[CompanyPlan]] = {}
    for assignment, plan in rows:
        plans[plan.id] = plan
        by_company.setdefault(assignment.company_id, []).append(assignment)
    representatives = {cid: _representative(items, date_from) for cid, items in by_company.items()}
    company_ids = list(representatives)

    companies = {
        c.id: c for c in (await db.execute(select(Company).where(Company.id.in_(company_ids)))).scalars()
    }
    seats = await _seats_used(db, company_ids)

    ledger = await db.execute(
        select(
            FinancialMovement.company_id,
            func.count(FinancialMovement.id),
            func.max(FinancialMovement.date),
        )
        .where(
            FinancialMovement.company_id.in_(company_ids),
            FinancialMovement.date >= start,
            FinancialMovement.date < end,
        )
        .group_by(FinancialMovement.company_id)
    )
    ledger_stats = {company: (count, last) for company, count, last in ledger.all()}

    income = await db.execute(
        select(FinancialMovement.company_id, func.sum(FinancialMovement.net_amount))
        .where(
            FinancialMovement.company_id.in_(company_ids),
            FinancialMovement.state == MovementState.PAID.value,
            FinancialMovement.date >= start,
            FinancialMovement.date < end,
        )
        .group_by(FinancialMovement.company_id)
    )
    income_by_company = {company: Decimal(str(total or 0)) for company, total in income.all()}

    calculator = _MrrCalculator(db)
    items = []
    for company_id, assignment in representatives.items():
        company = companies.get(company_id)
        plan = plans[assignment.plan_id]
        used = seats[company_id]
        mrr, _, excess = await calculator.mrr(assignment, plan, used)
        net_income = round2(income_by_company.get(company_id, Decimal(0)))
        count, last = ledger_stats.get(company_id, (0, None))
        items.append(CompanySummary(
            company_id=company_id,
            company_name=company.display_name if company else "",
            tax_id=company.tax_id if company else None,
            plan_name=plan.name,
            plan_active=bool(assignment.active),
            start_date=assignment.start_date,
            end_date=assignment.end_date,
            mrr=mrr,
            period_net_income=net_income,
            period_income_with_tax=_with_tax(net_income, tax_rate),
            movement_count=count,
            last_movement_at=last,
            seats_used=used,
            plan_cap=plan.max_advisors or 0,
            seat_override=assignment.max_advisors_override,
            excess_seats=excess,
        ))

    if q:
        needle = q.strip().lower()
        items = [i for i in items if needle in f"{i.company_name} {i.tax_id or ''}".lower()]

    reverse = sort_dir == "desc"
    if sort_by == "name":
        items.sort(key=lambda i: i.company_name.lower(), reverse=reverse)
    elif sort_by == "income":
        items.sort(key=lambda i: i.period_net_income, reverse=reverse)
    elif sort_by == "movements":
        items.sort(key=lambda i: i.movement_count, reverse=reverse)
    elif sort_by == "last_movement":
        items.sort(key=lambda i: i.last_movement_at or datetime.min, reverse=reverse)
    elif sort_by == "mrr":
        items.sort(key=lambda i: i.mrr, reverse=reverse)
    else:
        items.sort(key=lambda i: i.mrr, reverse=True)

    offset = (page - 1) * page_size
    return SummaryPage(page=page, page_size=page_size, total=len(items), items=items[offset:offset + page_size])


async def period_kpis(
    db: AsyncSession,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    tax_rate: Decimal = settings.TAX_RATE,
    today: Optional[date] = None,
) -> PeriodKpis:
    """Period KPIs; an incomplete or inverted range falls back to the current month."""
    if not date_from or not date_to or date_to < date_from:
        date_from, date_to = current_month(today)
    start, end = _bounds(date_from, date_to)

    result = await db.execute(
        select(func.sum(FinancialMovement.net_amount)).where(
            FinancialMovement.state == MovementState.PAID.value,
            FinancialMovement.date >= start,
            FinancialMovement.date < end,
        )
    )
    net_income = round2(result.scalar() or 0)

    rows = (await db.execute(
        select(CompanyPlan, Plan)
        .join(Plan, Plan.id == CompanyPlan.plan_id)
        .where(
            CompanyPlan.active.is_(True),
            CompanyPlan.start_date <= date_to,
            or_(CompanyPlan.end_date.is_(None), CompanyPlan.end_date >= date_to),
        )
    )).all()
    company_ids = {assignment.company_id for assignment, _ in rows}
    seats = await _seats_used(db, company_ids)
    calculator = _MrrCalculator(db)
    mrr = Decimal(0)
    for assignment, plan in rows:
        company_mrr, _, _ = await calculator.mrr(assignment, plan, seats[assignment.company_id])
        mrr += company_mrr

    active_companies = len(company_ids)
    arpu = round2(net_income / active_companies) if active_companies else Decimal("0.00")

    churned = await db.execute(
        select(func.count(func.distinct(Subscription.company_id))).where(
            Subscription.status == SubscriptionStatus.CANCELADA.value,
            Subscription.ended_at >= start,
            Subscription.ended_at < end,
        )
    )
    upgrades = await db.execute(
        select(func.count(FinancialMovement.id)).where(
            FinancialMovement.subtype == UPGRADE_PRORATION,
            FinancialMovement.state == MovementState.PAID.value,
            FinancialMovement.date >= start,
            FinancialMovement.date < end,
        )
    )
    downgrades = await db.execute(
        select(func.count(Subscription.id)).where(
            Subscription.next_plan_id.is_not(None),
            Subscription.next_plan_effective_date >= date_from,
            Subscription.next_plan_effective_date <= date_to,
        )
    )

    return PeriodKpis(
        date_from=date_from,
        date_to=date_to,
        mrr=round2(mrr),
        net_income=net_income,
        income_with_tax=_with_tax(net_income, tax_rate),
        arpu=arpu,
        active_companies=active_companies,
        churned_companies=churned.scalar() or 0,
        upgrades=upgrades.scalar() or 0,
        downgrades=downgrades.scalar() or 0,
    )


async def list_movements(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    company_id: Optional[UUID] = None,
    gateway: Optional[str] = None,
    state: Optional[str] = None,
    movement_type: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
    tax_rate: Decimal = settings.TAX_RATE,
) -> MovementPage:
    """Ledger rows in the range, newest first, with tax added on top of the net amount."""
    start, end = _bounds(date_from, date_to)
    page = max(page, 1)
    page_size = max(page_size, 1)

    filters = [FinancialMovement.date >= start, FinancialMovement.date < end]
    if company_id:
        filters.append(FinancialMovement.company_id == company_id)
    if gateway:
        filters.append(FinancialMovement.gateway == gateway)
    if state:
        filters.append(FinancialMovement.state == state)
    if movement_type:
        filters.append(FinancialMovement.type == movement_type)

    total = (await db.execute(select(func.count(FinancialMovement.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(FinancialMovement, Company)
        .join(Company, Company.id == FinancialMovement.company_id)
        .where(*filters)
        .order_by(FinancialMovement.date.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    rate = Decimal(str(tax_rate))
    items = []
    for movement, company in result.all():
        net = Decimal(str(movement.net_amount or 0))
        tax = round2(net * rate)
        items.append(MovementRow(
            id=movement.id,
            company_id=movement.company_id,
            company_name=company.display_name,
            date=movement.date,
            type=movement.type,
            state=movement.state,
            gateway=movement.gateway,
            description=movement.description,
            currency=movement.currency,
            net_amount=round2(net),
            tax=tax,
            total_with_tax=round2(net) + tax,
        ))
    return MovementPage(page=page, page_size=page_size, total=total, items=items)
