from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"

    def period_end(self, start: datetime) -> datetime:
        months = 1 if self is BillingPeriod.MONTHLY else 12
        return add_months(start, months)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month = Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ModulePrice:
    id: UUID
    module_id: UUID
    plan: str
    billing_period: BillingPeriod
    price_cents: int
    currency: str = "SAR"
    max_seats: int | None = None

    @staticmethod
    def new(
        *,
        module_id: UUID,
        plan: str,
        billing_period: BillingPeriod,
        price_cents: int,
        currency: str = "SAR",
        max_seats: int | None = None,
    ) -> ModulePrice:
        return ModulePrice(
            id=uuid4(),
            module_id=module_id,
            plan=plan,
            billing_period=billing_period,
            price_cents=price_cents,
            currency=currency,
            max_seats=max_seats,
        )


@dataclass(frozen=True, slots=True)
class Subscription:
    id: UUID
    org_id: UUID
    module_id: UUID
    plan: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    canceled_at: datetime | None = None

    @property
    def is_canceled(self) -> bool:
        return self.status is SubscriptionStatus.CANCELED


@dataclass(frozen=True, slots=True)
class BundleModule:
    module_id: UUID
    plan: str


@dataclass(frozen=True, slots=True)
class Bundle:
    """A package of module+plan pairs assignable in one operation."""

    id: UUID
    name: str
    modules: tuple[BundleModule, ...] = ()
    is_active: bool = True
    max_users: int | None = None
    max_employees: int | None = None
    price_cents: int = 0
    currency: str = "SAR"
    billing_period: BillingPeriod = BillingPeriod.MONTHLY

    @staticmethod
    def new(*, name: str, modules: tuple[BundleModule, ...] = (), **fields) -> Bundle:
        return Bundle(id=uuid4(), name=name, modules=modules, **fields)


@dataclass(frozen=True, slots=True)
class Payment:
    id: UUID
    org_id: UUID
    module_id: UUID
    plan: str
    billing_period: BillingPeriod
    amount_cents: int
    currency: str
    status: PaymentStatus
    provider: str  # manual|moyasar
    provider_ref: str | None = None
    invoice_url: str | None = None
    subscription_id: UUID | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None
