"""PostgreSQL implementation of BillingRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import (
    BundleModuleRow,
    BundleRow,
    ModulePriceRow,
    PaymentRow,
    SubscriptionRow,
)
from app.models.billing import (
    BillingPeriod,
    Bundle,
    BundleModule,
    ModulePrice,
    Payment,
    PaymentStatus,
    Subscription,
    SubscriptionStatus,
)


class PgBillingRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- prices ---

    async def add_price(self, price: ModulePrice) -> None:
        existing = await self.get_price(price.module_id, price.plan, price.billing_period)
        if existing is not None:
            raise ValueError("price tier already exists")
        self._session.add(
            ModulePriceRow(
                id=price.id,
                module_id=price.module_id,
                plan=price.plan,
                billing_period=price.billing_period.value,
                price_cents=price.price_cents,
                currency=price.currency,
                max_seats=price.max_seats,
            )
        )
        await self._session.flush()

    async def get_price(
        self, module_id: UUID, plan: str, billing_period: BillingPeriod
    ) -> ModulePrice | None:
        stmt = select(ModulePriceRow).where(
            ModulePriceRow.module_id == module_id,
            ModulePriceRow.plan == plan,
            ModulePriceRow.billing_period == billing_period.value,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_price(row) if row is not None else None

    async def list_prices(self, module_id: UUID | None = None) -> list[ModulePrice]:
        stmt = select(ModulePriceRow).order_by(ModulePriceRow.price_cents)
        if module_id is not None:
            stmt = stmt.where(ModulePriceRow.module_id == module_id)
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_price(r) for r in rows]

    # --- subscriptions ---

    async def get_subscription(self, subscription_id: UUID) -> Subscription | None:
        stmt = select(SubscriptionRow).where(SubscriptionRow.id == subscription_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_subscription(row) if row is not None else None

    async def get_subscription_for(
        self, org_id: UUID, module_id: UUID
    ) -> Subscription | None:
        stmt = select(SubscriptionRow).where(
            SubscriptionRow.org_id == org_id, SubscriptionRow.module_id == module_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_subscription(row) if row is not None else None

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        values = {
            "plan": subscription.plan,
            "status": subscription.status.value,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "cancel_at_period_end": subscription.cancel_at_period_end,
            "canceled_at": subscription.canceled_at,
        }
        stmt = (
            insert(SubscriptionRow)
            .values(
                id=subscription.id,
                org_id=subscription.org_id,
                module_id=subscription.module_id,
                **values,
            )
            .on_conflict_do_update(
                index_elements=[SubscriptionRow.org_id, SubscriptionRow.module_id],
                set_=values,
            )
            .returning(SubscriptionRow)
        )
        row = (
            await self._session.scalars(stmt, execution_options={"populate_existing": True})
        ).one()
        return _row_to_subscription(row)

    async def list_subscriptions(self, org_id: UUID) -> list[Subscription]:
        stmt = select(SubscriptionRow).where(SubscriptionRow.org_id == org_id)
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_subscription(r) for r in rows]

    # --- bundles ---

    async def add_bundle(self, bundle: Bundle) -> None:
        self._session.add(
            BundleRow(
                id=bundle.id,
                name=bundle.name,
                is_active=bundle.is_active,
                max_users=bundle.max_users,
                max_employees=bundle.max_employees,
                price_cents=bundle.price_cents,
                currency=bundle.currency,
                billing_period=bundle.billing_period.value,
            )
        )
        await self._session.flush()
        for position, bm in enumerate(bundle.modules):
            self._session.add(
                BundleModuleRow(
                    bundle_id=bundle.id,
                    module_id=bm.module_id,
                    plan=bm.plan,
                    position=position,
                )
            )
        await self._session.flush()

    async def get_bundle(self, bundle_id: UUID) -> Bundle | None:
        row = (
            await self._session.execute(select(BundleRow).where(BundleRow.id == bundle_id))
        ).scalar_one_or_none()
        if row is None:
            return None
        return await self._load_bundle(row)

    async def list_bundles(self) -> list[Bundle]:
        rows = (await self._session.execute(select(BundleRow).order_by(BundleRow.name))).scalars().all()
        return [await self._load_bundle(r) for r in rows]

    async def _load_bundle(self, row: BundleRow) -> Bundle:
        stmt = (
            select(BundleModuleRow)
            .where(BundleModuleRow.bundle_id == row.id)
            .order_by(BundleModuleRow.position)
        )
        modules = (await self._session.execute(stmt)).scalars()
        return Bundle(
            id=row.id,
            name=row.name,
            modules=tuple(BundleModule(module_id=m.module_id, plan=m.plan) for m in modules),
            is_active=row.is_active,
            max_users=row.max_users,
            max_employees=row.max_employees,
            price_cents=row.price_cents,
            currency=row.currency,
            billing_period=BillingPeriod(row.billing_period),
        )

    # --- payments ---

    async def add_payment(self, payment: Payment) -> None:
        self._session.add(
            PaymentRow(
                id=payment.id,
                org_id=payment.org_id,
                module_id=payment.module_id,
                subscription_id=payment.subscription_id,
                plan=payment.plan,
                billing_period=payment.billing_period.value,
                amount_cents=payment.amount_cents,
                currency=payment.currency,
                status=payment.status.value,
                provider=payment.provider,
                provider_ref=payment.provider_ref,
                invoice_url=payment.invoice_url,
                paid_at=payment.paid_at,
                created_at=payment.created_at,
            )
        )
        await self._session.flush()

    async def get_payment_by_ref(self, provider_ref: str) -> Payment | None:
        # Row lock so two webhook deliveries for one invoice cannot both activate.
        stmt = (
            select(PaymentRow)
            .where(PaymentRow.provider_ref == provider_ref)
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_payment(row) if row is not None else None

    async def update_payment(self, payment: Payment) -> None:
        stmt = (
            update(PaymentRow)
            .where(PaymentRow.id == payment.id)
            .values(
                status=payment.status.value,
                subscription_id=payment.subscription_id,
                paid_at=payment.paid_at,
                invoice_url=payment.invoice_url,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("payment not found")

    async def list_payments(self, org_id: UUID) -> list[Payment]:
        stmt = (
            select(PaymentRow)
            .where(PaymentRow.org_id == org_id)
            .order_by(PaymentRow.created_at)
        )
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_payment(r) for r in rows]


def _row_to_price(row: ModulePriceRow) -> ModulePrice:
    return ModulePrice(
        id=row.id,
        module_id=row.module_id,
        plan=row.plan,
        billing_period=BillingPeriod(row.billing_period),
        price_cents=row.price_cents,
        currency=row.currency,
        max_seats=row.max_seats,
    )


def _row_to_subscription(row: SubscriptionRow) -> Subscription:
    return Subscription(
        id=row.id,
        org_id=row.org_id,
        module_id=row.module_id,
        plan=row.plan,
        status=SubscriptionStatus(row.status),
        current_period_start=row.current_period_start,
        current_period_end=row.current_period_end,
        cancel_at_period_end=row.cancel_at_period_end,
        canceled_at=row.canceled_at,
    )


def _row_to_payment(row: PaymentRow) -> Payment:
    return Payment(
        id=row.id,
        org_id=row.org_id,
        module_id=row.module_id,
        plan=row.plan,
        billing_period=BillingPeriod(row.billing_period),
        amount_cents=row.amount_cents,
        currency=row.currency,
        status=PaymentStatus(row.status),
        provider=row.provider,
        provider_ref=row.provider_ref,
        invoice_url=row.invoice_url,
        subscription_id=row.subscription_id,
        paid_at=row.paid_at,
        created_at=row.created_at,
    )
