"""Module subscriptions: subscribe, confirm payment, cancel, change plan.

Subscribing with a payment provider configured is two-phase.  ``subscribe``
creates an invoice and stores a pending Payment keyed by the invoice id;
the provider's webhook later calls ``confirm_payment``, which performs the
same activation as the direct path.  Without a provider, or when invoice
creation fails, the subscription is activated directly and recorded as a
manual payment.

Provider calls are made outside store transactions; nothing holds a row
lock across the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID, uuid4

from app.core.config import Settings
from app.core.errors import (
    ConflictError,
    NotFoundError,
    PaymentProviderError,
)
from app.core.metrics import SUBSCRIPTION_EVENTS
from app.models.billing import (
    BillingPeriod,
    ModulePrice,
    Payment,
    PaymentStatus,
    Subscription,
    SubscriptionStatus,
)
from app.models.module import Module, OrgModule
from app.repos.store import Store, Transaction
from app.services.assignment_engine import upsert_entitlement
from app.services.entitlement_service import utcnow
from app.services.notifications import NotificationDispatcher
from app.services.payment_provider import PaymentProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubscribeResult:
    payment: Payment
    subscription: Subscription | None = None  # None while payment is pending
    invoice_url: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.subscription is None


@dataclass(frozen=True, slots=True)
class SubscriptionView:
    subscription: Subscription
    module: Module


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    module: Module
    prices: tuple[ModulePrice, ...]
    org_module: OrgModule | None = None


async def activate_subscription(
    tx: Transaction,
    org_id: UUID,
    module_id: UUID,
    plan: str,
    billing_period: BillingPeriod,
    now: datetime,
) -> Subscription:
    """Make (org, module) an active paid subscription on ``plan``.

    One Subscription row per (org, module) is reused; the entitlement row
    loses any trial or hard expiry.
    """
    await tx.orgs.lock(org_id)
    existing = await tx.billing.get_subscription_for(org_id, module_id)
    subscription = Subscription(
        id=existing.id if existing is not None else uuid4(),
        org_id=org_id,
        module_id=module_id,
        plan=plan,
        status=SubscriptionStatus.ACTIVE,
        current_period_start=now,
        current_period_end=billing_period.period_end(now),
        cancel_at_period_end=False,
        canceled_at=None,
    )
    subscription = await tx.billing.upsert_subscription(subscription)
    await upsert_entitlement(
        tx,
        org_id,
        module_id,
        is_enabled=True,
        plan=plan,
        expires_at=None,
        trial_ends_at=None,
    )
    SUBSCRIPTION_EVENTS.labels(event="activated").inc()
    return subscription


class SubscriptionService:
    def __init__(
        self,
        store: Store,
        settings: Settings,
        *,
        payment_provider: PaymentProvider | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._provider = payment_provider
        self._notifier = notifier

    async def _price_for(
        self, module_key: str, plan: str, billing_period: BillingPeriod
    ) -> tuple[Module, ModulePrice]:
        async with self._store.transaction() as tx:
            module = await tx.modules.get_by_key(module_key)
            if module is None:
                raise NotFoundError(f"Module {module_key!r} not found")
            price = await tx.billing.get_price(module.id, plan, billing_period)
        if price is None:
            raise NotFoundError("Pricing not found for this plan and period")
        return module, price

    async def subscribe(
        self,
        org_id: UUID,
        module_key: str,
        plan: str,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
        *,
        user_id: UUID | None = None,
    ) -> SubscribeResult:
        module, price = await self._price_for(module_key, plan, billing_period)

        if self._provider is not None:
            try:
                invoice = await self._provider.create_invoice(
                    amount=price.price_cents,
                    currency=price.currency,
                    description=f"Subscription: {module.name} - {plan} plan ({billing_period.value})",
                    callback_url=f"{self._settings.api_url}/v1/billing/payment-callback",
                    success_url=(
                        f"{self._settings.frontend_url}/dashboard/billing/subscriptions?payment=success"
                    ),
                    metadata={
                        "org_id": str(org_id),
                        "module_key": module.key,
                        "plan": plan,
                        "billing_period": billing_period.value,
                        "user_id": str(user_id) if user_id else None,
                    },
                )
            except PaymentProviderError:
                logger.warning(
                    "Invoice creation failed, activating directly org=%s module=%s",
                    org_id,
                    module.key,
                )
            else:
                payment = Payment(
                    id=uuid4(),
                    org_id=org_id,
                    module_id=module.id,
                    plan=plan,
                    billing_period=billing_period,
                    amount_cents=price.price_cents,
                    currency=price.currency,
                    status=PaymentStatus.PENDING,
                    provider=self._provider.name,
                    provider_ref=invoice.id,
                    invoice_url=invoice.url,
                    created_at=utcnow(),
                )
                async with self._store.transaction() as tx:
                    await tx.billing.add_payment(payment)
                SUBSCRIPTION_EVENTS.labels(event="pending").inc()
                logger.info(
                    "Subscription pending payment org=%s module=%s plan=%s invoice=%s",
                    org_id,
                    module.key,
                    plan,
                    invoice.id,
                )
                return SubscribeResult(payment=payment, invoice_url=invoice.url)

        now = utcnow()
        async with self._store.transaction() as tx:
            subscription = await activate_subscription(
                tx, org_id, module.id, plan, billing_period, now
            )
            payment = Payment(
                id=uuid4(),
                org_id=org_id,
                module_id=module.id,
                plan=plan,
                billing_period=billing_period,
                amount_cents=price.price_cents,
                currency=price.currency,
                status=PaymentStatus.SUCCEEDED,
                provider="manual",
                subscription_id=subscription.id,
                paid_at=now,
                created_at=now,
            )
            await tx.billing.add_payment(payment)
        logger.info(
            "Subscription activated org=%s module=%s plan=%s period=%s until=%s",
            org_id,
            module.key,
            plan,
            billing_period.value,
            subscription.current_period_end.isoformat(),
        )
        await self._notify_activated(org_id, module, subscription)
        return SubscribeResult(payment=payment, subscription=subscription)

    async def confirm_payment(self, provider_ref: str) -> SubscribeResult:
        """Webhook path.  Safe to call any number of times per invoice."""
        async with self._store.transaction() as tx:
            payment = await tx.billing.get_payment_by_ref(provider_ref)
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.status is PaymentStatus.SUCCEEDED:
            logger.info("Payment already confirmed ref=%s", provider_ref)
            return await self._settled(payment)
        if self._provider is None:
            raise PaymentProviderError("Payment provider is not configured")

        invoice = await self._provider.get_invoice(provider_ref)
        if not invoice.is_paid:
            logger.info("Payment not completed yet ref=%s status=%s", provider_ref, invoice.status)
            return SubscribeResult(payment=payment, invoice_url=payment.invoice_url)

        now = utcnow()
        async with self._store.transaction() as tx:
            # Re-read under lock: a concurrent delivery may have won.
            payment = await tx.billing.get_payment_by_ref(provider_ref)
            if payment is None:
                raise NotFoundError("Payment not found")
            if payment.status is PaymentStatus.SUCCEEDED:
                subscription = await tx.billing.get_subscription_for(
                    payment.org_id, payment.module_id
                )
                return SubscribeResult(payment=payment, subscription=subscription)
            subscription = await activate_subscription(
                tx, payment.org_id, payment.module_id, payment.plan, payment.billing_period, now
            )
            payment = replace(
                payment,
                status=PaymentStatus.SUCCEEDED,
                subscription_id=subscription.id,
                paid_at=now,
            )
            await tx.billing.update_payment(payment)
            module = await tx.modules.get_module(payment.module_id)

        SUBSCRIPTION_EVENTS.labels(event="payment_confirmed").inc()
        logger.info(
            "Payment confirmed ref=%s org=%s subscription=%s",
            provider_ref,
            payment.org_id,
            subscription.id,
        )
        if module is not None:
            await self._notify_activated(payment.org_id, module, subscription)
        return SubscribeResult(payment=payment, subscription=subscription)

    async def _settled(self, payment: Payment) -> SubscribeResult:
        async with self._store.transaction() as tx:
            subscription = await tx.billing.get_subscription_for(payment.org_id, payment.module_id)
        return SubscribeResult(payment=payment, subscription=subscription)

    async def _owned_subscription(
        self, tx: Transaction, org_id: UUID, subscription_id: UUID
    ) -> Subscription:
        subscription = await tx.billing.get_subscription(subscription_id)
        if subscription is None or subscription.org_id != org_id:
            raise NotFoundError("Subscription not found")
        return subscription

    async def cancel(
        self, org_id: UUID, subscription_id: UUID, *, at_period_end: bool = False
    ) -> Subscription:
        now = utcnow()
        async with self._store.transaction() as tx:
            await tx.orgs.lock(org_id)
            subscription = await self._owned_subscription(tx, org_id, subscription_id)
            if subscription.is_canceled:
                raise ConflictError("Subscription is already canceled")

            if at_period_end:
                subscription = await tx.billing.upsert_subscription(
                    replace(subscription, cancel_at_period_end=True)
                )
            else:
                subscription = await tx.billing.upsert_subscription(
                    replace(
                        subscription,
                        status=SubscriptionStatus.CANCELED,
                        canceled_at=now,
                        cancel_at_period_end=False,
                    )
                )
                org_module = await tx.modules.get_org_module(org_id, subscription.module_id)
                if org_module is not None:
                    await tx.modules.upsert_org_module(replace(org_module, is_enabled=False))

        SUBSCRIPTION_EVENTS.labels(event="canceled").inc()
        logger.info(
            "Subscription canceled org=%s subscription=%s at_period_end=%s",
            org_id,
            subscription_id,
            at_period_end,
        )
        return subscription

    async def change_plan(
        self,
        org_id: UUID,
        subscription_id: UUID,
        plan: str,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
    ) -> Subscription:
        async with self._store.transaction() as tx:
            await tx.orgs.lock(org_id)
            subscription = await self._owned_subscription(tx, org_id, subscription_id)
            if subscription.is_canceled:
                raise ConflictError("Cannot change plan for canceled subscription")
            if await tx.billing.get_price(subscription.module_id, plan, billing_period) is None:
                raise NotFoundError("Pricing not found for this plan and period")
            subscription = await tx.billing.upsert_subscription(replace(subscription, plan=plan))
            org_module = await tx.modules.get_org_module(org_id, subscription.module_id)
            if org_module is not None:
                await tx.modules.upsert_org_module(replace(org_module, plan=plan))

        SUBSCRIPTION_EVENTS.labels(event="plan_changed").inc()
        logger.info(
            "Subscription plan changed org=%s subscription=%s plan=%s", org_id, subscription_id, plan
        )
        return subscription

    async def list_subscriptions(self, org_id: UUID) -> list[SubscriptionView]:
        views: list[SubscriptionView] = []
        async with self._store.transaction() as tx:
            for subscription in await tx.billing.list_subscriptions(org_id):
                module = await tx.modules.get_module(subscription.module_id)
                if module is not None:
                    views.append(SubscriptionView(subscription=subscription, module=module))
        views.sort(key=lambda v: v.module.key)
        return views

    async def list_payments(self, org_id: UUID) -> list[Payment]:
        async with self._store.transaction() as tx:
            return await tx.billing.list_payments(org_id)

    async def catalog(self, org_id: UUID) -> list[CatalogEntry]:
        """Active modules with their price tiers and the org's current row."""
        entries: list[CatalogEntry] = []
        async with self._store.transaction() as tx:
            for module in await tx.modules.list_modules():
                if not module.is_active:
                    continue
                prices = await tx.billing.list_prices(module.id)
                org_module = await tx.modules.get_org_module(org_id, module.id)
                entries.append(
                    CatalogEntry(module=module, prices=tuple(prices), org_module=org_module)
                )
        return entries

    async def _notify_activated(
        self, org_id: UUID, module: Module, subscription: Subscription
    ) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify(
            "subscription_activated",
            {
                "org_id": str(org_id),
                "module_key": module.key,
                "plan": subscription.plan,
                "current_period_end": subscription.current_period_end.isoformat(),
            },
        )
