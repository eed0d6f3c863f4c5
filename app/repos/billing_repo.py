from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.billing import (
    BillingPeriod,
    Bundle,
    ModulePrice,
    Payment,
    Subscription,
)


class BillingRepo(Protocol):
    async def add_price(self, price: ModulePrice) -> None: ...
    async def get_price(
        self, module_id: UUID, plan: str, billing_period: BillingPeriod
    ) -> ModulePrice | None: ...
    async def list_prices(self, module_id: UUID | None = None) -> list[ModulePrice]: ...

    async def get_subscription(self, subscription_id: UUID) -> Subscription | None: ...
    async def get_subscription_for(
        self, org_id: UUID, module_id: UUID
    ) -> Subscription | None: ...
    async def upsert_subscription(self, subscription: Subscription) -> Subscription: ...
    async def list_subscriptions(self, org_id: UUID) -> list[Subscription]: ...

    async def add_bundle(self, bundle: Bundle) -> None: ...
    async def get_bundle(self, bundle_id: UUID) -> Bundle | None: ...
    async def list_bundles(self) -> list[Bundle]: ...

    async def add_payment(self, payment: Payment) -> None: ...
    async def get_payment_by_ref(self, provider_ref: str) -> Payment | None: ...
    async def update_payment(self, payment: Payment) -> None: ...
    async def list_payments(self, org_id: UUID) -> list[Payment]: ...


class InMemoryBillingRepo:
    def __init__(self) -> None:
        self._prices: dict[tuple[UUID, str, BillingPeriod], ModulePrice] = {}
        self._subscriptions: dict[tuple[UUID, UUID], Subscription] = {}
        self._bundles: dict[UUID, Bundle] = {}
        self._payments: dict[UUID, Payment] = {}

    async def add_price(self, price: ModulePrice) -> None:
        key = (price.module_id, price.plan, price.billing_period)
        if key in self._prices:
            raise ValueError("price tier already exists")
        self._prices[key] = price

    async def get_price(
        self, module_id: UUID, plan: str, billing_period: BillingPeriod
    ) -> ModulePrice | None:
        return self._prices.get((module_id, plan, billing_period))

    async def list_prices(self, module_id: UUID | None = None) -> list[ModulePrice]:
        return [
            p
            for p in self._prices.values()
            if module_id is None or p.module_id == module_id
        ]

    async def get_subscription(self, subscription_id: UUID) -> Subscription | None:
        for sub in self._subscriptions.values():
            if sub.id == subscription_id:
                return sub
        return None

    async def get_subscription_for(
        self, org_id: UUID, module_id: UUID
    ) -> Subscription | None:
        return self._subscriptions.get((org_id, module_id))

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        key = (subscription.org_id, subscription.module_id)
        existing = self._subscriptions.get(key)
        stored = replace(subscription, id=existing.id) if existing else subscription
        self._subscriptions[key] = stored
        return stored

    async def list_subscriptions(self, org_id: UUID) -> list[Subscription]:
        return [s for (o_id, _), s in self._subscriptions.items() if o_id == org_id]

    async def add_bundle(self, bundle: Bundle) -> None:
        self._bundles[bundle.id] = bundle

    async def get_bundle(self, bundle_id: UUID) -> Bundle | None:
        return self._bundles.get(bundle_id)

    async def list_bundles(self) -> list[Bundle]:
        return sorted(self._bundles.values(), key=lambda b: b.name)

    async def add_payment(self, payment: Payment) -> None:
        if payment.provider_ref is not None and any(
            p.provider_ref == payment.provider_ref for p in self._payments.values()
        ):
            raise ValueError("provider reference already recorded")
        self._payments[payment.id] = payment

    async def get_payment_by_ref(self, provider_ref: str) -> Payment | None:
        for payment in self._payments.values():
            if payment.provider_ref == provider_ref:
                return payment
        return None

    async def update_payment(self, payment: Payment) -> None:
        if payment.id not in self._payments:
            raise KeyError("payment not found")
        self._payments[payment.id] = payment

    async def list_payments(self, org_id: UUID) -> list[Payment]:
        return [p for p in self._payments.values() if p.org_id == org_id]
