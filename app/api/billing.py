"""Organization billing: module catalog, subscriptions, payments.

Subscribing needs ``billing.subscriptions.manage`` but no module license;
an organization must be able to buy a module it does not have yet.

POST /v1/billing/payment-callback is called by the payment provider, not
by a user, so it carries no bearer token.  When PAYMENT_WEBHOOK_SECRET is
set the raw body must be signed (hex HMAC-SHA256 in X-Payment-Signature).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from app.api.dependencies import ServicesDep, org_id_of, require_permission
from app.core.errors import UnauthorizedError, ValidationError
from app.models.billing import BillingPeriod, ModulePrice, Payment, Subscription
from app.services.authorization_gate import AuthorizationDecision
from app.services.payment_provider import verify_signature
from app.services.subscription_service import SubscribeResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])

ViewBilling = Annotated[
    AuthorizationDecision, Depends(require_permission("billing.subscriptions.view"))
]
ManageBilling = Annotated[
    AuthorizationDecision, Depends(require_permission("billing.subscriptions.manage"))
]


# --- Schemas ----------------------------------------------------------------


class PriceOut(BaseModel):
    id: str
    plan: str
    billing_period: BillingPeriod
    price_cents: int
    currency: str
    max_seats: int | None

    @classmethod
    def of(cls, price: ModulePrice) -> PriceOut:
        return cls(
            id=str(price.id),
            plan=price.plan,
            billing_period=price.billing_period,
            price_cents=price.price_cents,
            currency=price.currency,
            max_seats=price.max_seats,
        )


class CatalogModuleOut(BaseModel):
    key: str
    name: str
    description: str
    prices: list[PriceOut]
    is_enabled: bool
    plan: str | None


class SubscriptionOut(BaseModel):
    id: str
    module_key: str | None = None
    plan: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    canceled_at: datetime | None

    @classmethod
    def of(cls, subscription: Subscription, module_key: str | None = None) -> SubscriptionOut:
        return cls(
            id=str(subscription.id),
            module_key=module_key,
            plan=subscription.plan,
            status=subscription.status.value,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            canceled_at=subscription.canceled_at,
        )


class PaymentOut(BaseModel):
    id: str
    plan: str
    billing_period: BillingPeriod
    amount_cents: int
    currency: str
    status: str
    provider: str
    provider_ref: str | None
    invoice_url: str | None
    paid_at: datetime | None
    created_at: datetime | None

    @classmethod
    def of(cls, payment: Payment) -> PaymentOut:
        return cls(
            id=str(payment.id),
            plan=payment.plan,
            billing_period=payment.billing_period,
            amount_cents=payment.amount_cents,
            currency=payment.currency,
            status=payment.status.value,
            provider=payment.provider,
            provider_ref=payment.provider_ref,
            invoice_url=payment.invoice_url,
            paid_at=payment.paid_at,
            created_at=payment.created_at,
        )


class SubscribeIn(BaseModel):
    module_key: str
    plan: str
    billing_period: BillingPeriod = BillingPeriod.MONTHLY


class SubscribeOut(BaseModel):
    status: str  # active|pending
    payment: PaymentOut
    subscription: SubscriptionOut | None = None
    invoice_url: str | None = None

    @classmethod
    def of(cls, result: SubscribeResult) -> SubscribeOut:
        return cls(
            status="pending" if result.is_pending else "active",
            payment=PaymentOut.of(result.payment),
            subscription=SubscriptionOut.of(result.subscription) if result.subscription else None,
            invoice_url=result.invoice_url,
        )


class CancelIn(BaseModel):
    cancel_at_period_end: bool = False


class ChangePlanIn(BaseModel):
    plan: str
    billing_period: BillingPeriod = BillingPeriod.MONTHLY


class CallbackOut(BaseModel):
    received: bool = True
    status: str


# --- Endpoints --------------------------------------------------------------


@router.get("/modules", response_model=list[CatalogModuleOut])
async def billing_modules(decision: ViewBilling, services: ServicesDep) -> list[CatalogModuleOut]:
    entries = await services.subscriptions.catalog(org_id_of(decision))
    return [
        CatalogModuleOut(
            key=e.module.key,
            name=e.module.name,
            description=e.module.description,
            prices=[PriceOut.of(p) for p in e.prices],
            is_enabled=e.org_module.is_enabled if e.org_module else False,
            plan=e.org_module.plan if e.org_module else None,
        )
        for e in entries
    ]


@router.get("/subscriptions", response_model=list[SubscriptionOut])
async def list_subscriptions(decision: ViewBilling, services: ServicesDep) -> list[SubscriptionOut]:
    views = await services.subscriptions.list_subscriptions(org_id_of(decision))
    return [SubscriptionOut.of(v.subscription, v.module.key) for v in views]


@router.post("/subscribe", response_model=SubscribeOut)
async def subscribe(
    body: SubscribeIn, decision: ManageBilling, services: ServicesDep
) -> SubscribeOut:
    """Subscribe to a module.

    With a payment provider the result is ``pending`` and carries the
    invoice URL to redirect to; otherwise the module is active at once.
    """
    result = await services.subscriptions.subscribe(
        org_id_of(decision),
        body.module_key,
        body.plan,
        body.billing_period,
        user_id=decision.principal.user_id,
    )
    return SubscribeOut.of(result)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionOut)
async def cancel_subscription(
    subscription_id: UUID,
    decision: ManageBilling,
    services: ServicesDep,
    body: CancelIn | None = None,
) -> SubscriptionOut:
    at_period_end = body.cancel_at_period_end if body is not None else False
    subscription = await services.subscriptions.cancel(
        org_id_of(decision), subscription_id, at_period_end=at_period_end
    )
    return SubscriptionOut.of(subscription)


@router.patch("/subscriptions/{subscription_id}/plan", response_model=SubscriptionOut)
async def change_plan(
    subscription_id: UUID,
    body: ChangePlanIn,
    decision: ManageBilling,
    services: ServicesDep,
) -> SubscriptionOut:
    subscription = await services.subscriptions.change_plan(
        org_id_of(decision), subscription_id, body.plan, body.billing_period
    )
    return SubscriptionOut.of(subscription)


@router.get("/payments", response_model=list[PaymentOut])
async def list_payments(decision: ViewBilling, services: ServicesDep) -> list[PaymentOut]:
    payments = await services.subscriptions.list_payments(org_id_of(decision))
    return [PaymentOut.of(p) for p in payments]


@router.post("/payment-callback", response_model=CallbackOut)
async def payment_callback(
    request: Request,
    services: ServicesDep,
    x_payment_signature: Annotated[str | None, Header()] = None,
) -> CallbackOut:
    raw = await request.body()
    secret = services.settings.payment_webhook_secret
    if secret is not None and not verify_signature(secret, raw, x_payment_signature):
        logger.warning("Payment callback rejected: bad or missing signature")
        raise UnauthorizedError("Invalid webhook signature")

    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise ValidationError("Callback body must be JSON") from None
    invoice_id = None
    if isinstance(payload, dict):
        invoice_id = payload.get("invoice_id") or payload.get("id")
    if not invoice_id:
        raise ValidationError("Callback carries no invoice id")

    result = await services.subscriptions.confirm_payment(str(invoice_id))
    return CallbackOut(status="pending" if result.is_pending else "active")
