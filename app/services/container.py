"""Wiring of store, registry and services.

``build_services`` is called once by the application lifespan (and by the
test fixtures with an in-memory store).  Route handlers reach the result
through ``app.state.services``.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings
from app.repos.store import InMemoryStore, PgStore, Store
from app.services.assignment_engine import AssignmentEngine
from app.services.auth_service import AuthService
from app.services.authorization_gate import AuthorizationGate
from app.services.employee_service import EmployeeService
from app.services.entitlement_service import EntitlementService
from app.services.membership_service import MembershipService
from app.services.module_registry import ModuleRegistry, build_registry
from app.services.notifications import NotificationDispatcher
from app.services.onboarding_service import OnboardingService
from app.services.payment_provider import PaymentProvider, build_payment_provider
from app.services.permission_resolver import PermissionResolver
from app.services.profile_service import ProfileService
from app.services.subscription_service import SubscriptionService
from app.services.task_queue import TaskQueue, build_task_queue


@dataclass(frozen=True)
class Services:
    settings: Settings
    store: Store
    registry: ModuleRegistry
    queue: TaskQueue
    resolver: PermissionResolver
    entitlements: EntitlementService
    gate: AuthorizationGate
    assignments: AssignmentEngine
    subscriptions: SubscriptionService
    memberships: MembershipService
    employees: EmployeeService
    onboarding: OnboardingService
    auth: AuthService
    profiles: ProfileService


def default_store() -> Store:
    from app.db.engine import async_session_factory

    if async_session_factory is None:
        return InMemoryStore()
    return PgStore(async_session_factory)


def default_queue() -> TaskQueue:
    from app.db.redis import redis_pool

    return build_task_queue(redis_pool)


def build_services(
    settings: Settings,
    *,
    store: Store | None = None,
    registry: ModuleRegistry | None = None,
    queue: TaskQueue | None = None,
    payment_provider: PaymentProvider | None = None,
) -> Services:
    store = store if store is not None else default_store()
    registry = registry if registry is not None else build_registry()
    queue = queue if queue is not None else default_queue()
    if payment_provider is None:
        payment_provider = build_payment_provider(settings)
    notifier = NotificationDispatcher(queue)

    return Services(
        settings=settings,
        store=store,
        registry=registry,
        queue=queue,
        resolver=PermissionResolver(store),
        entitlements=EntitlementService(store),
        gate=AuthorizationGate(store, registry),
        assignments=AssignmentEngine(store),
        subscriptions=SubscriptionService(
            store, settings, payment_provider=payment_provider, notifier=notifier
        ),
        memberships=MembershipService(store, notifier=notifier),
        employees=EmployeeService(store),
        onboarding=OnboardingService(store, trial_days=settings.trial_days, notifier=notifier),
        auth=AuthService(store),
        profiles=ProfileService(store, registry),
    )
