"""Reference catalog: modules, permissions, global roles, prices, bundles.

RUN:  python -m app.db.seed

The in-memory store is loaded by the application lifespan on startup.
Against PostgreSQL, run this module once after ``alembic upgrade head``.
Every insert is skipped when the key already exists, so re-running it is
harmless.
"""

from __future__ import annotations

import asyncio
import logging

from app.core.config import SETTINGS
from app.models.billing import BillingPeriod, Bundle, BundleModule, ModulePrice
from app.models.module import Module
from app.models.rbac import Permission, Role
from app.models.user import User
from app.repos.store import Store, Transaction

logger = logging.getLogger(__name__)

MODULES: tuple[tuple[str, str, str], ...] = (
    (
        "hr",
        "HR & Employees",
        "Human resources and employee management including attendance, leave, "
        "payroll, recruitment, and performance reviews",
    ),
    ("ticketing", "Ticketing System", "Support ticket management and customer service"),
    ("billing", "Billing & Subscriptions", "Billing and subscription management"),
    ("marketplace", "Marketplace", "E-commerce marketplace with products, categories, and orders"),
    ("inventory", "Inventory Management", "Inventory tracking, assignments, returns, damages, and swaps"),
    (
        "pmo",
        "PMO Portal",
        "Project Management Office portal for managing projects, deliverables, "
        "budget, risks, and issues",
    ),
    ("documents", "Document Management", "Document library, folders, sharing, and categories"),
    (
        "sales",
        "Sales & CRM",
        "Sales pipeline, leads, opportunities, contacts, accounts, quotes, and activities",
    ),
    ("membership", "Membership Management", "Membership types, members, announcements, and messaging"),
)

_CRUD = ("view", "create", "edit", "delete")

# resource prefix -> actions
_PERMISSION_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("users", ("view", "create", "manage", "delete")),
    ("organizations", ("update", "delete")),
    ("hr.employees", _CRUD),
    ("hr.leave", ("view", "create", "edit", "approve", "manage")),
    ("hr.attendance", _CRUD),
    ("hr.payroll", _CRUD),
    ("hr.recruitment", _CRUD),
    ("hr.performance", _CRUD),
    ("hr.decisions", ("view", "create")),
    ("ticketing.tickets", _CRUD),
    ("billing.subscriptions", ("view", "manage")),
    ("marketplace.products", _CRUD),
    ("marketplace.categories", _CRUD),
    ("marketplace.orders", _CRUD),
    ("inventory.items", _CRUD),
    ("inventory.categories", _CRUD),
    ("inventory.assignments", _CRUD),
    ("inventory.returns", _CRUD),
    ("inventory.damages", _CRUD),
    ("inventory.swaps", _CRUD),
    ("pmo.projects", _CRUD),
    ("pmo.deliverables", _CRUD),
    ("pmo.budget", _CRUD),
    ("pmo.risks", _CRUD),
    ("pmo.issues", _CRUD),
    ("pmo.client_managers", ("view", "create", "delete")),
    ("documents", _CRUD + ("share",)),
    ("documents.folders", _CRUD),
    ("documents.categories", _CRUD),
    ("sales.leads", _CRUD),
    ("sales.opportunities", _CRUD),
    ("sales.contacts", _CRUD),
    ("sales.accounts", _CRUD),
    ("sales.quotes", _CRUD),
    ("sales.activities", _CRUD),
    ("membership.types", _CRUD),
    ("membership.members", _CRUD),
    ("membership.announcements", _CRUD),
    ("membership.messages", ("view", "create")),
)

PERMISSION_KEYS: tuple[str, ...] = tuple(
    f"{prefix}.{action}" for prefix, actions in _PERMISSION_GROUPS for action in actions
)

ROLES: tuple[tuple[str, str], ...] = (
    ("owner", "Owner"),
    ("admin", "Administrator"),
    ("member", "Member"),
    ("hr.manager", "HR Manager"),
    ("hr.viewer", "HR Viewer"),
    ("ticketing.agent", "Ticketing Agent"),
    ("ticketing.viewer", "Ticketing Viewer"),
    ("marketplace.manager", "Marketplace Manager"),
    ("marketplace.viewer", "Marketplace Viewer"),
    ("inventory.manager", "Inventory Manager"),
    ("inventory.viewer", "Inventory Viewer"),
    ("pmo.manager", "PMO Manager"),
    ("pmo.viewer", "PMO Viewer"),
    ("pmo.client_manager", "Client Project Manager"),
)

# Admins manage everything except the organization's own billing.
_ADMIN_EXCLUDED = frozenset({"billing.subscriptions.manage"})

_MANAGER_PREFIXES = {
    "hr.manager": "hr.",
    "ticketing.agent": "ticketing.",
    "marketplace.manager": "marketplace.",
    "inventory.manager": "inventory.",
    "pmo.manager": "pmo.",
}

_SINGLE_VIEW_GRANTS = {
    "hr.viewer": "hr.employees.view",
    "ticketing.viewer": "ticketing.tickets.view",
}

_VIEWER_PREFIXES = {
    "marketplace.viewer": "marketplace.",
    "inventory.viewer": "inventory.",
    "pmo.viewer": "pmo.",
}


def grants_for(role_key: str) -> list[str]:
    """Permission keys granted to a catalog role."""
    if role_key == "owner":
        return list(PERMISSION_KEYS)
    if role_key == "admin":
        return [k for k in PERMISSION_KEYS if k not in _ADMIN_EXCLUDED]
    if role_key in _MANAGER_PREFIXES:
        prefix = _MANAGER_PREFIXES[role_key]
        return [k for k in PERMISSION_KEYS if k.startswith(prefix)]
    if role_key in _SINGLE_VIEW_GRANTS:
        return [_SINGLE_VIEW_GRANTS[role_key]]
    if role_key in _VIEWER_PREFIXES:
        prefix = _VIEWER_PREFIXES[role_key]
        return [k for k in PERMISSION_KEYS if k.startswith(prefix) and k.endswith(".view")]
    return []


# module key -> (pro monthly, ultra monthly); yearly is ten months
PRICES: dict[str, tuple[int, int]] = {
    "hr": (9900, 19900),
    "ticketing": (14900, 29900),
    "marketplace": (19900, 39900),
    "inventory": (14900, 29900),
    "pmo": (24900, 49900),
    "documents": (9900, 19900),
    "sales": (19900, 39900),
    "membership": (9900, 19900),
    "billing": (0, 0),
}

_PLAN_SEATS = {"basic": 3, "pro": 10, "ultra": None}

# name -> (price_cents, max_users, max_employees, ((module_key, plan), ...))
BUNDLES: dict[str, tuple[int, int | None, int | None, tuple[tuple[str, str], ...]]] = {
    "Starter Bundle": (19900, 10, 25, (("hr", "pro"), ("ticketing", "pro"))),
    "Business Bundle": (
        49900,
        50,
        200,
        (("hr", "pro"), ("ticketing", "pro"), ("marketplace", "pro"), ("inventory", "pro")),
    ),
    "Enterprise Bundle": (
        99900,
        None,
        None,
        tuple(
            (key, "ultra")
            for key in ("hr", "ticketing", "marketplace", "inventory", "pmo", "documents", "sales", "membership")
        ),
    ),
}


def _permission_name(key: str) -> str:
    *resource, action = key.split(".")
    return f"{action.title()} {' '.join(resource[-1:]).replace('_', ' ').title()}"


async def _load_modules(tx: Transaction) -> dict[str, Module]:
    modules: dict[str, Module] = {}
    for key, name, description in MODULES:
        module = await tx.modules.get_by_key(key)
        if module is None:
            module = Module.new(key=key, name=name, description=description)
            await tx.modules.add_module(module)
        modules[key] = module
    return modules


async def _load_rbac(tx: Transaction) -> tuple[int, int]:
    permissions: dict[str, Permission] = {}
    for key in PERMISSION_KEYS:
        permission = await tx.rbac.get_permission_by_key(key)
        if permission is None:
            permission = Permission.new(key=key, name=_permission_name(key))
            await tx.rbac.add_permission(permission)
        permissions[key] = permission

    grant_count = 0
    for role_key, role_name in ROLES:
        role = await tx.rbac.get_role_by_key(role_key)
        if role is None:
            role = Role.new(key=role_key, name=role_name)
            await tx.rbac.add_role(role)
        for permission_key in grants_for(role_key):
            await tx.rbac.grant(role.id, permissions[permission_key].id)
            grant_count += 1
    return len(permissions), grant_count


async def _load_prices(tx: Transaction, modules: dict[str, Module]) -> int:
    added = 0
    for module_key, (pro, ultra) in PRICES.items():
        module = modules[module_key]
        monthly = {"basic": 0, "pro": pro, "ultra": ultra}
        for plan, price in monthly.items():
            for period in BillingPeriod:
                if await tx.billing.get_price(module.id, plan, period) is not None:
                    continue
                cents = price if period is BillingPeriod.MONTHLY else price * 10
                await tx.billing.add_price(
                    ModulePrice.new(
                        module_id=module.id,
                        plan=plan,
                        billing_period=period,
                        price_cents=cents,
                        max_seats=_PLAN_SEATS[plan],
                    )
                )
                added += 1
    return added


async def _load_bundles(tx: Transaction, modules: dict[str, Module]) -> int:
    existing = {b.name for b in await tx.billing.list_bundles()}
    added = 0
    for name, (price_cents, max_users, max_employees, members) in BUNDLES.items():
        if name in existing:
            continue
        await tx.billing.add_bundle(
            Bundle.new(
                name=name,
                modules=tuple(
                    BundleModule(module_id=modules[key].id, plan=plan) for key, plan in members
                ),
                max_users=max_users,
                max_employees=max_employees,
                price_cents=price_cents,
            )
        )
        added += 1
    return added


async def load_catalog(store: Store) -> None:
    """Insert the reference catalog, skipping rows that already exist."""
    async with store.transaction() as tx:
        modules = await _load_modules(tx)
        permission_count, grant_count = await _load_rbac(tx)
        price_count = await _load_prices(tx, modules)
        bundle_count = await _load_bundles(tx, modules)
    logger.info(
        "Catalog loaded  modules=%d permissions=%d grants=%d new_prices=%d new_bundles=%d",
        len(modules),
        permission_count,
        grant_count,
        price_count,
        bundle_count,
    )


async def ensure_super_admin(store: Store, email: str, password_hash: str) -> User:
    """Create the platform operator account unless the email is taken."""
    async with store.transaction() as tx:
        user = await tx.users.get_by_email(email)
        if user is not None:
            return user
        user = User.new(
            email=email, password_hash=password_hash, name="Super Admin", is_super_admin=True
        )
        await tx.users.add(user)
    logger.info("Super-admin account created email=%s", user.email)
    return user


async def _main() -> None:
    from app.core.logging import setup_logging
    from app.db.engine import async_session_factory, engine
    from app.repos.store import PgStore

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    if async_session_factory is None or engine is None:
        raise SystemExit("DATABASE_URL is not set; the in-memory store is seeded on startup")
    try:
        store = PgStore(async_session_factory)
        await load_catalog(store)
        if SETTINGS.super_admin_email and SETTINGS.super_admin_password:
            from app.services.auth_service import hash_password

            await ensure_super_admin(
                store, SETTINGS.super_admin_email, hash_password(SETTINGS.super_admin_password)
            )
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(_main())
