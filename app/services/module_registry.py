"""Read-only registry of module manifests.

Built once at startup by ``build_registry()`` and handed to the
authorization gate and the /me/modules endpoint.  Nothing mutates it after
construction; callers that need a per-user view go through
``filter_manifest``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from app.models.manifest import DashboardWidget, ModuleManifest, SidebarItem


class ModuleRegistry:
    def __init__(self, manifests: Iterable[ModuleManifest]) -> None:
        by_key: dict[str, ModuleManifest] = {}
        for manifest in manifests:
            if manifest.key in by_key:
                raise ValueError(f"duplicate module manifest {manifest.key!r}")
            by_key[manifest.key] = manifest
        self._by_key: Mapping[str, ModuleManifest] = MappingProxyType(by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self) -> Iterator[ModuleManifest]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def get(self, key: str) -> ModuleManifest | None:
        return self._by_key.get(key)

    def keys(self) -> list[str]:
        return list(self._by_key)


def _items(*rows: tuple[str, str, str, str | None]) -> tuple[SidebarItem, ...]:
    return tuple(
        SidebarItem(label=label, path=path, icon=icon, permission=perm)
        for label, path, icon, perm in rows
    )


DEFAULT_MANIFESTS: tuple[ModuleManifest, ...] = (
    ModuleManifest(
        key="hr",
        name="HR & Employees",
        icon="users",
        sidebar_items=_items(
            ("Employees", "/hr/employees", "users", "hr.employees.view"),
            ("Leave", "/hr/leave", "calendar", "hr.leave.view"),
            ("Attendance", "/hr/attendance", "clock", "hr.attendance.view"),
            ("Payroll", "/hr/payroll", "wallet", "hr.payroll.view"),
            ("Recruitment", "/hr/recruitment", "user-plus", "hr.recruitment.view"),
            ("Performance", "/hr/performance", "trending-up", "hr.performance.view"),
            ("Tasks", "/hr/tasks", "check-square", "hr.employees.view"),
        ),
        dashboard_widgets=(
            DashboardWidget(key="hr.headcount", title="Headcount", permission="hr.employees.view"),
            DashboardWidget(key="hr.pending_leave", title="Pending Leave", permission="hr.leave.view"),
        ),
    ),
    ModuleManifest(
        key="ticketing",
        name="Ticketing System",
        icon="ticket",
        sidebar_items=_items(
            ("Tickets", "/ticketing/tickets", "ticket", "ticketing.tickets.view"),
            ("Categories", "/ticketing/categories", "tag", "ticketing.tickets.view"),
            ("Templates", "/ticketing/templates", "file-text", "ticketing.tickets.view"),
            ("Canned Replies", "/ticketing/canned-replies", "message-square", "ticketing.tickets.view"),
            ("Reports", "/ticketing/reports", "bar-chart", "ticketing.tickets.view"),
        ),
        dashboard_widgets=(
            DashboardWidget(key="ticketing.open", title="Open Tickets", permission="ticketing.tickets.view"),
        ),
    ),
    ModuleManifest(
        key="billing",
        name="Billing & Subscriptions",
        icon="credit-card",
        sidebar_items=_items(
            ("Subscriptions", "/billing/subscriptions", "credit-card", "billing.subscriptions.view"),
            ("Modules", "/billing/modules", "grid", "billing.subscriptions.view"),
        ),
    ),
    ModuleManifest(
        key="marketplace",
        name="Marketplace",
        icon="shopping-cart",
        sidebar_items=_items(
            ("Products", "/marketplace/products", "box", "marketplace.products.view"),
            ("Categories", "/marketplace/categories", "tag", "marketplace.categories.view"),
            ("Orders", "/marketplace/orders", "shopping-bag", "marketplace.orders.view"),
            ("Storefront", "/marketplace/storefront", "globe", "marketplace.products.view"),
        ),
        dashboard_widgets=(
            DashboardWidget(key="marketplace.products", title="Total Products", permission="marketplace.products.view"),
            DashboardWidget(key="marketplace.pending_orders", title="Pending Orders", permission="marketplace.orders.view"),
        ),
    ),
    ModuleManifest(
        key="inventory",
        name="Inventory",
        icon="package",
        sidebar_items=_items(
            ("Items", "/inventory/items", "package", "inventory.items.view"),
            ("Categories", "/inventory/categories", "tag", "inventory.categories.view"),
            ("Assignments", "/inventory/assignments", "user-check", "inventory.assignments.view"),
            ("Returns", "/inventory/returns", "corner-up-left", "inventory.returns.view"),
            ("Damages", "/inventory/damages", "alert-triangle", "inventory.damages.view"),
            ("Swaps", "/inventory/swaps", "repeat", "inventory.swaps.view"),
        ),
    ),
    ModuleManifest(
        key="pmo",
        name="PMO Portal",
        icon="briefcase",
        sidebar_items=_items(
            ("Projects", "/pmo/projects", "briefcase", "pmo.projects.view"),
            ("Deliverables", "/pmo/deliverables", "check-circle", "pmo.deliverables.view"),
            ("Budget", "/pmo/budget", "dollar-sign", "pmo.budget.view"),
            ("Risks", "/pmo/risks", "alert-octagon", "pmo.risks.view"),
            ("Issues", "/pmo/issues", "alert-circle", "pmo.issues.view"),
            ("Milestones", "/pmo/milestones", "flag", "pmo.projects.view"),
        ),
        dashboard_widgets=(
            DashboardWidget(key="pmo.active_projects", title="Active Projects", permission="pmo.projects.view"),
        ),
    ),
    ModuleManifest(
        key="documents",
        name="Documents",
        icon="folder",
        sidebar_items=_items(
            ("Library", "/documents/library", "book", "documents.view"),
            ("Folders", "/documents/folders", "folder", "documents.folders.view"),
            ("Shared", "/documents/shared", "share-2", "documents.view"),
            ("Categories", "/documents/categories", "tag", "documents.categories.view"),
        ),
    ),
    ModuleManifest(
        key="sales",
        name="Sales & CRM",
        icon="trending-up",
        sidebar_items=_items(
            ("Leads", "/sales/leads", "user-plus", "sales.leads.view"),
            ("Opportunities", "/sales/opportunities", "target", "sales.opportunities.view"),
            ("Contacts", "/sales/contacts", "users", "sales.contacts.view"),
            ("Accounts", "/sales/accounts", "building", "sales.accounts.view"),
            ("Quotes", "/sales/quotes", "file-text", "sales.quotes.view"),
            ("Activities", "/sales/activities", "activity", "sales.activities.view"),
            ("Pipeline", "/sales/pipeline", "git-branch", "sales.opportunities.view"),
        ),
    ),
    ModuleManifest(
        key="membership",
        name="Membership Management",
        icon="id-card",
        sidebar_items=_items(
            ("Members", "/membership/members", "id-card", "membership.members.view"),
            ("Types", "/membership/types", "layers", "membership.types.view"),
        ),
    ),
)


def build_registry(manifests: Iterable[ModuleManifest] = DEFAULT_MANIFESTS) -> ModuleRegistry:
    return ModuleRegistry(manifests)
