"""UI manifests for licensable modules and their permission filter."""

from __future__ import annotations

from dataclasses import dataclass, replace

from app.models.rbac import PermissionSet


@dataclass(frozen=True, slots=True)
class SidebarItem:
    label: str
    path: str
    icon: str | None = None
    permission: str | None = None  # None = visible to every member


@dataclass(frozen=True, slots=True)
class DashboardWidget:
    key: str
    title: str
    permission: str | None = None


@dataclass(frozen=True, slots=True)
class ModuleManifest:
    key: str
    name: str
    icon: str
    sidebar_items: tuple[SidebarItem, ...] = ()
    dashboard_widgets: tuple[DashboardWidget, ...] = ()


def _visible(permission: str | None, permissions: PermissionSet) -> bool:
    return permission is None or permission in permissions


def filter_manifest(
    manifest: ModuleManifest,
    permissions: PermissionSet,
    *,
    is_super_admin: bool = False,
) -> ModuleManifest:
    """Return a copy of ``manifest`` keeping only entries the caller may see.

    Order is preserved.  The registry's manifest is never mutated.
    """
    if is_super_admin:
        return manifest
    return replace(
        manifest,
        sidebar_items=tuple(
            item
            for item in manifest.sidebar_items
            if _visible(item.permission, permissions)
        ),
        dashboard_widgets=tuple(
            widget
            for widget in manifest.dashboard_widgets
            if _visible(widget.permission, permissions)
        ),
    )
