from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID, uuid4

ORG_ADMIN_ROLE_KEYS = frozenset({"owner", "admin"})


@dataclass(frozen=True, slots=True)
class Role:
    """A named bundle of permissions.

    Keys are namespaced as ``<module_key>.<scope>`` (e.g. ``hr.manager``).
    A key without a dot (``owner``, ``admin``, ``member``) is an org-level
    role.  ``org_id`` is None for the global role catalog.
    """

    id: UUID
    key: str
    name: str
    org_id: UUID | None = None

    @staticmethod
    def new(*, key: str, name: str, org_id: UUID | None = None) -> Role:
        return Role(id=uuid4(), key=key, name=name, org_id=org_id)


@dataclass(frozen=True, slots=True)
class Permission:
    id: UUID
    key: str  # e.g. hr.employees.view
    name: str

    @staticmethod
    def new(*, key: str, name: str) -> Permission:
        return Permission(id=uuid4(), key=key, name=name)


@dataclass(frozen=True, slots=True)
class PermissionSet:
    """Resolved permission keys for one membership.

    ``universal`` marks the super-admin set, which contains every key.
    """

    keys: frozenset[str] = frozenset()
    universal: bool = False

    def __contains__(self, key: object) -> bool:
        return self.universal or key in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    def sorted_keys(self) -> list[str]:
        return sorted(self.keys)

    @staticmethod
    def empty() -> PermissionSet:
        return PermissionSet()

    @staticmethod
    def everything(known_keys: Iterable[str] = ()) -> PermissionSet:
        return PermissionSet(keys=frozenset(known_keys), universal=True)
