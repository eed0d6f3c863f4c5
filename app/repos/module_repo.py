from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.module import Module, OrgModule


class ModuleRepo(Protocol):
    async def add_module(self, module: Module) -> None: ...
    async def get_module(self, module_id: UUID) -> Module | None: ...
    async def get_by_key(self, key: str) -> Module | None: ...
    async def list_modules(self) -> list[Module]: ...
    async def set_module_active(self, module_id: UUID, is_active: bool) -> Module | None: ...
    async def get_org_module(self, org_id: UUID, module_id: UUID) -> OrgModule | None: ...
    async def list_org_modules(self, org_id: UUID) -> list[OrgModule]: ...
    async def upsert_org_module(self, org_module: OrgModule) -> OrgModule:
        """Insert or overwrite the row for (org_id, module_id); the stored id wins."""
        ...

    async def create_org_module_if_absent(self, org_module: OrgModule) -> bool: ...


class InMemoryModuleRepo:
    def __init__(self) -> None:
        self._modules: dict[UUID, Module] = {}
        self._org_modules: dict[tuple[UUID, UUID], OrgModule] = {}

    async def add_module(self, module: Module) -> None:
        if any(m.key == module.key for m in self._modules.values()):
            raise ValueError("module key already exists")
        self._modules[module.id] = module

    async def get_module(self, module_id: UUID) -> Module | None:
        return self._modules.get(module_id)

    async def get_by_key(self, key: str) -> Module | None:
        for module in self._modules.values():
            if module.key == key:
                return module
        return None

    async def list_modules(self) -> list[Module]:
        return sorted(self._modules.values(), key=lambda m: m.key)

    async def set_module_active(self, module_id: UUID, is_active: bool) -> Module | None:
        module = self._modules.get(module_id)
        if module is None:
            return None
        updated = replace(module, is_active=is_active)
        self._modules[module_id] = updated
        return updated

    async def get_org_module(self, org_id: UUID, module_id: UUID) -> OrgModule | None:
        return self._org_modules.get((org_id, module_id))

    async def list_org_modules(self, org_id: UUID) -> list[OrgModule]:
        return [om for (o_id, _), om in self._org_modules.items() if o_id == org_id]

    async def upsert_org_module(self, org_module: OrgModule) -> OrgModule:
        key = (org_module.org_id, org_module.module_id)
        existing = self._org_modules.get(key)
        stored = replace(org_module, id=existing.id) if existing else org_module
        self._org_modules[key] = stored
        return stored

    async def create_org_module_if_absent(self, org_module: OrgModule) -> bool:
        key = (org_module.org_id, org_module.module_id)
        if key in self._org_modules:
            return False
        self._org_modules[key] = org_module
        return True
