"""PostgreSQL implementation of ModuleRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ModuleRow, OrgModuleRow
from app.models.module import Module, OrgModule

_ORG_MODULE_FIELDS = ("is_enabled", "plan", "seats", "expires_at", "trial_ends_at")


class PgModuleRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_module(self, module: Module) -> None:
        self._session.add(
            ModuleRow(
                id=module.id,
                key=module.key,
                name=module.name,
                description=module.description,
                is_active=module.is_active,
            )
        )
        await self._session.flush()

    async def get_module(self, module_id: UUID) -> Module | None:
        stmt = select(ModuleRow).where(ModuleRow.id == module_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_module(row) if row is not None else None

    async def get_by_key(self, key: str) -> Module | None:
        stmt = select(ModuleRow).where(ModuleRow.key == key)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_module(row) if row is not None else None

    async def list_modules(self) -> list[Module]:
        rows = (await self._session.execute(select(ModuleRow).order_by(ModuleRow.key))).scalars()
        return [_row_to_module(r) for r in rows]

    async def set_module_active(self, module_id: UUID, is_active: bool) -> Module | None:
        stmt = update(ModuleRow).where(ModuleRow.id == module_id).values(is_active=is_active)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_module(module_id)

    async def get_org_module(self, org_id: UUID, module_id: UUID) -> OrgModule | None:
        stmt = select(OrgModuleRow).where(
            OrgModuleRow.org_id == org_id, OrgModuleRow.module_id == module_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org_module(row) if row is not None else None

    async def list_org_modules(self, org_id: UUID) -> list[OrgModule]:
        stmt = select(OrgModuleRow).where(OrgModuleRow.org_id == org_id)
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_org_module(r) for r in rows]

    async def upsert_org_module(self, org_module: OrgModule) -> OrgModule:
        values = {f: getattr(org_module, f) for f in _ORG_MODULE_FIELDS}
        stmt = (
            insert(OrgModuleRow)
            .values(
                id=org_module.id,
                org_id=org_module.org_id,
                module_id=org_module.module_id,
                **values,
            )
            .on_conflict_do_update(
                index_elements=[OrgModuleRow.org_id, OrgModuleRow.module_id],
                set_=values,
            )
            .returning(OrgModuleRow)
        )
        row = (
            await self._session.scalars(stmt, execution_options={"populate_existing": True})
        ).one()
        return _row_to_org_module(row)

    async def create_org_module_if_absent(self, org_module: OrgModule) -> bool:
        stmt = (
            insert(OrgModuleRow)
            .values(
                id=org_module.id,
                org_id=org_module.org_id,
                module_id=org_module.module_id,
                **{f: getattr(org_module, f) for f in _ORG_MODULE_FIELDS},
            )
            .on_conflict_do_nothing(
                index_elements=[OrgModuleRow.org_id, OrgModuleRow.module_id]
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_module(row: ModuleRow) -> Module:
    return Module(
        id=row.id,
        key=row.key,
        name=row.name,
        description=row.description or "",
        is_active=row.is_active,
    )


def _row_to_org_module(row: OrgModuleRow) -> OrgModule:
    return OrgModule(
        id=row.id,
        org_id=row.org_id,
        module_id=row.module_id,
        is_enabled=row.is_enabled,
        plan=row.plan,
        seats=row.seats,
        expires_at=row.expires_at,
        trial_ends_at=row.trial_ends_at,
    )
