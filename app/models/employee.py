from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from app.models.organization import LifecycleState


@dataclass(frozen=True, slots=True)
class Employee:
    id: UUID
    org_id: UUID
    full_name: str
    email: str | None = None
    state: LifecycleState = LifecycleState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    @staticmethod
    def new(*, org_id: UUID, full_name: str, email: str | None = None) -> Employee:
        return Employee(id=uuid4(), org_id=org_id, full_name=full_name, email=email)
