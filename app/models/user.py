from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    password_hash: str
    name: str = ""
    is_active: bool = True
    is_super_admin: bool = False

    @staticmethod
    def new(
        *,
        email: str,
        password_hash: str,
        name: str = "",
        is_super_admin: bool = False,
    ) -> User:
        return User(
            id=uuid4(),
            email=email.lower().strip(),
            password_hash=password_hash,
            name=name,
            is_active=True,
            is_super_admin=is_super_admin,
        )
