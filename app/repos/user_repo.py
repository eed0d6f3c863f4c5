from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def set_active(self, user_id: UUID, is_active: bool) -> None: ...
    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}
        self._id_by_email: dict[str, UUID] = {}

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        user_id = self._id_by_email.get(email.lower().strip())
        return self._by_id.get(user_id) if user_id is not None else None

    async def add(self, user: User) -> None:
        if user.email in self._id_by_email:
            raise ValueError("email already exists")
        self._by_id[user.id] = user
        self._id_by_email[user.email] = user.id

    async def set_active(self, user_id: UUID, is_active: bool) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        self._by_id[user_id] = replace(u, is_active=is_active)

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        self._by_id[user_id] = replace(u, password_hash=password_hash)
