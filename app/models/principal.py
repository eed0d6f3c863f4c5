from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated request context extracted from a validated JWT.

    The token carries identity only.  Roles and permissions are resolved
    from the store on every request, so role changes take effect at once.

        user_id: subject from JWT
        org_id: organization the token was issued for (None for a
            super-admin acting outside any organization)
        is_super_admin: platform operator flag; bypasses the gate
    """

    user_id: UUID
    org_id: UUID | None = None
    is_super_admin: bool = False
