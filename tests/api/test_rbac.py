"""Role x endpoint matrix for the seeded roles.

Every organization here licenses the ``hr`` module, so a denial is always
about permissions (403) and never about licensing (402).
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.repos.store import InMemoryStore
from tests.factories import auth, make_member, make_org, make_user, set_module, token_for

ENDPOINTS = {
    "list_members": ("get", "/v1/org/members", None),
    "list_employees": ("get", "/v1/hr/employees", None),
    "create_employee": ("post", "/v1/hr/employees", {"full_name": "Grace Hopper"}),
    "billing_catalog": ("get", "/v1/billing/modules", None),
    "subscribe": ("post", "/v1/billing/subscribe", {"module_key": "ticketing", "plan": "pro"}),
}

# role -> endpoints it may call
ALLOWED = {
    "owner": set(ENDPOINTS),
    "admin": set(ENDPOINTS) - {"subscribe"},
    "hr.manager": {"list_employees", "create_employee"},
    "hr.viewer": {"list_employees"},
    "member": set(),
}

CASES = [(role, endpoint) for role in ALLOWED for endpoint in ENDPOINTS]


@pytest.mark.parametrize(("role", "endpoint"), CASES)
def test_role_matrix(client: TestClient, store: InMemoryStore, role: str, endpoint: str) -> None:
    org = asyncio.run(make_org(store))
    user, _ = asyncio.run(make_member(store, org.id, (role,)))
    asyncio.run(set_module(store, org.id, "hr", is_enabled=True))
    method, path, body = ENDPOINTS[endpoint]

    resp = client.request(method, path, json=body, headers=auth(token_for(user, org.id)))

    if endpoint in ALLOWED[role]:
        assert resp.status_code in (200, 201), resp.json()
    else:
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"


def test_roles_combine(client: TestClient, store: InMemoryStore) -> None:
    org = asyncio.run(make_org(store))
    user, _ = asyncio.run(make_member(store, org.id, ("hr.viewer", "member")))
    asyncio.run(set_module(store, org.id, "hr", is_enabled=True))
    headers = auth(token_for(user, org.id))

    assert client.get("/v1/hr/employees", headers=headers).status_code == 200
    assert client.get("/v1/org/members", headers=headers).status_code == 403


def test_super_admin_bypasses_roles_and_licensing(
    client: TestClient, store: InMemoryStore
) -> None:
    org = asyncio.run(make_org(store))
    admin = asyncio.run(make_user(store, is_super_admin=True))

    resp = client.get("/v1/hr/employees", headers=auth(token_for(admin, org.id)))

    assert resp.status_code == 200
    assert resp.json() == []
