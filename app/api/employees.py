"""HR employee records, gated on the ``hr`` module and the employee cap."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.api.dependencies import ServicesDep, org_id_of, require_permission
from app.models.employee import Employee
from app.services.authorization_gate import AuthorizationDecision

router = APIRouter(prefix="/v1/hr/employees", tags=["hr"])

ViewEmployees = Annotated[
    AuthorizationDecision, Depends(require_permission("hr.employees.view", "hr"))
]
CreateEmployees = Annotated[
    AuthorizationDecision, Depends(require_permission("hr.employees.create", "hr"))
]


class EmployeeIn(BaseModel):
    full_name: str
    email: str | None = None


class BulkEmployeesIn(BaseModel):
    employees: list[EmployeeIn]


class EmployeeOut(BaseModel):
    id: str
    full_name: str
    email: str | None
    state: str

    @classmethod
    def of(cls, employee: Employee) -> EmployeeOut:
        return cls(
            id=str(employee.id),
            full_name=employee.full_name,
            email=employee.email,
            state=employee.state.value,
        )


@router.get("", response_model=list[EmployeeOut])
async def list_employees(decision: ViewEmployees, services: ServicesDep) -> list[EmployeeOut]:
    employees = await services.employees.list_employees(org_id_of(decision))
    return [EmployeeOut.of(e) for e in employees]


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
async def create_employee(
    body: EmployeeIn, decision: CreateEmployees, services: ServicesDep
) -> EmployeeOut:
    employee = await services.employees.create_employee(
        org_id_of(decision), body.full_name, body.email
    )
    return EmployeeOut.of(employee)


@router.post("/bulk", response_model=list[EmployeeOut], status_code=status.HTTP_201_CREATED)
async def bulk_create_employees(
    body: BulkEmployeesIn, decision: CreateEmployees, services: ServicesDep
) -> list[EmployeeOut]:
    """Import a batch.  Either every row is created or none is."""
    employees = await services.employees.bulk_create(
        org_id_of(decision), [(e.full_name, e.email) for e in body.employees]
    )
    return [EmployeeOut.of(e) for e in employees]
