"""Employee directory and admin-role lookups."""

import logging

from ..schemas import Employee, UserPermission, UserRole
from ..store import Record, RecordStore, Tables, eq
from ..store.fields import as_bool, extract_email, extract_name, extract_person_id

logger = logging.getLogger(__name__)


def _to_employee(record: Record) -> Employee:
    fields = record.fields
    return Employee(
        id=record.id,
        employee_id=str(fields.get("employee_id") or ""),
        employee_name=extract_name(fields.get("employee_name")),
        email=extract_email(fields.get("email")),
        department=extract_name(fields.get("department")),
        lark_user_id=extract_person_id(fields.get("lark_user_id")),
        retired=as_bool(fields.get("retired")),
    )


def _to_permission(record: Record) -> UserPermission:
    fields = record.fields
    try:
        role = UserRole(str(fields.get("role") or ""))
    except ValueError:
        role = UserRole.VIEWER
    return UserPermission(
        id=record.id,
        lark_user_id=extract_person_id(fields.get("lark_user_id")),
        user_name=extract_name(fields.get("user_name")),
        user_email=extract_email(fields.get("user_email")),
        role=role,
    )


class EmployeeService:
    """Read access to the employees table."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def list_employees(self, include_retired: bool = False) -> list[Employee]:
        records = await self.store.list(Tables.EMPLOYEES)
        employees = [_to_employee(r) for r in records]
        if include_retired:
            return employees
        return [e for e in employees if not e.retired]

    async def get_employee(self, employee_id: str) -> Employee | None:
        """Look up by employee code first, then by email."""
        if not employee_id:
            return None
        records = await self.store.list(Tables.EMPLOYEES, [eq("employee_id", employee_id)], limit=1)
        if not records and "@" in employee_id:
            records = await self.store.list(Tables.EMPLOYEES, [eq("email", employee_id)], limit=1)
        return _to_employee(records[0]) if records else None

    async def name_map(self) -> dict[str, str]:
        """employee_id and email -> display name, retired employees included."""
        mapping: dict[str, str] = {}
        for employee in await self.list_employees(include_retired=True):
            if employee.employee_id:
                mapping[employee.employee_id] = employee.employee_name
            if employee.email:
                mapping[employee.email] = employee.employee_name
        return mapping

    async def recipient_map(self) -> dict[str, str]:
        """employee_id and email -> messaging open id."""
        mapping: dict[str, str] = {}
        for employee in await self.list_employees(include_retired=True):
            if not employee.lark_user_id:
                continue
            if employee.employee_id:
                mapping[employee.employee_id] = employee.lark_user_id
            if employee.email:
                mapping[employee.email] = employee.lark_user_id
        return mapping


class UserPermissionService:
    """Role assignments; admins receive expired-document alerts."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def list_permissions(self) -> list[UserPermission]:
        return [_to_permission(r) for r in await self.store.list(Tables.USER_PERMISSIONS)]

    async def list_admin_recipients(self) -> list[str]:
        """Open ids of every admin, deduplicated, in table order."""
        records = await self.store.list(Tables.USER_PERMISSIONS, [eq("role", UserRole.ADMIN)])
        recipients: list[str] = []
        for record in records:
            recipient = _to_permission(record).lark_user_id
            if recipient and recipient not in recipients:
                recipients.append(recipient)
        return recipients
