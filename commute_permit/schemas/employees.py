"""Employee and user-permission schemas."""

from .base import PermitBaseModel, UserRole


class Employee(PermitBaseModel):
    id: str
    employee_id: str
    employee_name: str = ""
    email: str = ""
    department: str = ""
    # Open id of the employee's messaging account, used as notification recipient
    lark_user_id: str = ""
    retired: bool = False


class UserPermission(PermitBaseModel):
    id: str
    lark_user_id: str
    user_name: str = ""
    user_email: str = ""
    role: UserRole = UserRole.VIEWER
