"""Record store port.

Services talk to the system of record through this interface only. Filters
are structured predicates; each adapter translates them into its own query
language (or evaluates them in process).
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .fields import to_millis


# =============================================================================
# EXCEPTIONS
# =============================================================================


class RecordStoreError(Exception):
    """The backing store rejected a request or could not be reached."""


class RecordNotFoundError(RecordStoreError):
    """Raised when updating or deleting a record that does not exist."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in {table}")


# =============================================================================
# TABLES
# =============================================================================


class Tables:
    """Logical table names shared by every adapter."""

    EMPLOYEES = "employees"
    DRIVERS_LICENSES = "drivers_licenses"
    VEHICLE_REGISTRATIONS = "vehicle_registrations"
    INSURANCE_POLICIES = "insurance_policies"
    PERMITS = "permits"
    USER_PERMISSIONS = "user_permissions"
    NOTIFICATION_HISTORY = "notification_history"
    APPROVAL_HISTORY = "approval_history"
    SYSTEM_SETTINGS = "system_settings"


# =============================================================================
# PREDICATES
# =============================================================================


class Op(str, Enum):
    """Comparison operators supported by every adapter."""

    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


def normalize_value(value: Any) -> Any:
    """Dates are stored as epoch milliseconds; compare them the same way."""
    if isinstance(value, datetime):
        return to_millis(value)
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class Predicate:
    """A single `field op value` condition. Filters are ANDed together."""

    field: str
    op: Op
    value: Any

    def matches(self, fields: dict[str, Any]) -> bool:
        expected = normalize_value(self.value)
        actual = fields.get(self.field)

        if self.op is Op.EQ:
            if isinstance(expected, bool):
                return bool(actual) is expected
            return actual == expected
        if self.op is Op.NE:
            if isinstance(expected, bool):
                return bool(actual) is not expected
            return actual != expected

        if actual is None:
            return False
        try:
            if self.op is Op.GT:
                return actual > expected
            if self.op is Op.GTE:
                return actual >= expected
            if self.op is Op.LT:
                return actual < expected
            if self.op is Op.LTE:
                return actual <= expected
        except TypeError:
            return False
        return False


def eq(field_name: str, value: Any) -> Predicate:
    return Predicate(field_name, Op.EQ, value)


def ne(field_name: str, value: Any) -> Predicate:
    return Predicate(field_name, Op.NE, value)


def gt(field_name: str, value: Any) -> Predicate:
    return Predicate(field_name, Op.GT, value)


def lt(field_name: str, value: Any) -> Predicate:
    return Predicate(field_name, Op.LT, value)


def matches_all(filters: Sequence[Predicate], fields: dict[str, Any]) -> bool:
    return all(predicate.matches(fields) for predicate in filters)


# =============================================================================
# RECORDS
# =============================================================================


@dataclass
class Record:
    """A stored row: an opaque id plus its raw field mapping."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class RecordStore(ABC):
    """Generic CRUD over named tables."""

    @abstractmethod
    async def list(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        *,
        limit: int | None = None,
    ) -> list[Record]:
        """List records of `table` matching every predicate."""

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Record | None:
        """Fetch a record by id, or None."""

    @abstractmethod
    async def create(self, table: str, fields: dict[str, Any]) -> Record:
        """Create a record and return it with its store-assigned id."""

    @abstractmethod
    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Merge `fields` into an existing record."""

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """Hard-delete a record."""

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None
