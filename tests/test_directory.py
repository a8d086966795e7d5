"""Tests for the employee directory, admin roles and system settings."""

from commute_permit.schemas import UserRole
from commute_permit.services.employees import EmployeeService, UserPermissionService
from commute_permit.services.system_settings import SystemSettings, SystemSettingsService
from commute_permit.store import Tables

from conftest import FailingTableStore


# =============================================================================
# TEST: EMPLOYEES
# =============================================================================


class TestEmployeeService:
    async def test_lookup_by_code_then_email(self, seed, store):
        await seed.employee("E001", email="taro@example.com")
        service = EmployeeService(store)

        by_code = await service.get_employee("E001")
        by_email = await service.get_employee("taro@example.com")

        assert by_code.employee_name == "山田 太郎"
        assert by_email.employee_id == "E001"
        assert await service.get_employee("E404") is None
        assert await service.get_employee("") is None

    async def test_people_fields_are_flattened(self, store):
        await store.create(
            Tables.EMPLOYEES,
            {
                "employee_id": "E010",
                "employee_name": [{"name": "佐藤 花子", "id": "ou_hanako"}],
                "email": [{"text": "hanako@example.com"}],
                "lark_user_id": [{"id": "ou_hanako", "name": "佐藤 花子"}],
                "retired": "false",
            },
        )

        employee = await EmployeeService(store).get_employee("E010")

        assert employee.employee_name == "佐藤 花子"
        assert employee.email == "hanako@example.com"
        assert employee.lark_user_id == "ou_hanako"
        assert employee.retired is False

    async def test_retired_employees_hidden_but_named(self, seed, store):
        await seed.employee("E001")
        await seed.employee("E002", name="退職 次郎", email="jiro@example.com", lark_user_id="ou_jiro", retired=True)
        service = EmployeeService(store)

        assert [e.employee_id for e in await service.list_employees()] == ["E001"]
        names = await service.name_map()
        assert names["E002"] == "退職 次郎"
        assert names["jiro@example.com"] == "退職 次郎"

    async def test_recipient_map_skips_missing_ids(self, seed, store):
        await seed.employee("E001", lark_user_id="ou_taro")
        await seed.employee("E002", email="nobody@example.com", lark_user_id="")

        recipients = await EmployeeService(store).recipient_map()

        assert recipients == {"E001": "ou_taro", "taro@example.com": "ou_taro"}


class TestUserPermissionService:
    async def test_admin_recipients_are_deduplicated(self, seed, store):
        await seed.admin("ou_admin")
        await seed.admin("ou_admin", name="Admin again")
        await seed.admin("ou_boss")
        await store.create(Tables.USER_PERMISSIONS, {"lark_user_id": "ou_viewer", "role": "viewer"})

        recipients = await UserPermissionService(store).list_admin_recipients()

        assert recipients == ["ou_admin", "ou_boss"]

    async def test_unknown_role_becomes_viewer(self, store):
        await store.create(Tables.USER_PERMISSIONS, {"lark_user_id": "ou_x", "role": "superuser"})

        permissions = await UserPermissionService(store).list_permissions()

        assert permissions[0].role == UserRole.VIEWER


# =============================================================================
# TEST: SYSTEM SETTINGS
# =============================================================================


class TestSystemSettings:
    async def test_defaults_when_nothing_stored(self, store):
        current = await SystemSettingsService(store).get_settings()

        assert current == SystemSettings()
        assert current.license_expiry_warning_days == 30

    async def test_defaults_from_environment(self, store, settings):
        defaults = SystemSettings.from_settings(settings)

        current = await SystemSettingsService(store, defaults).get_settings()

        assert current.company_name == "Example Corp"
        assert current.issuing_department == "General Affairs"

    async def test_update_is_an_upsert(self, store):
        service = SystemSettingsService(store)

        await service.update_settings({"license_expiry_warning_days": 45}, updated_by="ou_admin")
        updated = await service.update_settings({"license_expiry_warning_days": 60, "unknown_key": "x"})

        rows = await store.list(Tables.SYSTEM_SETTINGS)
        assert len(rows) == 1
        assert rows[0].fields["setting_value"] == "60"
        assert updated.license_expiry_warning_days == 60

    async def test_bad_numbers_keep_the_default(self, store):
        await store.create(
            Tables.SYSTEM_SETTINGS,
            {"setting_key": "vehicle_expiry_warning_days", "setting_value": "soon"},
        )
        await store.create(
            Tables.SYSTEM_SETTINGS,
            {"setting_key": "insurance_expiry_warning_days", "setting_value": "14.0"},
        )

        current = await SystemSettingsService(store).get_settings()

        assert current.vehicle_expiry_warning_days == 30
        assert current.insurance_expiry_warning_days == 14

    async def test_store_failure_falls_back_to_defaults(self):
        service = SystemSettingsService(FailingTableStore({Tables.SYSTEM_SETTINGS}))

        current = await service.get_settings()

        assert current == SystemSettings()

    def test_warning_days_by_type(self):
        config = SystemSettings(license_expiry_warning_days=10, insurance_expiry_warning_days=90)

        assert config.warning_days("license") == 10
        assert config.warning_days("vehicle") == 30
        assert config.warning_days("insurance") == 90
