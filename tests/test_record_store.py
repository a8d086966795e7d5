"""
Tests for the record store adapters.

These tests verify:
1. Predicates match the loosely typed values the system of record returns
2. Predicates render as Lark filter formulas
3. The SQL adapter behaves like the in-memory one
4. The Lark adapter pages through results and maps API errors
"""

from datetime import datetime, timezone
import json

import httpx
import pytest
from sqlalchemy import event

from commute_permit.core.database import create_engine_from_url
from commute_permit.integrations.lark import LarkAPIError, LarkClient
from commute_permit.schemas import PermitStatus
from commute_permit.store import (
    MemoryRecordStore,
    RecordNotFoundError,
    RecordStoreError,
    Tables,
    eq,
    gt,
    lt,
    ne,
)
from commute_permit.store.fields import as_int, extract_text, from_millis, to_millis
from commute_permit.store.lark import LarkRecordStore, to_filter_formula
from commute_permit.store.sql import SqlRecordStore

MARCH = datetime(2025, 3, 1, tzinfo=timezone.utc)


# =============================================================================
# TEST: FIELD NORMALIZATION
# =============================================================================


class TestFieldNormalization:
    def test_timestamps_in_every_shape(self):
        millis = to_millis(MARCH)

        assert from_millis(millis) == MARCH
        assert from_millis(str(millis)) == MARCH
        assert from_millis("2025-03-01T00:00:00Z") == MARCH
        assert from_millis(datetime(2025, 3, 1)) == MARCH
        assert from_millis("") is None
        assert from_millis("not a date") is None
        assert from_millis(True) is None

    def test_rich_text_and_broken_strings(self):
        assert extract_text([{"text": "品川 "}, {"text": "300"}]) == "品川 300"
        assert extract_text("[object Object]") == ""
        assert extract_text(None) == ""

    def test_lenient_integers(self):
        assert as_int("20000000") == 20_000_000
        assert as_int("1.5e7") == 15_000_000
        assert as_int("n/a", default=7) == 7
        assert as_int(True) == 0


# =============================================================================
# TEST: MEMORY STORE AND PREDICATES
# =============================================================================


class TestMemoryRecordStore:
    async def test_boolean_predicates_use_truthiness(self):
        store = MemoryRecordStore()
        await store.create("t", {"name": "missing"})
        await store.create("t", {"name": "false", "deleted_flag": False})
        await store.create("t", {"name": "true", "deleted_flag": True})

        active = await store.list("t", [eq("deleted_flag", False)])
        deleted = await store.list("t", [ne("deleted_flag", False)])

        assert sorted(r.get("name") for r in active) == ["false", "missing"]
        assert [r.get("name") for r in deleted] == ["true"]

    async def test_datetime_predicates_compare_as_millis(self):
        store = MemoryRecordStore()
        await store.create("t", {"name": "feb", "at": to_millis(datetime(2025, 2, 1, tzinfo=timezone.utc))})
        await store.create("t", {"name": "apr", "at": to_millis(datetime(2025, 4, 1, tzinfo=timezone.utc))})
        await store.create("t", {"name": "none"})

        assert [r.get("name") for r in await store.list("t", [gt("at", MARCH)])] == ["apr"]
        assert [r.get("name") for r in await store.list("t", [lt("at", MARCH)])] == ["feb"]

    async def test_returned_records_are_copies(self):
        store = MemoryRecordStore()
        created = await store.create("t", {"tags": ["a"]})

        created.fields["tags"].append("b")

        assert (await store.get("t", created.id)).get("tags") == ["a"]

    async def test_update_and_delete_missing(self):
        store = MemoryRecordStore()

        with pytest.raises(RecordNotFoundError):
            await store.update("t", "recmissing", {"a": 1})
        with pytest.raises(RecordNotFoundError):
            await store.delete("t", "recmissing")

    async def test_limit(self):
        store = MemoryRecordStore()
        for i in range(5):
            await store.create("t", {"i": i})

        assert [r.get("i") for r in await store.list("t", limit=2)] == [0, 1]


# =============================================================================
# TEST: LARK FILTER FORMULAS
# =============================================================================


class TestFilterFormula:
    def test_single_and_combined(self):
        assert to_filter_formula([]) is None
        assert to_filter_formula([eq("employee_id", "E001")]) == 'CurrentValue.[employee_id]="E001"'
        assert to_filter_formula([eq("employee_id", "E001"), eq("deleted_flag", False)]) == (
            'AND(CurrentValue.[employee_id]="E001",CurrentValue.[deleted_flag]=false)'
        )

    def test_dates_render_as_millis_and_quotes_are_escaped(self):
        assert to_filter_formula([gt("sent_at", MARCH)]) == f"CurrentValue.[sent_at]>{to_millis(MARCH)}"
        assert to_filter_formula([ne("name", 'say "hi"')]) == 'CurrentValue.[name]!="say \\"hi\\""'


# =============================================================================
# TEST: SQL STORE
# =============================================================================


@pytest.fixture
def sql_engine():
    return create_engine_from_url("sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def sql_store(sql_engine):
    store = SqlRecordStore(sql_engine)
    await store.create_tables()
    yield store
    await store.close()


def capture_selects(engine) -> list[str]:
    """SELECT statements (with their parameters) sent to the database from now on."""
    statements = []

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(f"{statement} {parameters}")

    return statements


class TestSqlRecordStore:
    async def test_crud_round(self, sql_store):
        created = await sql_store.create(Tables.PERMITS, {"employee_id": "E001", "status": "valid"})

        updated = await sql_store.update(Tables.PERMITS, created.id, {"status": "revoked"})
        fetched = await sql_store.get(Tables.PERMITS, created.id)

        assert updated.fields == {"employee_id": "E001", "status": "revoked"}
        assert fetched.fields == updated.fields

        await sql_store.delete(Tables.PERMITS, created.id)
        assert await sql_store.get(Tables.PERMITS, created.id) is None

    async def test_tables_are_isolated_and_ordered(self, sql_store):
        first = await sql_store.create(Tables.PERMITS, {"n": 1})
        await sql_store.create(Tables.EMPLOYEES, {"n": 2})
        second = await sql_store.create(Tables.PERMITS, {"n": 3})

        permits = await sql_store.list(Tables.PERMITS)

        assert [r.id for r in permits] == [first.id, second.id]
        assert await sql_store.get(Tables.EMPLOYEES, first.id) is None

    async def test_filters(self, sql_store):
        await sql_store.create(Tables.PERMITS, {"vehicle_id": "recv1", "status": "valid"})
        await sql_store.create(Tables.PERMITS, {"vehicle_id": "recv1", "status": "revoked"})
        await sql_store.create(Tables.PERMITS, {"vehicle_id": "recv2", "status": "valid"})

        rows = await sql_store.list(Tables.PERMITS, [eq("vehicle_id", "recv1"), eq("status", "valid")])

        assert len(rows) == 1

    async def test_update_missing(self, sql_store):
        with pytest.raises(RecordNotFoundError):
            await sql_store.update(Tables.PERMITS, "recmissing", {"status": "revoked"})

    async def test_filter_and_limit_are_sent_to_the_database(self, sql_engine, sql_store):
        for i in range(200):
            await sql_store.create(Tables.NOTIFICATION_HISTORY, {"recipient_id": f"u{i % 10}", "n": i})
        selects = capture_selects(sql_engine)

        rows = await sql_store.list(Tables.NOTIFICATION_HISTORY, [eq("recipient_id", "u7")], limit=1)

        assert [r.get("n") for r in rows] == [7]
        assert len(selects) == 1
        assert "recipient_id" in selects[0]
        assert "LIMIT" in selects[0]

    async def test_boolean_predicates_use_truthiness(self, sql_store):
        await sql_store.create("t", {"name": "missing"})
        await sql_store.create("t", {"name": "null", "deleted_flag": None})
        await sql_store.create("t", {"name": "false", "deleted_flag": False})
        await sql_store.create("t", {"name": "true", "deleted_flag": True})

        active = await sql_store.list("t", [eq("deleted_flag", False)])
        deleted = await sql_store.list("t", [ne("deleted_flag", False)])

        assert [r.get("name") for r in active] == ["missing", "null", "false"]
        assert [r.get("name") for r in deleted] == ["true"]

    async def test_datetime_predicates_compare_as_millis(self, sql_store):
        await sql_store.create("t", {"name": "feb", "at": to_millis(datetime(2025, 2, 1, tzinfo=timezone.utc))})
        await sql_store.create("t", {"name": "apr", "at": to_millis(datetime(2025, 4, 1, tzinfo=timezone.utc))})
        await sql_store.create("t", {"name": "none"})

        assert [r.get("name") for r in await sql_store.list("t", [gt("at", MARCH)])] == ["apr"]
        assert [r.get("name") for r in await sql_store.list("t", [lt("at", MARCH)])] == ["feb"]

    async def test_not_equal_includes_missing_fields(self, sql_store):
        await sql_store.create("t", {"name": "valid", "status": "valid"})
        await sql_store.create("t", {"name": "revoked", "status": "revoked"})
        await sql_store.create("t", {"name": "blank"})

        rows = await sql_store.list("t", [ne("status", "valid")])

        assert [r.get("name") for r in rows] == ["revoked", "blank"]

    async def test_enum_values_match_their_stored_string(self, sql_store):
        await sql_store.create(Tables.PERMITS, {"status": "valid"})
        await sql_store.create(Tables.PERMITS, {"status": "revoked"})

        rows = await sql_store.list(Tables.PERMITS, [eq("status", PermitStatus.REVOKED)])

        assert [r.get("status") for r in rows] == ["revoked"]


# =============================================================================
# TEST: LARK STORE
# =============================================================================


def lark_store(handler) -> LarkRecordStore:
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tenant_access_token/internal"):
            return httpx.Response(200, json={"code": 0, "tenant_access_token": "t-1", "expire": 7200})
        return handler(request)

    http = httpx.AsyncClient(base_url="https://open.feishu.cn", transport=httpx.MockTransport(route))
    client = LarkClient("app", "secret", http_client=http)
    return LarkRecordStore(client, "bascn123", {Tables.PERMITS: "tblPermits"})


class TestLarkRecordStore:
    async def test_list_pages_and_sends_formula(self):
        seen = []

        def handler(request):
            seen.append(request)
            if "page_token" not in request.url.params:
                return httpx.Response(200, json={
                    "code": 0,
                    "data": {
                        "items": [{"record_id": "rec1", "fields": {"status": "valid"}}],
                        "has_more": True,
                        "page_token": "next",
                    },
                })
            return httpx.Response(200, json={
                "code": 0,
                "data": {"items": [{"record_id": "rec2", "fields": {}}], "has_more": False},
            })

        store = lark_store(handler)
        records = await store.list(Tables.PERMITS, [eq("status", "valid")])
        await store.close()

        assert [r.id for r in records] == ["rec1", "rec2"]
        assert seen[0].url.path == "/open-apis/bitable/v1/apps/bascn123/tables/tblPermits/records"
        assert seen[0].url.params["filter"] == 'CurrentValue.[status]="valid"'
        assert seen[1].url.params["page_token"] == "next"

    async def test_token_is_cached(self):
        token_requests = []

        def route(request):
            if request.url.path.endswith("/tenant_access_token/internal"):
                token_requests.append(request)
                return httpx.Response(200, json={"code": 0, "tenant_access_token": "t-1", "expire": 7200})
            return httpx.Response(200, json={"code": 0, "data": {"record": {"record_id": "rec1", "fields": {}}}})

        http = httpx.AsyncClient(base_url="https://open.feishu.cn", transport=httpx.MockTransport(route))
        client = LarkClient("app", "secret", http_client=http)

        await client.get_record("bascn123", "tblPermits", "rec1")
        await client.get_record("bascn123", "tblPermits", "rec1")
        await client.close()

        assert len(token_requests) == 1
        assert json.loads(token_requests[0].content) == {"app_id": "app", "app_secret": "secret"}

    async def test_api_error_code(self):
        store = lark_store(lambda request: httpx.Response(200, json={"code": 1254000, "msg": "WrongRequestBody"}))

        with pytest.raises(RecordStoreError):
            await store.create(Tables.PERMITS, {"status": "valid"})
        await store.close()

    async def test_missing_record(self):
        store = lark_store(lambda request: httpx.Response(200, json={"code": 1254043, "msg": "RecordIdNotFound"}))

        assert await store.get(Tables.PERMITS, "recmissing") is None
        with pytest.raises(RecordNotFoundError):
            await store.update(Tables.PERMITS, "recmissing", {"status": "revoked"})
        await store.close()

    async def test_unconfigured_table(self):
        store = lark_store(lambda request: httpx.Response(500))

        with pytest.raises(RecordStoreError):
            await store.list(Tables.EMPLOYEES)
        await store.close()

    async def test_client_raises_lark_api_error(self):
        http = httpx.AsyncClient(
            base_url="https://open.feishu.cn",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"code": 10003, "msg": "invalid app"})),
        )
        client = LarkClient("app", "secret", http_client=http)

        with pytest.raises(LarkAPIError) as exc_info:
            await client.list_records("bascn123", "tblPermits")
        await client.close()

        assert exc_info.value.code == 10003
