"""Wire-format tests for the HTTP record store."""

import json
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from tierbill.core.config import settings
from tierbill.core.exceptions import RecordStoreError, RecordStoreTimeoutError
from tierbill.integrations.record_store import (
    AggregateColumn,
    CrudFilter,
    HttpRecordStore,
    ListOptions,
    build_guarded_update_sql,
    build_search_params,
    normalize_list,
    normalize_one,
    sql_literal,
)

BASE_URL = "http://records.test"


def _store(handler, max_retries=3):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRecordStore(
        base_url=BASE_URL, max_retries=max_retries, retry_wait=wait_none(), client=client
    )


class TestSearchParams:
    def test_flat_filters(self):
        params = build_search_params(
            [CrudFilter("tenant_id", "t-1"), CrudFilter("category", "%SaaS%", "ilike")],
            ListOptions(sort_column="created_at DESC", limit=10, auto_exclude_deleted=True),
        )
        assert params == {
            "search_field1": "tenant_id",
            "search_value1": "t-1",
            "search_field2": "category",
            "search_value2": "%SaaS%",
            "search_operator2": "ilike",
            "sort_column": "created_at DESC",
            "limit": "10",
            "auto_exclude_deleted": True,
        }

    def test_at_most_eight_filters(self):
        params = build_search_params([CrudFilter(f"f{i}", i) for i in range(10)])
        assert "search_field8" in params
        assert "search_field9" not in params


class TestNormalization:
    @pytest.mark.parametrize(
        "data",
        [[{"id": 1}], {"data": [{"id": 1}]}, {"value": [{"id": 1}]}, {"items": [{"id": 1}]}],
    )
    def test_list_shapes(self, data):
        assert normalize_list(data) == [{"id": 1}]

    def test_unknown_shape_is_empty(self):
        assert normalize_list({"unexpected": True}) == []
        assert normalize_list(None) == []

    def test_one(self):
        assert normalize_one([{"id": 2}]) == {"id": 2}
        assert normalize_one({"data": {"id": 2}}) == {"id": 2}
        assert normalize_one({"id": 2}) == {"id": 2}


class TestGuardedUpdate:
    def test_sql(self):
        sql = build_guarded_update_sql(
            "accounts_receivable",
            {"id": "ar-1", "status": "paid", "amount_received": 99.0},
            {"status": ("pending", "overdue")},
        )
        assert sql == (
            "UPDATE accounts_receivable SET status = 'paid', amount_received = 99.0 "
            "WHERE id = 'ar-1' AND status IN ('pending', 'overdue') RETURNING *"
        )

    def test_literals_are_escaped(self):
        assert sql_literal("O'Brien") == "'O''Brien'"
        assert sql_literal(None) == "NULL"
        assert sql_literal(True) == "TRUE"

    def test_rejects_bad_identifiers(self):
        with pytest.raises(ValueError):
            build_guarded_update_sql("tenants; drop", {"id": "1", "plan": "x"}, {"plan": ["y"]})
        with pytest.raises(ValueError):
            build_guarded_update_sql("tenants", {"id": "1", "Plan--": "x"}, {"plan": ["y"]})

    def test_requires_id_and_expected_values(self):
        with pytest.raises(ValueError):
            build_guarded_update_sql("tenants", {"plan": "x"}, {"plan": ["y"]})
        with pytest.raises(ValueError):
            build_guarded_update_sql("tenants", {"id": "1", "plan": "x"}, {"plan": []})


@pytest.mark.asyncio
class TestHttpRecordStore:
    async def test_list_posts_crud_body(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json={"data": [{"id": "t-1"}]})

        async with _store(handler) as store:
            rows = await store.list("tenants", [CrudFilter("slug", "radul")])

        assert rows == [{"id": "t-1"}]
        url, body = seen[0]
        assert url == f"{BASE_URL}/api_crud"
        assert body == {
            "action": "list",
            "table": "tenants",
            "search_field1": "slug",
            "search_value1": "radul",
        }

    async def test_count(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["action"] == "count"
            assert body["auto_exclude_deleted"] is True
            return httpx.Response(200, json=[{"count": "42"}])

        async with _store(handler) as store:
            total = await store.count(
                "customers", [CrudFilter("tenant_id", "t-1")], ListOptions(auto_exclude_deleted=True)
            )

        assert total == 42

    async def test_aggregate_body(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["aggregates"] == [{"function": "COUNT", "field": "id", "alias": "total"}]
            assert body["group_by"] == ["tenant_id"]
            return httpx.Response(200, json=[{"tenant_id": "t-1", "total": 3}])

        async with _store(handler) as store:
            rows = await store.aggregate(
                "customers",
                [AggregateColumn("COUNT", "id", "total")],
                options=ListOptions(group_by=["tenant_id"]),
            )

        assert rows == [{"tenant_id": "t-1", "total": 3}]

    async def test_reads_are_retried_on_transport_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("down", request=request)
            return httpx.Response(200, json=[])

        async with _store(handler) as store:
            assert await store.list("tenants") == []

        assert len(calls) == 3

    async def test_reads_give_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        async with _store(handler, max_retries=2) as store:
            with pytest.raises(RecordStoreTimeoutError):
                await store.list("tenants")

        assert len(calls) == 2

    async def test_writes_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("down", request=request)

        async with _store(handler) as store:
            with pytest.raises(RecordStoreTimeoutError):
                await store.create("invoices", {"title": "x"})

        assert len(calls) == 1

    async def test_backend_error_message(self):
        def handler(request):
            return httpx.Response(400, json={"error": "column does not exist"})

        async with _store(handler) as store:
            with pytest.raises(RecordStoreError) as exc_info:
                await store.update("tenants", {"id": "t-1", "plan": "x"})

        assert exc_info.value.message == "column does not exist"
        assert exc_info.value.status_code == 400
        assert exc_info.value.table == "tenants"

    async def test_update_if_uses_sql_endpoint(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json=[])

        async with _store(handler) as store:
            row = await store.update_if(
                "accounts_receivable", {"id": "ar-1", "status": "paid"}, {"status": ["pending"]}
            )

        assert row is None
        url, body = seen[0]
        assert url == f"{BASE_URL}/api_dinamico"
        assert "WHERE id = 'ar-1' AND status IN ('pending')" in body["sql"]

    async def test_update_if_returns_updated_row(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"id": "ar-1", "status": "paid"}]})

        async with _store(handler) as store:
            row = await store.update_if(
                "accounts_receivable", {"id": "ar-1", "status": "paid"}, {"status": ["pending"]}
            )

        assert row == {"id": "ar-1", "status": "paid"}


@pytest.mark.asyncio
async def test_endpoints_default_to_settings():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json=[])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with patch.object(settings, "RECORD_STORE_BASE_URL", "http://db.test"):
        store = HttpRecordStore(client=client, retry_wait=wait_none())
        await store.list("tenants")
        await store.execute_sql("SELECT 1")

    assert seen == ["http://db.test/api_crud", "http://db.test/api_dinamico"]
