"""
Unit tests for the data gateway – query recording, replay onto the client and
error mapping.
"""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from supabase import PostgrestAPIError

from hconnect.errors import GatewayError
from hconnect.gateway import DataGateway


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeBuilder:
    """Stands in for the client's request builder, recording every call."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return record

    async def execute(self):
        if self.client.error is not None:
            raise self.client.error
        return self.client.response


class FakeClient:
    def __init__(self, data=None, count=None, error=None):
        self.response = SimpleNamespace(data=[] if data is None else data, count=count)
        self.error = error
        self.builders = []

    def table(self, name):
        builder = FakeBuilder(self, name)
        self.builders.append(builder)
        return builder


def gateway_with(**kwargs):
    client = FakeClient(**kwargs)
    return DataGateway(client), client


# ── Tests: query building ────────────────────────────────────────────

def test_select_with_filters_and_order():
    gw, client = gateway_with(data=[{"id": 1}])
    query = (
        gw.table("appointments")
        .select("*, doctors(specialty, profiles:user_id(full_name))")
        .eq("patient_id", "p1")
        .in_("status", ["pending", "approved"])
        .is_("notes", None)
        .order("appointment_date", desc=True)
        .limit(10)
    )
    res = asyncio.run(query.execute())

    assert res.data == [{"id": 1}]
    assert query.params == [
        ("select", "*,doctors(specialty,profiles:user_id(full_name))"),
        ("patient_id", "eq.p1"),
        ("status", "in.(pending,approved)"),
        ("notes", "is.null"),
        ("order", "appointment_date.desc"),
        ("limit", "10"),
    ]
    builder = client.builders[0]
    assert builder.table == "appointments"
    assert builder.calls == [
        ("select", ("*,doctors(specialty,profiles:user_id(full_name))",), {"count": None, "head": None}),
        ("eq", ("patient_id", "p1"), {}),
        ("in_", ("status", ["pending", "approved"]), {}),
        ("is_", ("notes", "null"), {}),
        ("order", ("appointment_date",), {"desc": True}),
        ("limit", (10,), {}),
    ]


def test_boolean_filters_are_lowercase():
    gw, client = gateway_with()
    asyncio.run(gw.table("patients").select("id").eq("consent_given", True).execute())
    assert client.builders[0].calls[-1] == ("eq", ("consent_given", "true"), {})


def test_count_only_query_returns_no_rows():
    gw, client = gateway_with(data=[{"id": 1}], count=7)
    res = asyncio.run(
        gw.table("doctors").select("id", count="exact", head=True).eq("hospital_id", "h1").execute()
    )
    assert res.count == 7
    assert res.data is None
    assert client.builders[0].calls[0] == ("select", ("id",), {"count": "exact", "head": True})


def test_insert_then_select_single():
    gw, client = gateway_with(data=[{"id": "new"}])
    query = gw.table("hospitals").insert({"name": "City"}).select().single()
    res = asyncio.run(query.execute())

    assert res.data == {"id": "new"}
    assert query.method == "POST"
    assert query.returning is True
    # Writes return their rows already: no select is replayed after insert.
    assert client.builders[0].calls == [("insert", ({"name": "City"},), {})]


def test_upsert_with_conflict_column():
    gw, client = gateway_with()
    query = gw.table("patients").upsert({"user_id": "u1"}, on_conflict="user_id")
    asyncio.run(query.execute())
    assert query.param("on_conflict") == "user_id"
    assert client.builders[0].calls == [("upsert", ({"user_id": "u1"},), {"on_conflict": "user_id"})]


def test_update_and_delete_are_filtered():
    gw, client = gateway_with()
    asyncio.run(gw.table("doctors").update({"specialty": "Cardio"}).eq("id", "d1").execute())
    asyncio.run(gw.table("doctors").delete().eq("id", "d1").execute())
    assert client.builders[0].calls == [
        ("update", ({"specialty": "Cardio"},), {}),
        ("eq", ("id", "d1"), {}),
    ]
    assert client.builders[1].calls == [("delete", (), {}), ("eq", ("id", "d1"), {})]


def test_or_filter():
    gw, client = gateway_with()
    query = gw.table("profiles").select("*").or_("full_name.ilike.*ann*,phone.eq.1")
    asyncio.run(query.execute())
    assert query.param("or") == "(full_name.ilike.*ann*,phone.eq.1)"
    assert client.builders[0].calls[-1] == ("or_", ("full_name.ilike.*ann*,phone.eq.1",), {})


# ── Tests: responses ─────────────────────────────────────────────────

def test_maybe_single_empty_is_none():
    gw, _ = gateway_with(data=[])
    res = asyncio.run(gw.table("profiles").select("*").eq("user_id", "u").maybe_single().execute())
    assert res.data is None


def test_single_with_no_rows_raises():
    gw, _ = gateway_with(data=[])
    with pytest.raises(GatewayError) as exc:
        asyncio.run(gw.table("profiles").select("*").single().execute())
    assert exc.value.code == "PGRST116"


def test_single_with_many_rows_raises():
    gw, _ = gateway_with(data=[{"id": 1}, {"id": 2}])
    with pytest.raises(GatewayError):
        asyncio.run(gw.table("profiles").select("*").maybe_single().execute())


def test_backend_error_is_mapped_with_code():
    error = PostgrestAPIError({
        "message": "duplicate key value violates unique constraint",
        "code": "23505",
        "details": "Key (doctor_id, hospital_id) already exists.",
        "hint": None,
    })
    gw, _ = gateway_with(error=error)
    with pytest.raises(GatewayError) as exc:
        asyncio.run(gw.table("doctor_requests").insert({"doctor_id": "d"}).execute())
    assert exc.value.code == "23505"
    assert exc.value.message == "duplicate key value violates unique constraint"
    assert "already exists" in exc.value.details


def test_network_error_is_wrapped():
    gw, _ = gateway_with(error=httpx.ConnectError("connection refused"))
    with pytest.raises(GatewayError) as exc:
        asyncio.run(gw.table("hospitals").select("*").execute())
    assert "Network error" in exc.value.message


def test_undecodable_body_is_wrapped():
    # e.g. a 200 maintenance page served as HTML
    gw, _ = gateway_with(error=ValueError("Expecting value: line 1 column 1 (char 0)"))
    with pytest.raises(GatewayError) as exc:
        asyncio.run(gw.table("user_roles").select("role").eq("user_id", "u").maybe_single().execute())
    assert "Unexpected response" in exc.value.message
