"""Tests for the Supabase table helpers."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from src.models.requests import AppointmentListQuery
from src.services import supabase_client
from src.utils.errors import ConflictError, SupabaseError


def _result(data, count=None):
    result = MagicMock()
    result.data = data
    result.count = count
    return result


@pytest.fixture
def mock_client():
    """Patch the client singleton with a chainable mock."""
    client = MagicMock()
    with patch("src.services.supabase_client.get_supabase_client", return_value=client):
        yield client


@pytest.mark.unit
@pytest.mark.parametrize("message", [
    'duplicate key value violates unique constraint "appointments_active_agent_slot_key"',
    "{'code': '23505', 'message': 'conflict'}",
])
def test_is_unique_violation(message):
    assert supabase_client.is_unique_violation(Exception(message))


@pytest.mark.unit
def test_is_not_unique_violation():
    assert not supabase_client.is_unique_violation(Exception("connection reset"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_appointment_returns_row(mock_client):
    row = {"id": "a1", "status": "pending"}
    mock_client.table.return_value.insert.return_value.execute.return_value = _result([row])

    assert await supabase_client.create_appointment(row) == row
    mock_client.table.assert_called_with("appointments")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_appointment_unique_violation_is_conflict(mock_client):
    mock_client.table.return_value.insert.return_value.execute.side_effect = Exception(
        'duplicate key value violates unique constraint "appointments_active_agent_slot_key"'
    )

    with pytest.raises(ConflictError):
        await supabase_client.create_appointment({"id": "a1"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_appointment_other_failure_is_supabase_error(mock_client):
    mock_client.table.return_value.update.return_value.eq.return_value.execute.side_effect = Exception("timeout")

    with pytest.raises(SupabaseError):
        await supabase_client.update_appointment("a1", {"status": "confirmed"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_appointment_unique_violation_is_conflict(mock_client):
    mock_client.table.return_value.update.return_value.eq.return_value.execute.side_effect = Exception(
        "23505 duplicate key"
    )

    with pytest.raises(ConflictError):
        await supabase_client.update_appointment("a1", {"assigned_agent": "agent-1"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_appointment_reports_missing(mock_client):
    mock_client.table.return_value.delete.return_value.eq.return_value.execute.return_value = _result([])

    assert await supabase_client.delete_appointment("missing") is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_conflict_check_skips_unassigned(mock_client):
    """Unassigned appointments never conflict, so no query is made."""
    result = await supabase_client.find_conflicting_appointment(None, date(2030, 1, 1), "10:00")

    assert result is None
    mock_client.table.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_conflict_check_filters_active_slot(mock_client):
    query = MagicMock()
    for method in ("select", "eq", "in_", "neq", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = _result([{"id": "held"}])
    mock_client.table.return_value = query

    result = await supabase_client.find_conflicting_appointment(
        "agent-1", date(2030, 1, 1), "10:00", exclude_id="mine"
    )

    assert result == {"id": "held"}
    query.eq.assert_any_call("assigned_agent", "agent-1")
    query.eq.assert_any_call("appointment_date", "2030-01-01")
    query.eq.assert_any_call("appointment_time", "10:00")
    query.in_.assert_called_once_with("status", ["pending", "confirmed"])
    query.neq.assert_called_once_with("id", "mine")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_appointments_builds_filters(mock_client):
    query = MagicMock()
    for method in ("select", "eq", "gte", "lte", "or_", "order", "range"):
        getattr(query, method).return_value = query
    query.execute.return_value = _result([{"id": "a1"}], count=21)
    mock_client.table.return_value = query

    params = AppointmentListQuery.model_validate({
        "page": 3, "limit": 10, "status": "confirmed", "search": "sara",
        "startDate": "2030-01-01", "sortBy": "createdAt", "sortOrder": "desc",
    })
    rows, total = await supabase_client.query_appointments(params)

    assert rows == [{"id": "a1"}]
    assert total == 21
    query.select.assert_called_once_with("*", count="exact")
    query.eq.assert_called_once_with("status", "confirmed")
    query.gte.assert_called_once_with("appointment_date", "2030-01-01")
    query.or_.assert_called_once_with('name.ilike."%sara%",email.ilike."%sara%",phone.ilike."%sara%"')
    query.order.assert_called_once_with("created_at", desc=True)
    query.range.assert_called_once_with(20, 29)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_property_missing(mock_client):
    mock_client.table.return_value.select.return_value.eq.return_value.execute.return_value = _result([])

    assert await supabase_client.get_property_by_id("missing") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_lookups_skip_empty_input(mock_client):
    assert await supabase_client.get_properties_by_ids([]) == []
    assert await supabase_client.get_users_by_ids([]) == []
    mock_client.table.assert_not_called()


@pytest.mark.unit
@pytest.mark.parametrize("value,expected", [
    ("%sara%", '"%sara%"'),
    ("%Smith, John (Jr)%", '"%Smith, John (Jr)%"'),
    ('%say "hi"%', '"%say \\"hi\\"%"'),
    ("%a\\b%", '"%a\\\\b%"'),
])
def test_quote_filter_value(value, expected):
    assert supabase_client.quote_filter_value(value) == expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_appointments_keeps_search_punctuation(mock_client):
    query = MagicMock()
    for method in ("select", "or_", "order", "range"):
        getattr(query, method).return_value = query
    query.execute.return_value = _result([], count=0)
    mock_client.table.return_value = query

    await supabase_client.query_appointments(AppointmentListQuery.model_validate({"search": "Smith, John"}))

    filters = query.or_.call_args[0][0]
    assert filters.count('"%Smith, John%"') == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_count_appointments_uses_store_count(mock_client):
    """The count header is returned even though no rows come back."""
    query = MagicMock()
    for method in ("select", "eq", "gte", "lte"):
        getattr(query, method).return_value = query
    query.execute.return_value = _result([], count=1500)
    mock_client.table.return_value = query

    total = await supabase_client.count_appointments(status="pending", date_from=date(2030, 1, 1))

    assert total == 1500
    query.select.assert_called_once_with("id", count="exact", head=True)
    query.eq.assert_called_once_with("status", "pending")
    query.gte.assert_called_once_with("appointment_date", "2030-01-01")
    query.lte.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_count_appointments_failure(mock_client):
    mock_client.table.return_value.select.return_value.execute.side_effect = Exception("timeout")

    with pytest.raises(SupabaseError):
        await supabase_client.count_appointments()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_feedback_ratings_read_every_page(mock_client, monkeypatch):
    monkeypatch.setattr(supabase_client, "STATS_PAGE_SIZE", 2)
    query = MagicMock()
    for method in ("select", "is_", "order", "range"):
        getattr(query, method).return_value = query
    query.not_ = query
    query.execute.side_effect = [
        _result([{"id": "a", "feedback": {"rating": 5}}, {"id": "b", "feedback": {"rating": 3}}]),
        _result([{"id": "c", "feedback": {"rating": 4}}]),
    ]
    mock_client.table.return_value = query

    ratings = await supabase_client.get_feedback_ratings()

    assert ratings == [5, 3, 4]
    assert [c.args for c in query.range.call_args_list] == [(0, 1), (2, 3)]
