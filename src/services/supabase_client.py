"""Supabase client wrapper with async context manager support."""

import os
from datetime import date
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.models.appointment import ACTIVE_STATUSES
from src.models.requests import AppointmentListQuery
from src.utils.errors import ConflictError, SupabaseError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None

APPOINTMENTS_TABLE = "appointments"
PROPERTIES_TABLE = "properties"
USERS_TABLE = "users"

PROPERTY_SUMMARY_COLUMNS = "id,title,type,price,images,address"
PROPERTY_DETAIL_COLUMNS = "id,title,type,price,images,address,agent"
AGENT_SUMMARY_COLUMNS = "id,name,email,phone"
USER_AUTH_COLUMNS = "id,name,email,phone,role,status"

# Wire sort keys -> appointments columns
SORT_COLUMNS = {
    "appointmentDate": "appointment_date",
    "createdAt": "created_at",
    "status": "status",
    "priority": "priority",
}

# Below the default PostgREST max_rows, so a short page means the last page
STATS_PAGE_SIZE = 500


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        # Connection pooling is handled by Supabase's pooler
        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False


def is_unique_violation(error: Exception) -> bool:
    """Whether the store rejected a write on a unique constraint."""
    text = str(error).lower()
    return "duplicate key" in text or "23505" in text


def quote_filter_value(value: str) -> str:
    """Double-quote a PostgREST filter value so commas and parentheses stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


# Properties table operations
async def get_property_by_id(property_id: str, detailed: bool = False) -> Optional[dict]:
    """Get the property summary by ID."""
    columns = PROPERTY_DETAIL_COLUMNS if detailed else PROPERTY_SUMMARY_COLUMNS
    async with SupabaseClient() as client:
        try:
            result = client.table(PROPERTIES_TABLE).select(columns).eq("id", property_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get property: {e}") from e
    return result.data[0] if result.data else None


async def get_properties_by_ids(property_ids: list[str]) -> list[dict]:
    """Get property summaries for a batch of IDs."""
    if not property_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table(PROPERTIES_TABLE).select(PROPERTY_SUMMARY_COLUMNS).in_("id", property_ids).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get properties: {e}") from e
    return result.data or []


# Users table operations
async def get_user_by_id(user_id: str) -> Optional[dict]:
    """Get a user account by ID (never selects the password hash)."""
    async with SupabaseClient() as client:
        try:
            result = client.table(USERS_TABLE).select(USER_AUTH_COLUMNS).eq("id", user_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get user: {e}") from e
    return result.data[0] if result.data else None


async def get_users_by_ids(user_ids: list[str]) -> list[dict]:
    """Get agent summaries for a batch of IDs."""
    if not user_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table(USERS_TABLE).select(AGENT_SUMMARY_COLUMNS).in_("id", user_ids).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get users: {e}") from e
    return result.data or []


# Appointments table operations
async def create_appointment(appointment_data: dict) -> dict:
    """Insert a new appointment.

    The partial unique index on (assigned_agent, appointment_date,
    appointment_time) for active statuses surfaces here as ConflictError.
    """
    async with SupabaseClient() as client:
        with log_timing("supabase.create_appointment", logger=logger):
            try:
                result = client.table(APPOINTMENTS_TABLE).insert(appointment_data).execute()
            except Exception as e:
                if is_unique_violation(e):
                    raise ConflictError("Another appointment is already booked for this time slot") from e
                raise SupabaseError(f"Failed to create appointment: {e}") from e
    if not result.data:
        raise SupabaseError("Failed to create appointment: no data returned")
    return result.data[0]


async def get_appointment_by_id(appointment_id: str) -> Optional[dict]:
    """Get appointment by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table(APPOINTMENTS_TABLE).select("*").eq("id", appointment_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get appointment: {e}") from e
    return result.data[0] if result.data else None


async def update_appointment(appointment_id: str, updates: dict) -> dict:
    """Update an appointment and return the stored row."""
    async with SupabaseClient() as client:
        with log_timing("supabase.update_appointment", logger=logger, appointment_id=appointment_id):
            try:
                result = client.table(APPOINTMENTS_TABLE).update(updates).eq("id", appointment_id).execute()
            except Exception as e:
                if is_unique_violation(e):
                    raise ConflictError("Another appointment is already booked for this time slot") from e
                raise SupabaseError(f"Failed to update appointment: {e}") from e
    if not result.data:
        raise SupabaseError(f"Failed to update appointment: {appointment_id}")
    return result.data[0]


async def delete_appointment(appointment_id: str) -> bool:
    """Hard delete an appointment. Returns False when nothing was deleted."""
    async with SupabaseClient() as client:
        try:
            result = client.table(APPOINTMENTS_TABLE).delete().eq("id", appointment_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete appointment: {e}") from e
    return bool(result.data)


async def find_conflicting_appointment(
    agent_id: Optional[str],
    appointment_date: date,
    appointment_time: str,
    exclude_id: Optional[str] = None
) -> Optional[dict]:
    """Find an active appointment holding the agent's slot.

    Unassigned appointments never conflict with each other.
    """
    if not agent_id:
        return None

    async with SupabaseClient() as client:
        try:
            query = (
                client.table(APPOINTMENTS_TABLE)
                .select("id,assigned_agent,appointment_date,appointment_time,status")
                .eq("assigned_agent", agent_id)
                .eq("appointment_date", appointment_date.isoformat())
                .eq("appointment_time", appointment_time)
                .in_("status", [status.value for status in ACTIVE_STATUSES])
            )
            if exclude_id:
                query = query.neq("id", exclude_id)
            result = query.limit(1).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to check appointment conflicts: {e}") from e
    return result.data[0] if result.data else None


async def query_appointments(params: AppointmentListQuery) -> tuple[list[dict], int]:
    """Filtered, sorted, paginated listing. Returns (rows, total count)."""
    async with SupabaseClient() as client:
        with log_timing("supabase.query_appointments", logger=logger, page=params.page, limit=params.limit):
            try:
                query = client.table(APPOINTMENTS_TABLE).select("*", count="exact")

                if params.status:
                    query = query.eq("status", params.status.value)
                if params.type:
                    query = query.eq("type", params.type.value)
                if params.priority:
                    query = query.eq("priority", params.priority.value)
                if params.start_date:
                    query = query.gte("appointment_date", params.start_date.isoformat())
                if params.end_date:
                    query = query.lte("appointment_date", params.end_date.isoformat())
                if params.search:
                    pattern = quote_filter_value(f"%{params.search}%")
                    query = query.or_(
                        f"name.ilike.{pattern},email.ilike.{pattern},phone.ilike.{pattern}"
                    )

                query = query.order(SORT_COLUMNS[params.sort_by], desc=params.sort_order == "desc")
                result = query.range(params.offset, params.offset + params.limit - 1).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to list appointments: {e}") from e
    rows = result.data or []
    total = result.count if result.count is not None else len(rows)
    return rows, total


async def get_appointments_by_date(appointment_date: date) -> list[dict]:
    """All appointments on a calendar date, earliest first."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(APPOINTMENTS_TABLE)
                .select("*")
                .eq("appointment_date", appointment_date.isoformat())
                .order("appointment_time")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get daily appointments: {e}") from e
    return result.data or []


async def count_appointments(
    status: Optional[str] = None,
    appointment_type: Optional[str] = None,
    priority: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None
) -> int:
    """Exact number of appointments matching the filters, counted by the store."""
    async with SupabaseClient() as client:
        try:
            query = client.table(APPOINTMENTS_TABLE).select("id", count="exact", head=True)
            if status:
                query = query.eq("status", status)
            if appointment_type:
                query = query.eq("type", appointment_type)
            if priority:
                query = query.eq("priority", priority)
            if date_from:
                query = query.gte("appointment_date", date_from.isoformat())
            if date_to:
                query = query.lte("appointment_date", date_to.isoformat())
            result = query.execute()
        except Exception as e:
            raise SupabaseError(f"Failed to count appointments: {e}") from e
    return result.count or 0


async def get_feedback_ratings() -> list[int]:
    """Every submitted feedback rating, read page by page."""
    ratings: list[int] = []
    start = 0
    async with SupabaseClient() as client:
        with log_timing("supabase.get_feedback_ratings", logger=logger):
            while True:
                try:
                    result = (
                        client.table(APPOINTMENTS_TABLE)
                        .select("id,feedback")
                        .not_.is_("feedback", "null")
                        .order("id")
                        .range(start, start + STATS_PAGE_SIZE - 1)
                        .execute()
                    )
                except Exception as e:
                    raise SupabaseError(f"Failed to get feedback ratings: {e}") from e

                rows = result.data or []
                for row in rows:
                    rating = (row.get("feedback") or {}).get("rating")
                    if rating is not None:
                        ratings.append(rating)
                if len(rows) < STATS_PAGE_SIZE:
                    return ratings
                start += STATS_PAGE_SIZE
