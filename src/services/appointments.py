"""Appointment lifecycle - booking, conflict detection and status transitions."""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional
from pydantic import ValidationError
from ulid import ULID

from src.models.appointment import (
    Appointment,
    AppointmentPriority,
    AppointmentStatus,
    AppointmentType,
)
from src.models.property import PropertySummary
from src.models.requests import (
    AgentAssignment,
    AppointmentCreate,
    AppointmentListQuery,
    FeedbackCreate,
    RescheduleRequest,
    StatusUpdate,
    is_valid_time,
    normalize_time,
)
from src.models.user import AgentSummary
from src.services.supabase_client import (
    count_appointments,
    create_appointment,
    delete_appointment as delete_appointment_record,
    find_conflicting_appointment,
    get_appointment_by_id,
    get_appointments_by_date,
    get_feedback_ratings,
    get_properties_by_ids,
    get_property_by_id,
    get_user_by_id,
    get_users_by_ids,
    query_appointments,
    update_appointment,
)
from src.utils.errors import ConflictError, InvalidInputError, NotFoundError, format_validation_errors
from src.utils.logging import get_structured_logger, mask_identifier, timed
from src.utils.settings import AppConfig

logger = get_structured_logger(__name__)

CONFLICT_MESSAGE = "Another appointment is already booked for this time slot"
PAST_SLOT_MESSAGE = "Appointment must be scheduled in the future"


def generate_appointment_id() -> str:
    """Generate a text-based appointment ID (ULID format)."""
    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Current wall-clock time in the configured timezone, naive."""
    return utc_now().astimezone(AppConfig.timezone()).replace(tzinfo=None)


def parse_slot(raw_date: Any, raw_time: Any) -> Optional[datetime]:
    """Best-effort start datetime from raw request values, None if unparsable."""
    if isinstance(raw_date, date):
        slot_date = raw_date
    elif isinstance(raw_date, str):
        try:
            slot_date = date.fromisoformat(raw_date.strip())
        except ValueError:
            return None
    else:
        return None

    if not is_valid_time(raw_time):
        return None
    hours, minutes = normalize_time(raw_time.strip()).split(":")
    return datetime.combine(slot_date, time(int(hours), int(minutes)))


def is_future_slot(slot: datetime) -> bool:
    return slot > local_now()


def parse_request(schema, payload: Optional[dict], message: str):
    """Validate a request body, converting pydantic errors to InvalidInputError."""
    try:
        return schema.model_validate(payload or {})
    except ValidationError as e:
        raise InvalidInputError(message, errors=format_validation_errors(e)) from e


def _field_value(payload: dict, alias: str, name: str) -> Any:
    return payload.get(alias, payload.get(name))


async def _load_appointment(appointment_id: str) -> Appointment:
    record = await get_appointment_by_id(appointment_id)
    if not record:
        raise NotFoundError("Appointment not found")
    return Appointment.model_validate(record)


async def _ensure_slot_free(
    agent_id: Optional[str],
    appointment_date: date,
    appointment_time: str,
    exclude_id: Optional[str] = None
) -> None:
    conflict = await find_conflicting_appointment(agent_id, appointment_date, appointment_time, exclude_id)
    if conflict:
        logger.warning(
            "Appointment slot conflict",
            agent_id=agent_id,
            appointment_date=appointment_date.isoformat(),
            appointment_time=appointment_time,
            conflicting_id=conflict.get("id"),
        )
        raise ConflictError(CONFLICT_MESSAGE)


async def populate(
    appointments: list[Appointment],
    detailed_property: bool = False
) -> list[Appointment]:
    """Attach property and agent summaries to appointments."""
    if not appointments:
        return appointments

    if detailed_property and len(appointments) == 1:
        record = await get_property_by_id(appointments[0].property_id, detailed=True)
        property_rows = [record] if record else []
    else:
        property_ids = sorted({a.property_id for a in appointments})
        property_rows = await get_properties_by_ids(property_ids)

    agent_ids = sorted({a.assigned_agent for a in appointments if a.assigned_agent})
    agent_rows = await get_users_by_ids(agent_ids)

    properties = {row["id"]: PropertySummary.model_validate(row) for row in property_rows}
    agents = {row["id"]: AgentSummary.model_validate(row) for row in agent_rows}

    for appointment in appointments:
        appointment.property_info = properties.get(appointment.property_id)
        appointment.agent_info = agents.get(appointment.assigned_agent) if appointment.assigned_agent else None
    return appointments


async def _populate_one(appointment: Appointment, detailed_property: bool = False) -> Appointment:
    populated = await populate([appointment], detailed_property=detailed_property)
    return populated[0]


@timed("appointments.book")
async def book_appointment(payload: dict) -> Appointment:
    """Book a new appointment in pending status.

    Every field violation is reported at once, including a slot that is not
    in the future. Raises NotFoundError for an unknown property and
    ConflictError when the slot is already held.
    """
    payload = payload or {}
    errors: list[dict] = []
    request: Optional[AppointmentCreate] = None

    try:
        request = AppointmentCreate.model_validate(payload)
    except ValidationError as e:
        errors.extend(format_validation_errors(e))

    if request is not None:
        slot = datetime.combine(request.appointment_date, time.fromisoformat(request.appointment_time))
    else:
        slot = parse_slot(
            _field_value(payload, "appointmentDate", "appointment_date"),
            _field_value(payload, "appointmentTime", "appointment_time"),
        )
    if slot is not None and not is_future_slot(slot):
        errors.append({"field": "appointmentDate", "message": PAST_SLOT_MESSAGE})

    if errors:
        raise InvalidInputError("Invalid appointment data", errors=errors)

    property_record = await get_property_by_id(request.property_id)
    if not property_record:
        raise NotFoundError("The selected property does not exist")

    appointment = Appointment(
        id=generate_appointment_id(),
        name=request.name,
        email=request.email,
        phone=request.phone,
        property_id=request.property_id,
        appointment_date=request.appointment_date,
        appointment_time=request.appointment_time,
        type=request.type,
        notes=request.notes,
        status=AppointmentStatus.PENDING,
        priority=AppointmentPriority.MEDIUM,
        created_at=utc_now(),
        updated_at=utc_now(),
    )

    await _ensure_slot_free(appointment.assigned_agent, appointment.appointment_date, appointment.appointment_time)

    stored = Appointment.model_validate(await create_appointment(appointment.to_record()))
    stored.property_info = PropertySummary.model_validate(property_record)

    logger.info(
        "Appointment booked",
        appointment_id=stored.id,
        property_id=stored.property_id,
        appointment_date=stored.appointment_date.isoformat(),
        appointment_time=stored.appointment_time,
        client_email=mask_identifier(stored.email),
        client_phone=mask_identifier(stored.phone),
    )
    return stored


async def get_appointment(appointment_id: str) -> Appointment:
    """Single appointment with property (including listing agent) and agent populated."""
    appointment = await _load_appointment(appointment_id)
    return await _populate_one(appointment, detailed_property=True)


async def list_appointments(params: dict) -> dict:
    """Filtered, paginated admin listing."""
    query = parse_request(AppointmentListQuery, params, "Invalid search parameters")
    rows, total = await query_appointments(query)
    appointments = await populate([Appointment.model_validate(row) for row in rows])

    total_pages = math.ceil(total / query.limit) if total else 0
    return {
        "appointments": appointments,
        "pagination": {
            "currentPage": query.page,
            "totalPages": total_pages,
            "totalAppointments": total,
            "hasNextPage": query.page < total_pages,
            "hasPrevPage": query.page > 1,
        },
    }


@timed("appointments.update_status")
async def update_appointment_status(appointment_id: str, payload: dict) -> Appointment:
    """Move an appointment to any status, stamping the transition time."""
    request = parse_request(StatusUpdate, payload, "Invalid status update")
    appointment = await _load_appointment(appointment_id)

    now = utc_now()
    updates: dict[str, Any] = {"status": request.status.value, "updated_at": now.isoformat()}
    if request.status == AppointmentStatus.CONFIRMED:
        updates["confirmed_at"] = now.isoformat()
    elif request.status == AppointmentStatus.COMPLETED:
        updates["completed_at"] = now.isoformat()
    elif request.status == AppointmentStatus.CANCELLED:
        updates["cancelled_at"] = now.isoformat()
        if request.cancellation_reason:
            updates["cancellation_reason"] = request.cancellation_reason

    updated = Appointment.model_validate(await update_appointment(appointment.id, updates))
    logger.info(
        "Appointment status updated",
        appointment_id=updated.id,
        previous_status=appointment.status.value,
        new_status=updated.status.value,
    )
    return await _populate_one(updated)


@timed("appointments.assign_agent")
async def assign_agent(appointment_id: str, payload: dict) -> Appointment:
    """Assign an agent; a pending appointment becomes confirmed.

    The new agent's schedule is not re-checked for conflicts here.
    """
    request = parse_request(AgentAssignment, payload, "Invalid agent ID")

    agent = await get_user_by_id(request.assigned_agent)
    if not agent:
        raise NotFoundError("The selected agent does not exist")

    appointment = await _load_appointment(appointment_id)

    now = utc_now()
    updates: dict[str, Any] = {"assigned_agent": request.assigned_agent, "updated_at": now.isoformat()}
    if appointment.status == AppointmentStatus.PENDING:
        updates["status"] = AppointmentStatus.CONFIRMED.value
        updates["confirmed_at"] = now.isoformat()

    updated = Appointment.model_validate(await update_appointment(appointment.id, updates))
    logger.info(
        "Appointment assigned",
        appointment_id=updated.id,
        agent_id=request.assigned_agent,
        new_status=updated.status.value,
    )
    return await _populate_one(updated)


@timed("appointments.reschedule")
async def reschedule_appointment(appointment_id: str, payload: dict) -> Appointment:
    """Move an appointment to a new future slot and reset it to pending."""
    request = parse_request(RescheduleRequest, payload, "Invalid reschedule data")
    appointment = await _load_appointment(appointment_id)

    slot = datetime.combine(request.appointment_date, time.fromisoformat(request.appointment_time))
    if not is_future_slot(slot):
        raise InvalidInputError(
            "Cannot schedule an appointment in the past",
            errors=[{"field": "appointmentDate", "message": PAST_SLOT_MESSAGE}],
        )

    await _ensure_slot_free(
        appointment.assigned_agent,
        request.appointment_date,
        request.appointment_time,
        exclude_id=appointment.id,
    )

    updates = {
        "appointment_date": request.appointment_date.isoformat(),
        "appointment_time": request.appointment_time,
        "status": AppointmentStatus.PENDING.value,
        "updated_at": utc_now().isoformat(),
    }
    updated = Appointment.model_validate(await update_appointment(appointment.id, updates))
    logger.info(
        "Appointment rescheduled",
        appointment_id=updated.id,
        previous_status=appointment.status.value,
        appointment_date=updated.appointment_date.isoformat(),
        appointment_time=updated.appointment_time,
    )
    return await _populate_one(updated)


async def submit_feedback(appointment_id: str, payload: dict) -> Appointment:
    """Record client feedback; only completed appointments accept it."""
    request = parse_request(FeedbackCreate, payload, "Invalid feedback data")
    appointment = await _load_appointment(appointment_id)

    if appointment.status != AppointmentStatus.COMPLETED:
        raise InvalidInputError(
            "Only completed appointments can be rated",
            errors=[{"field": "status", "message": "Appointment is not completed"}],
        )

    updates = {
        "feedback": {
            "rating": request.rating,
            "comment": request.comment,
            "submitted_at": utc_now().isoformat(),
        },
        "updated_at": utc_now().isoformat(),
    }
    updated = Appointment.model_validate(await update_appointment(appointment.id, updates))
    logger.info("Appointment feedback submitted", appointment_id=updated.id, rating=request.rating)
    return await _populate_one(updated)


async def delete_appointment(appointment_id: str) -> None:
    """Hard delete; unknown IDs are NotFoundError."""
    await _load_appointment(appointment_id)
    if not await delete_appointment_record(appointment_id):
        raise NotFoundError("Appointment not found")
    logger.info("Appointment deleted", appointment_id=appointment_id)


async def get_daily_appointments(day: str) -> dict:
    """Appointments on a calendar date, in time order and grouped by status."""
    try:
        target = date.fromisoformat(day)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(
            "Invalid date",
            errors=[{"field": "date", "message": "Expected YYYY-MM-DD"}],
        ) from e

    rows = await get_appointments_by_date(target)
    appointments = await populate([Appointment.model_validate(row) for row in rows])
    appointments.sort(key=lambda a: a.appointment_time)

    by_status: dict[str, list[Appointment]] = {}
    for appointment in appointments:
        by_status.setdefault(appointment.status.value, []).append(appointment)

    return {
        "date": target.isoformat(),
        "total": len(appointments),
        "appointments": appointments,
        "appointmentsByStatus": by_status,
    }


@timed("appointments.stats")
async def get_appointment_stats() -> dict:
    """Counts by status, type and priority, average rating, today and this week.

    Every count is taken by the store so the figures hold past the row cap
    of a single read.
    """
    today = local_now().date()
    week_start = today - timedelta(days=7)

    total = await count_appointments()
    by_status = {status: await count_appointments(status=status.value) for status in AppointmentStatus}
    today_count = await count_appointments(date_from=today, date_to=today)
    week_count = await count_appointments(date_from=week_start)

    by_type = [
        {"_id": appointment_type.value, "count": await count_appointments(appointment_type=appointment_type.value)}
        for appointment_type in AppointmentType
    ]
    by_priority = [
        {"_id": priority.value, "count": await count_appointments(priority=priority.value)}
        for priority in AppointmentPriority
    ]

    ratings = await get_feedback_ratings()

    return {
        "overview": {
            "total": total,
            "pending": by_status[AppointmentStatus.PENDING],
            "confirmed": by_status[AppointmentStatus.CONFIRMED],
            "completed": by_status[AppointmentStatus.COMPLETED],
            "cancelled": by_status[AppointmentStatus.CANCELLED],
            "noShow": by_status[AppointmentStatus.NO_SHOW],
            "today": today_count,
            "thisWeek": week_count,
        },
        "distributions": {
            "byType": _distribution(by_type),
            "byPriority": _distribution(by_priority),
        },
        "feedback": {
            "averageRating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
        },
    }


def _distribution(groups: list[dict]) -> list[dict]:
    """Non-empty groups, largest first."""
    return sorted((group for group in groups if group["count"]), key=lambda group: -group["count"])
