"""Appointments endpoint for Vercel.

All /api/appointments paths are rewritten to this function (see vercel.json);
routing on method and path happens here.
"""

from http.server import BaseHTTPRequestHandler
from urllib.parse import urlsplit, parse_qsl
import asyncio
import json
import re
import traceback

from pydantic import BaseModel

from src.services import appointments as service
from src.services.auth import authenticate_admin
from src.utils.errors import GatewayError, InvalidInputError, error_response
from src.utils.logging import correlation_context, get_structured_logger, mask_sensitive_data
from src.utils.logging_config import LoggingConfig
from src.utils.settings import AppConfig

LoggingConfig.setup_logging()
# Refuse to serve without a signing key
AppConfig.validate()

logger = get_structured_logger(__name__)

BASE_PATH = "/api/appointments"
MAX_BODY_BYTES = 64 * 1024


def serialize(value):
    """Convert service results (models nested in dicts/lists) to JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {key: serialize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [serialize(item) for item in value]
    return value


def ok(data=None, message=None, status=200) -> tuple[int, dict]:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = serialize(data)
    return status, body


async def book(params, query, body):
    appointment = await service.book_appointment(body)
    return ok(
        {"appointment": appointment},
        "Appointment booked, we will contact you to confirm it",
        status=201,
    )


async def list_all(params, query, body):
    return ok(await service.list_appointments(query))


async def stats(params, query, body):
    return ok(await service.get_appointment_stats())


async def daily(params, query, body):
    return ok(await service.get_daily_appointments(params["date"]))


async def get_one(params, query, body):
    return ok({"appointment": await service.get_appointment(params["id"])})


async def update_status(params, query, body):
    appointment = await service.update_appointment_status(params["id"], body)
    return ok({"appointment": appointment}, "Appointment status updated")


async def assign(params, query, body):
    appointment = await service.assign_agent(params["id"], body)
    return ok({"appointment": appointment}, "Appointment assigned")


async def reschedule(params, query, body):
    appointment = await service.reschedule_appointment(params["id"], body)
    return ok({"appointment": appointment}, "Appointment rescheduled")


async def feedback(params, query, body):
    appointment = await service.submit_feedback(params["id"], body)
    return ok({"appointment": appointment}, "Feedback submitted")


async def delete(params, query, body):
    await service.delete_appointment(params["id"])
    return ok(message="Appointment deleted")


# (method, path pattern, action, privileged); literal paths before /{id}
ROUTES = [
    ("POST", r"", book, False),
    ("GET", r"", list_all, True),
    ("GET", r"/stats/overview", stats, True),
    ("GET", r"/daily/(?P<date>[^/]+)", daily, True),
    ("GET", r"/(?P<id>[^/]+)", get_one, True),
    ("PUT", r"/(?P<id>[^/]+)/status", update_status, True),
    ("PUT", r"/(?P<id>[^/]+)/assign", assign, True),
    ("PUT", r"/(?P<id>[^/]+)/reschedule", reschedule, True),
    ("POST", r"/(?P<id>[^/]+)/feedback", feedback, False),
    ("DELETE", r"/(?P<id>[^/]+)", delete, True),
]
_COMPILED_ROUTES = [
    (method, re.compile(f"^{re.escape(BASE_PATH)}{pattern}/?$"), action, privileged)
    for method, pattern, action, privileged in ROUTES
]


def match_route(method: str, path: str):
    """Return (action, params, privileged), or a status code when nothing matches."""
    path_matched = False
    for route_method, pattern, action, privileged in _COMPILED_ROUTES:
        match = pattern.match(path)
        if not match:
            continue
        path_matched = True
        if route_method == method:
            return action, match.groupdict(), privileged
    return 405 if path_matched else 404


async def dispatch(method: str, path: str, query: dict, body: dict, authorization) -> tuple[int, dict]:
    """Route a request and map failures to structured error bodies."""
    route = match_route(method, path)
    if isinstance(route, int):
        return route, {
            "success": False,
            "message": "Route not found" if route == 404 else "Method not allowed",
        }

    action, params, privileged = route
    try:
        if privileged:
            await authenticate_admin(authorization)
        return await action(params, query, body)
    except GatewayError as e:
        if e.status_code >= 500:
            logger.error("Request failed", path=path, method=method, error=str(e), exc_info=True)
        else:
            logger.info(
                "Request rejected",
                path=path,
                method=method,
                status_code=e.status_code,
                error_type=e.error_type,
                error=mask_sensitive_data(e.message),
            )
        return e.status_code, error_response(e)
    except Exception:
        logger.exception("Unexpected error handling appointment request", path=path, method=method)
        error = GatewayError("Internal server error")
        details = {"stack": traceback.format_exc()} if AppConfig.is_development() else None
        return 500, error_response(error, details)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for appointments."""

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_PUT(self):
        self._handle("PUT")

    def do_DELETE(self):
        self._handle("DELETE")

    def _read_body(self) -> dict:
        try:
            content_length = int(self.headers.get('Content-Length', 0) or 0)
        except ValueError as e:
            raise InvalidInputError("Invalid Content-Length header") from e
        if content_length <= 0:
            return {}
        if content_length > MAX_BODY_BYTES:
            raise InvalidInputError("Request body too large")
        try:
            raw_body = self.rfile.read(content_length).decode('utf-8')
            body = json.loads(raw_body) if raw_body else {}
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            raise InvalidInputError("Request body is not valid JSON") from e
        if not isinstance(body, dict):
            raise InvalidInputError("Request body must be a JSON object")
        return body

    def _handle(self, method: str) -> None:
        correlation_id = self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)
        with correlation_context(correlation_id) as cid:
            url = urlsplit(self.path)
            query = dict(parse_qsl(url.query))

            try:
                body = self._read_body() if method in ("POST", "PUT") else {}
            except InvalidInputError as e:
                self._send_json(e.status_code, error_response(e), cid)
                return

            status, payload = asyncio.run(
                dispatch(method, url.path, query, body, self.headers.get("Authorization"))
            )
            logger.info("Appointment request handled", method=method, path=url.path, status_code=status)
            self._send_json(status, payload, cid)

    def _send_json(self, status: int, payload: dict, correlation_id: str) -> None:
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header(LoggingConfig.LOG_CORRELATION_ID_HEADER, correlation_id)
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode('utf-8'))
