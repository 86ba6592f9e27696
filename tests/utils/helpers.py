"""Test helper functions."""

import json
from email.message import Message
from io import BytesIO
from typing import Any, Dict, Optional
from unittest.mock import Mock


def build_headers(headers: Optional[Dict[str, str]] = None) -> Message:
    """Case-insensitive header mapping like the one BaseHTTPRequestHandler parses."""
    message = Message()
    for key, value in (headers or {}).items():
        message[key] = value
    return message


def create_handler_request(
    handler_cls,
    method: str = "GET",
    path: str = "/api/appointments",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
):
    """Instantiate a Vercel handler without a socket, with response methods mocked."""
    raw_body = json.dumps(body).encode("utf-8") if body is not None else b""
    all_headers = {"Content-Type": "application/json", "Content-Length": str(len(raw_body))}
    all_headers.update(headers or {})

    h = handler_cls.__new__(handler_cls)
    h.command = method
    h.path = path
    h.request_version = "HTTP/1.1"
    h.headers = build_headers(all_headers)
    h.rfile = BytesIO(raw_body)
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def read_json_response(h) -> tuple[int, Dict[str, Any]]:
    """Status code and decoded JSON body written by a handler."""
    status = h.send_response.call_args[0][0]
    h.wfile.seek(0)
    return status, json.loads(h.wfile.read().decode("utf-8"))


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
