# roomchat/core/responses.py
"""Response envelope shared by every REST endpoint."""
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def generate_request_id() -> str:
    return "REQ_" + "".join(secrets.choice("0123456789") for _ in range(14))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = generate_request_id()
        request.state.request_id = request_id
    return request_id


def success_response(
    request: Request,
    data: Any = None,
    message: str = "Success",
    status_code: int = 200,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "message": message,
            "statusCode": status_code,
            "timestamp": utc_now_iso(),
            "requestId": _request_id(request),
            "data": jsonable_encoder(data),
        },
    )


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Any = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "success": False,
            "message": message,
            "statusCode": status_code,
            "timestamp": utc_now_iso(),
            "requestId": _request_id(request),
            "error": error,
        },
    )
