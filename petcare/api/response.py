# FILE: petcare/api/response.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from petcare.services.errors import PetcareError

logger = logging.getLogger(__name__)


def ok(
    data: Any = None,
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Standard success wrapper:
    {
      "ok": true,
      "data": ...,
      "meta": {...} (optional)
    }
    """
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    """
    Standard error wrapper:
    {
      "ok": false,
      "error": {"msg": "...", "code": "...", "details": ...}
    }
    """
    payload: Dict[str, Any] = {
        "ok": False,
        "error": {
            "msg": msg,
            "code": code,
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def fail(e: PetcareError) -> JSONResponse:
    """Business-rule rejection -> error envelope."""
    logger.warning("Rejected [%s]: %s", e.code, e.message)
    return err(e.message, status_code=e.status_code, code=e.code, details=e.details)


def safe_err(e: Exception) -> JSONResponse:
    # Make SQL errors readable instead of full trace
    if isinstance(e, IntegrityError):
        logger.warning("Integrity error: %s", getattr(e, "orig", e))
        return err("Database constraint error (duplicate/invalid reference).", status_code=400, code="DUPLICATE_ENTRY")
    logger.exception("Unexpected error")
    return err(str(getattr(e, "detail", e)), status_code=getattr(e, "status_code", 500))
