# portal_core/exceptions.py
from __future__ import annotations

import logging
from contextlib import contextmanager

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class InvalidTransition(APIException):
    """
    Raised when an action targets a project (or request) that is not in the
    required source state. Carries the current state so clients can refresh.
    """

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The requested transition is not valid from the current state."
    default_code = "invalid_transition"

    def __init__(self, detail=None, *, current: str | None = None, code=None):
        super().__init__(detail=detail, code=code)
        self.current = current


class DependencyFailure(APIException):
    """
    Raised when the database or file storage fails during an action.
    Nothing is written; the same action can be retried.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "A backing service is unavailable. Please retry."
    default_code = "dependency_failure"


def api_exception_handler(exc, context):
    """
    DRF's default handler plus a stable `code` field, and `current`
    for invalid transitions.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(response.data, dict):
        codes = exc.get_codes() if isinstance(exc, APIException) else None
        if isinstance(codes, str):
            response.data.setdefault("code", codes)
        elif isinstance(exc, APIException) and isinstance(codes, (dict, list)):
            response.data.setdefault("code", exc.default_code)

    if isinstance(exc, InvalidTransition) and exc.current is not None:
        response.data["current"] = exc.current

    return response


@contextmanager
def dependency_guard(action: str):
    """
    Convert database/storage failures raised inside a workflow action into
    DependencyFailure. The surrounding transaction has already rolled back.
    """
    try:
        yield
    except (DatabaseError, OSError) as exc:
        logger.exception("Dependency failure during %s", action)
        raise DependencyFailure(f"Could not complete {action}. Please retry.") from exc
