# portal_core/services/notifications.py
"""
Fire-and-forget notification emission.

Notifications are handed to Celery only after the surrounding transaction
commits, so a rolled-back action never notifies anyone. Delivery failures
are logged and never propagate into the workflow action.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.contrib.auth import get_user_model
from django.db import transaction

logger = logging.getLogger(__name__)


# Notification types
REVIEW_REQUIRED = "review_required"
PROJECT_APPROVED_STAGE = "project_stage_approved"
CHANGES_REQUESTED = "changes_requested"
PROJECT_STATUS_CHANGED = "project_status_changed"
REQUEST_RESPONDED = "client_request_responded"
REQUEST_CONVERTED = "client_request_converted"


def _enqueue(payload: dict) -> None:
    from portal_core.tasks import deliver_notification

    try:
        deliver_notification.delay(**payload)
    except Exception:
        logger.exception(
            "Notification dispatch failed (ignored): type=%s user=%s",
            payload.get("notification_type"),
            payload.get("user_id"),
        )


def emit(
    user_id: int,
    notification_type: str,
    *,
    title: str,
    message: str,
    project_id: Optional[int] = None,
    request_id: Optional[int] = None,
    link_url: str = "",
) -> None:
    payload = {
        "user_id": user_id,
        "notification_type": notification_type,
        "title": title,
        "message": message,
        "project_id": project_id,
        "request_id": request_id,
        "link_url": link_url,
    }
    transaction.on_commit(lambda: _enqueue(payload))


def emit_many(user_ids: Iterable[int], notification_type: str, **kwargs) -> int:
    count = 0
    for uid in sorted(set(user_ids)):
        emit(uid, notification_type, **kwargs)
        count += 1
    return count


def active_user_ids_for_role(role: str) -> list[int]:
    User = get_user_model()
    return list(
        User.objects.filter(
            is_active=True,
            profile__role=role,
            profile__is_active=True,
        ).values_list("id", flat=True)
    )


def project_link(project_id: int) -> str:
    return f"/projects/{project_id}"


def request_link(request_id: int) -> str:
    return f"/requests/{request_id}"
