# portal_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail

from portal_core.models import Notification

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def deliver_notification(
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    project_id: int | None = None,
    request_id: int | None = None,
    link_url: str = "",
) -> int | None:
    User = get_user_model()
    user = User.objects.filter(id=user_id).first()
    if user is None:
        logger.warning("Notification %s dropped: user %s no longer exists", notification_type, user_id)
        return None

    notification = Notification.objects.create(
        user=user,
        notification_type=notification_type,
        title=title,
        message=message,
        project_id=project_id,
        request_id=request_id,
        link_url=link_url or "",
    )

    if getattr(settings, "PORTAL_EMAIL_NOTIFICATIONS", False) and user.email:
        try:
            send_mail(
                subject=title,
                message=message,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[user.email],
                fail_silently=False,
            )
        except Exception:
            logger.exception("Notification email failed for user %s (ignored).", user_id)

    return notification.pk
