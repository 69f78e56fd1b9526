# portal_core/signals.py
from __future__ import annotations

from django.db.models.signals import post_save
from django.dispatch import receiver

from portal_core.models import (
    Approval,
    AuditLog,
    ClientRequest,
    ProjectTransition,
)


# ===============================================================
# WORKFLOW TRANSITIONS
# ===============================================================
@receiver(post_save, sender=ProjectTransition)
def audit_project_transition(sender, instance: ProjectTransition, created: bool, **kwargs):
    """
    Audit entry for every project status change. Runs inside the
    executor's transaction, so it commits or rolls back with it.
    """
    if not created:
        return

    AuditLog.objects.create(
        user_id=instance.performed_by_id,
        action=(
            f"WORKFLOW PROJECT {instance.project_id}: "
            f"{instance.from_status} -> {instance.to_status}"
        ),
        details={
            "project_id": instance.project_id,
            "from": instance.from_status,
            "to": instance.to_status,
        },
    )


# ===============================================================
# REVIEW DECISIONS
# ===============================================================
@receiver(post_save, sender=Approval)
def audit_review_decision(sender, instance: Approval, created: bool, **kwargs):
    AuditLog.objects.create(
        user_id=instance.approver_id,
        action=(
            f"REVIEW PROJECT {instance.project_id}: "
            f"{instance.approver_role} {instance.status}"
        ),
        details={
            "project_id": instance.project_id,
            "approval_id": instance.pk,
            "approver_role": instance.approver_role,
            "status": instance.status,
            "created": created,
        },
    )


# ===============================================================
# CLIENT REQUESTS
# ===============================================================
@receiver(post_save, sender=ClientRequest)
def audit_client_request_created(sender, instance: ClientRequest, created: bool, **kwargs):
    if not created:
        return

    AuditLog.objects.create(
        user_id=instance.client_id,
        action=f"CLIENT REQUEST {instance.pk} submitted",
        details={
            "request_id": instance.pk,
            "request_type": instance.request_type,
            "priority": instance.priority,
        },
    )
