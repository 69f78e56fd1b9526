# portal_core/workflows/ledger.py
"""
Approval ledger.

Holds one current verdict per (project, reviewer role). A repeated review
after a changes request overwrites the existing row instead of inserting a
new one, so each role has a single current verdict on a project.

The ledger only writes approval rows; project status belongs to the
executor, which calls record_decision inside its own transaction.
"""
from __future__ import annotations

import logging

from django.db.models import Exists, F, OuterRef, QuerySet
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from portal_core.models import Approval, ApprovalStatus
from portal_core.workflows import (
    DECISION_APPROVED,
    DECISIONS,
    REVIEWER_ROLES,
    normalize_role,
    normalize_state,
)

logger = logging.getLogger(__name__)


def validate_comments(comments) -> str:
    text = str(comments or "").strip()
    if not text:
        raise ValidationError({"comments": "Comments are required for every review decision."})
    return text


def validate_decision(decision) -> str:
    d = normalize_state(decision)
    if d not in DECISIONS:
        raise ValidationError(
            {"decision": f"Decision must be one of: {', '.join(sorted(DECISIONS))}."}
        )
    return d


def record_decision(
    *,
    project,
    approver_role: str,
    approver_id: int | None,
    decision: str,
    comments: str,
    now=None,
) -> Approval:
    """
    Find the current approval for (project, role); insert it if absent,
    otherwise update it in place. Returns the current row.

    Must run inside the caller's transaction.
    """
    comments = validate_comments(comments)
    decision = validate_decision(decision)
    role = normalize_role(approver_role)
    if role not in REVIEWER_ROLES:
        raise ValidationError({"approver_role": f"{role or 'empty role'} is not a reviewer role."})

    now = now or timezone.now()
    status = (
        ApprovalStatus.APPROVED
        if decision == DECISION_APPROVED
        else ApprovalStatus.CHANGES_REQUESTED
    )

    approval, created = Approval.objects.update_or_create(
        project=project,
        approver_role=role,
        defaults={
            "approver_id": approver_id,
            "status": status,
            "comments": comments,
            "approved_at": now if status == ApprovalStatus.APPROVED else None,
        },
    )

    logger.info(
        "Approval %s for project %s: role=%s status=%s (%s)",
        approval.pk,
        project.pk,
        role,
        status,
        "created" if created else "updated",
    )
    return approval


def changes_requested_flag() -> Exists:
    """
    Subquery flag for annotating project querysets: true while any
    reviewer role's current verdict is changes_requested.
    """
    return Exists(
        Approval.objects.filter(
            project=OuterRef("pk"),
            status=ApprovalStatus.CHANGES_REQUESTED,
        )
    )


def has_changes_requested(project) -> bool:
    return Approval.objects.filter(
        project=project,
        status=ApprovalStatus.CHANGES_REQUESTED,
    ).exists()


def review_history(project) -> QuerySet:
    """
    Current approval rows for a project, most recent decision first,
    annotated with the approver's display name.
    """
    return (
        Approval.objects.filter(project=project)
        .select_related("approver")
        .annotate(approver_name=F("approver__profile__full_name"))
        .order_by("-updated_at", "-id")
    )
