# portal_core/workflows/executor.py
"""
Project lifecycle engine.

The only code path that writes Project.status. Every transition:
  1) locks the project row
  2) re-checks the expected source state under the lock
  3) writes the approval row (reviewer decisions only)
  4) updates the status with a compare-and-swap on the prior value
  5) appends a ProjectTransition row
all inside one transaction, then schedules notifications on commit.
"""
from __future__ import annotations

import logging
from typing import Tuple

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from portal_core import policy
from portal_core.exceptions import InvalidTransition, dependency_guard
from portal_core.models import Approval, Project, ProjectTransition
from portal_core.policy import Principal
from portal_core.services import notifications
from portal_core.workflows import (
    APPROVED,
    DECISION_APPROVED,
    DRAFT,
    OPERATIONAL_TRANSITIONS,
    PENDING_SUPERVISOR,
    REVIEWER_ROLES,
    normalize_role,
    normalize_state,
    pending_state_for_role,
    reviewer_role_for_state,
    target_for_decision,
    validate_transition,
)
from portal_core.workflows.ledger import record_decision, validate_comments, validate_decision

logger = logging.getLogger(__name__)


# ===============================================================
# Helpers
# ===============================================================

def lock_project(project_id) -> Project:
    try:
        return Project.objects.select_for_update().get(pk=project_id)
    except (Project.DoesNotExist, ValueError, TypeError):
        raise NotFound("Project not found.")


def _require_visible(principal: Principal, project: Project) -> None:
    if not policy.can_act(principal, policy.PROJECT_VIEW, project):
        raise PermissionDenied("You do not have access to this project.")


def _invalid(project: Project, message: str) -> InvalidTransition:
    return InvalidTransition(message, current=project.status)


def _apply_transition(*, project: Project, to_status: str, performed_by_id, now, **fields) -> Project:
    from_status = normalize_state(project.status)
    to_status = normalize_state(to_status)

    try:
        validate_transition(from_status, to_status)
    except ValueError as e:
        raise _invalid(project, str(e))

    updated = Project.objects.filter(pk=project.pk, status=from_status).update(
        status=to_status,
        updated_at=now,
        **fields,
    )
    if updated != 1:
        current = Project.objects.filter(pk=project.pk).values_list("status", flat=True).first()
        raise InvalidTransition(
            "Project status changed concurrently. Refresh and try again.",
            current=current,
        )

    ProjectTransition.objects.create(
        project=project,
        from_status=from_status,
        to_status=to_status,
        performed_by_id=performed_by_id,
    )

    project.refresh_from_db()
    logger.info("Project %s: %s -> %s (by user %s)", project.pk, from_status, to_status, performed_by_id)
    return project


def _notify_reviewers(project: Project) -> None:
    role = reviewer_role_for_state(project.status)
    if not role:
        return
    notifications.emit_many(
        notifications.active_user_ids_for_role(role),
        notifications.REVIEW_REQUIRED,
        title=f"Review required: {project.title}",
        message=f"Project '{project.title}' is awaiting your review.",
        project_id=project.pk,
        link_url=notifications.project_link(project.pk),
    )


# ===============================================================
# Engineer: submit for approval
# ===============================================================

def submit_for_approval(project_id, principal: Principal) -> Project:
    """
    draft -> pending_supervisor, owning engineer only.

    Review always restarts from the first stage, even after a changes
    request from a later stage.
    """
    with dependency_guard("project submission"), transaction.atomic():
        project = lock_project(project_id)
        _require_visible(principal, project)

        if project.engineer_id != principal.id:
            raise PermissionDenied("Only the project's engineer can submit it for approval.")
        if project.status != DRAFT:
            raise _invalid(project, f"Only draft projects can be submitted (current: {project.status}).")
        policy.require(principal, policy.PROJECT_SUBMIT, project)

        if not (project.title or "").strip():
            raise ValidationError({"title": "A project title is required before submission."})

        now = timezone.now()
        project = _apply_transition(
            project=project,
            to_status=PENDING_SUPERVISOR,
            performed_by_id=principal.id,
            now=now,
            submitted_at=now,
        )
        _notify_reviewers(project)

    return project


# ===============================================================
# Reviewer: decide
# ===============================================================

def decide(
    project_id,
    principal: Principal,
    decision: str,
    comments: str,
    approver_role: str | None = None,
) -> Tuple[Project, Approval]:
    """
    Record a reviewer decision and move the project accordingly.

    approved          -> next stage (or approved after the last stage)
    changes_requested -> draft

    Validation happens before any write; the approval row and the status
    change commit together or not at all.
    """
    role = normalize_role(approver_role or principal.role)

    if not principal.is_active:
        raise PermissionDenied("Your account is inactive.")
    if role not in REVIEWER_ROLES:
        raise PermissionDenied(f"Role {role or 'unknown'} is not part of the review chain.")
    if role != normalize_role(principal.role):
        raise PermissionDenied(f"You cannot decide as {role}.")

    decision = validate_decision(decision)
    comments = validate_comments(comments)

    with dependency_guard("review decision"), transaction.atomic():
        project = lock_project(project_id)
        _require_visible(principal, project)

        expected = pending_state_for_role(role)
        if project.status != expected:
            raise _invalid(
                project,
                f"Project is not awaiting {role} review (current: {project.status}).",
            )
        policy.require(principal, policy.PROJECT_DECIDE, project)

        now = timezone.now()
        approval = record_decision(
            project=project,
            approver_role=role,
            approver_id=principal.id,
            decision=decision,
            comments=comments,
            now=now,
        )
        project = _apply_transition(
            project=project,
            to_status=target_for_decision(project.status, decision),
            performed_by_id=principal.id,
            now=now,
        )

        if decision == DECISION_APPROVED:
            notifications.emit(
                project.engineer_id,
                notifications.PROJECT_APPROVED_STAGE,
                title=f"{role.replace('_', ' ').title()} approved: {project.title}",
                message=comments,
                project_id=project.pk,
                link_url=notifications.project_link(project.pk),
            )
            _notify_reviewers(project)
        else:
            notifications.emit(
                project.engineer_id,
                notifications.CHANGES_REQUESTED,
                title=f"Changes requested: {project.title}",
                message=comments,
                project_id=project.pk,
                link_url=notifications.project_link(project.pk),
            )

    return project, approval


# ===============================================================
# Operational: approved -> in_progress -> completed
# ===============================================================

def advance_project(project_id, principal: Principal, to_status: str) -> Project:
    target = normalize_state(to_status)
    if target not in OPERATIONAL_TRANSITIONS.values():
        raise ValidationError(
            {"to_status": f"Must be one of: {', '.join(sorted(OPERATIONAL_TRANSITIONS.values()))}."}
        )

    with dependency_guard("project status change"), transaction.atomic():
        project = lock_project(project_id)
        _require_visible(principal, project)

        if OPERATIONAL_TRANSITIONS.get(project.status) != target:
            raise _invalid(project, f"Cannot move project from {project.status} to {target}.")
        policy.require(
            principal,
            policy.PROJECT_ADVANCE,
            project,
            "Only a lab director can change the status of approved projects.",
        )

        project = _apply_transition(
            project=project,
            to_status=target,
            performed_by_id=principal.id,
            now=timezone.now(),
        )
        notifications.emit(
            project.engineer_id,
            notifications.PROJECT_STATUS_CHANGED,
            title=f"Project {project.get_status_display().lower()}: {project.title}",
            message=f"Project '{project.title}' is now {project.get_status_display().lower()}.",
            project_id=project.pk,
            link_url=notifications.project_link(project.pk),
        )

    return project


def results_allowed(project: Project) -> bool:
    return project.status == APPROVED
