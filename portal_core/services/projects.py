# portal_core/services/projects.py
"""
Project content operations.

Status is never written here; see portal_core.workflows.executor.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from portal_core import policy
from portal_core.exceptions import InvalidTransition, dependency_guard
from portal_core.models import (
    ClientRequest,
    Project,
    ProjectLabor,
    ProjectMaterial,
    ProjectResult,
    ProjectStatus,
)
from portal_core.policy import Principal
from portal_core.services import storage
from portal_core.workflows import pending_state_for_role
from portal_core.workflows.executor import lock_project, results_allowed
from portal_core.workflows.ledger import changes_requested_flag, review_history

logger = logging.getLogger(__name__)


# Fields an engineer may set on create/update
CONTENT_FIELDS = (
    "title",
    "description",
    "objectives",
    "equipment_needed",
    "timeline_duration",
    "safety_considerations",
    "expected_outcomes",
    "requestor_faculty_school",
    "requestor_email",
    "requestor_phone",
    "type_of_work",
    "priority",
    "date_required",
    "health_safety_confirmed",
    "job_description",
    "remarks",
    "work_location",
)


# ===============================================================
# Helpers
# ===============================================================

def _content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if k in CONTENT_FIELDS}


def _validate_content(content: Dict[str, Any], *, creating: bool) -> None:
    errors = {}
    if creating or "title" in content:
        if not str(content.get("title") or "").strip():
            errors["title"] = "This field may not be blank."
    if creating and not content.get("health_safety_confirmed"):
        errors["health_safety_confirmed"] = (
            "You must confirm that the design is free from Health & Safety issues."
        )
    if creating and not str(content.get("type_of_work") or "").strip():
        errors["type_of_work"] = "Please select a type of work."
    if errors:
        raise ValidationError(errors)


def _replace_line_items(
    project: Project,
    materials: Optional[Iterable[Dict[str, Any]]],
    labor: Optional[Iterable[Dict[str, Any]]],
) -> None:
    if materials is not None:
        project.materials.all().delete()
        ProjectMaterial.objects.bulk_create(
            [ProjectMaterial(project=project, **row) for row in materials]
        )
    if labor is not None:
        project.labor.all().delete()
        ProjectLabor.objects.bulk_create(
            [ProjectLabor(project=project, **row) for row in labor]
        )


def get_project(project_id, principal: Principal) -> Project:
    project = (
        Project.objects.filter(pk=project_id)
        .select_related("engineer")
        .annotate(changes_requested=changes_requested_flag())
        .first()
    )
    if project is None:
        raise NotFound("Project not found.")
    if not policy.can_act(principal, policy.PROJECT_VIEW, project):
        raise PermissionDenied("You do not have access to this project.")
    return project


def visible_projects(principal: Principal) -> QuerySet:
    qs = Project.objects.select_related("engineer", "engineer__profile").annotate(
        changes_requested=changes_requested_flag()
    )
    flt = policy.project_visibility_filter(principal)
    if flt is not None:
        qs = qs.filter(**flt)
    return qs.order_by("-created_at", "-id")


# ===============================================================
# Create / update
# ===============================================================

def create_project(
    principal: Principal,
    content: Dict[str, Any],
    *,
    materials: Optional[Iterable[Dict[str, Any]]] = None,
    labor: Optional[Iterable[Dict[str, Any]]] = None,
    client_request: Optional[ClientRequest] = None,
) -> Project:
    """
    Create a project owned by the calling engineer. Status is always draft.
    """
    policy.require(principal, policy.PROJECT_CREATE, message="Only engineers can create projects.")

    data = _content(content)
    _validate_content(data, creating=True)

    with dependency_guard("project creation"), transaction.atomic():
        project = Project.objects.create(
            engineer_id=principal.id,
            status=ProjectStatus.DRAFT,
            linked_client_request=client_request,
            **data,
        )
        _replace_line_items(project, materials, labor)

    logger.info("Project %s created by user %s", project.pk, principal.id)
    return project


def update_project(
    project_id,
    principal: Principal,
    content: Dict[str, Any],
    *,
    materials: Optional[Iterable[Dict[str, Any]]] = None,
    labor: Optional[Iterable[Dict[str, Any]]] = None,
) -> Project:
    """
    Edit project content. Owning engineer only, and only while draft.
    """
    data = _content(content)
    _validate_content(data, creating=False)

    with dependency_guard("project update"), transaction.atomic():
        project = lock_project(project_id)
        if not policy.can_act(principal, policy.PROJECT_EDIT, project):
            raise PermissionDenied("Only the owning engineer can edit a project while it is a draft.")

        for field, value in data.items():
            setattr(project, field, value)
        project.save()
        _replace_line_items(project, materials, labor)

    project.refresh_from_db()
    return project


# ===============================================================
# Review queue / history
# ===============================================================

def list_review_queue(principal: Principal, approver_role: Optional[str] = None) -> QuerySet:
    """
    Projects awaiting the given reviewer role, newest submission first.
    """
    role = approver_role or principal.role
    if role != principal.role:
        raise PermissionDenied("You can only view your own review queue.")
    policy.require(principal, policy.REVIEW_QUEUE_VIEW, message="You are not a reviewer.")

    state = pending_state_for_role(role)
    return (
        Project.objects.filter(status=state)
        .select_related("engineer", "engineer__profile")
        .order_by("-submitted_at", "-id")
    )


def get_review_history(project_id, principal: Principal) -> QuerySet:
    project = get_project(project_id, principal)
    return review_history(project)


# ===============================================================
# Results
# ===============================================================

def upload_result(project_id, principal: Principal, uploaded_file, *, is_client_visible: bool = False) -> ProjectResult:
    """
    Store a result file for an approved project.

    The file goes to blob storage first; if recording it fails, the
    stored blob is removed again.
    """
    project = Project.objects.filter(pk=project_id).first()
    if project is None:
        raise NotFound("Project not found.")
    if not policy.can_act(principal, policy.PROJECT_UPLOAD_RESULT, project):
        raise PermissionDenied("Results can only be uploaded by the project's engineer once it is approved.")

    if uploaded_file is None:
        raise ValidationError({"file": "No file was submitted."})
    ext = storage.file_extension(uploaded_file.name)
    if ext not in storage.allowed_extensions():
        allowed = ", ".join(sorted(storage.allowed_extensions())).upper()
        raise ValidationError({"file": f"Please upload a {allowed} file."})
    if uploaded_file.size > int(settings.PORTAL_RESULT_MAX_BYTES):
        raise ValidationError({"file": "File is too large."})

    with dependency_guard("result upload"):
        path, url = storage.put(project.pk, uploaded_file)

    try:
        with dependency_guard("result upload"), transaction.atomic():
            locked = lock_project(project.pk)
            if not results_allowed(locked):
                raise InvalidTransition(
                    "Project is no longer accepting results.",
                    current=locked.status,
                )
            result = ProjectResult.objects.create(
                project=locked,
                uploaded_by_id=principal.id,
                file_name=uploaded_file.name,
                file_url=url,
                file_path=path,
                file_type=ext,
                is_client_visible=bool(is_client_visible),
            )
    except Exception:
        storage.delete(path)
        raise

    logger.info("Result %s uploaded to project %s by user %s", result.pk, project.pk, principal.id)
    return result


def list_results(project_id, principal: Principal) -> QuerySet:
    project = get_project(project_id, principal)
    return ProjectResult.objects.filter(project=project).order_by("-uploaded_at", "-id")
