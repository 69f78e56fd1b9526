# portal_core/policy.py
"""
Authorization policy.

Single table mapping (principal role, action, resource state) to allow/deny.
Everything here is a pure function of its arguments so it can be consulted
by the workflow engine, the ledger, the DRF layer and tests alike.

Resources are duck-typed: projects expose ``engineer_id`` and ``status``,
client requests expose ``client_id`` and ``status``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from rest_framework.exceptions import NotAuthenticated, PermissionDenied

from .workflows import (
    APPROVED,
    COMPLETED,
    DRAFT,
    IN_PROGRESS,
    PROJECT_STATES,
    normalize_role,
    normalize_state,
    pending_state_for_role,
)


# ===============================================================
# Principal
# ===============================================================

@dataclass(frozen=True)
class Principal:
    id: int
    role: str
    is_active: bool = True
    display_name: str = ""

    @classmethod
    def from_user(cls, user) -> "Principal":
        """
        Build the principal for an authenticated Django user.

        Users without a profile carry no role and are treated as inactive.
        """
        if not user or not getattr(user, "is_authenticated", False):
            raise NotAuthenticated("Authentication credentials were not provided.")

        profile = getattr(user, "profile", None)
        if profile is None:
            return cls(id=user.pk, role="", is_active=False, display_name=user.get_username())

        return cls(
            id=user.pk,
            role=normalize_role(profile.role),
            is_active=bool(profile.is_active and user.is_active),
            display_name=profile.full_name or user.get_username(),
        )


# ===============================================================
# Actions
# ===============================================================

PROJECT_CREATE = "project.create"
PROJECT_VIEW = "project.view"
PROJECT_LIST_ALL = "project.list_all"
PROJECT_EDIT = "project.edit"
PROJECT_SUBMIT = "project.submit"
PROJECT_DECIDE = "project.decide"
PROJECT_ADVANCE = "project.advance"
PROJECT_UPLOAD_RESULT = "project.upload_result"
REVIEW_QUEUE_VIEW = "review_queue.view"

REQUEST_CREATE = "request.create"
REQUEST_VIEW = "request.view"
REQUEST_LIST_ALL = "request.list_all"
REQUEST_RESPOND = "request.respond"
REQUEST_CONVERT = "request.convert"

USER_LIST = "user.list"
USER_PROVISION = "user.provision"
USER_ADMINISTER = "user.administer"

NOTIFICATION_ACCESS = "notification.access"

ACTIONS = {
    PROJECT_CREATE,
    PROJECT_VIEW,
    PROJECT_LIST_ALL,
    PROJECT_EDIT,
    PROJECT_SUBMIT,
    PROJECT_DECIDE,
    PROJECT_ADVANCE,
    PROJECT_UPLOAD_RESULT,
    REVIEW_QUEUE_VIEW,
    REQUEST_CREATE,
    REQUEST_VIEW,
    REQUEST_LIST_ALL,
    REQUEST_RESPOND,
    REQUEST_CONVERT,
    USER_LIST,
    USER_PROVISION,
    USER_ADMINISTER,
    NOTIFICATION_ACCESS,
}

QUALITY_VISIBLE_STATES = {APPROVED, IN_PROGRESS, COMPLETED}

# Request statuses from which a conversion into a project is possible
CONVERTIBLE_REQUEST_STATES = {"new", "under_review", "quoted", "accepted"}


# ===============================================================
# Helpers
# ===============================================================

def _status(resource: Any) -> str:
    return normalize_state(getattr(resource, "status", ""))


def _owns_project(principal: Principal, project: Any) -> bool:
    return project is not None and getattr(project, "engineer_id", None) == principal.id


def _owns_request(principal: Principal, request: Any) -> bool:
    return request is not None and getattr(request, "client_id", None) == principal.id


# ===============================================================
# Role rules
# ===============================================================

def _engineer(principal: Principal, action: str, resource: Any) -> bool:
    if action == PROJECT_CREATE:
        return True
    if action == PROJECT_VIEW:
        return _owns_project(principal, resource)
    if action in {PROJECT_EDIT, PROJECT_SUBMIT}:
        return _owns_project(principal, resource) and _status(resource) == DRAFT
    if action == PROJECT_UPLOAD_RESULT:
        return _owns_project(principal, resource) and _status(resource) == APPROVED
    if action in {REQUEST_VIEW, REQUEST_LIST_ALL}:
        return True
    if action == REQUEST_CONVERT:
        return resource is not None and _status(resource) in CONVERTIBLE_REQUEST_STATES
    return False


def _reviewer(principal: Principal, action: str, resource: Any) -> bool:
    pending = pending_state_for_role(principal.role)
    if action == REVIEW_QUEUE_VIEW:
        return True
    if action == PROJECT_DECIDE:
        return resource is not None and _status(resource) == pending
    if action == PROJECT_VIEW:
        # Submitted work only; drafts stay private to their engineer
        return resource is not None and _status(resource) != DRAFT
    return False


def _lab_director(principal: Principal, action: str, resource: Any) -> bool:
    if action in {
        PROJECT_VIEW,
        PROJECT_LIST_ALL,
        REQUEST_VIEW,
        REQUEST_LIST_ALL,
        USER_LIST,
        USER_PROVISION,
        USER_ADMINISTER,
    }:
        return True
    if action == PROJECT_ADVANCE:
        return resource is not None and _status(resource) in {APPROVED, IN_PROGRESS}
    return False


def _quality_manager(principal: Principal, action: str, resource: Any) -> bool:
    if action == PROJECT_VIEW:
        return resource is not None and _status(resource) in QUALITY_VISIBLE_STATES
    return False


def _account_manager(principal: Principal, action: str, resource: Any) -> bool:
    if action in {REQUEST_VIEW, REQUEST_LIST_ALL}:
        return True
    if action == REQUEST_RESPOND:
        return resource is not None and _status(resource) not in {"rejected", "converted_to_project"}
    return False


def _external_client(principal: Principal, action: str, resource: Any) -> bool:
    if action == REQUEST_CREATE:
        return True
    if action == REQUEST_VIEW:
        return _owns_request(principal, resource)
    return False


ROLE_RULES: Dict[str, Callable[[Principal, str, Any], bool]] = {
    "engineer": _engineer,
    "supervisor": _reviewer,
    "hsm": _reviewer,
    "lab_technician": _reviewer,
    "lab_director": _lab_director,
    "quality_manager": _quality_manager,
    "account_manager": _account_manager,
    "external_client": _external_client,
}


# ===============================================================
# Public policy API
# ===============================================================

def can_act(principal: Optional[Principal], action: str, resource: Any = None) -> bool:
    """
    Return True if the principal may perform action on resource.

    Inactive principals and unknown roles are denied everything.
    """
    if principal is None or not principal.is_active:
        return False
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    rule = ROLE_RULES.get(normalize_role(principal.role))
    if rule is None:
        return False

    # Every role reads and acknowledges its own inbox
    if action == NOTIFICATION_ACCESS:
        return resource is None or getattr(resource, "user_id", None) == principal.id

    return bool(rule(principal, action, resource))


def require(principal: Optional[Principal], action: str, resource: Any = None, message: str = "") -> None:
    """
    Raise PermissionDenied unless can_act allows the action.
    """
    if not can_act(principal, action, resource):
        raise PermissionDenied(message or "You do not have permission to perform this action.")


def project_visibility_filter(principal: Principal) -> Optional[Dict[str, Any]]:
    """
    Queryset filter kwargs matching PROJECT_VIEW for list endpoints.

    Returns None for unrestricted visibility and {"pk__in": []} for none.
    """
    if principal is None or not principal.is_active:
        return {"pk__in": []}

    role = normalize_role(principal.role)
    if role == "lab_director":
        return None
    if role == "engineer":
        return {"engineer_id": principal.id}
    if pending_state_for_role(role):
        return {"status__in": sorted(s for s in PROJECT_STATES if s != DRAFT)}
    if role == "quality_manager":
        return {"status__in": sorted(QUALITY_VISIBLE_STATES)}
    return {"pk__in": []}


def request_visibility_filter(principal: Principal) -> Optional[Dict[str, Any]]:
    if principal is None or not principal.is_active:
        return {"pk__in": []}
    if can_act(principal, REQUEST_LIST_ALL):
        return None
    if normalize_role(principal.role) == "external_client":
        return {"client_id": principal.id}
    return {"pk__in": []}
