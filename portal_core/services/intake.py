# portal_core/services/intake.py
"""
Client request intake and its handoff into the project workflow.

A converted request links one-way to the project it seeded; afterwards the
two evolve independently.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from portal_core import policy
from portal_core.exceptions import InvalidTransition, dependency_guard
from portal_core.models import ClientRequest, ClientResponse, Project
from portal_core.policy import Principal
from portal_core.services import notifications
from portal_core.services.projects import create_project

logger = logging.getLogger(__name__)


REQUEST_FIELDS = ("request_type", "title", "description", "detailed_requirements", "priority", "attachments")

# Statuses an account manager may set when responding
RESPONSE_STATUSES = {
    ClientRequest.Status.UNDER_REVIEW,
    ClientRequest.Status.QUOTED,
    ClientRequest.Status.ACCEPTED,
    ClientRequest.Status.REJECTED,
}


def _lock_request(request_id) -> ClientRequest:
    try:
        return ClientRequest.objects.select_for_update().get(pk=request_id)
    except (ClientRequest.DoesNotExist, ValueError, TypeError):
        raise NotFound("Client request not found.")


def create_client_request(principal: Principal, content: Dict[str, Any]) -> ClientRequest:
    policy.require(principal, policy.REQUEST_CREATE, message="Only external clients can submit requests.")

    data = {k: v for k, v in (content or {}).items() if k in REQUEST_FIELDS}
    errors = {}
    for field in ("title", "description"):
        if not str(data.get(field) or "").strip():
            errors[field] = "This field may not be blank."
    if data.get("request_type") not in ClientRequest.RequestType.values:
        errors["request_type"] = "Must be 'problem' or 'proposal'."
    if errors:
        raise ValidationError(errors)

    with dependency_guard("request submission"):
        req = ClientRequest.objects.create(
            client_id=principal.id,
            status=ClientRequest.Status.NEW,
            **data,
        )
    logger.info("Client request %s submitted by user %s", req.pk, principal.id)
    return req


def visible_requests(principal: Principal) -> QuerySet:
    qs = ClientRequest.objects.select_related("client", "client__profile")
    flt = policy.request_visibility_filter(principal)
    if flt is not None:
        qs = qs.filter(**flt)
    return qs.order_by("-submitted_at", "-id")


def get_client_request(request_id, principal: Principal) -> ClientRequest:
    req = ClientRequest.objects.filter(pk=request_id).first()
    if req is None:
        raise NotFound("Client request not found.")
    if not policy.can_act(principal, policy.REQUEST_VIEW, req):
        raise PermissionDenied("You do not have access to this request.")
    return req


def respond_to_request(
    request_id,
    principal: Principal,
    *,
    response_text: str,
    status: str = ClientRequest.Status.QUOTED,
    quotation_amount=None,
    currency: str = "USD",
    estimated_timeline: str = "",
) -> ClientResponse:
    """
    Account manager reply; records a ClientResponse and moves the request.
    """
    if not str(response_text or "").strip():
        raise ValidationError({"response_text": "This field may not be blank."})
    if status not in RESPONSE_STATUSES:
        raise ValidationError({"status": f"Must be one of: {', '.join(sorted(RESPONSE_STATUSES))}."})

    with dependency_guard("request response"), transaction.atomic():
        req = _lock_request(request_id)
        if not policy.can_act(principal, policy.REQUEST_VIEW, req):
            raise PermissionDenied("You do not have access to this request.")
        if not policy.can_act(principal, policy.REQUEST_RESPOND, req):
            if req.status in {ClientRequest.Status.REJECTED, ClientRequest.Status.CONVERTED_TO_PROJECT}:
                raise InvalidTransition("This request is closed.", current=req.status)
            raise PermissionDenied("Only account managers can respond to client requests.")

        now = timezone.now()
        response = ClientResponse.objects.create(
            request=req,
            account_manager_id=principal.id,
            response_text=response_text.strip(),
            quotation_amount=quotation_amount,
            currency=currency or "USD",
            estimated_timeline=estimated_timeline or "",
            status=ClientResponse.Status.SENT,
            sent_at=now,
        )
        ClientRequest.objects.filter(pk=req.pk).update(
            status=status,
            assigned_account_manager_id=req.assigned_account_manager_id or principal.id,
            updated_at=now,
        )

        notifications.emit(
            req.client_id,
            notifications.REQUEST_RESPONDED,
            title=f"Response to your request: {req.title}",
            message=response.response_text,
            request_id=req.pk,
            link_url=notifications.request_link(req.pk),
        )

    return response


def convert_to_project(
    request_id,
    principal: Principal,
    content: Optional[Dict[str, Any]] = None,
    **line_items,
) -> Project:
    """
    Seed a draft project from a client request. Engineer only; a request
    can be converted once.
    """
    with dependency_guard("request conversion"), transaction.atomic():
        req = _lock_request(request_id)
        if not policy.can_act(principal, policy.REQUEST_VIEW, req):
            raise PermissionDenied("You do not have access to this request.")
        if req.status == ClientRequest.Status.CONVERTED_TO_PROJECT or Project.objects.filter(
            linked_client_request=req
        ).exists():
            raise InvalidTransition("This request has already been converted.", current=req.status)
        if not policy.can_act(principal, policy.REQUEST_CONVERT, req):
            if principal.role == "engineer":
                raise InvalidTransition("This request cannot be converted.", current=req.status)
            raise PermissionDenied("Only engineers can convert requests into projects.")

        seeded = {
            "title": req.title,
            "description": req.description,
            "objectives": req.detailed_requirements,
        }
        seeded.update(content or {})

        project = create_project(principal, seeded, client_request=req, **line_items)
        ClientRequest.objects.filter(pk=req.pk).update(
            status=ClientRequest.Status.CONVERTED_TO_PROJECT,
            updated_at=timezone.now(),
        )

        notifications.emit(
            req.client_id,
            notifications.REQUEST_CONVERTED,
            title=f"Your request is now a project: {req.title}",
            message="Our engineers have started preparing a project for your request.",
            request_id=req.pk,
            link_url=notifications.request_link(req.pk),
        )

    logger.info("Client request %s converted to project %s", req.pk, project.pk)
    return project
