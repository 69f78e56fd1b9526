"""
End-to-end lifecycle through the service layer: create, submit, the three
review stages, changes requested and resubmission.
"""
from unittest import mock

import pytest
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import DatabaseError
from rest_framework.exceptions import PermissionDenied, ValidationError

from portal_core.exceptions import DependencyFailure, InvalidTransition
from portal_core.models import Approval, Project, ProjectStatus, ProjectTransition
from portal_core.services import projects
from portal_core.workflows import executor


pytestmark = pytest.mark.django_db


def _status(project) -> str:
    return Project.objects.values_list("status", flat=True).get(pk=project.pk)


def _approval(project, role):
    return Approval.objects.filter(project=project, approver_role=role).first()


@pytest.fixture
def submitted(project, engineer, principal_of):
    return executor.submit_for_approval(project.pk, principal_of(engineer))


# ---------------------------------------------------------------
# Creating and submitting
# ---------------------------------------------------------------

def test_create_forces_draft_and_submit_moves_to_pending_supervisor(engineer, principal_of):
    p = projects.create_project(
        principal_of(engineer),
        {
            "title": "Vibration rig",
            "status": "approved",
            "type_of_work": "Testing",
            "health_safety_confirmed": True,
        },
    )
    assert p.status == ProjectStatus.DRAFT
    assert p.submitted_at is None

    p = executor.submit_for_approval(p.pk, principal_of(engineer))

    assert p.status == ProjectStatus.PENDING_SUPERVISOR
    assert p.submitted_at is not None
    assert ProjectTransition.objects.filter(
        project=p, from_status="draft", to_status="pending_supervisor"
    ).exists()


def test_submit_requires_owner_and_draft(project, other_engineer, engineer, principal_of):
    with pytest.raises(PermissionDenied):
        executor.submit_for_approval(project.pk, principal_of(other_engineer))
    assert _status(project) == "draft"

    executor.submit_for_approval(project.pk, principal_of(engineer))

    with pytest.raises(InvalidTransition) as exc:
        executor.submit_for_approval(project.pk, principal_of(engineer))
    assert exc.value.current == "pending_supervisor"


# ---------------------------------------------------------------
# Reviewer decisions and stage gating
# ---------------------------------------------------------------

def test_supervisor_approval_advances_to_hsm(submitted, supervisor, principal_of):
    p, approval = executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")

    assert p.status == ProjectStatus.PENDING_HSM
    assert approval.approver_role == "supervisor"
    assert approval.status == "approved"
    assert approval.approver_id == supervisor.pk
    assert approval.approved_at is not None


def test_supervisor_cannot_decide_on_pending_hsm(submitted, supervisor, principal_of):
    executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")

    with pytest.raises(InvalidTransition) as exc:
        executor.decide(submitted.pk, principal_of(supervisor), "approved", "again")

    assert exc.value.current == "pending_hsm"
    assert _status(submitted) == "pending_hsm"
    assert Approval.objects.filter(project=submitted).count() == 1


def test_reviewer_cannot_decide_on_a_draft(project, supervisor, principal_of):
    # Drafts are hidden from reviewers, so this is an access denial and not
    # a state conflict that would reveal the project's current status.
    with pytest.raises(PermissionDenied) as exc:
        executor.decide(project.pk, principal_of(supervisor), "approved", "ok")
    assert not isinstance(exc.value, InvalidTransition)
    assert not Approval.objects.filter(project=project).exists()


def test_non_reviewer_roles_cannot_decide(submitted, director, engineer, principal_of):
    for user in (director, engineer):
        with pytest.raises(PermissionDenied):
            executor.decide(submitted.pk, principal_of(user), "approved", "ok")
    assert _status(submitted) == "pending_supervisor"


def test_reviewer_cannot_decide_as_another_role(submitted, hsm, principal_of):
    with pytest.raises(PermissionDenied):
        executor.decide(submitted.pk, principal_of(hsm), "approved", "ok", approver_role="supervisor")


def test_inactive_reviewer_is_denied(submitted, make_user, principal_of):
    sleeper = make_user("supervisor", is_active=False)
    with pytest.raises(PermissionDenied):
        executor.decide(submitted.pk, principal_of(sleeper), "approved", "ok")
    assert _status(submitted) == "pending_supervisor"


# ---------------------------------------------------------------
# Changes requested and resubmission
# ---------------------------------------------------------------

def test_changes_requested_returns_to_draft_and_review_restarts(
    submitted, engineer, supervisor, hsm, principal_of
):
    executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")
    p, approval = executor.decide(
        submitted.pk, principal_of(hsm), "changes_requested", "fix safety section"
    )

    assert p.status == ProjectStatus.DRAFT
    assert approval.status == "changes_requested"
    assert approval.approved_at is None

    projects.update_project(
        p.pk, principal_of(engineer), {"safety_considerations": "Guards fitted on all rotating parts."}
    )
    p = executor.submit_for_approval(p.pk, principal_of(engineer))

    assert p.status == ProjectStatus.PENDING_SUPERVISOR


@pytest.mark.parametrize("stage", ["pending_supervisor", "pending_hsm", "pending_technician"])
def test_changes_requested_from_any_stage_lands_in_draft(stage, project_factory, make_user, principal_of):
    role = {"pending_supervisor": "supervisor", "pending_hsm": "hsm", "pending_technician": "lab_technician"}[stage]
    reviewer = make_user(role)
    p = project_factory(status=stage)

    p, _ = executor.decide(p.pk, principal_of(reviewer), "changes_requested", "needs work")

    assert p.status == "draft"


# ---------------------------------------------------------------
# Full review chain
# ---------------------------------------------------------------

def test_full_chain_reaches_approved_with_one_row_per_role(
    submitted, supervisor, hsm, technician, principal_of
):
    executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")
    executor.decide(submitted.pk, principal_of(hsm), "approved", "safe")
    p, _ = executor.decide(submitted.pk, principal_of(technician), "approved", "equipment booked")

    assert p.status == ProjectStatus.APPROVED
    rows = dict(Approval.objects.filter(project=p).values_list("approver_role", "status"))
    assert rows == {"supervisor": "approved", "hsm": "approved", "lab_technician": "approved"}

    path = list(ProjectTransition.objects.filter(project=p).values_list("to_status", flat=True))
    assert path == ["pending_supervisor", "pending_hsm", "pending_technician", "approved"]


def test_stage_is_never_reached_without_previous_approval(submitted, supervisor, hsm, principal_of):
    executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")
    assert _approval(submitted, "supervisor").status == "approved"

    executor.decide(submitted.pk, principal_of(hsm), "approved", "safe")
    assert _status(submitted) == "pending_technician"
    assert _approval(submitted, "hsm").status == "approved"


# ---------------------------------------------------------------
# Decision input validation
# ---------------------------------------------------------------

@pytest.mark.parametrize("comments", ["", "   ", None])
def test_blank_comments_are_rejected_without_writes(submitted, supervisor, principal_of, comments):
    with pytest.raises(ValidationError) as exc:
        executor.decide(submitted.pk, principal_of(supervisor), "approved", comments)

    assert "comments" in exc.value.detail
    assert _status(submitted) == "pending_supervisor"
    assert not Approval.objects.filter(project=submitted).exists()


def test_unknown_decision_is_rejected(submitted, supervisor, principal_of):
    with pytest.raises(ValidationError):
        executor.decide(submitted.pk, principal_of(supervisor), "rejected", "no")
    assert _status(submitted) == "pending_supervisor"


# ---------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------

def test_failed_transition_rolls_back_the_approval_row(submitted, supervisor, principal_of):
    with mock.patch.object(
        ProjectTransition.objects, "create", side_effect=DatabaseError("disk full")
    ):
        with pytest.raises(DependencyFailure):
            executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")

    assert _status(submitted) == "pending_supervisor"
    assert not Approval.objects.filter(project=submitted).exists()


def test_concurrent_status_change_is_detected(submitted, supervisor, principal_of):
    real_lock = executor.lock_project

    def stale_lock(project_id):
        p = real_lock(project_id)
        # Another writer moved the row after it was read
        Project.objects.filter(pk=project_id).update(status="draft")
        return p

    with mock.patch.object(executor, "lock_project", side_effect=stale_lock):
        with pytest.raises(InvalidTransition) as exc:
            executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")

    assert exc.value.current == "draft"
    assert not Approval.objects.filter(project=submitted).exists()


def test_direct_status_save_is_blocked(project):
    project.status = "approved"
    with pytest.raises(DjangoPermissionDenied):
        project.save()


# ---------------------------------------------------------------
# Operational transitions
# ---------------------------------------------------------------

def test_director_moves_approved_project_through_to_completed(project_factory, director, principal_of):
    p = project_factory(status="approved")

    p = executor.advance_project(p.pk, principal_of(director), "in_progress")
    assert p.status == "in_progress"
    p = executor.advance_project(p.pk, principal_of(director), "completed")
    assert p.status == "completed"

    with pytest.raises(ValidationError):
        executor.advance_project(p.pk, principal_of(director), "draft")
    with pytest.raises(InvalidTransition):
        executor.advance_project(p.pk, principal_of(director), "in_progress")


def test_operational_transitions_cannot_skip_review(project_factory, director, principal_of):
    p = project_factory(status="pending_technician")
    with pytest.raises(InvalidTransition):
        executor.advance_project(p.pk, principal_of(director), "in_progress")


def test_engineer_cannot_advance_own_project(project_factory, engineer, principal_of):
    p = project_factory(status="approved")
    with pytest.raises(PermissionDenied):
        executor.advance_project(p.pk, principal_of(engineer), "in_progress")
    assert _status(p) == "approved"


# ---------------------------------------------------------------
# Content edits
# ---------------------------------------------------------------

def test_update_is_owner_and_draft_only(project_factory, engineer, other_engineer, principal_of):
    draft = project_factory()
    pending = project_factory(status="pending_supervisor")

    updated = projects.update_project(draft.pk, principal_of(engineer), {"title": "Renamed"})
    assert updated.title == "Renamed"

    with pytest.raises(PermissionDenied):
        projects.update_project(draft.pk, principal_of(other_engineer), {"title": "Hijack"})
    with pytest.raises(PermissionDenied):
        projects.update_project(pending.pk, principal_of(engineer), {"title": "Too late"})


def test_create_requires_safety_confirmation(engineer, principal_of):
    with pytest.raises(ValidationError) as exc:
        projects.create_project(principal_of(engineer), {"title": "Lathe", "type_of_work": "Machining"})
    assert "health_safety_confirmed" in exc.value.detail


def test_review_queue_is_scoped_to_the_reviewer_stage(project_factory, supervisor, hsm, principal_of):
    waiting = project_factory(status="pending_supervisor")
    project_factory(status="pending_hsm")
    project_factory(status="draft")

    queue = list(projects.list_review_queue(principal_of(supervisor)))
    assert queue == [waiting]

    with pytest.raises(PermissionDenied):
        projects.list_review_queue(principal_of(hsm), approver_role="supervisor")


def test_transitions_and_decisions_are_audited(submitted, supervisor, principal_of):
    from portal_core.models import AuditLog

    executor.decide(submitted.pk, principal_of(supervisor), "approved", "ok")

    actions = list(AuditLog.objects.order_by("id").values_list("action", flat=True))
    assert f"WORKFLOW PROJECT {submitted.pk}: draft -> pending_supervisor" in actions
    assert f"REVIEW PROJECT {submitted.pk}: supervisor approved" in actions
    assert f"WORKFLOW PROJECT {submitted.pk}: pending_supervisor -> pending_hsm" in actions


def test_new_project_cannot_start_past_draft(engineer):
    with pytest.raises(DjangoPermissionDenied):
        Project.objects.create(
            engineer=engineer, title="Shortcut", type_of_work="Testing", status="approved"
        )
    assert not Project.objects.filter(title="Shortcut").exists()
