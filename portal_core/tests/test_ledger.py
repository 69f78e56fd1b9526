import pytest
from rest_framework.exceptions import ValidationError

from portal_core.models import Approval
from portal_core.services import projects
from portal_core.workflows import executor
from portal_core.workflows.ledger import (
    has_changes_requested,
    record_decision,
    review_history,
)


pytestmark = pytest.mark.django_db


def test_first_decision_inserts_then_updates_in_place(project, supervisor):
    first = record_decision(
        project=project,
        approver_role="supervisor",
        approver_id=supervisor.pk,
        decision="changes_requested",
        comments="needs a risk assessment",
    )
    second = record_decision(
        project=project,
        approver_role="Supervisor",
        approver_id=supervisor.pk,
        decision="approved",
        comments="risk assessment attached",
    )

    assert second.pk == first.pk
    assert Approval.objects.filter(project=project).count() == 1
    second.refresh_from_db()
    assert second.status == "approved"
    assert second.comments == "risk assessment attached"
    assert second.approved_at is not None


def test_same_decision_twice_is_idempotent(project, hsm):
    for _ in range(2):
        record_decision(
            project=project,
            approver_role="hsm",
            approver_id=hsm.pk,
            decision="approved",
            comments="ok",
        )

    assert Approval.objects.filter(project=project, approver_role="hsm").count() == 1
    assert Approval.objects.get(project=project, approver_role="hsm").status == "approved"


def test_changes_requested_clears_approved_at(project, technician):
    record_decision(
        project=project, approver_role="lab_technician", approver_id=technician.pk,
        decision="approved", comments="ok",
    )
    row = record_decision(
        project=project, approver_role="lab_technician", approver_id=technician.pk,
        decision="changes_requested", comments="wrong fixture",
    )

    assert row.approved_at is None
    assert has_changes_requested(project)


@pytest.mark.parametrize(
    "kwargs,field",
    [
        ({"comments": "  "}, "comments"),
        ({"decision": "maybe"}, "decision"),
        ({"approver_role": "lab_director"}, "approver_role"),
    ],
)
def test_invalid_input_writes_nothing(project, supervisor, kwargs, field):
    args = {
        "project": project,
        "approver_role": "supervisor",
        "approver_id": supervisor.pk,
        "decision": "approved",
        "comments": "fine",
    }
    args.update(kwargs)

    with pytest.raises(ValidationError) as exc:
        record_decision(**args)

    assert field in exc.value.detail
    assert not Approval.objects.exists()


def test_history_is_newest_first_with_display_names(submitted_chain):
    project, names = submitted_chain

    rows = list(review_history(project))

    assert [r.approver_role for r in rows] == ["hsm", "supervisor"]
    assert [r.approver_name for r in rows] == [names["hsm"], names["supervisor"]]


def test_history_is_role_scoped_through_the_service(submitted_chain, other_engineer, director, principal_of):
    from rest_framework.exceptions import PermissionDenied

    project, _ = submitted_chain

    assert len(projects.get_review_history(project.pk, principal_of(director))) == 2
    with pytest.raises(PermissionDenied):
        projects.get_review_history(project.pk, principal_of(other_engineer))


@pytest.fixture
def submitted_chain(project, engineer, supervisor, hsm, principal_of):
    executor.submit_for_approval(project.pk, principal_of(engineer))
    executor.decide(project.pk, principal_of(supervisor), "approved", "ok")
    executor.decide(project.pk, principal_of(hsm), "changes_requested", "fix guards")
    return project, {"supervisor": "Sam Supervisor", "hsm": "Hana Safety"}
