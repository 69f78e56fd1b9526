import pytest

from portal_core.models import Approval, Project


pytestmark = pytest.mark.django_db

PROJECTS = "/portal/projects/"


def _new_project_payload(**extra):
    payload = {
        "title": "Tensile test jig",
        "description": "Jig for 10 kN tensile tests",
        "type_of_work": "Fabrication",
        "health_safety_confirmed": True,
        "equipment_needed": ["lathe", "mill"],
        "materials": [{"material_name": "Steel plate", "quantity": "2.00", "unit_price": "15.50"}],
        "labor": [{"technician_name": "T. Okello", "hours": "3.50"}],
    }
    payload.update(extra)
    return payload


def test_unauthenticated_requests_are_rejected(api_client):
    resp = api_client.get(PROJECTS)
    assert resp.status_code in (401, 403)


def test_health_is_public(api_client):
    resp = api_client.get("/portal/health/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_pytest_settings_use_sqlite_and_eager_tasks():
    from django.conf import settings

    assert settings.DJANGO_ENV in {"ci", "test"}
    assert settings.DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3"
    assert settings.CELERY_TASK_ALWAYS_EAGER is True


def test_engineer_creates_project_with_line_items(api_client, engineer):
    resp = api_client.as_user(engineer).post(PROJECTS, _new_project_payload(), format="json")

    assert resp.status_code == 201, resp.content
    body = resp.json()
    assert body["status"] == "draft"
    assert body["engineer"]["id"] == engineer.pk
    assert body["materials"][0]["total_price"] == "31.00"
    assert body["labor"][0]["technician_name"] == "T. Okello"
    assert body["allowed_next_states"] == ["pending_supervisor"]
    assert body["changes_requested"] is False


def test_status_cannot_be_set_through_the_payload(api_client, engineer, project):
    client = api_client.as_user(engineer)

    resp = client.post(PROJECTS, _new_project_payload(status="approved"), format="json")
    assert resp.status_code == 400
    assert "status" in resp.json()

    resp = client.patch(f"{PROJECTS}{project.pk}/", {"status": "approved"}, format="json")
    assert resp.status_code == 400
    project.refresh_from_db()
    assert project.status == "draft"


def test_reviewer_cannot_create_projects(api_client, supervisor):
    resp = api_client.as_user(supervisor).post(PROJECTS, _new_project_payload(), format="json")
    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"


def test_list_is_role_scoped(api_client, project_factory, engineer, other_engineer, supervisor, quality_manager):
    mine = project_factory()
    theirs = project_factory(owner=other_engineer, status="pending_supervisor")
    done = project_factory(owner=other_engineer, status="completed")

    def ids(user):
        resp = api_client.as_user(user).get(PROJECTS)
        assert resp.status_code == 200
        return {row["id"] for row in resp.json()["results"]}

    assert ids(engineer) == {mine.pk}
    assert ids(supervisor) == {theirs.pk, done.pk}
    assert ids(quality_manager) == {done.pk}


def test_list_filters_by_status(api_client, project_factory, director):
    project_factory(status="approved")
    project_factory(status="draft")

    resp = api_client.as_user(director).get(PROJECTS, {"status": "approved"})

    assert resp.status_code == 200
    assert [row["status"] for row in resp.json()["results"]] == ["approved"]


def test_changes_requested_flag_follows_the_ledger(
    api_client, project_factory, engineer, supervisor, hsm, principal_of
):
    from portal_core.workflows import executor

    p = project_factory(status="pending_hsm")
    untouched = project_factory()
    executor.decide(p.pk, principal_of(hsm), "changes_requested", "fix safety section")

    client = api_client.as_user(engineer)
    detail = client.get(f"{PROJECTS}{p.pk}/").json()
    assert detail["status"] == "draft"
    assert detail["changes_requested"] is True

    flagged = client.get(PROJECTS, {"changes_requested": "true"}).json()["results"]
    assert [row["id"] for row in flagged] == [p.pk]
    clean = client.get(PROJECTS, {"changes_requested": "false"}).json()["results"]
    assert [row["id"] for row in clean] == [untouched.pk]

    # The hsm verdict stays current through resubmission
    executor.submit_for_approval(p.pk, principal_of(engineer))
    executor.decide(p.pk, principal_of(supervisor), "approved", "ok")
    assert client.get(f"{PROJECTS}{p.pk}/").json()["changes_requested"] is True

    executor.decide(p.pk, principal_of(hsm), "approved", "guards fitted")
    assert client.get(f"{PROJECTS}{p.pk}/").json()["changes_requested"] is False


def test_retrieve_maps_missing_and_forbidden(api_client, project, other_engineer, engineer):
    assert api_client.as_user(engineer).get(f"{PROJECTS}999999/").status_code == 404
    assert api_client.as_user(other_engineer).get(f"{PROJECTS}{project.pk}/").status_code == 403


def test_full_review_over_http(api_client, project, engineer, supervisor, hsm, technician):
    url = f"{PROJECTS}{project.pk}"

    resp = api_client.as_user(engineer).post(f"{url}/submit/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending_supervisor"

    queue = api_client.as_user(supervisor).get("/portal/reviews/queue/").json()
    assert [row["id"] for row in queue] == [project.pk]

    for user, expected in ((supervisor, "pending_hsm"), (hsm, "pending_technician"), (technician, "approved")):
        resp = api_client.as_user(user).post(
            f"{url}/decide/", {"decision": "approved", "comments": "ok"}, format="json"
        )
        assert resp.status_code == 200, resp.content
        assert resp.json()["project"]["status"] == expected

    history = api_client.as_user(engineer).get(f"{url}/history/").json()
    assert [row["approver_role"] for row in history] == ["lab_technician", "hsm", "supervisor"]
    assert history[0]["approver_name"] == "Tom Technician"

    timeline = api_client.as_user(engineer).get(f"{url}/timeline/").json()
    assert [row["to_status"] for row in timeline][-1] == "approved"


def test_wrong_stage_decision_returns_conflict_with_current_state(api_client, project_factory, supervisor):
    p = project_factory(status="pending_hsm")

    resp = api_client.as_user(supervisor).post(
        f"{PROJECTS}{p.pk}/decide/", {"decision": "approved", "comments": "ok"}, format="json"
    )

    assert resp.status_code == 409
    assert resp.json()["current"] == "pending_hsm"
    assert resp.json()["code"] == "invalid_transition"


def test_blank_comments_return_400_without_writes(api_client, project_factory, supervisor):
    p = project_factory(status="pending_supervisor")

    resp = api_client.as_user(supervisor).post(
        f"{PROJECTS}{p.pk}/decide/", {"decision": "changes_requested", "comments": "   "}, format="json"
    )

    assert resp.status_code == 400
    assert "comments" in resp.json()
    assert Project.objects.get(pk=p.pk).status == "pending_supervisor"
    assert not Approval.objects.exists()


def test_double_submit_returns_conflict(api_client, project, engineer):
    client = api_client.as_user(engineer)
    assert client.post(f"{PROJECTS}{project.pk}/submit/").status_code == 200

    resp = client.post(f"{PROJECTS}{project.pk}/submit/")
    assert resp.status_code == 409
    assert resp.json()["current"] == "pending_supervisor"


def test_director_transition_endpoint(api_client, project_factory, director, engineer):
    p = project_factory(status="approved")

    resp = api_client.as_user(director).post(
        f"{PROJECTS}{p.pk}/transition/", {"to_status": "in_progress"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"

    resp = api_client.as_user(engineer).post(
        f"{PROJECTS}{p.pk}/transition/", {"to_status": "completed"}, format="json"
    )
    assert resp.status_code == 403


def test_projects_cannot_be_deleted(api_client, project, engineer):
    resp = api_client.as_user(engineer).delete(f"{PROJECTS}{project.pk}/")
    assert resp.status_code == 405


def test_workflow_definition_and_whoami(api_client, supervisor):
    client = api_client.as_user(supervisor)

    definition = client.get("/portal/workflows/project/").json()
    assert definition["initial"] == "draft"
    assert definition["terminal"] == ["completed"]
    assert [s["role"] for s in definition["review_stages"]] == ["supervisor", "hsm", "lab_technician"]

    nxt = client.get("/portal/workflows/project/next/", {"current": "pending_hsm"}).json()
    assert nxt["allowed_next"] == ["draft", "pending_technician"]

    me = client.get("/portal/whoami/").json()
    assert me["role"] == "supervisor"
    assert me["review_state"] == "pending_supervisor"
    assert me["is_active"] is True


def test_notifications_endpoint_shows_only_own(
    api_client, project, engineer, supervisor, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        api_client.as_user(engineer).post(f"{PROJECTS}{project.pk}/submit/")

    mine = api_client.as_user(supervisor).get("/portal/notifications/").json()["results"]
    assert [n["notification_type"] for n in mine] == ["review_required"]

    others = api_client.as_user(engineer).get("/portal/notifications/").json()["results"]
    assert others == []

    resp = api_client.as_user(supervisor).post(f"/portal/notifications/{mine[0]['id']}/read/")
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True


def test_inactive_account_cannot_read_or_acknowledge_notifications(api_client, make_user):
    from portal_core.models import Notification

    sleeper = make_user("engineer", is_active=False)
    note = Notification.objects.create(
        user=sleeper, notification_type="review_required", title="Review required", message="Jig"
    )
    client = api_client.as_user(sleeper)

    assert client.get("/portal/notifications/").status_code == 403
    assert client.post(f"/portal/notifications/{note.pk}/read/").status_code == 403

    note.refresh_from_db()
    assert note.is_read is False


def test_notifications_of_other_users_are_not_reachable(api_client, engineer, supervisor):
    from portal_core.models import Notification

    note = Notification.objects.create(
        user=supervisor, notification_type="review_required", title="Review required", message="Jig"
    )

    resp = api_client.as_user(engineer).post(f"/portal/notifications/{note.pk}/read/")

    assert resp.status_code == 404
    note.refresh_from_db()
    assert note.is_read is False
