# portal_core/tests/conftest.py

from __future__ import annotations

import uuid
from typing import Any, Callable

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from portal_core.models import ClientRequest, Project, UserProfile
from portal_core.policy import Principal


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    def as_user(self, user) -> "AuthAPIClient":
        self.force_authenticate(user=user)
        return self


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def make_user(db) -> Callable[..., Any]:
    """
    Factory for users with a portal profile in the given role.
    """
    User = get_user_model()

    def _factory(role: str, *, is_active: bool = True, full_name: str | None = None, **extra: Any):
        username = extra.pop("username", None) or f"{_rand(role)}@example.org"
        user = User.objects.create_user(username=username, email=username, password="pass12345!", **extra)
        UserProfile.objects.create(
            user=user,
            full_name=full_name or role.replace("_", " ").title(),
            role=role,
            is_active=is_active,
        )
        return user

    return _factory


@pytest.fixture
def engineer(make_user):
    return make_user("engineer", full_name="Eve Engineer")


@pytest.fixture
def other_engineer(make_user):
    return make_user("engineer", full_name="Oscar Engineer")


@pytest.fixture
def supervisor(make_user):
    return make_user("supervisor", full_name="Sam Supervisor")


@pytest.fixture
def hsm(make_user):
    return make_user("hsm", full_name="Hana Safety")


@pytest.fixture
def technician(make_user):
    return make_user("lab_technician", full_name="Tom Technician")


@pytest.fixture
def director(make_user):
    return make_user("lab_director", full_name="Dana Director")


@pytest.fixture
def quality_manager(make_user):
    return make_user("quality_manager", full_name="Quinn Quality")


@pytest.fixture
def account_manager(make_user):
    return make_user("account_manager", full_name="Alex Account")


@pytest.fixture
def client_user(make_user):
    return make_user("external_client", full_name="Cara Client")


@pytest.fixture
def principal_of() -> Callable[[Any], Principal]:
    """
    Principal for a user as currently stored (role and active flag re-read).
    """

    def _principal(user) -> Principal:
        fresh = get_user_model().objects.select_related("profile").get(pk=user.pk)
        return Principal.from_user(fresh)

    return _principal


@pytest.fixture
def project_factory(db, engineer) -> Callable[..., Project]:
    """
    Factory for projects in any status. Non-draft statuses are written
    with the workflow bypass, as a data fix would.
    """

    def _factory(*, owner=None, status: str = "draft", **extra: Any) -> Project:
        fields = {
            "title": _rand("Project"),
            "type_of_work": "Fabrication",
            "health_safety_confirmed": True,
        }
        fields.update(extra)
        project = Project.objects.create(engineer=owner or engineer, **fields)
        if status != "draft":
            project.status = status
            project.save(update_fields=["status"], _workflow_bypass=True)
        return project

    return _factory


@pytest.fixture
def project(project_factory) -> Project:
    return project_factory()


@pytest.fixture
def client_request_factory(db, client_user) -> Callable[..., ClientRequest]:
    def _factory(*, client=None, status: str = "new", **extra: Any) -> ClientRequest:
        fields = {
            "request_type": "problem",
            "title": _rand("Request"),
            "description": "Pump housing cracked under load.",
            "detailed_requirements": "Redesign bracket; material spec attached.",
            "status": status,
        }
        fields.update(extra)
        return ClientRequest.objects.create(client=client or client_user, **fields)

    return _factory


@pytest.fixture
def tiny_csv():
    from django.core.files.uploadedfile import SimpleUploadedFile

    def _make(name: str = "results.csv", content: bytes = b"sample,value\nA,1\n"):
        return SimpleUploadedFile(name, content, content_type="text/csv")

    return _make
