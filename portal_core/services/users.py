# portal_core/services/users.py
"""
Account provisioning and role administration (lab director only).
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from portal_core import policy
from portal_core.exceptions import dependency_guard
from portal_core.models import UserProfile, UserRole
from portal_core.policy import Principal

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def _validate_role(role: str) -> str:
    r = str(role or "").strip().lower()
    if r not in UserRole.values:
        raise ValidationError({"role": f"Must be one of: {', '.join(UserRole.values)}."})
    return r


def create_account(
    *,
    email: str,
    password: str,
    full_name: str,
    role: str,
    organization: str = "",
):
    """
    Create the login and its profile together. Used by provision_user and
    the management command; performs no authorization.
    """
    User = get_user_model()

    email = _normalize_email(email)
    errors = {}
    if not email or "@" not in email:
        errors["email"] = "Enter a valid email address."
    if not str(full_name or "").strip():
        errors["full_name"] = "This field may not be blank."
    if errors:
        raise ValidationError(errors)
    role = _validate_role(role)

    if User.objects.filter(username__iexact=email).exists() or User.objects.filter(email__iexact=email).exists():
        raise ValidationError({"email": "A user with this email already exists."})

    candidate = User(username=email, email=email)
    try:
        validate_password(password, user=candidate)
    except DjangoValidationError as e:
        raise ValidationError({"password": list(e.messages)})

    with dependency_guard("user provisioning"), transaction.atomic():
        user = User.objects.create_user(username=email, email=email, password=password)
        UserProfile.objects.create(
            user=user,
            full_name=full_name.strip(),
            role=role,
            organization=organization or "",
        )

    logger.info("Provisioned user %s with role %s", user.pk, role)
    return user


def provision_user(
    principal: Principal,
    *,
    email: str,
    password: str,
    full_name: str,
    role: str,
    organization: str = "",
):
    policy.require(principal, policy.USER_PROVISION, message="Only a lab director can create accounts.")
    return create_account(
        email=email,
        password=password,
        full_name=full_name,
        role=role,
        organization=organization,
    )


def _get_profile(user_id) -> UserProfile:
    profile = UserProfile.objects.select_related("user").filter(user_id=user_id).first()
    if profile is None:
        raise NotFound("User not found.")
    return profile


def update_user(
    principal: Principal,
    user_id,
    *,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    full_name: Optional[str] = None,
    organization: Optional[str] = None,
) -> UserProfile:
    """
    Change role, active flag or display fields of an account.

    A director cannot deactivate or demote themselves.
    """
    policy.require(principal, policy.USER_ADMINISTER, message="Only a lab director can administer accounts.")

    profile = _get_profile(user_id)

    if role is not None:
        role = _validate_role(role)
    if profile.user_id == principal.id:
        if is_active is False:
            raise ValidationError({"is_active": "You cannot deactivate your own account."})
        if role is not None and role != profile.role:
            raise ValidationError({"role": "You cannot change your own role."})

    changed = []
    if role is not None and role != profile.role:
        profile.role = role
        changed.append("role")
    if is_active is not None and bool(is_active) != profile.is_active:
        profile.is_active = bool(is_active)
        changed.append("is_active")
    if full_name is not None:
        if not full_name.strip():
            raise ValidationError({"full_name": "This field may not be blank."})
        profile.full_name = full_name.strip()
        changed.append("full_name")
    if organization is not None:
        profile.organization = organization
        changed.append("organization")

    if changed:
        with dependency_guard("user update"):
            profile.save(update_fields=changed + ["updated_at"])
        logger.info("User %s updated by %s: %s", profile.user_id, principal.id, ", ".join(changed))

    return profile


def list_users(principal: Principal):
    policy.require(principal, policy.USER_LIST, message="Only a lab director can list accounts.")
    return UserProfile.objects.select_related("user").order_by("full_name", "id")
