from __future__ import annotations

from typing import Any, Dict, List

from django.contrib.auth.models import User
from rest_framework import serializers

from .models import (
    Approval,
    ClientRequest,
    ClientResponse,
    Notification,
    Project,
    ProjectLabor,
    ProjectMaterial,
    ProjectResult,
    ProjectTransition,
    UserProfile,
    UserRole,
)
from .workflows import DECISIONS, allowed_next_states
from .workflows.ledger import has_changes_requested


# ===============================================================
# Helpers
# ===============================================================

class ServerControlledFieldsMixin:
    """
    Rejects server-controlled fields if a client sends them.
    """
    server_controlled_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        incoming = getattr(self, "initial_data", None) or {}
        blocked = [f for f in self.server_controlled_fields if f in incoming]
        if blocked:
            raise serializers.ValidationError(
                {f: "This field is server-controlled." for f in blocked}
            )
        return super().validate(attrs)


class UserSlimSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="profile.full_name", read_only=True, default="")
    role = serializers.CharField(source="profile.role", read_only=True, default="")

    class Meta:
        model = User
        fields = ("id", "username", "email", "full_name", "role")
        read_only_fields = fields


# ===============================================================
# Project
# ===============================================================

class ProjectMaterialSerializer(serializers.ModelSerializer):
    total_price = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = ProjectMaterial
        fields = ("id", "material_name", "quantity", "unit_price", "total_price")
        read_only_fields = ("id", "total_price")


class ProjectLaborSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProjectLabor
        fields = ("id", "technician_name", "work_date", "start_time", "finish_time", "hours")
        read_only_fields = ("id",)


class ProjectSerializer(ServerControlledFieldsMixin, serializers.ModelSerializer):
    engineer = UserSlimSerializer(read_only=True)
    materials = ProjectMaterialSerializer(many=True, required=False)
    labor = ProjectLaborSerializer(many=True, required=False)
    allowed_next_states = serializers.SerializerMethodField()
    changes_requested = serializers.SerializerMethodField()

    server_controlled_fields = ("status", "engineer", "submitted_at", "linked_client_request")

    class Meta:
        model = Project
        fields = (
            "id",
            "engineer",
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
            "status",
            "allowed_next_states",
            "changes_requested",
            "linked_client_request",
            "materials",
            "labor",
            "submitted_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "engineer",
            "status",
            "allowed_next_states",
            "changes_requested",
            "linked_client_request",
            "submitted_at",
            "created_at",
            "updated_at",
        )

    def get_allowed_next_states(self, obj: Project) -> List[str]:
        return allowed_next_states(obj.status)

    def get_changes_requested(self, obj: Project) -> bool:
        flag = getattr(obj, "changes_requested", None)
        if flag is None:
            flag = has_changes_requested(obj)
        return bool(flag)

    def validate_equipment_needed(self, value):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise serializers.ValidationError("Must be a list of strings.")
        return value


class DecisionSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=sorted(DECISIONS))
    comments = serializers.CharField(allow_blank=True, trim_whitespace=True)
    approver_role = serializers.CharField(required=False, allow_blank=True)


class TransitionSerializer(serializers.Serializer):
    to_status = serializers.CharField()


class ApprovalSerializer(serializers.ModelSerializer):
    approver_name = serializers.SerializerMethodField()

    class Meta:
        model = Approval
        fields = (
            "id",
            "project",
            "approver",
            "approver_name",
            "approver_role",
            "status",
            "comments",
            "approved_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_approver_name(self, obj: Approval) -> str:
        name = getattr(obj, "approver_name", None)
        if name:
            return name
        return obj.approver.get_username() if obj.approver_id else ""


class ProjectTransitionSerializer(serializers.ModelSerializer):
    performed_by_username = serializers.CharField(source="performed_by.username", read_only=True, default=None)

    class Meta:
        model = ProjectTransition
        fields = ("id", "project", "from_status", "to_status", "performed_by", "performed_by_username", "created_at")
        read_only_fields = fields


class ProjectResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProjectResult
        fields = (
            "id",
            "project",
            "uploaded_by",
            "file_name",
            "file_url",
            "file_type",
            "is_client_visible",
            "uploaded_at",
        )
        read_only_fields = fields


class ResultUploadSerializer(serializers.Serializer):
    file = serializers.FileField(required=False)
    is_client_visible = serializers.BooleanField(required=False, default=False)


# ===============================================================
# Client intake
# ===============================================================

class ClientResponseSerializer(serializers.ModelSerializer):
    class Meta:
        model = ClientResponse
        fields = (
            "id",
            "request",
            "account_manager",
            "response_text",
            "quotation_amount",
            "currency",
            "estimated_timeline",
            "status",
            "created_at",
            "sent_at",
        )
        read_only_fields = fields


class ClientRequestSerializer(ServerControlledFieldsMixin, serializers.ModelSerializer):
    client = UserSlimSerializer(read_only=True)
    responses = ClientResponseSerializer(many=True, read_only=True)
    project = serializers.PrimaryKeyRelatedField(read_only=True)

    server_controlled_fields = ("status", "client", "assigned_account_manager")

    class Meta:
        model = ClientRequest
        fields = (
            "id",
            "client",
            "request_type",
            "title",
            "description",
            "detailed_requirements",
            "priority",
            "attachments",
            "status",
            "assigned_account_manager",
            "project",
            "responses",
            "submitted_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "client",
            "status",
            "assigned_account_manager",
            "project",
            "responses",
            "submitted_at",
            "updated_at",
        )


class RespondSerializer(serializers.Serializer):
    response_text = serializers.CharField(allow_blank=True)
    status = serializers.CharField(required=False, default=ClientRequest.Status.QUOTED)
    quotation_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    currency = serializers.CharField(required=False, default="USD", max_length=3)
    estimated_timeline = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# Users
# ===============================================================

class UserProfileSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="user.id", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)

    class Meta:
        model = UserProfile
        fields = ("id", "email", "full_name", "role", "organization", "is_active", "created_at", "updated_at")
        read_only_fields = ("id", "email", "created_at", "updated_at")


class ProvisionUserSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    full_name = serializers.CharField()
    role = serializers.ChoiceField(choices=UserRole.choices)
    organization = serializers.CharField(required=False, allow_blank=True, default="")


class UpdateUserSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.choices, required=False)
    is_active = serializers.BooleanField(required=False)
    full_name = serializers.CharField(required=False)
    organization = serializers.CharField(required=False, allow_blank=True)


# ===============================================================
# Notifications (READ-ONLY)
# ===============================================================

class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = (
            "id",
            "notification_type",
            "title",
            "message",
            "project",
            "request",
            "link_url",
            "is_read",
            "created_at",
        )
        read_only_fields = fields
