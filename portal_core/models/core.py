# portal_core/models/core.py

from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User
from django.conf import settings

from portal_core.workflows.guards import WorkflowWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Principals
# ============================================================
class UserRole(models.TextChoices):
    LAB_DIRECTOR = "lab_director", "Lab Director"
    ENGINEER = "engineer", "Engineer"
    SUPERVISOR = "supervisor", "Supervisor"
    HSM = "hsm", "Health & Safety Manager"
    LAB_TECHNICIAN = "lab_technician", "Lab Technician"
    QUALITY_MANAGER = "quality_manager", "Quality Manager"
    EXTERNAL_CLIENT = "external_client", "External Client"
    ACCOUNT_MANAGER = "account_manager", "Account Manager"


class UserProfile(TimeStampedModel):
    """Role and activation state for a login; one per user."""

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    full_name = models.CharField(max_length=255)
    role = models.CharField(max_length=32, choices=UserRole.choices, db_index=True)
    organization = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["full_name", "id"]

    def __str__(self):
        return f"{self.full_name} ({self.role})"


# ============================================================
# Project
# ============================================================
class ProjectStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PENDING_SUPERVISOR = "pending_supervisor", "Pending Supervisor"
    PENDING_HSM = "pending_hsm", "Pending HSM"
    PENDING_TECHNICIAN = "pending_technician", "Pending Technician"
    APPROVED = "approved", "Approved"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"


class Project(WorkflowWriteGuardMixin, TimeStampedModel):
    """One unit of lab work moving through the review lifecycle."""

    WORKFLOW_FIELDS = ("status", "submitted_at")
    WORKFLOW_INITIAL_STATE = ProjectStatus.DRAFT

    class WorkPriority(models.TextChoices):
        A = "A", "A - Urgent"
        B = "B", "B - Normal"
        C = "C", "C - Low"

    engineer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="projects",
    )

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    objectives = models.TextField(blank=True)
    equipment_needed = models.JSONField(default=list, blank=True)
    timeline_duration = models.CharField(max_length=255, blank=True)
    safety_considerations = models.TextField(blank=True)
    expected_outcomes = models.TextField(blank=True)

    # Engineering service request form
    requestor_faculty_school = models.CharField(max_length=255, blank=True)
    requestor_email = models.EmailField(blank=True)
    requestor_phone = models.CharField(max_length=50, blank=True)
    type_of_work = models.CharField(max_length=100, blank=True)
    priority = models.CharField(max_length=1, choices=WorkPriority.choices, default=WorkPriority.C)
    date_required = models.DateField(null=True, blank=True)
    health_safety_confirmed = models.BooleanField(default=False)
    job_description = models.TextField(blank=True)
    remarks = models.TextField(blank=True)
    work_location = models.CharField(max_length=255, blank=True)

    status = models.CharField(
        max_length=32,
        choices=ProjectStatus.choices,
        default=ProjectStatus.DRAFT,
        db_index=True,
    )

    linked_client_request = models.OneToOneField(
        "portal_core.ClientRequest",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="project",
    )

    submitted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["engineer", "status"], name="project_engineer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                name="project_status_valid",
                condition=Q(status__in=ProjectStatus.values),
            ),
        ]

    def __str__(self):
        return self.title


class ProjectMaterial(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="materials")
    material_name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]

    @property
    def total_price(self):
        return self.quantity * self.unit_price

    def __str__(self):
        return self.material_name


class ProjectLabor(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="labor")
    technician_name = models.CharField(max_length=255)
    work_date = models.DateField(null=True, blank=True)
    start_time = models.TimeField(null=True, blank=True)
    finish_time = models.TimeField(null=True, blank=True)
    hours = models.DecimalField(max_digits=6, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.technician_name} ({self.hours}h)"


# ============================================================
# Results
# ============================================================
class ProjectResult(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="results")
    uploaded_by = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="uploaded_results",
    )
    file_name = models.CharField(max_length=255)
    file_url = models.CharField(max_length=1024)
    file_path = models.CharField(max_length=1024)
    file_type = models.CharField(max_length=16)
    is_client_visible = models.BooleanField(default=False)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-uploaded_at", "-id"]

    def __str__(self):
        return self.file_name


# ============================================================
# Workflow Transition
# ============================================================
class ProjectTransition(models.Model):
    """Immutable log of project status changes."""

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="transitions")
    from_status = models.CharField(max_length=32)
    to_status = models.CharField(max_length=32)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="project_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"project:{self.project_id} {self.from_status} -> {self.to_status}"


# ============================================================
# Audit Log
# ============================================================
class AuditLog(TimeStampedModel):
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=255)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
        ]

    def __str__(self):
        return self.action
