from django.db import models
from django.contrib.auth.models import User


class ApprovalStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    CHANGES_REQUESTED = "changes_requested", "Changes Requested"


class Approval(models.Model):
    """
    Current verdict of one reviewer role on one project.

    Re-review after a changes request updates this row in place; the
    (project, approver_role) pair is unique.
    """

    project = models.ForeignKey(
        "portal_core.Project",
        on_delete=models.CASCADE,
        related_name="approvals",
    )
    approver = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approvals",
    )
    approver_role = models.CharField(max_length=32)
    status = models.CharField(
        max_length=32,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
    )
    comments = models.TextField(blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["project", "approver_role"],
                name="approval_one_per_role",
            ),
        ]

    def __str__(self):
        return f"project:{self.project_id} {self.approver_role} {self.status}"
