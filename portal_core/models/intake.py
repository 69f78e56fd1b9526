from django.db import models
from django.contrib.auth.models import User


class ClientRequest(models.Model):
    """A problem or proposal submitted by an external client."""

    class RequestType(models.TextChoices):
        PROBLEM = "problem", "Problem"
        PROPOSAL = "proposal", "Proposal"

    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"
        URGENT = "urgent", "Urgent"

    class Status(models.TextChoices):
        NEW = "new", "New"
        UNDER_REVIEW = "under_review", "Under Review"
        QUOTED = "quoted", "Quoted"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"
        CONVERTED_TO_PROJECT = "converted_to_project", "Converted to Project"

    client = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="client_requests",
    )
    request_type = models.CharField(max_length=16, choices=RequestType.choices)
    title = models.CharField(max_length=255)
    description = models.TextField()
    detailed_requirements = models.TextField(blank=True)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.MEDIUM)
    attachments = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NEW, db_index=True)
    assigned_account_manager = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_client_requests",
    )

    submitted_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-submitted_at", "-id"]

    def __str__(self):
        return self.title


class ClientResponse(models.Model):
    """Account manager reply (optionally a quotation) to a client request."""

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SENT = "sent", "Sent"
        REVISED = "revised", "Revised"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"

    request = models.ForeignKey(
        ClientRequest,
        on_delete=models.CASCADE,
        related_name="responses",
    )
    account_manager = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name="client_responses",
    )
    response_text = models.TextField()
    quotation_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="USD")
    estimated_timeline = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.SENT)

    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Response to {self.request_id}"
