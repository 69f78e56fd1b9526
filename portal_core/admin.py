# portal_core/admin.py

from django.contrib import admin

from .models import (
    Approval,
    AuditLog,
    ClientRequest,
    ClientResponse,
    Notification,
    Project,
    ProjectLabor,
    ProjectMaterial,
    ProjectResult,
    ProjectTransition,
    UserProfile,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    """Audit-style records: visible in admin, never edited there."""

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Workflow transitions (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(ProjectTransition)
class ProjectTransitionAdmin(ReadOnlyAdmin):
    list_display = ("project", "from_status", "to_status", "performed_by", "created_at")
    list_filter = ("from_status", "to_status")
    search_fields = ("project__title", "performed_by__username")
    ordering = ("-created_at",)


# =============================================================
# Approvals (READ-ONLY; written by the review workflow)
# =============================================================

@admin.register(Approval)
class ApprovalAdmin(ReadOnlyAdmin):
    list_display = ("project", "approver_role", "status", "approver", "approved_at", "updated_at")
    list_filter = ("approver_role", "status")
    search_fields = ("project__title", "approver__username", "comments")
    ordering = ("-updated_at",)


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("action", "user", "created_at")
    search_fields = ("action", "user__username")
    ordering = ("-created_at",)


# =============================================================
# Projects
# =============================================================

class ProjectMaterialInline(admin.TabularInline):
    model = ProjectMaterial
    extra = 0


class ProjectLaborInline(admin.TabularInline):
    model = ProjectLabor
    extra = 0


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("title", "engineer", "status", "priority", "submitted_at", "created_at")
    list_filter = ("status", "priority")
    search_fields = ("title", "engineer__username", "requestor_email")
    ordering = ("-created_at",)
    inlines = (ProjectMaterialInline, ProjectLaborInline)

    # Status moves only through the workflow API
    readonly_fields = ("status", "submitted_at", "linked_client_request", "created_at", "updated_at")


@admin.register(ProjectResult)
class ProjectResultAdmin(admin.ModelAdmin):
    list_display = ("file_name", "project", "uploaded_by", "file_type", "is_client_visible", "uploaded_at")
    list_filter = ("file_type", "is_client_visible")
    search_fields = ("file_name", "project__title")


# =============================================================
# Client intake
# =============================================================

class ClientResponseInline(admin.StackedInline):
    model = ClientResponse
    extra = 0
    readonly_fields = ("created_at", "sent_at", "updated_at")


@admin.register(ClientRequest)
class ClientRequestAdmin(admin.ModelAdmin):
    list_display = ("title", "client", "request_type", "priority", "status", "submitted_at")
    list_filter = ("request_type", "priority", "status")
    search_fields = ("title", "client__username", "description")
    inlines = (ClientResponseInline,)


# =============================================================
# Users / notifications
# =============================================================

@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("full_name", "user", "role", "organization", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("full_name", "user__username", "user__email", "organization")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "user", "notification_type", "is_read", "created_at")
    list_filter = ("notification_type", "is_read")
    search_fields = ("title", "user__username")
