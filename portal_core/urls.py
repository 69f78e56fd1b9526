# portal_core/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

# -------------------------------------------------
# Core API ViewSets
# -------------------------------------------------
from .views import (
    HealthCheckView,
    ProjectViewSet,
    ReviewQueueView,
    ClientRequestViewSet,
    UserViewSet,
    NotificationViewSet,
)

# -------------------------------------------------
# Workflow definitions (static metadata)
# -------------------------------------------------
from .views_workflows import (
    WorkflowDefinitionView,
    WorkflowNextStatesView,
)

# -------------------------------------------------
# Identity
# -------------------------------------------------
from .views_identity import WhoAmIView


app_name = "portal_core"

# -------------------------------------------------
# Router (CRUD APIs)
# -------------------------------------------------
router = DefaultRouter()
router.register(r"projects", ProjectViewSet, basename="project")
router.register(r"client-requests", ClientRequestViewSet, basename="client-request")
router.register(r"users", UserViewSet, basename="user")
router.register(r"notifications", NotificationViewSet, basename="notification")


urlpatterns = [
    # ============================================================
    # Core API
    # ============================================================
    path("", include(router.urls)),

    # ============================================================
    # Reviews
    # ============================================================
    path("reviews/queue/", ReviewQueueView.as_view(), name="review-queue"),

    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),

    # ============================================================
    # Identity
    # ============================================================
    path("whoami/", WhoAmIView.as_view(), name="whoami"),

    # ============================================================
    # Workflow definitions
    # ============================================================
    path("workflows/project/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("workflows/project/next/", WorkflowNextStatesView.as_view(), name="workflow-next-states"),
]
