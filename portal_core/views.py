# portal_core/views.py
from __future__ import annotations

from django.db import DatabaseError, connection
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import policy
from .filters import ClientRequestFilter, ProjectFilter
from .models import ClientRequest, Notification, Project, UserProfile
from .policy import Principal
from .serializers import (
    ApprovalSerializer,
    ClientRequestSerializer,
    ClientResponseSerializer,
    DecisionSerializer,
    NotificationSerializer,
    ProjectResultSerializer,
    ProjectSerializer,
    ProjectTransitionSerializer,
    ProvisionUserSerializer,
    RespondSerializer,
    ResultUploadSerializer,
    TransitionSerializer,
    UpdateUserSerializer,
    UserProfileSerializer,
)
from .services import intake, projects, users
from .workflows import executor


# ===============================================================
# Utilities
# ===============================================================
def _principal(request) -> Principal:
    return Principal.from_user(getattr(request, "user", None))


def _split_line_items(validated_data: dict):
    data = dict(validated_data)
    return data, data.pop("materials", None), data.pop("labor", None)


# ===============================================================
# Health
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        payload = {"status": "ok", "service": "Lab Portal"}
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            payload["database"] = "ok"
        except DatabaseError:
            payload["status"] = "degraded"
            payload["database"] = "unavailable"
            return Response(payload, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(payload)


# ===============================================================
# Projects
# ===============================================================
@extend_schema(tags=["Projects"])
class ProjectViewSet(viewsets.ModelViewSet):
    """
    Project content is edited here; status only moves through the
    submit / decide / transition actions.
    """
    serializer_class = ProjectSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = ProjectFilter
    http_method_names = ["get", "post", "put", "patch", "head", "options"]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Project.objects.none()
        return projects.visible_projects(_principal(self.request)).prefetch_related("materials", "labor")

    def get_object(self):
        return projects.get_project(self.kwargs["pk"], _principal(self.request))

    def create(self, request, *args, **kwargs):
        principal = _principal(request)
        policy.require(principal, policy.PROJECT_CREATE, message="Only engineers can create projects.")

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        content, materials, labor = _split_line_items(serializer.validated_data)

        project = projects.create_project(principal, content, materials=materials, labor=labor)
        return Response(self.get_serializer(project).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        principal = _principal(request)
        instance = self.get_object()

        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        content, materials, labor = _split_line_items(serializer.validated_data)

        project = projects.update_project(instance.pk, principal, content, materials=materials, labor=labor)
        return Response(self.get_serializer(project).data)

    # -----------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------
    @extend_schema(request=None, responses=ProjectSerializer)
    @action(detail=True, methods=["post"])
    def submit(self, request, pk=None):
        project = executor.submit_for_approval(pk, _principal(request))
        return Response(self.get_serializer(project).data)

    @extend_schema(request=DecisionSerializer)
    @action(detail=True, methods=["post"])
    def decide(self, request, pk=None):
        payload = DecisionSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        project, approval = executor.decide(
            pk,
            _principal(request),
            decision=payload.validated_data["decision"],
            comments=payload.validated_data["comments"],
            approver_role=payload.validated_data.get("approver_role") or None,
        )
        return Response(
            {
                "project": self.get_serializer(project).data,
                "approval": ApprovalSerializer(approval).data,
            }
        )

    @extend_schema(request=TransitionSerializer, responses=ProjectSerializer)
    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        payload = TransitionSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        project = executor.advance_project(pk, _principal(request), payload.validated_data["to_status"])
        return Response(self.get_serializer(project).data)

    @extend_schema(responses=ApprovalSerializer(many=True))
    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        approvals = projects.get_review_history(pk, _principal(request))
        return Response(ApprovalSerializer(approvals, many=True).data)

    @extend_schema(responses=ProjectTransitionSerializer(many=True))
    @action(detail=True, methods=["get"])
    def timeline(self, request, pk=None):
        project = self.get_object()
        rows = project.transitions.select_related("performed_by").order_by("created_at", "id")
        return Response(ProjectTransitionSerializer(rows, many=True).data)

    # -----------------------------------------------------------
    # Results
    # -----------------------------------------------------------
    @extend_schema(request=ResultUploadSerializer, responses=ProjectResultSerializer(many=True))
    @action(
        detail=True,
        methods=["get", "post"],
        parser_classes=[MultiPartParser, FormParser, JSONParser],
    )
    def results(self, request, pk=None):
        principal = _principal(request)

        if request.method == "GET":
            rows = projects.list_results(pk, principal)
            return Response(ProjectResultSerializer(rows, many=True).data)

        payload = ResultUploadSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        result = projects.upload_result(
            pk,
            principal,
            payload.validated_data.get("file"),
            is_client_visible=payload.validated_data.get("is_client_visible", False),
        )
        return Response(ProjectResultSerializer(result).data, status=status.HTTP_201_CREATED)


# ===============================================================
# Review queue
# ===============================================================
class ReviewQueueView(APIView):
    """
    GET /portal/reviews/queue/

    Projects waiting on the caller's reviewer role.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Reviews"], responses=ProjectSerializer(many=True))
    def get(self, request):
        qs = projects.list_review_queue(_principal(request))
        return Response(ProjectSerializer(qs, many=True, context={"request": request}).data)


# ===============================================================
# Client requests
# ===============================================================
@extend_schema(tags=["Client requests"])
class ClientRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = ClientRequestSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = ClientRequestFilter
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return ClientRequest.objects.none()
        return intake.visible_requests(_principal(self.request)).prefetch_related("responses")

    def get_object(self):
        return intake.get_client_request(self.kwargs["pk"], _principal(self.request))

    def create(self, request, *args, **kwargs):
        principal = _principal(request)
        policy.require(principal, policy.REQUEST_CREATE, message="Only external clients can submit requests.")

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        req = intake.create_client_request(principal, dict(serializer.validated_data))
        return Response(self.get_serializer(req).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=RespondSerializer, responses=ClientResponseSerializer)
    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        payload = RespondSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        response = intake.respond_to_request(pk, _principal(request), **payload.validated_data)
        return Response(ClientResponseSerializer(response).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ProjectSerializer, responses=ProjectSerializer)
    @action(detail=True, methods=["post"])
    def convert(self, request, pk=None):
        serializer = ProjectSerializer(data=request.data, partial=True, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        content, materials, labor = _split_line_items(serializer.validated_data)

        project = intake.convert_to_project(pk, _principal(request), content, materials=materials, labor=labor)
        return Response(
            ProjectSerializer(project, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED,
        )


# ===============================================================
# Users (lab director)
# ===============================================================
@extend_schema(tags=["Users"])
class UserViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = UserProfileSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return UserProfile.objects.none()
        return users.list_users(_principal(self.request))

    def get_object(self):
        profile = self.get_queryset().filter(user_id=self.kwargs["pk"]).first()
        if profile is None:
            raise NotFound("User not found.")
        return profile

    @extend_schema(request=ProvisionUserSerializer, responses=UserProfileSerializer)
    def create(self, request, *args, **kwargs):
        principal = _principal(request)
        policy.require(principal, policy.USER_PROVISION, message="Only a lab director can create accounts.")

        payload = ProvisionUserSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        user = users.provision_user(principal, **payload.validated_data)
        return Response(UserProfileSerializer(user.profile).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=UpdateUserSerializer, responses=UserProfileSerializer)
    def partial_update(self, request, *args, **kwargs):
        principal = _principal(request)
        policy.require(principal, policy.USER_ADMINISTER, message="Only a lab director can administer accounts.")

        payload = UpdateUserSerializer(data=request.data, partial=True)
        payload.is_valid(raise_exception=True)

        profile = users.update_user(principal, kwargs["pk"], **payload.validated_data)
        return Response(UserProfileSerializer(profile).data)


# ===============================================================
# Notifications (READ-ONLY, own)
# ===============================================================
@extend_schema(tags=["Notifications"])
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["is_read", "notification_type"]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Notification.objects.none()
        principal = _principal(self.request)
        policy.require(principal, policy.NOTIFICATION_ACCESS, message="You do not have access to notifications.")
        return Notification.objects.filter(user_id=principal.id).order_by("-created_at", "-id")

    @extend_schema(request=None, responses=NotificationSerializer)
    @action(detail=True, methods=["post"], url_path="read")
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        policy.require(_principal(request), policy.NOTIFICATION_ACCESS, notification)
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
        return Response(self.get_serializer(notification).data)
