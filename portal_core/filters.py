# portal_core/filters.py
import django_filters as df
from .models import ClientRequest, Project


class ProjectFilter(df.FilterSet):
    title = df.CharFilter(field_name="title", lookup_expr="icontains")
    # annotated by services.projects.visible_projects
    changes_requested = df.BooleanFilter(field_name="changes_requested")
    created_at = df.DateFromToRangeFilter()
    submitted_at = df.DateFromToRangeFilter()

    class Meta:
        model = Project
        fields = ["title", "status", "priority", "type_of_work", "created_at", "submitted_at"]


class ClientRequestFilter(df.FilterSet):
    title = df.CharFilter(field_name="title", lookup_expr="icontains")
    submitted_at = df.DateFromToRangeFilter()

    class Meta:
        model = ClientRequest
        fields = ["title", "status", "priority", "request_type", "submitted_at"]
