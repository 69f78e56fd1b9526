# portal_core/views_workflows.py
from drf_spectacular.utils import extend_schema
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.exceptions import ValidationError

from .workflows import PROJECT_STATES, allowed_next_states, normalize_state, workflow_definition


class WorkflowDefinitionView(APIView):
    """
    Returns the project workflow definition: states, transitions and
    review stage order.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        return Response(workflow_definition())


class WorkflowNextStatesView(APIView):
    """
    Returns allowed next states given current state.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        current = normalize_state(request.query_params.get("current"))
        if not current:
            raise ValidationError({"current": "current query parameter is required."})
        if current not in PROJECT_STATES:
            raise ValidationError({"current": f"Unknown project state: {current}"})

        next_states = allowed_next_states(current)
        return Response(
            {
                "current": current,
                "allowed_next": next_states,
                "terminal": len(next_states) == 0,
            }
        )
