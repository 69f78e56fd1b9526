# portal_core/views_identity.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .policy import Principal
from .workflows import pending_state_for_role


class WhoAmIView(APIView):
    """
    Returns the currently authenticated user and the principal the portal
    acts on behalf of.

    Clients use it to confirm auth is working and to decide which screens
    to show (review queue, intake, administration).
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Identity"])
    def get(self, request):
        user = request.user
        principal = Principal.from_user(user)
        profile = getattr(user, "profile", None)

        return Response(
            {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "full_name": principal.display_name,
                "role": principal.role or None,
                "organization": profile.organization if profile else "",
                "is_active": principal.is_active,
                "review_state": pending_state_for_role(principal.role),
            }
        )
