# portal_core/models/__init__.py

from .core import (
    TimeStampedModel,
    UserRole,
    UserProfile,
    ProjectStatus,
    Project,
    ProjectMaterial,
    ProjectLabor,
    ProjectResult,
    ProjectTransition,
    AuditLog,
)
from .approval import ApprovalStatus, Approval
from .intake import ClientRequest, ClientResponse
from .notification import Notification

__all__ = [
    "TimeStampedModel",
    "UserRole",
    "UserProfile",
    "ProjectStatus",
    "Project",
    "ProjectMaterial",
    "ProjectLabor",
    "ProjectResult",
    "ProjectTransition",
    "AuditLog",
    "ApprovalStatus",
    "Approval",
    "ClientRequest",
    "ClientResponse",
    "Notification",
]
