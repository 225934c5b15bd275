from .base import BaseModel, TimeStampedModel, UserStampedModel
from .audit import AuditLog

__all__ = [
    "BaseModel",
    "TimeStampedModel",
    "UserStampedModel",
    "AuditLog",
]
