"""
Резолвер уровней доступа (внутренняя библиотека).
Decision (has_access) отделён от call sites (AccessService); контракт через AccessContext.
"""
from app.access.access import can_view_content, has_access
from app.access.library import AccessService, build_context
from app.access.models import AccessContext, Caller

__all__ = [
    "AccessContext",
    "AccessService",
    "Caller",
    "build_context",
    "can_view_content",
    "has_access",
]
