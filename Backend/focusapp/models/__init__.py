from focusapp.models.base import Base
from focusapp.models.user import User
from focusapp.models.working_session import WorkingSession

__all__ = [
    "Base",
    "User",
    "WorkingSession",
]
