import uuid
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from focusapp.services.session_controller import LifecycleState
from focusapp.services.session_service import as_utc


def _check_end_and_duration(end_time, duration_seconds):
    if (end_time is None) != (duration_seconds is None):
        raise ValueError("end_time and duration_seconds must be given together")


class SessionStart(BaseModel):
    is_break: bool = False


class SessionCreate(BaseModel):
    start_time: datetime
    end_time: datetime | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    is_break: bool = False

    @model_validator(mode="after")
    def end_and_duration_together(self):
        _check_end_and_duration(self.end_time, self.duration_seconds)
        if self.end_time is not None and as_utc(self.end_time) < as_utc(self.start_time):
            raise ValueError("end_time must not be before start_time")
        return self


class SessionUpdate(BaseModel):
    end_time: datetime
    duration_seconds: int = Field(ge=0)


class SessionResponse(BaseModel):
    id: uuid.UUID
    start_time: datetime
    end_time: datetime | None
    duration_seconds: int | None
    is_break: bool

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def end_and_duration_together(self):
        _check_end_and_duration(self.end_time, self.duration_seconds)
        return self


class ActiveSessionResponse(BaseModel):
    state: LifecycleState
    session: SessionResponse | None
    elapsed_seconds: int
    on_break: bool
    break_seconds: int

    model_config = {"from_attributes": True}


class ClearResponse(BaseModel):
    deleted: int
