from pydantic import BaseModel, Field
from typing import Optional, List

from cameleon.core.models import Mode


class ModeRequest(BaseModel):
    mode: Mode


class StartStreamRequest(BaseModel):
    prompt: str = Field(..., description="Text prompt applied to the edited stream")


class PromptRequest(BaseModel):
    prompt: str


class PromptResponse(BaseModel):
    prompt: str
    applied: bool


class RecordingInfo(BaseModel):
    filename: str
    mime_type: str
    width: int
    height: int
    frames: int
    size_bytes: int


class StopStreamResponse(BaseModel):
    status: str
    recording: Optional[RecordingInfo] = None


class GarmentItem(BaseModel):
    id: int
    name: str
    available: bool
    selected: bool


class GarmentsResponse(BaseModel):
    items: List[GarmentItem]
    custom: Optional[str] = None
    has_garment: bool
    applied_live: bool = False


class PhotoStatusResponse(BaseModel):
    photo: Optional[str]
    has_garment: bool
    generating: bool
    job_id: Optional[str]
    job_status: Optional[str]
    polls: int
    result_url: Optional[str]
    error: Optional[str]


class NotificationsResponse(BaseModel):
    messages: List[str]


class HealthResponse(BaseModel):
    status: str
    mode: str
    camera_ready: bool
    stream_state: str
    credentials: dict
