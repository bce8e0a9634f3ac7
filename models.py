# models.py
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Attachment(BaseModel):
    filename: str = Field(..., description="Original filename as uploaded")
    url: str = Field(..., description="Retrieval URL of the stored file")
    type: str = Field(..., description="MIME type, image/*, audio/* or video/*")

    @property
    def kind(self) -> str:
        return self.type.split("/", 1)[0]

    def annotation(self) -> str:
        return f"[Uploaded file: {self.filename} - {self.url}]"


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
    # set on client-side fallback turns that did not come from the model
    error: bool = False

    model_config = {"frozen": True}


class ChatResponse(BaseModel):
    response: str
    files: List[Attachment] = Field(default_factory=list)
    sessionId: str


class NewChatRequest(BaseModel):
    sessionId: Optional[str] = Field(None, description="Session to discard")


class NewChatResponse(BaseModel):
    success: bool = True
    message: str = "New chat started"


class HealthStatus(BaseModel):
    status: str = "healthy"
    geminiConfigured: bool
    timestamp: datetime


class ErrorBody(BaseModel):
    error: str
    details: Optional[str] = None


class ConversationRecord(BaseModel):
    timestamp: datetime
    preview: str
    messages: List[Message] = Field(default_factory=list)
