from pydantic import BaseModel, Field
from typing import List, Optional


class User(BaseModel):
    id: str
    email: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    session_id: str
    model: Optional[str] = None
    provider: Optional[str] = None


class DeleteResponse(BaseModel):
    success: bool = True


class ModelInfo(BaseModel):
    id: str
    provider: str
    premium: bool
    configured: bool


class ModelList(BaseModel):
    models: List[ModelInfo] = Field(default_factory=list)


class ProviderStatus(BaseModel):
    name: str
    configured: bool
    default_model: str
    native_streaming: bool
    max_image_bytes: int
    max_request_bytes: int


class ConnectionTest(BaseModel):
    success: bool
    response: Optional[str] = None
    error: Optional[str] = None
