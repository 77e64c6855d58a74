"""Canonical conversation model.

Every adapter encodes these types into its own wire format; nothing outside
``chat_gateway.providers`` builds provider-shaped JSON.
"""

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class TextPart(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    kind: Literal["image"] = "image"
    mime_type: str
    data: bytes = Field(repr=False)


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="kind")]


class Message(BaseModel):
    role: Role
    content: Union[str, List[ContentPart]]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def images(self) -> List[ImagePart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ImagePart)]


class UploadedFile(BaseModel):
    """A file already written to the blob store by the upload intake."""

    file_name: str
    original_name: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0
    storage_handle: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")
