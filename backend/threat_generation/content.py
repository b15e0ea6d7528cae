"""Provider-agnostic content blocks, messages and completion responses."""

from typing import Annotated, List, Literal, Optional, Union

from constants import (
    FINISH_REASON_STOP,
    IMAGE_MIME_TYPES,
    PDF_MIME_TYPE,
    ContentKind,
)
from pydantic import BaseModel, Field, field_validator


class TextBlock(BaseModel):
    """Plain text context."""

    type: Literal["text"] = ContentKind.TEXT.value
    text: Annotated[str, Field(description="The text content")]


class ImageBlock(BaseModel):
    """Image referenced by a fetchable URL."""

    type: Literal["image"] = ContentKind.IMAGE.value
    url: Annotated[str, Field(description="URL to the image file")]
    mime_type: Annotated[str, Field(description="Image MIME type")]

    @field_validator("mime_type")
    @classmethod
    def _check_mime_type(cls, value: str) -> str:
        if value not in IMAGE_MIME_TYPES:
            raise ValueError(f"Unsupported image MIME type: {value}")
        return value


class DocumentBlock(BaseModel):
    """Document referenced by a fetchable URL."""

    type: Literal["document"] = ContentKind.DOCUMENT.value
    url: Annotated[str, Field(description="URL to the document file")]
    mime_type: Literal["application/pdf"] = PDF_MIME_TYPE
    filename: Optional[str] = None


ContentBlock = Annotated[
    Union[TextBlock, ImageBlock, DocumentBlock], Field(discriminator="type")
]


class Message(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: Union[str, List[ContentBlock]]


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    """Result of a single provider round trip."""

    content: str
    model: str
    usage: Optional[Usage] = None
    finish_reason: Literal["stop", "length", "error"] = FINISH_REASON_STOP
