from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from vibecheck.core.types import AnalysisRequest, ImageAttachment


class _MessageModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class ImagePayload(_MessageModel):
    """Base64-encoded image as sent by the UI."""

    data: str = Field(..., min_length=1)
    mime_type: str = Field(default="image/jpeg", min_length=1)
    name: str | None = None

    @field_validator("data")
    @classmethod
    def validate_data(cls, value: str) -> str:
        cleaned = value.strip()
        if cleaned.startswith("data:") and "," in cleaned:
            cleaned = cleaned.split(",", 1)[1]
        try:
            base64.b64decode(cleaned, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("image data must be base64 encoded") from exc
        return cleaned

    def to_attachment(self) -> ImageAttachment:
        return ImageAttachment(
            data=base64.b64decode(self.data),
            mime_type=self.mime_type,
            name=self.name,
        )


class AnalyzeMessage(_MessageModel):
    """Text-only analysis request."""

    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text cannot be empty")
        return value

    def to_request(self) -> AnalysisRequest:
        return AnalysisRequest(text=self.text)


class AnalyzeMultimodalMessage(AnalyzeMessage):
    """Analysis request with optional images and audio clips."""

    images: list[ImagePayload] = Field(default_factory=list)
    audios: list[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def unwrap_content(cls, data: Any) -> Any:
        # older hosts nest the payload under "content"
        if isinstance(data, dict) and isinstance(data.get("content"), dict):
            return {**data, **data["content"]}
        return data

    def to_request(self) -> AnalysisRequest:
        return AnalysisRequest(
            text=self.text,
            images=[image.to_attachment() for image in self.images],
            audios=list(self.audios),
        )


class GenerateMessage(_MessageModel):
    prompt: str = Field(..., min_length=1)
    system_prompt: str | None = None


class SetCredentialMessage(_MessageModel):
    key: str | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_api_key_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and "key" not in data and "apiKey" in data:
            return {**data, "key": data["apiKey"]}
        return data
