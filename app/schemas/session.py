from typing import Literal

from pydantic import BaseModel, Field


class WatermarkConfig(BaseModel):
    text: str | None = Field(default=None, min_length=1, max_length=255)
    position: Literal["top-left", "top-right", "bottom-left", "bottom-right"] = "bottom-right"
    opacity: float = Field(default=0.7, ge=0.0, le=1.0)


class SessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    visibility: Literal["public", "private"] = "public"
    access_code: str | None = Field(default=None, min_length=4, max_length=20)
    status: Literal["draft", "active"] = "active"
    review_mode: bool = False
    auto_tag_enabled: bool = False
    watermark: WatermarkConfig | None = None
    max_file_size: int | None = Field(default=None, gt=0)
    allowed_extensions: list[str] | None = None
    id: str | None = None


class SessionResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    visibility: str
    status: str
    review_mode: bool
    auto_tag_enabled: bool
    watermark_text: str | None = None
    watermark_position: str | None = None
    watermark_opacity: float | None = None
    max_file_size: int
    allowed_extensions: list[str]
    created_at: str

    model_config = {"from_attributes": True}


class OwnerSessionResponse(SessionResponse):
    access_code: str | None = None
