from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, model_validator

from src.utils.asset_resolver import normalize_ref

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
AssetUrl = Annotated[str, AfterValidator(normalize_ref)]


def _numeric_only(value):
    # lax mode would turn True into 1.0 and "12" into 12.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


Duration = Annotated[float, BeforeValidator(_numeric_only), Field(ge=0, allow_inf_nan=False)]


class Video(BaseModel):
    """Stored video document. ``id`` maps to Mongo's ``_id``."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    video_file_ref: str
    thumbnail_ref: str
    owner: str
    title: str
    description: str
    duration_seconds: float  # reported by the upload provider

    view_count: int = Field(default=0, ge=0)
    is_published: bool = True

    created_at: datetime
    updated_at: datetime


class VideoCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    video_file_ref: AssetUrl
    thumbnail_ref: AssetUrl
    owner: NonEmptyStr
    title: NonEmptyStr
    description: NonEmptyStr
    duration_seconds: Duration


class VideoDraft(BaseModel):
    """Text fields of a publish request, checked before anything is uploaded."""
    owner: NonEmptyStr
    title: NonEmptyStr
    description: NonEmptyStr


class VideoUpdate(BaseModel):
    """Partial edit. Only the supplied fields are validated and written."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[NonEmptyStr] = None
    description: Optional[NonEmptyStr] = None
    thumbnail_ref: Optional[AssetUrl] = None

    @model_validator(mode="after")
    def check_supplied(self):
        if not self.model_fields_set:
            raise ValueError("no fields to update")
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class VideoFilter(BaseModel):
    owner: Optional[str] = None
    published_only: bool = False


class VideoPage(BaseModel):
    items: List[Video]
    next_cursor: Optional[str] = None
    total: int = 0
