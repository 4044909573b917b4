"""Activity domain Pydantic V2 schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TimeSpentRequest(BaseModel):
    """Client reports time on the lesson page in increments."""

    delta_secs: int = Field(ge=0, le=86_400, description="Seconds since the last report.")


class VideoTickRequest(BaseModel):
    """Client sends this periodically during playback and on completion."""

    position_secs: int = Field(ge=0, description="Current playback position in seconds.")
    delta_watched_secs: int = Field(
        default=0, ge=0, description="Seconds actually watched since the last tick.",
    )
    completed: bool = Field(
        default=False,
        description="Player reports the video as finished. Once recorded it stays set.",
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class TimeSpentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    time_spent_secs: int
    last_accessed: datetime


class VideoProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    watched_secs: int
    last_position_secs: int
    completed: bool
    last_accessed: datetime


class AssetDownloadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    asset_id: UUID
    download_count: int
    first_downloaded_at: datetime
    last_downloaded_at: datetime
