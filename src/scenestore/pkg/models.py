from __future__ import annotations

import json
from typing import Any, Final, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scenestore.errors import PackageError, UnsupportedFormatError

FORMAT_VERSION: Final = 1


class _Entry(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SoundSetHeader(_Entry):
    name: str
    description: str = ""


class ChannelEntry(_Entry):
    name: str
    icon: str = ""
    volume: float = 1.0
    order_index: int = 0


class ElementEntry(_Entry):
    file_name: str
    archive_path: str
    channel_name: Optional[str] = None
    channel_type: str = "ambient"
    volume_db: float = 0.0


class ClipEntry(_Entry):
    element_file_name: str
    start_time_ms: int = Field(ge=0)
    duration_ms: int = Field(ge=0)


class TrackEntry(_Entry):
    name: str
    order_index: int = 0
    clips: list[ClipEntry] = Field(default_factory=list)


class TimelineEntry(_Entry):
    is_looping: bool = False
    tracks: list[TrackEntry] = Field(default_factory=list)


class MoodEntry(_Entry):
    name: str
    description: str = ""
    timeline: Optional[TimelineEntry] = None


class Manifest(_Entry):
    format_version: Literal[1] = FORMAT_VERSION
    soundset: SoundSetHeader
    channels: list[ChannelEntry] = Field(default_factory=list)
    elements: list[ElementEntry] = Field(default_factory=list)
    moods: list[MoodEntry] = Field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2)


def parse_manifest(raw: bytes | str) -> Manifest:
    """Decode ``manifest.json`` content, rejecting any format other than version 1."""

    try:
        data: Any = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PackageError(f"manifest.json is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PackageError("manifest.json must contain a JSON object")
    if "format_version" not in data:
        raise PackageError("manifest.json is missing format_version")
    version = data["format_version"]
    if isinstance(version, bool) or version != FORMAT_VERSION:
        raise UnsupportedFormatError(version)
    try:
        return Manifest.model_validate(data)
    except ValidationError as exc:
        raise PackageError(f"Invalid manifest.json: {exc}") from exc
