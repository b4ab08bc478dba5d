from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScanRequest(BaseModel):
    path: Optional[str] = None


class ScanAccepted(BaseModel):
    accepted: bool = True
    path: str


class ScanStopResponse(BaseModel):
    stopping: bool


class RefreshResponse(CamelModel):
    removed_count: int


class LibraryStats(CamelModel):
    song_count: int
    album_count: int
    artist_count: int


class ApplyRequest(CamelModel):
    """A candidate the user confirmed for a song."""

    title: str = Field(..., min_length=1)
    artist: Optional[str] = None
    # Takes precedence over ``artist`` when given; the first is primary
    artists: List[str] = Field(default_factory=list)
    album: Optional[str] = None
    year: Optional[int] = None
    genres: List[str] = Field(default_factory=list)
    cover_url: Optional[str] = None


class SongOut(CamelModel):
    """Song as sent to clients and in ``song:update`` events."""

    id: str
    title: str
    artist: str
    artist_ids: List[str] = Field(default_factory=list)
    album: Optional[str] = None
    album_id: Optional[str] = None
    duration: int = 0
    file_path: Optional[str] = None
    genre: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    bitrate: Optional[int] = None
    format: Optional[str] = None
    cover_url: Optional[str] = None
    is_favorite: bool = False

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
