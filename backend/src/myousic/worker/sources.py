"""Result variants shared by the metadata source clients.

Clients never raise on "nothing found": they return ``NoMatch``. Transport
or upstream failures become ``SourceError``. Only configuration problems
raise (``ConfigurationError``).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CandidateArtist(BaseModel):
    name: str
    id: Optional[str] = None


class IdentificationCandidate(BaseModel):
    """Advisory metadata proposed for a song; never written automatically."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    artist: str
    artists: List[CandidateArtist] = Field(default_factory=list)
    album: str = "Unknown Album"
    year: Optional[int] = None
    genres: List[str] = Field(default_factory=list)
    cover_url: Optional[str] = None
    source: str
    confidence: Optional[float] = None
    # MusicBrainz ids carried along for enrichment
    release_id: Optional[str] = None
    release_group_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class Match(Generic[T]):
    value: T


@dataclass
class NoMatch:
    reason: str = "no match"


@dataclass
class SourceError:
    reason: str
    status: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


SourceResult = Union[Match[T], NoMatch, SourceError]
