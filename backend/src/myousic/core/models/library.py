"""Library models: Artist, Album, Song, SongArtist."""

from typing import List, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from myousic.core.models.base import Base, TimestampMixin, new_id


def name_key(value: str) -> str:
    """Lookup key for case-insensitive name matching (Unicode casefold)."""
    return value.strip().casefold()


def _key_of(column: str):
    def default(context):
        return name_key(context.get_current_parameters()[column])

    return default


class Artist(Base, TimestampMixin):
    """A performer. Names are unique case-insensitively (enforced at ingest)."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, index=True)
    # SQLite lower() only folds ASCII, so matching uses this column
    name_key: Mapped[str] = mapped_column(String, index=True, default=_key_of("name"))
    avatar_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    songs: Mapped[List["Song"]] = relationship(
        secondary="song_artists", back_populates="artists", viewonly=True
    )


class Album(Base, TimestampMixin):
    """A collection of songs, keyed by title."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String, index=True)
    title_key: Mapped[str] = mapped_column(String, index=True, default=_key_of("title"))
    cover_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    genre: Mapped[List[str]] = mapped_column(JSON, default=list)
    # Incremented on ingest, never recomputed from songs
    track_count: Mapped[int] = mapped_column(Integer, default=0)

    songs: Mapped[List["Song"]] = relationship(back_populates="album")


class Song(Base, TimestampMixin):
    """A single audio file in the catalog."""

    __tablename__ = "songs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String, index=True)
    album_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("albums.id"), nullable=True
    )
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    file_path: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    genre: Mapped[List[str]] = mapped_column(JSON, default=list)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bitrate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    format: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cover_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)

    album: Mapped[Optional["Album"]] = relationship(back_populates="songs")
    artists: Mapped[List["Artist"]] = relationship(
        secondary="song_artists", back_populates="songs", viewonly=True
    )


class SongArtist(Base):
    """Bridge table associating Songs with Artists; one artist is primary."""

    __tablename__ = "song_artists"
    __table_args__ = (Index("idx_song_artist_artist", "artist_id"),)

    song_id: Mapped[str] = mapped_column(
        ForeignKey("songs.id", ondelete="CASCADE"), primary_key=True
    )
    artist_id: Mapped[str] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
