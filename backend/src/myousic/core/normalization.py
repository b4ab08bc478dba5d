"""Tag value normalization shared by ingestion and identification.

Embedded tags often pack several values into one string ("A; B/C"), and
remote services disagree on genre casing. These helpers give the scanner,
the identifier and the apply endpoint one consistent view.

Typical usage example:
    names = Normalizer.split_values("Daft Punk; Pharrell Williams")
    genres = Normalizer.merge_genres(["house"], ["French House", "House"], limit=5)
"""

import re
from typing import Iterable, List, Optional, Sequence, Union

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class Normalizer:
    """Static helpers for multi-value tags, genres and display strings."""

    # Semicolon, comma and slash all separate values in the wild
    VALUE_SEPARATORS = re.compile(r"[;,/]")

    @staticmethod
    def split_values(raw: Union[None, str, Sequence[str]]) -> List[str]:
        """Split a raw tag into trimmed, non-empty values, preserving order.

        Mutagen hands back either a string or a list of strings depending on
        the container; both are accepted.

        Example:
            >>> Normalizer.split_values("Rock; Pop/Dance")
            ['Rock', 'Pop', 'Dance']
            >>> Normalizer.split_values(["A, B", "C"])
            ['A', 'B', 'C']
        """
        if not raw:
            return []
        items = [raw] if isinstance(raw, str) else list(raw)
        values: List[str] = []
        for item in items:
            for part in Normalizer.VALUE_SEPARATORS.split(str(item)):
                part = part.strip()
                if part and part not in values:
                    values.append(part)
        return values

    @staticmethod
    def is_placeholder_artist(name: Optional[str]) -> bool:
        """True for empty names and the "Unknown ..." placeholders."""
        return not name or "unknown" in name.lower()

    @staticmethod
    def title_case_genre(genre: str) -> str:
        """Capitalize the first letter of each word, leaving the rest alone.

        Example:
            >>> Normalizer.title_case_genre("french house")
            'French House'
            >>> Normalizer.title_case_genre("r&b")
            'R&b'
        """
        return " ".join(w[:1].upper() + w[1:] for w in genre.split(" ") if w)

    @staticmethod
    def merge_genres(*groups: Iterable[str], limit: int = 5) -> List[str]:
        """Union genre lists, dedupe case-insensitively, sort and cap.

        Example:
            >>> Normalizer.merge_genres(["electronic", "House"], ["house", "disco"])
            ['Disco', 'Electronic', 'House']
        """
        by_key = {}
        for group in groups:
            for genre in group or []:
                genre = (genre or "").strip()
                if not genre:
                    continue
                key = genre.casefold()
                if key not in by_key:
                    by_key[key] = Normalizer.title_case_genre(genre)
        merged = [by_key[k] for k in sorted(by_key)]
        return merged[:limit] if limit > 0 else merged

    @staticmethod
    def display_artist(names: Sequence[str]) -> str:
        """Join artist names into the display string used on songs."""
        return ", ".join(n for n in names if n) or UNKNOWN_ARTIST
