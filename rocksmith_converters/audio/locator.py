from dataclasses import dataclass
from typing import Iterable, Sequence


@dataclass(frozen=True)
class AudioCandidate:
    archive_index: int
    internal_path: str
    # Inflated size from the archive TOC, known without reading the entry
    raw_byte_length: int


def _matches(candidate: AudioCandidate, song_ids: Sequence[str]) -> bool:
    path = candidate.internal_path.lower()
    return any(song_id in path for song_id in song_ids)


def select_full_mix(
    candidates: Iterable[AudioCandidate], song_ids: Iterable[str]
) -> AudioCandidate | None:
    """Pick the full-song mix among the audio entries of an archive.

    Only candidates whose path contains one of ``song_ids`` (case-insensitive) are
    considered. A single match wins outright; among several, the largest wins,
    since previews and stems are far smaller than the full mix. Equal sizes go to
    the lowest archive index. No match gives None, never a guess.
    """
    ids = [song_id.lower() for song_id in song_ids if song_id]
    matching = [c for c in candidates if _matches(c, ids)]
    if not matching:
        return None
    if len(matching) == 1:
        return matching[0]
    return max(matching, key=lambda c: (c.raw_byte_length, -c.archive_index))
