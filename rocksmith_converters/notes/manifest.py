from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from dataclasses_json import dataclass_json, LetterCase, Undefined
from dataclasses_json.cfg import config


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class Tuning:
    string0: int = 0
    string1: int = 0
    string2: int = 0
    string3: int = 0
    string4: int = 0
    string5: int = 0

    def offsets(self) -> list[int]:
        return [
            self.string0,
            self.string1,
            self.string2,
            self.string3,
            self.string4,
            self.string5,
        ]


@dataclass_json(letter_case=LetterCase.PASCAL, undefined=Undefined.EXCLUDE)
@dataclass
class ArrangementManifest:
    persistent_id: str = field(
        default="", metadata=config(field_name="PersistentID")
    )
    arrangement_name: str = ""
    song_name: str = ""
    artist_name: str = ""
    album_name: str = ""
    song_year: int = 0
    song_length: float = 0.0
    song_average_tempo: float = 0.0
    song_key: str = ""
    tuning: Optional[Tuning] = None
    # Filled by the archive reader, not read from the attributes
    src_json: str = field(default="", metadata=config(exclude=lambda x: True))
    raw_metadata: Dict[str, Any] = field(
        default_factory=dict, metadata=config(exclude=lambda x: True)
    )

    @property
    def is_vocals(self) -> bool:
        return "vocals" in self.arrangement_name.lower()

    def derived_song_key(self) -> str:
        """SongKey attribute, or the part of the manifest file name before the first '_'."""
        if self.song_key:
            return self.song_key
        return PurePosixPath(self.src_json).stem.split("_")[0]


@dataclass
class SongGroup:
    artist: str
    title: str
    song_key: str
    manifest: ArrangementManifest
    persistent_ids: List[str] = field(default_factory=list)

    @property
    def display_title(self) -> str:
        return f"{self.artist} - {self.title}"

    def song_ids(self) -> list[str]:
        """Identifiers an audio entry of this song may carry in its path."""
        ids = list(self.persistent_ids)
        if self.song_key:
            ids.append(self.song_key)
        return ids


def group_by_song(manifests: Dict[str, ArrangementManifest]) -> List[SongGroup]:
    """Group arrangements sharing (artist, song), in first-seen order.

    Arrangements without a song or artist name (showlights and the like) are dropped.
    """
    groups: dict[tuple[str, str], SongGroup] = {}
    for persistent_id, manifest in manifests.items():
        if not manifest.song_name or not manifest.artist_name:
            continue
        key = (manifest.artist_name, manifest.song_name)
        if key not in groups:
            groups[key] = SongGroup(
                artist=manifest.artist_name,
                title=manifest.song_name,
                song_key=manifest.derived_song_key(),
                manifest=manifest,
            )
        groups[key].persistent_ids.append(persistent_id)
    return list(groups.values())
