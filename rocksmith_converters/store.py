import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Union

from dataclasses_json import dataclass_json, LetterCase

logger = logging.getLogger(__name__)


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Marker:
    name: str
    timestamp: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class ArrangementRecord:
    name: str
    file_path: str
    sync_path: str
    sort_order: int = 0
    file_type: str = "alphatex"


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class JamTrackRecord:
    title: str
    file_path: str
    duration: float = 0.0
    tempo: Optional[int] = None
    time_signature: str = "4/4"
    arrangements: List[ArrangementRecord] = field(default_factory=list)
    markers: List[Marker] = field(default_factory=list)
    id: Optional[int] = None


class JamTrackStore(Protocol):
    def find_by_title(self, title: str) -> Optional[int]: ...

    def delete(self, record_id: int) -> None:
        """Remove a record with its arrangements and markers."""
        ...

    def create(self, record: JamTrackRecord) -> int: ...


class JsonJamTrackStore:
    """Jam-track records kept in a single JSON file.

    Safe to share between import worker threads.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {"nextId": 1, "jamTracks": []}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=4, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def records(self) -> list[JamTrackRecord]:
        with self._lock:
            return [JamTrackRecord.from_dict(r) for r in self._read()["jamTracks"]]

    def find_by_title(self, title: str) -> Optional[int]:
        with self._lock:
            for record in self._read()["jamTracks"]:
                if record["title"] == title:
                    return record["id"]
        return None

    def delete(self, record_id: int) -> None:
        with self._lock:
            data = self._read()
            data["jamTracks"] = [r for r in data["jamTracks"] if r["id"] != record_id]
            self._write(data)
        logger.info(f"Deleted jam track {record_id}")

    def create(self, record: JamTrackRecord) -> int:
        with self._lock:
            data = self._read()
            record.id = data["nextId"]
            data["nextId"] += 1
            data["jamTracks"].append(record.to_dict())
            self._write(data)
        logger.info(f"Created jam track {record.id}: {record.title}")
        return record.id
