import logging
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

from . import alphatex, psarc, sng, sync
from .audio import AudioCandidate, select_full_mix, transcode
from .config import get_extension, get_jam_tracks_dir, get_workers, load_config
from .detector import check_extension
from .errors import (
    ChartFormatError,
    ConverterError,
    DecompressionError,
    ImportCancelledError,
    SongImportError,
)
from .notes.manifest import SongGroup, group_by_song
from .notes.song import Song
from .notes.tempo import analyze
from .store import ArrangementRecord, JamTrackRecord, JamTrackStore, Marker
from .utils import sanitize_name

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    imported: List[JamTrackRecord] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Imported {len(self.imported)} song(s), {len(self.errors)} failed"


@dataclass
class _Chart:
    name: str
    stem: str
    song: Song


def _check_cancel(cancel: threading.Event, group: SongGroup):
    if cancel.is_set():
        raise ImportCancelledError(f"Import of {group.display_title} was cancelled")


def arrangement_name(internal_path: str) -> str:
    """``songs/bin/generic/darktran_lead.sng`` -> ``lead``"""
    return PurePosixPath(internal_path).stem.split("_")[-1].lower()


class _SongImporter:
    def __init__(
        self,
        archive: psarc.Archive,
        store: JamTrackStore,
        config: Dict[str, Any],
        cancel: threading.Event,
    ):
        self.archive = archive
        self.store = store
        self.config = config
        self.cancel = cancel
        self.jam_tracks_dir = get_jam_tracks_dir(config)
        self.chart_ext = get_extension(config, "chart", ".sng")
        self.audio_ext = get_extension(config, "audio", ".wem")

    def chart_indices(self, group: SongGroup) -> list[int]:
        marker = f"/{group.song_key.lower()}_"
        return [
            i
            for i, path in enumerate(self.archive.list_entries())
            if path.lower().endswith(self.chart_ext) and marker in path.lower()
        ]

    def decode_charts(self, group: SongGroup) -> list[_Chart]:
        charts = []
        for index in self.chart_indices(group):
            path = self.archive.entries[index].internal_path
            name = arrangement_name(path)
            if "vocals" in name:
                continue
            try:
                song = sng.loads(self.archive.read_entry(index))
            except (DecompressionError, ChartFormatError) as err:
                logger.warning(f"Skipping arrangement {path}: {err}")
                continue
            charts.append(_Chart(name=name.capitalize(), stem=sanitize_name(name), song=song))
        return charts

    def audio_candidates(self) -> list[AudioCandidate]:
        return [
            AudioCandidate(
                archive_index=i,
                internal_path=self.archive.entries[i].internal_path,
                raw_byte_length=self.archive.entries[i].decompressed_size,
            )
            for i in self.archive.find_entries(self.audio_ext)
        ]

    def run(self, group: SongGroup) -> JamTrackRecord:
        title = group.display_title
        logger.info(f"Importing: {title} (song key: {group.song_key})")

        charts = self.decode_charts(group)
        if not charts:
            raise SongImportError(f"Failed to parse any arrangements for {group.title}")
        _check_cancel(self.cancel, group)

        candidate = select_full_mix(self.audio_candidates(), group.song_ids())
        if candidate is None:
            raise SongImportError(f"No audio found for {group.title}")
        ogg = transcode(
            self.archive.read_entry(candidate.archive_index),
            self.config.get("transcode"),
        )
        _check_cancel(self.cancel, group)

        folder_name = sanitize_name(title)
        self.jam_tracks_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".import-", dir=self.jam_tracks_dir))
        staging.chmod(0o755)
        try:
            record = self.write_artifacts(group, charts, ogg, staging, folder_name)
            _check_cancel(self.cancel, group)
            return self.commit(record, staging, folder_name)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def write_artifacts(
        self,
        group: SongGroup,
        charts: list[_Chart],
        ogg: bytes,
        staging: Path,
        folder_name: str,
    ) -> JamTrackRecord:
        relative_dir = PurePosixPath(self.config["jam_tracks_folder"], folder_name)
        audio_name = f"{sanitize_name(group.title)}.ogg"
        (staging / audio_name).write_bytes(ogg)

        notation = self.config.get("notation", {})
        arrangements = []
        for sort_order, chart in enumerate(charts):
            tempo = analyze(chart.song)
            document = alphatex.generate(
                chart.song,
                chart.name,
                group.title,
                group.artist,
                sort_order,
                max_measures=int(notation.get("max_measures", 0)),
                instrument=int(notation.get("instrument", alphatex.DEFAULT_INSTRUMENT)),
                tempo=tempo,
            )
            alphatex.export(staging / f"{chart.stem}.alphatex", document)
            sync.export(staging / f"{chart.stem}.sync.json", sync.generate(chart.song, tempo))
            arrangements.append(
                ArrangementRecord(
                    name=chart.name,
                    file_path=str(relative_dir / f"{chart.stem}.alphatex"),
                    sync_path=str(relative_dir / f"{chart.stem}.sync.json"),
                    sort_order=sort_order,
                )
            )

        # Markers, tempo and length come from the first arrangement
        first = charts[0].song
        tempo = analyze(first)
        return JamTrackRecord(
            title=group.display_title,
            file_path=str(relative_dir / audio_name),
            duration=first.metadata.song_length or group.manifest.song_length,
            tempo=tempo.bpm,
            time_signature=f"{tempo.beats_per_bar}/4",
            arrangements=arrangements,
            markers=[Marker(name=s.name, timestamp=s.start_time) for s in first.sections],
        )

    def commit(self, record: JamTrackRecord, staging: Path, folder_name: str) -> JamTrackRecord:
        existing = self.store.find_by_title(record.title)
        if existing is not None:
            logger.info(f"Replacing existing jam track {existing}: {record.title}")
            self.store.delete(existing)
        target = self.jam_tracks_dir / folder_name
        if target.exists():
            shutil.rmtree(target)
        staging.replace(target)
        self.store.create(record)
        return record


def import_archive(
    path: Union[str, Path],
    store: JamTrackStore,
    config: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> ImportReport:
    """Import every song of a PSARC archive as jam tracks.

    Archive-level problems raise; per-song failures end up in ``ImportReport.errors``.
    """
    config = config or load_config()
    cancel = cancel or threading.Event()
    path = Path(path)
    check_extension(path, get_extension(config, "archive", ".psarc"))

    with psarc.load(path) as archive:
        manifests = archive.parse_manifests()
        if not manifests:
            raise SongImportError(f"No arrangements found in {path.name}")
        groups = group_by_song(manifests)
        logger.info(f"Found {len(groups)} unique song(s) in {path.name}")

        importer = _SongImporter(archive, store, config, cancel)
        report = ImportReport()
        workers = get_workers(config)
        gate = threading.BoundedSemaphore(workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {}
            for group in groups:
                gate.acquire()
                if cancel.is_set():
                    gate.release()
                    report.errors.append(
                        {"song": group.display_title, "error": "Import cancelled"}
                    )
                    continue
                future = executor.submit(importer.run, group)
                future.add_done_callback(lambda _: gate.release())
                futures[future] = group

            for future in as_completed(futures):
                group = futures[future]
                try:
                    report.imported.append(future.result())
                except (ConverterError, OSError) as err:
                    logger.error(f"Failed to import {group.display_title}: {err}")
                    report.errors.append({"song": group.display_title, "error": str(err)})
                except Exception as err:
                    logger.exception(f"Unexpected error importing {group.display_title}")
                    report.errors.append({"song": group.display_title, "error": str(err)})

    # as_completed yields in finishing order; report in archive order
    order = {g.display_title: i for i, g in enumerate(groups)}
    report.imported.sort(key=lambda r: order[r.title])
    report.errors.sort(key=lambda e: order[e["song"]])
    logger.info(report.message)
    return report
