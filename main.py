import argparse
import logging
import sys
from pathlib import Path

from rocksmith_converters import import_archive
from rocksmith_converters.config import get_jam_tracks_dir, load_config
from rocksmith_converters.errors import ConverterError
from rocksmith_converters.store import JsonJamTrackStore

logger = logging.getLogger("rocksmith_converters")


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Import Rocksmith .psarc archives as jam tracks")
    p.add_argument("--in", dest="infile", required=True, help="Input archive (.psarc)")
    p.add_argument("--music-dir", dest="music_dir", default=None, help="Media library root")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    p.add_argument("--workers", type=int, default=None, help="Songs imported in parallel")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = p.parse_args(argv)

    overrides = {}
    if args.music_dir:
        overrides["music_dir"] = args.music_dir
    if args.workers:
        overrides["import"] = {"workers": args.workers}
    cfg = load_config(args.config, overrides=overrides)

    log_cfg = cfg["logging"]
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else log_cfg.get("level", "INFO"),
        format=log_cfg.get("format", "%(levelname)s %(name)s: %(message)s"),
    )

    in_path = Path(args.infile).expanduser().resolve()
    if not in_path.exists():
        logger.error(f"Input not found: {in_path}")
        return 1

    store = JsonJamTrackStore(get_jam_tracks_dir(cfg) / "jamtracks.json")
    try:
        report = import_archive(in_path, store, cfg)
    except ConverterError as err:
        logger.error(str(err))
        return 2

    for record in report.imported:
        print(f"imported  {record.title} ({len(record.arrangements)} arrangement(s))")
    for error in report.errors:
        print(f"failed    {error['song']}: {error['error']}")
    print(report.message)
    return 0 if report.imported else 3


if __name__ == "__main__":
    sys.exit(main())
