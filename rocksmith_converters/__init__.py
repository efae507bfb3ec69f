from . import psarc, sng, audio, alphatex, sync, notes
from .detector import detect, check_extension
from .jamtrack import ImportReport, import_archive
