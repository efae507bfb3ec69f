from .loader import Archive, Entry, load, loads
from .exporter import dumps, export
from .detector import detect
