from .loader import load, loads, full_arrangement
from .exporter import dumps, export
from .detector import detect
