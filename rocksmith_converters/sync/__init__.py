from .exporter import generate, dumps, export
from .loader import load, loads
from .interpolator import position_at, audio_time_at
