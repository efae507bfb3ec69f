from .locator import AudioCandidate, select_full_mix
from .transcoder import transcode
from .detector import detect
