import re

import numpy as np


def single_precision(value: float) -> float:
    """Shortest decimal that round-trips through float32.

    Chart times are stored as float32; widening them naively gives values like
    1.2000000476837158 instead of 1.2.
    """
    return float(str(np.float32(value)))


def sanitize_name(name: str) -> str:
    return re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", name).strip()


# single_precision(-3.200000047683716)  # -3.2
