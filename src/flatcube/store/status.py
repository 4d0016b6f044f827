"""
Per-cell status flags stored in a store's status bitmap.
"""

from enum import IntFlag

import numpy as np


class Status(IntFlag):
    """OR-combinable cell flags."""
    NONE = 0
    HAS_DATA = 1
    INTERPOLATED = 2


STATUS_DTYPE = np.uint8
