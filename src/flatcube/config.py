"""
Engine configuration.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class CubeConfig:
    """
    Defaults shared by a cube and every cube derived from it.

    Attributes:
        default_dtype: Element type of new stored measures
        default_value: "No data" value of new stored measures
        strict_rules: Fail in add_dimension when a stored measure gets no
            aggregation rule for the new dimension, instead of failing at
            the first drill-up that needs it
    """
    default_dtype: str = "float32"
    default_value: float = math.nan
    strict_rules: bool = False


DEFAULT_CONFIG = CubeConfig()
