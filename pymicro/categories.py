"""
Categorical codes stored in the integer grids of MicroclimateState.

LandCover / SoilType are static terrain categories; CloudType and
PrecipitationType are classification outputs recomputed every tick.
"""

from __future__ import annotations

from enum import IntEnum


class LandCover(IntEnum):
    GRASSLAND = 0
    FOREST = 1
    WATER = 2
    URBAN = 3
    SETTLEMENT = 4


class SoilType(IntEnum):
    LOAM = 0
    SAND = 1
    CLAY = 2
    ROCK = 3


class CloudType(IntEnum):
    NONE = 0
    CUMULUS = 1
    CUMULONIMBUS = 2
    NIMBOSTRATUS = 3
    STRATUS = 4
    OROGRAPHIC = 5


class PrecipitationType(IntEnum):
    NONE = 0
    RAIN = 1
    SLEET = 2
    SNOW = 3
