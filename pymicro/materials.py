"""
materials.py

Static material-property tables for surface categories.

Water, Urban and Settlement land cover carry their own property sets; every
other land cover falls back to the soil type of the cell. Unknown codes and
out-of-grid coordinates resolve to Loam.

Public API:
- ThermalProperties: frozen record (heat capacity, conductivity, water retention,
  albedo, evaporation coefficient, display name, colour).
- properties_for(land, soil) -> ThermalProperties   (scalar lookup)
- get_thermal_properties(state, x, y) -> ThermalProperties
- thermal_property_maps(land_cover, soil_type) -> PropertyMaps (per-cell arrays)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pymicro.categories import LandCover, SoilType


@dataclass(frozen=True)
class ThermalProperties:
    name: str
    heat_capacity: float  # > 0
    conductivity: float  # >= 0
    water_retention: float  # [0, 1]
    albedo: float  # [0, 1]
    evaporation: float  # >= 0
    color: str


SOIL_PROPERTIES: dict[int, ThermalProperties] = {
    SoilType.LOAM: ThermalProperties("Loam", 1.0, 1.0, 0.7, 0.2, 1.0, "#8B7355"),
    SoilType.SAND: ThermalProperties("Sand", 0.8, 0.4, 0.2, 0.55, 1.2, "#F4E4BC"),
    SoilType.CLAY: ThermalProperties("Clay", 1.1, 1.3, 0.9, 0.15, 0.6, "#A0522D"),
    SoilType.ROCK: ThermalProperties("Rock/Bedrock", 1.2, 2.0, 0.1, 0.25, 0.1, "#696969"),
}

WATER_PROPERTIES = ThermalProperties("Water", 15.0, 4.0, 1.0, 0.08, 1.5, "#4a9eff")
URBAN_PROPERTIES = ThermalProperties("Urban", 1.6, 2.0, 0.05, 0.12, 0.1, "#8b8b8b")
SETTLEMENT_PROPERTIES = ThermalProperties("Settlement", 1.3, 1.6, 0.2, 0.18, 0.4, "#a67c52")

LAND_PROPERTY_OVERRIDES: dict[int, ThermalProperties] = {
    LandCover.WATER: WATER_PROPERTIES,
    LandCover.URBAN: URBAN_PROPERTIES,
    LandCover.SETTLEMENT: SETTLEMENT_PROPERTIES,
}

DEFAULT_THERMAL_PROPERTIES = SOIL_PROPERTIES[SoilType.LOAM]


def properties_for(land: int, soil: int) -> ThermalProperties:
    override = LAND_PROPERTY_OVERRIDES.get(int(land))
    if override is not None:
        return override
    return SOIL_PROPERTIES.get(int(soil), DEFAULT_THERMAL_PROPERTIES)


def get_thermal_properties(state, x: int, y: int) -> ThermalProperties:
    """Property set of cell (x, y); Loam for coordinates outside the grid."""
    if not state.in_bounds(x, y):
        return DEFAULT_THERMAL_PROPERTIES
    return properties_for(state.land_cover[y, x], state.soil_type[y, x])


@dataclass
class PropertyMaps:
    heat_capacity: np.ndarray
    conductivity: np.ndarray
    water_retention: np.ndarray
    albedo: np.ndarray
    evaporation: np.ndarray
    is_water: np.ndarray  # bool


def _property_field(land: np.ndarray, soil: np.ndarray, attr: str) -> np.ndarray:
    out = np.full(land.shape, getattr(DEFAULT_THERMAL_PROPERTIES, attr), dtype=float)
    for code, props in SOIL_PROPERTIES.items():
        out[soil == code] = getattr(props, attr)
    # land-cover overrides win over soil
    for code, props in LAND_PROPERTY_OVERRIDES.items():
        out[land == code] = getattr(props, attr)
    return out


def thermal_property_maps(land_cover: np.ndarray, soil_type: np.ndarray) -> PropertyMaps:
    land = np.asarray(land_cover)
    soil = np.asarray(soil_type)
    return PropertyMaps(
        heat_capacity=_property_field(land, soil, "heat_capacity"),
        conductivity=_property_field(land, soil, "conductivity"),
        water_retention=_property_field(land, soil, "water_retention"),
        albedo=_property_field(land, soil, "albedo"),
        evaporation=_property_field(land, soil, "evaporation"),
        is_water=land == LandCover.WATER,
    )
