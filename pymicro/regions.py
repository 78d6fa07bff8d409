"""
regions.py

Static spatial indices derived from the land-cover grid.

Public API:
- label_regions(state): 8-connected same-land-cover components, ids 1..K in
  row-major order of each component's first cell; fills state.region_id and
  state.region_sizes.
- multi_source_distance(sources, region_id=None) -> (distance, nearest_region)
- compute_distance_fields(state): distances to water / forest / urban+settlement,
  nearest water / forest region ids and forest depth.
- compute_forest_depth(land_cover, radius=20) -> depth

Conventions:
- Distances are in cells with step costs 1 (cardinal) and sqrt(2) (diagonal).
- Unreached cells (no source of that category on the grid) keep +inf.
"""

from __future__ import annotations

import heapq

import numpy as np
from scipy import ndimage

from pymicro import constants
from pymicro.categories import LandCover

_DIRECTIONS_8 = [
    (-1, 0, 1.0),
    (1, 0, 1.0),
    (0, 1, 1.0),
    (0, -1, 1.0),
    (-1, 1, constants.SQRT2),
    (-1, -1, constants.SQRT2),
    (1, 1, constants.SQRT2),
    (1, -1, constants.SQRT2),
]

_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


def label_regions(state) -> np.ndarray:
    land = np.asarray(state.land_cover)
    provisional = np.zeros(land.shape, dtype=np.int64)
    offset = 0
    for code in np.unique(land):
        labels, count = ndimage.label(land == code, structure=_EIGHT_CONNECTED)
        provisional[labels > 0] = labels[labels > 0] + offset
        offset += count

    # Renumber so ids follow the raster order of each component's first cell
    flat = provisional.ravel()
    ids, first_index = np.unique(flat, return_index=True)
    order = np.argsort(first_index, kind="stable")
    remap = np.zeros(offset + 1, dtype=np.int32)
    remap[ids[order]] = np.arange(1, ids.size + 1, dtype=np.int32)
    region_id = remap[provisional]

    sizes = np.bincount(region_id.ravel(), minlength=ids.size + 1)
    state.region_id[...] = region_id
    state.region_sizes = {int(i): int(sizes[i]) for i in range(1, ids.size + 1)}
    return state.region_id


def multi_source_distance(
    sources: np.ndarray, region_id: np.ndarray | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    Dijkstra relaxation from every True cell of `sources` at once. A cell is
    re-queued whenever a strictly shorter path is found; stale heap entries are
    skipped on pop. The region id of the originating source travels with the
    distance (0 where unreached or when `region_id` is None).
    """
    sources = np.asarray(sources, dtype=bool)
    h, w = sources.shape
    dist = np.full(h * w, np.inf)
    nearest = np.zeros(h * w, dtype=np.int32)
    labels = None if region_id is None else np.asarray(region_id).ravel()

    heap: list[tuple[float, int]] = []
    for flat in np.flatnonzero(sources):
        dist[flat] = 0.0
        if labels is not None:
            nearest[flat] = labels[flat]
        heap.append((0.0, int(flat)))
    heapq.heapify(heap)

    while heap:
        d, flat = heapq.heappop(heap)
        if d > dist[flat]:
            continue
        y = flat // w
        x = flat - y * w
        for dy, dx, cost in _DIRECTIONS_8:
            ny = y + dy
            nx = x + dx
            if ny < 0 or ny >= h or nx < 0 or nx >= w:
                continue
            nflat = ny * w + nx
            nd = d + cost
            if nd < dist[nflat]:
                dist[nflat] = nd
                nearest[nflat] = nearest[flat]
                heapq.heappush(heap, (nd, nflat))

    return dist.reshape(h, w), nearest.reshape(h, w)


def compute_forest_depth(land_cover: np.ndarray, radius: int = constants.FOREST_DEPTH_RADIUS) -> np.ndarray:
    """
    For Forest cells, the minimum Euclidean distance to an in-grid non-Forest cell
    on the first square ring (Chebyshev radius 1..radius) that contains one;
    `radius` when no ring does. Non-Forest cells get 0.
    """
    land = np.asarray(land_cover)
    h, w = land.shape
    forest = land == LandCover.FOREST
    depth = np.zeros(land.shape, dtype=float)
    # out-of-grid cells never count as an edge
    open_ground = np.pad(~forest, radius, mode="constant", constant_values=False)
    unresolved = forest.copy()

    for r in range(1, radius + 1):
        if not unresolved.any():
            break
        best = np.full(land.shape, np.inf)
        for dy in range(-r, r + 1):
            for dx in range(-r, r + 1):
                if max(abs(dx), abs(dy)) != r:
                    continue
                hit = open_ground[radius + dy : radius + dy + h, radius + dx : radius + dx + w]
                best = np.where(hit, np.minimum(best, np.hypot(dx, dy)), best)
        found = unresolved & np.isfinite(best)
        depth[found] = best[found]
        unresolved &= ~found

    depth[unresolved] = float(radius)
    return depth


def compute_distance_fields(state) -> None:
    land = np.asarray(state.land_cover)

    water_dist, water_region = multi_source_distance(land == LandCover.WATER, state.region_id)
    forest_dist, forest_region = multi_source_distance(land == LandCover.FOREST, state.region_id)
    urban_sources = (land == LandCover.URBAN) | (land == LandCover.SETTLEMENT)
    urban_dist, _ = multi_source_distance(urban_sources)

    state.water_distance[...] = water_dist
    state.nearest_water_region[...] = water_region
    state.forest_distance[...] = forest_dist
    state.nearest_forest_region[...] = forest_region
    state.urban_distance[...] = urban_dist
    state.forest_depth[...] = compute_forest_depth(land)
