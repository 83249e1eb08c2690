from typing import Dict, List, Sequence

import numpy as np

from palred.clustering import Vector
from palred.colorconversion import rgb_to_space
from palred.raster import as_raster, color_keys, key_to_rgb
from palred.settings import ClusteringColorSpace

PointsByColor = Dict[int, np.ndarray]


def group_by_color(raster: np.ndarray) -> PointsByColor:
    """
    Group pixel positions by exact RGB color.

    Positions are stored as 1D indices (y * width + x) in scan order so that
    no per-pixel objects are allocated.

    Returns:
        dict: color key -> ascending int64 array of linear pixel positions.
    """
    keys = color_keys(as_raster(raster))
    order = np.argsort(keys, kind="stable")
    sorted_keys = keys[order]
    boundaries = np.flatnonzero(np.diff(sorted_keys)) + 1
    starts = np.concatenate(([0], boundaries))
    groups = np.split(order.astype(np.int64), boundaries)
    return {int(sorted_keys[start]): positions for start, positions in zip(starts, groups)}


def to_weighted_vectors(
    points_by_color: PointsByColor, area: int, color_space: ClusteringColorSpace
) -> List[Vector]:
    """
    Build one weighted vector per distinct color.

    The weight of a color is its pixel count divided by the raster area, the
    values are the color converted into color_space and the tag is the color
    key, so the original color can always be found again.
    """
    if area <= 0:
        raise ValueError(f"area must be positive, got {area}")
    color_space = ClusteringColorSpace.parse(color_space)
    tags = list(points_by_color.keys())
    if not tags:
        return []
    rgb = np.array([key_to_rgb(tag) for tag in tags], dtype=np.uint8)
    features = rgb_to_space(rgb, color_space)
    return [
        Vector(features[i], len(points_by_color[tag]) / area, tag)
        for i, tag in enumerate(tags)
    ]


def pixel_point_index(points_by_color: PointsByColor, tags: Sequence[int], num_pixels: int) -> np.ndarray:
    """
    Map every linear pixel position to the index of its color in tags.

    Pixels whose color is not listed get -1.

    Raises:
        IndexError: if a recorded position lies outside num_pixels.
    """
    index = np.full(num_pixels, -1, dtype=np.int64)
    if len(tags) == 0:
        return index
    positions = [points_by_color[tag] for tag in tags]
    lengths = np.fromiter((len(p) for p in positions), dtype=np.int64, count=len(positions))
    flat = np.concatenate(positions)
    if len(flat) and (flat.min() < 0 or flat.max() >= num_pixels):
        raise IndexError(f"pixel positions outside a raster of {num_pixels} pixels")
    index[flat] = np.repeat(np.arange(len(tags)), lengths)
    return index
