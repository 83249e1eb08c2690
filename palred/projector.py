from typing import Optional, Sequence, Tuple

import numpy as np

from palred.aggregate import PointsByColor, pixel_point_index
from palred.clustering import KMeans
from palred.colorconversion import space_to_rgb
from palred.palette_tools import snap_to_palette
from palred.settings import ClusteringColorSpace


def centroid_colors(
    kmeans: KMeans,
    color_space: ClusteringColorSpace,
    restrictions: Optional[Sequence[Tuple[int, int, int]]] = None,
) -> np.ndarray:
    """
    RGB color of every centroid as a (k, 3) uint8 array.

    When restrictions are given each centroid is replaced by the nearest
    restricted color, measured in color_space.
    """
    if restrictions:
        return snap_to_palette(kmeans.centroids, restrictions, color_space)
    return space_to_rgb(kmeans.centroids, color_space)


def update_kmeans_output_image_data(
    kmeans: KMeans,
    color_space: ClusteringColorSpace,
    points_by_color: PointsByColor,
    output: np.ndarray,
    restrictions: Optional[Sequence[Tuple[int, int, int]]] = None,
    pixel_points: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Repaint the output raster from the current centroids.

    Every pixel whose original color sits in a centroid's category gets that
    centroid's RGB value. The alpha channel is never written. Writes happen
    in place; the output array is returned for convenience.

    pixel_points is the pixel_point_index of points_by_color against the
    kmeans points. Callers repainting repeatedly should build it once and
    pass it in; otherwise it is rebuilt on every call.
    """
    height, width = output.shape[:2]
    if pixel_points is None:
        pixel_points = pixel_point_index(points_by_color, [p.tag for p in kmeans.points], height * width)
    if kmeans.labels is None:
        return output

    rgb = centroid_colors(kmeans, ClusteringColorSpace.parse(color_space), restrictions)
    painted = np.flatnonzero(pixel_points >= 0)
    ys, xs = np.divmod(painted, width)
    output[ys, xs, :3] = rgb[kmeans.labels[pixel_points[painted]]]
    return output
