from typing import Sequence, Tuple

import numpy as np
from PIL import Image
from sklearn.cluster import KMeans

from palred.colorconversion import rgb_to_space
from palred.settings import ClusteringColorSpace


def extract_palette_from_image(path, max_colors=24, seed=42):
    """
    Extract a fixed palette from an image (e.g. a photo of a paint tray).

    Args:
        path (str): Path to the palette image.
        max_colors (int): Maximum number of colors to extract.
        seed (int): Random state for KMeans.

    Returns:
        np.ndarray: Array of RGB colors (uint8) with shape (N, 3), N <= max_colors.
    """
    image = Image.open(path).convert("RGB")
    image = image.resize((100, 100))  # downsample for speed and uniformity
    pixels = np.array(image).reshape(-1, 3)

    distinct = np.unique(pixels, axis=0)
    n_clusters = max(1, min(max_colors, len(distinct)))

    kmeans = KMeans(n_clusters=n_clusters, random_state=seed, n_init="auto")
    kmeans.fit(pixels)
    centers = np.clip(np.rint(kmeans.cluster_centers_), 0, 255).astype(np.uint8)
    return np.unique(centers, axis=0)


def snap_to_palette(
    values: np.ndarray,
    palette: Sequence[Tuple[int, int, int]],
    color_space: ClusteringColorSpace = ClusteringColorSpace.RGB,
) -> np.ndarray:
    """
    Replace each feature vector by the nearest palette color.

    Args:
        values (np.ndarray): (N, 3) vectors in color_space.
        palette: RGB colors to choose from.
        color_space: space that values live in and distances are measured in.

    Returns:
        np.ndarray: (N, 3) uint8 RGB colors taken from the palette.
    """
    palette_rgb = np.asarray(palette, dtype=np.uint8).reshape(-1, 3)
    if len(palette_rgb) == 0:
        raise ValueError("Cannot snap to an empty palette")
    palette_values = rgb_to_space(palette_rgb, color_space)
    values = np.asarray(values, dtype=np.float64).reshape(-1, 3)

    dists = np.linalg.norm(values[:, None, :] - palette_values[None, :, :], axis=2)
    nearest = np.argmin(dists, axis=1)
    return palette_rgb[nearest]
