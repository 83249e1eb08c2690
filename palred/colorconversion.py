"""
Color-space conversions used for clustering.

HSL components are all in [0, 1] (hue as a fraction of a full turn).
LAB is CIE L*a*b* under D65, as computed by scikit-image from sRGB.
Conversions back to RGB always round and clamp into 0-255.
"""
import colorsys
from typing import Sequence, Tuple

import numpy as np
from skimage import color as skcolor

from palred.settings import ClusteringColorSpace

RGBTuple = Tuple[int, int, int]


def _to_u8(values) -> np.ndarray:
    return np.clip(np.rint(np.asarray(values, dtype=np.float64)), 0, 255).astype(np.uint8)


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Convert RGB (0-255) to HSL (0-1, 0-1, 0-1)."""
    h, l, s = colorsys.rgb_to_hls(r / 255.0, g / 255.0, b / 255.0)
    return h, s, l


def hsl_to_rgb(h: float, s: float, l: float) -> RGBTuple:
    """Convert HSL (0-1) to RGB (0-255)."""
    r, g, b = colorsys.hls_to_rgb(h % 1.0, min(max(l, 0.0), 1.0), min(max(s, 0.0), 1.0))
    r8, g8, b8 = _to_u8([r * 255.0, g * 255.0, b * 255.0])
    return int(r8), int(g8), int(b8)


def rgb_to_lab(rgb: Sequence[int]) -> Tuple[float, float, float]:
    lab = rgb_array_to_lab(np.asarray([rgb], dtype=np.uint8))[0]
    return float(lab[0]), float(lab[1]), float(lab[2])


def lab_to_rgb(lab: Sequence[float]) -> RGBTuple:
    r, g, b = lab_array_to_rgb(np.asarray([lab], dtype=np.float64))[0]
    return int(r), int(g), int(b)


def rgb_array_to_lab(rgb: np.ndarray) -> np.ndarray:
    """(N, 3) uint8 RGB -> (N, 3) float64 L*a*b*."""
    rgb01 = np.asarray(rgb, dtype=np.float64).reshape(-1, 1, 3) / 255.0
    return skcolor.rgb2lab(rgb01).reshape(-1, 3)


def lab_array_to_rgb(lab: np.ndarray) -> np.ndarray:
    """(N, 3) L*a*b* -> (N, 3) uint8 RGB, out-of-gamut values clipped."""
    lab = np.asarray(lab, dtype=np.float64).reshape(-1, 1, 3)
    rgb01 = skcolor.lab2rgb(lab).reshape(-1, 3)
    return _to_u8(rgb01 * 255.0)


def rgb_to_space(rgb: np.ndarray, color_space: ClusteringColorSpace) -> np.ndarray:
    """
    Convert an (N, 3) array of RGB colors into feature vectors of the given space.

    Returns:
        np.ndarray: (N, 3) float64 array.
    """
    rgb = np.asarray(rgb).reshape(-1, 3)
    if color_space == ClusteringColorSpace.RGB:
        return rgb.astype(np.float64)
    if color_space == ClusteringColorSpace.HSL:
        return np.array([rgb_to_hsl(int(r), int(g), int(b)) for r, g, b in rgb], dtype=np.float64).reshape(-1, 3)
    if color_space == ClusteringColorSpace.LAB:
        return rgb_array_to_lab(rgb)
    raise ValueError(f"Unsupported color space: {color_space!r}")


def space_to_rgb(values: np.ndarray, color_space: ClusteringColorSpace) -> np.ndarray:
    """Inverse of rgb_to_space. Returns an (N, 3) uint8 array."""
    values = np.asarray(values, dtype=np.float64).reshape(-1, 3)
    if color_space == ClusteringColorSpace.RGB:
        return _to_u8(values)
    if color_space == ClusteringColorSpace.HSL:
        return np.array([hsl_to_rgb(h, s, l) for h, s, l in values], dtype=np.uint8).reshape(-1, 3)
    if color_space == ClusteringColorSpace.LAB:
        return lab_array_to_rgb(values)
    raise ValueError(f"Unsupported color space: {color_space!r}")
