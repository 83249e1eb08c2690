import numpy as np
from typing import Tuple

from palred.errors import InvalidRasterError, DimensionMismatchError


def as_raster(data) -> np.ndarray:
    """
    Validate and return an RGBA raster.

    Args:
        data: array-like of shape (H, W, 4) with uint8 channels R, G, B, A.

    Returns:
        np.ndarray: the same data as a C-contiguous uint8 array.

    Raises:
        InvalidRasterError: if the shape or dtype is wrong or W/H is zero.
    """
    raster = np.asarray(data)
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise InvalidRasterError(f"expected an (H, W, 4) RGBA raster, got shape {raster.shape}")
    if raster.dtype != np.uint8:
        raise InvalidRasterError(f"expected uint8 channels, got {raster.dtype}")
    if raster.shape[0] < 1 or raster.shape[1] < 1:
        raise InvalidRasterError(f"raster must be at least 1x1, got {raster.shape[1]}x{raster.shape[0]}")
    return np.ascontiguousarray(raster)


def raster_size(raster: np.ndarray) -> Tuple[int, int]:
    """(width, height) of a raster."""
    return raster.shape[1], raster.shape[0]


def new_output_raster(raster: np.ndarray) -> np.ndarray:
    # a copy, so untouched alpha (and RGB before the first repaint) mirrors the input
    return as_raster(raster).copy()


def ensure_same_dimensions(raster: np.ndarray, output: np.ndarray) -> None:
    if raster.shape[:2] != output.shape[:2]:
        in_w, in_h = raster_size(raster)
        out_w, out_h = raster_size(output)
        raise DimensionMismatchError(
            f"output raster is {out_w}x{out_h} but the input raster is {in_w}x{in_h}"
        )


def color_key(r: int, g: int, b: int) -> int:
    """Pack an exact RGB triple into one integer; alpha is not part of a color's identity."""
    return (int(r) << 16) | (int(g) << 8) | int(b)


def color_keys(raster: np.ndarray) -> np.ndarray:
    """Flat (H*W,) array of color keys in row-major scan order."""
    rgb = raster[..., :3].reshape(-1, 3).astype(np.int64)
    return (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]


def key_to_rgb(key: int) -> Tuple[int, int, int]:
    key = int(key)
    return (key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF
