from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from palred.errors import IndexOverflowError
from palred.raster import as_raster, color_keys, key_to_rgb

RGBTuple = Tuple[int, int, int]


@dataclass
class ColorMapResult:
    img_color_indices: np.ndarray  # (H, W) palette index per pixel
    colors_by_index: List[RGBTuple]

    @property
    def width(self) -> int:
        return self.img_color_indices.shape[1]

    @property
    def height(self) -> int:
        return self.img_color_indices.shape[0]

    def color_at(self, x: int, y: int) -> RGBTuple:
        return self.colors_by_index[int(self.img_color_indices[y, x])]


def index_dtype_for(num_colors: int) -> np.dtype:
    """Smallest unsigned integer dtype that can hold indices 0..num_colors-1."""
    return np.min_scalar_type(max(num_colors - 1, 0))


def create_color_map(raster: np.ndarray, dtype=None) -> ColorMapResult:
    """
    Creates a map of the colors used in a raster.

    Every distinct RGB triple (alpha ignored) gets an index in the order it is
    first met scanning rows top to bottom, left to right.

    Args:
        raster (np.ndarray): (H, W, 4) uint8 RGBA raster.
        dtype: Optional integer dtype for the index grid. When omitted the
               smallest unsigned dtype that fits the palette is used.

    Returns:
        ColorMapResult: (H, W) index grid and the palette.

    Raises:
        IndexOverflowError: if the palette does not fit the requested dtype.
    """
    raster = as_raster(raster)
    height, width = raster.shape[:2]
    keys = color_keys(raster)

    unique_keys, first_seen, inverse = np.unique(keys, return_index=True, return_inverse=True)
    encounter_order = np.argsort(first_seen, kind="stable")
    rank = np.empty_like(encounter_order)
    rank[encounter_order] = np.arange(len(encounter_order))

    num_colors = len(unique_keys)
    if dtype is None:
        index_dtype = index_dtype_for(num_colors)
    else:
        index_dtype = np.dtype(dtype)
        if index_dtype.kind not in "ui":
            raise TypeError(f"Index grid dtype must be an integer type, got {index_dtype}")
        if num_colors - 1 > np.iinfo(index_dtype).max:
            raise IndexOverflowError(num_colors, index_dtype)

    indices = rank[inverse.reshape(-1)].reshape(height, width).astype(index_dtype)
    palette = [key_to_rgb(k) for k in unique_keys[encounter_order]]
    return ColorMapResult(img_color_indices=indices, colors_by_index=palette)
