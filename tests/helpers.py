import numpy as np


def make_raster(pixels, width, height):
    """Build an (H, W, 4) uint8 raster from a row-major list of RGBA tuples."""
    return np.array(pixels, dtype=np.uint8).reshape(height, width, 4)
