class ColorReductionError(Exception):
    """Base class for every error raised by the palred package."""


class InvalidSettingsError(ColorReductionError, ValueError):
    """Raised before clustering starts when the settings cannot be used."""


class InvalidRasterError(ColorReductionError, ValueError):
    """Raised when an array is not an (H, W, 4) uint8 RGBA raster."""


class DimensionMismatchError(ColorReductionError, ValueError):
    """Raised when the output raster does not match the input raster's size."""


class IndexOverflowError(ColorReductionError, OverflowError):
    """Raised when a palette has more colors than the index grid dtype can hold."""

    def __init__(self, num_colors: int, dtype):
        self.num_colors = num_colors
        self.dtype = dtype
        super().__init__(
            f"{num_colors} distinct colors do not fit in an index grid of dtype {dtype}"
        )


class ClusteringStopped(ColorReductionError):
    """A clustering run was stopped before it converged.

    The output raster keeps whatever the last repaint wrote into it.
    """

    def __init__(self, message: str, iteration: int):
        self.iteration = iteration
        super().__init__(message)


class ClusteringCancelled(ClusteringStopped):
    pass


class ClusteringTimeout(ClusteringStopped):
    pass
