"""
K-means color reduction of an RGBA raster.

The clustering loop runs as a coroutine that hands control back to the event
loop every `Settings.yield_every` steps. At those points a cancellation token
is honoured and, when an observer is attached, the output raster is repainted
from the intermediate clusters before the observer is notified.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol, Tuple, Union

import numpy as np

from palred.aggregate import group_by_color, pixel_point_index, to_weighted_vectors
from palred.clustering import KMeans
from palred.errors import ClusteringCancelled, ClusteringTimeout, InvalidRasterError
from palred.projector import update_kmeans_output_image_data
from palred.raster import as_raster, ensure_same_dimensions, new_output_raster
from palred.settings import Settings


class ClusteringObserver(Protocol):
    def on_update(self, kmeans: KMeans) -> None:
        ...


class CallbackObserver:
    """Adapts a plain callable to the observer interface."""

    def __init__(self, callback: Callable[[KMeans], object]):
        self.callback = callback

    def on_update(self, kmeans: KMeans) -> None:
        self.callback(kmeans)


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


ObserverLike = Union[ClusteringObserver, Callable[[KMeans], object]]
Yielder = Callable[[], Awaitable[object]]


def _default_yielder() -> Awaitable[None]:
    return asyncio.sleep(0)


def _as_observer(observer: Optional[ObserverLike]) -> Optional[ClusteringObserver]:
    if observer is None or hasattr(observer, "on_update"):
        return observer  # type: ignore[return-value]
    if callable(observer):
        return CallbackObserver(observer)
    raise TypeError(f"observer must have an on_update method or be callable, got {type(observer).__name__}")


def _check_output(output) -> np.ndarray:
    if not isinstance(output, np.ndarray):
        raise InvalidRasterError(f"output raster must be a numpy array, got {type(output).__name__}")
    as_raster(output)
    if not output.flags.writeable:
        raise InvalidRasterError("output raster is read-only")
    return output


def _enforce_bounds(kmeans: KMeans, settings: Settings, started: float) -> None:
    if settings.max_iterations is not None and kmeans.current_iteration >= settings.max_iterations:
        raise ClusteringTimeout(
            f"k-means did not converge within {settings.max_iterations} iterations "
            f"(delta {kmeans.current_delta_distance_difference:.4f})",
            kmeans.current_iteration,
        )
    if settings.max_seconds is not None and time.monotonic() - started > settings.max_seconds:
        raise ClusteringTimeout(
            f"k-means did not converge within {settings.max_seconds}s "
            f"({kmeans.current_iteration} iterations)",
            kmeans.current_iteration,
        )


async def apply_kmeans_clustering(
    raster: np.ndarray,
    output: np.ndarray,
    settings: Settings,
    observer: Optional[ObserverLike] = None,
    *,
    cancel_token: Optional[CancellationToken] = None,
    yielder: Optional[Yielder] = None,
) -> KMeans:
    """
    Applies k-means clustering on the raster to reduce its colors to
    settings.kmeans_nr_of_clusters clusters and writes the result into output.

    Args:
        raster (np.ndarray): (H, W, 4) uint8 input, never modified.
        output (np.ndarray): (H, W, 4) uint8 array repainted in place (alpha untouched).
        settings (Settings): cluster count, color space and convergence threshold.
        observer: object with on_update(kmeans), or a plain callable. Notified
                  at every yield point and once more after convergence.
        cancel_token (CancellationToken, optional): checked at every yield point.
        yielder: coroutine factory awaited at every yield point. Defaults to asyncio.sleep(0).

    Returns:
        KMeans: the converged clustering state.

    Raises:
        InvalidSettingsError, InvalidRasterError, DimensionMismatchError: before any pixel is written.
        ClusteringCancelled: the token was cancelled.
        ClusteringTimeout: settings.max_iterations or settings.max_seconds was exceeded.
    """
    settings = settings.validate()
    raster = as_raster(raster)
    output = _check_output(output)
    ensure_same_dimensions(raster, output)
    observer = _as_observer(observer)
    yielder = yielder or _default_yielder

    color_space = settings.kmeans_clustering_color_space
    restrictions = settings.kmeans_color_restrictions or None
    height, width = raster.shape[:2]

    # group by color, positions are stored as 1D indices
    points_by_color = group_by_color(raster)
    vectors = to_weighted_vectors(points_by_color, width * height, color_space)
    # a canonical order keeps seeded initialisation independent of dict ordering
    vectors.sort(key=lambda v: v.tag)

    kmeans = KMeans(
        vectors,
        settings.kmeans_nr_of_clusters,
        seed=settings.random_seed,
        init=settings.kmeans_init,
    )

    pixel_points = pixel_point_index(points_by_color, [v.tag for v in vectors], width * height)

    def repaint() -> None:
        update_kmeans_output_image_data(
            kmeans, color_space, points_by_color, output, restrictions, pixel_points=pixel_points
        )

    started = time.monotonic()
    count = 0
    kmeans.step()
    while kmeans.current_delta_distance_difference > settings.kmeans_min_delta_difference:
        _enforce_bounds(kmeans, settings, started)
        kmeans.step()

        if count % settings.yield_every == 0:
            await yielder()
            if cancel_token is not None and cancel_token.cancelled:
                raise ClusteringCancelled(
                    f"k-means cancelled after {kmeans.current_iteration} iterations",
                    kmeans.current_iteration,
                )
            if observer is not None:
                repaint()
                observer.on_update(kmeans)
        count += 1

    # the output is always brought up to date with the converged clusters
    repaint()
    if observer is not None:
        observer.on_update(kmeans)
    return kmeans


def run_kmeans_clustering(
    raster: np.ndarray,
    output: np.ndarray,
    settings: Settings,
    observer: Optional[ObserverLike] = None,
    *,
    cancel_token: Optional[CancellationToken] = None,
) -> KMeans:
    """Blocking wrapper around apply_kmeans_clustering for callers without an event loop."""
    return asyncio.run(
        apply_kmeans_clustering(raster, output, settings, observer, cancel_token=cancel_token)
    )


def reduce_colors(
    raster: np.ndarray,
    settings: Settings,
    observer: Optional[ObserverLike] = None,
) -> Tuple[np.ndarray, KMeans]:
    """Cluster a raster into a fresh output raster. Returns (output, kmeans)."""
    output = new_output_raster(raster)
    kmeans = run_kmeans_clustering(raster, output, settings, observer)
    return output, kmeans
