import asyncio

import numpy as np
import pytest

from palred import reduction
from palred.errors import (
    ClusteringCancelled,
    ClusteringTimeout,
    DimensionMismatchError,
    InvalidSettingsError,
)
from palred.reduction import (
    CancellationToken,
    apply_kmeans_clustering,
    reduce_colors,
    run_kmeans_clustering,
)
from palred.colorconversion import rgb_to_space, space_to_rgb
from palred.settings import ClusteringColorSpace, Settings
from helpers import make_raster


def _noisy_raster(seed=0, shape=(24, 32)):
    rng = np.random.default_rng(seed)
    raster = rng.integers(0, 256, size=shape + (4,), dtype=np.uint8)
    raster[..., 3] = 255
    return raster


class RecordingObserver:
    def __init__(self):
        self.iterations = []

    def on_update(self, kmeans):
        self.iterations.append(kmeans.current_iteration)


def test_two_colors_two_clusters_is_identity():
    raster = make_raster([(255, 0, 0, 255), (0, 255, 0, 255)], width=2, height=1)
    output = np.zeros_like(raster)

    kmeans = run_kmeans_clustering(raster, output, Settings(kmeans_nr_of_clusters=2))

    assert sorted(len(cat) for cat in kmeans.points_per_category) == [1, 1]
    assert np.array_equal(output[..., :3], raster[..., :3])


@pytest.mark.parametrize("space", list(ClusteringColorSpace))
def test_single_cluster_is_weighted_average(space):
    raster = make_raster(
        [(10, 10, 10, 255), (10, 10, 10, 200), (10, 10, 10, 100), (250, 250, 250, 0)],
        width=4, height=1,
    )
    output = raster.copy()
    settings = Settings(kmeans_nr_of_clusters=1, kmeans_clustering_color_space=space,
                        kmeans_min_delta_difference=0.0)

    run_kmeans_clustering(raster, output, settings)

    colors = {tuple(px) for px in output[0, :, :3].tolist()}
    assert len(colors) == 1
    assert output[0, :, 3].tolist() == [255, 200, 100, 0]
    features = rgb_to_space(np.array([[10, 10, 10], [250, 250, 250]], dtype=np.uint8), space)
    expected = space_to_rgb(0.75 * features[0] + 0.25 * features[1], space)[0]
    assert colors == {tuple(int(c) for c in expected)}
    if space is ClusteringColorSpace.RGB:
        assert colors == {(70, 70, 70)}


def test_result_does_not_depend_on_color_enumeration_order(monkeypatch):
    raster = _noisy_raster(1)
    raster[..., :3] //= 40
    settings = Settings(kmeans_nr_of_clusters=4, random_seed=123)

    expected_output, expected = reduce_colors(raster, settings)

    original_group = reduction.group_by_color

    def reversed_groups(r):
        groups = original_group(r)
        return dict(reversed(list(groups.items())))

    monkeypatch.setattr(reduction, "group_by_color", reversed_groups)
    output, kmeans = reduce_colors(raster, settings)

    assert np.array_equal(output, expected_output)
    assert np.array_equal(kmeans.centroids, expected.centroids)


def test_observer_is_notified_at_every_second_step_and_at_the_end():
    raster = _noisy_raster(2)
    observer = RecordingObserver()
    yields = []

    async def counting_yielder():
        yields.append(1)

    settings = Settings(kmeans_nr_of_clusters=8, kmeans_min_delta_difference=0.0, random_seed=4)
    kmeans = asyncio.run(apply_kmeans_clustering(
        raster, raster.copy(), settings, observer, yielder=counting_yielder
    ))

    loop_steps = kmeans.current_iteration - 1
    assert len(yields) == (loop_steps + 1) // 2
    assert observer.iterations[-1] == kmeans.current_iteration
    assert len(observer.iterations) == len(yields) + 1
    assert observer.iterations[:-1] == [2 + 2 * i for i in range(len(yields))]


def test_observer_does_not_change_the_result():
    raster = _noisy_raster(3)
    settings = Settings(kmeans_nr_of_clusters=5, random_seed=8)
    plain = raster.copy()
    observed = raster.copy()
    calls = []

    run_kmeans_clustering(raster, plain, settings)
    run_kmeans_clustering(raster, observed, settings, observer=calls.append)

    assert np.array_equal(plain, observed)
    assert len(calls) >= 1


def test_yield_interval_is_configurable():
    raster = _noisy_raster(5)
    yields = []

    async def counting_yielder():
        yields.append(1)

    settings = Settings(kmeans_nr_of_clusters=8, kmeans_min_delta_difference=0.0, random_seed=4, yield_every=1)
    kmeans = asyncio.run(apply_kmeans_clustering(raster, raster.copy(), settings, yielder=counting_yielder))

    assert len(yields) == kmeans.current_iteration - 1


def test_cancellation_token_stops_at_yield_point():
    raster = _noisy_raster(6)
    output = raster.copy()
    token = CancellationToken()
    token.cancel()
    settings = Settings(kmeans_nr_of_clusters=8, kmeans_min_delta_difference=0.0)

    with pytest.raises(ClusteringCancelled) as excinfo:
        run_kmeans_clustering(raster, output, settings, cancel_token=token)

    assert excinfo.value.iteration == 2
    # nothing was repainted before the cancellation
    assert np.array_equal(output, raster)


def test_task_cancellation_propagates():
    raster = _noisy_raster(7, shape=(64, 64))
    settings = Settings(kmeans_nr_of_clusters=16, kmeans_min_delta_difference=0.0)

    async def main():
        suspended = asyncio.Event()

        async def slow_yielder():
            suspended.set()
            await asyncio.sleep(0.5)

        task = asyncio.create_task(
            apply_kmeans_clustering(raster, raster.copy(), settings, yielder=slow_yielder)
        )
        await suspended.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())


def test_iteration_bound_raises_timeout():
    raster = _noisy_raster(8)
    settings = Settings(kmeans_nr_of_clusters=8, kmeans_min_delta_difference=0.0, max_iterations=1)

    with pytest.raises(ClusteringTimeout) as excinfo:
        run_kmeans_clustering(raster, raster.copy(), settings)
    assert excinfo.value.iteration == 1


def test_dimension_mismatch_is_reported_before_writing():
    raster = _noisy_raster(9, shape=(4, 4))
    output = np.zeros((4, 5, 4), dtype=np.uint8)

    with pytest.raises(DimensionMismatchError):
        run_kmeans_clustering(raster, output, Settings(kmeans_nr_of_clusters=2))
    assert not output.any()


def test_invalid_settings_are_reported_before_writing():
    raster = _noisy_raster(10, shape=(4, 4))
    output = np.zeros_like(raster)

    with pytest.raises(InvalidSettingsError):
        run_kmeans_clustering(raster, output, Settings(kmeans_nr_of_clusters=0))
    with pytest.raises(InvalidSettingsError):
        run_kmeans_clustering(raster, output, Settings(kmeans_clustering_color_space="cmyk"))
    assert not output.any()


def test_more_clusters_than_colors_degrades_gracefully():
    raster = make_raster([(1, 2, 3, 255)] * 4, width=2, height=2)

    output, kmeans = reduce_colors(raster, Settings(kmeans_nr_of_clusters=6))

    assert np.array_equal(output, raster)
    assert sum(len(cat) for cat in kmeans.points_per_category) == 1


def test_restricted_palette_is_used():
    raster = _noisy_raster(11)
    restrictions = [(0, 0, 0), (255, 255, 255), (255, 0, 0), (0, 0, 255)]
    settings = Settings(kmeans_nr_of_clusters=6, kmeans_color_restrictions=restrictions)

    output, _ = reduce_colors(raster, settings)

    used = {tuple(px) for px in output[..., :3].reshape(-1, 3).tolist()}
    assert used <= set(restrictions)


def test_nan_threshold_is_rejected_before_clustering():
    raster = _noisy_raster(12, shape=(4, 4))
    output = np.zeros_like(raster)

    with pytest.raises(InvalidSettingsError):
        run_kmeans_clustering(raster, output, Settings(kmeans_min_delta_difference=float("nan")))
    assert not output.any()


def test_caller_settings_are_not_modified():
    raster = _noisy_raster(13, shape=(4, 4))
    settings = Settings(kmeans_nr_of_clusters=2, kmeans_clustering_color_space="hsl")

    run_kmeans_clustering(raster, raster.copy(), settings)

    assert settings.kmeans_clustering_color_space == "hsl"
