import numpy as np
import pytest

from palred.clustering import KMeans, Vector


def _points(values, weights=None):
    weights = weights or [1.0 / len(values)] * len(values)
    return [Vector(v, w, tag=i) for i, (v, w) in enumerate(zip(values, weights))]


def test_two_separated_groups_converge():
    points = _points([[0, 0, 0], [2, 0, 0], [0, 2, 0], [200, 200, 200], [202, 200, 200]])
    kmeans = KMeans(points, 2, seed=1)

    kmeans.step()
    while kmeans.current_delta_distance_difference > 0:
        kmeans.step()

    groups = sorted(sorted(p.tag for p in cat) for cat in kmeans.points_per_category)
    assert groups == [[0, 1, 2], [3, 4]]
    assert kmeans.current_iteration >= 1


def test_inertia_never_increases():
    rng = np.random.default_rng(11)
    values = rng.uniform(0, 255, size=(200, 3))
    weights = rng.uniform(0.1, 1.0, size=200)
    weights = (weights / weights.sum()).tolist()
    kmeans = KMeans(_points(values.tolist(), weights), 6, seed=5)

    history = []
    for _ in range(15):
        kmeans.step()
        history.append(kmeans.inertia)

    for before, after in zip(history, history[1:]):
        assert after <= before + 1e-9


def test_more_clusters_than_points_leaves_empty_categories():
    points = _points([[1, 1, 1], [9, 9, 9]])
    kmeans = KMeans(points, 5, seed=0)

    kmeans.step()

    sizes = sorted(len(cat) for cat in kmeans.points_per_category)
    assert sizes == [0, 0, 0, 1, 1]
    assert kmeans.current_delta_distance_difference == 0.0
    assert kmeans.centroids.shape == (5, 3)


def test_random_init_picks_distinct_points():
    points = _points([[float(i), 0, 0] for i in range(10)])
    kmeans = KMeans(points, 10, seed=3)

    assert len({tuple(c) for c in kmeans.centroids.tolist()}) == 10


def test_kmeanspp_init_is_seeded():
    rng = np.random.default_rng(2)
    points = _points(rng.uniform(0, 255, size=(50, 3)).tolist())

    first = KMeans(points, 4, seed=9, init="kmeans++").centroids.copy()
    second = KMeans(points, 4, seed=9, init="kmeans++").centroids.copy()

    assert np.array_equal(first, second)


def test_explicit_centroids_are_used():
    points = _points([[0, 0, 0], [10, 10, 10]])
    kmeans = KMeans(points, 2, centroids=np.array([[10.0, 10.0, 10.0], [0.0, 0.0, 0.0]]))

    kmeans.step()

    assert [p.tag for p in kmeans.points_per_category[0]] == [1]
    assert [p.tag for p in kmeans.points_per_category[1]] == [0]


def test_centroids_are_read_only():
    kmeans = KMeans(_points([[0, 0, 0]]), 1)
    with pytest.raises(ValueError):
        kmeans.centroids[0, 0] = 5.0


def test_invalid_arguments():
    with pytest.raises(ValueError):
        KMeans([], 2)
    with pytest.raises(ValueError):
        KMeans(_points([[0, 0, 0]]), 0)
    with pytest.raises(ValueError):
        KMeans(_points([[0, 0, 0]]), 1, init="farthest")


def test_categories_follow_labels():
    points = _points([[0, 0, 0], [1, 0, 0], [250, 250, 250], [249, 250, 250]])
    kmeans = KMeans(points, 2, centroids=np.array([[0.0, 0.0, 0.0], [255.0, 255.0, 255.0]]))

    assert kmeans.labels is None
    assert kmeans.points_per_category == [[], []]

    kmeans.step()

    assert kmeans.labels.tolist() == [0, 0, 1, 1]
    assert [[p.tag for p in cat] for cat in kmeans.points_per_category] == [[0, 1], [2, 3]]
    assert kmeans.centroids.tolist() == [[0.5, 0.0, 0.0], [249.5, 250.0, 250.0]]
