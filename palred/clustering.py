"""
Weighted k-means over deduplicated colors.

Each input point is one distinct color: its feature values in the clustering
color space, its weight (population fraction) and a tag identifying the
original color. KMeans only advances when step() is called so that callers
can interleave other work between iterations.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from sklearn.cluster import kmeans_plusplus


@dataclass
class Vector:
    values: np.ndarray
    weight: float = 1.0
    tag: Optional[int] = None

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=np.float64)


class KMeans:
    """
    Lloyd-style weighted k-means that is stepped explicitly.

    Attributes after each step():
        centroids: (k, d) array of centroid values.
        labels: category index of every input point.
        points_per_category: one list of input Vectors per centroid.
        current_delta_distance_difference: total distance the centroids moved.
        inertia: weighted sum of squared distances of every point to the
            centroid it was assigned to at the start of the step.
        current_iteration: number of completed steps.
    """

    def __init__(
        self,
        points: Sequence[Vector],
        k: int,
        seed: Optional[int] = None,
        centroids: Optional[np.ndarray] = None,
        init: str = "random",
    ):
        if len(points) == 0:
            raise ValueError("KMeans needs at least one point")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.points = list(points)
        self.k = k
        self._data = np.stack([p.values for p in self.points])
        self._weights = np.array([p.weight for p in self.points], dtype=np.float64)
        self.current_iteration = 0
        self.current_delta_distance_difference = 0.0
        self.inertia = float("inf")
        self.labels: Optional[np.ndarray] = None  # category of every point, set by step()
        self._points_per_category: Optional[List[List[Vector]]] = None

        if centroids is not None:
            centroids = np.asarray(centroids, dtype=np.float64)
            if centroids.shape != (k, self._data.shape[1]):
                raise ValueError(f"Expected initial centroids of shape {(k, self._data.shape[1])}, got {centroids.shape}")
            self._centroids = centroids.copy()
        elif init == "kmeans++" and len(self.points) >= k:
            self._centroids, _ = kmeans_plusplus(
                self._data, n_clusters=k, sample_weight=self._weights, random_state=seed
            )
        elif init in ("random", "kmeans++"):
            self._centroids = self._random_centroids(np.random.default_rng(seed))
        else:
            raise ValueError(f"Unknown init method: {init!r}")

    def _random_centroids(self, rng: np.random.Generator) -> np.ndarray:
        n = len(self.points)
        if n >= self.k:
            chosen = rng.choice(n, size=self.k, replace=False)
        else:
            # every point seeds a centroid; the surplus centroids repeat points and stay empty
            chosen = np.concatenate([rng.permutation(n), rng.integers(0, n, size=self.k - n)])
        return self._data[chosen].astype(np.float64)

    @property
    def centroids(self) -> np.ndarray:
        view = self._centroids.view()
        view.flags.writeable = False
        return view

    def _squared_distances(self) -> np.ndarray:
        data_sq = np.einsum("ij,ij->i", self._data, self._data)[:, None]
        cent_sq = np.einsum("ij,ij->i", self._centroids, self._centroids)[None, :]
        d2 = data_sq - 2.0 * self._data @ self._centroids.T + cent_sq
        return np.maximum(d2, 0.0)

    def step(self) -> None:
        d2 = self._squared_distances()
        labels = np.argmin(d2, axis=1)
        self.inertia = float(np.sum(self._weights * d2[np.arange(len(labels)), labels]))

        counts = np.bincount(labels, minlength=self.k)
        weight_totals = np.bincount(labels, weights=self._weights, minlength=self.k)
        weighted_data = self._data * self._weights[:, None]
        sums = np.stack(
            [np.bincount(labels, weights=weighted_data[:, dim], minlength=self.k) for dim in range(self._data.shape[1])],
            axis=1,
        )

        new_centroids = self._centroids.copy()
        filled = counts > 0
        weighted = filled & (weight_totals > 0)
        new_centroids[weighted] = sums[weighted] / weight_totals[weighted][:, None]

        moved = np.linalg.norm(new_centroids[filled] - self._centroids[filled], axis=1)
        self.current_delta_distance_difference = float(moved.sum())
        self._centroids = new_centroids

        self.labels = labels
        self._points_per_category = None
        self.current_iteration += 1

    @property
    def points_per_category(self) -> List[List[Vector]]:
        """Input points grouped by the centroid they were assigned to, built on first access."""
        if self.labels is None:
            return [[] for _ in range(self.k)]
        if self._points_per_category is None:
            order = np.argsort(self.labels, kind="stable")
            bounds = np.cumsum(np.bincount(self.labels, minlength=self.k))[:-1]
            self._points_per_category = [
                [self.points[i] for i in members] for members in np.split(order, bounds)
            ]
        return self._points_per_category
