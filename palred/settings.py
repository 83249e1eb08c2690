import math
import numbers
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from palred.errors import InvalidSettingsError

SEED_ENV_VAR = "PALREDUCE_SEED"

KMEANS_INIT_METHODS = ("random", "kmeans++")


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_finite_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def default_random_seed() -> int:
    """Seed from $PALREDUCE_SEED, 0 when unset."""
    raw = os.environ.get(SEED_ENV_VAR, "").strip()
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        raise InvalidSettingsError(f"{SEED_ENV_VAR} must be an integer, got {raw!r}") from None


class ClusteringColorSpace(Enum):
    RGB = "rgb"
    HSL = "hsl"
    LAB = "lab"

    @classmethod
    def parse(cls, value: Union[str, "ClusteringColorSpace"]) -> "ClusteringColorSpace":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        valid = ", ".join(member.value for member in cls)
        raise InvalidSettingsError(f"Unknown color space {value!r}. Expected one of: {valid}.")


@dataclass
class Settings:
    """
    Options for one k-means color reduction run.

    kmeans_min_delta_difference is compared against the total distance the
    centroids moved during a step, in the units of the chosen color space
    (0-255 for RGB, 0-1 for HSL, L*a*b* units for LAB).
    """

    kmeans_nr_of_clusters: int = 16
    kmeans_min_delta_difference: float = 1.0
    kmeans_clustering_color_space: ClusteringColorSpace = ClusteringColorSpace.RGB
    random_seed: Optional[int] = field(default_factory=default_random_seed)
    kmeans_init: str = "random"
    yield_every: int = 2
    max_iterations: Optional[int] = None
    max_seconds: Optional[float] = None
    kmeans_color_restrictions: List[Tuple[int, int, int]] = field(default_factory=list)

    def validate(self) -> "Settings":
        """
        Check every option. Returns a validated copy with the color space
        normalised to a ClusteringColorSpace; self is left untouched.
        """
        k = self.kmeans_nr_of_clusters
        if not _is_integer(k) or k < 1:
            raise InvalidSettingsError(f"kmeans_nr_of_clusters must be a positive integer, got {k!r}")
        color_space = ClusteringColorSpace.parse(self.kmeans_clustering_color_space)
        delta = self.kmeans_min_delta_difference
        if not _is_finite_real(delta) or delta < 0:
            raise InvalidSettingsError(f"kmeans_min_delta_difference must be a finite number >= 0, got {delta!r}")
        if self.random_seed is not None and not _is_integer(self.random_seed):
            raise InvalidSettingsError(f"random_seed must be an integer or None, got {self.random_seed!r}")
        if self.kmeans_init not in KMEANS_INIT_METHODS:
            raise InvalidSettingsError(
                f"kmeans_init must be one of {', '.join(KMEANS_INIT_METHODS)}, got {self.kmeans_init!r}"
            )
        if not _is_integer(self.yield_every) or self.yield_every < 1:
            raise InvalidSettingsError(f"yield_every must be an integer >= 1, got {self.yield_every!r}")
        if self.max_iterations is not None and (not _is_integer(self.max_iterations) or self.max_iterations < 1):
            raise InvalidSettingsError(f"max_iterations must be an integer >= 1, got {self.max_iterations!r}")
        if self.max_seconds is not None and (not _is_finite_real(self.max_seconds) or self.max_seconds <= 0):
            raise InvalidSettingsError(f"max_seconds must be a finite number > 0, got {self.max_seconds!r}")
        for color in self.kmeans_color_restrictions:
            if len(color) != 3 or any(not _is_integer(c) or not 0 <= c <= 255 for c in color):
                raise InvalidSettingsError(f"Color restriction {color!r} is not an RGB triple in 0-255")
        return replace(self, kmeans_clustering_color_space=color_space)


PRESETS: Dict[str, Dict[str, object]] = {
    "beginner": {"kmeans_nr_of_clusters": 6, "kmeans_min_delta_difference": 2.0},
    "intermediate": {"kmeans_nr_of_clusters": 12, "kmeans_min_delta_difference": 1.0},
    "master": {"kmeans_nr_of_clusters": 24, "kmeans_min_delta_difference": 0.5},
}


def resolve_settings(preset: Optional[str] = None, **overrides) -> Settings:
    """
    Build Settings from an optional preset and explicit options.

    Explicit (non-None) options win over the preset, the preset wins over
    the dataclass defaults.
    """
    values: Dict[str, object] = {}
    if preset is not None:
        if preset not in PRESETS:
            raise InvalidSettingsError(f"Unknown preset {preset!r}. Expected one of: {', '.join(PRESETS)}.")
        values.update(PRESETS[preset])
    for name, value in overrides.items():
        if value is not None:
            values[name] = value
    return Settings(**values).validate()
