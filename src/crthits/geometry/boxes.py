from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
import numpy as np

@dataclass(frozen=True, slots=True)
class WorldBox:
    """
    Axis-aligned box in world coordinates [cm].

    Stored as per-axis (min, max) pairs, in x, y, z order.
    """
    xmin: float; xmax: float
    ymin: float; ymax: float
    zmin: float; zmax: float

    @classmethod
    def from_corners(cls, p1: Iterable[float], p2: Iterable[float]) -> "WorldBox":
        a = np.asarray(list(p1), dtype=np.float64)
        b = np.asarray(list(p2), dtype=np.float64)
        lo = np.minimum(a, b)
        hi = np.maximum(a, b)
        return cls(float(lo[0]), float(hi[0]), float(lo[1]), float(hi[1]), float(lo[2]), float(hi[2]))

    @property
    def limits(self) -> Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float]]:
        return (self.xmin, self.xmax), (self.ymin, self.ymax), (self.zmin, self.zmax)

    @property
    def center(self) -> np.ndarray:
        return np.array([
            (self.xmin + self.xmax) / 2.0,
            (self.ymin + self.ymax) / 2.0,
            (self.zmin + self.zmax) / 2.0,
        ])

    @property
    def half_size(self) -> np.ndarray:
        return np.array([
            abs((self.xmax - self.xmin) / 2.0),
            abs((self.ymax - self.ymin) / 2.0),
            abs((self.zmax - self.zmin) / 2.0),
        ])


def _intersect_limits(a: WorldBox, b: WorldBox) -> WorldBox:
    return WorldBox(
        max(a.xmin, b.xmin), min(a.xmax, b.xmax),
        max(a.ymin, b.ymin), min(a.ymax, b.ymax),
        max(a.zmin, b.zmin), min(a.zmax, b.zmax),
    )


def boxes_overlap(a: WorldBox, b: WorldBox) -> bool:
    """
    Two-of-three-axis overlap rule.

    The boxes count as overlapping when the intersected range is non-empty
    (strictly lo < hi) on at least two of the three axes. Strips are thin
    along one axis, so a full 3-D containment test would reject real
    crossings of two stacked planes.
    """
    ov = _intersect_limits(a, b)
    n_axes = sum(lo < hi for lo, hi in ov.limits)
    return n_axes >= 2


def box_overlap(a: WorldBox, b: WorldBox) -> Optional[WorldBox]:
    """Intersection box of a and b, or None when boxes_overlap() is False."""
    if not boxes_overlap(a, b):
        return None
    return _intersect_limits(a, b)
