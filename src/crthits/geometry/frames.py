from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence
import numpy as np

def _rotation(rows: Optional[Sequence[Sequence[float]]]) -> np.ndarray:
    if rows is None:
        return np.eye(3)
    R = np.asarray(rows, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError(f"Rotation must be 3x3, got shape {R.shape}")
    if not np.allclose(R @ R.T, np.eye(3), atol=1e-6):
        raise ValueError(f"Rotation is not orthonormal:\n{R}")
    return R

@dataclass(frozen=True)
class Frame:
    """
    Rigid local -> parent transform: X_parent = origin + R @ X_local.

    Columns of R are the local x/y/z axes expressed in the parent frame.
    """
    origin: np.ndarray  # (3,)
    R: np.ndarray       # (3,3), orthonormal

    @classmethod
    def from_cfg(cls, origin, rotation=None) -> "Frame":
        o = np.asarray(origin, dtype=np.float64)
        if o.shape != (3,):
            raise ValueError(f"Frame origin must have 3 components, got {list(origin)}")
        return cls(o, _rotation(rotation))

    def local_to_world(self, X: Sequence[float]) -> np.ndarray:
        return self.origin + self.R @ np.asarray(X, dtype=np.float64)

    def world_to_local(self, X: Sequence[float]) -> np.ndarray:
        return self.R.T @ (np.asarray(X, dtype=np.float64) - self.origin)

    def then(self, parent: "Frame") -> "Frame":
        """Compose: local -> self's parent -> parent's parent."""
        return Frame(parent.origin + parent.R @ self.origin, parent.R @ self.R)

    def translated(self, offset_local: Sequence[float]) -> "Frame":
        """Same axes, origin moved by an offset given in local coordinates."""
        return Frame(self.local_to_world(offset_local), self.R)
