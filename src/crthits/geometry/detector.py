from __future__ import annotations
from dataclasses import dataclass

from crthits.config.schemas import DetectorCfg

# Extra drift distance [cm] added on top of the full TPC width
_DRIFT_MARGIN_CM = 3.0

@dataclass(frozen=True)
class DetectorProperties:
    """Readout timing used to gate candidate strip times [ticks]."""
    readout_window_ticks: float
    drift_time_ticks: float

    @classmethod
    def from_cfg(cls, cfg: DetectorCfg) -> "DetectorProperties":
        if not cfg.has_drift_source():
            raise ValueError("DetectorCfg has neither drift_time_ticks nor det_half_width_cm + drift_velocity")
        if cfg.drift_time_ticks is not None:
            drift = float(cfg.drift_time_ticks)
        else:
            drift = drift_time_ticks(cfg.det_half_width_cm, cfg.drift_velocity)
        return cls(readout_window_ticks=float(cfg.readout_window_ticks), drift_time_ticks=drift)

    def in_readout_window(self, t_ticks: float) -> bool:
        return -self.drift_time_ticks <= t_ticks <= self.readout_window_ticks


def drift_time_ticks(det_half_width_cm: float, drift_velocity: float) -> float:
    """Two full drifts across the TPC (plus margin) at the given velocity [cm/tick]."""
    if not drift_velocity:
        raise ValueError("drift_velocity must be non-zero")
    return 2.0 * (2.0 * det_half_width_cm + _DRIFT_MARGIN_CM) / drift_velocity
