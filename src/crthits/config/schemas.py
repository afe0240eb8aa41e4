from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, Dict, List, Any

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Per-event SiPM/hit counts (the producer's own verbose switch)
    verbose: bool = False

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    # Limits
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    I/O paths and the raw-pulse source description.

    TOML:

    [io]
    input_path   = "..."
    input_format = "hdf5_crt"      # "hdf5_crt" | "table"
    output_path  = "..."
    source_channel_label = "crt"   # HDF5 group holding the raw SiPM pulses
    """

    input_path: str
    input_format: Literal["hdf5_crt", "table"] = "hdf5_crt"
    output_path: str
    source_channel_label: str = "crt"

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=dict)


class ErrorModelCfg(BaseModel):
    """
    Empirical quadratic position-error model (calibration constants).

        normx = x + norm_slope*x + norm_offset
        ex    = p0 + p1*normx + p2*normx**2
    """
    norm_slope: float = 0.344677
    norm_offset: float = -1.92045
    p0: float = 1.92380e+00
    p1: float = 1.47186e-02
    p2: float = -5.29446e-03


class TimeScaleCfg(BaseModel):
    """Tick -> timestamp conversion factors written into each CRT hit."""
    ns_per_tick: float = 0.5 * 10e3
    s_per_tick: float = 0.5 * 10e-6


class RecoCfg(BaseModel):
    """
    Hit reconstruction parameters.

    TOML:

    [reco]
    time_coincidence_limit = 0.1   # [ticks]
    qped  = 63.6                   # SiPM pedestal offset [ADC]
    qslope = 131.9                 # SiPM pedestal slope [ADC/photon]
    use_readout_window = true
    """
    time_coincidence_limit: float = 0.1
    qped: float = 63.6
    qslope: float = 131.9
    use_readout_window: bool = True

    # One strip hit may pair with several partners on the other plane
    allow_multi_match: bool = True
    # Unmatched strips in overlapping modules become single-plane hits
    emit_unmatched: bool = False

    error_model: ErrorModelCfg = Field(default_factory=ErrorModelCfg)
    time_scale: TimeScaleCfg = Field(default_factory=TimeScaleCfg)

    @field_validator("qslope")
    def _nonzero_slope(cls, v: float) -> float:
        if v == 0:
            raise ValueError("qslope must be non-zero")
        return v

    @field_validator("time_coincidence_limit")
    def _positive_limit(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("time_coincidence_limit must be > 0")
        return v


class DetectorCfg(BaseModel):
    """
    Readout timing used by the readout-window gate.

    Either give drift_time_ticks directly, or det_half_width_cm and
    drift_velocity so it can be derived. Only required (and checked) when
    reco.use_readout_window is set.
    """
    readout_window_ticks: float = 3000.0
    drift_time_ticks: Optional[float] = None
    det_half_width_cm: Optional[float] = None
    drift_velocity: Optional[float] = None  # [cm/tick]

    def has_drift_source(self) -> bool:
        return self.drift_time_ticks is not None or (
            self.det_half_width_cm is not None and bool(self.drift_velocity)
        )


class ModuleCfg(BaseModel):
    """
    One CRT module (an AuxDet), placed in its tagger's frame.

    id is the AuxDet index, i.e. channel >> 5.
    """
    id: int
    name: Optional[str] = None
    position: List[float]
    rotation: Optional[List[List[float]]] = None
    half_width: float
    half_height: float
    half_length: float
    n_strips: int = 16

    @field_validator("n_strips")
    def _strip_range(cls, v: int) -> int:
        # strip index is packed into 4 bits of the channel id
        if not 1 <= v <= 16:
            raise ValueError("n_strips must be in [1, 16]")
        return v


class TaggerCfg(BaseModel):
    name: str
    origin: List[float] = [0.0, 0.0, 0.0]
    rotation: Optional[List[List[float]]] = None
    modules: List[ModuleCfg] = []


class GeometryCfg(BaseModel):
    """
    TOML:

    [[geometry.taggers]]
    name = "volTaggerTopHigh_0"
    origin = [0.0, 600.0, 0.0]

    [[geometry.taggers.modules]]
    id = 0
    position = [0.0, 0.0, -1.0]
    half_width = 90.0
    half_height = 0.5
    half_length = 90.0
    """
    taggers: List[TaggerCfg] = []


class VisCfg(BaseModel):
    export_png_on_write: bool = False


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    reco: RecoCfg = Field(default_factory=RecoCfg)
    detector: Optional[DetectorCfg] = None
    geometry: GeometryCfg
    vis: VisCfg = Field(default_factory=VisCfg)

    @model_validator(mode="after")
    def _gate_needs_drift(self) -> "Config":
        if not self.reco.use_readout_window:
            return self
        if self.detector is None or not self.detector.has_drift_source():
            raise ValueError(
                "reco.use_readout_window needs [detector] with drift_time_ticks, "
                "or det_half_width_cm and a non-zero drift_velocity"
            )
        return self
