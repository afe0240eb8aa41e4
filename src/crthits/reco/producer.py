from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from crthits.config.schemas import Config, RecoCfg
from crthits.filters.grouping import group_by_tagger
from crthits.geometry.crt import CRTGeometry, GeometryProvider
from crthits.geometry.detector import DetectorProperties
from crthits.physics.hits import CRTHit
from crthits.physics.pulses import RawPulse
from crthits.physics.strips import StripDiagnostics, build_strip_hits
from crthits.reco.matching import MatchDiagnostics, match_strips


@dataclass
class EventDiagnostics:
    strips: StripDiagnostics = field(default_factory=StripDiagnostics)
    matching: MatchDiagnostics = field(default_factory=MatchDiagnostics)
    n_hits: int = 0


class CRTHitProducer:
    """
    Per-event CRT hit reconstruction: SiPM pulses -> strip hits -> CRT hits.

    Geometry and detector properties are injected; nothing is kept between
    calls to produce().
    """

    def __init__(
        self,
        geometry: GeometryProvider,
        reco: Optional[RecoCfg] = None,
        detprop: Optional[DetectorProperties] = None,
        verbose: bool = False,
    ) -> None:
        self.geometry = geometry
        self.reco = reco or RecoCfg()
        self.detprop = detprop
        self.verbose = verbose
        if self.reco.use_readout_window and detprop is None:
            raise ValueError("use_readout_window is set but no DetectorProperties were given")
        if self.verbose:
            print("----------------- CRT Hit Reco Module -------------------")

    @classmethod
    def from_config(cls, cfg: Config) -> "CRTHitProducer":
        detprop = None
        if cfg.reco.use_readout_window:
            detprop = DetectorProperties.from_cfg(cfg.detector)
        return cls(
            geometry=CRTGeometry.from_cfg(cfg.geometry),
            reco=cfg.reco,
            detprop=detprop,
            verbose=cfg.run.verbose,
        )

    def produce_with_diagnostics(
        self,
        pulses: Optional[Sequence[RawPulse]],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[List[CRTHit], EventDiagnostics]:
        # A missing pulse collection is an empty event
        pulses = list(pulses) if pulses is not None else []
        diag = EventDiagnostics()

        if self.verbose:
            m = dict(meta or {})
            print("============================================")
            print(f"Run = {m.get('run', -1)}, SubRun = {m.get('subrun', -1)}, Event = {m.get('event', -1)}")
            print("============================================")
            print(f"Number of SiPM hits = {len(pulses)}")

        strips = build_strip_hits(pulses, self.geometry, self.reco, self.detprop, diag.strips)
        groups = group_by_tagger(strips, diag.strips)
        hits = match_strips(groups, self.geometry, self.reco, diag.matching)
        diag.n_hits = len(hits)

        if self.verbose:
            print(f"Number of CRT hits produced = {len(hits)}")
        return hits, diag

    def produce(
        self,
        pulses: Optional[Sequence[RawPulse]],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> List[CRTHit]:
        hits, _ = self.produce_with_diagnostics(pulses, meta)
        return hits
