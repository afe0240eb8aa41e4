"""
crthits.geometry.crt

Table-driven CRT geometry: taggers -> modules -> strips.

Channel wiring convention (fixed by the readout):

    module = channel >> 5           (AuxDet index)
    strip  = (channel >> 1) & 15    (strip inside the module)
    sipm   = channel & 1            (which of the two SiPMs of the strip)

Each module is placed in its tagger's frame and each tagger in the world.
Strips are laid side by side along the module's local x axis; a strip's local
frame has the same axes as its module, so "width" is local x, "height" local y
and "length" local z.

A module belongs to plane 1 when its centre sits at positive z in the tagger
frame, plane 0 otherwise.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol, Tuple

import numpy as np

from crthits.config.schemas import GeometryCfg, TaggerCfg
from crthits.geometry.boxes import WorldBox, boxes_overlap
from crthits.geometry.frames import Frame

TaggerKey = Tuple[str, int]


def decode_channel(channel: int) -> Tuple[int, int]:
    """Return (module, strip) for a SiPM channel id."""
    channel = int(channel)
    return channel >> 5, (channel >> 1) & 15


def encode_channel(module: int, strip: int, sipm: int = 0) -> int:
    """Inverse of decode_channel for a given SiPM (0 or 1)."""
    return (int(module) << 5) | ((int(strip) & 15) << 1) | (int(sipm) & 1)


@dataclass(frozen=True)
class StripFrame:
    """Half-dimensions [cm] of one strip and its local -> world transform."""
    half_width: float
    half_height: float
    half_length: float
    frame: Frame

    def local_to_world(self, X) -> np.ndarray:
        return self.frame.local_to_world(X)


class GeometryProvider(Protocol):
    """What the hit producer needs to know about the detector."""

    def strip_frame(self, channel: int) -> StripFrame: ...

    def channel_to_tagger(self, channel: int) -> TaggerKey: ...

    def is_module_overlapping(self, channel: int) -> bool: ...


@dataclass
class CRTModule:
    id: int
    name: str
    tagger: str
    plane: int
    half_width: float
    half_height: float
    half_length: float
    n_strips: int
    in_tagger: Frame   # module -> tagger
    in_world: Frame    # module -> world
    overlapping: bool = False

    @property
    def strip_half_width(self) -> float:
        return self.half_width / self.n_strips

    def tagger_limits(self) -> WorldBox:
        """Module box in its tagger's frame (two opposite corners)."""
        corner = np.array([self.half_width, self.half_height, self.half_length])
        return WorldBox.from_corners(
            self.in_tagger.local_to_world(corner),
            self.in_tagger.local_to_world(-corner),
        )

    def strip(self, index: int) -> StripFrame:
        if not 0 <= index < self.n_strips:
            raise KeyError(f"Module {self.name} has {self.n_strips} strips; no strip {index}")
        shw = self.strip_half_width
        centre_x = -self.half_width + shw * (2 * index + 1)
        return StripFrame(
            half_width=shw,
            half_height=self.half_height,
            half_length=self.half_length,
            frame=self.in_world.translated([centre_x, 0.0, 0.0]),
        )


@dataclass
class CRTGeometry:
    """
    GeometryProvider built from the [geometry] config section.

    Module overlap is a static property of the layout, so it is computed once
    here rather than per hit.
    """
    modules: Dict[int, CRTModule]
    taggers: Dict[str, Frame] = field(default_factory=dict)

    @classmethod
    def from_cfg(cls, cfg: GeometryCfg) -> "CRTGeometry":
        return cls.from_taggers(cfg.taggers)

    @classmethod
    def from_taggers(cls, taggers: Iterable[TaggerCfg]) -> "CRTGeometry":
        modules: Dict[int, CRTModule] = {}
        frames: Dict[str, Frame] = {}
        for tcfg in taggers:
            if tcfg.name in frames:
                raise ValueError(f"Duplicate tagger name {tcfg.name!r}")
            t_frame = Frame.from_cfg(tcfg.origin, tcfg.rotation)
            frames[tcfg.name] = t_frame
            for mcfg in tcfg.modules:
                if mcfg.id in modules:
                    raise ValueError(
                        f"Module id {mcfg.id} appears twice "
                        f"({modules[mcfg.id].tagger!r} and {tcfg.name!r})"
                    )
                m_frame = Frame.from_cfg(mcfg.position, mcfg.rotation)
                modules[mcfg.id] = CRTModule(
                    id=mcfg.id,
                    name=mcfg.name or f"module_{mcfg.id}",
                    tagger=tcfg.name,
                    plane=int(m_frame.origin[2] > 0),
                    half_width=float(mcfg.half_width),
                    half_height=float(mcfg.half_height),
                    half_length=float(mcfg.half_length),
                    n_strips=int(mcfg.n_strips),
                    in_tagger=m_frame,
                    in_world=m_frame.then(t_frame),
                )
        geo = cls(modules=modules, taggers=frames)
        geo._flag_overlaps()
        return geo

    def _flag_overlaps(self) -> None:
        # A module overlaps when a sibling on the other plane of the same
        # tagger covers the same region (2-of-3-axis rule, tagger frame).
        # Assumes all modules of a tagger share the same dimensions.
        by_tagger: Dict[str, List[CRTModule]] = {}
        for m in self.modules.values():
            by_tagger.setdefault(m.tagger, []).append(m)
        for siblings in by_tagger.values():
            boxes = {m.id: m.tagger_limits() for m in siblings}
            for m in siblings:
                m.overlapping = any(
                    d.id != m.id and d.plane != m.plane and boxes_overlap(boxes[m.id], boxes[d.id])
                    for d in siblings
                )

    # --- GeometryProvider ---------------------------------------------------

    def module_for(self, channel: int) -> CRTModule:
        module_id, _ = decode_channel(channel)
        try:
            return self.modules[module_id]
        except KeyError:
            raise KeyError(f"No CRT module {module_id} in geometry (channel {channel})") from None

    def strip_frame(self, channel: int) -> StripFrame:
        _, strip = decode_channel(channel)
        return self.module_for(channel).strip(strip)

    def channel_to_tagger(self, channel: int) -> TaggerKey:
        m = self.module_for(channel)
        return m.tagger, m.plane

    def is_module_overlapping(self, channel: int) -> bool:
        return self.module_for(channel).overlapping

    # --- helpers ------------------------------------------------------------

    def check_channels(self, channels: Iterable[int]) -> None:
        """Raise KeyError for the first channel the geometry cannot place."""
        for ch in channels:
            self.strip_frame(ch)
