"""
crthits.reco.matching

Turn per-tagger strip hits into CRT hits.

For each tagger the first plane seen (in sorted key order) drives the search:

  - a strip in a module that overlaps a module on the other plane is paired
    with every time-coincident strip of the other plane whose world box
    intersects its own; each pair gives one hit at the centre of the
    intersection box;
  - a strip in a non-overlapping module becomes a single-plane hit;
  - finally every other-plane strip in a non-overlapping module becomes a
    single-plane hit too.

Strips in overlapping modules that find no partner are dropped, unless
reco.emit_unmatched asks for them as single-plane hits.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

from crthits.config.schemas import RecoCfg
from crthits.filters.grouping import TaggerGroups
from crthits.geometry.boxes import WorldBox, box_overlap
from crthits.geometry.crt import GeometryProvider
from crthits.physics.hits import CRTHit, fill_crt_hit
from crthits.physics.strips import StripHit


@dataclass
class MatchDiagnostics:
    taggers: int = 0
    matched: int = 0
    single: int = 0
    unmatched_overlapping: int = 0


def strip_limits(strip: StripHit, geometry: GeometryProvider) -> WorldBox:
    """
    World box of a strip hit: x +/- ex across the width, full height and length.

    Built from two opposite local corners, so it is exact only for strips
    whose axes are aligned with the world axes.
    """
    sf = geometry.strip_frame(strip.channel)
    lo_corner = [-sf.half_width + strip.x + strip.ex, sf.half_height, sf.half_length]
    hi_corner = [-sf.half_width + strip.x - strip.ex, -sf.half_height, -sf.half_length]
    return WorldBox.from_corners(sf.local_to_world(lo_corner), sf.local_to_world(hi_corner))


def is_time_coincident(t1: float, t2: float, limit: float) -> bool:
    return abs(t1 - t2) < limit


def _other_plane(plane: int) -> int:
    return 1 if plane == 0 else 0


def _single_hit(strip: StripHit, box: WorldBox, tagger: str, reco: RecoCfg) -> CRTHit:
    return fill_crt_hit(box.center, box.half_size, strip.time, tagger, reco.time_scale)


def match_tagger(
    tagger: str,
    strips: Sequence[StripHit],
    other_strips: Sequence[StripHit],
    geometry: GeometryProvider,
    reco: RecoCfg,
    diag: Optional[MatchDiagnostics] = None,
) -> List[CRTHit]:
    """Build the CRT hits of one tagger from its two plane partitions."""
    if diag is None:
        diag = MatchDiagnostics()
    diag.taggers += 1

    other_boxes = [strip_limits(s, geometry) for s in other_strips]
    paired_other: Set[int] = set()
    hits: List[CRTHit] = []

    for s1 in strips:
        box1 = strip_limits(s1, geometry)
        if not geometry.is_module_overlapping(s1.channel):
            hits.append(_single_hit(s1, box1, tagger, reco))
            diag.single += 1
            continue

        n_pairs = 0
        for j, (s2, box2) in enumerate(zip(other_strips, other_boxes)):
            overlap = box_overlap(box1, box2)
            if overlap is None:
                continue
            if not is_time_coincident(s1.time, s2.time, reco.time_coincidence_limit):
                continue
            time = (s1.time + s2.time) / 2.0
            hits.append(fill_crt_hit(overlap.center, overlap.half_size, time, tagger, reco.time_scale))
            diag.matched += 1
            n_pairs += 1
            paired_other.add(j)
            if not reco.allow_multi_match:
                break

        if n_pairs == 0:
            diag.unmatched_overlapping += 1
            if reco.emit_unmatched:
                hits.append(_single_hit(s1, box1, tagger, reco))
                diag.single += 1

    for j, (s2, box2) in enumerate(zip(other_strips, other_boxes)):
        if not geometry.is_module_overlapping(s2.channel):
            hits.append(_single_hit(s2, box2, tagger, reco))
            diag.single += 1
        elif j not in paired_other:
            diag.unmatched_overlapping += 1
            if reco.emit_unmatched:
                hits.append(_single_hit(s2, box2, tagger, reco))
                diag.single += 1

    return hits


def match_strips(
    groups: TaggerGroups,
    geometry: GeometryProvider,
    reco: RecoCfg,
    diag: Optional[MatchDiagnostics] = None,
) -> List[CRTHit]:
    """Run match_tagger once per tagger over grouped, deduplicated strips."""
    if diag is None:
        diag = MatchDiagnostics()
    used: Set[str] = set()
    hits: List[CRTHit] = []
    for name, plane in sorted(groups):
        if name in used:
            continue
        used.add(name)
        other = groups.get((name, _other_plane(plane)), [])
        hits.extend(match_tagger(name, groups[(name, plane)], other, geometry, reco, diag))
    return hits
