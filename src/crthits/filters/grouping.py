# src/crthits/filters/grouping.py
from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from crthits.geometry.crt import TaggerKey
from crthits.physics.strips import StripDiagnostics, StripHit

TaggerGroups = Dict[TaggerKey, List[StripHit]]


def _time_channel_key(s: StripHit):
    return (s.time, s.channel)


def dedup_sorted(strips: List[StripHit]) -> List[StripHit]:
    """
    Drop consecutive strips sharing both time and channel.

    Expects input already sorted by (time, channel); keeps the first of each
    run. Near-miss times are left alone.
    """
    out: List[StripHit] = []
    for s in strips:
        if out and out[-1].time == s.time and out[-1].channel == s.channel:
            continue
        out.append(s)
    return out


def group_by_tagger(
    strips: Iterable[StripHit],
    diag: Optional[StripDiagnostics] = None,
) -> TaggerGroups:
    """
    Partition strip hits by (tagger, plane), each partition sorted by
    (time, channel) with exact duplicates removed.

    Returned keys are in sorted (tagger, plane) order.
    """
    groups: TaggerGroups = {}
    for s in strips:
        groups.setdefault(s.tagger, []).append(s)

    out: TaggerGroups = {}
    for key in sorted(groups):
        ordered = sorted(groups[key], key=_time_channel_key)
        unique = dedup_sorted(ordered)
        if diag is not None:
            diag.duplicates_removed += len(ordered) - len(unique)
        out[key] = unique
    return out
