from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

@dataclass(frozen=True, slots=True)
class RawPulse:
    """
    One SiPM pulse as delivered by the CRT front-end simulation.

    channel: SiPM channel id (module << 5 | strip << 1 | sipm)
    t0: time of arrival [front-end ticks, 8 per TPC tick]
    adc: integrated charge [ADC]
    track_id: upstream truth-particle id (diagnostic only)
    """
    channel: int
    t0: int
    adc: float
    track_id: int = -1


@dataclass(slots=True)
class PulseEvent:
    """The raw pulses of one event plus run bookkeeping."""
    pulses: List[RawPulse] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.pulses)
