import pytest

from crthits.config.schemas import DetectorCfg, ModuleCfg, RecoCfg, TaggerCfg
from crthits.geometry.crt import CRTGeometry
from crthits.geometry.detector import DetectorProperties

# Module measuring world x (strips run along y), and one measuring world y.
ROT_MEASURE_X = [[1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [0.0, 1.0, 0.0]]
ROT_MEASURE_Y = [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]

HALF_WIDTH = 89.6   # 16 strips of 11.2 cm
STRIP_WIDTH = 11.2


def _module(mid, position, rotation, name=None):
    return ModuleCfg(
        id=mid,
        name=name,
        position=position,
        rotation=rotation,
        half_width=HALF_WIDTH,
        half_height=0.5,
        half_length=HALF_WIDTH,
        n_strips=16,
    )


def stacked_tagger(name="T", mod_ids=(0, 1)):
    """Plane 0 measures x at z=-1, plane 1 measures y at z=+1: overlapping."""
    return TaggerCfg(
        name=name,
        modules=[
            _module(mod_ids[0], [0.0, 0.0, -1.0], ROT_MEASURE_X),
            _module(mod_ids[1], [0.0, 0.0, 1.0], ROT_MEASURE_Y),
        ],
    )


def split_tagger(name="T", mod_ids=(0, 1)):
    """Same module ids and orientations, but plane 1 shifted far along x: no overlap."""
    return TaggerCfg(
        name=name,
        modules=[
            _module(mod_ids[0], [0.0, 0.0, -1.0], ROT_MEASURE_X),
            _module(mod_ids[1], [400.0, 0.0, 1.0], ROT_MEASURE_Y),
        ],
    )


@pytest.fixture
def stacked_geometry():
    return CRTGeometry.from_taggers([stacked_tagger()])


@pytest.fixture
def split_geometry():
    return CRTGeometry.from_taggers([split_tagger()])


@pytest.fixture
def reco():
    return RecoCfg(use_readout_window=False)


@pytest.fixture
def detprop():
    return DetectorProperties.from_cfg(DetectorCfg(readout_window_ticks=3000.0, drift_time_ticks=100.0))
