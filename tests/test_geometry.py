from pathlib import Path

import numpy as np
import pytest

from crthits.config.load import load_config
from crthits.config.schemas import DetectorCfg, ModuleCfg, TaggerCfg
from crthits.geometry.crt import CRTGeometry, encode_channel
from crthits.geometry.detector import DetectorProperties, drift_time_ticks
from crthits.geometry.frames import Frame
from conftest import stacked_tagger

EXAMPLE = Path(__file__).resolve().parents[1] / "examples" / "two_taggers.toml"


def test_frame_roundtrip_and_composition():
    R = [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
    inner = Frame.from_cfg([1.0, 2.0, 3.0], R)
    outer = Frame.from_cfg([10.0, 0.0, 0.0])
    X = np.array([0.5, -0.25, 2.0])
    np.testing.assert_allclose(inner.world_to_local(inner.local_to_world(X)), X)
    both = inner.then(outer)
    np.testing.assert_allclose(both.local_to_world(X), outer.local_to_world(inner.local_to_world(X)))


def test_frame_rejects_non_rotation():
    with pytest.raises(ValueError):
        Frame.from_cfg([0, 0, 0], [[2.0, 0, 0], [0, 1.0, 0], [0, 0, 1.0]])
    with pytest.raises(ValueError):
        Frame.from_cfg([0, 0], None)


def test_plane_from_module_z_in_tagger(stacked_geometry):
    assert stacked_geometry.channel_to_tagger(encode_channel(0, 3)) == ("T", 0)
    assert stacked_geometry.channel_to_tagger(encode_channel(1, 3, 1)) == ("T", 1)


def test_stacked_modules_overlap(stacked_geometry):
    assert stacked_geometry.is_module_overlapping(encode_channel(0, 0))
    assert stacked_geometry.is_module_overlapping(encode_channel(1, 15))


def test_split_modules_do_not_overlap(split_geometry):
    assert not split_geometry.is_module_overlapping(encode_channel(0, 0))
    assert not split_geometry.is_module_overlapping(encode_channel(1, 0))


def test_same_plane_neighbours_are_not_overlapping():
    t = TaggerCfg(name="T", modules=[
        ModuleCfg(id=0, position=[0.0, 0.0, -1.0], half_width=10, half_height=0.5, half_length=10),
        ModuleCfg(id=1, position=[5.0, 0.0, -1.0], half_width=10, half_height=0.5, half_length=10),
    ])
    geo = CRTGeometry.from_taggers([t])
    assert not any(m.overlapping for m in geo.modules.values())


def test_strip_frames(stacked_geometry):
    sf = stacked_geometry.strip_frame(encode_channel(0, 0))
    assert sf.half_width == pytest.approx(5.6)
    assert sf.half_height == 0.5 and sf.half_length == pytest.approx(89.6)
    np.testing.assert_allclose(sf.local_to_world([0, 0, 0]), [-84.0, 0.0, -1.0])
    # both SiPMs of a strip resolve to the same strip
    sf1 = stacked_geometry.strip_frame(encode_channel(1, 15, 1))
    np.testing.assert_allclose(sf1.local_to_world([0, 0, 0]), [0.0, 84.0, 1.0])


def test_unknown_module_is_a_key_error(stacked_geometry):
    with pytest.raises(KeyError):
        stacked_geometry.strip_frame(encode_channel(9, 0))
    with pytest.raises(KeyError):
        stacked_geometry.check_channels([encode_channel(0, 1), encode_channel(9, 0)])


def test_strip_beyond_module_is_a_key_error():
    t = TaggerCfg(name="T", modules=[
        ModuleCfg(id=0, position=[0, 0, 0], half_width=4, half_height=0.5, half_length=10, n_strips=4),
    ])
    geo = CRTGeometry.from_taggers([t])
    with pytest.raises(KeyError):
        geo.strip_frame(encode_channel(0, 4))


def test_duplicate_module_ids_rejected():
    with pytest.raises(ValueError):
        CRTGeometry.from_taggers([stacked_tagger("A", (0, 1)), stacked_tagger("B", (1, 2))])


def test_example_config_geometry():
    cfg = load_config(EXAMPLE)
    geo = CRTGeometry.from_cfg(cfg.geometry)
    assert sorted(geo.taggers) == ["volTaggerSide_0", "volTaggerTop_0"]
    flags = {m.name: m.overlapping for m in geo.modules.values()}
    assert flags == {
        "volAuxDetTopX": True,
        "volAuxDetTopY": True,
        "volAuxDetSideA": False,
        "volAuxDetSideB": False,
    }
    # tagger rotation puts the plane-0 top module below plane 1 in world y
    top_x = geo.modules[0].in_world.origin
    top_y = geo.modules[1].in_world.origin
    assert top_x[1] < top_y[1]


def test_detector_properties():
    dp = DetectorProperties.from_cfg(DetectorCfg(readout_window_ticks=3000, drift_time_ticks=50))
    assert dp.in_readout_window(-50) and dp.in_readout_window(3000)
    assert not dp.in_readout_window(-50.125)

    derived = DetectorProperties.from_cfg(DetectorCfg(det_half_width_cm=200.0, drift_velocity=0.08))
    assert derived.drift_time_ticks == pytest.approx(2.0 * (400.0 + 3.0) / 0.08)
    assert drift_time_ticks(200.0, 0.08) == derived.drift_time_ticks
