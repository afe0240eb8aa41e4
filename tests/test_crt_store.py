import h5py
import numpy as np
import pandas as pd
import pytest

from crthits.geometry.crt import encode_channel
from crthits.io.adapters import HDF5PulseAdapter, TablePulseAdapter, make_adapter
from crthits.io.crt_store import read_crt_hits, read_hit_positions, write_crt_hits, write_event_meta, write_pulse_events
from crthits.physics.hits import fill_crt_hit
from crthits.physics.pulses import PulseEvent, RawPulse


def _events():
    return [
        PulseEvent(
            pulses=[RawPulse(encode_channel(0, 3, 0), 800, 2000.0, 4), RawPulse(encode_channel(0, 3, 1), 808, 2100.0, 4)],
            meta={"run": 1, "subrun": 0, "event": 10},
        ),
        PulseEvent(pulses=[], meta={"run": 1, "subrun": 0, "event": 11}),
        PulseEvent(pulses=[RawPulse(encode_channel(1, 2, 0), 16, 500.0)], meta={"run": 1, "subrun": 0, "event": 12}),
    ]


def test_pulse_events_read_back_in_order(tmp_path):
    path = tmp_path / "pulses.h5"
    with h5py.File(path, "w") as f:
        write_pulse_events(f, _events(), label="crt")

    got = list(HDF5PulseAdapter("crt").iter_events(str(path)))
    assert [len(ev.pulses) for ev in got] == [2, 0, 1]
    assert [ev.meta["event"] for ev in got] == [10, 11, 12]
    assert got[0].meta["source"] == "HDF5"
    assert got[0].pulses[1] == RawPulse(encode_channel(0, 3, 1), 808, 2100.0, 4)
    assert got[2].pulses[0].track_id == -1


def test_ticks_are_scaled_to_front_end_ticks(tmp_path):
    path = tmp_path / "pulses.h5"
    with h5py.File(path, "w") as f:
        write_pulse_events(f, _events())
    got = list(HDF5PulseAdapter(time_units="ticks").iter_events(str(path)))
    assert got[0].pulses[0].t0 == 6400


def test_missing_label_gives_empty_events(tmp_path):
    path = tmp_path / "pulses.h5"
    with h5py.File(path, "w") as f:
        write_pulse_events(f, _events(), label="crt")
    got = list(HDF5PulseAdapter("crtsim").iter_events(str(path)))
    assert len(got) == 3
    assert all(ev.pulses == [] for ev in got)


def test_event_count_mismatch_is_an_error(tmp_path):
    path = tmp_path / "pulses.h5"
    with h5py.File(path, "w") as f:
        write_pulse_events(f, _events())
        write_event_meta(f, [{"event": 0}])
    with pytest.raises(ValueError):
        list(HDF5PulseAdapter().iter_events(str(path)))


def test_table_adapter_groups_rows_by_event(tmp_path):
    path = tmp_path / "pulses.csv"
    pd.DataFrame({
        "event": [7, 7, 3, 3],
        "run": [2, 2, 2, 2],
        "channel": [encode_channel(0, 1, 0), encode_channel(0, 1, 1), encode_channel(1, 5, 0), encode_channel(1, 5, 1)],
        "t0": [80, 88, 160, 160],
        "adc": [900.0, 950.0, 1000.0, 1000.0],
    }).to_csv(path, index=False)

    got = list(make_adapter("table").iter_events(str(path)))
    assert [ev.meta["event"] for ev in got] == [7, 3]
    assert got[0].meta["run"] == 2
    assert [p.t0 for p in got[0].pulses] == [80, 88]
    assert all(p.track_id == -1 for ev in got for p in ev.pulses)


def test_table_adapter_requires_pulse_columns(tmp_path):
    path = tmp_path / "pulses.csv"
    pd.DataFrame({"event": [0], "channel": [0]}).to_csv(path, index=False)
    with pytest.raises(KeyError):
        list(TablePulseAdapter().iter_events(str(path)))


def test_unknown_format_and_units():
    with pytest.raises(ValueError):
        make_adapter("root")
    with pytest.raises(ValueError):
        make_adapter("hdf5_crt", {"time_units": "ms"})


def test_crt_hits_roundtrip(tmp_path):
    path = tmp_path / "hits.h5"
    per_event = [
        [fill_crt_hit([1.0, 2.0, 3.0], [0.5, 0.5, 0.5], 100.0, "volTaggerTop_0"),
         fill_crt_hit([-4.0, 0.0, 9.0], [1.0, 89.6, 0.5], 120.0, "volTaggerSide_0")],
        [],
        [fill_crt_hit([7.0, 8.0, 9.0], [1.0, 1.0, 0.5], 300.5, "volTaggerTop_0")],
    ]
    with h5py.File(path, "w") as f:
        write_crt_hits(f, per_event)

    back = read_crt_hits(str(path))
    assert [len(h) for h in back] == [2, 0, 1]
    assert back[0][1].tagger == "volTaggerSide_0"
    assert back[0][1].y_err == pytest.approx(89.6)
    assert back[2][0].ts0_ns == pytest.approx(300.5 * 0.5 * 10e3)
    assert back[2][0].feb_id == (0,)

    pos = read_hit_positions(str(path))
    np.testing.assert_allclose(pos, [[1, 2, 3], [-4, 0, 9], [7, 8, 9]])


def test_missing_hit_group_is_a_key_error(tmp_path):
    path = tmp_path / "empty.h5"
    with h5py.File(path, "w"):
        pass
    with pytest.raises(KeyError):
        read_crt_hits(str(path))
