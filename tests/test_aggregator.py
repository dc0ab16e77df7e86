import logging

import numpy as np
import pytest

from photonlib.errors import DoubleFinalizeError, IndexOutOfRangeError, UnknownAnodeError
from photonlib.geometry.channels import Region, sensor_index, tile_index
from photonlib.physics.accumulator import PointAccumulator
from photonlib.physics.aggregator import PointAggregator, aggregate_events
from photonlib.physics.events import PointEvent
from photonlib.physics.hits import ProcessClass, SensorHit


def _hit(anode=11, mt=0, t=0, s=0, n=1, direct=0, wls=0):
    return SensorHit.from_counter(anode, mt, t, s, n, {ProcessClass.DIRECT: direct, ProcessClass.WLS: wls})


def _ev(coords, *hits):
    return PointEvent(coords=coords, hits=list(hits))


def test_contiguous_runs_define_points():
    coords = [(0.0, 0.0, 0.0)] * 3 + [(1.0, 1.0, 1.0)] * 2 + [(0.0, 0.0, 0.0)]
    events = [_ev(c, _hit(n=1)) for c in coords]

    recs = aggregate_events(events, photons_per_event=1.0)

    assert [r.coords for r in recs] == [(0.0, 0.0, 0.0), (1.0, 1.0, 1.0), (0.0, 0.0, 0.0)]
    assert [r.n_events for r in recs] == [3, 2, 1]
    # each point saw one hit per event, so visibility is 1 everywhere
    for r in recs:
        assert r.vis_tot == pytest.approx(1.0)


def test_normalization_two_event_point():
    photons = 100.0
    main_sipm = sensor_index(Region.MAIN, 1, 2, 3)
    main_tile = tile_index(Region.MAIN, 1, 2)
    events = [
        _ev((5.0, 5.0, 5.0), _hit(11, 1, 2, 3, n=10, direct=4, wls=5)),
        _ev((5.0, 5.0, 5.0), _hit(11, 1, 2, 3, n=6, direct=2, wls=3), _hit(13, 0, 9, 59, n=4, direct=1)),
    ]

    (rec,) = aggregate_events(events, photons_per_event=photons)
    scaling = 2 * photons

    assert rec.n_events == 2
    assert rec.vis_tot == pytest.approx(20 / scaling)
    assert rec.vis_dir == pytest.approx(7 / scaling)
    assert rec.vis_wls == pytest.approx(8 / scaling)

    main = rec.regions[Region.MAIN]
    assert main.sipm[main_sipm] == pytest.approx(16 / scaling)
    assert main.tile_tot[main_tile] == pytest.approx(16 / scaling)
    assert main.tile_dir[main_tile] == pytest.approx(6 / scaling)
    assert main.tile_wls[main_tile] == pytest.approx(8 / scaling)
    assert main.sipm.sum() == pytest.approx(16 / scaling)

    edge1 = rec.regions[Region.EDGE1]
    assert edge1.sipm[599] == pytest.approx(4 / scaling)
    assert edge1.tile_tot[9] == pytest.approx(4 / scaling)
    assert edge1.tile_dir[9] == pytest.approx(1 / scaling)

    assert not rec.regions[Region.EDGE0].sipm.any()


def test_total_comes_from_hit_records_not_process_counter():
    # process 0 in the counter is ignored; total is the raw hit count
    hit = SensorHit.from_counter(11, 0, 0, 0, n_hits=3, counter={0: 100, 4: 1})
    (rec,) = aggregate_events([_ev((0.0, 0.0, 0.0), hit)], photons_per_event=1.0)
    assert rec.vis_tot == pytest.approx(3.0)
    assert rec.vis_dir == pytest.approx(1.0)


def test_observe_returns_closed_point_only_on_boundary():
    agg = PointAggregator(photons_per_event=1.0)
    assert agg.state == "init"
    assert agg.mode == "incremental"

    assert agg.observe((0, 0, 0), [_hit()]) is None
    assert agg.state == "accumulating"
    assert agg.observe((0, 0, 0), [_hit()]) is None

    rec = agg.observe((0, 0, 1), [_hit(n=5)])
    assert rec is not None and rec.coords == (0.0, 0.0, 0.0) and rec.n_events == 2
    assert agg.current_coords == (0.0, 0.0, 1.0)

    last = agg.finalize_current()
    assert last.coords == (0.0, 0.0, 1.0)
    assert last.vis_tot == pytest.approx(5.0)
    assert agg.stats.points == 2 and agg.stats.events == 3


def test_double_finalize_raises():
    agg = PointAggregator()
    agg.observe((1, 2, 3), [_hit()])
    agg.finalize_current()
    with pytest.raises(DoubleFinalizeError):
        agg.finalize_current()


def test_empty_stream_emits_nothing():
    agg = PointAggregator()
    assert list(agg.aggregate([])) == []
    assert agg.finalize_current() is None


def test_batch_mode_replaces_sipm_values():
    photons = 10.0
    events = [
        _ev((0.0, 0.0, 0.0), _hit(s=7, n=10)),
        _ev((0.0, 0.0, 0.0), _hit(s=7, n=4)),
    ]
    agg = PointAggregator(photons_per_event=photons, mode="batch")
    assert agg.mode == "batch"
    (rec,) = list(agg.aggregate(events))
    main = rec.regions[Region.MAIN]
    # sipm keeps the latest event only; tiles and scalars still sum
    assert main.sipm[7] == pytest.approx(4 / (2 * photons))
    assert main.tile_tot[0] == pytest.approx(14 / (2 * photons))
    assert rec.vis_tot == pytest.approx(14 / (2 * photons))


def test_batch_single_event_per_point():
    events = [_ev((float(i), 0.0, 0.0), _hit(s=1, n=i + 1)) for i in range(3)]
    recs = aggregate_events(events, photons_per_event=1e7, mode="batch")
    assert len(recs) == 3
    for i, r in enumerate(recs):
        assert r.regions[Region.MAIN].sipm[1] == pytest.approx((i + 1) / 1e7)


def test_top_anode_hits_are_skipped():
    agg = PointAggregator(photons_per_event=1.0)
    (rec,) = list(agg.aggregate([_ev((0, 0, 0), _hit(anode=10, n=50), _hit(anode=12, n=2))]))
    assert rec.vis_tot == pytest.approx(2.0)
    assert rec.regions[Region.EDGE0].sipm[0] == pytest.approx(2.0)
    assert agg.stats.hits_skipped == 1 and agg.stats.hits_used == 1


def test_mapping_errors_propagate():
    with pytest.raises(UnknownAnodeError):
        aggregate_events([_ev((0, 0, 0), _hit(anode=42))])
    with pytest.raises(IndexOutOfRangeError):
        aggregate_events([_ev((0, 0, 0), _hit(anode=11, s=200))])


def test_emitted_records_are_independent_of_next_point():
    events = [_ev((0, 0, 0), _hit(s=3, n=2)), _ev((1, 0, 0), _hit(s=3, n=8))]
    first, second = aggregate_events(events, photons_per_event=1.0)
    assert first.regions[Region.MAIN].sipm[3] == pytest.approx(2.0)
    assert second.regions[Region.MAIN].sipm[3] == pytest.approx(8.0)


def test_accumulator_reset_and_finalize_once():
    acc = PointAccumulator()
    acc.reset((0.0, 0.0, 0.0))
    acc.begin_event()
    acc.add(Region.MAIN, _hit(n=3))
    rec = acc.finalize(1.0)
    assert rec.vis_tot == pytest.approx(3.0)
    with pytest.raises(DoubleFinalizeError):
        acc.finalize(1.0)

    acc.reset((1.0, 0.0, 0.0))
    assert acc.n_events == 0 and acc.vis_tot == 0.0
    assert all(not a.any() for rv in acc.regions.values() for a in rv.arrays())
    # the previous record is not touched by the reset
    assert rec.regions[Region.MAIN].sipm[0] == pytest.approx(3.0)


def test_invalid_configuration():
    with pytest.raises(ValueError):
        PointAggregator(photons_per_event=0)
    with pytest.raises(ValueError):
        PointAggregator(mode="sum")
    with pytest.raises(ValueError):
        SensorHit.from_counter(11, 0, 0, 0, 1, {6: 1})


def test_hit_count_accessor():
    h = _hit(n=7, direct=3, wls=2)
    assert h.count(ProcessClass.TOTAL) == 7
    assert h.count(ProcessClass.DIRECT) == 3
    assert h.count(ProcessClass.WLS) == 2
    assert h.proc_counts.dtype == np.int64


def test_batch_point_with_several_events_warns(caplog):
    events = [_ev((0.0, 0.0, 0.0), _hit(n=3)), _ev((0.0, 0.0, 0.0), _hit(n=5))]
    with caplog.at_level(logging.WARNING, logger="photonlib.physics.aggregator"):
        (rec,) = aggregate_events(events, photons_per_event=1.0, mode="batch")
    assert rec.regions[Region.MAIN].sipm[0] == pytest.approx(5 / 2)
    assert any("batch point" in r.getMessage() for r in caplog.records)

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="photonlib.physics.aggregator"):
        aggregate_events(events[:1], photons_per_event=1.0, mode="batch")
    assert not caplog.records
