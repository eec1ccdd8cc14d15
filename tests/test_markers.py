import asyncio

from helpers import make_poi

from mountpro.src.markers import SELECTED_Z_INDEX, MarkerReconciler, RecordingSurface
from mountpro.src.models import POIType


def _reconciler():
    surface = RecordingSurface()
    return MarkerReconciler(surface), surface


def test_first_reconcile_places_every_marker():
    reconciler, surface = _reconciler()
    pois = [make_poi("a"), make_poi("b"), make_poi("c", poi_type=POIType.FOUNTAIN)]
    stats = reconciler.reconcile(pois)
    assert (stats.added, stats.updated, stats.removed) == (3, 0, 0)
    assert reconciler.marker_ids() == {"a", "b", "c"}
    assert surface.operations == [("place", "a"), ("place", "b"), ("place", "c")]


def test_reconcile_is_idempotent():
    reconciler, surface = _reconciler()
    pois = [make_poi("a"), make_poi("b")]
    reconciler.reconcile(pois, "a")
    surface.operations.clear()
    assert reconciler.reconcile(pois, "a").operations == 0
    assert surface.operations == []


def test_selection_change_only_updates_affected_markers():
    reconciler, surface = _reconciler()
    pois = [make_poi("a"), make_poi("b"), make_poi("c")]
    reconciler.reconcile(pois)
    surface.operations.clear()

    reconciler.reconcile(pois, "b")
    assert surface.operations == [("update", "b")]
    assert reconciler.appearance_of("b").z_index == SELECTED_Z_INDEX

    surface.operations.clear()
    reconciler.reconcile(pois, "c")
    assert sorted(surface.operations) == [("update", "b"), ("update", "c")]
    assert reconciler.appearance_of("b").z_index == 0


def test_filter_change_removes_and_adds_minimally():
    reconciler, surface = _reconciler()
    reconciler.reconcile([make_poi("a"), make_poi("b")])
    surface.operations.clear()

    stats = reconciler.reconcile([make_poi("b"), make_poi("d")])
    assert (stats.added, stats.updated, stats.removed) == (1, 0, 1)
    assert sorted(surface.operations) == [("place", "d"), ("remove", "a")]
    assert reconciler.marker_ids() == {"b", "d"}
    assert len(surface.markers) == 2


def test_duplicate_ids_get_one_marker():
    reconciler, _ = _reconciler()
    reconciler.reconcile([make_poi("a"), make_poi("a")])
    assert len(reconciler) == 1


def test_clicks_on_known_markers_are_queued():
    reconciler, _ = _reconciler()
    reconciler.reconcile([make_poi("a")])
    assert reconciler.notify_click("a")
    assert not reconciler.notify_click("zzz")
    assert reconciler.clicks.qsize() == 1
    assert reconciler.clicks.get_nowait() == "a"


def test_click_queue_built_outside_a_loop_serves_a_later_loop():
    reconciler, _ = _reconciler()
    reconciler.reconcile([make_poi("a")])

    async def consume():
        waiter = asyncio.get_running_loop().create_task(reconciler.clicks.get())
        await asyncio.sleep(0)
        assert reconciler.notify_click("a")
        return await asyncio.wait_for(waiter, timeout=1.0)

    assert asyncio.run(consume()) == "a"


def test_snapshot_draws_selected_marker_last():
    reconciler, surface = _reconciler()
    reconciler.reconcile([make_poi("a"), make_poi("b"), make_poi("c")], "a")
    snapshot = surface.snapshot()
    assert snapshot[-1]["id"] == "a"
    assert snapshot[-1]["zIndex"] == SELECTED_Z_INDEX
    assert snapshot[0]["type"] == "bivouac"


def test_clear_removes_everything():
    reconciler, surface = _reconciler()
    reconciler.reconcile([make_poi("a"), make_poi("b")])
    assert reconciler.clear() == 2
    assert surface.markers == {}
    assert len(reconciler) == 0
