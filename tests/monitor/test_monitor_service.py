import asyncio
import json
from pathlib import Path

import pytest
from watchdog.observers.polling import PollingObserver

from vsm_backend.config import MonitorSettings
from vsm_backend.features.monitor.events import DiscoveryEvent, WatchEvent
from vsm_backend.features.monitor.service import MonitorService


def _make_task(root, name, title=None, shots=1, files=()):
    task = root / name
    task.mkdir()
    if title is not None:
        payload = {"videoId": name, "title": title, "shots": [{"shot_id": f"s{i + 1}"} for i in range(shots)]}
        (task / "script.json").write_text(json.dumps(payload), encoding="utf-8")
    for rel in files:
        p = task / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"x")
    return task


async def _next_event(sub, event_type, timeout=2.0):
    async def _wait():
        async for event in sub:
            if event.type == event_type:
                return event

    return await asyncio.wait_for(_wait(), timeout)


def _drain_types(sub):
    types = []
    while sub.qsize():
        types.append(sub._queue.get_nowait().type)
    return types


@pytest.mark.asyncio
async def test_startup_scan_registers_tasks_with_manifest(services):
    monitor = services["monitor"]
    root = Path(services["settings"].watch_root)
    _make_task(root, "vid_1", title="One", files=("shot_01.jpg", "cache/shot_01.jpg"))
    _make_task(root, "vid_2", title="Two")
    _make_task(root, "no_manifest")
    _make_task(root, "cache", title="Cached")
    _make_task(root, ".hidden", title="Hidden")

    started = await monitor.start()
    assert started.ok
    assert started.data["tasks"] == 2
    assert monitor.is_running
    assert sorted(t.task_id for t in monitor.list_tasks()) == ["vid_1", "vid_2"]
    assert list(monitor.get_task("vid_1").data.assets) == ["vid_1/shot_01.jpg"]
    assert monitor.get_task("nope").is_code("NOT_FOUND")

    available = monitor.list_available_tasks()
    assert [a["id"] for a in available] == ["no_manifest", "vid_1", "vid_2"]
    assert {a["id"]: a["title"] for a in available}["no_manifest"] == "no_manifest"
    assert {a["id"]: a["title"] for a in available}["vid_1"] == "One"

    health = monitor.health()
    assert health["status"] == "ok"
    assert health["tasks"] == 2
    assert health["connectedClients"] == 0


@pytest.mark.asyncio
async def test_commands(services, tmp_path):
    monitor = services["monitor"]
    root = Path(services["settings"].watch_root)
    task_dir = _make_task(root, "vid_1", title="One")

    assert monitor.start_monitoring("x", "/nonexistent").is_code("INVALID_PATH")
    assert monitor.list_tasks() == []

    assert monitor.start_monitoring("vid_1", str(task_dir)).ok
    assert monitor.stop_monitoring("vid_1").data.monitoring is False
    assert monitor.resume_monitoring("vid_1").data.monitoring is True
    assert monitor.stop_monitoring("ghost").is_code("NOT_FOUND")


@pytest.mark.asyncio
async def test_file_events_flow_through_consumer(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    task_dir = _make_task(root, "vid_1", title="One", shots=2)
    await monitor.start()
    sub = hub.subscribe()

    f = task_dir / "shot_02.jpg"
    f.write_bytes(b"pixels")
    await monitor._watch_channel.put(WatchEvent("file_upserted", str(f)))
    added = await _next_event(sub, "fileAdded")
    assert added.data["filePath"] == "vid_1/shot_02.jpg"
    assert added.data["fileType"] == "image"

    await monitor._watch_channel.put(WatchEvent("file_upserted", str(f)))
    assert (await _next_event(sub, "fileModified")).data["fileName"] == "shot_02.jpg"

    task = monitor.get_task("vid_1").data
    assert [len(s.assets) for s in task.shots] == [0, 1]

    f.unlink()
    await monitor._watch_channel.put(WatchEvent("file_removed", str(f)))
    assert (await _next_event(sub, "fileDeleted")).data["filePath"] == "vid_1/shot_02.jpg"
    assert task.shots[1].assets == []


@pytest.mark.asyncio
async def test_unclassified_and_manifest_events(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    task_dir = _make_task(root, "vid_1", title="One", files=("shot_01.jpg", "shot_02.jpg"))
    await monitor.start()
    sub = hub.subscribe()

    (task_dir / "notes.txt").write_text("x")
    monitor.handle_watch_event(WatchEvent("file_upserted", str(task_dir / "notes.txt")))
    assert sub.qsize() == 0

    payload = {"videoId": "vid_1", "title": "Renamed", "shots": [{}, {}]}
    (task_dir / "script.json").write_text(json.dumps(payload), encoding="utf-8")
    monitor.handle_watch_event(WatchEvent("file_upserted", str(task_dir / "script.json")))
    assert _drain_types(sub) == ["scriptUpdated", "taskUpdated"]
    assert monitor.get_task("vid_1").data.title == "Renamed"

    (task_dir / "script.json").unlink()
    monitor.handle_watch_event(WatchEvent("file_removed", str(task_dir / "script.json")))
    assert sub.qsize() == 0
    assert monitor.get_task("vid_1").data.title == "Renamed"
    assert len(monitor.get_task("vid_1").data.shots) == 2


@pytest.mark.asyncio
async def test_directory_added_with_and_without_manifest(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    await monitor.start()
    client = hub.subscribe()
    internal = hub.subscribe(include_internal=True)

    ready = _make_task(root, "vid_ready", title="Ready")
    monitor.handle_watch_event(WatchEvent("dir_added", str(ready)))
    assert monitor.get_task("vid_ready").ok
    assert _drain_types(client) == ["taskUpdated"]
    assert _drain_types(internal) == ["directoryAdded", "taskUpdated"]

    # Already registered: a second add is not re-ingested.
    monitor.handle_watch_event(WatchEvent("dir_added", str(ready)))
    assert _drain_types(client) == []

    pending = _make_task(root, "vid_late")
    monitor.handle_watch_event(WatchEvent("dir_added", str(pending)))
    assert monitor.discovery.is_pending(str(pending))
    assert not monitor.registry.has("vid_late")

    # The root and excluded folders are never candidates.
    monitor.handle_watch_event(WatchEvent("dir_added", str(root)))
    cache = root / "cache"
    cache.mkdir()
    monitor.handle_watch_event(WatchEvent("dir_added", str(cache)))
    assert monitor.discovery.pending() == [str(pending)]


@pytest.mark.asyncio
async def test_discovery_promotes_directory(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    await monitor.start()
    sub = hub.subscribe()

    late = _make_task(root, "vid_late")
    monitor.handle_watch_event(WatchEvent("dir_added", str(late)))
    await asyncio.sleep(0.15)
    assert not monitor.registry.has("vid_late")

    (late / "script.json").write_text(json.dumps({"videoId": "vid_late", "title": "Late"}), encoding="utf-8")
    event = await _next_event(sub, "taskUpdated", timeout=3)
    assert event.data["taskId"] == "vid_late"
    assert event.data["monitoring"] is True
    assert not monitor.discovery.is_pending(str(late))


@pytest.mark.asyncio
async def test_discovery_event_for_vanished_directory_is_ignored(services):
    monitor = services["monitor"]
    monitor.handle_discovery_event(DiscoveryEvent(path=str(services["settings"].watch_root) + "/gone", attempts=1))
    assert len(monitor.registry) == 0


@pytest.mark.asyncio
async def test_directory_removed_drops_task_and_cancels_poll(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    task_dir = _make_task(root, "vid_1", title="One")
    pending = _make_task(root, "vid_late")
    await monitor.start()
    monitor.handle_watch_event(WatchEvent("dir_added", str(pending)))
    sub = hub.subscribe()

    monitor.handle_watch_event(WatchEvent("dir_removed", str(task_dir)))
    monitor.handle_watch_event(WatchEvent("dir_removed", str(pending)))
    assert not monitor.registry.has("vid_1")
    assert not monitor.discovery.is_pending(str(pending))
    assert monitor.stop_monitoring("vid_1").is_code("NOT_FOUND")
    assert _drain_types(sub) == ["taskRemoved"]


@pytest.mark.asyncio
async def test_stop_cancels_discovery(services):
    monitor = services["monitor"]
    root = Path(services["settings"].watch_root)
    await monitor.start()
    monitor.handle_watch_event(WatchEvent("dir_added", str(_make_task(root, "vid_late"))))
    assert monitor.discovery.pending()

    await monitor.stop()
    assert monitor.discovery.pending() == []
    assert not monitor.is_running
    assert monitor.health()["status"] == "stopped"


@pytest.mark.asyncio
async def test_missing_watch_root_is_tolerated(tmp_path):
    settings = MonitorSettings(watch_root=str(tmp_path / "absent"), watcher_enabled=False)
    monitor = MonitorService(settings)
    res = await monitor.start()
    try:
        assert res.ok
        assert res.data["tasks"] == 0
        assert monitor.list_available_tasks() == []
    finally:
        await monitor.stop()


@pytest.mark.asyncio
async def test_end_to_end_with_polling_observer(tmp_path):
    root = tmp_path / "data"
    root.mkdir()
    settings = MonitorSettings(
        watch_root=str(root),
        file_debounce_ms=50,
        dir_debounce_ms=50,
        file_ready_delay_ms=20,
        dir_ready_delay_ms=20,
        discovery_interval_ms=100,
    )
    monitor = MonitorService(settings, observer_factory=lambda: PollingObserver(timeout=0.1))
    sub = monitor.hub.subscribe()
    await monitor.start()
    try:
        await asyncio.sleep(0.3)
        task_dir = _make_task(root, "vid_1", title="Fresh", shots=1)
        event = await _next_event(sub, "taskUpdated", timeout=5)
        assert event.data["taskId"] == "vid_1"
        assert event.data["title"] == "Fresh"

        await asyncio.sleep(0.3)
        (task_dir / "shot_01.jpg").write_bytes(b"pixels")
        added = await _next_event(sub, "fileAdded", timeout=5)
        assert added.data["filePath"] == "vid_1/shot_01.jpg"
        assert len(monitor.get_task("vid_1").data.shots[0].assets) == 1
    finally:
        await monitor.stop()
        sub.close()


@pytest.mark.asyncio
async def test_startup_scan_survives_shots_without_times(services):
    monitor = services["monitor"]
    root = Path(services["settings"].watch_root)
    task = root / "vid_1"
    task.mkdir()
    payload = {"videoId": "vid_1", "title": "One", "shots": [{"description": "x"}]}
    (task / "script.json").write_text(json.dumps(payload), encoding="utf-8")

    started = await monitor.start()
    assert started.ok
    shot = monitor.get_task("vid_1").data.shots[0]
    assert (shot.spec.start_time, shot.spec.end_time) == (0, 0)


@pytest.mark.asyncio
async def test_subfolder_removed_drops_assets_but_keeps_task(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    task_dir = _make_task(root, "vid_1", title="One", files=("images/shot_01.jpg", "audio_01.mp3"))
    await monitor.start()
    sub = hub.subscribe()

    monitor.handle_watch_event(WatchEvent("dir_removed", str(task_dir / "images")))

    task = monitor.get_task("vid_1").data
    assert list(task.assets) == ["vid_1/audio_01.mp3"]
    assert [a.file_path for a in task.shot(1).assets] == ["vid_1/audio_01.mp3"]
    assert _drain_types(sub) == ["fileDeleted"]


@pytest.mark.asyncio
async def test_directory_activity_is_counted_from_internal_feed(services):
    monitor = services["monitor"]
    hub = services["hub"]
    root = Path(services["settings"].watch_root)
    await monitor.start()
    assert hub.subscriber_count == 1
    assert hub.client_count == 0

    pending = _make_task(root, "vid_late")
    monitor.handle_watch_event(WatchEvent("dir_added", str(pending)))
    monitor.handle_watch_event(WatchEvent("dir_removed", str(pending)))

    async def _counted():
        while monitor.health()["watcher"]["directoriesRemoved"] < 1:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_counted(), 2.0)
    watcher = monitor.health()["watcher"]
    assert (watcher["directoriesAdded"], watcher["directoriesRemoved"]) == (1, 1)

    await monitor.stop()
    assert hub.subscriber_count == 0
