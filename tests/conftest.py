import sys

import pytest_asyncio

from repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def services(tmp_path):
    from vsm_backend.config import MonitorSettings
    from vsm_backend.deps import build_services

    watch_root = tmp_path / "data"
    watch_root.mkdir()
    settings = MonitorSettings(
        watch_root=str(watch_root),
        file_debounce_ms=50,
        dir_debounce_ms=50,
        file_ready_delay_ms=20,
        dir_ready_delay_ms=20,
        discovery_interval_ms=100,
        discovery_max_attempts=20,
        watcher_enabled=False,
    )
    svc_res = await build_services(settings=settings)
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    try:
        yield svc
    finally:
        try:
            await svc["monitor"].stop()
        except Exception:
            pass
        svc["hub"].close_all()
