from vsm_backend.features.monitor import matcher as m
from vsm_backend.features.monitor.classifier import build_asset
from vsm_backend.features.monitor.models import AssetFile, ShotSpec


def _asset(name, task_id="vid_1", sub=""):
    path = f"{task_id}/{sub}{name}"
    return AssetFile(
        file_id=f"{task_id}_{name}_0",
        task_id=task_id,
        file_type="image",
        file_path=path,
        file_name=name,
        created_at=0.0,
        file_size=1,
    )


def test_matches_shot_strict_equality():
    assert m.matches_shot("shot_03.jpg", 3)
    assert m.matches_shot("shot_3.mp4", 3)
    assert m.matches_shot("audio_03.mp3", 3)
    assert m.matches_shot("audio_3.mp3", 3)
    assert not m.matches_shot("shot_13.jpg", 3)
    assert not m.matches_shot("shot_03.jpg", 13)
    assert not m.matches_shot("shot_1.jpg", 10)
    assert not m.matches_shot("shot_1.jpg", 11)
    assert not m.matches_shot("shot_003.jpg", 3)
    assert not m.matches_shot("shot_03.png", 3)
    assert not m.matches_shot("audio_03.wav", 3)
    assert not m.matches_shot("SHOT_03.JPG", 3)
    assert not m.matches_shot("shot_03_alt.jpg", 3)


def test_two_digit_shot_numbers():
    assert m.matches_shot("shot_12.jpg", 12)
    assert m.matches_shot("audio_12.mp3", 12)


def test_role_images_never_bind():
    for name in ("host.jpg", "guest.jpg", "cover.jpg"):
        for n in range(1, 4):
            assert not m.matches_shot(name, n)


def test_bind_shots_attaches_matching_assets():
    specs = [ShotSpec("s1", 1), ShotSpec("s2", 2), ShotSpec("s10", 10)]
    assets = [
        _asset("shot_01.jpg"),
        _asset("shot_1.mp4"),
        _asset("audio_02.mp3"),
        _asset("host.jpg"),
        _asset("shot_10.jpg"),
    ]
    details = m.bind_shots(specs, assets, "vid_1")
    assert [d.shot_number for d in details] == [1, 2, 10]
    assert [a.file_name for a in details[0].assets] == ["shot_01.jpg", "shot_1.mp4"]
    assert [a.file_name for a in details[1].assets] == ["audio_02.mp3"]
    assert [a.file_name for a in details[2].assets] == ["shot_10.jpg"]
    assert details[0].to_dict()["taskId"] == "vid_1"


def test_bind_and_unbind_single_asset():
    details = m.bind_shots([ShotSpec("s1", 1), ShotSpec("s2", 2)], [], "vid_1")
    assert m.bind_asset(details, _asset("shot_02.jpg")) == [2]
    # Rebinding the same path replaces in place.
    assert m.bind_asset(details, _asset("shot_02.jpg")) == [2]
    assert len(details[1].assets) == 1
    assert m.bind_asset(details, _asset("notes_02.jpg")) == []

    assert m.unbind_asset(details, "vid_1/shot_02.jpg") == [2]
    assert m.unbind_asset(details, "vid_1/shot_02.jpg") == []


def test_list_task_files_skips_cache_and_hidden(tmp_path):
    task = tmp_path / "vid_1"
    (task / "cache").mkdir(parents=True)
    (task / ".git").mkdir()
    (task / "images" / "deep").mkdir(parents=True)
    (task / "shot_01.jpg").write_bytes(b"x")
    (task / ".DS_Store").write_bytes(b"x")
    (task / "cache" / "shot_01.jpg").write_bytes(b"x")
    (task / ".git" / "config").write_text("x")
    (task / "images" / "shot_02.jpg").write_bytes(b"x")
    (task / "images" / "deep" / "shot_03.jpg").write_bytes(b"x")

    files = m.list_task_files(str(task))
    rel = sorted(p[len(str(task)) + 1:].replace("\\", "/") for p in files)
    assert rel == ["images/deep/shot_03.jpg", "images/shot_02.jpg", "shot_01.jpg"]


def test_list_task_files_missing_directory(tmp_path):
    assert m.list_task_files(str(tmp_path / "absent")) == []


def test_cache_copy_does_not_bind(tmp_path):
    root = tmp_path / "data"
    task = root / "vid_1"
    (task / "cache").mkdir(parents=True)
    for name in ("shot_01.jpg", "shot_1.mp4"):
        (task / name).write_bytes(b"x")
    (task / "cache" / "shot_01.jpg").write_bytes(b"x")

    assets = [build_asset(p, str(root)) for p in m.list_task_files(str(task))]
    details = m.bind_shots([ShotSpec("s1", 1)], [a for a in assets if a], "vid_1")
    assert sorted(a.file_path for a in details[0].assets) == ["vid_1/shot_01.jpg", "vid_1/shot_1.mp4"]
