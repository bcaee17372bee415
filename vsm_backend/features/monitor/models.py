"""
In-memory model of tasks, shots and assets.

Every model serializes to the camelCase wire form consumed by subscribers;
timestamps are seconds internally and ISO 8601 UTC strings on the wire.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ...shared import FileType, TaskStatus, iso_utc, now

DEFAULT_AUDIO_CONFIG: dict[str, int] = {"sampleRate": 44100, "channels": 2}


@dataclass
class AssetFile:
    file_id: str
    task_id: str
    file_type: FileType
    file_path: str
    file_name: str
    created_at: float
    file_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileId": self.file_id,
            "taskId": self.task_id,
            "fileType": self.file_type,
            "filePath": self.file_path,
            "fileName": self.file_name,
            "createdAt": iso_utc(self.created_at),
            "fileSize": self.file_size,
        }


@dataclass(frozen=True)
class ShotSpec:
    shot_id: str
    shot_number: int
    start_time: float = 0
    end_time: float = 0
    description: str = ""
    dialogue: str = ""
    role_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "shotId": self.shot_id,
            "shotNumber": self.shot_number,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "description": self.description,
            "dialogue": self.dialogue,
            "roleId": self.role_id,
        }


@dataclass
class ShotDetail:
    """A manifest shot plus the assets currently bound to it."""

    spec: ShotSpec
    task_id: str
    assets: list[AssetFile] = field(default_factory=list)

    @property
    def shot_number(self) -> int:
        return self.spec.shot_number

    def upsert_asset(self, asset: AssetFile) -> bool:
        """Bind or replace by file path. Returns True when newly bound."""
        for idx, existing in enumerate(self.assets):
            if existing.file_path == asset.file_path:
                self.assets[idx] = asset
                return False
        self.assets.append(asset)
        return True

    def remove_asset(self, file_path: str) -> bool:
        before = len(self.assets)
        self.assets = [a for a in self.assets if a.file_path != file_path]
        return len(self.assets) != before

    def to_dict(self) -> dict[str, Any]:
        payload = self.spec.to_dict()
        payload["taskId"] = self.task_id
        payload["assets"] = [a.to_dict() for a in self.assets]
        return payload


@dataclass(frozen=True)
class ManifestData:
    video_id: str
    title: str
    shots: tuple[ShotSpec, ...] = ()
    audio_config: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_AUDIO_CONFIG))

    def to_dict(self) -> dict[str, Any]:
        return {
            "videoId": self.video_id,
            "title": self.title,
            "shots": [s.to_dict() for s in self.shots],
            "audioConfig": dict(self.audio_config),
        }


@dataclass
class TaskState:
    task_id: str
    title: str
    manifest_path: str
    folder_created_at: float
    status: TaskStatus = "processing"
    monitoring: bool = True
    assets: dict[str, AssetFile] = field(default_factory=dict)
    shots: list[ShotDetail] = field(default_factory=list)
    created_at: float = field(default_factory=now)
    updated_at: float = field(default_factory=now)

    def touch(self) -> None:
        self.updated_at = now()

    def shot(self, shot_number: int) -> Optional[ShotDetail]:
        for detail in self.shots:
            if detail.shot_number == shot_number:
                return detail
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "title": self.title,
            "status": self.status,
            "monitoring": self.monitoring,
            "manifestPath": self.manifest_path,
            "assets": [a.to_dict() for a in self.assets.values()],
            "shots": [s.to_dict() for s in self.shots],
            "createdAt": iso_utc(self.created_at),
            "updatedAt": iso_utc(self.updated_at),
            "folderCreatedAt": iso_utc(self.folder_created_at),
        }
