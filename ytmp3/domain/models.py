from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel

class TaskStatus(str, Enum):
    UNSTARTED = "UNSTARTED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.FINISHED, TaskStatus.CANCELED, TaskStatus.FAILED)

class VideoInfo(BaseModel):
    id: str
    title: str
    length_seconds: Optional[int] = None

class TaskPaths(BaseModel):
    folder: Path
    audio: Path

    @classmethod
    def for_video(cls, base_path: Path, video_id: str, bitrate: int) -> "TaskPaths":
        folder = Path(base_path) / video_id / str(bitrate)
        return cls(folder=folder, audio=folder / "audio.mp3")

class TaskOutcome(BaseModel):
    status: TaskStatus
    error_message: Optional[str] = None

class TranscodeResult(str, Enum):
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"

class DispatchResult(str, Enum):
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"
    TOO_LONG = "TOO_LONG"
    REJECTED = "REJECTED"
    INVALID_URL = "INVALID_URL"

class ConvertRequest(BaseModel):
    requester_id: str
    user_id: int
    text: str
    reply_to: Optional[str] = None
