"""Conversion task: one video at one bitrate turned into a size-bounded MP3.

State machine: UNSTARTED → RUNNING → {FINISHED | CANCELED | FAILED}.

Events are published on a per-task EventBus in the order TaskStarted,
TaskProgressUpdated*, then exactly one TaskTerminalEvent. The terminal result
is also available as a TaskOutcome through `wait()`.

Cancellation is cooperative: `cancel()` only sets the task's cancel token.
The token exists from construction, so a cancel that arrives before ffmpeg
is spawned is honored when the worker reaches the spawn step.
"""

import logging
import shutil
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Optional, Type

from ytmp3.domain import duration_policy
from ytmp3.domain.events import (
    Event,
    TaskCanceled,
    TaskFailed,
    TaskFinished,
    TaskProgressUpdated,
    TaskStarted,
)
from ytmp3.domain.models import TaskOutcome, TaskPaths, TaskStatus, TranscodeResult, VideoInfo
from ytmp3.infrastructure.event_bus import EventBus
from ytmp3.utils.timemark import path_exists, progress_percent, timemark_seconds


class ConversionTask:
    """Owns one video's metadata, bitrate, output folder and ffmpeg run.

    Use `ConversionTask.create(...)` rather than the constructor; it performs
    the metadata lookup and the duration check.

    Args:
        info: Metadata returned by the lookup collaborator.
        bitrate: Target bitrate in kbps.
        base_path: Root under which `<videoId>/<bitrate>/audio.mp3` is written.
        source: Object with `open_audio_stream(video_id)` (YouTubeAdapter).
        transcoder: Object with `transcode(...)` (FFmpegAdapter).
        cancel_event: Cancel token; a fresh one is created when omitted.
    """

    def __init__(
        self,
        info: VideoInfo,
        bitrate: int,
        base_path: Path,
        source: Any,
        transcoder: Any,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.info = info
        self.bitrate = bitrate
        self.base_path = Path(base_path)
        self.paths = TaskPaths.for_video(self.base_path, info.id, bitrate)
        self.status = TaskStatus.UNSTARTED
        self._source = source
        self._transcoder = transcoder
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._bus = EventBus()
        self._lock = threading.Lock()
        self._outcome: "Future[TaskOutcome]" = Future()
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger(__name__)

    @classmethod
    def create(
        cls,
        video_id: str,
        bitrate: int,
        base_path: Path,
        lookup: Any,
        source: Any,
        transcoder: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> "ConversionTask":
        """Fetches metadata and validates length. Raises NotFoundError / TooLongError."""
        info = lookup.fetch_info(video_id)
        # Unknown length (e.g. live streams) is not rejected; progress stays undefined.
        if info.length_seconds is not None:
            duration_policy.validate(info.length_seconds, bitrate)
        return cls(info, bitrate, base_path, source, transcoder, cancel_event=cancel_event)

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def max_length(self) -> float:
        return duration_policy.max_length(self.bitrate)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def subscribe(self, event_type: Type[Event], callback: Callable[[Any], None]) -> "ConversionTask":
        self._bus.subscribe(event_type, callback)
        return self

    def start(self) -> "ConversionTask":
        with self._lock:
            if self.status != TaskStatus.UNSTARTED:
                self.logger.warning(f"TASK_START_IGNORED: {self.id} status={self.status.value}")
                return self
            self.status = TaskStatus.RUNNING

        self.logger.info(f"TASK_START: {self.id} bitrate={self.bitrate} length={self.info.length_seconds}")
        self._publish(TaskStarted(video_id=self.id, bitrate=self.bitrate))
        self._thread = threading.Thread(target=self._run, name=f"task-{self.id}", daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> "ConversionTask":
        """Requests cancellation. No-op once the task is terminal."""
        with self._lock:
            status = self.status
        if status.is_terminal:
            return self
        if status == TaskStatus.UNSTARTED:
            self.logger.info(f"TASK_CANCEL_DEFERRED: {self.id} (not started yet)")
        else:
            self.logger.info(f"TASK_CANCEL: {self.id}")
        self._cancel_event.set()
        return self

    def wait(self, timeout: Optional[float] = None) -> TaskOutcome:
        """Blocks until the terminal event. Raises concurrent.futures.TimeoutError."""
        return self._outcome.result(timeout=timeout)

    def cleanup(self):
        """Removes the `<videoId>/<bitrate>` folder, and the video folder if left empty."""
        shutil.rmtree(self.paths.folder, ignore_errors=True)
        video_folder = self.paths.folder.parent
        try:
            video_folder.rmdir()
        except OSError:
            pass

    def _run(self):
        try:
            result = self._save_audio()
        except Exception as e:
            self.cleanup()
            message = str(e) or e.__class__.__name__
            self.logger.error(f"TASK_FAILED: {self.id} error={message}")
            self._terminate(TaskStatus.FAILED, error_message=message)
            return

        if result == TranscodeResult.CANCELED:
            self.cleanup()
            self._terminate(TaskStatus.CANCELED)
        else:
            self._terminate(TaskStatus.FINISHED)

    def _save_audio(self) -> TranscodeResult:
        self.paths.folder.mkdir(parents=True, exist_ok=True)

        if self._cancel_event.is_set():
            return TranscodeResult.CANCELED

        if path_exists(self.paths.audio):
            self.logger.info(f"TASK_CACHED: {self.id} ({self.paths.audio})")
            return TranscodeResult.COMPLETED

        with self._source.open_audio_stream(self.id) as stream:
            return self._transcoder.transcode(
                stream,
                self.paths.audio,
                self.bitrate,
                on_progress=self._on_timemark,
                cancel_event=self._cancel_event,
            )

    def _on_timemark(self, timemark: str):
        try:
            elapsed = timemark_seconds(timemark)
        except ValueError:
            self.logger.debug(f"TASK_PROGRESS_SKIPPED: {self.id} bad mark {timemark!r}")
            return
        percent = progress_percent(elapsed, self.info.length_seconds)
        if percent is None:
            return
        with self._lock:
            if self.status.is_terminal:
                return
        self._publish(TaskProgressUpdated(video_id=self.id, bitrate=self.bitrate, percent=percent))

    def _terminate(self, status: TaskStatus, error_message: Optional[str] = None):
        with self._lock:
            if self.status.is_terminal:
                return
            self.status = status

        if status == TaskStatus.FINISHED:
            event: Event = TaskFinished(video_id=self.id, bitrate=self.bitrate)
        elif status == TaskStatus.CANCELED:
            event = TaskCanceled(video_id=self.id, bitrate=self.bitrate)
        else:
            event = TaskFailed(video_id=self.id, bitrate=self.bitrate, error_message=error_message or "")

        self.logger.info(f"TASK_END: {self.id} status={status.value}")
        try:
            self._publish(event)
        finally:
            self._outcome.set_result(TaskOutcome(status=status, error_message=error_message))

    def _publish(self, event: Event):
        # Observer failures are logged; they never change the task's state.
        try:
            self._bus.publish(event)
        except Exception:
            self.logger.exception(f"TASK_OBSERVER_ERROR: {self.id} event={type(event).__name__}")
