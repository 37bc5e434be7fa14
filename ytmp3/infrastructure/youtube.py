import subprocess
import sys
import logging
import threading
from collections import deque
from typing import List, Optional

import yt_dlp
from yt_dlp.utils import DownloadError

from ytmp3.domain.errors import AudioStreamError, NotFoundError
from ytmp3.domain.models import VideoInfo

STDERR_TAIL_LINES = 20


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class AudioStream:
    """Readable byte stream backed by a `yt_dlp -o -` subprocess.

    Used as a context manager: on exit the subprocess is reaped if it reached
    EOF, terminated otherwise. A yt-dlp failure after EOF raises
    AudioStreamError from __exit__.
    """

    def __init__(self, process: subprocess.Popen, video_id: str):
        self._process = process
        self.video_id = video_id
        self._eof = False
        self._terminated = False
        # yt-dlp must never block on a full stderr pipe; keep only the tail
        self._stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_thread.start()

    def _drain_stderr(self):
        if not self._process.stderr:
            return
        for line in self._process.stderr:
            text = line.decode("utf-8", errors="replace").strip()
            if text:
                self._stderr_tail.append(text)

    def read(self, size: int = -1) -> bytes:
        data = self._process.stdout.read(size)
        if not data:
            self._eof = True
        return data

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def close(self) -> None:
        if not self._eof and self._process.poll() is None:
            self._terminated = True
            self._process.terminate()
            try:
                self._process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                self._process.kill()
        if self._process.stdout:
            self._process.stdout.close()
        self._process.wait()

    def raise_for_status(self) -> None:
        if self._process.returncode not in (0, None):
            self._stderr_thread.join(timeout=5)
            message = f"yt-dlp exited with code {self._process.returncode}"
            if self._stderr_tail:
                message = f"{message}: {self._stderr_tail[-1]}"
            raise AudioStreamError(message)

    def __enter__(self) -> "AudioStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        if exc_type is None and not self._terminated:
            self.raise_for_status()


class YouTubeAdapter:
    """Video lookup and raw audio acquisition via yt-dlp."""

    def __init__(self, ydl_opts: Optional[dict] = None):
        self.ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            **(ydl_opts or {}),
        }
        self.logger = logging.getLogger(__name__)

    def fetch_info(self, video_id: str) -> VideoInfo:
        try:
            with yt_dlp.YoutubeDL(self.ydl_opts) as ydl:
                info = ydl.extract_info(watch_url(video_id), download=False)
        except DownloadError as exc:
            self.logger.info(f"LOOKUP_FAILED: {video_id} ({exc})")
            raise NotFoundError(video_id) from exc

        if not info:
            raise NotFoundError(video_id)

        duration = info.get("duration")
        return VideoInfo(
            id=info.get("id") or video_id,
            title=info.get("title") or video_id,
            length_seconds=int(duration) if duration is not None else None,
        )

    def _build_stream_command(self, video_id: str) -> List[str]:
        return [
            sys.executable, "-m", "yt_dlp",
            "--quiet",
            "--no-warnings",
            "--no-playlist",
            "-f", "bestaudio/best",
            "-o", "-",
            watch_url(video_id),
        ]

    def open_audio_stream(self, video_id: str) -> AudioStream:
        """Starts yt-dlp writing the highest-quality audio-only format to stdout."""
        cmd = self._build_stream_command(video_id)
        self.logger.debug(f"YTDLP_CMD: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise AudioStreamError(f"Could not start yt-dlp: {exc}") from exc
        return AudioStream(process, video_id)
