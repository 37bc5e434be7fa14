import re
import shutil
import threading
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.text import Text

from ytmp3.domain.interfaces import DeliveryChannel, StatusMessage

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_filename(name: str, fallback: str = "audio.mp3") -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip().strip(".")
    return cleaned or fallback


class ConsoleStatus(StatusMessage):
    """Prints each status edit as a new line (first line only for progress)."""

    def __init__(self, console: Console, lock: threading.Lock):
        self._console = console
        self._lock = lock
        self.deleted = False

    def show(self, text: str):
        first_line = text.splitlines()[0] if text else ""
        with self._lock:
            self._console.print(Text(first_line, style="cyan"))

    def update(self, text: str) -> None:
        self.show(text)

    def delete(self) -> None:
        self.deleted = True


class ConsoleChannel(DeliveryChannel):
    """DeliveryChannel for the terminal: statuses go to a rich Console and
    finished audio is copied into `output_dir` under its display filename.
    """

    def __init__(self, output_dir: Path, console: Optional[Console] = None):
        self.output_dir = Path(output_dir)
        self.console = console or Console()
        self.delivered: list = []
        self._lock = threading.Lock()

    def send_message(self, requester_id: str, text: str) -> None:
        with self._lock:
            self.console.print(text)

    def send_status(self, requester_id: str, text: str, reply_to: Optional[str] = None) -> StatusMessage:
        status = ConsoleStatus(self.console, self._lock)
        status.show(text)
        return status

    def send_audio(
        self,
        requester_id: str,
        audio_path: Path,
        caption: str,
        filename: str,
        reply_to: Optional[str] = None,
    ) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / safe_filename(filename)
        shutil.copyfile(audio_path, target)
        self.delivered.append(target)
        with self._lock:
            self.console.print(Text(f"{caption} → {target}", style="green"))
