import subprocess
import re
import signal
import logging
import time
import threading
import queue
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional
from ytmp3.domain.errors import TranscodeError
from ytmp3.domain.models import TranscodeResult

CHUNK_SIZE = 64 * 1024

class FFmpegAdapter:
    """Wrapper around ffmpeg for audio extraction to MP3.

    The source bytes are fed through stdin; progress comes from
    `-progress pipe:2` (one key=value per line on stderr).
    """

    def __init__(self, ffmpeg_binary: str = "ffmpeg", debug: bool = False):
        self.ffmpeg_binary = ffmpeg_binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_command(self, output_path: Path, bitrate: int) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        tmp_path = output_path.with_suffix('.tmp')
        return [
            self.ffmpeg_binary,
            "-hide_banner",
            "-y",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:2",
            "-i", "pipe:0",
            "-vn",
            "-c:a", "libmp3lame",
            "-b:a", f"{bitrate}k",
            # .tmp extension doesn't indicate format
            "-f", "mp3",
            str(tmp_path),
        ]

    def transcode(
        self,
        stream: BinaryIO,
        output_path: Path,
        bitrate: int,
        on_progress: Optional[Callable[[str], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TranscodeResult:
        """Pipes `stream` through ffmpeg into `output_path`.

        Returns COMPLETED or CANCELED; raises TranscodeError on any other failure.
        `on_progress` receives raw time marks (HH:MM:SS.ffffff).
        """
        name = output_path.name
        tmp_path = output_path.with_suffix('.tmp')
        start_time = time.monotonic()

        # Cancel requested before the process exists
        if cancel_event is not None and cancel_event.is_set():
            self.logger.info(f"FFMPEG_SKIPPED: {output_path} (canceled before spawn)")
            return TranscodeResult.CANCELED

        cmd = self._build_command(output_path, bitrate)
        self.logger.info(f"FFMPEG_START: {output_path} (bitrate={bitrate}k)")
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise TranscodeError(f"Could not start ffmpeg: {exc}") from exc

        time_regex = re.compile(r"out_time=(\d+:\d{2}:\d{2}(?:\.\d+)?)")
        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        source_errors: List[Exception] = []
        last_message = ""

        def _feeder():
            try:
                while True:
                    try:
                        chunk = stream.read(CHUNK_SIZE)
                    except (OSError, ValueError) as exc:
                        source_errors.append(exc)
                        break
                    if not chunk:
                        break
                    try:
                        process.stdin.write(chunk)
                    except (BrokenPipeError, OSError, ValueError):
                        # ffmpeg is gone; its return code tells why
                        break
            finally:
                try:
                    process.stdin.close()
                except (BrokenPipeError, OSError):
                    pass

        def _reader():
            if not process.stderr:
                output_queue.put(None)
                return
            for raw in process.stderr:
                output_queue.put(raw.decode("utf-8", errors="replace").strip())
            output_queue.put(None)

        threading.Thread(target=_feeder, daemon=True).start()
        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        canceled = False
        while True:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"FFMPEG_INTERRUPTED: {name} (cancel requested)")
                process.kill()
                process.wait()
                canceled = True
                break

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                if not reader_thread.is_alive() and output_queue.empty():
                    break
                continue

            if line is None:
                break
            if not line:
                continue

            match = time_regex.search(line)
            if match:
                if on_progress is not None:
                    on_progress(match.group(1))
            elif "=" not in line:
                last_message = line

        if not canceled:
            process.wait()
        elapsed = time.monotonic() - start_time

        if canceled or process.returncode == -signal.SIGKILL:
            if tmp_path.exists():
                tmp_path.unlink()
            self.logger.info(f"FFMPEG_END: {name} status=canceled elapsed={elapsed:.2f}s")
            return TranscodeResult.CANCELED

        if process.returncode != 0:
            if tmp_path.exists():
                tmp_path.unlink()
            message = f"ffmpeg exited with code {process.returncode}"
            if last_message:
                message = f"{message}: {last_message}"
            self.logger.info(f"FFMPEG_END: {name} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            raise TranscodeError(message, returncode=process.returncode)

        if source_errors:
            if tmp_path.exists():
                tmp_path.unlink()
            self.logger.info(f"FFMPEG_END: {name} status=failed (source) elapsed={elapsed:.2f}s")
            raise TranscodeError(f"Audio stream read failed: {source_errors[0]}")

        # Success - rename .tmp to final file
        if tmp_path.exists():
            tmp_path.rename(output_path)
        self.logger.info(f"FFMPEG_END: {name} status=completed elapsed={elapsed:.2f}s")
        return TranscodeResult.COMPLETED
