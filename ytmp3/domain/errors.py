from typing import Optional


class Ytmp3Error(Exception):
    pass


class NotFoundError(Ytmp3Error):
    def __init__(self, video_id: str):
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class TooLongError(Ytmp3Error):
    """Source is longer than the size ceiling allows at this bitrate."""

    def __init__(self, bitrate: int, max_length: float):
        super().__init__(f"Video too long: max {max_length:g}s at {bitrate}kbps")
        self.bitrate = bitrate
        self.max_length = max_length


class InvalidVideoUrlError(Ytmp3Error):
    def __init__(self, url: str):
        super().__init__(f"Not a YouTube video URL: {url}")
        self.url = url


class AdmissionError(Ytmp3Error):
    pass


class AlreadyActiveError(AdmissionError):
    def __init__(self, requester_id: str):
        super().__init__(f"Requester {requester_id} already has an active task")
        self.requester_id = requester_id


class QueueFullError(AdmissionError):
    def __init__(self, max_queue_size: int):
        super().__init__(f"Task queue is full ({max_queue_size})")
        self.max_queue_size = max_queue_size


class AdmissionClosedError(AdmissionError):
    def __init__(self):
        super().__init__("Admission controller is closed")


class TranscodeError(Ytmp3Error):
    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class AudioStreamError(Ytmp3Error):
    pass
