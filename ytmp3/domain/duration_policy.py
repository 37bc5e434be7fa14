from ytmp3.domain.errors import TooLongError

# Attachment size limit of the delivery channel (sendAudio)
SIZE_LIMIT_KB = 20000


def max_length(bitrate: int) -> float:
    """Longest source (seconds) whose audio at `bitrate` kbps fits SIZE_LIMIT_KB."""
    if bitrate <= 0:
        raise ValueError(f"bitrate must be positive, got {bitrate}")
    return SIZE_LIMIT_KB / (bitrate / 8)


def validate(length_seconds: float, bitrate: int) -> None:
    limit = max_length(bitrate)
    if length_seconds > limit:
        raise TooLongError(bitrate=bitrate, max_length=limit)
