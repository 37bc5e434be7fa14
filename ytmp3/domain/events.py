"""Domain events for a single conversion task.

Each ConversionTask owns its own EventBus; observers subscribe to these types.
Delivery order per task is TaskStarted, zero or more TaskProgressUpdated,
then exactly one TaskTerminalEvent.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pydantic import BaseModel


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class TaskEvent(Event):
    """Base class for events related to a specific conversion task."""

    video_id: str
    bitrate: int


class TaskStarted(TaskEvent):
    """Emitted when a task enters RUNNING."""

    pass


class TaskProgressUpdated(TaskEvent):
    """Emitted for each ffmpeg time mark that yields a defined percentage."""

    percent: int


class TaskTerminalEvent(TaskEvent):
    """Base class for the single event that ends a task."""

    pass


class TaskFinished(TaskTerminalEvent):
    pass


class TaskCanceled(TaskTerminalEvent):
    pass


class TaskFailed(TaskTerminalEvent):
    error_message: str
