import threading
from typing import Type, Callable, List, Dict, Any, Optional
from ytmp3.domain.events import Event

class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Subscribing to a base event class also receives its subclasses
    (e.g. TaskTerminalEvent catches TaskFinished/TaskCanceled/TaskFailed).
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers."""
        with self._lock:
            callbacks = [
                cb
                for klass in type(event).__mro__
                for cb in self._subscribers.get(klass, [])
            ]
        for callback in callbacks:
            callback(event)
