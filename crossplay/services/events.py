"""Per-room event channels.

A :class:`RoomChannel` stamps every published event with a per-room
sequence number and fans it out to subscriptions. A subscription is a lazy,
lossless iterator: it yields events in publish order, blocks while waiting
for the next one, ends when the channel closes, and cannot be restarted.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

_CLOSED = object()


@dataclass
class Event:
    type: str
    payload: dict = field(default_factory=dict)
    seq: int = 0
    room_code: Optional[str] = None

    def to_dict(self):
        return {
            'type': self.type,
            'seq': self.seq,
            'room_code': self.room_code,
            'payload': self.payload,
        }


class Subscription:
    def __init__(self, channel: 'RoomChannel'):
        self._channel = channel
        self._queue = queue.Queue()
        self._done = False

    def _push(self, item) -> None:
        self._queue.put(item)

    @property
    def done(self) -> bool:
        return self._done

    def _finish(self) -> None:
        self._done = True
        self._channel._detach(self)

    def __iter__(self):
        return self

    def __next__(self) -> Event:
        if self._done:
            raise StopIteration
        item = self._queue.get()
        if item is _CLOSED:
            self._finish()
            raise StopIteration
        return item

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or ``None`` if nothing arrives within ``timeout``."""
        if self._done:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._finish()
            return None
        return item

    def drain(self) -> List[Event]:
        """Every event already delivered, without blocking."""
        events = []
        while not self._done:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSED:
                self._finish()
                break
            events.append(item)
        return events

    def close(self) -> None:
        self._push(_CLOSED)
        self._channel._detach(self)


class RoomChannel:
    def __init__(self, code: str):
        self.code = code
        self.closed = False
        self._seq = 0
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    @property
    def last_seq(self) -> int:
        return self._seq

    def publish(self, type_: str, **payload) -> Optional[Event]:
        with self._lock:
            if self.closed:
                return None
            self._seq += 1
            event = Event(type=type_, payload=payload, seq=self._seq, room_code=self.code)
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription._push(event)
        return event

    def subscribe(self, initial: Optional[Event] = None) -> Subscription:
        subscription = Subscription(self)
        with self._lock:
            if initial is not None:
                subscription._push(initial)
            if self.closed:
                subscription._push(_CLOSED)
            else:
                self._subscribers.append(subscription)
        return subscription

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._push(_CLOSED)

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
