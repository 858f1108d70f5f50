"""
Interaction Signal Collection Module

Holds bounded rolling windows of raw interaction telemetry:
click timestamps, pointer positions, last activity and tab visibility.
No analysis happens here - see features.py.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, Tuple


class SampleKind(Enum):
    """Kinds of raw host events the engine understands."""
    CLICK = "click"
    MOVE = "move"
    KEY = "key"
    VISIBILITY = "visibility"


@dataclass(frozen=True)
class InteractionSample:
    """A single raw interaction event. Timestamps are in milliseconds."""
    timestamp: float
    kind: SampleKind
    position: Optional[Tuple[float, float]] = None
    hidden: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "position": list(self.position) if self.position else None,
            "hidden": self.hidden,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InteractionSample":
        position = data.get("position")
        return cls(
            timestamp=float(data["timestamp"]),
            kind=SampleKind(data["kind"]),
            position=tuple(position) if position else None,
            hidden=data.get("hidden"),
        )


@dataclass(frozen=True)
class SignalWindow:
    """Immutable snapshot of the collector's rolling windows."""
    click_times: Tuple[float, ...]
    positions: Tuple[Tuple[float, float], ...]
    last_activity: float
    tab_visible: bool
    version: int = 0


class SignalCollector:
    """
    Collects raw interaction events into bounded ring buffers.

    The collector is the only owner of the window; everything downstream
    reads `snapshot()` copies.
    """

    def __init__(
        self,
        click_capacity: int = 10,
        move_capacity: int = 20,
        started_at: float = 0.0
    ):
        self.click_capacity = click_capacity
        self.move_capacity = move_capacity
        self._clicks: Deque[float] = deque(maxlen=click_capacity)
        self._positions: Deque[Tuple[float, float]] = deque(maxlen=move_capacity)
        self._last_activity = started_at
        self._tab_visible = True
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def tab_visible(self) -> bool:
        return self._tab_visible

    def _touch(self):
        self._version += 1

    def record_click(self, ts: float):
        """Append a click timestamp; the oldest drops beyond capacity."""
        self._clicks.append(ts)
        self._touch()

    def record_move(self, x: float, y: float):
        """Append a pointer position; the oldest drops beyond capacity."""
        self._positions.append((x, y))
        self._touch()

    def record_activity(self, ts: float):
        """Mark the learner as active at `ts`."""
        self._last_activity = ts
        self._touch()

    def record_visibility(self, hidden: bool):
        self._tab_visible = not hidden
        self._touch()

    def clear_motion(self):
        """Drop click and pointer history (used when stress is reset)."""
        self._clicks.clear()
        self._positions.clear()
        self._touch()

    def snapshot(self) -> SignalWindow:
        return SignalWindow(
            click_times=tuple(self._clicks),
            positions=tuple(self._positions),
            last_activity=self._last_activity,
            tab_visible=self._tab_visible,
            version=self._version,
        )


class InteractionSink(Protocol):
    """Anything that consumes host interaction events."""

    def on_click(self, ts: Optional[float] = None) -> Any: ...

    def on_move(self, x: float, y: float, ts: Optional[float] = None) -> Any: ...

    def on_key(self, ts: Optional[float] = None) -> Any: ...

    def on_visibility(self, hidden: bool, ts: Optional[float] = None) -> Any: ...


def dispatch_sample(sink: InteractionSink, sample: InteractionSample):
    """Route an InteractionSample to the matching sink handler."""
    if sample.kind == SampleKind.CLICK:
        return sink.on_click(sample.timestamp)
    if sample.kind == SampleKind.MOVE:
        if sample.position is None:
            # No coordinates: counts as activity, never as a pointer point
            return sink.on_key(sample.timestamp)
        x, y = sample.position
        return sink.on_move(x, y, sample.timestamp)
    if sample.kind == SampleKind.KEY:
        return sink.on_key(sample.timestamp)
    return sink.on_visibility(bool(sample.hidden), sample.timestamp)


class EventSource(ABC):
    """
    Host adapter boundary.

    A host (browser bridge, desktop hook, test harness) subclasses this and
    forwards its native events to the attached sinks.
    """

    def __init__(self):
        self._sinks: List[InteractionSink] = []

    def attach(self, sink: InteractionSink):
        self._sinks.append(sink)

    def detach(self, sink: InteractionSink):
        if sink in self._sinks:
            self._sinks.remove(sink)

    def publish(self, sample: InteractionSample):
        for sink in list(self._sinks):
            dispatch_sample(sink, sample)

    @abstractmethod
    def start(self):
        """Begin delivering events."""


class ReplayEventSource(EventSource):
    """Replays a recorded sequence of samples, in order."""

    def __init__(self, samples: Iterable[InteractionSample]):
        super().__init__()
        self.samples: List[InteractionSample] = sorted(samples, key=lambda s: s.timestamp)

    def start(self):
        for sample in self.samples:
            self.publish(sample)
