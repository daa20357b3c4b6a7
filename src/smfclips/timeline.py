from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, FrozenSet, Iterable, List, Optional, Tuple

DEFAULT_PPQ = 480
DRUM_CHANNEL = 9  # MIDI-Kanal 10 (0-basiert)

class EventKind(str, Enum):
    NOTE_ON = "noteOn"
    NOTE_OFF = "noteOff"
    CONTROL_CHANGE = "cc"
    PROGRAM_CHANGE = "programChange"
    PITCH_BEND = "pitchBend"
    AFTERTOUCH = "aftertouch"
    CHANNEL_AFTERTOUCH = "channelAftertouch"
    META = "meta"
    UNSUPPORTED = "unsupported"

def _check_7bit(name: str, value: int):
    if not 0 <= value <= 127:
        raise ValueError(f"{name} must be in 0..127, got {value}")

# --- Events: eine Variante pro Event-Art ---

@dataclass(frozen=True)
class Event:
    kind: ClassVar[EventKind]
    absolute_time: int
    delta_time: int = field(default=0, kw_only=True, compare=False)

    def __post_init__(self):
        if self.absolute_time < 0:
            raise ValueError(f"absolute_time must be >= 0, got {self.absolute_time}")

    @property
    def channel_or_none(self) -> Optional[int]:
        return None

@dataclass(frozen=True)
class ChannelEvent(Event):
    channel: int

    def __post_init__(self):
        super().__post_init__()
        if not 0 <= self.channel <= 15:
            raise ValueError(f"channel must be in 0..15, got {self.channel}")

    @property
    def channel_or_none(self) -> Optional[int]:
        return self.channel

@dataclass(frozen=True)
class NoteOn(ChannelEvent):
    kind: ClassVar[EventKind] = EventKind.NOTE_ON
    note: int
    velocity: int

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("note", self.note)
        _check_7bit("velocity", self.velocity)

@dataclass(frozen=True)
class NoteOff(ChannelEvent):
    kind: ClassVar[EventKind] = EventKind.NOTE_OFF
    note: int
    velocity: int = 0

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("note", self.note)
        _check_7bit("velocity", self.velocity)

@dataclass(frozen=True)
class ControlChange(ChannelEvent):
    kind: ClassVar[EventKind] = EventKind.CONTROL_CHANGE
    controller: int
    value: int

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("controller", self.controller)
        _check_7bit("value", self.value)

@dataclass(frozen=True)
class ProgramChange(ChannelEvent):
    kind: ClassVar[EventKind] = EventKind.PROGRAM_CHANGE
    program: int

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("program", self.program)

@dataclass(frozen=True)
class PitchBend(ChannelEvent):
    """14-bit Wert, 8192 = Mitte (kein Bend)."""
    kind: ClassVar[EventKind] = EventKind.PITCH_BEND
    value: int

    def __post_init__(self):
        super().__post_init__()
        if not 0 <= self.value <= 0x3FFF:
            raise ValueError(f"pitch bend value must be in 0..16383, got {self.value}")

@dataclass(frozen=True)
class Aftertouch(ChannelEvent):
    """Polyphonic key pressure."""
    kind: ClassVar[EventKind] = EventKind.AFTERTOUCH
    note: int
    value: int

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("note", self.note)
        _check_7bit("value", self.value)

@dataclass(frozen=True)
class ChannelAftertouch(ChannelEvent):
    kind: ClassVar[EventKind] = EventKind.CHANNEL_AFTERTOUCH
    value: int

    def __post_init__(self):
        super().__post_init__()
        _check_7bit("value", self.value)

@dataclass(frozen=True)
class Meta(Event):
    """
    Meta-Event (0xFF). meta_type ist das Typ-Byte, name der lesbare Typ
    (z.B. 'track_name', 'set_tempo'), data die rohen Payload-Bytes.
    """
    kind: ClassVar[EventKind] = EventKind.META
    meta_type: int
    data: bytes = b""
    name: str = "unknown_meta"

@dataclass(frozen=True)
class Unsupported(Event):
    """SysEx und System-Messages: werden gezählt, aber nie exportiert."""
    kind: ClassVar[EventKind] = EventKind.UNSUPPORTED
    status: int
    data: bytes = b""

# --- Noten-Lebenszyklus (NoteOn <-> NoteOff, FIFO gematcht) ---

@dataclass(frozen=True)
class NoteSpan:
    channel: int
    note: int
    velocity: int
    start: int
    end: Optional[int]        # None = NoteOn ohne passendes NoteOff
    on_index: int
    off_index: Optional[int] = None

    @property
    def duration(self) -> Optional[int]:
        return None if self.end is None else self.end - self.start

# --- Container ---

@dataclass(frozen=True)
class MidiHeader:
    format: int
    track_count: int
    ppq: int

@dataclass(frozen=True)
class Track:
    index: int
    name: str
    events: Tuple[Event, ...]
    channels: FrozenSet[int] = frozenset()
    note_range: Optional[Tuple[int, int]] = None   # (min, max)
    is_drums: bool = False
    program: Optional[int] = None
    notes: Tuple[NoteSpan, ...] = ()

    @property
    def event_count(self) -> int:
        return len(self.events)

    @property
    def note_count(self) -> int:
        return len(self.notes)

@dataclass(frozen=True)
class ParsedFile:
    header: MidiHeader
    tracks: Tuple[Track, ...]
    file_name: str
    duration: int  # in ticks

    @property
    def ppq(self) -> int:
        return self.header.ppq

@dataclass(frozen=True)
class Clip:
    """
    Ein begrenzter, auf Tick 0 rebasierter Event-Stream für einen Output-Bus.
    start_step/end_step: [start, end) im Original-Raster,
    start_tick/end_tick: das zugehörige Tick-Fenster im Original.
    """
    bus: str
    events: Tuple[Event, ...]
    start_step: int
    end_step: int
    split_index: Optional[int] = None   # nur gesetzt, wenn der Bus gesplittet wurde
    start_tick: int = 0
    end_tick: int = 0

    @property
    def step_range(self) -> Tuple[int, int]:
        return (self.start_step, self.end_step)

    @property
    def length_ticks(self) -> int:
        return self.end_tick - self.start_tick

# ---------- Stream-Helfer ----------

def sort_events(events: Iterable[Event]) -> List[Event]:
    """Stabil nach absolute_time sortieren (gleiche Ticks behalten Eingangsreihenfolge)."""
    return sorted(events, key=lambda ev: ev.absolute_time)

def with_deltas(events: Iterable[Event]) -> List[Event]:
    """Delta-Zeiten relativ zum vorherigen Event neu berechnen."""
    out: List[Event] = []
    last = 0
    for ev in events:
        delta = ev.absolute_time - last
        if delta < 0:
            raise ValueError("events are not sorted by absolute_time")
        out.append(ev if ev.delta_time == delta else replace(ev, delta_time=delta))
        last = ev.absolute_time
    return out

def rebase(events: Iterable[Event], origin: int) -> List[Event]:
    """Verschiebt alle Events um -origin (neuer Nullpunkt); Deltas werden neu berechnet."""
    if origin == 0:
        return with_deltas(events)
    return with_deltas(replace(ev, absolute_time=ev.absolute_time - origin) for ev in events)

def last_tick(events: Iterable[Event]) -> int:
    return max((ev.absolute_time for ev in events), default=0)
