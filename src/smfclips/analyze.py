# src/smfclips/analyze.py
from __future__ import annotations
import io
import struct
import logging
from pathlib import Path
from typing import List, Optional, Set

import mido
from mido.midifiles.meta import KeySignatureError
from mido.midifiles.midifiles import read_variable_int

from .errors import DecodeError
from .timeline import (
    Event, NoteOn, NoteOff, ControlChange, ProgramChange, PitchBend, Aftertouch,
    ChannelAftertouch, Meta, Unsupported, Track, MidiHeader, ParsedFile,
    DRUM_CHANNEL, sort_events, with_deltas, last_tick,
)
from .util.notes import match_notes

logger = logging.getLogger(__name__)

DRUM_NAME_HINTS = ("drum", "perc")

# Fehler, die mido beim Parsen kaputter Dateien wirft
_MIDO_PARSE_ERRORS = (OSError, EOFError, ValueError, KeyError, IndexError, struct.error, KeySignatureError)

def _meta_from_mido(msg: mido.MetaMessage, tick: int) -> Meta:
    raw = msg.bytes()                       # FF <typ> <vlq-länge> <daten>
    buf = io.BytesIO(bytes(raw[2:]))
    length = read_variable_int(buf)
    return Meta(tick, raw[1], buf.read(length), msg.type)

def _event_from_mido(msg, tick: int) -> Event:
    if msg.is_meta:
        return _meta_from_mido(msg, tick)
    t = msg.type
    if t == "note_on":
        # NoteOn mit Velocity 0 ist per Konvention ein NoteOff
        if msg.velocity == 0:
            return NoteOff(tick, msg.channel, msg.note, 0)
        return NoteOn(tick, msg.channel, msg.note, msg.velocity)
    if t == "note_off":
        return NoteOff(tick, msg.channel, msg.note, msg.velocity)
    if t == "control_change":
        return ControlChange(tick, msg.channel, msg.control, msg.value)
    if t == "program_change":
        return ProgramChange(tick, msg.channel, msg.program)
    if t == "pitchwheel":
        return PitchBend(tick, msg.channel, msg.pitch + 8192)
    if t == "polytouch":
        return Aftertouch(tick, msg.channel, msg.note, msg.value)
    if t == "aftertouch":
        return ChannelAftertouch(tick, msg.channel, msg.value)
    # sysex, Song Position, Clock, ...: nicht exportierbar
    raw = msg.bytes()
    return Unsupported(tick, raw[0], bytes(raw[1:]))

def _build_track(index: int, mtrack: mido.MidiTrack) -> Track:
    """Ein Durchlauf: Events dekodieren und Track-Zusammenfassung sammeln."""
    events: List[Event] = []
    channels: Set[int] = set()
    note_min, note_max = 127, 0
    has_notes = False
    program: Optional[int] = None
    name: Optional[str] = None

    tick = 0
    for msg in mtrack:
        tick += msg.time
        ev = _event_from_mido(msg, tick)
        events.append(ev)

        ch = ev.channel_or_none
        if ch is not None:
            channels.add(ch)
        if isinstance(ev, NoteOn):
            has_notes = True
            note_min = min(note_min, ev.note)
            note_max = max(note_max, ev.note)
        elif isinstance(ev, ProgramChange) and program is None:
            program = ev.program
        elif isinstance(ev, Meta) and ev.name == "track_name" and name is None:
            name = msg.name

    events = with_deltas(sort_events(events))
    name = (name or "").strip() or f"Track {index + 1}"
    lname = name.lower()
    is_drums = DRUM_CHANNEL in channels or any(h in lname for h in DRUM_NAME_HINTS)

    return Track(
        index=index,
        name=name,
        events=tuple(events),
        channels=frozenset(channels),
        note_range=(note_min, note_max) if has_notes else None,
        is_drums=is_drums,
        program=program,
        notes=tuple(match_notes(events)),
    )

def analyze_midi(data: bytes, file_name: str = "untitled.mid") -> ParsedFile:
    """
    Dekodiert rohe SMF-Bytes (Format 0/1) in ein ParsedFile.
    Wirft DecodeError bei kaputtem Header, abgeschnittenen Chunks oder
    ungültigem Event-Stream; es wird nie ein halbes Ergebnis geliefert.
    """
    if not data:
        raise DecodeError(f"{file_name}: empty input")
    try:
        mid = mido.MidiFile(file=io.BytesIO(bytes(data)))
    except _MIDO_PARSE_ERRORS as e:
        raise DecodeError(f"{file_name}: {e or type(e).__name__}") from e

    if mid.type not in (0, 1, 2):
        raise DecodeError(f"{file_name}: unknown SMF format {mid.type}")
    # SMPTE-Division: oberstes Bit gesetzt (mido liest das Feld vorzeichenbehaftet)
    if mid.ticks_per_beat <= 0 or mid.ticks_per_beat & 0x8000:
        raise DecodeError(f"{file_name}: SMPTE or zero time division is not supported")
    if mid.type == 2:
        logger.warning("%s: SMF format 2, tracks are treated as simultaneous", file_name)

    try:
        tracks = tuple(_build_track(i, t) for i, t in enumerate(mid.tracks))
    except ValueError as e:
        raise DecodeError(f"{file_name}: {e}") from e

    header = MidiHeader(format=mid.type, track_count=len(tracks), ppq=mid.ticks_per_beat)
    duration = max((last_tick(t.events) for t in tracks), default=0)

    dropped = sum(isinstance(ev, Unsupported) for t in tracks for ev in t.events)
    logger.info("decoded %s: format=%d tracks=%d ppq=%d duration=%d unsupported=%d",
                file_name, header.format, header.track_count, header.ppq, duration, dropped)
    return ParsedFile(header=header, tracks=tracks, file_name=file_name, duration=duration)

def analyze_midi_file(path) -> ParsedFile:
    """Bequemer Wrapper für Dateien auf der Platte."""
    p = Path(path)
    return analyze_midi(p.read_bytes(), p.name)
