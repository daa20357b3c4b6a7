from __future__ import annotations
import io
import logging
from typing import Iterable, List, Sequence

import mido
from mido.midifiles.meta import build_meta_message

from .config import DEFAULT_BPM
from .errors import ConfigError
from .timeline import (
    Clip, Event, NoteOn, NoteOff, ControlChange, ProgramChange, PitchBend,
    Aftertouch, ChannelAftertouch, Meta, NoteSpan,
)
from .util.notes import match_notes
from .util.time import TIME_SIGNATURE_NUMERATOR

logger = logging.getLogger(__name__)

# Meta-Typen, die der Encoder selbst schreibt (Name, Tempo, Takt, Track-Ende)
_OWN_META_TYPES = {0x03, 0x51, 0x58, 0x2F}

# ---------- interne Helfer ----------

def _bpm_to_micro(bpm: float) -> int:
    return int(round(60_000_000 / max(1e-6, float(bpm))))

def _to_mido(ev: Event, delta: int):
    """Ein Event in seine kanonische Wire-Form; None = wird nicht geschrieben."""
    if isinstance(ev, NoteOn):
        return mido.Message("note_on", channel=ev.channel, note=ev.note, velocity=ev.velocity, time=delta)
    if isinstance(ev, NoteOff):
        return mido.Message("note_off", channel=ev.channel, note=ev.note, velocity=ev.velocity, time=delta)
    if isinstance(ev, ControlChange):
        return mido.Message("control_change", channel=ev.channel, control=ev.controller, value=ev.value, time=delta)
    if isinstance(ev, ProgramChange):
        return mido.Message("program_change", channel=ev.channel, program=ev.program, time=delta)
    if isinstance(ev, PitchBend):
        return mido.Message("pitchwheel", channel=ev.channel, pitch=ev.value - 8192, time=delta)
    if isinstance(ev, Aftertouch):
        return mido.Message("polytouch", channel=ev.channel, note=ev.note, value=ev.value, time=delta)
    if isinstance(ev, ChannelAftertouch):
        return mido.Message("aftertouch", channel=ev.channel, value=ev.value, time=delta)
    if isinstance(ev, Meta) and ev.meta_type not in _OWN_META_TYPES:
        msg = build_meta_message(ev.meta_type, list(ev.data), delta)
        msg.time = delta
        return msg
    return None

def _emit_conductor(track: mido.MidiTrack, bpm: float):
    """Tempo + 4/4 bei Tick 0."""
    track.append(mido.MetaMessage("set_tempo", tempo=_bpm_to_micro(bpm), time=0))
    track.append(mido.MetaMessage("time_signature", numerator=TIME_SIGNATURE_NUMERATOR, denominator=4, time=0))

def _emit_track_events(mt: mido.MidiTrack, events: Iterable[Event]) -> int:
    """Schreibt Events als Delta-Zeiten (aus absolute_time neu berechnet)."""
    last = 0
    written = 0
    for ev in events:
        if ev.absolute_time < last:
            raise ValueError("events are not sorted by absolute_time")
        msg = _to_mido(ev, ev.absolute_time - last)
        if msg is None:
            continue
        mt.append(msg)
        last = ev.absolute_time
        written += 1
    return written

# ---------- öffentliche Writer-APIs ----------

def encode_events(
    events: Sequence[Event],
    ppq: int,
    track_name: str,
    bpm: float = DEFAULT_BPM,
    single_track: bool = False,
) -> bytes:
    """
    SMF-Bytes für einen Event-Stream.
    - Standard: Typ 1 mit Conductor-Track (Tempo/Takt) + benanntem Notentrack.
    - single_track=True: Typ 0, Tempo und Name im selben Track.
    End-of-Track wird von mido genau einmal ans Ende gesetzt.
    """
    if not 0 < int(ppq) < 0x8000:
        raise ConfigError(f"ppq must be in 1..32767, got {ppq}")
    if bpm <= 0:
        raise ConfigError(f"bpm must be > 0, got {bpm}")

    mid = mido.MidiFile(type=0 if single_track else 1, ticks_per_beat=int(ppq))

    if not single_track:
        t_con = mido.MidiTrack()
        _emit_conductor(t_con, bpm)
        mid.tracks.append(t_con)

    mt = mido.MidiTrack()
    mt.append(mido.MetaMessage("track_name", name=track_name, time=0))
    if single_track:
        _emit_conductor(mt, bpm)
    written = _emit_track_events(mt, events)
    mid.tracks.append(mt)

    buf = io.BytesIO()
    mid.save(file=buf)
    data = buf.getvalue()
    logger.debug("encoded %r: %d events, %d bytes", track_name, written, len(data))
    return data

def encode_clip(
    clip: Clip,
    ppq: int,
    track_name: str,
    bpm: float = DEFAULT_BPM,
    single_track: bool = False,
) -> bytes:
    return encode_events(clip.events, ppq, track_name, bpm=bpm, single_track=single_track)

def clip_notes(clip: Clip) -> List[NoteSpan]:
    """Noten mit Dauer (z.B. für Anzeige), gleiches FIFO-Matching wie beim Splitten."""
    return match_notes(clip.events)
