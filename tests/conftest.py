"""Shared fixtures: SMF files built in memory."""
from __future__ import annotations

import io
import struct

import mido
import pytest

from smfclips.config import ClipSettings


def build_midi(tracks: list[list], ppq: int = 480, type: int = 1) -> bytes:
    """Serialize lists of mido messages (delta times) into SMF bytes."""
    mid = mido.MidiFile(type=type, ticks_per_beat=ppq)
    for msgs in tracks:
        mt = mido.MidiTrack()
        mt.extend(msgs)
        mid.tracks.append(mt)
    buf = io.BytesIO()
    mid.save(file=buf)
    return buf.getvalue()


def raw_smf(track_bodies: list[bytes], ppq: int = 480, fmt: int = 1, track_count: int | None = None) -> bytes:
    """Hand-assembled SMF for byte-level decoder tests."""
    n = len(track_bodies) if track_count is None else track_count
    out = b"MThd" + struct.pack(">IHHH", 6, fmt, n, ppq)
    for body in track_bodies:
        out += b"MTrk" + struct.pack(">I", len(body)) + body
    return out


@pytest.fixture
def settings() -> ClipSettings:
    """16 steps per bar, 128 steps, ppq 480 -> 15360 ticks per clip."""
    return ClipSettings(steps_per_bar=16, max_steps_per_clip=128, ppq=480)


@pytest.fixture
def song_bytes() -> bytes:
    """Piano (ch 0), drums (ch 9) and a long pad that needs splitting."""
    piano = [
        mido.MetaMessage("track_name", name="Piano", time=0),
        mido.Message("program_change", channel=0, program=5, time=0),
        mido.Message("note_on", channel=0, note=60, velocity=100, time=0),
        mido.Message("note_off", channel=0, note=60, velocity=0, time=480),
        mido.Message("note_on", channel=0, note=64, velocity=90, time=0),
        mido.Message("note_off", channel=0, note=64, velocity=0, time=480),
    ]
    drums = [
        mido.MetaMessage("track_name", name="Beat", time=0),
        mido.Message("note_on", channel=9, note=36, velocity=120, time=0),
        mido.Message("note_off", channel=9, note=36, velocity=0, time=120),
    ]
    pad = [
        mido.MetaMessage("track_name", name="Pad", time=0),
        mido.Message("note_on", channel=1, note=48, velocity=70, time=100),
        mido.Message("note_off", channel=1, note=48, velocity=0, time=20000),
    ]
    return build_midi([piano, drums, pad])
