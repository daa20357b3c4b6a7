"""Tests for SMF decoding."""
from __future__ import annotations

import mido
import pytest

from conftest import build_midi, raw_smf
from smfclips.analyze import analyze_midi, analyze_midi_file
from smfclips.errors import DecodeError
from smfclips.timeline import (
    ChannelAftertouch,
    ControlChange,
    Meta,
    NoteOff,
    NoteOn,
    PitchBend,
    ProgramChange,
    Unsupported,
)


class TestAnalyzeMidi:
    """Header, tracks and per-track summary."""

    def test_header_and_tracks(self, song_bytes) -> None:
        """Format, track count, ppq and track names come from the file."""
        parsed = analyze_midi(song_bytes, "song.mid")
        assert parsed.file_name == "song.mid"
        assert parsed.header.format == 1
        assert parsed.header.track_count == 3
        assert parsed.ppq == 480
        assert [t.name for t in parsed.tracks] == ["Piano", "Beat", "Pad"]
        assert [t.index for t in parsed.tracks] == [0, 1, 2]

    def test_duration_is_max_tick_over_tracks(self, song_bytes) -> None:
        """Duration is the last tick of the longest track."""
        parsed = analyze_midi(song_bytes)
        assert parsed.duration == 20100

    def test_track_summary(self, song_bytes) -> None:
        """Channels, note range, first program and the drum flag per track."""
        piano, drums, pad = analyze_midi(song_bytes).tracks
        assert piano.channels == {0}
        assert piano.note_range == (60, 64)
        assert piano.program == 5
        assert not piano.is_drums
        assert drums.is_drums
        assert pad.channels == {1}
        assert pad.program is None

    def test_note_durations_from_open_note_tracking(self, song_bytes) -> None:
        """Notes carry start and duration from the matched NoteOff."""
        piano = analyze_midi(song_bytes).tracks[0]
        assert [(n.note, n.start, n.duration) for n in piano.notes] == [(60, 0, 480), (64, 480, 480)]
        assert piano.note_count == 2

    def test_event_kinds(self) -> None:
        """Every channel message maps onto its typed event."""
        data = build_midi([[
            mido.Message("program_change", channel=2, program=10, time=0),
            mido.Message("note_on", channel=2, note=50, velocity=80, time=0),
            mido.Message("note_on", channel=2, note=50, velocity=0, time=100),
            mido.Message("control_change", channel=2, control=7, value=99, time=10),
            mido.Message("pitchwheel", channel=2, pitch=0, time=10),
            mido.Message("aftertouch", channel=2, value=33, time=0),
        ]])
        events = analyze_midi(data).tracks[0].events
        assert events[0] == ProgramChange(0, 2, 10)
        assert events[1] == NoteOn(0, 2, 50, 80)
        # note_on with velocity 0 is a NoteOff
        assert events[2] == NoteOff(100, 2, 50, 0)
        assert events[3] == ControlChange(110, 2, 7, 99)
        assert events[4] == PitchBend(120, 2, 8192)
        assert events[5] == ChannelAftertouch(120, 2, 33)
        assert isinstance(events[-1], Meta) and events[-1].name == "end_of_track"

    def test_deltas_recomputed(self, song_bytes) -> None:
        """Deltas sum back to each event's absolute time."""
        for track in analyze_midi(song_bytes).tracks:
            running = 0
            for ev in track.events:
                running += ev.delta_time
                assert running == ev.absolute_time

    def test_meta_payload_is_raw_bytes(self) -> None:
        """Meta events keep their payload exactly as stored in the file."""
        data = build_midi([[mido.MetaMessage("set_tempo", tempo=500000, time=0)]])
        tempo = analyze_midi(data).tracks[0].events[0]
        assert tempo.name == "set_tempo"
        assert tempo.meta_type == 0x51
        assert tempo.data == bytes([0x07, 0xA1, 0x20])

    def test_meta_payload_with_multi_byte_length(self) -> None:
        """A payload longer than 127 bytes has a two-byte length prefix."""
        text = "x" * 300
        data = build_midi([[mido.MetaMessage("text", text=text, time=0)]])
        meta = analyze_midi(data).tracks[0].events[0]
        assert meta.meta_type == 0x01
        assert meta.data == text.encode("latin-1")

    def test_default_track_name_and_drum_name_hint(self) -> None:
        """Unnamed tracks get a numbered name; 'perc' in a name marks drums."""
        data = build_midi([
            [mido.Message("note_on", channel=0, note=40, velocity=1, time=0)],
            [mido.MetaMessage("track_name", name="Perc Loop", time=0)],
        ])
        first, second = analyze_midi(data).tracks
        assert first.name == "Track 1"
        assert not first.is_drums
        assert second.is_drums

    def test_analyze_midi_file(self, tmp_path, song_bytes) -> None:
        """Reading from disk uses the file name of the path."""
        path = tmp_path / "song.mid"
        path.write_bytes(song_bytes)
        parsed = analyze_midi_file(path)
        assert parsed.file_name == "song.mid"
        assert parsed.header.track_count == 3


class TestRawDecoding:
    """Byte-level behavior: running status, unsupported messages, errors."""

    def test_running_status(self) -> None:
        """A data byte without a status byte reuses the previous status."""
        body = bytes([0x00, 0x90, 0x3C, 0x64, 0x60, 0x3C, 0x00, 0x00, 0xFF, 0x2F, 0x00])
        events = analyze_midi(raw_smf([body], ppq=96)).tracks[0].events
        assert events[0] == NoteOn(0, 0, 60, 100)
        assert events[1] == NoteOff(96, 0, 60)
        assert analyze_midi(raw_smf([body], ppq=96)).ppq == 96

    def test_sysex_and_system_messages_are_unsupported_but_counted(self) -> None:
        """Sysex and clock messages stay in the track as Unsupported."""
        body = bytes([
            0x00, 0xF0, 0x03, 0x7E, 0x01, 0xF7,   # sysex
            0x00, 0xF8,                           # timing clock
            0x10, 0x90, 0x3C, 0x64,
            0x00, 0xFF, 0x2F, 0x00,
        ])
        track = analyze_midi(raw_smf([body])).tracks[0]
        unsupported = [e for e in track.events if isinstance(e, Unsupported)]
        assert [e.status for e in unsupported] == [0xF0, 0xF8]
        assert track.event_count == 4
        assert track.events[2] == NoteOn(16, 0, 60, 100)

    def test_empty_input(self) -> None:
        """Zero bytes is not a MIDI file."""
        with pytest.raises(DecodeError):
            analyze_midi(b"")

    def test_missing_header(self) -> None:
        """Input without an MThd chunk is rejected."""
        with pytest.raises(DecodeError):
            analyze_midi(b"RIFF\x00\x00\x00\x04WAVE")

    def test_truncated_header(self) -> None:
        """A header chunk shorter than six bytes is rejected."""
        with pytest.raises(DecodeError):
            analyze_midi(b"MThd\x00\x00\x00\x06\x00\x01")

    def test_chunk_length_overruns_buffer(self) -> None:
        """A track chunk claiming more bytes than present is rejected."""
        data = raw_smf([b"\x00\x90\x3c\x64"])
        # declared track length 100, only 4 bytes present
        data = data[:-8] + b"\x00\x00\x00\x64" + data[-4:]
        with pytest.raises(DecodeError):
            analyze_midi(data)

    def test_missing_track_chunk(self) -> None:
        """Fewer track chunks than the header announces is an error."""
        with pytest.raises(DecodeError):
            analyze_midi(raw_smf([], track_count=2))

    def test_running_status_without_previous_status(self) -> None:
        """Running status at the start of a track has nothing to repeat."""
        body = bytes([0x00, 0x3C, 0x64, 0x00, 0xFF, 0x2F, 0x00])
        with pytest.raises(DecodeError):
            analyze_midi(raw_smf([body]))

    def test_smpte_division_rejected(self) -> None:
        """SMPTE time division is not supported."""
        data = raw_smf([b"\x00\xff\x2f\x00"], ppq=0xE728)
        with pytest.raises(DecodeError):
            analyze_midi(data)

    def test_decode_error_is_chained(self) -> None:
        """The underlying parser error is kept as __cause__."""
        with pytest.raises(DecodeError) as exc:
            analyze_midi(b"not a midi file at all")
        assert exc.value.__cause__ is not None
