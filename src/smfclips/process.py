from __future__ import annotations
import logging
from typing import List, Sequence

from .config import OutputMapping
from .timeline import Event, ProgramChange, Unsupported, Track, sort_events, with_deltas

logger = logging.getLogger(__name__)

def _keep(ev: Event, mapping: OutputMapping) -> bool:
    # SysEx/unbekannte Events sind im Ausgabeformat nicht darstellbar
    if isinstance(ev, Unsupported):
        return False
    if mapping.strip_program_change and isinstance(ev, ProgramChange):
        return False
    if mapping.channel_filter:
        ch = ev.channel_or_none
        if ch is not None and ch not in mapping.channel_filter:
            return False
    return True

def merge_tracks(tracks: Sequence[Track], mapping: OutputMapping) -> List[Event]:
    """
    Führt die Quell-Tracks eines Output-Busses zu einem zeitlich sortierten
    Stream zusammen. Reihenfolge bei gleichem Tick: Quell-Track-Reihenfolge,
    dann Reihenfolge im Track. Leeres Ergebnis = nichts zu exportieren.
    Unbekannte Track-Indizes werden übersprungen.
    """
    by_index = {t.index: t for t in tracks}
    merged: List[Event] = []
    skipped = 0
    for idx in mapping.source_tracks:
        track = by_index.get(idx)
        if track is None:
            logger.warning("output %s: source track %d does not exist", mapping.output_id, idx)
            continue
        for ev in track.events:
            if _keep(ev, mapping):
                merged.append(ev)
            else:
                skipped += 1

    out = with_deltas(sort_events(merged))
    logger.debug("output %s: merged %d events from tracks %s (%d filtered)",
                 mapping.output_id, len(out), list(mapping.source_tracks), skipped)
    return out
