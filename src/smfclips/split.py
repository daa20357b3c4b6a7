from __future__ import annotations
import logging
from bisect import bisect_left, bisect_right
from typing import Dict, List, Sequence, Tuple

from .config import ClipSettings
from .timeline import Clip, Event, NoteOn, NoteOff, NoteSpan, rebase, sort_events, with_deltas, last_tick
from .util.notes import match_notes
from .util.time import calculate_steps, step_to_tick

logger = logging.getLogger(__name__)

def _window_edges(total_ticks: int, settings: ClipSettings) -> List[int]:
    """
    Startticks aller Fenster plus das Ende des letzten Fensters.
    Fenstergrenzen liegen auf Vielfachen von max_steps_per_clip (ganzzahlig abgerundet).
    """
    edges = [0]
    k = 1
    while edges[-1] < total_ticks:
        edges.append(step_to_tick(k * settings.max_steps_per_clip, settings.ppq, settings.steps_per_bar))
        k += 1
    return edges

def _repair_boundaries(
    spans: Sequence[NoteSpan],
    edges: Sequence[int],
    tail: int,
) -> Tuple[Dict[int, List[Event]], Dict[int, List[Event]]]:
    """
    Erzeugt für jede Note, die über eine Fenstergrenze klingt, ein NoteOn bei
    Tick 0 der Folgefenster und ein NoteOff einen Tick vor Clipende.
    Das letzte Fenster endet bei `tail` (Ende des letzten Steps), nicht bei der Fenstergrenze.
    Liefert (ons, offs) je Fensterindex, bereits rebasiert.
    """
    n_windows = len(edges) - 1
    ons: Dict[int, List[Event]] = {}
    offs: Dict[int, List[Event]] = {}

    for sp in spans:
        first = bisect_right(edges, sp.start) - 1
        for w in range(first, n_windows):
            start, end = edges[w], edges[w + 1]
            if sp.end is not None and sp.end < start:
                break
            if w > first:
                # klingt beim Fensterbeginn noch
                ons.setdefault(w, []).append(NoteOn(0, sp.channel, sp.note, sp.velocity))
            if sp.end is None or sp.end >= end:
                off_at = min(end, tail) - start - 1
                if w == first:
                    # hängende Note auf dem letzten Tick: nie vor ihrem NoteOn schließen
                    off_at = max(off_at, sp.start - start)
                offs.setdefault(w, []).append(NoteOff(off_at, sp.channel, sp.note, 0))
            else:
                break
    return ons, offs

def split_clips(events: Sequence[Event], settings: ClipSettings, bus: str = "A") -> List[Clip]:
    """
    Teilt einen sortierten Event-Stream in Clips von höchstens
    settings.max_steps_per_clip Steps. Die Step-Bereiche der Clips decken
    [0, total_steps) lückenlos ab; Noten über Clipgrenzen werden repariert.
    """
    settings.validate()
    events = list(events)
    ppq, spb = settings.ppq, settings.steps_per_bar
    max_ticks = settings.max_ticks_per_clip
    total_ticks = last_tick(events)
    total_steps = calculate_steps(total_ticks, ppq, spb)
    tail = step_to_tick(total_steps, ppq, spb)

    if total_ticks <= max_ticks:
        return [Clip(bus, tuple(with_deltas(events)), 0, total_steps, None, 0, tail)]

    edges = _window_edges(total_ticks, settings)
    ons, offs = _repair_boundaries(match_notes(events), edges, tail)
    ticks = [ev.absolute_time for ev in events]

    clips: List[Clip] = []
    for w in range(len(edges) - 1):
        start, end = edges[w], edges[w + 1]
        lo, hi = bisect_left(ticks, start), bisect_left(ticks, end)
        copied = rebase(events[lo:hi], start)

        # synthetische NoteOns vor, synthetische NoteOffs nach den echten Events gleichen Ticks
        clip_events = with_deltas(sort_events(ons.get(w, []) + copied + offs.get(w, [])))

        start_step = w * settings.max_steps_per_clip
        end_step = min(start_step + settings.max_steps_per_clip, total_steps)
        clips.append(Clip(bus, tuple(clip_events), start_step, end_step, w + 1, start, min(end, tail)))

    logger.debug("bus %s: %d ticks -> %d clips (%d ticks each)", bus, total_ticks, len(clips), max_ticks)
    return clips
