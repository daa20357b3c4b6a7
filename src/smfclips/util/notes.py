from __future__ import annotations
from collections import defaultdict, deque
from typing import Deque, Dict, List, Sequence, Tuple

from ..timeline import Event, NoteOn, NoteOff, NoteSpan

def match_notes(events: Sequence[Event]) -> List[NoteSpan]:
    """
    Paart NoteOn/NoteOff pro (channel, note) nach FIFO: jedes NoteOff schließt
    das früheste noch offene NoteOn derselben Tonhöhe. Erwartet einen nach
    absolute_time sortierten Stream.

    NoteOffs ohne offenes NoteOn werden ignoriert; NoteOns ohne NoteOff
    erscheinen mit end=None. Ergebnis ist nach Start (und Stream-Reihenfolge)
    sortiert.
    """
    open_notes: Dict[Tuple[int, int], Deque[int]] = defaultdict(deque)
    spans: Dict[int, NoteSpan] = {}

    for i, ev in enumerate(events):
        if isinstance(ev, NoteOn):
            open_notes[(ev.channel, ev.note)].append(i)
            spans[i] = NoteSpan(ev.channel, ev.note, ev.velocity, ev.absolute_time, None, i)
        elif isinstance(ev, NoteOff):
            queue = open_notes.get((ev.channel, ev.note))
            if not queue:
                continue
            on_idx = queue.popleft()
            on = spans[on_idx]
            spans[on_idx] = NoteSpan(on.channel, on.note, on.velocity, on.start,
                                     ev.absolute_time, on_idx, i)

    return [spans[k] for k in sorted(spans)]
