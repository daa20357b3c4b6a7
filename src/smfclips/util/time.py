from __future__ import annotations
from fractions import Fraction

TIME_SIGNATURE_NUMERATOR = 4  # 4/4 angenommen, Taktart-Metaevents werden ignoriert

def ticks_per_bar(ppq: int) -> int:
    return ppq * TIME_SIGNATURE_NUMERATOR

def ticks_per_step(ppq: int, steps_per_bar: int) -> Fraction:
    """Exakt, auch wenn ppq*4 nicht durch steps_per_bar teilbar ist."""
    return Fraction(ticks_per_bar(ppq), steps_per_bar)

def step_to_tick(step: int, ppq: int, steps_per_bar: int) -> int:
    # floor(step * ppq * 4 / steps_per_bar), rein ganzzahlig
    return (step * ticks_per_bar(ppq)) // steps_per_bar

def max_ticks_per_clip(max_steps: int, ppq: int, steps_per_bar: int) -> int:
    return step_to_tick(max_steps, ppq, steps_per_bar)

def calculate_steps(ticks: int, ppq: int, steps_per_bar: int) -> int:
    """Anzahl Steps, die `ticks` abdecken (aufgerundet)."""
    return -((-ticks * steps_per_bar) // ticks_per_bar(ppq))

def ticks_to_steps(ticks: int, ppq: int, steps_per_bar: int) -> int:
    return (ticks * steps_per_bar) // ticks_per_bar(ppq)

def steps_to_ticks(steps: int, ppq: int, steps_per_bar: int) -> int:
    return step_to_tick(steps, ppq, steps_per_bar)
