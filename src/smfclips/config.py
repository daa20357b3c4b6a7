# src/smfclips/config.py
from __future__ import annotations
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, List, Optional
import copy
import yaml

from .errors import ConfigError
from .util.time import ticks_per_step, max_ticks_per_clip

# Paket-Root: .../src/smfclips
PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "smfclips" / "config.yaml"

DEFAULT_BPM = 120.0
DEFAULT_STEPS_PER_BAR = 16
DEFAULT_MAX_STEPS = 128
OUTPUT_IDS = ("A", "B", "C", "D")
DEFAULT_TRACK_NAME_TEMPLATE = "MC-101 Track {bus}"

def _safe_load(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out

def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Lädt die Konfiguration (Default + User-Overrides) und liefert ein gemergtes Dict
    mit den Abschnitten 'clip' und 'export'.
    """
    dpath = Path(default_path) if default_path else DEFAULT_CFG_PATH
    upath = Path(user_path) if user_path else USER_CFG_PATH

    cfg = _deep_merge(_safe_load(dpath), _safe_load(upath))

    # Minimal-Defaults sicherstellen
    clip = cfg.setdefault("clip", {})
    clip.setdefault("steps_per_bar", DEFAULT_STEPS_PER_BAR)
    clip.setdefault("max_steps_per_clip", DEFAULT_MAX_STEPS)
    clip.setdefault("ppq", None)
    exp = cfg.setdefault("export", {})
    exp.setdefault("bpm", DEFAULT_BPM)
    exp.setdefault("track_name_template", DEFAULT_TRACK_NAME_TEMPLATE)
    exp.setdefault("single_track", False)
    exp.setdefault("metadata_file", "metadata.json")
    return cfg

def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e

# ---------- Split-Einstellungen ----------

@dataclass
class ClipSettings:
    steps_per_bar: int = DEFAULT_STEPS_PER_BAR
    max_steps_per_clip: int = DEFAULT_MAX_STEPS
    ppq: int = 480

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], ppq: int) -> "ClipSettings":
        """ppq aus der Quelldatei, außer die Config erzwingt einen Wert."""
        clip = (cfg or {}).get("clip", {}) or {}
        forced = clip.get("ppq")
        settings = cls(
            steps_per_bar=_as_int(clip.get("steps_per_bar", DEFAULT_STEPS_PER_BAR), "steps_per_bar"),
            max_steps_per_clip=_as_int(clip.get("max_steps_per_clip", DEFAULT_MAX_STEPS), "max_steps_per_clip"),
            ppq=_as_int(forced if forced is not None else ppq, "ppq"),
        )
        settings.validate()
        return settings

    def validate(self) -> "ClipSettings":
        for name in ("steps_per_bar", "max_steps_per_clip", "ppq"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ConfigError(f"{name} must be > 0, got {value}")
        if self.max_ticks_per_clip < 1:
            raise ConfigError("clip window is shorter than one tick (raise ppq or max_steps_per_clip)")
        return self

    @property
    def ticks_per_step(self) -> Fraction:
        return ticks_per_step(self.ppq, self.steps_per_bar)

    @property
    def max_ticks_per_clip(self) -> int:
        return max_ticks_per_clip(self.max_steps_per_clip, self.ppq, self.steps_per_bar)

    def as_dict(self) -> Dict[str, int]:
        return {
            "stepsPerBar": self.steps_per_bar,
            "maxStepsPerClip": self.max_steps_per_clip,
            "ppq": self.ppq,
        }

# ---------- Output-Mapping ----------

@dataclass
class OutputMapping:
    output_id: str
    source_tracks: List[int] = field(default_factory=list)
    channel_filter: Optional[List[int]] = None   # None/leer = alle Kanäle
    strip_program_change: bool = False

    def validate(self) -> "OutputMapping":
        if self.output_id not in OUTPUT_IDS:
            raise ConfigError(f"output id must be one of {', '.join(OUTPUT_IDS)}, got {self.output_id!r}")
        if not self.source_tracks:
            raise ConfigError(f"output {self.output_id}: no source tracks")
        for idx in self.source_tracks:
            if isinstance(idx, bool) or not isinstance(idx, int) or idx < 0:
                raise ConfigError(f"output {self.output_id}: invalid track index {idx!r}")
        for ch in self.channel_filter or []:
            if isinstance(ch, bool) or not isinstance(ch, int) or not 0 <= ch <= 15:
                raise ConfigError(f"output {self.output_id}: invalid channel {ch!r}")
        return self

def _int_list(text: str, what: str) -> List[int]:
    out = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            out.append(int(part))
        except ValueError as e:
            raise ConfigError(f"invalid {what} {part!r}") from e
    return out

def parse_mapping(text: str) -> OutputMapping:
    """
    CLI-Syntax: 'A=0,1' oder 'B=2:ch=0,9:strip-pc'.
    Tracks sind 0-basierte Indizes der Quelldatei.
    """
    head, *opts = text.split(":")
    if "=" not in head:
        raise ConfigError(f"mapping must look like 'A=0,1', got {text!r}")
    bus, tracks = head.split("=", 1)
    mapping = OutputMapping(output_id=bus.strip().upper(), source_tracks=_int_list(tracks, "track index"))
    for opt in opts:
        opt = opt.strip()
        if opt.startswith("ch="):
            mapping.channel_filter = _int_list(opt[3:], "channel")
        elif opt in ("strip-pc", "strip_pc"):
            mapping.strip_program_change = True
        elif opt:
            raise ConfigError(f"unknown mapping option {opt!r} in {text!r}")
    return mapping.validate()
