from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import ClipSettings, OutputMapping, OUTPUT_IDS, DEFAULT_BPM, DEFAULT_TRACK_NAME_TEMPLATE
from .process import merge_tracks
from .split import split_clips
from .timeline import ParsedFile
from .util.time import calculate_steps
from .write import encode_clip

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class ExportFile:
    filename: str
    data: bytes
    bus: str
    step_range: Tuple[int, int]
    split_index: Optional[int] = None

@dataclass
class ExportSummary:
    total_steps: int
    clips_per_bus: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return sum(self.clips_per_bus.values())

def clip_filename(bus: str, split_index: Optional[int] = None) -> str:
    return f"{bus}_{split_index}.mid" if split_index else f"{bus}.mid"

def export_bus(
    parsed: ParsedFile,
    mapping: OutputMapping,
    settings: ClipSettings,
    bpm: float = DEFAULT_BPM,
    track_name_template: str = DEFAULT_TRACK_NAME_TEMPLATE,
    single_track: bool = False,
) -> List[ExportFile]:
    """Merge -> Split -> Encode für einen Bus. Leerer Merge = keine Dateien."""
    mapping.validate()
    settings.validate()
    events = merge_tracks(parsed.tracks, mapping)
    if not events:
        logger.info("output %s: nothing to export", mapping.output_id)
        return []

    track_name = track_name_template.format(bus=mapping.output_id)
    files = []
    for clip in split_clips(events, settings, mapping.output_id):
        files.append(ExportFile(
            filename=clip_filename(mapping.output_id, clip.split_index),
            data=encode_clip(clip, settings.ppq, track_name, bpm=bpm, single_track=single_track),
            bus=mapping.output_id,
            step_range=clip.step_range,
            split_index=clip.split_index,
        ))
    logger.info("output %s: %d file(s)", mapping.output_id, len(files))
    return files

def export_all(
    parsed: ParsedFile,
    mappings: Sequence[OutputMapping],
    settings: ClipSettings,
    **kwargs,
) -> List[ExportFile]:
    # Busse sind unabhängig voneinander; jeder liest nur das ParsedFile
    files: List[ExportFile] = []
    for mapping in mappings:
        files.extend(export_bus(parsed, mapping, settings, **kwargs))
    return files

def build_metadata(
    parsed: ParsedFile,
    mappings: Sequence[OutputMapping],
    settings: ClipSettings,
    files: Sequence[ExportFile],
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Manifest (metadata.json) mit einem Eintrag pro exportierter Datei."""
    sources = {m.output_id: list(m.source_tracks) for m in mappings}
    ts = generated_at or datetime.now(timezone.utc)
    return {
        "generatedAt": ts.isoformat(),
        "sourceFile": parsed.file_name,
        "ppq": settings.ppq,
        "splitSettings": settings.as_dict(),
        "files": [
            {
                "filename": f.filename,
                "bus": f.bus,
                "splitIndex": f.split_index,
                "stepRange": {"start": f.step_range[0], "end": f.step_range[1]},
                "sourceTracks": sources.get(f.bus, []),
            }
            for f in files
        ],
    }

def write_export(
    out_dir,
    files: Sequence[ExportFile],
    metadata: Optional[Dict[str, Any]] = None,
    metadata_file: str = "metadata.json",
) -> List[Path]:
    """Schreibt alle Clips (+ Manifest) in out_dir (wird angelegt)."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []
    for f in files:
        path = out / f.filename
        path.write_bytes(f.data)
        written.append(path)
    if metadata is not None:
        path = out / metadata_file
        path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        written.append(path)
    return written

def summarize_export(
    parsed: ParsedFile,
    mappings: Sequence[OutputMapping],
    settings: ClipSettings,
) -> ExportSummary:
    """Vorschau: Steps gesamt, Clips je Bus und Warnungen, ohne zu encodieren."""
    settings.validate()
    summary = ExportSummary(total_steps=calculate_steps(parsed.duration, settings.ppq, settings.steps_per_bar))

    if len(mappings) > len(OUTPUT_IDS):
        summary.warnings.append(
            f"{len(mappings)} outputs configured, only {', '.join(OUTPUT_IDS)} are supported")
    seen = set()
    for m in mappings:
        if m.output_id in seen:
            summary.warnings.append(f"output {m.output_id} is configured more than once")
        seen.add(m.output_id)
        missing = [i for i in m.source_tracks if i >= len(parsed.tracks)]
        if missing:
            summary.warnings.append(f"output {m.output_id}: unknown source track(s) {missing}")

        events = merge_tracks(parsed.tracks, m)
        if not events:
            summary.warnings.append(f"output {m.output_id}: nothing to export")
            summary.clips_per_bus[m.output_id] = 0
            continue
        summary.clips_per_bus[m.output_id] = len(split_clips(events, settings, m.output_id))
    return summary
