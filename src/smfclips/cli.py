from __future__ import annotations
import argparse, logging, pathlib, sys
from typing import List

from . import analyze, export
from .config import ClipSettings, OutputMapping, OUTPUT_IDS, load_config, parse_mapping
from .errors import SmfClipsError
from .timeline import ParsedFile

def _default_mappings(parsed: ParsedFile) -> List[OutputMapping]:
    """Ohne --map: die ersten vier Tracks mit Noten auf A..D."""
    with_notes = [t for t in parsed.tracks if t.note_count > 0]
    return [OutputMapping(output_id=bus, source_tracks=[t.index])
            for bus, t in zip(OUTPUT_IDS, with_notes)]

def main(argv=None):
    p = argparse.ArgumentParser(description="SMF -> step-limited clips per output bus (A-D)")
    p.add_argument("--in", dest="infile", required=True, help="Input Standard MIDI File (.mid)")
    p.add_argument("--out-dir", dest="out_dir", default=None, help="Output directory (default: <input>_clips)")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    p.add_argument("--map", dest="maps", action="append", default=[],
                   help="Bus mapping, e.g. A=0,1 or B=2:ch=9:strip-pc (repeatable)")

    # Overrides für die Config
    p.add_argument("--steps-per-bar", type=int, default=None)
    p.add_argument("--max-steps", type=int, default=None, help="Max steps per clip")
    p.add_argument("--ppq", type=int, default=None, help="Force ppq used for splitting (default: from file)")
    p.add_argument("--bpm", type=float, default=None)
    p.add_argument("--single-track", action="store_true", help="Write SMF type 0 instead of conductor + track")
    p.add_argument("--summary", action="store_true", help="Only print the export summary, write nothing")
    p.add_argument("-v", "--verbose", action="store_true")

    args = p.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    in_path = pathlib.Path(args.infile).expanduser().resolve()
    if not in_path.exists():
        print(f"[cli] ERROR: Input not found: {in_path}", file=sys.stderr)
        sys.exit(1)
    print(f"[cli] infile = {in_path}")

    try:
        cfg = load_config(args.config)
        clip_cfg, exp_cfg = cfg["clip"], cfg["export"]
        if args.steps_per_bar is not None:
            clip_cfg["steps_per_bar"] = args.steps_per_bar
        if args.max_steps is not None:
            clip_cfg["max_steps_per_clip"] = args.max_steps
        if args.ppq is not None:
            clip_cfg["ppq"] = args.ppq

        parsed = analyze.analyze_midi(in_path.read_bytes(), in_path.name)
        settings = ClipSettings.from_config(cfg, parsed.ppq)
        mappings = [parse_mapping(m) for m in args.maps] or _default_mappings(parsed)

        for t in parsed.tracks:
            rng = f"{t.note_range[0]}-{t.note_range[1]}" if t.note_range else "-"
            drums = " drums" if t.is_drums else ""
            print(f"[cli] track {t.index:2d} {t.name!r}: events={t.event_count} notes={t.note_count} "
                  f"channels={sorted(t.channels)} range={rng}{drums}")

        if not mappings:
            print("[cli] WARNING: no tracks with notes, nothing to export.")
            return

        summary = export.summarize_export(parsed, mappings, settings)
        for bus, n in summary.clips_per_bus.items():
            print(f"[cli] bus {bus}: {n} clip(s)")
        for w in summary.warnings:
            print(f"[cli] WARNING: {w}")
        if args.summary:
            print(f"[cli] total steps={summary.total_steps} files={summary.file_count}")
            return

        bpm = args.bpm if args.bpm is not None else float(exp_cfg["bpm"])
        files = export.export_all(
            parsed, mappings, settings,
            bpm=bpm,
            track_name_template=exp_cfg["track_name_template"],
            single_track=args.single_track or bool(exp_cfg["single_track"]),
        )
        metadata = export.build_metadata(parsed, mappings, settings, files)
    except SmfClipsError as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    out_dir = pathlib.Path(args.out_dir).expanduser().resolve() if args.out_dir \
        else in_path.with_name(f"{in_path.stem}_clips")
    written = export.write_export(out_dir, files, metadata, exp_cfg["metadata_file"])
    print(f"[cli] clips -> {out_dir}")
    print(f"[cli] Done. files={len(written)} ppq={settings.ppq} total_steps={summary.total_steps}")
