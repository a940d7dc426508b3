"""Command-line interface for the scene engine.

WHY: Operators and scripts need to render a scene (or a whole story)
from a JSON request without running the HTTP server. The CLI wires the
request adapter, the pipeline and the formatter registry behind four
subcommands.

HOW: argparse with subcommands:
  render    REQUEST.json --output-dir DIR  frames + captions + clip
  captions  REQUEST.json --output-dir DIR  caption files only
  effects                                   list effect identifiers
  presets                                   list caption style presets
Status messages go to stderr; logging is configured with basicConfig
(INFO, or DEBUG with --verbose).

RULES:
- Exit code 0 on success, 1 on an engine or tool failure (including any
  failed scene of a story), 2 on usage errors (argparse)
- --formats: comma-separated formatter keys (default: all registered)
- A request file holding {"scenes": [...]} is rendered as a story
- Status output goes to stderr (not stdout); `effects` and `presets`
  print to stdout
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from scene_engine import __version__, config
from scene_engine.adapters.request_adapter import load_request_file
from scene_engine.core.effects import EFFECT_DESCRIPTIONS, Effect
from scene_engine.core.errors import ExternalToolFailure, SceneEngineError
from scene_engine.core.renderer import FrameRenderer
from scene_engine.formatters import FORMATTERS
from scene_engine.formatters.presets import CAPTION_PRESETS
from scene_engine.pipeline import (
    SceneResult,
    build_caption_track,
    render_scene,
    render_story,
    scene_stem,
    write_caption_files,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _parse_formats(raw: Optional[str]) -> List[str]:
    """Split --formats and check every key is registered.

    Raises:
        ValueError: On an unknown key, naming the available ones.
    """
    if not raw:
        return list(FORMATTERS.keys())
    keys = [f.strip() for f in raw.split(",") if f.strip()]
    for key in keys:
        if key not in FORMATTERS:
            available = ", ".join(sorted(FORMATTERS.keys()))
            raise ValueError("Unknown format '{}'. Available formats: {}".format(key, available))
    return keys


def _report_scene(result: SceneResult) -> None:
    _status("  Scene {}: {} frames ({}{})".format(
        result.scene_index,
        result.frames.total_frames,
        result.frames.effect.value,
        ", fell back from unknown effect" if result.frames.effect_fell_back else "",
    ))
    if result.captions_degraded:
        _status("  Scene {}: captions dropped after a caption failure".format(result.scene_index))
    for path in result.output_files:
        _status("    Saved: {}".format(path.name))


def _frame_progress(progress: float, message: str) -> None:
    if progress >= 1.0:
        _status("  {}".format(message))


def _cmd_render(args: argparse.Namespace) -> int:
    formats = _parse_formats(args.formats)
    requests, is_story = load_request_file(args.request)
    output_dir = Path(args.output_dir).resolve()
    renderer = FrameRenderer(max_workers=args.workers) if args.workers else FrameRenderer()

    if not is_story:
        request = requests[0]
        _status("Rendering scene {} ({}x{}, {:.2f}s, effect '{}')...".format(
            request.scene_index, request.width, request.height,
            request.duration, request.effect,
        ))
        result = render_scene(
            request,
            output_dir,
            renderer=renderer,
            formats=formats,
            assemble=not args.no_assemble,
            keep_frames=args.keep_frames,
            degrade_captions=args.degrade_captions,
            on_stage=lambda stage: _status("  Stage: {}".format(stage)),
            progress_callback=_frame_progress,
        )
        _report_scene(result)
        _status("Done! Output in {}".format(output_dir))
        return EXIT_OK

    _status("Rendering story of {} scenes...".format(len(requests)))
    story = render_story(
        requests,
        output_dir,
        renderer=renderer,
        formats=formats,
        assemble=not args.no_assemble,
        keep_frames=args.keep_frames,
        degrade_captions=args.degrade_captions,
        max_parallel_scenes=args.scene_workers,
    )
    for outcome in story.outcomes:
        if outcome.result is not None:
            _report_scene(outcome.result)
        else:
            _status("  Scene {} FAILED: {}".format(outcome.scene_index, outcome.error))
    for caption in story.caption_files:
        _status("  Saved: {}".format(caption.path.name))
    if story.captions_degraded:
        _status("  Story: captions dropped after a caption failure")
    if story.clip is not None:
        _status("  Saved: {}".format(story.clip.output_path.name))

    if story.failed:
        _status("{} of {} scenes failed; re-run them individually.".format(
            len(story.failed), len(story.outcomes)
        ))
        return EXIT_FAILURE
    if story.error is not None:
        _status("Story assembly FAILED: {}".format(story.error))
        return EXIT_FAILURE
    _status("Done! Output in {}".format(output_dir))
    return EXIT_OK


def _cmd_captions(args: argparse.Namespace) -> int:
    formats = _parse_formats(args.formats)
    requests, _ = load_request_file(args.request)
    output_dir = Path(args.output_dir).resolve()
    output_dir.mkdir(parents=True, exist_ok=True)

    saved = 0
    for request in requests:
        written = write_caption_files(
            build_caption_track(request), output_dir, scene_stem(request.scene_index), formats
        )
        if not written:
            _status("  Scene {}: no caption input".format(request.scene_index))
        for caption in written:
            _status("  Saved: {}".format(caption.path.name))
        saved += len(written)

    _status("Done! Saved {} file(s) to {}".format(saved, output_dir))
    return EXIT_OK


def _cmd_effects(args: argparse.Namespace) -> int:
    for effect in Effect:
        print("{:<12} {}".format(effect.value, EFFECT_DESCRIPTIONS[effect]))
    return EXIT_OK


def _cmd_presets(args: argparse.Namespace) -> int:
    for key, preset in sorted(CAPTION_PRESETS.items()):
        print("{:<10} {} {}".format(key, preset["fontFamily"], preset["inactiveColor"]))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="scene_engine",
        description="Render still images into animated, captioned video scenes.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    formats_help = "Comma-separated caption formats. Available: {}. Default: all.".format(
        ", ".join(sorted(FORMATTERS.keys()))
    )

    render = sub.add_parser("render", help="Render a scene or story request.")
    render.add_argument("request", help="Path to the scene (or story) request JSON.")
    render.add_argument("--output-dir", required=True, help="Directory for all outputs.")
    render.add_argument(
        "--no-assemble",
        action="store_true",
        help="Stop after frames and caption files; do not run ffmpeg.",
    )
    render.add_argument(
        "--keep-frames",
        action="store_true",
        help="Keep the PNG frame directory after the clip is assembled.",
    )
    render.add_argument(
        "--degrade-captions",
        action="store_true",
        help="Produce an uncaptioned clip instead of failing on caption errors.",
    )
    render.add_argument("--formats", default=None, help=formats_help)
    render.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Frame render threads (default: SCENE_ENGINE_FRAME_WORKERS).",
    )
    render.add_argument(
        "--scene-workers",
        type=int,
        default=config.SCENE_WORKERS,
        help="Scenes rendered in parallel for a story (default: %(default)s).",
    )
    render.set_defaults(func=_cmd_render)

    captions = sub.add_parser("captions", help="Write caption files only.")
    captions.add_argument("request", help="Path to the scene (or story) request JSON.")
    captions.add_argument("--output-dir", required=True, help="Directory for caption files.")
    captions.add_argument("--formats", default=None, help=formats_help)
    captions.set_defaults(func=_cmd_captions)

    effects = sub.add_parser("effects", help="List the available motion effects.")
    effects.set_defaults(func=_cmd_effects)

    presets = sub.add_parser("presets", help="List the caption style presets.")
    presets.set_defaults(func=_cmd_presets)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Returns the process exit code; argparse exits with 2 on bad usage
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        return 130
    except ExternalToolFailure as exc:
        _status("Error: ffmpeg failed in stage '{}' (exit code {})".format(
            exc.stage.value, exc.returncode
        ))
        if exc.stderr:
            _status(exc.stderr)
        return EXIT_FAILURE
    except (SceneEngineError, ValueError) as exc:
        _status("Error: {}".format(exc))
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
