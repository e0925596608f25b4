"""Command-line entry point for the scenekit editor tools."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence, TextIO

import uvicorn

from scenekit import list_presets
from scenekit.api import EditorService, EditorSettings, create_app
from scenekit.api.settings import normalise_log_level, validate_preset

logger = logging.getLogger("scenekit.cli")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scenekit scene editor tools")
    parser.add_argument(
        "--project-root",
        type=Path,
        help=(
            "Project directory holding scene documents and generated sources. "
            "Defaults to SCENEKIT_PROJECT_ROOT when unset."
        ),
    )
    parser.add_argument(
        "--preset",
        type=str,
        help="Viewport preset used for newly created scenes.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level name (default: SCENEKIT_LOG_LEVEL or INFO).",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Regenerate scene sources.")
    generate.add_argument(
        "--scene",
        dest="scenes",
        action="append",
        metavar="NAME",
        help="Scene to generate. May be supplied multiple times (default: all).",
    )
    generate.add_argument(
        "--stdout",
        action="store_true",
        help="Print generated code instead of writing files.",
    )

    commands.add_parser("presets", help="List the viewport presets.")

    serve = commands.add_parser("serve", help="Run the editing API server.")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> EditorSettings:
    settings = EditorSettings.from_env()
    if args.project_root is not None:
        settings = replace(settings, project_root=args.project_root.expanduser())
    if args.preset is not None:
        settings = replace(settings, default_preset=validate_preset(args.preset))
    if args.log_level is not None:
        settings = replace(settings, log_level=normalise_log_level(args.log_level))
    return settings


def _print_presets(output: TextIO) -> None:
    for preset in list_presets():
        output.write(
            f"{preset.name:<18} {preset.width:>6g} x {preset.height:<6g} {preset.label}\n"
        )


def _generate(settings: EditorSettings, args: argparse.Namespace, output: TextIO) -> int:
    if settings.project_root is None:
        output.write(
            "A project root is required. Pass --project-root or set SCENEKIT_PROJECT_ROOT.\n"
        )
        return 2

    service = EditorService.from_settings(settings)
    known = service.scene_names()
    names = args.scenes or known
    if not names:
        output.write("No scenes found.\n")
        return 0
    unknown = [name for name in names if name.strip() not in known]
    if unknown:
        output.write(f"Failed to load scenes: unknown scene(s) {', '.join(unknown)}\n")
        return 2

    if args.stdout:
        documents, failures = service.load_scenes(names)
        for document in documents:
            outcome = asyncio.run(service.generate(document.name))
            output.write(outcome.result.code)
        for scene_name, message in failures.items():
            output.write(f"Error ({scene_name}): {message}\n")
        return 1 if failures else 0

    report = asyncio.run(service.export_all(names))
    for path in report.written:
        output.write(f"Wrote {path}\n")
    if report.index_path is not None:
        output.write(f"Wrote {report.index_path}\n")
    for scene_name, messages in report.warnings.items():
        for message in messages:
            output.write(f"Warning ({scene_name}): {message}\n")
    for path, message in report.script_errors.items():
        output.write(f"Script error ({path}): {message}\n")
    for scene_name, message in report.errors.items():
        output.write(f"Error ({scene_name}): {message}\n")
    return 0 if report.ok else 1


def main(argv: Sequence[str] | None = None) -> None:
    """Run the requested scenekit command."""

    args = _parse_args(argv)
    try:
        settings = _resolve_settings(args)
    except ValueError as exc:
        print(exc)
        raise SystemExit(2) from exc

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "presets":
        _print_presets(sys.stdout)
        return

    if args.command == "generate":
        status = _generate(settings, args, sys.stdout)
        if status:
            raise SystemExit(status)
        return

    logger.info("Serving the editor API on %s:%s", args.host, args.port)
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
