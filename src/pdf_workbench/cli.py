"""
Command-line interface for pdf-workbench.

This file focuses on parsing arguments and dispatching to the commands
module. Options that can come from a YAML config default to
argparse.SUPPRESS so an explicit flag is the only thing that overrides the
config.
"""

from __future__ import annotations

import argparse
import getpass
import json
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .compress import PRESET_LOOKUP
from .config import deep_merge, dump_default_config_yaml, load_config
from .errors import PdfErrorCode, friendly_message
from .layout import ORIENTATIONS, PAGE_PRESETS, FitMode
from .loader import PasswordRequest
from .utils import UserError, normalize_path


TOP_LEVEL_EXAMPLES = """Examples:
  python -m pdf_workbench merge --pdf "a.pdf" "b.pdf" --out_dir "out"
  python -m pdf_workbench split --pdf "in.pdf" --out_dir "out" --pages "1-3,7"
  python -m pdf_workbench split --pdf "in.pdf" --out_dir "out" --pages_per_file 10
  python -m pdf_workbench edit --pdf "in.pdf" --out_dir "out" --order "3,1,2" --rotate "1:90" --delete "4"
  python -m pdf_workbench images --image "scan1.png" "scan2.jpg" --out_dir "out" --page_size a4 --fit fill
  python -m pdf_workbench compress --pdf "in.pdf" --out_dir "out" --preset smallest
  python -m pdf_workbench info --pdf "in.pdf"
  python -m pdf_workbench --config "workbench.yaml" compress --pdf "in.pdf" --out_dir "out"
"""

SPLIT_EXAMPLES = """Examples:
  python -m pdf_workbench split --pdf "in.pdf" --out_dir "out" --pages "1-3,7"
  python -m pdf_workbench split --pdf "in.pdf" --out_dir "out" --pages_per_file 10 --dry-run
"""

EDIT_EXAMPLES = """Examples:
  python -m pdf_workbench edit --pdf "in.pdf" --out_dir "out" --order "3,1,2"
  python -m pdf_workbench edit --pdf "in.pdf" --out_dir "out" --rotate "1:90,2:-90" --delete "5-7"
"""

IMAGES_EXAMPLES = """Examples:
  python -m pdf_workbench images --image "a.png" "b.jpg" --out_dir "out"
  python -m pdf_workbench images --image "a.png" --out_dir "out" --page_size square --fit center --margin 0
"""

COMPRESS_EXAMPLES = """Examples:
  python -m pdf_workbench compress --pdf "in.pdf" --out_dir "out" --preset high
  python -m pdf_workbench estimate --size 2500000
"""


def _verbosity_from_args(args: argparse.Namespace) -> str:
    """Resolve global verbosity mode from top-level flags."""

    if getattr(args, "quiet", False):
        return "quiet"
    if getattr(args, "verbose", False):
        return "verbose"
    return "normal"


def _prompt_password(reason: PdfErrorCode) -> Optional[str]:
    """Ask on the terminal; an empty answer cancels."""

    print(friendly_message(reason), file=sys.stderr)
    try:
        entered = getpass.getpass("Password (leave blank to cancel): ")
    except EOFError:
        return None
    return entered or None


def _password_request(args: argparse.Namespace) -> Optional[PasswordRequest]:
    if getattr(args, "no_prompt", False):
        return None
    return _prompt_password


def _effective_section(args: argparse.Namespace, section: str) -> tuple[Dict[str, Any], Path | None]:
    """Resolve defaults < YAML config < explicit CLI flags for one section."""

    config_path = normalize_path(args.config) if getattr(args, "config", None) else None
    effective = load_config(config_path)[section]

    raw_args = vars(args)
    cli_overrides = {key: raw_args[key] for key in effective if key in raw_args}
    return deep_merge(effective, cli_overrides), config_path


def _add_output_arguments(parser: argparse.ArgumentParser, out_help: str) -> None:
    parser.add_argument("--out_dir", required=True, help=out_help)
    parser.add_argument("--overwrite", action="store_true", help="Overwrite existing files.")
    parser.add_argument("--dry-run", action="store_true", help="Show actions without writing files.")
    parser.add_argument(
        "--manifest",
        help="Manifest path (default: out_dir/manifest.json).",
    )


def _add_password_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--password", help="Password to try first for encrypted PDFs.")
    parser.add_argument(
        "--no-prompt",
        action="store_true",
        help="Fail instead of prompting when a password is needed.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-workbench",
        description="Local PDF tools (merge, split, edit, images, compress).",
        epilog=TOP_LEVEL_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--config", help="Optional YAML config with per-command defaults.")
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-error console logs.",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug-level console logs.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    info_parser = subparsers.add_parser("info", help="Print page count and metadata as JSON.")
    info_parser.add_argument("--pdf", required=True, help="Input PDF path.")
    _add_password_arguments(info_parser)

    merge_parser = subparsers.add_parser(
        "merge",
        help="Merge two or more PDFs in the order given.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    merge_parser.add_argument("--pdf", nargs="+", required=True, help="Input PDF paths, in order.")
    _add_output_arguments(merge_parser, "Output folder for the merged PDF.")
    _add_password_arguments(merge_parser)

    split_parser = subparsers.add_parser(
        "split",
        help="Extract selected pages or split into fixed-size parts.",
        epilog=SPLIT_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    split_parser.add_argument("--pdf", required=True, help="Input PDF path.")
    split_parser.add_argument(
        "--pages",
        default=argparse.SUPPRESS,
        help='Pages to extract into one PDF, e.g. "1-3,7" (1-based).',
    )
    split_parser.add_argument(
        "--pages_per_file",
        type=int,
        default=argparse.SUPPRESS,
        help="Pages per output part (config: split.pages_per_file).",
    )
    _add_output_arguments(split_parser, "Output folder for split PDFs.")
    _add_password_arguments(split_parser)

    edit_parser = subparsers.add_parser(
        "edit",
        help="Reorder, rotate and delete pages.",
        epilog=EDIT_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    edit_parser.add_argument("--pdf", required=True, help="Input PDF path.")
    edit_parser.add_argument("--order", help='Pages to move to the front, e.g. "3,1,2".')
    edit_parser.add_argument(
        "--rotate",
        help='Clockwise rotation per page, e.g. "1:90,3:-90".',
    )
    edit_parser.add_argument("--delete", help='Pages to drop, e.g. "4,6-8".')
    _add_output_arguments(edit_parser, "Output folder for the edited PDF.")
    _add_password_arguments(edit_parser)

    images_parser = subparsers.add_parser(
        "images",
        help="Build a PDF with one page per image.",
        epilog=IMAGES_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    images_parser.add_argument("--image", nargs="+", required=True, help="Input image paths, in order.")
    images_parser.add_argument(
        "--page_size",
        choices=sorted(PAGE_PRESETS),
        default=argparse.SUPPRESS,
        help="Page preset (config: images.page_size).",
    )
    images_parser.add_argument(
        "--orientation",
        choices=list(ORIENTATIONS),
        default=argparse.SUPPRESS,
        help="portrait or landscape (config: images.orientation).",
    )
    images_parser.add_argument(
        "--fit",
        choices=[mode.value for mode in FitMode],
        default=argparse.SUPPRESS,
        help="fit=contain, fill=cover, center=natural size capped to the page.",
    )
    images_parser.add_argument(
        "--margin",
        type=float,
        default=argparse.SUPPRESS,
        help="Margin in points on every side (config: images.margin).",
    )
    _add_output_arguments(images_parser, "Output folder for the PDF.")

    compress_parser = subparsers.add_parser(
        "compress",
        help="Rasterize and re-encode every page to shrink a PDF.",
        epilog=COMPRESS_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    compress_parser.add_argument("--pdf", required=True, help="Input PDF path.")
    compress_parser.add_argument(
        "--preset",
        choices=list(PRESET_LOOKUP),
        default=argparse.SUPPRESS,
        help="Compression preset (config: compress.preset).",
    )
    _add_output_arguments(compress_parser, "Output folder for the compressed PDF.")
    _add_password_arguments(compress_parser)

    estimate_parser = subparsers.add_parser(
        "estimate",
        help="Print estimated compressed sizes for every preset.",
    )
    estimate_parser.add_argument("--size", type=int, required=True, help="Original size in bytes.")

    subparsers.add_parser("dump-default-config", help="Print the default YAML config and exit.")

    return parser


def _command_string(argv: list[str]) -> str:
    """Reconstruct a command string for the manifest."""

    return subprocess.list2cmdline(argv)


def _command_argv_for_manifest(argv: list[str] | None) -> list[str]:
    """Choose argv used to record manifest command faithfully."""

    if argv is None:
        return list(sys.argv)
    return [sys.argv[0], *argv]


def _options_for_manifest(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Build a JSON-friendly options dict.

    Passwords never reach the manifest.
    """

    options: Dict[str, Any] = {}
    for key, value in vars(args).items():
        if key == "password":
            options[key] = "***" if value else None
        elif isinstance(value, Path):
            options[key] = str(value)
        else:
            options[key] = value
    options["version"] = __version__
    return options


def _manifest_path(args: argparse.Namespace, out_dir: Path) -> Path:
    return normalize_path(args.manifest) if args.manifest else out_dir / "manifest.json"


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        command_string = _command_string(_command_argv_for_manifest(argv))
        options = _options_for_manifest(args)
        options["verbosity"] = _verbosity_from_args(args)

        if args.command == "dump-default-config":
            print(dump_default_config_yaml())
            return 0

        if args.command == "estimate":
            from .commands import estimate_sizes

            print(json.dumps(estimate_sizes(args.size), indent=2))
            return 0

        if args.command == "info":
            from .commands import describe_pdf

            info = describe_pdf(
                normalize_path(args.pdf),
                password=args.password,
                request_password=_password_request(args),
            )
            print(json.dumps(info, indent=2))
            return 0

        if args.command == "merge":
            from .commands import merge_pdfs

            out_dir = normalize_path(args.out_dir)
            merge_pdfs(
                pdf_paths=[normalize_path(value) for value in args.pdf],
                out_dir=out_dir,
                overwrite=args.overwrite,
                dry_run=args.dry_run,
                manifest_path=_manifest_path(args, out_dir),
                command_string=command_string,
                options=options,
                password=args.password,
                request_password=_password_request(args),
            )
            return 0

        if args.command == "split":
            from .commands import split_pdf

            pages_spec = getattr(args, "pages", None)
            if pages_spec and hasattr(args, "pages_per_file"):
                raise UserError("Use either --pages or --pages_per_file, not both.")
            pages_per_file = None
            if not pages_spec:
                effective, config_path = _effective_section(args, "split")
                pages_per_file = effective["pages_per_file"]
                if config_path is not None:
                    options["config_path"] = str(config_path)

            out_dir = normalize_path(args.out_dir)
            split_pdf(
                pdf_path=normalize_path(args.pdf),
                out_dir=out_dir,
                pages_spec=pages_spec,
                pages_per_file=pages_per_file,
                overwrite=args.overwrite,
                dry_run=args.dry_run,
                manifest_path=_manifest_path(args, out_dir),
                command_string=command_string,
                options=options,
                password=args.password,
                request_password=_password_request(args),
            )
            return 0

        if args.command == "edit":
            from .commands import edit_pdf

            if not (args.order or args.rotate or args.delete):
                raise UserError("edit needs at least one of --order, --rotate or --delete.")
            out_dir = normalize_path(args.out_dir)
            edit_pdf(
                pdf_path=normalize_path(args.pdf),
                out_dir=out_dir,
                order_spec=args.order,
                rotate_spec=args.rotate,
                delete_spec=args.delete,
                overwrite=args.overwrite,
                dry_run=args.dry_run,
                manifest_path=_manifest_path(args, out_dir),
                command_string=command_string,
                options=options,
                password=args.password,
                request_password=_password_request(args),
            )
            return 0

        if args.command == "images":
            from .commands import images_to_pdf_file

            effective, config_path = _effective_section(args, "images")
            if config_path is not None:
                options["config_path"] = str(config_path)
            options["images"] = effective
            out_dir = normalize_path(args.out_dir)
            images_to_pdf_file(
                image_paths=[normalize_path(value) for value in args.image],
                out_dir=out_dir,
                page_size=str(effective["page_size"]),
                orientation=str(effective["orientation"]),
                fit_mode=str(effective["fit"]),
                margin=float(effective["margin"]),
                overwrite=args.overwrite,
                dry_run=args.dry_run,
                manifest_path=_manifest_path(args, out_dir),
                command_string=command_string,
                options=options,
            )
            return 0

        if args.command == "compress":
            from .commands import compress_pdf

            effective, config_path = _effective_section(args, "compress")
            if config_path is not None:
                options["config_path"] = str(config_path)
            out_dir = normalize_path(args.out_dir)
            compress_pdf(
                pdf_path=normalize_path(args.pdf),
                out_dir=out_dir,
                preset_id=str(effective["preset"]),
                overwrite=args.overwrite,
                dry_run=args.dry_run,
                manifest_path=_manifest_path(args, out_dir),
                command_string=command_string,
                options=options,
                password=args.password,
                request_password=_password_request(args),
            )
            return 0

        raise UserError("Unknown command. Use --help for usage.")
    except UserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
