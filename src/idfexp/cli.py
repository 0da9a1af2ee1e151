"""Command line entry point: ``idfexp script.ini [outpath] [options]``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from idfexp.evaluate import IDFExpError
from idfexp.grid import Grid
from idfexp.model.extent import Extent
from idfexp.model.settings import DEFAULT_MAX_DEPTH, ExpressionSettings
from idfexp.script import ScriptInterpreter

logger = logging.getLogger("idfexp")

LOG_FORMAT = "%(message)s"
OWN_NODATA = "own"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idfexp",
        description="Evaluate expressions over IDF grids as defined in an INI script",
    )
    parser.add_argument("script", help="Path to the .ini script with expressions")
    parser.add_argument(
        "outpath", nargs="?", default="",
        help="Directory for result grids (default: directory of the script)",
    )
    parser.add_argument(
        "-e", "--extent",
        help="Fixed extent as xll,yll,xur,yur or an IDF file whose extent is used",
    )
    parser.add_argument(
        "-v", "--nodata-as-value", nargs="?", const=OWN_NODATA, default=None, metavar="VALUE",
        help="Use NoData cells in calculations with VALUE, or with each grid's own NoData value",
    )
    parser.add_argument("-d", "--debug", action="store_true",
                        help="Log sub-expressions and write intermediate grids")
    parser.add_argument("-i", "--intermediate", action="store_true",
                        help="Write intermediate results to <outpath>/debug")
    parser.add_argument("-m", "--metadata", action="store_true",
                        help="Write a .MET metadata file for each result grid")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Stop without error when an IDF file is missing")
    parser.add_argument(
        "-r", "--round", nargs="?", const=0, default=None, type=int, metavar="DECIMALS",
        help="Round result grids to DECIMALS decimals (default 0)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log comment lines")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH,
                        help="Maximum nesting depth of expressions")
    parser.add_argument("--log-file", help="Also write log messages to this file")
    return parser


def parse_extent(text: str, base_path: Path | None = None) -> Extent:
    """Extent from coordinates or from the header of an IDF file."""
    if text.lower().endswith(".idf"):
        path = Path(text)
        if not path.is_absolute() and base_path is not None:
            path = base_path / path
        return Grid.read(path).extent
    return Extent.from_string(text)


def settings_from_args(args: argparse.Namespace) -> ExpressionSettings:
    script = Path(args.script).resolve()
    base_path = script.parent
    output_path = Path(args.outpath) if args.outpath else base_path

    use_nodata_as_value = args.nodata_as_value is not None
    nodata_value = None
    if use_nodata_as_value and args.nodata_as_value != OWN_NODATA:
        nodata_value = float(args.nodata_as_value)

    return ExpressionSettings(
        base_path=base_path,
        output_path=output_path,
        extent=parse_extent(args.extent, base_path) if args.extent else None,
        use_nodata_as_value=use_nodata_as_value,
        nodata_value=nodata_value,
        debug=args.debug,
        write_intermediate=args.intermediate,
        verbose=args.verbose,
        quiet=args.quiet,
        add_metadata=args.metadata,
        round_results=args.round is not None,
        decimal_count=args.round if args.round is not None else -1,
        max_depth=args.max_depth,
    )


def configure_logging(debug: bool, log_file: str | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug, args.log_file)
    try:
        settings = settings_from_args(args)
        settings.resolve_output_dir().mkdir(parents=True, exist_ok=True)
        return ScriptInterpreter(settings).run_file(args.script)
    except (IDFExpError, OSError, ValueError) as exc:
        logger.error("Error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
