"""
Command-line entry point.

    acvdq file nvertices gradation [options]

Runs ACVD simplification of ``file`` down to ``nvertices`` vertices (plus
one vertex per fixed vertex), checks that fixed vertices were kept, and
writes ``simplification.ply`` to the output directory.

Exit codes: 0 success or help, 1 fixed vertex lost, 2 usage error,
3 unreadable mesh, 4 invalid constraint file, 5 remeshing failure,
6 output not writable, 7 unexpected error.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Callable, Optional, Sequence

from .config import build_parser, parse_options
from .engine import RemeshingEngine
from .errors import UNEXPECTED_ERROR_EXIT_CODE, ACVDError, HelpRequested, UsageError
from .pipeline import Pipeline, Viewer

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

LOG_LEVEL_ENV = "PYACVDQ_LOG_LEVEL"


def configure_logging(level: Optional[str] = None, stream=None) -> None:
    """Send pyacvdq diagnostics to stdout as plain messages."""
    root = logging.getLogger("pyacvdq")
    handler = next((h for h in root.handlers if getattr(h, "_pyacvdq_cli", False)), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._pyacvdq_cli = True
        root.addHandler(handler)
    # sys.stdout looked up per call, it may have been replaced since
    handler.setStream(stream or sys.stdout)
    level = level or os.environ.get(LOG_LEVEL_ENV, "INFO")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def default_engine() -> RemeshingEngine:
    from .acvd import PyACVDEngine

    return PyACVDEngine()


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    input_fn: Callable[[str], str] = input,
    engine_factory: Callable[[], RemeshingEngine] = default_engine,
    viewer: Optional[Viewer] = None,
) -> int:
    """Run the driver and return the process exit code."""
    configure_logging()
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()

    try:
        config = parse_options(argv, input_fn=input_fn, parser=parser)
        Pipeline(config, engine_factory(), viewer=viewer).run()
    except HelpRequested as e:
        parser.print_help(sys.stdout)
        return e.exit_code
    except UsageError as e:
        parser.print_usage(sys.stdout)
        print(f"{parser.prog}: error: {e}")
        return e.exit_code
    except ACVDError as e:
        print(e)
        return e.exit_code
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        return UNEXPECTED_ERROR_EXIT_CODE
    return 0


if __name__ == "__main__":
    sys.exit(main())
