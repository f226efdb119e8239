"""Command-line options for the remeshing driver."""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, fields
from typing import Callable, Optional, Sequence

from .constraints import FACES, VERTICES, ConstraintSource
from .errors import HelpRequested, UsageError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

OUTPUT_BASENAME = "simplification"


@dataclass(frozen=True)
class RemeshingConfig:
    mesh_file: str
    vertex_count: int
    gradation: float = 0.0
    force_manifold: bool = False
    subsampling_threshold: int = 10
    display: int = 0
    number_of_threads: Optional[int] = None
    output_directory: Optional[str] = None
    split_long_edges: Optional[float] = None
    write_energy_log: bool = False
    pooling_ratio: Optional[int] = None
    quadrics_optimization_level: int = 3
    density_file: Optional[str] = None
    density_min: Optional[float] = None
    density_max: Optional[float] = None
    density_factor: Optional[float] = None
    boundary_fixing: bool = False
    constraint: Optional[ConstraintSource] = None
    output_format: str = "ply"

    @property
    def output_filename(self) -> str:
        return f"{OUTPUT_BASENAME}.{self.output_format}"


# (flag, dest, log label) in the order the options are echoed
_OPTION_LABELS = (
    ("-m", "force_manifold", "Force Manifold"),
    ("-s", "subsampling_threshold", "Subsampling Threshold"),
    ("-d", "display", "Display"),
    ("-np", "number_of_threads", "Number of threads"),
    ("-o", "output_directory", "OutputDirectory"),
    ("-l", "split_long_edges", "Split edges longer than average length times"),
    ("-w", "write_energy_log", "Writing energy log file"),
    ("-p", "pooling_ratio", "Thread pooling ratio"),
    ("-q", "quadrics_optimization_level", "Number of eigenvalues for quadrics"),
    ("-cd", "density_file", "Custom density file"),
    ("-cmax", "density_max", "Maximum custom density"),
    ("-cmin", "density_min", "Minimum custom density"),
    ("-cf", "density_factor", "Custom density multiplication factor"),
    ("-b", "boundary_fixing", "Boundary fixing"),
    ("-of", "output_format", "Output format"),
)


class _Parser(argparse.ArgumentParser):
    """ArgumentParser raising UsageError instead of exiting."""

    def error(self, message):
        raise UsageError(message)


def _switch(value: str) -> bool:
    try:
        return bool(int(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected 0 or 1, got '{value}'") from None


def _positive_float(value: str) -> float:
    x = float(value)
    if x <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got '{value}'")
    return x


def build_parser(prog: Optional[str] = "acvdq") -> argparse.ArgumentParser:
    p = _Parser(
        prog=prog,
        allow_abbrev=False,
        description=(
            "Adaptive coarsening of triangular meshes with Approximated Centroidal "
            "Voronoi Diagrams (quadrics enhanced), with optional fixed vertices."
        ),
        epilog=(
            "nvertices is the desired number of vertices; gradation defines the "
            "influence of local curvature (0=uniform meshing). Missing values are "
            "asked for interactively."
        ),
    )
    p.add_argument("mesh_file", metavar="file", help="Input mesh file")
    p.add_argument("vertex_count", metavar="nvertices", nargs="?", type=int, default=None)
    p.add_argument("gradation", nargs="?", type=float, default=None)

    p.add_argument("-b", dest="boundary_fixing", type=_switch, metavar="0/1",
                   help="sets mesh boundary fixing off/on (default : 0)")
    p.add_argument("-s", dest="subsampling_threshold", type=int, metavar="threshold",
                   help="the input mesh will be subdivided until its number of vertices "
                        "is above nvertices*threshold (default=10)")
    p.add_argument("-d", dest="display", type=int, choices=(0, 1, 2), metavar="0/1/2",
                   help="enables display (default : 0)")
    p.add_argument("-np", dest="number_of_threads", type=int, metavar="n",
                   help="number of threads, for engines that support it")
    p.add_argument("-p", dest="pooling_ratio", type=int, metavar="ratio",
                   help="thread pooling ratio, for engines that support it")
    p.add_argument("-o", dest="output_directory", metavar="path", help="output directory")
    p.add_argument("-l", dest="split_long_edges", type=_positive_float, metavar="ratio",
                   help="split the edges longer than ( averageLength * ratio )")
    p.add_argument("-w", dest="write_energy_log", type=_switch, metavar="0/1",
                   help="write the energy log file")
    p.add_argument("-q", dest="quadrics_optimization_level", type=int, choices=(1, 2, 3),
                   metavar="1/2/3",
                   help="number of eigenvalues used for quadric-based vertex relocation (default : 3)")
    p.add_argument("-cd", dest="density_file", metavar="file",
                   help="set custom imagedata file containing density information")
    p.add_argument("-cmin", dest="density_min", type=float, metavar="value",
                   help="set minimum custom indicator value")
    p.add_argument("-cmax", dest="density_max", type=float, metavar="value",
                   help="set maximum custom indicator value")
    p.add_argument("-cf", dest="density_factor", type=float, metavar="value",
                   help="set custom indicator multiplication factor")
    p.add_argument("-m", dest="force_manifold", type=_switch, metavar="0/1",
                   help="enforce a manifold output ON/OFF (default : 0)")
    p.add_argument("-of", dest="output_format", choices=("ply", "stl"), metavar="ply/stl",
                   help="output file format (default : ply)")

    fixed = p.add_mutually_exclusive_group()
    fixed.add_argument("-fv", dest="fixed_vertices", metavar="file",
                       help="file listing the ids of vertices to keep")
    fixed.add_argument("-ft", dest="fixed_faces", metavar="file",
                       help="file listing the ids of triangles whose vertices are kept")
    return p


def _prompt(input_fn: Callable[[str], str], question: str, cast):
    try:
        answer = input_fn(question)
    except EOFError:
        raise UsageError(f"No answer to '{question.strip()}'") from None
    try:
        return cast(answer.strip())
    except (AttributeError, ValueError):
        raise UsageError(f"Invalid answer to '{question.strip()}': {answer!r}") from None


def parse_options(
    argv: Sequence[str],
    input_fn: Callable[[str], str] = input,
    parser: Optional[argparse.ArgumentParser] = None,
) -> RemeshingConfig:
    """Build the remeshing configuration from command-line arguments.

    Parameters
    ----------
    argv : sequence of str
        Arguments without the program name:
        ``file [nvertices [gradation]] [flag value]...``.
    input_fn : callable, default ``input``
        Used to ask for ``nvertices`` and ``gradation`` when they are missing.

    Raises
    ------
    HelpRequested
        If ``argv`` is empty.
    UsageError
        On unknown flags, missing or malformed values.
    """
    argv = list(argv)
    if not argv:
        raise HelpRequested("no input file")
    parser = parser or build_parser()
    ns = parser.parse_args(argv)

    vertex_count = ns.vertex_count
    if vertex_count is None:
        vertex_count = _prompt(input_fn, "Number of vertices ? ", int)
    if vertex_count <= 0:
        raise UsageError(f"Number of vertices must be positive, got {vertex_count}")
    gradation = ns.gradation
    if gradation is None:
        gradation = _prompt(input_fn, "Gradation ? ", float)

    constraint = None
    if ns.fixed_vertices is not None:
        constraint = ConstraintSource(VERTICES, ns.fixed_vertices)
    elif ns.fixed_faces is not None:
        constraint = ConstraintSource(FACES, ns.fixed_faces)

    # Only explicitly given options override the dataclass defaults
    names = {f.name for f in fields(RemeshingConfig)}
    given = {
        dest: value
        for dest, value in vars(ns).items()
        if dest in names and value is not None and dest not in ("mesh_file", "vertex_count", "gradation")
    }
    config = RemeshingConfig(
        mesh_file=ns.mesh_file,
        vertex_count=vertex_count,
        gradation=gradation,
        constraint=constraint,
        **given,
    )

    for _flag, dest, label in _OPTION_LABELS:
        if dest in given:
            logger.info("%s=%s", label, given[dest])
    if constraint is not None:
        logger.info("Constraints (%s) from %s", constraint.kind, constraint.path)
    return config
