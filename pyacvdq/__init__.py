"""pyacvdq: constrained ACVD mesh simplification driver.

Public API:
- parse_options(argv, input_fn=input) -> RemeshingConfig
- resolve(source, mesh) -> AnchorSet
- Pipeline(config, engine, viewer=None).run() -> PipelineResult
- find_moved_anchor(input_vertices, output_vertices, anchors)
- IdentityEngine, RemeshingEngine (pyacvd backend in pyacvdq.acvd)

"""
from .config import RemeshingConfig, parse_options
from .constraints import AnchorSet, ConstraintSource, resolve
from .engine import IdentityEngine, RemeshingEngine
from .errors import (
    ACVDError,
    ConstraintViolation,
    HelpRequested,
    InvalidConstraintFile,
    MeshLoadError,
    OutputWriteError,
    RemeshingFailed,
    UsageError,
)
from .mesh import MeshManager
from .pipeline import Pipeline, PipelineResult, PipelineState
from .verify import check_anchors, find_moved_anchor

__all__ = [
    "RemeshingConfig",
    "parse_options",
    "AnchorSet",
    "ConstraintSource",
    "resolve",
    "IdentityEngine",
    "RemeshingEngine",
    "ACVDError",
    "ConstraintViolation",
    "HelpRequested",
    "InvalidConstraintFile",
    "MeshLoadError",
    "OutputWriteError",
    "RemeshingFailed",
    "UsageError",
    "MeshManager",
    "Pipeline",
    "PipelineResult",
    "PipelineState",
    "check_anchors",
    "find_moved_anchor",
]
