from __future__ import annotations

from typing import Iterable, Optional

import logging
import numpy as np

from .errors import ConstraintViolation

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def find_moved_anchor(
    input_vertices: np.ndarray,
    output_vertices: np.ndarray,
    anchors: Iterable[int],
) -> Optional[int]:
    """Return the first anchor whose position changed, or None.

    Anchor ``i`` (an id into ``input_vertices``) must sit at position ``i`` of
    ``output_vertices`` with bitwise equal coordinates. An anchor without an
    output counterpart counts as moved.
    """
    V_in = np.asarray(input_vertices, dtype=np.float64)
    V_out = np.asarray(output_vertices, dtype=np.float64)
    for i, vertex_id in enumerate(anchors):
        if i >= V_out.shape[0]:
            return int(vertex_id)
        if not np.array_equal(V_in[vertex_id], V_out[i]):
            return int(vertex_id)
    return None


def check_anchors(
    input_vertices: np.ndarray,
    output_vertices: np.ndarray,
    anchors: Iterable[int],
) -> None:
    """Raise ConstraintViolation for the first anchor that did not survive."""
    moved = find_moved_anchor(input_vertices, output_vertices, anchors)
    if moved is not None:
        raise ConstraintViolation(moved)
    logger.info("Constraints on vertices have been checked")
