from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

import logging
import numpy as np
import trimesh as tm

from .errors import InvalidConstraintFile

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

VERTICES = "vertices"
FACES = "faces"

_ID_TOKEN = re.compile(r"[+-]?[0-9]+", re.ASCII)
_MAX_ID = int(np.iinfo(np.int64).max)


@dataclass(frozen=True)
class ConstraintSource:
    """Where anchor constraints come from.

    kind : {"vertices", "faces"}
        "vertices": the file lists vertex ids, used directly as anchors.
        "faces": the file lists face ids, expanded to their corner vertices.
    path : str
        Constraint file with whitespace separated integer ids.
    """

    kind: str
    path: str

    def __post_init__(self):
        if self.kind not in (VERTICES, FACES):
            raise ValueError(f"Unknown constraint kind: {self.kind}")


@dataclass(frozen=True)
class AnchorSet:
    ids: np.ndarray  # (k,) int64, ordered, unique vertex ids
    read_count: int = 0  # number of ids read from the constraint file

    def __len__(self) -> int:
        return int(self.ids.shape[0])

    def __iter__(self) -> Iterator[int]:
        return (int(i) for i in self.ids)

    def tolist(self) -> list[int]:
        return [int(i) for i in self.ids]


def read_ids(path: Union[str, Path]) -> np.ndarray:
    """Read whitespace separated non-negative integer ids from a text file.

    Tokens are plain ASCII decimal integers with an optional sign; forms
    such as ``1_000``, ``1e3`` or non-ASCII digits are rejected.
    """
    try:
        text = Path(path).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidConstraintFile(f"Cannot read constraint file {path}: {e}") from e

    ids = []
    for token in text.split():
        if not _ID_TOKEN.fullmatch(token):
            raise InvalidConstraintFile(
                f"Constraint file {path}: '{token}' is not an integer id"
            )
        value = int(token)
        if value < 0:
            raise InvalidConstraintFile(f"Constraint file {path}: negative id {value}")
        if value > _MAX_ID:
            raise InvalidConstraintFile(f"Constraint file {path}: id {token} is too large")
        ids.append(value)
    return np.asarray(ids, dtype=np.int64)


def anchors_from_vertex_ids(ids: np.ndarray, n_vertices: int) -> AnchorSet:
    """Vertex ids become anchors in file order; repeated ids keep their first position."""
    ids = np.asarray(ids, dtype=np.int64).ravel()
    if ids.size and ids.max() >= n_vertices:
        raise InvalidConstraintFile(
            f"Vertex id {int(ids.max())} out of range for a mesh with {n_vertices} vertices"
        )
    _, first = np.unique(ids, return_index=True)
    unique = ids[np.sort(first)]
    if unique.size != ids.size:
        logger.warning("Dropped %d duplicate vertex ids", ids.size - unique.size)
    logger.info("Read %d fixed Ids", unique.size)
    return AnchorSet(ids=unique, read_count=int(ids.size))


def anchors_from_face_ids(ids: np.ndarray, faces: np.ndarray, n_vertices: int) -> AnchorSet:
    """Corner vertices of the listed faces, as a sorted duplicate-free set."""
    ids = np.asarray(ids, dtype=np.int64).ravel()
    F = np.asarray(faces, dtype=np.int64)
    if ids.size and ids.max() >= F.shape[0]:
        raise InvalidConstraintFile(
            f"Face id {int(ids.max())} out of range for a mesh with {F.shape[0]} faces"
        )
    fixed = np.zeros(n_vertices, dtype=bool)
    fixed[F[ids].ravel()] = True
    logger.info("Added %d constraints on triangles", ids.size)
    return AnchorSet(ids=np.flatnonzero(fixed).astype(np.int64), read_count=int(ids.size))


def resolve(source: ConstraintSource, mesh: tm.Trimesh) -> AnchorSet:
    """Turn a constraint file into the anchor set of ``mesh``.

    Parameters
    ----------
    source : ConstraintSource
        Vertex-id list or face-id list file.
    mesh : trimesh.Trimesh
        Mesh the ids refer to. Not modified.

    Returns
    -------
    AnchorSet
        Unique vertex ids. Vertex lists keep file order (first occurrence of a
        repeated id wins); face lists give the corner vertices sorted by id.

    Raises
    ------
    InvalidConstraintFile
        If the file is unreadable, holds a token that is not a non-negative
        integer, or references an id outside the mesh.
    """
    ids = read_ids(source.path)
    n_vertices = len(mesh.vertices)
    if source.kind == VERTICES:
        anchors = anchors_from_vertex_ids(ids, n_vertices)
    else:
        anchors = anchors_from_face_ids(ids, mesh.faces, n_vertices)
    logger.debug("Anchors from %s: %s", source.path, anchors.tolist())
    return anchors
