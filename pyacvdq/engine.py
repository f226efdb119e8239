"""
Remeshing engine contract.

The clustering itself lives behind ``RemeshingEngine``. The driver only
sets options, registers pinned clusters, runs ``remesh()`` and reads the
output. Engines guarantee that the first ``len(fixed_clusters)`` output
vertices are the anchors, in registration order.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

import logging
import numpy as np
import trimesh as tm

from .errors import RemeshingFailed

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class Cluster:
    index: int
    anchor_item: Optional[int] = None  # input vertex id the cluster is pinned to


@dataclass
class QuadricMetric:
    gradation: float = 0.0
    quadrics_optimization_level: int = 3


class RemeshingEngine(ABC):
    """Base class holding the engine options; subclasses implement ``_run``."""

    supports_threads = False

    def __init__(self):
        self.input: Optional[tm.Trimesh] = None
        self.output: Optional[tm.Trimesh] = None
        self.metric = QuadricMetric()
        self.clusters: list[Cluster] = []
        self.fixed_clusters = np.zeros(0, dtype=np.int64)
        self.subsampling_threshold = 10
        self.force_manifold = False
        self.boundary_fixing = False
        self.density_file: Optional[str] = None
        self.min_custom_density: Optional[float] = None
        self.max_custom_density: Optional[float] = None
        self.custom_density_multiplication_factor: Optional[float] = None
        self.display = 0
        self.output_directory: Optional[str] = None
        self.write_energy_log = False
        self.number_of_threads: Optional[int] = None
        self.pooling_ratio: Optional[int] = None

    def set_input(self, mesh: tm.Trimesh) -> None:
        self.input = mesh
        self.output = None

    def set_number_of_clusters(self, n: int) -> None:
        if n <= 0:
            raise ValueError("Number of clusters must be positive")
        self.clusters = [Cluster(index=i) for i in range(int(n))]

    @property
    def number_of_clusters(self) -> int:
        return len(self.clusters)

    def set_fixed_clusters(self, vertex_ids: Sequence[int]) -> None:
        self.fixed_clusters = np.asarray(list(vertex_ids), dtype=np.int64)

    def get_cluster(self, i: int) -> Cluster:
        return self.clusters[i]

    def set_subsampling_threshold(self, value: int) -> None:
        self.subsampling_threshold = int(value)

    def set_force_manifold(self, value: bool) -> None:
        self.force_manifold = bool(value)

    def set_boundary_fixing(self, value: bool) -> None:
        self.boundary_fixing = bool(value)

    def set_input_density_file(self, path: str) -> None:
        self.density_file = path

    def set_min_custom_density(self, value: float) -> None:
        self.min_custom_density = float(value)

    def set_max_custom_density(self, value: float) -> None:
        self.max_custom_density = float(value)

    def set_custom_density_multiplication_factor(self, value: float) -> None:
        self.custom_density_multiplication_factor = float(value)

    def set_display(self, value: int) -> None:
        self.display = int(value)

    def set_output_directory(self, path: str) -> None:
        self.output_directory = path

    def set_write_energy_log(self, value: bool) -> None:
        self.write_energy_log = bool(value)

    def set_number_of_threads(self, n: int) -> None:
        if not self.supports_threads:
            logger.warning("%s runs single-threaded; ignoring thread count", type(self).__name__)
            return
        self.number_of_threads = int(n)

    def set_pooling_ratio(self, ratio: int) -> None:
        if not self.supports_threads:
            logger.warning("%s runs single-threaded; ignoring pooling ratio", type(self).__name__)
            return
        self.pooling_ratio = int(ratio)

    def pinned_anchors(self) -> np.ndarray:
        """Anchor vertex ids of the pinned clusters, in cluster order."""
        pinned = [c.anchor_item for c in self.clusters[: len(self.fixed_clusters)]]
        if any(a is None for a in pinned):
            raise RemeshingFailed("Fixed cluster registered without an anchor item")
        return np.asarray(pinned, dtype=np.int64)

    def remesh(self) -> tm.Trimesh:
        """Run the engine; any failure surfaces as RemeshingFailed."""
        if self.input is None:
            raise RemeshingFailed("No input mesh set")
        if not self.clusters:
            raise RemeshingFailed("Number of clusters not set")
        try:
            output = self._run()
        except RemeshingFailed:
            raise
        except Exception as e:
            raise RemeshingFailed(f"{type(self).__name__} failed: {e}") from e
        if output is None:
            raise RemeshingFailed(f"{type(self).__name__} produced no output")
        self.output = output
        return output

    def get_output(self) -> tm.Trimesh:
        if self.output is None:
            raise RemeshingFailed("remesh() has not produced an output yet")
        return self.output

    @abstractmethod
    def _run(self) -> tm.Trimesh:
        """Compute and return the output mesh."""


def anchors_first(
    vertices: np.ndarray, faces: np.ndarray, first: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Reorder vertices so that ``first`` come first (in order), remapping faces."""
    V = np.asarray(vertices)
    F = np.asarray(faces, dtype=np.int64)
    first = np.asarray(first, dtype=np.int64)
    rest = np.ones(len(V), dtype=bool)
    rest[first] = False
    order = np.concatenate([first, np.flatnonzero(rest)])
    new_index = np.empty(len(V), dtype=np.int64)
    new_index[order] = np.arange(len(V))
    return V[order], new_index[F]


class IdentityEngine(RemeshingEngine):
    """No-op engine: output is the input geometry with anchors moved first."""

    def _run(self) -> tm.Trimesh:
        anchors = self.pinned_anchors()
        V, F = anchors_first(self.input.vertices, self.input.faces, anchors)
        logger.info(
            "IdentityEngine: %d clusters requested, %d pinned; geometry unchanged",
            self.number_of_clusters,
            len(anchors),
        )
        return tm.Trimesh(vertices=V.copy(), faces=F, process=False)
