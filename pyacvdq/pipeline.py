from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import trimesh as tm

from .config import RemeshingConfig
from .constraints import AnchorSet, resolve
from .engine import RemeshingEngine
from .errors import OutputWriteError
from .mesh import MeshManager, show_mesh
from .verify import check_anchors

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Viewer = Callable[[tm.Trimesh, str], None]


class PipelineState(enum.IntEnum):
    START = 0
    MESH_LOADED = 1
    CONSTRAINTS_RESOLVED = 2
    CLUSTERS_CONFIGURED = 3
    REMESHED = 4
    VERIFIED = 5
    WRITTEN = 6
    DONE = 7


@dataclass
class PipelineResult:
    output: tm.Trimesh
    anchors: Optional[AnchorSet]
    number_of_clusters: int
    output_path: str


class Pipeline:
    """Load, constrain, remesh, verify and write one mesh.

    A pipeline instance runs once. Any error aborts the run before the
    output file is written.
    """

    def __init__(
        self,
        config: RemeshingConfig,
        engine: RemeshingEngine,
        viewer: Optional[Viewer] = None,
        verbose: bool = True,
    ):
        self.config = config
        self.engine = engine
        self.viewer = viewer or show_mesh
        self.manager = MeshManager(verbose=verbose)
        self.state = PipelineState.START
        self.anchors: Optional[AnchorSet] = None

    def _advance(self, state: PipelineState) -> None:
        logger.debug("pipeline: %s -> %s", self.state.name, state.name)
        self.state = state

    @property
    def output_path(self) -> str:
        return os.path.join(self.config.output_directory or "", self.config.output_filename)

    def load(self) -> tm.Trimesh:
        cfg = self.config
        mesh = self.manager.load_mesh(cfg.mesh_file)
        if cfg.split_long_edges is not None:
            mesh = self.manager.split_long_edges(cfg.split_long_edges)
        self.manager.display_mesh_properties()
        self._advance(PipelineState.MESH_LOADED)
        return mesh

    def resolve_constraints(self, mesh: tm.Trimesh) -> Optional[AnchorSet]:
        if self.config.constraint is None:
            return None
        self.anchors = resolve(self.config.constraint, mesh)
        self._advance(PipelineState.CONSTRAINTS_RESOLVED)
        return self.anchors

    def configure_engine(self, mesh: tm.Trimesh) -> int:
        """Hand the mesh and options to the engine; return the cluster count."""
        cfg = self.config
        engine = self.engine

        engine.set_input(mesh)
        engine.set_subsampling_threshold(cfg.subsampling_threshold)
        engine.metric.gradation = cfg.gradation
        engine.metric.quadrics_optimization_level = cfg.quadrics_optimization_level
        engine.set_display(cfg.display)
        engine.set_force_manifold(cfg.force_manifold)
        engine.set_boundary_fixing(cfg.boundary_fixing)
        engine.set_write_energy_log(cfg.write_energy_log)
        if cfg.output_directory is not None:
            engine.set_output_directory(cfg.output_directory)
        if cfg.density_file is not None:
            engine.set_input_density_file(cfg.density_file)
        if cfg.density_min is not None:
            engine.set_min_custom_density(cfg.density_min)
        if cfg.density_max is not None:
            engine.set_max_custom_density(cfg.density_max)
        if cfg.density_factor is not None:
            engine.set_custom_density_multiplication_factor(cfg.density_factor)
        if cfg.number_of_threads is not None:
            engine.set_number_of_threads(cfg.number_of_threads)
        if cfg.pooling_ratio is not None:
            engine.set_pooling_ratio(cfg.pooling_ratio)

        # anchors come on top of the requested vertex budget
        anchors = self.anchors
        if anchors is not None and len(anchors):
            n_clusters = cfg.vertex_count + len(anchors)
            engine.set_fixed_clusters(anchors.ids)
            engine.set_number_of_clusters(n_clusters)
            for i, vertex_id in enumerate(anchors):
                engine.get_cluster(i).anchor_item = vertex_id
        else:
            n_clusters = cfg.vertex_count
            engine.set_number_of_clusters(n_clusters)

        logger.info("Number of clusters: %d", n_clusters)
        self._advance(PipelineState.CLUSTERS_CONFIGURED)
        return n_clusters

    def run(self) -> PipelineResult:
        if self.state != PipelineState.START:
            raise RuntimeError("A pipeline runs only once; create a new one")

        mesh = self.load()
        self.resolve_constraints(mesh)

        if self.config.display:
            self.viewer(mesh, self.config.mesh_file)

        # copy taken before handoff: the engine owns the mesh from here on
        input_vertices = np.array(mesh.vertices, dtype=np.float64, copy=True)
        n_clusters = self.configure_engine(mesh)

        self.engine.remesh()
        output = self.engine.get_output()
        self._advance(PipelineState.REMESHED)

        if self.anchors is not None and len(self.anchors):
            check_anchors(input_vertices, output.vertices, self.anchors)
            self._advance(PipelineState.VERIFIED)

        path = self.output_path
        directory = os.path.dirname(path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            MeshManager(output, verbose=self.manager.verbose).save(
                path, file_format=self.config.output_format
            )
        except Exception as e:
            raise OutputWriteError(f"Cannot write output mesh {path}: {e}") from e
        self._advance(PipelineState.WRITTEN)

        self._advance(PipelineState.DONE)
        return PipelineResult(
            output=output,
            anchors=self.anchors,
            number_of_clusters=n_clusters,
            output_path=path,
        )
