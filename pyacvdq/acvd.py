from __future__ import annotations

import logging
import numpy as np
import pyacvd
import pyvista as pv
import trimesh as tm
from scipy.spatial import cKDTree

from .engine import RemeshingEngine, anchors_first
from .errors import RemeshingFailed
from .mesh import non_manifold_face_mask

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Each subdivision pass roughly quadruples the point count
MAX_SUBDIVISIONS = 6
# Nearest output vertices considered per anchor before widening the search
PIN_CANDIDATES = 8


def to_polydata(mesh: tm.Trimesh) -> pv.PolyData:
    F = np.asarray(mesh.faces, dtype=np.int64)
    cells = np.hstack([np.full((F.shape[0], 1), 3, dtype=np.int64), F]).ravel()
    return pv.PolyData(np.asarray(mesh.vertices, dtype=np.float64), cells)


def from_polydata(poly: pv.PolyData) -> tuple[np.ndarray, np.ndarray]:
    points = np.asarray(poly.points, dtype=np.float64)
    faces = np.asarray(poly.faces, dtype=np.int64).reshape(-1, 4)
    if faces.size and not np.all(faces[:, 0] == 3):
        raise RemeshingFailed("pyacvd returned non-triangular faces")
    return points, faces[:, 1:]


def subdivision_level(n_points: int, n_clusters: int, threshold: int) -> int:
    """Number of subdivision passes bringing the point count above threshold * n_clusters."""
    nsub = 0
    while n_points * 4 ** nsub < threshold * n_clusters and nsub < MAX_SUBDIVISIONS:
        nsub += 1
    return nsub


def pin_anchors(
    points: np.ndarray, faces: np.ndarray, anchor_coords: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Snap one output vertex onto each anchor and move those vertices first.

    Anchors are served in order; each takes the nearest output vertex not
    already taken by an earlier anchor.
    """
    anchor_coords = np.asarray(anchor_coords, dtype=np.float64).reshape(-1, 3)
    n_anchors = anchor_coords.shape[0]
    if n_anchors == 0:
        return points, faces
    if points.shape[0] < n_anchors:
        raise RemeshingFailed(
            f"Output has {points.shape[0]} vertices, fewer than {n_anchors} anchors"
        )

    tree = cKDTree(points)
    n_points = points.shape[0]
    k = min(PIN_CANDIDATES, n_points)
    _, candidates = tree.query(anchor_coords, k=k)
    candidates = np.asarray(candidates).reshape(n_anchors, -1)
    taken = np.zeros(n_points, dtype=bool)
    chosen = np.empty(n_anchors, dtype=np.int64)
    for i, row in enumerate(candidates):
        free = row[~taken[row]]
        # widen the search only when all nearby candidates are taken
        width = k
        while free.size == 0:
            width = min(2 * width, n_points)
            _, row = tree.query(anchor_coords[i], k=width)
            row = np.atleast_1d(row)
            free = row[~taken[row]]
        j = int(free[0])
        taken[j] = True
        chosen[i] = j

    V, F = anchors_first(points, faces, chosen)
    V = V.copy()
    V[:n_anchors] = anchor_coords
    return V, F


class PyACVDEngine(RemeshingEngine):
    """ACVD clustering through pyacvd, with anchors pinned after clustering.

    pyacvd clusters uniformly; gradation, custom density and boundary fixing
    are accepted but not honoured, and a warning is logged when they are set.
    """

    def __init__(self, maxiter: int = 100, iso_try: int = 10):
        super().__init__()
        self.maxiter = maxiter
        self.iso_try = iso_try

    def _warn_unsupported(self) -> None:
        if self.metric.gradation != 0:
            logger.warning("pyacvd backend: gradation %s ignored (uniform clustering)", self.metric.gradation)
        if self.density_file is not None:
            logger.warning("pyacvd backend: custom density file %s ignored", self.density_file)
        if self.boundary_fixing:
            logger.warning("pyacvd backend: boundary fixing not supported")
        if self.write_energy_log:
            logger.warning("pyacvd backend: no energy log available")

    def _run(self) -> tm.Trimesh:
        self._warn_unsupported()
        anchors = self.pinned_anchors()
        n_clusters = self.number_of_clusters

        poly = to_polydata(self.input)
        nsub = subdivision_level(poly.n_points, n_clusters, self.subsampling_threshold)
        clus = pyacvd.Clustering(poly)
        if nsub:
            logger.info("Subdividing input %d times", nsub)
            clus.subdivide(nsub)
        logger.info("Clustering %d points into %d clusters", clus.mesh.n_points, n_clusters)
        clus.cluster(n_clusters, maxiter=self.maxiter, iso_try=self.iso_try)
        if self.display >= 2:
            clus.plot()

        points, faces = from_polydata(clus.create_mesh())
        V, F = pin_anchors(points, faces, np.asarray(self.input.vertices)[anchors])

        if self.force_manifold:
            bad = non_manifold_face_mask(F)
            if bad.any():
                logger.info("Removing %d faces on non-manifold edges", int(bad.sum()))
                F = F[~bad]

        logger.info("Output mesh: %d vertices, %d faces", V.shape[0], F.shape[0])
        return tm.Trimesh(vertices=V, faces=F, process=False)
