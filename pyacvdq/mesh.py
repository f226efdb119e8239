"""
Main mesh class
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np
import trimesh

from .errors import MeshLoadError

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def non_manifold_face_mask(faces: np.ndarray) -> np.ndarray:
    """Flag faces touching an edge shared by more than two faces.

    Parameters
    ----------
    faces : (m,3) int array

    Returns
    -------
    mask : (m,) bool array
        True for every face incident to a non-manifold edge.
    """
    F = np.asarray(faces, dtype=np.int64)
    if F.size == 0:
        return np.zeros(0, dtype=bool)
    # edges (0,1), (1,2), (2,0) of every face, sorted so shared edges match
    edges = np.sort(F[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2), axis=1)
    _, inverse, counts = np.unique(edges, axis=0, return_inverse=True, return_counts=True)
    per_edge = counts[inverse.ravel()].reshape(-1, 3)
    return (per_edge > 2).any(axis=1)


def _bisect_long_edges(
    V: np.ndarray, F: np.ndarray, max_edge: float
) -> Tuple[np.ndarray, np.ndarray, int]:
    """One bisection pass over the edges longer than ``max_edge``.

    Edges are taken longest first; an edge is skipped when one of its faces
    was already cut in this pass. A face (a, b, c) cut on edge (a, b) at
    midpoint m becomes (a, m, c) and (m, b, c), keeping its orientation.

    Returns
    -------
    V, F : new vertex and face arrays (input vertices first, in order)
    n_split : number of edges bisected
    """
    # row 3*f + k holds edge (F[f, k], F[f, (k+1) % 3])
    face_edges = F[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)
    unique, inverse = np.unique(np.sort(face_edges, axis=1), axis=0, return_inverse=True)
    inverse = inverse.ravel()
    lengths = np.linalg.norm(V[unique[:, 0]] - V[unique[:, 1]], axis=1)
    long_edges = np.flatnonzero(lengths > max_edge)
    if long_edges.size == 0:
        return V, F, 0
    long_edges = long_edges[np.argsort(-lengths[long_edges], kind="stable")]

    rows_by_edge = np.argsort(inverse, kind="stable")
    counts = np.bincount(inverse, minlength=len(unique))
    starts = np.concatenate([[0], np.cumsum(counts)[:-1]])

    cut = np.zeros(len(F), dtype=bool)
    new_faces = []
    mids = []
    F = F.copy()
    for e in long_edges:
        rows = rows_by_edge[starts[e] : starts[e] + counts[e]]
        faces = rows // 3
        if cut[faces].any():
            continue
        cut[faces] = True
        m = len(V) + len(mids)
        mids.append(0.5 * (V[unique[e, 0]] + V[unique[e, 1]]))
        for row in rows:
            f, k = divmod(int(row), 3)
            a, b, c = F[f, k], F[f, (k + 1) % 3], F[f, (k + 2) % 3]
            F[f] = (a, m, c)
            new_faces.append((m, b, c))

    V = np.vstack([V, np.asarray(mids)])
    F = np.vstack([F, np.asarray(new_faces, dtype=np.int64)])
    return V, F, len(mids)


class MeshManager:
    """
    Mesh holder handling loading, edge splitting, inspection and export.

    Vertex and face indices are never reordered: constraint files refer to
    them by position in the input file.
    """

    def __init__(self, mesh: Optional[trimesh.Trimesh] = None, verbose: bool = True):
        self.mesh = mesh
        self.filepath: Optional[str] = None
        self.verbose = verbose

    def log(self, message: str, level: str = "INFO"):
        """Compatibility shim: delegate to module logger respecting self.verbose.

        Levels: INFO, SUCCESS (maps to INFO), WARNING, ERROR, PROCESSING (maps to INFO)
        """
        if not self.verbose:
            return
        lvl = level.upper()
        if lvl in ("SUCCESS", "PROCESSING"):
            lvl = "INFO"
        if lvl == "WARNING":
            logger.warning(message)
        elif lvl == "ERROR":
            logger.error(message)
        else:
            logger.info(message)

    # =================================================================
    # MESH LOADING AND BASIC OPERATIONS
    # =================================================================

    def load_mesh(
        self, filepath: str, file_format: Optional[str] = None
    ) -> trimesh.Trimesh:
        """
        Load a triangle mesh from file, keeping the file's vertex order.

        Args:
            filepath: Path to mesh file
            file_format: Optional format specification (auto-detected if None)

        Returns:
            Loaded trimesh object

        Raises:
            MeshLoadError: if the file is missing, unreadable or holds no triangles
        """
        self.log(f"load : {filepath}")
        try:
            # process=False keeps vertex ids identical to the file
            if file_format:
                mesh = trimesh.load(filepath, file_type=file_format, process=False)
            else:
                mesh = trimesh.load(filepath, process=False)
        except Exception as e:
            raise MeshLoadError(f"Failed to load mesh from {filepath}: {str(e)}") from e

        # Ensure we have a single mesh
        if isinstance(mesh, trimesh.Scene):
            geometries = list(mesh.geometry.values())
            if not geometries:
                raise MeshLoadError(f"No geometry found in mesh scene {filepath}")
            mesh = geometries[0]

        if not isinstance(mesh, trimesh.Trimesh):
            raise MeshLoadError(f"Loaded object is not a mesh: {type(mesh)}")
        if len(mesh.faces) == 0:
            raise MeshLoadError(f"Mesh {filepath} has no triangles")

        self.mesh = mesh
        self.filepath = str(filepath)

        if self.verbose:
            logger.info(
                "Loaded mesh: %d vertices, %d faces",
                len(mesh.vertices),
                len(mesh.faces),
            )

        return mesh

    def save(self, filepath, file_format="ply"):
        if self.mesh is None:
            raise ValueError("No mesh loaded")
        self.mesh.export(filepath, file_type=file_format)
        self.log(f"Wrote mesh: {filepath}")

    def to_trimesh(self):
        return self.mesh

    # =================================================================
    # EDGE SPLITTING
    # =================================================================

    def average_edge_length(self) -> float:
        if self.mesh is None:
            raise ValueError("No mesh loaded")
        lengths = self.mesh.edges_unique_length
        return float(lengths.mean()) if len(lengths) else 0.0

    def split_long_edges(self, ratio: float, max_iter: int = 100) -> trimesh.Trimesh:
        """
        Split edges longer than ``ratio`` times the average edge length.

        Each too-long edge is bisected at its midpoint and every face using
        it is cut in two, so the mesh stays conforming. A pass bisects the
        longest edges first and never cuts a face twice; passes repeat until
        no edge exceeds the threshold (or ``max_iter`` passes ran). Existing
        vertex ids are kept; new vertices are appended.

        Args:
            ratio: Threshold relative to the average edge length of the input
            max_iter: Maximum number of bisection passes

        Returns:
            The split mesh (also stored on the manager)
        """
        if self.mesh is None:
            raise ValueError("No mesh loaded")
        if ratio <= 0:
            raise ValueError("Edge split ratio must be positive")

        max_edge = float(ratio) * self.average_edge_length()
        V = np.asarray(self.mesh.vertices, dtype=np.float64)
        F = np.asarray(self.mesh.faces, dtype=np.int64)
        n_before = len(V)

        for _ in range(max_iter):
            V, F, n_split = _bisect_long_edges(V, F, max_edge)
            if n_split == 0:
                break
        else:
            logger.warning("Edge splitting stopped after %d passes", max_iter)

        self.mesh = trimesh.Trimesh(vertices=V, faces=F, process=False)
        self.log(
            f"Splitting edges longer than {ratio} times the average edge length "
            f"({max_edge:.6g}): {len(V) - n_before} vertices added"
        )
        return self.mesh

    # =================================================================
    # MESH ANALYSIS
    # =================================================================

    def analyze_mesh(self) -> dict:
        """
        Analyze and return mesh properties for diagnostic purposes.
        This function performs pure analysis without modifying the input mesh.

        Returns:
            Dictionary of mesh properties including face count, vertex count,
            bounds, watertightness, winding consistency and manifoldness.
        """
        mesh = self.to_trimesh()
        if mesh is None:
            raise ValueError("No mesh loaded")

        results = {
            "face_count": len(mesh.faces),
            "vertex_count": len(mesh.vertices),
            "bounds": mesh.bounds.tolist() if len(mesh.vertices) else None,
            "is_watertight": mesh.is_watertight,
            "is_winding_consistent": mesh.is_winding_consistent,
            "non_manifold_faces": int(non_manifold_face_mask(mesh.faces).sum()),
            "issues": [],
        }

        if results["non_manifold_faces"] > 0:
            results["issues"].append("Non-manifold edges detected")

        # Unreferenced vertices are legal but usually unintended
        referenced = np.zeros(len(mesh.vertices), dtype=bool)
        referenced[np.asarray(mesh.faces).ravel()] = True
        results["unreferenced_vertices"] = int((~referenced).sum())
        if results["unreferenced_vertices"] > 0:
            results["issues"].append(
                f"Found {results['unreferenced_vertices']} unreferenced vertices"
            )

        try:
            results["euler_characteristic"] = mesh.euler_number
        except Exception as e:
            results["euler_characteristic"] = None
            results["issues"].append(f"Topology calculation failed: {str(e)}")

        return results

    def display_mesh_properties(self) -> dict:
        """Log a short report of the mesh properties and return them."""
        analysis = self.analyze_mesh()
        if not self.verbose:
            return analysis

        logger.info("Mesh properties:")
        logger.info("  * Vertices: %s", analysis["vertex_count"])
        logger.info("  * Faces: %s", analysis["face_count"])
        if analysis.get("bounds") is not None:
            min_bound, max_bound = analysis["bounds"]
            logger.info(
                "  * Bounds: [%.4g, %.4g, %.4g] to [%.4g, %.4g, %.4g]",
                min_bound[0],
                min_bound[1],
                min_bound[2],
                max_bound[0],
                max_bound[1],
                max_bound[2],
            )
        logger.info("  * Watertight: %s", analysis["is_watertight"])
        logger.info("  * Winding Consistent: %s", analysis["is_winding_consistent"])
        if analysis.get("euler_characteristic") is not None:
            logger.info("  * Euler Characteristic: %s", analysis["euler_characteristic"])
        for issue in analysis["issues"]:
            logger.warning("  ! %s", issue)
        return analysis

    # =================================================================
    # VISUALIZATION
    # =================================================================

    def visualize_mesh_3d(
        self,
        title: str = "3D Mesh Visualization",
        color: str = "lightblue",
        backend: str = "auto",
        show_axes: bool = True,
        show_wireframe: bool = True,
        width: int = 800,
        height: int = 600,
    ) -> Optional[object]:
        """
        Create a 3D visualization of a mesh.

        Args:
            title: Plot title
            color: Mesh color (named color or RGB tuple)
            backend: Visualization backend ('plotly', 'matplotlib' or 'auto')
            show_axes: Whether to show coordinate axes
            show_wireframe: Whether to show wireframe overlay

        Returns:
            Figure object (backend-dependent) or None if visualization fails
        """
        if backend == "auto":
            try:
                import matplotlib.pyplot  # noqa: F401

                backend = "matplotlib"
            except ImportError:
                backend = "plotly"

        if backend == "plotly":
            return self._visualize_mesh_plotly(
                title, color, show_axes, show_wireframe, width, height
            )
        elif backend == "matplotlib":
            return self._visualize_mesh_matplotlib(
                title, color, show_axes, show_wireframe
            )
        else:
            raise ValueError(f"Unknown backend: {backend}")

    def _visualize_mesh_plotly(
        self, title, color, show_axes, show_wireframe, width=800, height=600
    ):
        """Plotly-based mesh visualization."""
        try:
            import plotly.graph_objects as go
        except ImportError:
            logger.warning("Plotly not available")
            return None

        vertices = self.mesh.vertices
        faces = self.mesh.faces

        fig = go.Figure(
            data=[
                go.Mesh3d(
                    x=vertices[:, 0],
                    y=vertices[:, 1],
                    z=vertices[:, 2],
                    i=faces[:, 0],
                    j=faces[:, 1],
                    k=faces[:, 2],
                    opacity=0.8,
                    color=color,
                    name="Mesh",
                )
            ]
        )

        if show_wireframe:
            edges = self.mesh.edges_unique
            xs, ys, zs = [], [], []
            for u, v in edges:
                p, q = vertices[u], vertices[v]
                xs += [p[0], q[0], None]
                ys += [p[1], q[1], None]
                zs += [p[2], q[2], None]
            fig.add_trace(
                go.Scatter3d(
                    x=xs,
                    y=ys,
                    z=zs,
                    mode="lines",
                    line=dict(color="black", width=1),
                    name="Wireframe",
                )
            )

        fig.update_layout(
            title=title,
            autosize=False,
            width=width,
            height=height,
            scene=dict(
                aspectmode="data",
                xaxis=dict(visible=show_axes),
                yaxis=dict(visible=show_axes),
                zaxis=dict(visible=show_axes),
            ),
        )
        return fig

    def _visualize_mesh_matplotlib(self, title, color, show_axes, show_wireframe):
        """Matplotlib-based mesh visualization."""
        try:
            import matplotlib.pyplot as plt
            from mpl_toolkits.mplot3d.art3d import Poly3DCollection
        except ImportError:
            logger.warning("Matplotlib not available")
            return None

        vertices = self.mesh.vertices
        faces = self.mesh.faces

        fig = plt.figure(figsize=(10, 8))
        ax = fig.add_subplot(111, projection="3d")
        collection = Poly3DCollection(
            vertices[faces],
            alpha=0.8,
            facecolor=color,
            edgecolor="black" if show_wireframe else None,
            linewidths=0.2,
        )
        ax.add_collection3d(collection)

        mins, maxs = vertices.min(axis=0), vertices.max(axis=0)
        ax.set_xlim(mins[0], maxs[0])
        ax.set_ylim(mins[1], maxs[1])
        ax.set_zlim(mins[2], maxs[2])
        ax.set_box_aspect(tuple(np.maximum(maxs - mins, 1e-12)))
        ax.set_title(title)
        if not show_axes:
            ax.set_axis_off()
        return fig


def show_mesh(
    mesh: trimesh.Trimesh,
    title: str = "Mesh",
    backend: str = "auto",
    wait: Callable[[str], str] = input,
) -> None:
    """Display a mesh and block until the viewer is closed.

    Used as the default viewer of the pipeline when display is enabled.
    Plotly figures open in a browser without blocking, so the user is asked
    to press Enter through ``wait`` before the pipeline continues.
    """
    mm = MeshManager(mesh, verbose=False)
    fig = mm.visualize_mesh_3d(title=title, backend=backend)
    if fig is None:
        logger.warning("No visualization backend available; display skipped")
        return
    if fig.__class__.__module__.startswith("plotly"):
        fig.show()
        wait("Press Enter to continue...")
        return
    import matplotlib.pyplot as plt

    plt.show(block=True)
    plt.close(fig)
