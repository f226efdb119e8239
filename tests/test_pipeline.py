import os

import numpy as np
import pytest
import trimesh as tm

from pyacvdq.config import parse_options
from pyacvdq.engine import IdentityEngine
from pyacvdq.errors import ConstraintViolation, MeshLoadError, OutputWriteError, RemeshingFailed
from pyacvdq.pipeline import Pipeline, PipelineState


class PerturbingEngine(IdentityEngine):
    """Moves the second output vertex by a tiny amount."""

    def _run(self):
        out = super()._run()
        V = np.array(out.vertices, copy=True)
        V[1, 2] += 1e-9
        return tm.Trimesh(vertices=V, faces=out.faces, process=False)


class FailingEngine(IdentityEngine):
    def _run(self):
        raise RuntimeError("clustering diverged")


def _config(*argv):
    return parse_options(list(argv), input_fn=lambda q: pytest.fail(f"prompted: {q}"))


def test_unconstrained_run_writes_default_output(tmp_path, grid_file, monkeypatch):
    monkeypatch.chdir(tmp_path)
    engine = IdentityEngine()
    result = Pipeline(_config(grid_file, "100", "0"), engine, verbose=False).run()

    assert len(engine.input.vertices) == 1000
    assert engine.number_of_clusters == 100
    assert len(engine.fixed_clusters) == 0
    assert all(c.anchor_item is None for c in engine.clusters)
    assert result.anchors is None
    assert result.number_of_clusters == 100
    assert result.output_path == "simplification.ply"
    assert (tmp_path / "simplification.ply").exists()


def test_vertex_constraints_pin_clusters(tmp_path, grid_file, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "fixed.txt").write_text("5 12 5 40")
    engine = IdentityEngine()
    pipeline = Pipeline(_config(grid_file, "100", "0", "-fv", "fixed.txt"), engine, verbose=False)
    result = pipeline.run()

    assert result.anchors.tolist() == [5, 12, 40]
    assert engine.number_of_clusters == 103
    assert engine.fixed_clusters.tolist() == [5, 12, 40]
    assert [engine.get_cluster(i).anchor_item for i in range(3)] == [5, 12, 40]
    assert engine.get_cluster(3).anchor_item is None
    assert np.array_equal(result.output.vertices[:3], engine.input.vertices[[5, 12, 40]])
    assert pipeline.state == PipelineState.DONE


def test_face_constraints(tmp_path, grid_file, grid_mesh):
    (tmp_path / "tri.txt").write_text("7\n0\n7")
    out_dir = tmp_path / "out"
    engine = IdentityEngine()
    result = Pipeline(
        _config(grid_file, "50", "0", "-ft", str(tmp_path / "tri.txt"), "-o", str(out_dir)),
        engine,
        verbose=False,
    ).run()

    expected = np.unique(grid_mesh.faces[[0, 7]].ravel()).tolist()
    assert result.anchors.tolist() == expected
    assert engine.number_of_clusters == 50 + len(expected)


def test_output_directory_without_trailing_separator(tmp_path, grid_file):
    out_dir = tmp_path / "results" / "run1"
    result = Pipeline(
        _config(grid_file, "10", "0", "-o", str(out_dir)), IdentityEngine(), verbose=False
    ).run()

    assert result.output_path == os.path.join(str(out_dir), "simplification.ply")
    assert (out_dir / "simplification.ply").exists()


def test_stl_output_format(tmp_path, grid_file):
    result = Pipeline(
        _config(grid_file, "10", "0", "-o", str(tmp_path), "-of", "stl"), IdentityEngine(), verbose=False
    ).run()
    assert result.output_path.endswith("simplification.stl")
    assert (tmp_path / "simplification.stl").exists()


def test_moved_anchor_aborts_without_output(tmp_path, grid_file, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "fixed.txt").write_text("5 12 40")
    pipeline = Pipeline(_config(grid_file, "100", "0", "-fv", "fixed.txt"), PerturbingEngine(), verbose=False)

    with pytest.raises(ConstraintViolation) as exc:
        pipeline.run()

    assert exc.value.vertex_id == 12
    assert pipeline.state == PipelineState.REMESHED
    assert not (tmp_path / "simplification.ply").exists()


def test_perturbation_ignored_without_anchors(tmp_path, grid_file, monkeypatch):
    monkeypatch.chdir(tmp_path)
    Pipeline(_config(grid_file, "100", "0"), PerturbingEngine(), verbose=False).run()
    assert (tmp_path / "simplification.ply").exists()


def test_engine_failure_surfaces(tmp_path, grid_file, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(RemeshingFailed, match="clustering diverged"):
        Pipeline(_config(grid_file, "100", "0"), FailingEngine(), verbose=False).run()
    assert not (tmp_path / "simplification.ply").exists()


def test_missing_mesh(tmp_path):
    with pytest.raises(MeshLoadError):
        Pipeline(_config(str(tmp_path / "none.ply"), "10", "0"), IdentityEngine(), verbose=False).run()


def test_output_directory_is_a_file(tmp_path, grid_file):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory")
    pipeline = Pipeline(_config(grid_file, "10", "0", "-o", str(blocker)), IdentityEngine(), verbose=False)

    with pytest.raises(OutputWriteError, match="Cannot write output mesh"):
        pipeline.run()
    assert blocker.read_text() == "not a directory"


def test_display_calls_viewer_once(tmp_path, grid_file):
    shown = []
    Pipeline(
        _config(grid_file, "10", "0", "-d", "1", "-o", str(tmp_path)),
        IdentityEngine(),
        viewer=lambda mesh, title: shown.append((len(mesh.vertices), title)),
        verbose=False,
    ).run()
    assert shown == [(1000, grid_file)]


def test_split_long_edges_before_constraints(tmp_path, grid_file):
    engine = IdentityEngine()
    Pipeline(_config(grid_file, "10", "0", "-l", "1.0", "-o", str(tmp_path)), engine, verbose=False).run()
    # diagonals are longer than the average edge and get split
    assert len(engine.input.vertices) > 1000


def test_options_reach_engine(tmp_path, grid_file):
    engine = IdentityEngine()
    Pipeline(
        _config(
            grid_file, "10", "0.8", "-s", "3", "-m", "1", "-b", "1", "-q", "1",
            "-cd", "d.vti", "-cmin", "0.1", "-cmax", "2", "-cf", "4", "-np", "8", "-w", "1",
            "-o", str(tmp_path),
        ),
        engine,
        verbose=False,
    ).run()

    assert engine.subsampling_threshold == 3
    assert engine.metric.gradation == 0.8
    assert engine.metric.quadrics_optimization_level == 1
    assert engine.force_manifold is True
    assert engine.boundary_fixing is True
    assert engine.density_file == "d.vti"
    assert engine.min_custom_density == 0.1
    assert engine.max_custom_density == 2.0
    assert engine.custom_density_multiplication_factor == 4.0
    assert engine.write_energy_log is True
    assert engine.output_directory == str(tmp_path)
    # IdentityEngine is single-threaded
    assert engine.number_of_threads is None


def test_pipeline_runs_once(tmp_path, grid_file):
    pipeline = Pipeline(_config(grid_file, "10", "0", "-o", str(tmp_path)), IdentityEngine(), verbose=False)
    pipeline.run()
    with pytest.raises(RuntimeError):
        pipeline.run()
