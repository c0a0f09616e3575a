"""
Tests for mesh optimisation.
"""

import numpy as np
import pytest

from dotmesh.config import GenerationParams
from dotmesh.errors import MeshOptimizationError
from meshing.assembler import assemble_pattern
from meshing.geometry import DotPattern, MeshData
from meshing.optimizer import (
    OPTIMIZATION_LEVELS,
    merge_coplanar_faces,
    optimize,
    reduction_percent,
    remove_unreferenced_vertices,
    simplify_geometry,
)
from meshing.stats import compute_stats
from printability.analysis import manifoldness, watertightness


@pytest.fixture
def triangle_vertices():
    return np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])


class TestMergeCoplanarFaces:
    """Tests for internal wall removal."""

    def test_removes_shared_wall(self, two_cube_block):
        """Test the wall between touching cubes disappears."""
        merged = merge_coplanar_faces(two_cube_block)

        assert merged.face_count == 20
        assert merged.vertex_count == 12
        assert manifoldness(merged.faces) == 100.0
        assert watertightness(merged.faces) == 100.0
        assert compute_stats(merged).volume == pytest.approx(2.0)

    def test_keeps_normals_aligned(self, two_cube_block):
        merged = merge_coplanar_faces(two_cube_block)
        assert len(merged.normals) == merged.face_count

    def test_same_winding_duplicates_collapse(self, triangle_vertices):
        mesh = MeshData(vertices=triangle_vertices, faces=np.array([[0, 1, 2], [1, 2, 0], [0, 1, 2]]))
        merged = merge_coplanar_faces(mesh)

        assert merged.faces.tolist() == [[0, 1, 2]]

    def test_opposite_windings_cancel(self, triangle_vertices):
        mesh = MeshData(vertices=triangle_vertices, faces=np.array([[0, 1, 2], [0, 2, 1]]))
        merged = merge_coplanar_faces(mesh)

        assert merged.face_count == 0
        assert merged.vertex_count == 0

    def test_unmatched_surplus_survives(self, triangle_vertices):
        mesh = MeshData(vertices=triangle_vertices, faces=np.array([[0, 1, 2], [0, 2, 1], [2, 0, 1]]))
        assert merge_coplanar_faces(mesh).face_count == 1

    def test_separate_cubes_untouched(self, checker_pattern, unit_params):
        """Test diagonal neighbours (edge contact only) keep all faces."""
        from meshing.dedup import deduplicate_vertices

        mesh = deduplicate_vertices(assemble_pattern(checker_pattern, unit_params))
        assert merge_coplanar_faces(mesh).face_count == mesh.face_count


class TestSimplifyGeometry:
    """Tests for short edge collapse."""

    def test_collapses_short_edge(self):
        mesh = MeshData(
            vertices=np.array([[0.0, 0.0, 0.0], [1e-6, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]]),
            faces=np.array([[0, 1, 2], [1, 3, 2]]),
        )
        result = simplify_geometry(mesh)

        assert result.vertex_count == 3
        assert result.face_count == 1
        np.testing.assert_allclose(result.vertices, [[0, 0, 0], [0, 1, 0], [1, 1, 0]])

    def test_clean_mesh_unchanged(self, unit_cube):
        result = simplify_geometry(unit_cube)

        assert result.vertex_count == 8
        assert result.face_count == 12


class TestOptimize:
    """Tests for optimisation levels."""

    def test_levels_never_grow(self, checker_pattern):
        """Test no level increases vertex or face counts."""
        mesh = assemble_pattern(checker_pattern, GenerationParams())
        for level in OPTIMIZATION_LEVELS:
            result = optimize(mesh, level)
            assert result.mesh.vertex_count <= mesh.vertex_count
            assert result.mesh.face_count <= mesh.face_count
            assert result.level == level

    def test_low_only_deduplicates(self, unit_params):
        raw = assemble_pattern(DotPattern.from_rows([[True, True]]), unit_params)
        result = optimize(raw, "low")

        assert result.mesh.vertex_count == 12
        assert result.mesh.face_count == 24

    def test_medium_reductions(self, unit_params):
        raw = assemble_pattern(DotPattern.from_rows([[True, True]]), unit_params)
        result = optimize(raw, "medium")

        assert result.vertex_reduction == pytest.approx(25.0)
        assert result.face_reduction == pytest.approx(100 / 6)
        assert not result.mesh.stale
        assert result.mesh.stats.face_count == 20

        data = result.to_dict()
        assert data["optimizationLevel"] == "medium"
        assert data["vertexReduction"] == "25.0%"
        assert data["faceReduction"] == "16.7%"

    def test_progress(self, unit_cube):
        reported = []
        optimize(unit_cube, "high", progress=reported.append)
        assert reported == [30, 60, 80, 95]

    def test_empty_mesh(self):
        result = optimize(MeshData(), "high")

        assert result.vertex_reduction == 0.0
        assert result.face_reduction == 0.0
        assert result.mesh.face_count == 0

    def test_missing_mesh(self):
        with pytest.raises(MeshOptimizationError, match="no mesh data"):
            optimize(None)

    def test_unknown_level(self, unit_cube):
        with pytest.raises(MeshOptimizationError, match="unknown level"):
            optimize(unit_cube, "ultra")

    def test_bad_indices(self):
        mesh = MeshData(vertices=np.zeros((3, 3)), faces=np.array([[0, 1, 7]]))
        with pytest.raises(MeshOptimizationError):
            optimize(mesh)


class TestHelpers:
    """Tests for optimisation helpers."""

    def test_reduction_percent(self):
        assert reduction_percent(0, 0) == 0.0
        assert reduction_percent(200, 150) == 25.0

    def test_remove_unreferenced_vertices(self, triangle_vertices):
        vertices = np.vstack([[9.0, 9.0, 9.0], triangle_vertices])
        mesh = MeshData(vertices=vertices, faces=np.array([[1, 2, 3]]))
        result = remove_unreferenced_vertices(mesh)

        assert result.vertex_count == 3
        assert result.faces.tolist() == [[0, 1, 2]]
