"""
Tests for mesh statistics.
"""

import numpy as np
import pytest

from meshing.geometry import MeshData, Vector3
from meshing.stats import compute_bounds, compute_stats, face_areas, face_normals, update_mesh_stats


class TestStats:
    """Tests for bounds, area and volume."""

    def test_empty_mesh(self):
        stats = compute_stats(MeshData())

        assert stats.vertex_count == 0
        assert stats.face_count == 0
        assert stats.surface_area == 0.0
        assert stats.volume == 0.0
        assert compute_bounds(MeshData()).max == Vector3()

    def test_unit_cube(self, unit_cube):
        stats = compute_stats(unit_cube)
        bounds = compute_bounds(unit_cube)

        assert stats.vertex_count == 8
        assert stats.face_count == 12
        assert stats.surface_area == pytest.approx(6.0)
        assert stats.volume == pytest.approx(1.0)
        assert bounds.min == Vector3(-0.5, -0.5, -0.5)
        assert bounds.max == Vector3(0.5, 0.5, 0.5)

    def test_volume_independent_of_position(self, unit_cube):
        moved = MeshData(vertices=unit_cube.vertices + [10.0, -3.0, 7.0], faces=unit_cube.faces)
        assert compute_stats(moved).volume == pytest.approx(1.0)

    def test_right_triangle_area(self):
        vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        assert face_areas(vertices, np.array([[0, 1, 2]])).tolist() == [0.5]

    def test_degenerate_normal_is_zero(self):
        vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
        np.testing.assert_array_equal(face_normals(vertices, np.array([[0, 1, 2]])), [[0.0, 0.0, 0.0]])

    def test_update_clears_stale_flag(self, unit_cube):
        """Test update_mesh_stats refreshes derived fields in place."""
        assert unit_cube.stale

        result = update_mesh_stats(unit_cube)

        assert result is unit_cube
        assert not unit_cube.stale
        assert unit_cube.stats.face_count == 12
        assert unit_cube.bounds.size == Vector3(1.0, 1.0, 1.0)

        unit_cube.invalidate()
        assert unit_cube.stale
