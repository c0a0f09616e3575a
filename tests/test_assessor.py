"""
Tests for printability analysis and quality assessment.
"""

import numpy as np
import pytest

from dotmesh import DotMeshGenerator
from dotmesh.config import GenerationParams, QualityConfig
from dotmesh.errors import QualityAssessmentError
from meshing.assembler import assemble
from meshing.geometry import DotPattern, MeshData, Vector3
from printability.analysis import (
    count_self_intersections,
    find_bridges,
    find_overhangs,
    manifoldness,
    measure_wall_thickness,
    overhang_severity,
    sample_faces,
    triangles_intersect,
    watertightness,
)
from printability.assessor import QualityAssessor, calculate_overall_score, calculate_support_need
from printability.report import (
    GeometryAnalysis,
    OverhangFinding,
    PrintabilityAnalysis,
    QualityReport,
    ThicknessAnalysis,
)


@pytest.fixture
def assessor():
    """Create assessor with default thresholds."""
    return QualityAssessor(QualityConfig())


@pytest.fixture
def overlapping_cubes(unit_cube):
    """Two unit cubes, the second shifted half a unit along every axis."""
    shifted = MeshData(vertices=unit_cube.vertices + 0.5, faces=unit_cube.faces)
    return assemble([unit_cube, shifted])


class TestTopology:
    """Tests for edge based metrics."""

    def test_closed_cube(self, unit_cube):
        assert manifoldness(unit_cube.faces) == 100.0
        assert watertightness(unit_cube.faces) == 100.0

    def test_open_triangle(self, open_triangle):
        assert manifoldness(open_triangle.faces) == 0.0
        assert watertightness(open_triangle.faces) == 0.0

    def test_flipped_face(self, unit_cube):
        """Test a flipped face keeps manifoldness but breaks watertightness."""
        faces = unit_cube.faces.copy()
        faces[0] = faces[0][::-1]

        assert manifoldness(faces) == 100.0
        assert watertightness(faces) < 100.0

    def test_empty(self):
        assert manifoldness(np.zeros((0, 3), dtype=np.int64)) == 0.0


class TestSelfIntersections:
    """Tests for triangle crossing detection."""

    def test_crossing_triangles(self):
        t1 = np.array([[-1.0, 0.0, -1.0], [1.0, 0.0, -1.0], [0.0, 0.0, 1.0]])
        t2 = np.array([[0.0, -1.0, 0.0], [0.0, 1.0, 0.0], [0.0, 1.0, 0.5]])
        assert triangles_intersect(t1, t2)

    def test_touching_triangles(self):
        """Test a triangle resting on another does not count."""
        t1 = np.array([[-1.0, 0.0, -1.0], [1.0, 0.0, -1.0], [0.0, 0.0, 1.0]])
        t2 = np.array([[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 1.0, 0.5]])
        assert not triangles_intersect(t1, t2)

    def test_coplanar_triangles(self):
        t1 = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        assert not triangles_intersect(t1, t1 + [0.2, 0.0, 0.2])

    def test_closed_cube(self, unit_cube):
        assert count_self_intersections(unit_cube.vertices, unit_cube.faces) == 0

    def test_overlapping_cubes(self, overlapping_cubes):
        assert count_self_intersections(overlapping_cubes.vertices, overlapping_cubes.faces) >= 1

    def test_touching_cells(self, two_cube_block):
        assert count_self_intersections(two_cube_block.vertices, two_cube_block.faces) == 0


class TestWallThickness:
    """Tests for ray cast thickness measurement."""

    def test_unit_cube(self, unit_cube):
        result = measure_wall_thickness(unit_cube.vertices, unit_cube.faces, 0.8)

        assert result.measured
        assert result.sample_count == 12
        assert result.min_thickness == pytest.approx(1.0)
        assert result.average_thickness == pytest.approx(1.0)
        assert result.thin_areas == ()

    def test_thin_slab(self):
        params = GenerationParams(cube_size=1.0, cube_height=0.5, spacing=0.0, generate_base=False)
        from meshing.extruder import extrude_cell

        slab = extrude_cell(0, 0, params)
        result = measure_wall_thickness(slab.vertices, slab.faces, 0.8)

        assert result.min_thickness == pytest.approx(0.5)
        assert len(result.thin_areas) == 4

    def test_nearest_hit_counts(self, unit_params):
        """Test rays passing through a second solid keep the nearest wall."""
        from meshing.extruder import extrude_cell

        cubes = assemble([extrude_cell(0, 0, unit_params), extrude_cell(3, 0, unit_params)])
        result = measure_wall_thickness(cubes.vertices, cubes.faces, 0.8)

        assert result.sample_count == 24
        assert result.min_thickness == pytest.approx(1.0)
        assert result.average_thickness == pytest.approx(1.0)

    def test_open_surface(self, open_triangle):
        result = measure_wall_thickness(open_triangle.vertices, open_triangle.faces, 0.8)

        assert not result.measured
        assert result.min_thickness == 0.0

    def test_sample_faces(self):
        assert sample_faces(5, 10).tolist() == [0, 1, 2, 3, 4]
        assert len(sample_faces(1000, 16)) <= 16
        assert len(sample_faces(0, 16)) == 0


class TestOverhangsAndBridges:
    """Tests for overhang and bridge detection."""

    @pytest.fixture
    def ceiling(self):
        """Floor triangle at y=0 and a downward-facing triangle at y=1."""
        return MeshData(
            vertices=np.array([
                [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0],
                [0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 1.0],
            ]),
            faces=np.array([[0, 2, 1], [3, 4, 5]]),
        )

    def test_overhang_severity(self):
        assert overhang_severity(90.0, 45.0) == "high"
        assert overhang_severity(60.0, 45.0) == "medium"
        assert overhang_severity(50.0, 45.0) == "low"

    def test_ceiling_is_overhang(self, ceiling):
        findings = find_overhangs(ceiling.vertices, ceiling.faces)

        assert len(findings) == 1
        assert findings[0].angle == pytest.approx(90.0)
        assert findings[0].severity == "high"
        assert findings[0].position.y == pytest.approx(1.0)

    def test_bottom_faces_rest_on_plate(self, unit_cube):
        assert find_overhangs(unit_cube.vertices, unit_cube.faces) == []
        assert find_bridges(unit_cube.vertices, unit_cube.faces) == []

    def test_short_bridge(self, ceiling):
        bridges = find_bridges(ceiling.vertices, ceiling.faces)

        assert len(bridges) == 1
        assert bridges[0].length == pytest.approx(1.0)
        assert bridges[0].printable
        assert bridges[0].support_suggestion == "Short enough to bridge without support"

    def test_long_bridge(self, ceiling):
        bridges = find_bridges(ceiling.vertices * [20.0, 1.0, 1.0], ceiling.faces)

        assert bridges[0].length == pytest.approx(20.0)
        assert not bridges[0].printable
        assert "20.0mm" in bridges[0].support_suggestion


class TestScores:
    """Tests for aggregate scores."""

    def _printability(self, severities, thickness=1.0):
        overhangs = tuple(
            OverhangFinding(Vector3(), 90.0, severity, "") for severity in severities
        )
        return PrintabilityAnalysis(
            overhangs=overhangs,
            support_need=0.0,
            wall_thickness=ThicknessAnalysis(thickness, thickness, (), 0.8, 1),
            bridging=(),
        )

    def test_support_need(self):
        assert calculate_support_need(self._printability(["high", "medium", "low"])) == 45.0
        assert calculate_support_need(self._printability(["high"] * 5)) == 100.0

    def test_perfect_score(self):
        geometry = GeometryAnalysis(100.0, 100.0, 0, 0)
        assert calculate_overall_score(geometry, self._printability([])) == 100

    def test_thin_walls_lower_score(self):
        geometry = GeometryAnalysis(100.0, 100.0, 0, 0)
        assert calculate_overall_score(geometry, self._printability([], thickness=0.4)) == 88


class TestQualityAssessor:
    """Tests for QualityAssessor class."""

    def test_unit_cube(self, assessor, unit_cube):
        """Test a closed cube on the plate is print ready."""
        report = assessor.assess(unit_cube, model_id="cube")

        assert report.model_id == "cube"
        assert report.overall_score == 100
        assert report.geometry.manifoldness == 100.0
        assert report.geometry.watertightness == 100.0
        assert report.geometry.self_intersections == 0
        assert report.geometry.duplicate_vertices == 0
        assert report.printability.support_need == 0.0
        assert report.printability.wall_thickness.min_thickness == pytest.approx(1.0)
        assert report.is_print_ready
        assert report.warnings == ()
        assert report.recommendations == ()

    def test_generated_model_id(self, assessor, unit_cube):
        assert assessor.assess(unit_cube).model_id.startswith("model-")

    def test_empty_geometry(self, assessor):
        with pytest.raises(QualityAssessmentError, match="empty geometry"):
            assessor.assess(MeshData())

    def test_missing_mesh(self, assessor):
        with pytest.raises(QualityAssessmentError, match="no mesh provided"):
            assessor.assess(None)

    def test_corrupted_indices(self, assessor):
        mesh = MeshData(vertices=np.zeros((3, 3)), faces=np.array([[0, 1, 5]]))
        with pytest.raises(QualityAssessmentError, match="Corrupted geometry"):
            assessor.assess(mesh)

    def test_buffer_errors(self, assessor):
        with pytest.raises(QualityAssessmentError, match="multiple of 3"):
            assessor.assess_buffers([0.0, 0.0, 0.0, 1.0])
        with pytest.raises(QualityAssessmentError, match="multiple of 3"):
            assessor.assess_buffers([0.0] * 9, indices=[0, 1])
        with pytest.raises(QualityAssessmentError, match="do not form triangles"):
            assessor.assess_buffers([0.0] * 6)

    def test_open_triangle(self, assessor):
        """Test a single triangle scores as open geometry."""
        report = assessor.assess_buffers([0, 0, 0, 0, 0, 1, 1, 0, 0])

        assert report.geometry.manifoldness == 0.0
        assert report.geometry.watertightness == 0.0
        assert not report.is_print_ready
        assert report.overall_score == 46
        assert report.warnings[0].severity == "error"
        assert report.warnings[-1].message == "Wall thickness could not be measured (open geometry)"

    def test_cell_on_base_plate(self, assessor, single_dot):
        """Test the cell bottom above the plate is a steep overhang."""
        mesh = DotMeshGenerator().generate(single_dot)
        report = assessor.assess(mesh)

        assert report.printability.overhang_count("high") == 2
        assert report.printability.support_need == 60.0
        assert len(report.printability.bridging) == 1
        assert report.printability.bridging[0].printable
        assert report.printability.wall_thickness.min_thickness == pytest.approx(2.0)
        assert report.geometry.manifoldness < 100.0

    def test_long_bridge(self, assessor):
        """Test a row of cells above the plate forms one unprintable bridge."""
        params = GenerationParams(cube_size=2.0, cube_height=2.0, spacing=0.0)
        mesh = DotMeshGenerator().generate(DotPattern.from_rows([[True] * 6]), params)
        report = assessor.assess(mesh)

        bridges = report.printability.bridging
        assert len(bridges) == 1
        assert bridges[0].length == pytest.approx(12.0)
        assert not bridges[0].printable
        assert report.printability.unprintable_bridges == 1
        assert report.printability.support_need == 100.0
        messages = [r.message for r in report.recommendations]
        assert "Model requires significant support structures" in messages
        assert "1 bridges are too long to print unsupported" in messages

    def test_self_intersection(self, assessor, overlapping_cubes):
        report = assessor.assess(overlapping_cubes)

        assert report.geometry.self_intersections >= 1
        assert not report.is_print_ready
        assert any(w.message == "Self-intersecting geometry detected" for w in report.warnings)

    def test_thin_walls(self, assessor):
        params = GenerationParams(cube_size=1.0, cube_height=0.5, spacing=0.0, generate_base=False)
        mesh = DotMeshGenerator().generate(DotPattern.from_rows([[True]]), params)
        report = assessor.assess(mesh)

        assert report.printability.wall_thickness.min_thickness == pytest.approx(0.5)
        assert any("wall thickness" in r.message for r in report.recommendations)
        assert report.recommendations[0].priority == "high"

    def test_duplicate_vertices(self, assessor, unit_params):
        from meshing.assembler import assemble_pattern

        raw = assemble_pattern(DotPattern.from_rows([[True, True]]), unit_params)
        report = assessor.assess(raw)

        assert report.geometry.duplicate_vertices == 4
        assert report.recommendations[-1].priority == "low"

    def test_report_round_trip(self, assessor, single_dot):
        report = assessor.assess(DotMeshGenerator().generate(single_dot), model_id="dot")
        data = report.to_dict()

        assert data["modelId"] == "dot"
        assert data["isPrintReady"] is False
        assert set(data["printabilityAnalysis"]) == {
            "overhangs", "supportNeed", "wallThickness", "bridging"
        }

        restored = QualityReport.from_dict(data)
        assert restored.to_dict() == data

    def test_method_wrappers(self, assessor, unit_cube, open_triangle):
        good = assessor.assess(unit_cube, model_id="good")
        bad = assessor.assess(open_triangle, model_id="bad")

        assert assessor.generate_warnings(good) == []
        assert assessor.generate_recommendations(bad)[0].priority == "high"
        assert assessor.compare_quality(bad, good).better_model == "good"
