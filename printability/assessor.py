"""
Quality and printability assessment of generated meshes.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import numpy as np

from dotmesh.config import QualityConfig
from dotmesh.errors import QualityAssessmentError
from meshing.dedup import count_duplicate_vertices
from meshing.geometry import MeshData, MeshStats
from meshing.stats import compute_stats
from printability.analysis import (
    count_self_intersections,
    find_bridges,
    find_overhangs,
    manifoldness,
    measure_wall_thickness,
    watertightness,
)
from printability.compare import compare_quality
from printability.report import (
    SEVERITY_ORDER,
    WARNING_ORDER,
    GeometryAnalysis,
    PrintabilityAnalysis,
    QualityComparison,
    QualityReport,
    QualityWarning,
    Recommendation,
)

logger = logging.getLogger(__name__)


def calculate_support_need(printability: PrintabilityAnalysis) -> float:
    """Support need (0-100) from overhang severities and unprintable bridges."""
    need = (
        30 * printability.overhang_count("high")
        + 15 * printability.overhang_count("medium")
        + 20 * printability.unprintable_bridges
    )
    return float(min(100, need))


def calculate_overall_score(geometry: GeometryAnalysis, printability: PrintabilityAnalysis) -> int:
    """
    Weighted aggregate score (0-100).

    Geometry counts 60% (manifoldness and intersections weigh most),
    printability 40% (support need and minimum wall thickness).
    """
    geometry_score = (
        geometry.manifoldness * 0.3
        + geometry.watertightness * 0.2
        + (100 - min(100, geometry.self_intersections)) * 0.3
        + (100 - min(100, geometry.duplicate_vertices / 10)) * 0.2
    )

    thickness = printability.wall_thickness
    thickness_score = 0.0
    if thickness.recommended_minimum > 0:
        thickness_score = min(100.0, thickness.min_thickness / thickness.recommended_minimum * 100)
    printability_score = (100 - printability.support_need) * 0.4 + thickness_score * 0.6

    return int(round(geometry_score * 0.6 + printability_score * 0.4))


def generate_recommendations(
    geometry: GeometryAnalysis,
    printability: PrintabilityAnalysis,
) -> List[Recommendation]:
    """Derive fixes from the findings, high priority first."""
    recommendations = []
    thickness = printability.wall_thickness

    if geometry.manifoldness < 95:
        recommendations.append(Recommendation(
            type="geometry",
            priority="high",
            message="Model has non-manifold geometry that may cause printing issues",
            action="Run mesh optimization with coplanar merging enabled",
            expected_improvement="Improved print reliability and slicer compatibility",
        ))
    if geometry.watertightness < 95:
        recommendations.append(Recommendation(
            type="geometry",
            priority="high",
            message="Model is not watertight; open edges leave holes in the printed shell",
            action="Close open edges or regenerate without the detached base plate",
            expected_improvement="Solid, sliceable model",
        ))
    if geometry.self_intersections > 0:
        recommendations.append(Recommendation(
            type="geometry",
            priority="high",
            message=f"Model has {geometry.self_intersections} self-intersecting face pairs",
            action="Increase spacing between cells or separate overlapping parts",
            expected_improvement="Eliminates slicing artifacts",
        ))
    if thickness.measured and thickness.min_thickness < thickness.recommended_minimum:
        recommendations.append(Recommendation(
            type="printing",
            priority="high",
            message=(
                f"Some walls are thinner than the recommended wall thickness "
                f"({thickness.min_thickness:.2f}mm < {thickness.recommended_minimum:.2f}mm)"
            ),
            action="Increase cube size or cube height",
            expected_improvement="Walls thick enough to print reliably",
        ))
    if printability.support_need > 70:
        recommendations.append(Recommendation(
            type="printing",
            priority="medium",
            message="Model requires significant support structures",
            action="Reorient the model or reduce overhangs",
            expected_improvement="Less support material and better surface finish",
        ))
    if printability.unprintable_bridges:
        recommendations.append(Recommendation(
            type="printing",
            priority="medium",
            message=f"{printability.unprintable_bridges} bridges are too long to print unsupported",
            action="Add supports or shorten the unsupported spans",
            expected_improvement="No sagging on bridged spans",
        ))
    if geometry.duplicate_vertices > 0:
        recommendations.append(Recommendation(
            type="geometry",
            priority="low",
            message=f"Model has {geometry.duplicate_vertices} duplicate vertices",
            action="Run vertex deduplication",
            expected_improvement="Smaller file and cleaner topology",
        ))

    return sorted(recommendations, key=lambda r: SEVERITY_ORDER[r.priority])


def generate_warnings(
    geometry: GeometryAnalysis,
    printability: PrintabilityAnalysis,
) -> List[QualityWarning]:
    """Derive warnings from the findings, errors first."""
    warnings = []
    thickness = printability.wall_thickness

    if geometry.manifoldness < 50:
        warnings.append(QualityWarning(
            category="geometry",
            severity="error",
            message="Severely non-manifold geometry",
            resolution="Regenerate the mesh with optimization enabled",
        ))
    elif geometry.manifoldness < 95:
        warnings.append(QualityWarning(
            category="geometry",
            severity="warning",
            message="Non-manifold edges detected",
            resolution="Run mesh optimization",
        ))
    if geometry.watertightness < 95:
        warnings.append(QualityWarning(
            category="geometry",
            severity="warning",
            message="Mesh has open or inconsistently wound edges",
            resolution="Close the mesh before slicing",
        ))
    if geometry.self_intersections > 0:
        warnings.append(QualityWarning(
            category="geometry",
            severity="error",
            message="Self-intersecting geometry detected",
            resolution="Separate intersecting parts",
        ))
    if geometry.duplicate_vertices > 10:
        warnings.append(QualityWarning(
            category="geometry",
            severity="warning",
            message="Many duplicate vertices",
            resolution="Run vertex deduplication",
        ))
    if printability.overhang_count("high"):
        warnings.append(QualityWarning(
            category="printing",
            severity="warning",
            message=f"{printability.overhang_count('high')} steep overhangs need support",
            resolution="Enable supports in the slicer",
        ))
    if not thickness.measured:
        warnings.append(QualityWarning(
            category="printing",
            severity="info",
            message="Wall thickness could not be measured (open geometry)",
            resolution="Check the model is a closed solid",
        ))
    elif thickness.thin_areas:
        warnings.append(QualityWarning(
            category="printing",
            severity="warning",
            message=f"{len(thickness.thin_areas)} areas are below the minimum wall thickness",
            resolution="Increase cube size or height",
        ))
    if printability.unprintable_bridges:
        warnings.append(QualityWarning(
            category="printing",
            severity="warning",
            message="Unsupported bridges exceed the printable length",
            resolution="Add supports under long spans",
        ))

    return sorted(warnings, key=lambda w: WARNING_ORDER[w.severity])


class QualityAssessor:
    """
    Assess printability of meshes.

    Supports:
    - Manifoldness and watertightness from edge usage
    - Self-intersection detection
    - Duplicate vertex detection
    - Overhang, wall thickness and bridge analysis
    - Report comparison
    """

    def __init__(self, config: Optional[QualityConfig] = None):
        self.config = config or QualityConfig()

    def _check_geometry(self, mesh: Optional[MeshData], stats: Optional[MeshStats]) -> None:
        if mesh is None:
            raise QualityAssessmentError("Cannot assess quality: no mesh provided")

        vertex_count = stats.vertex_count if stats is not None else mesh.vertex_count
        face_count = stats.face_count if stats is not None else mesh.face_count
        if mesh.is_empty or vertex_count == 0 or face_count == 0:
            raise QualityAssessmentError(
                f"Cannot assess empty geometry: mesh has {mesh.vertex_count} vertices "
                f"and {mesh.face_count} faces"
            )
        bad = mesh.invalid_index_count()
        if bad:
            raise QualityAssessmentError(
                f"Corrupted geometry: {bad} face indices out of range for "
                f"{mesh.vertex_count} vertices"
            )
        if not np.all(np.isfinite(mesh.vertices)):
            raise QualityAssessmentError("Corrupted geometry: non-finite vertex coordinates")

    def analyze_geometry(self, mesh: MeshData) -> GeometryAnalysis:
        """Topology and integrity metrics."""
        return GeometryAnalysis(
            manifoldness=round(manifoldness(mesh.faces), 2),
            watertightness=round(watertightness(mesh.faces), 2),
            self_intersections=count_self_intersections(mesh.vertices, mesh.faces),
            duplicate_vertices=count_duplicate_vertices(
                mesh.vertices, self.config.geometry_tolerance
            ),
        )

    def analyze_printability(self, mesh: MeshData) -> PrintabilityAnalysis:
        """Overhangs, wall thickness, bridging and the resulting support need."""
        tolerance = self.config.geometry_tolerance
        overhangs = find_overhangs(
            mesh.vertices, mesh.faces, self.config.max_overhang_angle, tolerance
        )
        thickness = measure_wall_thickness(
            mesh.vertices,
            mesh.faces,
            self.config.min_wall_thickness,
            self.config.thickness_samples,
        )
        bridges = find_bridges(
            mesh.vertices, mesh.faces, self.config.max_bridge_length, tolerance
        )

        analysis = PrintabilityAnalysis(
            overhangs=tuple(overhangs),
            support_need=0.0,
            wall_thickness=thickness,
            bridging=tuple(bridges),
        )
        return replace(analysis, support_need=calculate_support_need(analysis))

    def assess(
        self,
        mesh: MeshData,
        model_id: Optional[str] = None,
        stats: Optional[MeshStats] = None,
    ) -> QualityReport:
        """
        Assess a finished mesh.

        Args:
            mesh: Mesh to assess
            model_id: Identifier recorded in the report (generated if None)
            stats: Precomputed stats, recomputed if missing or out of date

        Returns:
            QualityReport
        """
        self._check_geometry(mesh, stats)
        if stats is None or stats.vertex_count != mesh.vertex_count or stats.face_count != mesh.face_count:
            stats = compute_stats(mesh)

        model_id = model_id or f"model-{uuid.uuid4().hex[:8]}"
        logger.info(
            f"Assessing {model_id}: {stats.vertex_count} vertices, {stats.face_count} faces"
        )

        geometry = self.analyze_geometry(mesh)
        printability = self.analyze_printability(mesh)

        report = QualityReport(
            model_id=model_id,
            overall_score=calculate_overall_score(geometry, printability),
            geometry=geometry,
            printability=printability,
            recommendations=tuple(generate_recommendations(geometry, printability)),
            warnings=tuple(generate_warnings(geometry, printability)),
            timestamp=datetime.now(timezone.utc),
        )
        logger.info(f"Quality score for {model_id}: {report.overall_score}")
        return report

    def assess_buffers(
        self,
        positions: Sequence[float],
        indices: Optional[Sequence[int]] = None,
        model_id: Optional[str] = None,
    ) -> QualityReport:
        """
        Assess flat attribute buffers.

        Args:
            positions: Flat ``x, y, z`` coordinates
            indices: Flat triangle indices; consecutive vertex triples if None
            model_id: Identifier recorded in the report

        Returns:
            QualityReport
        """
        positions = np.asarray(positions, dtype=np.float64).ravel()
        if positions.size % 3:
            raise QualityAssessmentError(
                f"Corrupted geometry: position buffer length {positions.size} is not a multiple of 3"
            )
        vertices = positions.reshape(-1, 3)

        if indices is None:
            if len(vertices) % 3:
                raise QualityAssessmentError(
                    f"Corrupted geometry: {len(vertices)} unindexed vertices do not form triangles"
                )
            faces = np.arange(len(vertices)).reshape(-1, 3)
        else:
            indices = np.asarray(indices, dtype=np.int64).ravel()
            if indices.size % 3:
                raise QualityAssessmentError(
                    f"Corrupted geometry: index buffer length {indices.size} is not a multiple of 3"
                )
            faces = indices.reshape(-1, 3)

        return self.assess(MeshData(vertices=vertices, faces=faces), model_id=model_id)

    def generate_recommendations(self, report: QualityReport) -> List[Recommendation]:
        return generate_recommendations(report.geometry, report.printability)

    def generate_warnings(self, report: QualityReport) -> List[QualityWarning]:
        return generate_warnings(report.geometry, report.printability)

    def compare_quality(self, a: QualityReport, b: QualityReport) -> QualityComparison:
        return compare_quality(a, b)
