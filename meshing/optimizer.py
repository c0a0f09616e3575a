"""
Face optimisation: internal wall removal, simplification and the
low/medium/high optimisation levels.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import numpy as np

from dotmesh.errors import MeshOptimizationError
from meshing.dedup import deduplicate_vertices
from meshing.geometry import MeshData
from meshing.stats import update_mesh_stats

logger = logging.getLogger(__name__)

OPTIMIZATION_LEVELS = ("low", "medium", "high")

# Edges shorter than this (mm) are collapsed by simplification
DEFAULT_COLLAPSE_TOLERANCE = 1e-4


@dataclass
class OptimizationResult:
    """Optimised mesh with the achieved reductions in percent."""

    mesh: MeshData
    level: str
    vertex_reduction: float
    face_reduction: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meshData": self.mesh.to_dict(),
            "optimizationLevel": self.level,
            "vertexReduction": f"{self.vertex_reduction:.1f}%",
            "faceReduction": f"{self.face_reduction:.1f}%",
        }


def reduction_percent(before: int, after: int) -> float:
    """Relative reduction from ``before`` to ``after``; 0.0 when ``before`` is 0."""
    if before == 0:
        return 0.0
    return (before - after) / before * 100.0


def remove_unreferenced_vertices(mesh: MeshData) -> MeshData:
    """Drop vertices no face uses and compact the indices, keeping vertex order."""
    used = np.zeros(mesh.vertex_count, dtype=bool)
    if mesh.face_count:
        used[mesh.faces.ravel()] = True

    remap = np.cumsum(used) - 1
    return MeshData(
        vertices=mesh.vertices[used],
        faces=remap[mesh.faces] if mesh.face_count else mesh.faces.copy(),
        normals=None if mesh.normals is None else mesh.normals.copy(),
    )


def _even_winding(faces: np.ndarray) -> np.ndarray:
    """True where a face's index order is an even permutation of its sorted order."""
    a, b, c = faces[:, 0], faces[:, 1], faces[:, 2]
    inversions = (a > b).astype(int) + (a > c) + (b > c)
    return inversions % 2 == 0


def merge_coplanar_faces(mesh: MeshData, angle_tolerance_deg: float = 1.0) -> MeshData:
    """
    Merge coplanar faces where it is safe to do so.

    Triangles sharing the same three vertices cancel in opposite-facing
    pairs; these are the internal walls between touching cells. Repeated
    copies with the same winding collapse to one. Vertices left without a
    face are then dropped. Larger planar regions are not re-triangulated,
    as that would create T-junctions against neighbouring walls.

    Args:
        mesh: Deduplicated input mesh
        angle_tolerance_deg: Accepted for API compatibility; coincident
            triangles are exactly coplanar

    Returns:
        New mesh with at most as many vertices and faces as the input
    """
    if mesh.face_count == 0:
        return remove_unreferenced_vertices(mesh)

    faces = mesh.faces
    sorted_faces = np.sort(faces, axis=1)
    degenerate = (sorted_faces[:, 0] == sorted_faces[:, 1]) | (sorted_faces[:, 1] == sorted_faces[:, 2])
    even = _even_winding(faces)

    _, inverse, counts = np.unique(
        sorted_faces, axis=0, return_inverse=True, return_counts=True
    )
    inverse = inverse.reshape(-1)

    keep = np.ones(mesh.face_count, dtype=bool)
    order = np.argsort(inverse, kind="stable")
    starts = np.concatenate([[0], np.cumsum(counts)[:-1]])

    for group in np.nonzero(counts > 1)[0]:
        members = order[starts[group]:starts[group] + counts[group]]
        if degenerate[members[0]]:
            continue

        forward = members[even[members]]
        backward = members[~even[members]]
        keep[members] = False
        # Opposite windings cancel pairwise; the surplus keeps one face
        if len(forward) > len(backward):
            keep[forward[0]] = True
        elif len(backward) > len(forward):
            keep[backward[0]] = True

    merged = MeshData(
        vertices=mesh.vertices,
        faces=faces[keep],
        normals=None if mesh.normals is None else mesh.normals[keep],
    )
    result = remove_unreferenced_vertices(merged)

    logger.debug(
        f"Coplanar merge removed {mesh.face_count - result.face_count} faces, "
        f"{mesh.vertex_count - result.vertex_count} vertices"
    )
    return result


def simplify_geometry(mesh: MeshData, tolerance: float = DEFAULT_COLLAPSE_TOLERANCE) -> MeshData:
    """
    Collapse edges shorter than ``tolerance`` and drop the faces they degenerate.

    Each cluster of vertices joined by short edges is replaced by its lowest
    index. Faces that end up with a repeated index are removed.

    Args:
        mesh: Input mesh
        tolerance: Maximum length of a collapsed edge

    Returns:
        New mesh with at most as many vertices and faces as the input
    """
    if mesh.face_count == 0:
        return remove_unreferenced_vertices(mesh)

    faces = mesh.faces
    edges = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    lengths = np.linalg.norm(mesh.vertices[edges[:, 0]] - mesh.vertices[edges[:, 1]], axis=1)
    short = edges[(lengths <= tolerance) & (edges[:, 0] != edges[:, 1])]

    parent = np.arange(mesh.vertex_count)

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for a, b in short:
        ra, rb = find(a), find(b)
        if ra != rb:
            parent[max(ra, rb)] = min(ra, rb)

    roots = np.array([find(i) for i in range(mesh.vertex_count)], dtype=np.int64)
    collapsed = roots[faces]
    valid = (
        (collapsed[:, 0] != collapsed[:, 1])
        & (collapsed[:, 1] != collapsed[:, 2])
        & (collapsed[:, 0] != collapsed[:, 2])
    )

    simplified = MeshData(
        vertices=mesh.vertices,
        faces=collapsed[valid],
        normals=None if mesh.normals is None else mesh.normals[valid],
    )
    result = remove_unreferenced_vertices(simplified)

    logger.debug(
        f"Simplification collapsed {len(short)} short edges, "
        f"removed {mesh.face_count - result.face_count} faces"
    )
    return result


def optimize(
    mesh: Optional[MeshData],
    level: str = "medium",
    tolerance: float = DEFAULT_COLLAPSE_TOLERANCE,
    progress: Optional[Callable[[int], None]] = None,
) -> OptimizationResult:
    """
    Optimise a mesh.

    Levels:
    - low: deduplicate vertices
    - medium: + coplanar merge
    - high: + simplification

    Args:
        mesh: Input mesh
        level: Optimisation level
        tolerance: Edge collapse tolerance for the high level
        progress: Called with 30, 60, 80 and 95 as the stages finish

    Returns:
        OptimizationResult with refreshed stats
    """
    if mesh is None:
        raise MeshOptimizationError("Mesh optimization failed: no mesh data provided")
    if level not in OPTIMIZATION_LEVELS:
        raise MeshOptimizationError(
            f"Mesh optimization failed: unknown level {level!r} "
            f"(expected one of {', '.join(OPTIMIZATION_LEVELS)})"
        )
    bad = mesh.invalid_index_count()
    if bad:
        raise MeshOptimizationError(
            f"Mesh optimization failed: {bad} face indices out of range"
        )

    report = progress or (lambda percent: None)

    result = deduplicate_vertices(mesh)
    report(30)
    if level in ("medium", "high"):
        result = merge_coplanar_faces(result)
    report(60)
    if level == "high":
        result = simplify_geometry(result, tolerance)
    report(80)
    update_mesh_stats(result)
    report(95)

    vertex_reduction = reduction_percent(mesh.vertex_count, result.vertex_count)
    face_reduction = reduction_percent(mesh.face_count, result.face_count)
    logger.info(
        f"Optimized mesh ({level}): vertices -{vertex_reduction:.1f}%, faces -{face_reduction:.1f}%"
    )

    return OptimizationResult(
        mesh=result,
        level=level,
        vertex_reduction=vertex_reduction,
        face_reduction=face_reduction,
    )
