"""
Mesh analysis for printability: edge topology, self-intersection,
wall thickness ray casts, overhangs and bridges.

Functions take plain ``(N, 3)`` vertex and ``(M, 3)`` face arrays.
"""

from typing import List, Tuple

import numpy as np

try:
    from scipy.sparse import csr_matrix
    from scipy.sparse.csgraph import connected_components
except ImportError:
    connected_components = None

try:
    import trimesh
except ImportError:
    trimesh = None

from meshing.geometry import Vector3
from meshing.stats import face_normals
from printability.report import BridgeFinding, OverhangFinding, ThicknessAnalysis, ThinArea

EPSILON = 1e-9

# Ray hits closer than this to their origin are the sampled face itself
SELF_HIT_DISTANCE = 1e-6

# Faces whose normal is within ~1 degree of straight down count as horizontal
HORIZONTAL_COS = 0.9998


def edge_usage(faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Count how each undirected edge is used.

    Args:
        faces: Face indices (M, 3)

    Returns:
        Tuple of (unique edges (E, 2) with a < b, uses in a->b direction,
        uses in b->a direction)
    """
    directed = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    undirected = np.sort(directed, axis=1)
    forward = directed[:, 0] < directed[:, 1]

    edges, inverse = np.unique(undirected, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    forward_uses = np.bincount(inverse, weights=forward, minlength=len(edges)).astype(np.int64)
    total_uses = np.bincount(inverse, minlength=len(edges))

    return edges, forward_uses, total_uses - forward_uses


def manifoldness(faces: np.ndarray) -> float:
    """Percentage of edges shared by exactly two faces."""
    if len(faces) == 0:
        return 0.0
    edges, forward, backward = edge_usage(faces)
    return float(np.mean((forward + backward) == 2) * 100.0)


def watertightness(faces: np.ndarray) -> float:
    """
    Percentage of edges used exactly twice in opposite directions.

    A closed, consistently wound surface scores 100; boundary edges and
    flipped neighbours lower the score.
    """
    if len(faces) == 0:
        return 0.0
    edges, forward, backward = edge_usage(faces)
    return float(np.mean((forward == 1) & (backward == 1)) * 100.0)


def _plane_interval(
    tri: np.ndarray,
    dist: np.ndarray,
    direction: np.ndarray,
    eps: float,
) -> Tuple[float, float]:
    """Interval of ``tri`` cut by a plane (signed distances ``dist``), projected on ``direction``."""
    proj = tri @ direction
    points = [proj[k] for k in range(3) if abs(dist[k]) <= eps]
    for u, v in ((0, 1), (1, 2), (2, 0)):
        if (dist[u] > eps and dist[v] < -eps) or (dist[u] < -eps and dist[v] > eps):
            t = dist[u] / (dist[u] - dist[v])
            points.append(proj[u] + t * (proj[v] - proj[u]))
    return min(points), max(points)


def triangles_intersect(t1: np.ndarray, t2: np.ndarray, eps: float = EPSILON) -> bool:
    """
    Check whether two triangles properly cross.

    Each triangle must have vertices strictly on both sides of the other's
    plane and the two cut segments must overlap. Touching contacts and
    coplanar pairs do not count.
    """
    n1 = np.cross(t1[1] - t1[0], t1[2] - t1[0])
    n2 = np.cross(t2[1] - t2[0], t2[2] - t2[0])
    len1 = np.linalg.norm(n1)
    len2 = np.linalg.norm(n2)
    if len1 < eps or len2 < eps:
        return False
    n1 = n1 / len1
    n2 = n2 / len2

    d2 = (t2 - t1[0]) @ n1
    if not (d2.max() > eps and d2.min() < -eps):
        return False
    d1 = (t1 - t2[0]) @ n2
    if not (d1.max() > eps and d1.min() < -eps):
        return False

    direction = np.cross(n1, n2)
    if np.linalg.norm(direction) < eps:
        return False

    lo1, hi1 = _plane_interval(t1, d1, direction, eps)
    lo2, hi2 = _plane_interval(t2, d2, direction, eps)
    return min(hi1, hi2) - max(lo1, lo2) > eps


def count_self_intersections(
    vertices: np.ndarray,
    faces: np.ndarray,
    eps: float = EPSILON,
) -> int:
    """
    Count crossing pairs of non-adjacent triangles.

    Candidate pairs come from a sweep over AABBs sorted by min x; pairs that
    share a vertex index are adjacent and skipped.
    """
    if len(faces) < 2:
        return 0

    tris = vertices[faces]
    lo = tris.min(axis=1)
    hi = tris.max(axis=1)
    order = np.argsort(lo[:, 0], kind="stable")
    sorted_lo_x = lo[order, 0]

    count = 0
    for rank, i in enumerate(order):
        end = np.searchsorted(sorted_lo_x, hi[i, 0] + eps, side="right")
        candidates = order[rank + 1:end]
        if candidates.size == 0:
            continue

        overlap = np.all(lo[candidates, 1:] <= hi[i, 1:] + eps, axis=1) & np.all(
            hi[candidates, 1:] >= lo[i, 1:] - eps, axis=1
        )
        candidates = candidates[overlap]
        if candidates.size == 0:
            continue

        shares_vertex = (faces[candidates][:, :, None] == faces[i][None, None, :]).any(axis=(1, 2))
        for j in candidates[~shares_vertex]:
            if triangles_intersect(tris[i], tris[j], eps):
                count += 1

    return count


def sample_faces(face_count: int, max_samples: int) -> np.ndarray:
    """Evenly strided face indices, at most ``max_samples`` of them."""
    if face_count == 0 or max_samples <= 0:
        return np.zeros(0, dtype=np.int64)
    if face_count <= max_samples:
        return np.arange(face_count)
    return np.unique(np.linspace(0, face_count - 1, max_samples).astype(np.int64))


def measure_wall_thickness(
    vertices: np.ndarray,
    faces: np.ndarray,
    min_wall_thickness: float,
    max_samples: int = 256,
) -> ThicknessAnalysis:
    """
    Measure wall thickness by casting rays inward from face centroids.

    The distance to the nearest other face along the inverted normal is the
    local thickness. Samples whose ray escapes (open geometry) are ignored.

    Args:
        vertices: Vertex coordinates (N, 3)
        faces: Face indices (M, 3)
        min_wall_thickness: Recommended minimum (mm)
        max_samples: Maximum number of sampled faces

    Returns:
        ThicknessAnalysis; zero thickness and ``sample_count == 0`` when no
        ray hit anything
    """
    if trimesh is None:
        raise ImportError("trimesh is required. Install with: pip install trimesh")

    normals = face_normals(vertices, faces)
    samples = sample_faces(len(faces), max_samples)
    samples = samples[np.any(normals[samples] != 0, axis=1)]
    if samples.size == 0:
        return ThicknessAnalysis(0.0, 0.0, (), min_wall_thickness, 0)

    mesh = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
    centroids = vertices[faces[samples]].mean(axis=1)
    locations, index_ray, _ = mesh.ray.intersects_location(
        ray_origins=centroids,
        ray_directions=-normals[samples],
    )
    if len(index_ray):
        distances = np.linalg.norm(locations - centroids[index_ray], axis=1)
    else:
        distances = np.zeros(0)

    thicknesses = []
    thin_areas = []
    for ray in range(len(samples)):
        hits = distances[(index_ray == ray) & (distances > SELF_HIT_DISTANCE)]
        if hits.size == 0:
            continue

        nearest = float(hits.min())
        thicknesses.append(nearest)
        if nearest < min_wall_thickness:
            thin_areas.append(ThinArea(Vector3.from_array(centroids[ray]), nearest))

    if not thicknesses:
        return ThicknessAnalysis(0.0, 0.0, (), min_wall_thickness, 0)

    return ThicknessAnalysis(
        min_thickness=min(thicknesses),
        average_thickness=float(np.mean(thicknesses)),
        thin_areas=tuple(thin_areas),
        recommended_minimum=min_wall_thickness,
        sample_count=len(thicknesses),
    )


def _above_build_plate(tris: np.ndarray, plate_y: float, tolerance: float) -> np.ndarray:
    """True for faces with at least one corner above the lowest layer."""
    return tris[:, :, 1].max(axis=1) > plate_y + tolerance


def overhang_severity(angle: float, threshold: float) -> str:
    excess = angle - threshold
    if excess > 15:
        return "high"
    if excess > 5:
        return "medium"
    return "low"


def find_overhangs(
    vertices: np.ndarray,
    faces: np.ndarray,
    max_angle: float = 45.0,
    tolerance: float = 0.001,
) -> List[OverhangFinding]:
    """
    Find downward faces leaning further than ``max_angle`` from vertical.

    The angle is measured between the face surface and the vertical axis
    (Y up): 0 for a wall, 90 for a ceiling. Faces resting on the build
    plate are skipped.
    """
    if len(faces) == 0:
        return []

    tris = vertices[faces]
    normals = face_normals(vertices, faces)
    angles = np.degrees(np.arcsin(np.clip(-normals[:, 1], 0.0, 1.0)))

    candidates = (
        (normals[:, 1] < -EPSILON)
        & (angles > max_angle)
        & _above_build_plate(tris, vertices[:, 1].min(), tolerance)
    )

    findings = []
    for i in np.nonzero(candidates)[0]:
        severity = overhang_severity(angles[i], max_angle)
        findings.append(
            OverhangFinding(
                position=Vector3.from_array(tris[i].mean(axis=0)),
                angle=round(float(angles[i]), 2),
                severity=severity,
                suggestion=(
                    "Requires support structures" if severity == "high" else "Consider adding supports"
                ),
            )
        )
    return findings


def find_bridges(
    vertices: np.ndarray,
    faces: np.ndarray,
    max_bridge_length: float = 10.0,
    tolerance: float = 0.001,
) -> List[BridgeFinding]:
    """
    Find unsupported horizontal spans.

    Downward horizontal faces above the build plate are grouped into
    connected regions (faces sharing a vertex). Each region is one bridge
    whose length is its longest horizontal extent.
    """
    if connected_components is None:
        raise ImportError("scipy is required. Install with: pip install scipy")
    if len(faces) == 0:
        return []

    tris = vertices[faces]
    normals = face_normals(vertices, faces)
    selected = np.nonzero(
        (normals[:, 1] <= -HORIZONTAL_COS)
        & _above_build_plate(tris, vertices[:, 1].min(), tolerance)
    )[0]
    if selected.size == 0:
        return []

    # Face/vertex incidence; faces sharing a vertex are connected
    bridge_faces = faces[selected]
    rows = np.repeat(np.arange(len(selected)), 3)
    incidence = csr_matrix(
        (np.ones(rows.size), (rows, bridge_faces.ravel())),
        shape=(len(selected), len(vertices)),
    )
    n_regions, labels = connected_components(incidence @ incidence.T, directed=False)

    findings = []
    for region in range(n_regions):
        points = vertices[np.unique(bridge_faces[labels == region])]
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        center = (lo + hi) / 2
        y = float(points[:, 1].mean())

        if hi[0] - lo[0] >= hi[2] - lo[2]:
            start = Vector3(float(lo[0]), y, float(center[2]))
            end = Vector3(float(hi[0]), y, float(center[2]))
            length = float(hi[0] - lo[0])
        else:
            start = Vector3(float(center[0]), y, float(lo[2]))
            end = Vector3(float(center[0]), y, float(hi[2]))
            length = float(hi[2] - lo[2])

        printable = length <= max_bridge_length
        if printable:
            suggestion = "Short enough to bridge without support"
        else:
            suggestion = (
                f"Add support under this {length:.1f}mm span or shorten it "
                f"below {max_bridge_length:.1f}mm"
            )
        findings.append(
            BridgeFinding(
                start_point=start,
                end_point=end,
                length=round(length, 3),
                printable=printable,
                support_suggestion=suggestion,
            )
        )
    return findings
