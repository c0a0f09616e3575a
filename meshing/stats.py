"""
Bounds, surface area and volume of indexed meshes.
"""

import logging

import numpy as np

from meshing.geometry import Bounds, MeshData, MeshStats, Vector3

logger = logging.getLogger(__name__)


def face_areas(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Area of every triangle: half the magnitude of the edge cross product."""
    if len(faces) == 0:
        return np.zeros(0)
    v0 = vertices[faces[:, 0]]
    v1 = vertices[faces[:, 1]]
    v2 = vertices[faces[:, 2]]
    return 0.5 * np.linalg.norm(np.cross(v1 - v0, v2 - v0), axis=1)


def face_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """
    Unit normals from the winding order.

    Degenerate triangles get a zero normal.
    """
    if len(faces) == 0:
        return np.zeros((0, 3))
    v0 = vertices[faces[:, 0]]
    v1 = vertices[faces[:, 1]]
    v2 = vertices[faces[:, 2]]

    normals = np.cross(v1 - v0, v2 - v0)
    norms = np.linalg.norm(normals, axis=1, keepdims=True)
    return normals / np.where(norms > 0, norms, 1)


def compute_bounds(mesh: MeshData) -> Bounds:
    """Axis-aligned bounds; zeroed for a mesh without vertices."""
    if mesh.vertex_count == 0:
        return Bounds()
    return Bounds(
        min=Vector3.from_array(mesh.vertices.min(axis=0)),
        max=Vector3.from_array(mesh.vertices.max(axis=0)),
    )


def compute_volume(mesh: MeshData) -> float:
    """
    Enclosed volume from signed tetrahedra against the origin.

    Exact for closed, consistently wound meshes; an estimate otherwise.
    """
    if mesh.face_count == 0:
        return 0.0
    tris = mesh.triangles()
    signed = np.einsum("ij,ij->i", tris[:, 0], np.cross(tris[:, 1], tris[:, 2]))
    return float(abs(signed.sum()) / 6.0)


def compute_stats(mesh: MeshData) -> MeshStats:
    """
    Calculate vertex/face counts, surface area and volume.

    Args:
        mesh: Input mesh (indices must be valid)

    Returns:
        MeshStats (all zero for an empty mesh)
    """
    return MeshStats(
        vertex_count=mesh.vertex_count,
        face_count=mesh.face_count,
        surface_area=float(face_areas(mesh.vertices, mesh.faces).sum()),
        volume=compute_volume(mesh),
    )


def update_mesh_stats(mesh: MeshData) -> MeshData:
    """Recompute bounds and stats in place and clear the stale flag."""
    mesh.bounds = compute_bounds(mesh)
    mesh.stats = compute_stats(mesh)
    mesh.stale = False

    logger.debug(
        f"Mesh stats: {mesh.stats.vertex_count} vertices, {mesh.stats.face_count} faces, "
        f"area {mesh.stats.surface_area:.3f}"
    )
    return mesh
