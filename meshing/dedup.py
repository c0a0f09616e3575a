"""
Vertex deduplication by fixed-point position keys.
"""

import logging

import numpy as np

from meshing.geometry import DEDUP_DECIMALS, MeshData, quantize

logger = logging.getLogger(__name__)


def _first_sighting_map(keys: np.ndarray):
    """
    Map every row of ``keys`` to the output index of its first occurrence.

    Returns:
        Tuple of (indices of the kept rows in input order, remap array)
    """
    _, first_index, inverse = np.unique(
        keys, axis=0, return_index=True, return_inverse=True
    )
    inverse = inverse.reshape(-1)

    # np.unique orders groups by key; renumber them by first appearance
    order = np.argsort(first_index, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))

    return first_index[order], rank[inverse]


def deduplicate_vertices(mesh: MeshData, decimals: int = DEDUP_DECIMALS) -> MeshData:
    """
    Merge vertices whose positions agree to ``decimals`` places.

    The first vertex seen at a position is kept verbatim and later copies
    are redirected to it. Faces, their order and winding are unchanged, so
    running this twice yields identical buffers.

    Args:
        mesh: Input mesh
        decimals: Decimal places of the position key

    Returns:
        New mesh with remapped faces (stale stats)
    """
    if mesh.vertex_count == 0:
        result = mesh.copy()
        result.invalidate()
        return result

    kept, remap = _first_sighting_map(quantize(mesh.vertices, decimals))

    result = MeshData(
        vertices=mesh.vertices[kept].copy(),
        faces=remap[mesh.faces] if mesh.face_count else mesh.faces.copy(),
        normals=None if mesh.normals is None else mesh.normals.copy(),
    )

    logger.debug(f"Deduplicated {mesh.vertex_count} -> {result.vertex_count} vertices")
    return result


def count_duplicate_vertices(vertices: np.ndarray, tolerance: float = 0.001) -> int:
    """
    Count vertices whose tolerance-snapped position was already seen.

    Args:
        vertices: Vertex coordinates (N, 3)
        tolerance: Grid size used to snap positions

    Returns:
        Number of redundant vertices
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    if len(vertices) == 0:
        return 0
    keys = np.round(vertices / tolerance).astype(np.int64)
    return int(len(keys) - len(np.unique(keys, axis=0)))
