"""
Mesh export: deterministic OBJ text, an OBJ reader and trimesh-backed
STL/PLY export.
"""

import logging
import re
import time
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

try:
    import trimesh
except ImportError:
    trimesh = None

from dotmesh.config import ExportConfig, GenerationParams
from dotmesh.errors import OBJExportError
from meshing.geometry import DotPattern, MeshData

logger = logging.getLogger(__name__)

TOOL_NAME = "Dot Art 3D Converter"
EXPORT_FORMATS = ("obj", "stl", "ply")

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def _check_exportable(mesh: Optional[MeshData]) -> None:
    if mesh is None:
        raise OBJExportError("OBJ export failed: no mesh data provided")
    bad = mesh.invalid_index_count()
    if bad:
        raise OBJExportError(
            f"OBJ export failed: {bad} face indices out of range for "
            f"{mesh.vertex_count} vertices"
        )


def write_obj(
    mesh: MeshData,
    precision: int = 6,
    include_comments: bool = True,
    pattern: Optional[DotPattern] = None,
    params: Optional[GenerationParams] = None,
) -> str:
    """
    Serialize a mesh to OBJ text.

    Output is a pure function of the mesh and arguments: header comments,
    a blank line, ``v`` lines, a blank line, then ``f`` lines with 1-based
    indices. The text ends with a newline.

    Args:
        mesh: Mesh to serialize
        precision: Decimal places for coordinates
        include_comments: Emit the ``#`` header block
        pattern: Source pattern, recorded in the header
        params: Generation parameters, recorded in the header

    Returns:
        OBJ text
    """
    _check_exportable(mesh)
    if precision < 0:
        raise OBJExportError(f"OBJ export failed: precision must be >= 0, got {precision}")

    lines: List[str] = []
    if include_comments:
        lines.append("# Dot Art 3D Model")
        lines.append(f"# Generated by {TOOL_NAME}")
        lines.append(f"# Vertices: {mesh.vertex_count}")
        lines.append(f"# Faces: {mesh.face_count}")
        if pattern is not None:
            lines.append(
                f"# Pattern: {pattern.width}x{pattern.height} "
                f"({pattern.active_count} active dots)"
            )
        if params is not None:
            settings = ", ".join(f"{k}={v}" for k, v in params.to_dict().items())
            lines.append(f"# Parameters: {settings}")
        lines.append("")

    for x, y, z in mesh.vertices:
        lines.append(f"v {x:.{precision}f} {y:.{precision}f} {z:.{precision}f}")

    # OBJ uses 1-based indexing
    lines.append("")
    for a, b, c in mesh.faces:
        lines.append(f"f {a + 1} {b + 1} {c + 1}")

    return "\n".join(lines) + "\n"


def _parse_index(token: str, vertex_count: int, line_no: int) -> int:
    try:
        index = int(token.split("/")[0])
    except ValueError as e:
        raise OBJExportError(f"Malformed OBJ face index {token!r} on line {line_no}") from e

    # Negative indices are relative to the vertices read so far
    resolved = vertex_count + index if index < 0 else index - 1
    if index == 0 or not 0 <= resolved < vertex_count:
        raise OBJExportError(
            f"OBJ face index {index} on line {line_no} out of range for {vertex_count} vertices"
        )
    return resolved


def read_obj(text: str) -> MeshData:
    """
    Parse OBJ text into a mesh.

    Only ``v`` and ``f`` records are read; polygons are fan-triangulated and
    ``v/vt/vn`` face tokens use their vertex part.

    Args:
        text: OBJ file contents

    Returns:
        Parsed mesh (stale stats)
    """
    vertices = []
    faces = []

    for line_no, raw in enumerate(text.splitlines(), start=1):
        parts = raw.split()
        if not parts or parts[0].startswith("#"):
            continue

        if parts[0] == "v":
            try:
                vertices.append([float(p) for p in parts[1:4]])
            except ValueError as e:
                raise OBJExportError(f"Malformed OBJ vertex on line {line_no}") from e
            if len(vertices[-1]) != 3:
                raise OBJExportError(f"OBJ vertex on line {line_no} needs 3 coordinates")
        elif parts[0] == "f":
            if len(parts) < 4:
                raise OBJExportError(f"OBJ face on line {line_no} needs at least 3 vertices")
            polygon = [_parse_index(p, len(vertices), line_no) for p in parts[1:]]
            for i in range(1, len(polygon) - 1):
                faces.append([polygon[0], polygon[i], polygon[i + 1]])

    return MeshData(vertices=np.array(vertices, dtype=np.float64), faces=np.array(faces, dtype=np.int64))


def validate_export_filename(filename: str) -> List[str]:
    """
    Check an export filename.

    Returns:
        List of error messages (empty when valid)
    """
    errors = []
    if _INVALID_FILENAME_CHARS.search(filename):
        errors.append("Filename contains invalid characters")
    if len(filename) == 0:
        errors.append("Filename cannot be empty")
    if len(filename) > 100:
        errors.append("Filename is too long (max 100 characters)")
    return errors


def make_export_filename(
    base: str = "dot-art-model",
    extension: str = "obj",
    timestamp: Optional[float] = None,
) -> str:
    """Build ``<base>-<milliseconds>.<extension>`` for downloads."""
    if timestamp is None:
        timestamp = time.time()
    return f"{base}-{int(timestamp * 1000)}.{extension}"


class MeshExporter:
    """
    Export meshes to files.

    Supports:
    - OBJ (native writer, byte-stable)
    - STL, PLY (through trimesh)
    """

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def prepare(self, mesh: MeshData) -> MeshData:
        """Apply the configured scale factor and centring."""
        if self.config.scale_factor != 1.0:
            mesh = mesh.scaled(self.config.scale_factor)
        if self.config.center_model:
            mesh = mesh.centered()
        return mesh

    def to_obj(
        self,
        mesh: MeshData,
        pattern: Optional[DotPattern] = None,
        params: Optional[GenerationParams] = None,
    ) -> str:
        """Serialize with the configured precision and comment setting."""
        _check_exportable(mesh)
        return write_obj(
            self.prepare(mesh),
            precision=self.config.precision,
            include_comments=self.config.include_comments,
            pattern=pattern,
            params=params,
        )

    def export_obj(
        self,
        mesh: MeshData,
        path: Union[str, Path],
        pattern: Optional[DotPattern] = None,
        params: Optional[GenerationParams] = None,
    ) -> Path:
        """
        Export to OBJ format.

        Args:
            mesh: Mesh to write
            path: Output file path
            pattern: Source pattern for the header
            params: Generation parameters for the header

        Returns:
            Path to exported file
        """
        text = self.to_obj(mesh, pattern=pattern, params=params)

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)

        logger.info(f"Exported OBJ to {path}")
        return path

    def export(
        self,
        mesh: MeshData,
        path: Union[str, Path],
        format: Optional[str] = None,
    ) -> Path:
        """
        Export mesh to file.

        Args:
            mesh: Mesh to write
            path: Output file path
            format: File format (inferred from extension if None)

        Returns:
            Path to exported file
        """
        path = Path(path)
        if format is None:
            format = path.suffix.lower().lstrip(".") or self.config.format
        format = format.lower()

        if format == "obj":
            return self.export_obj(mesh, path)
        if format not in EXPORT_FORMATS:
            raise OBJExportError(
                f"Unsupported export format {format!r} (expected one of {', '.join(EXPORT_FORMATS)})"
            )
        if trimesh is None:
            raise ImportError("trimesh is required for STL/PLY export. Install with: pip install trimesh")

        _check_exportable(mesh)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.prepare(mesh).to_trimesh().export(str(path), file_type=format)

        logger.info(f"Exported {format.upper()} to {path}")
        return path


def export_obj(
    mesh: MeshData,
    path: Union[str, Path],
    precision: int = 6,
    include_comments: bool = True,
    pattern: Optional[DotPattern] = None,
    params: Optional[GenerationParams] = None,
) -> Path:
    """Write ``write_obj`` output to ``path``."""
    config = ExportConfig(precision=precision, include_comments=include_comments)
    return MeshExporter(config).export_obj(mesh, path, pattern=pattern, params=params)


def export_mesh(
    mesh: MeshData,
    path: Union[str, Path],
    format: Optional[str] = None,
    config: Optional[ExportConfig] = None,
) -> Path:
    """Export to OBJ, STL or PLY (inferred from the extension if ``format`` is None)."""
    return MeshExporter(config).export(mesh, path, format=format)
