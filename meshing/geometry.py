"""
Geometry value types: vectors, bounds, faces, dot patterns and indexed meshes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from dotmesh.errors import InvalidInputError

# Decimal places of the fixed-point key used for vertex equality
DEDUP_DECIMALS = 6

_ON_CHARS = set("#1Xx*")
_OFF_CHARS = set(".0 -_")


def quantize(points: np.ndarray, decimals: int = DEDUP_DECIMALS) -> np.ndarray:
    """
    Quantize coordinates to fixed-point integers.

    Args:
        points: Coordinates (N, 3)
        decimals: Number of decimal places kept

    Returns:
        Integer keys (N, 3)
    """
    scale = 10.0 ** decimals
    return np.round(np.asarray(points, dtype=np.float64) * scale).astype(np.int64)


def _cell_value(value: Any) -> Any:
    """Booleans and 0/1 integers become bools; anything else is kept for ``validate()`` to reject."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    return value


@dataclass(frozen=True)
class Vector3:
    """3D point or direction."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Vector3":
        return cls(float(values[0]), float(values[1]), float(values[2]))

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Vector3":
        return cls(float(data["x"]), float(data["y"]), float(data["z"]))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    def key(self, decimals: int = DEDUP_DECIMALS) -> Tuple[int, int, int]:
        """Tolerance key: coordinates rounded to ``decimals`` places."""
        return tuple(int(v) for v in quantize([self.x, self.y, self.z], decimals))


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned bounding box."""

    min: Vector3 = field(default_factory=Vector3)
    max: Vector3 = field(default_factory=Vector3)

    @property
    def size(self) -> Vector3:
        return Vector3(
            self.max.x - self.min.x,
            self.max.y - self.min.y,
            self.max.z - self.min.z,
        )

    @property
    def center(self) -> Vector3:
        return Vector3(
            (self.min.x + self.max.x) / 2,
            (self.min.y + self.max.y) / 2,
            (self.min.z + self.max.z) / 2,
        )

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {"min": self.min.to_dict(), "max": self.max.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bounds":
        return cls(Vector3.from_dict(data["min"]), Vector3.from_dict(data["max"]))


@dataclass(frozen=True)
class MeshStats:
    """Derived mesh statistics."""

    vertex_count: int = 0
    face_count: int = 0
    surface_area: float = 0.0
    volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vertexCount": self.vertex_count,
            "faceCount": self.face_count,
            "surfaceArea": self.surface_area,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeshStats":
        return cls(
            vertex_count=int(data.get("vertexCount", 0)),
            face_count=int(data.get("faceCount", 0)),
            surface_area=float(data.get("surfaceArea", 0.0)),
            volume=float(data.get("volume", 0.0)),
        )


@dataclass(frozen=True)
class Face:
    """Triangle as three vertex indices plus an optional unit normal."""

    indices: Tuple[int, int, int]
    normal: Optional[Vector3] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"vertices": list(self.indices)}
        if self.normal is not None:
            data["normal"] = self.normal.to_dict()
        return data


@dataclass(frozen=True)
class DotPattern:
    """
    Rectangular boolean grid. ``data[y][x]`` is True for an active dot.

    Construction does not validate; call ``validate()`` before generating.
    """

    width: int
    height: int
    data: Tuple[Tuple[bool, ...], ...]

    def __post_init__(self):
        rows = tuple(tuple(_cell_value(v) for v in row) for row in self.data)
        object.__setattr__(self, "data", rows)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[bool]]) -> "DotPattern":
        """Build a pattern, taking the dimensions from the rows."""
        rows = [list(row) for row in rows]
        width = len(rows[0]) if rows else 0
        return cls(width=width, height=len(rows), data=rows)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "DotPattern":
        """Build a pattern from a 2D array (nonzero = active)."""
        array = np.asarray(array)
        if array.ndim != 2:
            raise InvalidInputError(f"Dot pattern array must be 2D, got shape {array.shape}")
        return cls.from_rows((array != 0).tolist())

    @classmethod
    def from_text(cls, text: str) -> "DotPattern":
        """
        Parse a text grid. ``#``, ``1``, ``X`` and ``*`` mark active dots;
        ``.``, ``0``, ``-``, ``_`` and spaces mark empty cells.
        """
        rows = []
        for line_no, line in enumerate(text.splitlines(), start=1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            row = []
            for ch in line:
                if ch in _ON_CHARS:
                    row.append(True)
                elif ch in _OFF_CHARS:
                    row.append(False)
                else:
                    raise InvalidInputError(f"Unexpected character {ch!r} on line {line_no}")
            rows.append(row)
        return cls.from_rows(rows)

    @classmethod
    def empty(cls, width: int, height: int) -> "DotPattern":
        return cls(width=width, height=height, data=[[False] * width for _ in range(height)])

    def validate(self) -> None:
        """Raise InvalidInputError unless the grid is a non-empty rectangle of booleans."""
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(
                f"Invalid dot pattern dimensions: {self.width}x{self.height}"
            )
        if len(self.data) != self.height:
            raise InvalidInputError(
                f"Dot pattern has {len(self.data)} rows, expected {self.height}"
            )
        for y, row in enumerate(self.data):
            if len(row) != self.width:
                raise InvalidInputError(
                    f"Dot pattern row {y} has {len(row)} cells, expected {self.width}"
                )
            for x, value in enumerate(row):
                if not isinstance(value, bool):
                    raise InvalidInputError(
                        f"Dot pattern cell ({x}, {y}) must be a boolean, got {value!r}"
                    )

    @property
    def active_count(self) -> int:
        return sum(value is True for row in self.data for value in row)

    def iter_active(self) -> Iterator[Tuple[int, int]]:
        """Yield ``(x, y)`` of every active dot in row-major order."""
        for y, row in enumerate(self.data):
            for x, value in enumerate(row):
                if value is True:
                    yield x, y

    def to_array(self) -> np.ndarray:
        return np.array(self.data, dtype=bool).reshape(self.height, self.width)


@dataclass(eq=False)
class MeshData:
    """
    Indexed triangle mesh.

    ``bounds`` and ``stats`` are derived; they are only valid while ``stale``
    is False, i.e. directly after ``meshing.stats.update_mesh_stats``.
    """

    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    faces: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))
    normals: Optional[np.ndarray] = None
    bounds: Bounds = field(default_factory=Bounds)
    stats: MeshStats = field(default_factory=MeshStats)
    stale: bool = True

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if len(self.normals) != len(self.faces):
                raise InvalidInputError(
                    f"Got {len(self.normals)} normals for {len(self.faces)} faces"
                )

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def face_count(self) -> int:
        return int(self.faces.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0 or self.face_count == 0

    def invalidate(self) -> None:
        """Mark bounds and stats stale after a structural change."""
        self.stale = True

    def face(self, index: int) -> Face:
        normal = None
        if self.normals is not None:
            normal = Vector3.from_array(self.normals[index])
        a, b, c = (int(i) for i in self.faces[index])
        return Face(indices=(a, b, c), normal=normal)

    def iter_faces(self) -> Iterator[Face]:
        for i in range(self.face_count):
            yield self.face(i)

    def invalid_index_count(self) -> int:
        """Number of face indices outside ``[0, vertex_count)``."""
        if self.face_count == 0:
            return 0
        return int(np.sum((self.faces < 0) | (self.faces >= self.vertex_count)))

    def validate_indices(self) -> None:
        """Raise InvalidInputError if any face references a missing vertex."""
        bad = self.invalid_index_count()
        if bad:
            raise InvalidInputError(
                f"{bad} face indices out of range for {self.vertex_count} vertices"
            )

    def triangles(self) -> np.ndarray:
        """Corner coordinates of every face (M, 3, 3)."""
        return self.vertices[self.faces]

    def copy(self) -> "MeshData":
        return MeshData(
            vertices=self.vertices.copy(),
            faces=self.faces.copy(),
            normals=None if self.normals is None else self.normals.copy(),
            bounds=self.bounds,
            stats=self.stats,
            stale=self.stale,
        )

    def scaled(self, factor: float) -> "MeshData":
        """Return a uniformly scaled copy (normals are scale invariant)."""
        mesh = self.copy()
        mesh.vertices = mesh.vertices * float(factor)
        mesh.invalidate()
        return mesh

    def centered(self) -> "MeshData":
        """Return a copy translated so the bounding box centre is the origin."""
        mesh = self.copy()
        if mesh.vertex_count:
            lo = mesh.vertices.min(axis=0)
            hi = mesh.vertices.max(axis=0)
            mesh.vertices = mesh.vertices - (lo + hi) / 2
        mesh.invalidate()
        return mesh

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the message payload shape."""
        return {
            "vertices": [
                {"x": float(v[0]), "y": float(v[1]), "z": float(v[2])} for v in self.vertices
            ],
            "faces": [face.to_dict() for face in self.iter_faces()],
            "bounds": self.bounds.to_dict(),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeshData":
        """
        Build from the message payload shape.

        Vertices may be ``{x, y, z}`` dicts or 3-sequences, faces may be
        ``{vertices: [a, b, c], normal}`` dicts or 3-sequences. ``bounds`` and
        ``stats`` are not trusted; the mesh comes back stale.
        """
        try:
            vertices = [
                (v["x"], v["y"], v["z"]) if isinstance(v, dict) else tuple(v)
                for v in data.get("vertices", [])
            ]
            raw_faces = data.get("faces", [])
            faces = []
            normals: List[Tuple[float, float, float]] = []
            for f in raw_faces:
                if isinstance(f, dict):
                    faces.append(tuple(f["vertices"]))
                    if f.get("normal") is not None:
                        n = f["normal"]
                        normals.append((n["x"], n["y"], n["z"]))
                else:
                    faces.append(tuple(f))
            vertex_array = np.array(vertices, dtype=np.float64).reshape(-1, 3)
            face_array = np.array(faces, dtype=np.int64).reshape(-1, 3)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Malformed mesh data: {e}") from e

        if len(vertices) and vertex_array.shape[0] != len(vertices):
            raise InvalidInputError("Malformed mesh data: vertices must have 3 coordinates")
        if len(faces) and face_array.shape[0] != len(faces):
            raise InvalidInputError("Malformed mesh data: faces must have 3 indices")

        face_normals = None
        if normals and len(normals) == len(faces):
            face_normals = np.array(normals, dtype=np.float64)

        return cls(vertices=vertex_array, faces=face_array, normals=face_normals)

    def to_trimesh(self):
        """Convert to a ``trimesh.Trimesh`` without merging or repairing."""
        import trimesh

        return trimesh.Trimesh(vertices=self.vertices, faces=self.faces, process=False)
