"""
Exception hierarchy for the dot pattern to mesh pipeline.

Generation and export failures share the ``DotMeshError`` family; quality
assessment failures use their own type so callers can tell a rejected model
apart from a broken pipeline.
"""


class DotMeshError(Exception):
    """Base class for pipeline errors."""


class InvalidInputError(DotMeshError, ValueError):
    """Malformed pattern or parameters, rejected before any geometry work."""


class MeshGenerationError(DotMeshError):
    """Mesh generation failed."""


class MeshOptimizationError(DotMeshError):
    """Mesh optimization failed."""


class OBJExportError(DotMeshError):
    """Mesh could not be serialized."""


class QualityAssessmentError(Exception):
    """Geometry rejected by the quality assessor (empty or corrupted)."""
