"""
Error taxonomy shared by all processors.

Fatal problems are exceptions; recoverable ones are recorded as diagnostics
on the model and surfaced through ``ProcessorResult.warnings``.
"""


class HeaderifyError(Exception):
    """Base class for every error raised by headerify."""


class MalformedInputError(HeaderifyError, ValueError):
    """A required structural element is missing from the input document."""


class UnsupportedPolygonError(HeaderifyError):
    """A face has a vertex count other than 3 or 4."""

    def __init__(self, size: int, face_index: int, material: str = ""):
        self.size = size
        self.face_index = face_index
        self.material = material
        where = f" in submesh '{material}'" if material else ""
        super().__init__(
            f"{size}-gons not supported (face {face_index}{where}). "
            "Only triangles and quads")


class IOFailure(HeaderifyError, OSError):
    """An output path could not be written."""


class TruncationWarning(UserWarning):
    """Vertices had more joint influences than a skinned vertex can hold."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"There are {count} vertices with more than {limit} joint "
            f"contributions! Ignoring joint {limit + 1} onwards...")
