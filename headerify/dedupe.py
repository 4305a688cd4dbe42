"""
Vertex deduplication for the header emitter.

Every element gets an equivalence slot pointing at the first element that
shares its key. The header emitter only writes those first occurrences and
rewrites the index buffer through a compacted index table.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Hashable, Sequence

from headerify.model import Mesh, Polygon, Submesh, Vector2

logger = logging.getLogger(__name__)

UV_GRID = (256, 256)

# Older exports keyed polygons on this literal instead of the UV slot.
_LEGACY_UV_TOKEN = "uvIndex"


@dataclass
class Equivalences:
    equivalences: list[int]
    redundant: int

    def is_canonical(self, index: int) -> bool:
        return self.equivalences[index] == index


def find_equivalences(values: Sequence, key_fn: Callable[[object], Hashable]
                      ) -> Equivalences:
    """Map every element to the index of the first element with the same key."""
    first_seen: dict = {}
    equivalences = []
    redundant = 0
    for index, value in enumerate(values):
        key = key_fn(value)
        if key in first_seen:
            equivalences.append(first_seen[key])
            redundant += 1
        else:
            first_seen[key] = index
            equivalences.append(index)
    return Equivalences(equivalences, redundant)


def round_half_away(value: float) -> int:
    """Round .5 away from zero (``round`` would round half to even)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def texel_of(uv: Vector2, width: int, height: int) -> tuple[int, int]:
    """Texel column/row of a UV coordinate; rows count down from the top."""
    return (round_half_away(uv[0] * width),
            height - round_half_away(uv[1] * height))


def find_uv_equivalences(texcoords: Sequence[Vector2],
                         grid: tuple[int, int] = UV_GRID) -> Equivalences:
    """UVs landing on the same texel of ``grid`` are treated as identical."""
    width, height = grid
    return find_equivalences(texcoords, lambda uv: texel_of(uv, width, height))


def find_polygon_equivalences(polygons: Sequence[Polygon],
                              uv_equivalences: Sequence[int],
                              legacy_key: bool = False) -> Equivalences:
    """Deduplicate polygon corners on (position, normal, resolved UV).

    With ``legacy_key`` the UV component is a constant, reproducing the
    output of older exports byte for byte.
    """
    def key(p: Polygon):
        uv = p[2] if p[2] is not None else 0
        if legacy_key:
            return (p[0], p[1], _LEGACY_UV_TOKEN)
        if uv < len(uv_equivalences):
            uv = uv_equivalences[uv]
        return (p[0], p[1], uv)

    return find_equivalences(polygons, key)


def compact_indices(eq: Equivalences, valid: Callable[[int], bool] = None
                    ) -> tuple[list[int | None], int]:
    """Turn equivalence targets into positions in the emitted vertex array.

    Returns the per-slot index table and the number of emitted vertices.
    Canonical slots rejected by ``valid`` are not emitted and map to None,
    as does every slot equivalent to them.
    """
    index_ref: list[int | None] = []
    emitted = 0
    for index, target in enumerate(eq.equivalences):
        if target != index:
            index_ref.append(index_ref[target])
        elif valid is not None and not valid(index):
            index_ref.append(None)
        else:
            index_ref.append(emitted)
            emitted += 1
    return index_ref, emitted


# ---------------------------------------------------------------------------
# Whole-mesh tables
# ---------------------------------------------------------------------------

@dataclass
class SubmeshTable:
    submesh: Submesh
    equivalences: Equivalences
    index_ref: list[int | None]
    vertex_count: int


@dataclass
class MeshTables:
    uv: Equivalences
    submeshes: list[SubmeshTable]

    @property
    def redundant_vertices(self) -> int:
        return sum(t.equivalences.redundant for t in self.submeshes)


def build_mesh_tables(mesh: Mesh, grid: tuple[int, int] = UV_GRID,
                      legacy_key: bool = False) -> MeshTables:
    """Run the UV pass once and the polygon pass for every submesh."""
    uv_eq = find_uv_equivalences(mesh.texcoords, grid)
    vertex_total = len(mesh.vertices)
    tables = []
    for submesh in mesh.submeshes:
        eq = find_polygon_equivalences(submesh.polygons, uv_eq.equivalences,
                                       legacy_key)

        def valid(slot: int, polygons=submesh.polygons) -> bool:
            if 0 <= polygons[slot][0] < vertex_total:
                return True
            logger.warning("Null vertex! Corner %d references position %d",
                           slot, polygons[slot][0])
            return False

        index_ref, emitted = compact_indices(eq, valid)
        tables.append(SubmeshTable(submesh, eq, index_ref, emitted))
    return MeshTables(uv_eq, tables)
