"""
Matrix helpers: Z-up → Y-up axis conversion and XYZ Euler decomposition.

Matrices travel through the model as 16 floats in row-major order (the
Collada layout); numpy is only used inside this module.
"""

import dataclasses
import logging
import math

import numpy as np

from headerify.model import Matrix4, SceneModel, Skin, Vector3

logger = logging.getLogger(__name__)

# (x, y, z) -> (x, z, -y)
_AXIS_PERMUTATION = np.array([
    [1.0, 0.0, 0.0, 0.0],
    [0.0, 0.0, 1.0, 0.0],
    [0.0, -1.0, 0.0, 0.0],
    [0.0, 0.0, 0.0, 1.0],
])

EulerTriple = tuple[float, float, float]

_MIN_SCALE = 1e-9


# ---------------------------------------------------------------------------
# Conversions between the flat model layout and numpy
# ---------------------------------------------------------------------------

def to_array(m: Matrix4) -> np.ndarray:
    """Row-major 16 floats → 4x4 array."""
    return np.asarray(m, dtype=float).reshape(4, 4)


def to_flat(a: np.ndarray) -> Matrix4:
    return [float(v) for v in np.asarray(a, dtype=float).reshape(16)]


def translation_of(m: Matrix4) -> Vector3:
    return (float(m[3]), float(m[7]), float(m[11]))


def rotation_of(m) -> np.ndarray:
    """Upper-left 3x3 block of a 4x4 transform (flat list or array)."""
    a = np.asarray(m, dtype=float)
    if a.shape == (3, 3):
        return a
    return a.reshape(4, 4)[:3, :3]


# ---------------------------------------------------------------------------
# Axis conversion
# ---------------------------------------------------------------------------

def convert_vector(v) -> Vector3:
    return (v[0], v[2], -v[1])


def convert_matrix(m: Matrix4) -> Matrix4:
    """Conjugate a transform by the Z-up → Y-up permutation.

    A matrix without its 16th element has not been filled in yet and is
    returned unchanged.
    """
    if m is None or len(m) < 16:
        return m
    p = _AXIS_PERMUTATION
    return to_flat(p @ to_array(m) @ p.T)


def convert_axes(model: SceneModel, enabled: bool) -> SceneModel:
    """Return a copy of ``model`` remapped from Z-up to Y-up.

    Bone transforms are converted one by one, never recomposed along the
    chain. Bind-shape and animation matrices are left as authored.
    """
    if not enabled:
        return model

    mesh = dataclasses.replace(
        model.mesh,
        vertices=[convert_vector(v) for v in model.mesh.vertices],
        normals=[convert_vector(n) for n in model.mesh.normals],
    )
    skin: Skin | None = model.skin
    if skin is not None:
        skin = dataclasses.replace(
            skin,
            inverse_bind_matrices=[
                convert_matrix(m) for m in skin.inverse_bind_matrices],
        )
    skeleton = dataclasses.replace(
        model.skeleton,
        bones=[dataclasses.replace(b, transform=convert_matrix(b.transform))
               for b in model.skeleton.bones],
    )
    logger.debug("Converted %d vertices and %d bones from Z-up to Y-up",
                 len(mesh.vertices), len(skeleton.bones))
    return dataclasses.replace(
        model,
        mesh=mesh,
        skin=skin,
        skeleton=skeleton,
        armature_transform=convert_matrix(model.armature_transform),
    )


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def axis_rotation(axis: int, degrees: float) -> np.ndarray:
    """3x3 rotation about the X (0), Y (1) or Z (2) axis."""
    r = math.radians(degrees)
    c, s = math.cos(r), math.sin(r)
    if axis == 0:
        return np.array([[1, 0, 0], [0, c, -s], [0, s, c]], dtype=float)
    if axis == 1:
        return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]], dtype=float)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]], dtype=float)


def compose_transform(translate: Vector3 = (0.0, 0.0, 0.0),
                      rotate: Vector3 = (0.0, 0.0, 0.0),
                      scale: Vector3 = (1.0, 1.0, 1.0)) -> Matrix4:
    """Build a transform from translate / XYZ rotation (degrees) / scale.

    X is applied first, then Y, then Z. Each rotation column is multiplied by
    the matching scale factor and the translation fills the last column.
    """
    rot = (axis_rotation(2, rotate[2]) @ axis_rotation(1, rotate[1])
           @ axis_rotation(0, rotate[0]))
    m = np.eye(4)
    m[:3, :3] = rot * np.asarray(scale, dtype=float)
    m[:3, 3] = translate
    return to_flat(m)


def orthonormal_basis(m) -> np.ndarray | None:
    """Rotation block with the scale divided out of each column.

    Returns None when a column has (near) zero length.
    """
    r = rotation_of(m)
    norms = np.linalg.norm(r, axis=0)
    if np.any(norms < _MIN_SCALE):
        return None
    return r / norms


def relative_rotation(reference: Matrix4, current: Matrix4
                      ) -> np.ndarray | None:
    """``inverse(R_reference) · R_current`` on the scale-free rotation blocks.

    None if either block is degenerate.
    """
    ref = orthonormal_basis(reference)
    cur = orthonormal_basis(current)
    if ref is None or cur is None:
        return None
    return ref.T @ cur


# ---------------------------------------------------------------------------
# Euler decomposition
# ---------------------------------------------------------------------------

def decompose_rotation(m) -> list[EulerTriple]:
    """Solve ``R = Rz(z)·Ry(y)·Rx(x)`` for (x, y, z) in degrees.

    Two solutions are returned in the regular case. When ``R[2,0]`` is
    exactly ±1 the rotation is gimbal locked and a single solution is
    returned with the free z angle pinned to 0.
    """
    r = rotation_of(m)
    # float noise may push the term just past ±1
    r20 = min(1.0, max(-1.0, float(r[2, 0])))

    if r20 != 1.0 and r20 != -1.0:
        y1 = -math.asin(r20)
        y2 = math.pi - y1
        solutions = []
        for y in (y1, y2):
            cy = math.cos(y)
            x = math.atan2(r[2, 1] / cy, r[2, 2] / cy)
            z = math.atan2(r[1, 0] / cy, r[0, 0] / cy)
            solutions.append((math.degrees(x), math.degrees(y),
                              math.degrees(z)))
        return solutions

    z = 0.0
    if r20 == -1.0:
        y = math.pi / 2
        x = z + math.atan2(r[0, 1], r[0, 2])
    else:
        y = -math.pi / 2
        x = -z + math.atan2(-r[0, 1], -r[0, 2])
    return [(math.degrees(x), math.degrees(y), math.degrees(z))]


def correct_angles(angles: EulerTriple,
                   offset: EulerTriple | None = None,
                   axis_map: tuple[int, int, int] | None = None,
                   axis_sign: EulerTriple | None = None) -> EulerTriple:
    """Apply the fixed legacy corrections used by old pose exports."""
    x, y, z = angles
    if offset is not None:
        x, y, z = x + offset[0], y + offset[1], z + offset[2]
    if axis_map is not None:
        src = (x, y, z)
        sign = axis_sign or (1.0, 1.0, 1.0)
        x, y, z = (src[axis_map[i]] * sign[i] for i in range(3))
    return (x, y, z)
