"""
In-memory scene model produced by the Collada extractor.

Vectors and matrices are plain tuples/lists of floats; matrices are 16 values
in row-major order. The model is built once and only replaced (never
mutated) by later pipeline stages.
"""

from dataclasses import dataclass, field

Vector2 = tuple[float, float]
Vector3 = tuple[float, float, float]
Matrix4 = list[float]

# (position index, normal index, texcoord index)
Polygon = tuple[int, int | None, int | None]

MAX_JOINT_INFLUENCES = 4

IDENTITY = [1.0, 0.0, 0.0, 0.0,
            0.0, 1.0, 0.0, 0.0,
            0.0, 0.0, 1.0, 0.0,
            0.0, 0.0, 0.0, 1.0]


@dataclass
class Submesh:
    material: str
    vcount: list[int] = field(default_factory=list)
    polygons: list[Polygon] = field(default_factory=list)

    @property
    def face_count(self) -> int:
        return len(self.vcount)


@dataclass
class Mesh:
    vertices: list[Vector3] = field(default_factory=list)
    normals: list[Vector3] = field(default_factory=list)
    texcoords: list[Vector2] = field(default_factory=list)
    submeshes: list[Submesh] = field(default_factory=list)


@dataclass
class Skin:
    bind_shape_matrix: Matrix4 = field(default_factory=lambda: list(IDENTITY))
    joint_names: list[str] = field(default_factory=list)
    inverse_bind_matrices: list[Matrix4] = field(default_factory=list)
    # per vertex: [(joint index, weight), ...], at most MAX_JOINT_INFLUENCES
    weights_per_vertex: list[list[tuple[int, float]]] = field(
        default_factory=list)
    truncated_vertices: int = 0

    @property
    def joint_count(self) -> int:
        return len(self.joint_names)


@dataclass
class Bone:
    name: str
    transform: Matrix4
    parent: int  # index into Skeleton.bones; roots point to themselves


@dataclass
class Skeleton:
    bones: list[Bone] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.bones)

    def names(self) -> list[str]:
        return [b.name for b in self.bones]

    def index_of(self, name: str) -> int | None:
        for i, bone in enumerate(self.bones):
            if bone.name == name:
                return i
        return None


@dataclass
class Animation:
    bone: str
    keyframes: list[float] = field(default_factory=list)  # seconds
    matrices: list[Matrix4] = field(default_factory=list)


@dataclass
class SceneModel:
    mesh: Mesh
    skin: Skin | None = None
    skeleton: Skeleton = field(default_factory=Skeleton)
    # skin joint index -> bone index, None for joints missing from the skeleton
    joint_to_bone: list[int | None] = field(default_factory=list)
    animations: dict[str, Animation] = field(default_factory=dict)
    armature_transform: Matrix4 | None = None
    up_axis: str = "Y_UP"
    # UnsupportedPolygonError / TruncationWarning instances
    diagnostics: list[Exception] = field(default_factory=list)

    @property
    def is_skinned(self) -> bool:
        return self.skin is not None and self.skin.joint_count > 0

    def animation_for(self, bone_index: int) -> Animation | None:
        return self.animations.get(self.skeleton.bones[bone_index].name)
