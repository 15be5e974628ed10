"""
Mesh binder.

Resolves the named skeleton nodes and morph-target meshes of a loaded
avatar once per asset (bind), then copies a RetargetState snapshot onto
them once per render tick (apply).

Anything the asset lacks is skipped: not every avatar has teeth or beard
morph targets, or separate hand nodes.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from loguru import logger

from avatar_mirror.config import AvatarSettings
from avatar_mirror.models.pose import Euler, RetargetSnapshot
from avatar_mirror.models.scene import AvatarScene, MorphMesh, SceneNode


@dataclass(frozen=True)
class SkeletonBinding:
    """
    Logical bone/channel names resolved against one asset.

    Built on asset load, discarded on asset swap, read-only in between.
    """

    scene: AvatarScene
    bones: Mapping[str, SceneNode] = field(default_factory=dict)
    morph_meshes: tuple[MorphMesh, ...] = ()
    hands: tuple[Optional[SceneNode], Optional[SceneNode]] = (None, None)
    unresolved: tuple[str, ...] = ()

    @property
    def source(self) -> str:
        return self.scene.source

    @property
    def morph_channels(self) -> set[str]:
        channels: set[str] = set()
        for mesh in self.morph_meshes:
            channels.update(mesh.morph_target_dictionary)
        return channels


class MeshBinder:
    """Binds avatars and applies retarget snapshots to them."""

    def __init__(
        self,
        bone_nodes: Mapping[str, str],
        morph_meshes: Sequence[str],
        left_hand_nodes: Sequence[str],
        right_hand_nodes: Sequence[str],
    ):
        """
        Initialize the binder with the asset naming scheme.

        Args:
            bone_nodes: Logical bone ('head', 'neck', 'spine', 'spine2') -> node name
            morph_meshes: Names of nodes whose meshes carry facial morph targets
            left_hand_nodes: Candidate node names for hand slot 0
            right_hand_nodes: Candidate node names for hand slot 1
        """
        self.bone_nodes = dict(bone_nodes)
        self.morph_meshes = list(morph_meshes)
        self.hand_nodes = (list(left_hand_nodes), list(right_hand_nodes))

    @classmethod
    def from_settings(cls, settings: AvatarSettings) -> "MeshBinder":
        return cls(
            bone_nodes=settings.bone_nodes,
            morph_meshes=settings.morph_meshes,
            left_hand_nodes=settings.left_hand_nodes,
            right_hand_nodes=settings.right_hand_nodes,
        )

    def bind(self, scene: AvatarScene) -> SkeletonBinding:
        """
        Resolve nodes and morph channels by exact name match.

        Names the asset does not contain are recorded in `unresolved` and
        otherwise ignored.
        """
        unresolved = []

        bones = {}
        for bone, node_name in self.bone_nodes.items():
            node = scene.node(node_name)
            if node is None:
                unresolved.append(node_name)
            else:
                bones[bone] = node

        morph_meshes = []
        for mesh_name in self.morph_meshes:
            node = scene.node(mesh_name)
            if node is not None and node.mesh is not None and node.mesh.morph_target_dictionary:
                morph_meshes.append(node.mesh)
            else:
                unresolved.append(mesh_name)

        hands = []
        for candidates in self.hand_nodes:
            node = next((scene.node(n) for n in candidates if scene.node(n) is not None), None)
            if node is None:
                unresolved.append("|".join(candidates))
            hands.append(node)

        binding = SkeletonBinding(
            scene=scene,
            bones=bones,
            morph_meshes=tuple(morph_meshes),
            hands=(hands[0], hands[1]),
            unresolved=tuple(unresolved),
        )
        logger.info(
            f"Bound avatar {scene.source or '<memory>'}: {len(bones)} bones, "
            f"{len(morph_meshes)} morph meshes, {len(binding.morph_channels)} channels, "
            f"{sum(h is not None for h in hands)} hands"
        )
        if unresolved:
            logger.debug(f"Unresolved avatar nodes: {unresolved}")
        return binding

    def apply(self, binding: SkeletonBinding, snapshot: RetargetSnapshot) -> bool:
        """
        Copy a retarget snapshot onto the bound avatar.

        Nothing is applied until a face detection has completed. After that:
        morph weights go to every bound mesh that knows the channel, face
        rotations drive head/neck/spine/spine2, a body detection (once seen)
        overrides the spine, and each observed hand slot drives its node.

        Returns:
            True if the snapshot was applied, False if it was gated off
        """
        face = snapshot.face
        if face is None:
            return False

        for channel, weight in face.morph_weights.items():
            for mesh in binding.morph_meshes:
                index = mesh.morph_target_dictionary.get(channel)
                if index is not None and index < len(mesh.morph_target_influences):
                    mesh.morph_target_influences[index] = weight

        self._rotate(binding, "head", face.head)
        self._rotate(binding, "neck", face.neck)
        self._rotate(binding, "spine2", face.spine2)
        if snapshot.body is not None:
            self._rotate(binding, "spine", snapshot.body.spine)
        else:
            self._rotate(binding, "spine", face.spine)

        for node, pose in zip(binding.hands, snapshot.hands):
            if node is None or pose is None:
                continue
            node.rotation = pose.rotation
            node.position = pose.position
        return True

    @staticmethod
    def _rotate(binding: SkeletonBinding, bone: str, rotation: Optional[Euler]) -> None:
        if rotation is None:
            return
        node = binding.bones.get(bone)
        if node is not None:
            node.rotation = rotation
