"""
In-memory scene graph of a loaded avatar.

Only what retargeting touches is modelled: named nodes with a local
rotation and position, and meshes with named morph-target channels.
"""

from dataclasses import dataclass, field
from typing import Optional

from avatar_mirror.models.pose import Euler, Vector3


@dataclass(eq=False)
class MorphMesh:
    """A mesh with named morph-target channels."""

    name: str
    morph_target_dictionary: dict[str, int] = field(default_factory=dict)
    morph_target_influences: list[float] = field(default_factory=list)

    def influence(self, channel: str) -> Optional[float]:
        index = self.morph_target_dictionary.get(channel)
        if index is None:
            return None
        return self.morph_target_influences[index]


@dataclass(eq=False)
class SceneNode:
    """A named node (bone or mesh holder) with a local transform."""

    name: str
    index: int
    rotation: Euler = field(default_factory=Euler)
    position: Vector3 = field(default_factory=Vector3)
    mesh: Optional[MorphMesh] = None
    children: list[int] = field(default_factory=list)


class AvatarScene:
    """Nodes of one loaded asset, addressable by name."""

    def __init__(self, nodes: list[SceneNode], source: str = ""):
        self.nodes = nodes
        self.source = source
        # Duplicate names resolve to the first node in document order
        self._by_name: dict[str, SceneNode] = {}
        for node in nodes:
            if node.name and node.name not in self._by_name:
                self._by_name[node.name] = node

    def node(self, name: str) -> Optional[SceneNode]:
        return self._by_name.get(name)

    @property
    def node_names(self) -> list[str]:
        return list(self._by_name)

    @property
    def meshes(self) -> list[MorphMesh]:
        return [n.mesh for n in self.nodes if n.mesh is not None]

    def __len__(self) -> int:
        return len(self.nodes)
