"""
Mesh loading service.

Handles loading avatar meshes from various sources:
- http(s) URLs
- data: URLs (files dropped in a browser arrive this way)
- Local files and uploaded byte blobs

Assets are GLB (or glTF JSON) files; only the node hierarchy and morph
target channels are read.
"""

import base64
import binascii
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

import requests
from loguru import logger
from pygltflib import GLTF2

from avatar_mirror.config import AvatarSettings
from avatar_mirror.exceptions import AssetLoadError
from avatar_mirror.models.pose import Euler, Vector3
from avatar_mirror.models.scene import AvatarScene, MorphMesh, SceneNode

GLB_MAGIC = b"glTF"


@dataclass(frozen=True)
class AvatarSource:
    """Where an avatar asset comes from: a URL/path, or an uploaded blob."""

    location: str
    data: Optional[bytes] = None

    @classmethod
    def from_url(cls, url: str) -> "AvatarSource":
        return cls(location=url.strip())

    @classmethod
    def from_upload(cls, filename: str, data: bytes) -> "AvatarSource":
        return cls(location=filename or "upload.glb", data=data)

    @property
    def label(self) -> str:
        if self.location.startswith("data:"):
            return "data-url"
        return self.location


def with_avatar_query(url: str, query: str) -> str:
    """
    Append the avatar export options to an entered http(s) URL.

    Options the URL already sets are left alone.
    """
    url = url.strip()
    if not query or not url.startswith(("http://", "https://")):
        return url

    existing = {key for key, _ in parse_qsl(urlsplit(url).query)}
    missing = [(k, v) for k, v in parse_qsl(query) if k not in existing]
    if not missing:
        return url

    separator = "&" if urlsplit(url).query else "?"
    return url + separator + "&".join(f"{k}={v}" for k, v in missing)


class MeshLoaderService:
    """Service for fetching avatar assets and building scene graphs."""

    def __init__(self, settings: AvatarSettings):
        """
        Initialize the mesh loader service.

        Args:
            settings: Avatar settings (download timeout, size limit)
        """
        self.settings = settings

    def load(self, source: AvatarSource) -> AvatarScene:
        """
        Fetch and parse an avatar asset.

        Args:
            source: Asset location or uploaded data

        Returns:
            AvatarScene with named nodes and morph meshes

        Raises:
            AssetLoadError: If the asset cannot be fetched or parsed
        """
        logger.info(f"Loading avatar from {source.label}")
        data = self.fetch(source)
        gltf = self._parse(data, source.location)
        try:
            scene = self._build_scene(gltf, source.label)
        except (ValueError, TypeError) as e:
            # e.g. zero-norm node quaternions, non-numeric transforms
            raise AssetLoadError(f"Invalid avatar scene in {source.label[:80]}: {e}") from e
        logger.info(f"Loaded avatar: {len(scene)} nodes, {len(scene.meshes)} meshes")
        return scene

    def fetch(self, source: AvatarSource) -> bytes:
        """Read the raw asset bytes for a source."""
        location = source.location
        if source.data is not None:
            data = source.data
        elif location.startswith("data:"):
            data = self._decode_data_url(location)
        elif location.startswith(("http://", "https://")):
            data = self._download(location)
        else:
            path = Path(location)
            if not path.is_file():
                raise AssetLoadError(f"Avatar file not found: {location}")
            data = path.read_bytes()

        if not data:
            raise AssetLoadError("Avatar asset is empty")
        size_mb = len(data) / (1024 * 1024)
        if size_mb > self.settings.max_asset_size_mb:
            raise AssetLoadError(
                f"Avatar asset ({size_mb:.1f}MB) exceeds maximum ({self.settings.max_asset_size_mb}MB)"
            )
        return data

    def _download(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.settings.download_timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to download avatar: {e}")
            raise AssetLoadError(f"Failed to download avatar: {e}", upstream=True) from e
        return response.content

    @staticmethod
    def _decode_data_url(data_url: str) -> bytes:
        """
        Decode a data URL.

        Format: data:model/gltf-binary;base64,Z2xURgIAAAA...
        """
        header, _, payload = data_url.partition(",")
        if not payload:
            raise AssetLoadError("Invalid data URL: no payload")
        logger.debug(f"Stripped data URL header: {header}")

        if not header.endswith(";base64"):
            return payload.encode("utf-8")
        try:
            return base64.b64decode(payload.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetLoadError(f"Invalid base64 encoding: {e}") from e

    @staticmethod
    def _parse(data: bytes, location: str) -> GLTF2:
        """Parse GLB or glTF JSON bytes through a temporary file."""
        suffix = ".glb" if data[:4] == GLB_MAGIC else ".gltf"
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
            tmp.write(data)
            tmp_path = tmp.name

        try:
            gltf = GLTF2.load(tmp_path)
        except Exception as e:
            raise AssetLoadError(f"Failed to parse avatar {location[:80]}: {e}") from e
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

        if gltf is None or not gltf.nodes:
            raise AssetLoadError(f"Avatar {location[:80]} has no nodes")
        return gltf

    def _build_scene(self, gltf: GLTF2, source: str) -> AvatarScene:
        nodes = []
        for index, node in enumerate(gltf.nodes):
            rotation = Euler.from_quaternion(node.rotation) if node.rotation else Euler()
            position = Vector3(*[float(v) for v in node.translation[:3]]) if node.translation else Vector3()
            mesh = None
            if node.mesh is not None and 0 <= node.mesh < len(gltf.meshes):
                mesh = self._build_mesh(gltf, node.mesh, node.name or f"node_{index}")
            nodes.append(
                SceneNode(
                    name=node.name or "",
                    index=index,
                    rotation=rotation,
                    position=position,
                    mesh=mesh,
                    children=list(node.children or []),
                )
            )
        return AvatarScene(nodes, source=source)

    @staticmethod
    def _build_mesh(gltf: GLTF2, mesh_index: int, name: str) -> MorphMesh:
        """
        Build the morph-target dictionary of a mesh.

        Channel names come from mesh.extras.targetNames; meshes without names
        expose their channels by index ("0", "1", ...).
        """
        gltf_mesh = gltf.meshes[mesh_index]
        target_count = max((len(p.targets or []) for p in gltf_mesh.primitives or []), default=0)
        extras = gltf_mesh.extras if isinstance(gltf_mesh.extras, dict) else {}
        names = list(extras.get("targetNames") or [])
        if not target_count:
            target_count = len(names)

        if names:
            dictionary = {str(n): i for i, n in enumerate(names[:target_count])}
        else:
            dictionary = {str(i): i for i in range(target_count)}

        influences = [float(w) for w in (gltf_mesh.weights or [])][:target_count]
        influences.extend([0.0] * (target_count - len(influences)))
        return MorphMesh(name=name, morph_target_dictionary=dictionary, morph_target_influences=influences)
