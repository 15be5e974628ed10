"""
Asset swap service.

Replaces the avatar the render loop drives. The retarget state is left
untouched so motion carries over to the new mesh on the next tick.
"""

import asyncio
from typing import Optional

from loguru import logger

from avatar_mirror.services.mesh_binder import MeshBinder, SkeletonBinding
from avatar_mirror.services.mesh_loader import AvatarSource, MeshLoaderService


class AssetSwapService:
    """Owns the current SkeletonBinding."""

    def __init__(self, loader: MeshLoaderService, binder: MeshBinder):
        self.loader = loader
        self.binder = binder
        self._binding: Optional[SkeletonBinding] = None
        self._lock = asyncio.Lock()
        self.swaps = 0

    @property
    def binding(self) -> Optional[SkeletonBinding]:
        """The active binding, or None before the first asset is loaded."""
        return self._binding

    async def swap_asset(self, source: AvatarSource) -> SkeletonBinding:
        """
        Load a new avatar and make its binding current.

        Loading runs in a worker thread; the old binding stays active until
        the new one is fully resolved, and stays active if loading fails.

        Raises:
            AssetLoadError: If the asset cannot be fetched or parsed
        """
        async with self._lock:
            scene = await asyncio.to_thread(self.loader.load, source)
            binding = self.binder.bind(scene)
            previous = self._binding
            self._binding = binding
            self.swaps += 1

        if previous is not None:
            logger.info(f"Swapped avatar {previous.source} -> {binding.source}")
        return binding
