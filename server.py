"""
Run the avatar mirror service.

Configuration comes from environment variables (see avatar_mirror/config.py).
"""

import sys

import uvicorn
from loguru import logger

from avatar_mirror.config import get_settings


def main() -> None:
    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    # One process: the camera and detectors cannot be shared between workers
    uvicorn.run(
        "avatar_mirror.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
