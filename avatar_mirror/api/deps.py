"""
FastAPI dependencies. Use Depends(get_pipeline) in route handlers to receive the pipeline.
"""

from fastapi import Request

from avatar_mirror.pipeline import RetargetPipeline


def get_pipeline(request: Request) -> RetargetPipeline:
    """Return the pipeline instance attached in lifespan."""
    return request.app.state.pipeline
