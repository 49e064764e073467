"""
API response models for the Doorman JSON endpoints.

The browser-facing routes render HTML; only operational endpoints speak JSON.
These Pydantic v2 models pin that contract down.
"""

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    timestamp: str
    environment: str
