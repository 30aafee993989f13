"""
Base models for all Pydantic models in the package.
"""
from pydantic import BaseModel, ConfigDict


class ReportModel(BaseModel):
    """Base model for analytics report structures."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class FrozenModel(BaseModel):
    """Immutable input model."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)
