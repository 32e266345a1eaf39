"""Shared building blocks for feature modules."""

from schoolhub.modules.shared.models import BaseModel
from schoolhub.modules.shared.schemas import ApiResponse, CamelModel

__all__ = ["BaseModel", "ApiResponse", "CamelModel"]
