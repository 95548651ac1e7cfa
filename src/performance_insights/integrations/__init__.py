"""Collaborator interfaces the host application implements."""

from .collaborators import (
    FreeTextRecommendationProvider,
    RecordSource,
    SpacedRepetitionProvider,
)

__all__ = [
    "FreeTextRecommendationProvider",
    "RecordSource",
    "SpacedRepetitionProvider",
]
