"""Ratings.

Key modules:
    - rating_types: Rating definitions, contexts and results
    - built_in: Ratings shipped with the package
    - rate_code: Rating engine producing a CodeAssessmentScore
"""

from .rating_types import (
    RatingCategory,
    RatingKind,
    PerBuildRating,
    PerFileRating,
    LlmBasedRating,
    Rating,
)

__all__ = [
    "RatingCategory",
    "RatingKind",
    "PerBuildRating",
    "PerFileRating",
    "LlmBasedRating",
    "Rating",
]
