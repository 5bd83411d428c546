"""
Progress events

One stream carries four event shapes, discriminated by ``phase``:
progress updates, a finished feature, the completed wiki, and an error.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from repowiki.models import Feature, Wiki

ProgressPhase = Literal[
    "fetching_metadata",
    "analyzing_architecture",
    "generating_features",
    "assembling",
]


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProgressEvent(_Event):
    phase: ProgressPhase
    message: str
    progress: float
    detail: Optional[str] = None
    features_total: Optional[int] = None
    features_complete: Optional[int] = None


class FeatureCompleteEvent(_Event):
    phase: Literal["feature_complete"] = "feature_complete"
    feature: Feature
    feature_index: int
    features_total: int
    features_complete: int


class CompleteEvent(_Event):
    phase: Literal["complete"] = "complete"
    wiki: Wiki


class ErrorEvent(_Event):
    phase: Literal["error"] = "error"
    code: str
    message: str
    retry_after: Optional[int] = None


WikiEvent = Annotated[
    Union[ProgressEvent, FeatureCompleteEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="phase"),
]
