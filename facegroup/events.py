"""Events emitted while a batch of images moves through the face pipeline."""

from dataclasses import dataclass, field
from typing import Union

from .clusterer import ClusteringSummary


@dataclass(frozen=True)
class Progress:
    """An image is about to be processed."""

    current_image: int
    total_images: int
    message: str


@dataclass(frozen=True)
class ImageProcessed:
    """Face detection finished for one image."""

    image_index: int
    face_count: int


@dataclass(frozen=True)
class Success:
    """The whole batch finished; always the last event of a run."""

    summary: ClusteringSummary
    detection_results: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Failure:
    """Processing one image raised an error; the run continues."""

    image_index: int | None
    message: str
    error: BaseException


PipelineEvent = Union[Progress, ImageProcessed, Success, Failure]
