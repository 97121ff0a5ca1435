"""Detect, embed and cluster the faces in a batch of images.

Detection and embedding are done by external models. They plug in through
the FaceDetector and FaceEmbedder interfaces below; this module only drives
them and hands the resulting records to the clusterer.
"""

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Any, Protocol

import numpy as np

from .clusterer import ClusteringSummary, FaceClusterer, unreferenced_records
from .events import Failure, ImageProcessed, PipelineEvent, Progress, Success
from .utils import FaceRecord, bbox_area

logger = logging.getLogger(__name__)

BBox = tuple[int, int, int, int]  # (left, top, right, bottom)


class FaceDetector(Protocol):
    """Interface for face detection backends."""

    def detect(self, image: Any) -> list[BBox]:
        """Return the bounding boxes of all faces found in an image."""


class FaceCropper(Protocol):
    """Interface for cutting a face out of its source image."""

    def crop(self, image: Any, bbox: BBox) -> Any | None:
        """Return the cropped face image, or None if it cannot be cropped."""


class FaceEmbedder(Protocol):
    """Interface for face embedding backends."""

    def embed(self, face_image: Any) -> np.ndarray | None:
        """Return an L2-normalized embedding for a cropped face, or None."""


def crop_region(image: np.ndarray, bbox: BBox) -> np.ndarray | None:
    """Crop a bounding box out of an (H, W, ...) array, clamped to the image."""
    height, width = image.shape[:2]
    left, top, right, bottom = map(int, bbox)

    left = max(0, left)
    top = max(0, top)
    right = min(width, right)
    bottom = min(height, bottom)

    if right <= left or bottom <= top:
        return None

    return image[top:bottom, left:right]


class RegionCropper:
    """Default cropper for images held as numpy arrays."""

    def crop(self, image: Any, bbox: BBox) -> np.ndarray | None:
        return crop_region(np.asarray(image), bbox)


class FacePipeline:
    """Runs detection, embedding and clustering over a batch of images."""

    def __init__(
        self,
        detector: FaceDetector,
        embedder: FaceEmbedder | None = None,
        loader: Callable[[Any], Any | None] | None = None,
        cropper: FaceCropper | None = None,
        clusterer: FaceClusterer | None = None,
        release: Callable[[Any], None] | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            detector: Face detector
            embedder: Face embedder; without one, faces are only counted
            loader: Turns an image source into an image (None if unreadable).
                Images are used as given when no loader is set.
            cropper: Face cropper (defaults to RegionCropper)
            clusterer: FaceClusterer to use (defaults to the default threshold)
            release: Called with every image and crop the pipeline is done with
        """
        self.detector = detector
        self.embedder = embedder
        self.loader = loader
        self.cropper = cropper if cropper is not None else RegionCropper()
        self.clusterer = clusterer if clusterer is not None else FaceClusterer()
        self.release = release

    def process_images(self, images: Sequence[Any]) -> Iterator[PipelineEvent]:
        """
        Process images one by one, yielding events as work progresses.

        A failure on one image is reported as a Failure event and does not
        stop the batch. The final event is always Success.

        Args:
            images: Image sources, numbered from 1 in the emitted events

        Yields:
            Progress, ImageProcessed and Failure events, then Success
        """
        detection_results: list[str] = []
        records: list[FaceRecord] = []
        total = len(images)

        for position, source in enumerate(images):
            image_index = position + 1
            image = None

            try:
                yield Progress(
                    current_image=image_index,
                    total_images=total,
                    message=f"Processing photo {image_index}/{total}...",
                )

                image = self.loader(source) if self.loader is not None else source

                if image is None:
                    message = f"Photo {image_index}: failed to load"
                    logger.error(message)
                    detection_results.append(message)
                    continue

                boxes = self.detector.detect(image)

                message = f"Photo {image_index}: {len(boxes)} face(s) found"
                logger.debug(message)
                detection_results.append(message)

                yield ImageProcessed(image_index=image_index, face_count=len(boxes))

                if self.embedder is not None and boxes:
                    records.extend(self._embed_faces(image, boxes, image_index))

            except Exception as e:
                message = f"Photo {image_index}: error - {e}"
                logger.error(message, exc_info=True)
                yield Failure(image_index=image_index, message=message, error=e)

            finally:
                # Only images the pipeline loaded itself are released
                if self.loader is not None and image is not None:
                    self._release(image)

        summary = ClusteringSummary.empty()

        if records:
            clusters = self.clusterer.cluster(records)
            summary = self.clusterer.summarize(clusters)
            logger.info(f"{summary.total_faces} faces, {summary.total_people} people")

            for record in unreferenced_records(records, summary):
                self._release(record.crop_image)

        yield Success(summary=summary, detection_results=detection_results)

    def run(
        self,
        images: Sequence[Any],
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> ClusteringSummary:
        """
        Process images and return only the final summary.

        Args:
            images: Image sources
            progress_callback: Optional callback(current, total), called as
                each image starts processing

        Returns:
            ClusteringSummary from the Success event
        """
        summary = ClusteringSummary.empty()

        for event in self.process_images(images):
            if isinstance(event, Progress):
                if progress_callback:
                    progress_callback(event.current_image, event.total_images)
            elif isinstance(event, Success):
                summary = event.summary

        return summary

    def close(self) -> None:
        """Close the detector and embedder if they hold resources."""
        for component in (self.detector, self.embedder):
            close = getattr(component, "close", None)
            if callable(close):
                close()

    def _embed_faces(
        self,
        image: Any,
        boxes: list[BBox],
        image_index: int,
    ) -> Iterator[FaceRecord]:
        for face_index, bbox in enumerate(boxes):
            crop = self.cropper.crop(image, bbox)
            if crop is None:
                logger.debug(f"Photo {image_index}: face {face_index} could not be cropped")
                continue

            logger.debug(f"Photo {image_index}: face {face_index} area={bbox_area(bbox)}px")
            embedding = self.embedder.embed(crop)
            if embedding is None:
                logger.debug(f"Photo {image_index}: no embedding for face {face_index}")
                self._release(crop)
                continue

            yield FaceRecord(
                embedding=np.asarray(embedding),
                crop_image=crop,
                bbox=tuple(int(v) for v in bbox),
                image_index=image_index,
                face_index=face_index,
            )

    def _release(self, handle: Any) -> None:
        if self.release is not None:
            self.release(handle)
