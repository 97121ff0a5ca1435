"""Tests for pipeline module."""

import numpy as np
import pytest

from facegroup.clusterer import ClusteringSummary, FaceClusterer
from facegroup.events import Failure, ImageProcessed, Progress, Success
from facegroup.pipeline import FacePipeline, RegionCropper, crop_region


class FakeDetector:
    """Returns preset boxes per image; images are dicts with 'faces' entries."""

    def __init__(self):
        self.closed = False

    def detect(self, image):
        if image.get("broken"):
            raise RuntimeError("detector crashed")
        return [face["bbox"] for face in image["faces"]]

    def close(self):
        self.closed = True


class FakeCropper:
    def crop(self, image, bbox):
        for face in image["faces"]:
            if face["bbox"] == bbox:
                return face.get("crop", {"vector": face["vector"]})
        return None


class FakeEmbedder:
    def embed(self, face_image):
        vector = face_image.get("vector")
        return None if vector is None else np.asarray(vector, dtype=np.float64)


def make_image(*vectors):
    return {
        "faces": [
            {"bbox": (i * 10, 0, i * 10 + 8, 8), "vector": v}
            for i, v in enumerate(vectors)
        ]
    }


def make_pipeline(**kwargs) -> FacePipeline:
    kwargs.setdefault("embedder", FakeEmbedder())
    kwargs.setdefault("cropper", FakeCropper())
    return FacePipeline(FakeDetector(), **kwargs)


class TestCropRegion:
    def test_basic_crop(self):
        image = np.arange(100).reshape(10, 10)
        crop = crop_region(image, (2, 3, 5, 7))
        assert crop.shape == (4, 3)
        assert crop[0, 0] == 32

    def test_clamped_to_image(self):
        image = np.zeros((10, 20, 3))
        crop = crop_region(image, (-5, -5, 50, 4))
        assert crop.shape == (4, 20, 3)

    def test_empty_region(self):
        image = np.zeros((10, 10))
        assert crop_region(image, (5, 5, 5, 9)) is None
        assert crop_region(image, (20, 20, 30, 30)) is None

    def test_region_cropper(self):
        assert RegionCropper().crop(np.zeros((10, 10)), (0, 0, 4, 2)).shape == (2, 4)


class TestFacePipeline:
    def test_event_order(self):
        pipeline = make_pipeline()
        images = [make_image([1.0, 0.0]), make_image([1.0, 0.0], [0.0, 1.0])]

        events = list(pipeline.process_images(images))

        assert [type(e) for e in events] == [
            Progress, ImageProcessed, Progress, ImageProcessed, Success,
        ]
        assert events[0] == Progress(1, 2, "Processing photo 1/2...")
        assert events[3] == ImageProcessed(image_index=2, face_count=2)

    def test_success_summary(self):
        pipeline = make_pipeline()
        images = [
            make_image([1.0, 0.0]),
            make_image([0.99, 0.14], [0.0, 1.0]),
            make_image([0.0, 1.0]),
        ]

        success = list(pipeline.process_images(images))[-1]

        assert isinstance(success, Success)
        assert success.summary.total_faces == 4
        assert success.summary.total_people == 2
        assert success.summary.clusters[0].image_indices == [1, 2]
        assert success.summary.clusters[1].image_indices == [2, 3]
        assert success.detection_results == [
            "Photo 1: 1 face(s) found",
            "Photo 2: 2 face(s) found",
            "Photo 3: 1 face(s) found",
        ]

    def test_no_images(self):
        events = list(make_pipeline().process_images([]))
        assert events == [Success(summary=ClusteringSummary.empty(), detection_results=[])]

    def test_without_embedder_only_counts(self):
        pipeline = FacePipeline(FakeDetector())
        events = list(pipeline.process_images([make_image([1.0, 0.0], [0.0, 1.0])]))

        assert events[1] == ImageProcessed(image_index=1, face_count=2)
        assert events[-1].summary == ClusteringSummary.empty()

    def test_failed_load(self):
        pipeline = make_pipeline(loader=lambda source: None if source == "missing" else source)
        images = ["missing", make_image([1.0, 0.0])]

        events = list(pipeline.process_images(images))

        assert [type(e) for e in events] == [Progress, Progress, ImageProcessed, Success]
        assert events[-1].detection_results[0] == "Photo 1: failed to load"
        assert events[-1].summary.total_faces == 1

    def test_error_does_not_stop_batch(self):
        pipeline = make_pipeline()
        images = [{"broken": True}, make_image([1.0, 0.0])]

        events = list(pipeline.process_images(images))

        failures = [e for e in events if isinstance(e, Failure)]
        assert len(failures) == 1
        assert failures[0].image_index == 1
        assert failures[0].message == "Photo 1: error - detector crashed"
        assert isinstance(failures[0].error, RuntimeError)
        assert isinstance(events[-1], Success)
        assert events[-1].summary.total_faces == 1

    def test_skips_faces_without_embedding(self):
        pipeline = make_pipeline()
        summary = pipeline.run([make_image([1.0, 0.0], None)])
        assert summary.total_faces == 1

    def test_face_indices_and_bbox(self):
        pipeline = make_pipeline(clusterer=FaceClusterer(threshold=1.5))
        image = make_image([1.0, 0.0], [0.0, 1.0])

        summary = pipeline.run([image])

        assert summary.total_people == 2
        crops = [info.representative_face for info in summary.clusters]
        assert crops == [{"vector": [1.0, 0.0]}, {"vector": [0.0, 1.0]}]

    def test_releases_unreferenced_crops(self):
        released = []
        pipeline = make_pipeline(release=released.append)
        image = make_image([1.0, 0.0], [1.0, 0.0])
        first_crop = {"vector": [1.0, 0.0]}
        second_crop = {"vector": [1.0, 0.0]}
        image["faces"][0]["crop"] = first_crop
        image["faces"][1]["crop"] = second_crop

        summary = pipeline.run([image])

        assert summary.clusters[0].representative_face is first_crop
        assert len(released) == 1
        assert released[0] is second_crop

    def test_releases_loaded_images(self):
        released = []
        loaded = make_image([1.0, 0.0])
        pipeline = make_pipeline(loader=lambda source: loaded, release=released.append)

        pipeline.run(["photo.jpg"])

        assert any(handle is loaded for handle in released)

    def test_releases_loaded_image_on_error(self):
        released = []
        broken = {"broken": True}
        pipeline = make_pipeline(loader=lambda source: broken, release=released.append)

        events = list(pipeline.process_images(["photo.jpg"]))

        assert isinstance(events[1], Failure)
        assert released == [broken]

    def test_releases_loaded_image_when_embedder_fails(self):
        class FailingEmbedder:
            def embed(self, face_image):
                raise RuntimeError("embedder crashed")

        released = []
        loaded = make_image([1.0, 0.0])
        pipeline = make_pipeline(
            embedder=FailingEmbedder(),
            loader=lambda source: loaded,
            release=released.append,
        )

        summary = pipeline.run(["photo.jpg"])

        assert summary == ClusteringSummary.empty()
        assert any(handle is loaded for handle in released)

    def test_does_not_release_caller_images(self):
        released = []
        image = make_image([1.0, 0.0])
        pipeline = make_pipeline(release=released.append)

        pipeline.run([image])

        assert all(handle is not image for handle in released)

    def test_run_progress_callback(self):
        calls = []

        def progress_callback(current, total):
            calls.append((current, total))

        make_pipeline().run([make_image([1.0, 0.0])] * 3, progress_callback)

        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_default_cropper_with_arrays(self):
        class ArrayDetector:
            def detect(self, image):
                return [(0, 0, 2, 2), (2, 2, 4, 4)]

        class MeanEmbedder:
            def embed(self, face_image):
                return np.array([face_image.mean(), 1.0])

        image = np.zeros((4, 4))
        image[2:, 2:] = 1.0
        pipeline = FacePipeline(ArrayDetector(), embedder=MeanEmbedder(), clusterer=FaceClusterer(0.99))

        summary = pipeline.run([image])

        assert summary.total_faces == 2
        assert summary.total_people == 2

    def test_close(self):
        detector = FakeDetector()
        pipeline = FacePipeline(detector, embedder=FakeEmbedder())
        pipeline.close()
        assert detector.closed

    @pytest.mark.parametrize("threshold", [0.5, 0.6, 0.7])
    def test_clusterer_threshold_used(self, threshold):
        pipeline = make_pipeline(clusterer=FaceClusterer(threshold=threshold))
        assert pipeline.clusterer.threshold == threshold
