"""Utility functions for facegroup: face records, persistence, and helpers."""

import logging
import pickle
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


# Embedding dimensionality produced by the face embedder (MobileFaceNet)
EMBEDDING_SIZE = 192

# Default file name for saved face records
RECORDS_FILE = "faces.pkl"


@dataclass(eq=False)
class FaceRecord:
    """A detected face with its embedding and provenance."""

    embedding: np.ndarray
    crop_image: Any  # Owned by the producing pipeline stage
    bbox: tuple[int, int, int, int]  # (left, top, right, bottom)
    image_index: int  # 1-based, shared by faces of the same image
    face_index: int  # 0-based position among the image's detections


def find_malformed(
    records: Iterable[FaceRecord],
    embedding_size: int = EMBEDDING_SIZE,
) -> list[FaceRecord]:
    """
    Find records whose embedding does not have the expected length.

    Args:
        records: Face records to check
        embedding_size: Expected embedding length

    Returns:
        List of records with a wrong embedding length, in input order
    """
    return [
        record for record in records
        if np.asarray(record.embedding).ravel().shape[0] != embedding_size
    ]


def save_records(records: list[FaceRecord], path: Path) -> Path:
    """Save face records to a pickle file."""
    with open(path, "wb") as f:
        pickle.dump(list(records), f, protocol=pickle.HIGHEST_PROTOCOL)
    return path


def load_records(path: Path) -> list[FaceRecord] | None:
    """Load face records from a pickle file, or return None if unusable."""
    if not path.exists():
        return None

    try:
        with open(path, "rb") as f:
            records = pickle.load(f)
    except (pickle.UnpicklingError, EOFError, AttributeError) as e:
        logger.debug(f"Could not read records from {path}: {e}")
        return None

    if isinstance(records, list) and all(isinstance(r, FaceRecord) for r in records):
        return records

    return None


def format_person_id(person_id: int) -> str:
    """Format a person id for display (e.g., 'person_001')."""
    return f"person_{person_id:03d}"


def bbox_area(bbox: tuple[int, int, int, int]) -> int:
    """Calculate the area of a bounding box (left, top, right, bottom)."""
    left, top, right, bottom = bbox
    return (right - left) * (bottom - top)
