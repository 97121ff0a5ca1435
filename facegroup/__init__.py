"""
facegroup: Group detected faces into people.

Clusters face embeddings with a greedy nearest-centroid pass and
summarizes the result per person.
"""

__version__ = "0.1.0"

from .clusterer import (
    DEFAULT_THRESHOLD,
    LENIENT_THRESHOLD,
    STRICT_THRESHOLD,
    Cluster,
    ClusterInfo,
    ClusteringSummary,
    FaceClusterer,
    cluster,
    summarize,
)
from .pipeline import FacePipeline
from .similarity import DimensionMismatch, l2_normalize, similarity
from .utils import EMBEDDING_SIZE, FaceRecord

__all__ = [
    "Cluster",
    "ClusterInfo",
    "ClusteringSummary",
    "DEFAULT_THRESHOLD",
    "DimensionMismatch",
    "EMBEDDING_SIZE",
    "FaceClusterer",
    "FacePipeline",
    "FaceRecord",
    "LENIENT_THRESHOLD",
    "STRICT_THRESHOLD",
    "cluster",
    "l2_normalize",
    "similarity",
    "summarize",
    "__version__",
]
