"""Greedy nearest-centroid clustering of face embeddings."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from .similarity import l2_normalize, safe_similarity
from .utils import EMBEDDING_SIZE, FaceRecord

# Similarity thresholds for joining an existing cluster
DEFAULT_THRESHOLD = 0.6
STRICT_THRESHOLD = 0.7  # Fewer wrong merges, more split identities
LENIENT_THRESHOLD = 0.5  # More merges, fewer split identities

THRESHOLD_PRESETS = {
    "default": DEFAULT_THRESHOLD,
    "strict": STRICT_THRESHOLD,
    "lenient": LENIENT_THRESHOLD,
}


@dataclass
class Cluster:
    """A group of faces believed to belong to the same person."""

    id: int
    members: list[FaceRecord] = field(default_factory=list)

    def centroid(self) -> np.ndarray:
        """
        Compute the normalized mean embedding of all members.

        The centroid is recomputed from scratch on every call. Its length is
        that of the first member's embedding; members of another length are
        zero-padded or truncated to fit.

        Returns:
            Unit-length centroid, or zeros for an empty cluster
        """
        if not self.members:
            return np.zeros(EMBEDDING_SIZE)

        dim = np.asarray(self.members[0].embedding).ravel().shape[0]
        total = np.zeros(dim)

        for member in self.members:
            vector = l2_normalize(member.embedding)
            n = min(dim, vector.shape[0])
            total[:n] += vector[:n]

        return l2_normalize(total / len(self.members))


@dataclass(frozen=True)
class ClusterInfo:
    """Summary of one cluster, numbered by display rank."""

    person_id: int
    face_count: int
    image_indices: list[int]
    representative_face: Any  # crop_image of the first member


@dataclass(frozen=True)
class ClusteringSummary:
    """Result of a clustering run, handed to exporters and UI."""

    total_faces: int
    total_people: int
    clusters: list[ClusterInfo]

    @classmethod
    def empty(cls) -> "ClusteringSummary":
        return cls(total_faces=0, total_people=0, clusters=[])


@dataclass(frozen=True)
class SimilarityStats:
    """Pairwise similarity statistics over a batch of embeddings."""

    min: float
    max: float
    mean: float
    num_pairs: int


class FaceClusterer:
    """Groups face records by greedy nearest-centroid assignment."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        """
        Initialize the clusterer.

        Args:
            threshold: Minimum cosine similarity to join a cluster (0.5-0.7 typical)
        """
        self.threshold = threshold

    def cluster(
        self,
        records: Iterable[FaceRecord],
        threshold: float | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> list[Cluster]:
        """
        Assign each record to the most similar cluster, in input order.

        A record joins the cluster whose centroid is most similar to it, provided
        the similarity reaches the threshold. Otherwise it starts a new cluster.
        On equal similarity the earlier cluster wins. Assignments are never
        revisited.

        Args:
            records: Face records in processing order
            threshold: Overrides the instance threshold for this call
            progress_callback: Optional callback(current, total) for progress

        Returns:
            Clusters sorted by descending size (creation order among equals)
        """
        if threshold is None:
            threshold = self.threshold

        records = list(records)
        if not records:
            return []

        clusters: list[Cluster] = []
        next_cluster_id = 0
        total = len(records)

        for idx, record in enumerate(records):
            embedding = l2_normalize(record.embedding)

            best_cluster: Cluster | None = None
            # Starts at the lowest cosine value; a candidate must beat it strictly
            best_similarity = -1.0

            for candidate in clusters:
                score = safe_similarity(embedding, candidate.centroid())
                if score >= threshold and score > best_similarity:
                    best_similarity = score
                    best_cluster = candidate

            if best_cluster is not None:
                best_cluster.members.append(record)
            else:
                clusters.append(Cluster(id=next_cluster_id, members=[record]))
                next_cluster_id += 1

            if progress_callback:
                progress_callback(idx + 1, total)

        # sorted() is stable with reverse=True, so equal sizes keep creation order
        return sorted(clusters, key=lambda c: len(c.members), reverse=True)

    def summarize(self, clusters: list[Cluster]) -> ClusteringSummary:
        """
        Convert clusters into a summary, numbering people by position.

        Args:
            clusters: Clusters in display order (not re-sorted here)

        Returns:
            ClusteringSummary with one ClusterInfo per cluster
        """
        infos = [
            ClusterInfo(
                person_id=position,
                face_count=len(cluster.members),
                image_indices=sorted({m.image_index for m in cluster.members}),
                representative_face=cluster.members[0].crop_image,
            )
            for position, cluster in enumerate(clusters)
        ]

        return ClusteringSummary(
            total_faces=sum(info.face_count for info in infos),
            total_people=len(clusters),
            clusters=infos,
        )


def cluster(
    records: Iterable[FaceRecord],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[Cluster]:
    """Cluster face records with a one-off FaceClusterer."""
    return FaceClusterer(threshold=threshold).cluster(records)


def summarize(clusters: list[Cluster]) -> ClusteringSummary:
    """Summarize clusters with a one-off FaceClusterer."""
    return FaceClusterer().summarize(clusters)


def unreferenced_records(
    records: Iterable[FaceRecord],
    summary: ClusteringSummary,
) -> list[FaceRecord]:
    """
    Find records whose crop image is not used as a cluster representative.

    The caller may release the crop images of the returned records once the
    summary has been produced.

    Args:
        records: All records that were clustered
        summary: Summary produced from those records

    Returns:
        Records whose crop_image is not a representative_face (by identity)
    """
    representatives = {id(info.representative_face) for info in summary.clusters}
    return [r for r in records if id(r.crop_image) not in representatives]


def similarity_stats(records: Iterable[FaceRecord]) -> SimilarityStats | None:
    """
    Compute pairwise cosine similarity statistics for diagnostics.

    Only records whose embedding length matches the first record's are
    included.

    Args:
        records: Face records to compare

    Returns:
        SimilarityStats, or None if fewer than two comparable records
    """
    vectors = [np.asarray(r.embedding, dtype=np.float64).ravel() for r in records]
    if not vectors:
        return None

    dim = vectors[0].shape[0]
    vectors = [v for v in vectors if v.shape[0] == dim]
    if len(vectors) < 2:
        return None

    similarities = cosine_similarity(np.vstack(vectors))
    # Upper triangle, diagonal excluded
    upper_tri = similarities[np.triu_indices(len(vectors), k=1)]

    return SimilarityStats(
        min=float(upper_tri.min()),
        max=float(upper_tri.max()),
        mean=float(upper_tri.mean()),
        num_pairs=int(upper_tri.shape[0]),
    )
