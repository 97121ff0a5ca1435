"""CLI entry point for facegroup."""

import logging
import sys
from pathlib import Path

import click
from tqdm import tqdm

from . import __version__
from .clusterer import THRESHOLD_PRESETS, FaceClusterer, similarity_stats
from .utils import EMBEDDING_SIZE, RECORDS_FILE, find_malformed, format_person_id, load_records

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


@click.command()
@click.argument(
    "records_file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=RECORDS_FILE,
    required=False,
)
@click.option(
    "--threshold",
    type=float,
    default=None,
    help="Cosine similarity needed to join a cluster. Overrides --preset.",
)
@click.option(
    "--preset",
    type=click.Choice(sorted(THRESHOLD_PRESETS)),
    default="default",
    show_default=True,
    help="Named threshold: lenient=0.5, default=0.6, strict=0.7.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show detailed processing information.",
)
@click.version_option(version=__version__, prog_name="facegroup")
def main(
    records_file: Path,
    threshold: float | None,
    preset: str,
    verbose: bool,
) -> None:
    """
    Group saved face records into people.

    RECORDS_FILE is a pickle of face records written by save_records()
    (default: faces.pkl in the current directory).
    """
    setup_logging(verbose)

    records = load_records(records_file)
    if records is None:
        click.echo(f"Could not read face records from {records_file}.")
        sys.exit(1)

    if not records:
        click.echo("No face records found. Nothing to cluster.")
        sys.exit(0)

    if threshold is None:
        threshold = THRESHOLD_PRESETS[preset]

    click.echo(f"Loaded {len(records)} face records.")

    malformed = find_malformed(records)
    if malformed:
        logger.warning(
            f"{len(malformed)} record(s) do not have {EMBEDDING_SIZE}-dim embeddings "
            f"and will end up in clusters of their own"
        )

    if verbose:
        stats = similarity_stats(records)
        if stats is not None:
            logger.debug(
                f"Similarity stats - min: {stats.min:.3f}, max: {stats.max:.3f}, "
                f"mean: {stats.mean:.3f} over {stats.num_pairs} pairs"
            )

    clusterer = FaceClusterer(threshold=threshold)

    with tqdm(total=len(records), desc="Clustering faces", unit="face") as pbar:
        def progress_callback(current: int, total: int) -> None:
            pbar.update(1)

        clusters = clusterer.cluster(records, progress_callback=progress_callback)

    summary = clusterer.summarize(clusters)

    click.echo(f"\nClustering complete (threshold {threshold:.2f}):")
    click.echo(f"  - {summary.total_people} people")
    click.echo(f"  - {summary.total_faces} faces")

    click.echo("\nPeople:")
    for info in summary.clusters:
        images = ", ".join(str(i) for i in info.image_indices)
        click.echo(f"  {format_person_id(info.person_id)}: {info.face_count} faces, images [{images}]")


if __name__ == "__main__":
    main()
