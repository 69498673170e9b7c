"""Command-line interface for re-embedding lecture transcripts from scratch."""

import argparse
import asyncio

from src.utils.clients import get_service_clients
from src.utils.logging import get_logger

from .config import get_config
from .pipeline import TranscriptEmbeddingPipeline

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Lecture RAG Pipeline - Re-embed lecture transcripts from scratch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Re-embed one lecture (using .env config)
  python -m src.rag_pipeline.cli --lecture-id 7f0c...

  # Re-embed several lectures
  python -m src.rag_pipeline.cli --lecture-id A --lecture-id B

  # Dry run mode (chunk only, no embedding or database writes)
  python -m src.rag_pipeline.cli --lecture-id 7f0c... --dry-run
        """,
    )

    parser.add_argument(
        "--lecture-id",
        action="append",
        required=True,
        help="Lecture to re-embed (repeatable)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        help="Override CHUNK_SIZE from environment",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run mode - chunk transcripts but don't embed or write",
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code: 0 when every lecture succeeded, 1 otherwise.
    """
    args = build_parser().parse_args(argv)

    config = get_config()
    if args.chunk_size:
        config.chunk_size = args.chunk_size

    logger.info(
        "cli_started",
        lectures=len(args.lecture_id),
        chunk_size=config.chunk_size,
        dry_run=args.dry_run,
    )

    print("\n" + "=" * 60)
    print("Lecture RAG Pipeline - Re-embed")
    print("=" * 60)
    print(f"Lectures: {', '.join(args.lecture_id)}")
    print(f"Embedding model: {config.embedding_model}")
    print(f"Chunk size: {config.chunk_size} chars (overlap {config.chunk_overlap})")
    if args.dry_run:
        print("\nDRY RUN MODE - No embeddings or database writes")
    print("=" * 60 + "\n")

    pipeline = TranscriptEmbeddingPipeline.from_clients(config, get_service_clients(config))

    failures = 0
    for lecture_id in args.lecture_id:
        try:
            result = await pipeline.reindex_lecture(lecture_id, dry_run=args.dry_run)
        except Exception as e:
            failures += 1
            logger.exception("reindex_failed", lecture_id=lecture_id, error_type=type(e).__name__)
            print(f"  FAILED {lecture_id}: {e}")
            continue

        print(
            f"  OK {lecture_id}: {len(result.transcript)} segments, "
            f"{len(result.new_embedding_ids)} new vector rows"
        )

    print("\n" + "=" * 60 + "\n")

    logger.info("cli_completed", lectures=len(args.lecture_id), failed=failures)
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
