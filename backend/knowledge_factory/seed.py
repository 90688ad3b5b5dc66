"""
Knowledge base seeding CLI.

Ingests every matching file of a directory through the regular ingestion
pipeline (extract → classify → chunk → embed → store), one file at a time.

    kf-seed                              # ./references, .txt and .md
    kf-seed --dir docs --ext .md --ext .pdf

Exit status is 0 when every file was ingested, 1 when any file failed,
2 when the directory does not exist or holds no matching files.

With the pgvector backend the documents table is created before the first
file and the connection pool is disposed before the event loop closes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from knowledge_factory.core.config import settings
from knowledge_factory.core.logging import configure_logging
from knowledge_factory.db.session import dispose_engine, init_db
from knowledge_factory.services.ingestion import BatchIngestionReport, IngestionService
from knowledge_factory.vectorstore.base import VectorStoreBase
from knowledge_factory.vectorstore.factory import get_vector_store

logger = logging.getLogger(__name__)

DEFAULT_DIR        = "references"
DEFAULT_EXTENSIONS = (".txt", ".md")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kf-seed",
        description="Seed the knowledge base from a directory of documents.",
    )
    parser.add_argument(
        "--dir",
        dest="directory",
        default=DEFAULT_DIR,
        help=f"Directory to ingest (default: {DEFAULT_DIR})",
    )
    parser.add_argument(
        "--ext",
        dest="extensions",
        action="append",
        default=None,
        help="File extension to include; repeatable (default: .txt and .md)",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def normalize_extensions(extensions: Optional[Sequence[str]]) -> tuple[str, ...]:
    if not extensions:
        return DEFAULT_EXTENSIONS
    return tuple(
        (ext if ext.startswith(".") else f".{ext}").lower()
        for ext in extensions
    )


def discover_files(directory: Path, extensions: Sequence[str]) -> list[Path]:
    """Regular files directly inside ``directory`` with a matching extension, by name."""
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in extensions),
        key=lambda p: p.name,
    )


async def seed_directory(
    directory:  Path,
    extensions: Sequence[str],
    store:      Optional[VectorStoreBase] = None,
    service:    Optional[IngestionService] = None,
) -> BatchIngestionReport:
    service = service or IngestionService(store=store or get_vector_store())
    files = discover_files(directory, extensions)

    logger.info("Seeding | dir=%s files=%d extensions=%s", directory, len(files), ",".join(extensions))
    return await service.ingest_batch([(path.name, path.read_bytes()) for path in files])


async def _run(directory: Path, extensions: Sequence[str]) -> BatchIngestionReport:
    """Seed inside one event loop; with pgvector, create the schema first and close the pool last."""
    if settings.vector_store_backend.lower() != "pgvector":
        return await seed_directory(directory, extensions)

    try:
        await init_db()
        return await seed_directory(directory, extensions)
    finally:
        await dispose_engine()


def print_report(report: BatchIngestionReport) -> None:
    for result in report.results:
        if result.success:
            print(f"  ok    {result.file_name}  chunks={result.chunks_count}  type={result.classification.type}")
        else:
            print(f"  FAIL  {result.file_name}  {result.error}")
    print(
        f"Seeding complete: {report.succeeded} succeeded, {report.failed} failed, "
        f"{report.total_chunks} chunks stored."
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    directory  = Path(args.directory)
    extensions = normalize_extensions(args.extensions)

    if not directory.is_dir():
        print(f"Directory not found: {directory}")
        return 2
    if not discover_files(directory, extensions):
        print(f"No {', '.join(extensions)} files found in {directory}")
        return 2

    print(f"Starting knowledge base seeding from {directory} ...")
    report = asyncio.run(_run(directory, extensions))
    print_report(report)
    return 1 if report.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
