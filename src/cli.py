"""Command-line interface for local batch OCR and health checks.

Runs the same pipeline as the HTTP service over files on disk, writes one
markdown file per document and a CSV report of per-file outcomes.
"""

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path

from src.api.health import build_health_status
from src.backends.factory import create_backend
from src.pipeline.batch import BatchPipeline, UploadedFile
from src.pipeline.events import (
    BatchDoneEvent,
    ErrorEvent,
    FileDoneEvent,
    FileStartEvent,
    LifecycleEvent,
    PageDoneEvent,
)
from src.pipeline.page_source import ALLOWED_EXTENSIONS
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_REPORT_COLUMNS = ["filename", "status", "pages", "elapsed_ms", "output", "error"]


def _find_documents(inputs: list[Path]) -> list[Path]:
    """Expand files and directories into a sorted list of supported documents.

    Args:
        inputs: Files and/or directories given on the command line.

    Returns:
        Files with a supported extension, directories scanned non-recursively.
    """
    files: set[Path] = set()
    for item in inputs:
        candidates = item.iterdir() if item.is_dir() else [item]
        for path in candidates:
            if path.is_file() and path.suffix.lower() in ALLOWED_EXTENSIONS:
                files.add(path)
    return sorted(files)


def _output_path(output_dir: Path, file_name: str, used: set[Path]) -> Path:
    """Pick ``<stem>.md`` in ``output_dir``, suffixing duplicates."""
    stem = Path(file_name).stem or "document"
    candidate = output_dir / f"{stem}.md"
    counter = 1
    while candidate in used:
        counter += 1
        candidate = output_dir / f"{stem}-{counter}.md"
    used.add(candidate)
    return candidate


async def _run_batch(
    pipeline: BatchPipeline,
    uploads: list[UploadedFile],
    output_dir: Path,
    verbose: bool,
) -> tuple[list[dict[str, object]], BatchDoneEvent | None]:
    """Drive the pipeline and turn its events into report rows."""
    rows: dict[str, dict[str, object]] = {}
    used: set[Path] = set()
    done: BatchDoneEvent | None = None

    async for event in pipeline.run(uploads):
        if verbose:
            _print_event(event)

        if isinstance(event, FileStartEvent):
            rows[event.file_id] = {
                "filename": event.file_name,
                "status": "processing",
                "pages": event.pages,
            }
        elif isinstance(event, FileDoneEvent):
            target = _output_path(output_dir, event.file_name, used)
            target.write_text(event.markdown, encoding="utf-8")
            row = rows.setdefault(event.file_id, {"filename": event.file_name})
            row.update(status="success", elapsed_ms=event.elapsed_ms, output=str(target))
        elif isinstance(event, ErrorEvent) and event.page is None:
            row = rows.setdefault(event.file_id, {"filename": event.file_name})
            row.update(status="failed", error=event.error)
        elif isinstance(event, BatchDoneEvent):
            done = event

    return list(rows.values()), done


def _print_event(event: LifecycleEvent) -> None:
    if isinstance(event, PageDoneEvent):
        print(f"  page {event.page} done ({len(event.markdown)} chars)")
    elif isinstance(event, ErrorEvent):
        where = f" page {event.page}" if event.page is not None else ""
        print(f"  error in {event.file_name}{where}: {event.error}")
    elif isinstance(event, FileStartEvent):
        print(f"Processing {event.file_name} ({event.pages} pages)")
    elif isinstance(event, FileDoneEvent):
        print(f"Finished {event.file_name} in {event.elapsed_ms} ms")


def _write_report(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write per-file outcomes to a CSV file.

    Args:
        rows: One dictionary per processed file.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_REPORT_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_dir: Path) -> None:
    """Print batch processing summary to stdout."""
    print(f"\n{'=' * 50}")
    print("Batch OCR Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_dir}")


def process_files(
    inputs: list[Path],
    output_dir: Path,
    config: AppConfig,
    verbose: bool = False,
) -> dict[str, int]:
    """Run OCR over local documents and write markdown plus a CSV report.

    Args:
        inputs: Files and/or directories to process.
        output_dir: Directory receiving ``<stem>.md`` files and ``report.csv``.
        config: Application configuration.
        verbose: Whether to print per-event progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(inputs)
    if not files:
        logger.warning("No documents found in %s", ", ".join(str(p) for p in inputs))
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))
    uploads = [UploadedFile(filename=p.name, content=p.read_bytes()) for p in files]
    pipeline = BatchPipeline(config, create_backend(config))

    output_dir.mkdir(parents=True, exist_ok=True)
    rows, done = asyncio.run(_run_batch(pipeline, uploads, output_dir, verbose))
    _write_report(rows, output_dir / "report.csv")

    if done is None:
        summary = {"total": len(files), "successful": 0, "failed": len(files)}
    else:
        summary = {
            "total": done.total_files,
            "successful": done.successful,
            "failed": done.failed,
        }
    _print_summary(summary, output_dir)
    return summary


async def check_health(config: AppConfig) -> dict[str, object]:
    """Collect the same health information the HTTP probe reports."""
    status = await build_health_status(config, create_backend(config))
    return status.model_dump(by_alias=True)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Batch OCR to markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser("process", help="OCR local files or folders")
    process_parser.add_argument("inputs", type=Path, nargs="+", help="Files or directories")
    process_parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("ocr-output"),
        help="Output directory (default: ocr-output)",
    )
    process_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers.add_parser("health", help="Check rasterizer and backend availability")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "process":
        missing = [p for p in args.inputs if not p.exists()]
        if missing:
            print(f"Error: {missing[0]} does not exist", file=sys.stderr)
            sys.exit(1)
        summary = process_files(args.inputs, args.output_dir, config, args.verbose)
        if summary["failed"]:
            sys.exit(1)
    elif args.command == "health":
        print(json.dumps(asyncio.run(check_health(config)), indent=2))
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
