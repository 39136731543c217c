"""Command-line interface for document processing and CSV export.

Subcommands process a stored document through the analysis service, run
extraction over a saved analysis response (or a local scan), and batch a
folder of saved responses into a CSV file.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path

from docfields.exceptions import DocfieldsError
from docfields.ocr.blocks import BlockGraph
from docfields.ocr.provider import DocumentLocation, LocalJsonProvider, TextractProvider
from docfields.pipeline.models import ExtractionResult
from docfields.pipeline.processor import DocumentProcessor
from docfields.registry.store import build_registry
from docfields.storage.sinks import build_sink, make_document_id
from docfields.utils.config import AppConfig, load_config
from docfields.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_META_COLUMNS = [
    "filename",
    "status",
    "company",
    "page_number",
    "line_items",
    "processing_time_s",
    "error",
]


def _load_graph(file_path: Path, config: AppConfig) -> BlockGraph:
    """Read a saved analysis response, or analyze a scan with the provider."""
    if file_path.suffix.lower() == ".json":
        provider = LocalJsonProvider(file_path.parent)
        return provider.analyze(DocumentLocation("local", file_path.name))
    return TextractProvider(config.provider).analyze_bytes(file_path.read_bytes())


def _build_processor(config: AppConfig) -> DocumentProcessor:
    return DocumentProcessor(
        TextractProvider(config.provider),
        build_registry(config.registry, config.provider.region_name),
        config,
    )


def extract_single(file_path: Path, config: AppConfig | None = None) -> dict[str, object]:
    """Extract from one saved analysis response or local scan.

    Args:
        file_path: ``.json`` analysis response, or an image/PDF to analyze.
        config: Application configuration; loaded when omitted.

    Returns:
        Dictionary with filename, document id, page count and results.
    """
    config = config or load_config()
    processor = _build_processor(config)
    graph = _load_graph(file_path, config)
    document_id = make_document_id(DocumentLocation("local", file_path.name))
    results = processor.extract_graph(graph, document_id)
    return {
        "filename": file_path.name,
        "document_id": document_id,
        "page_count": max(len(graph.pages()), 1),
        "results": [r.model_dump(mode="json") for r in results],
    }


def process_stored(
    bucket: str, key: str, store: bool = False, config: AppConfig | None = None
) -> dict[str, object]:
    """Process a stored document through the analysis service.

    Args:
        bucket: Bucket holding the document.
        key: Object key of the document.
        store: Whether to write the results to the configured sink.
        config: Application configuration; loaded when omitted.

    Returns:
        Dictionary with document id, page count, results and storage counts.
    """
    config = config or load_config()
    region = config.provider.region_name
    processor = DocumentProcessor(
        TextractProvider(config.provider),
        build_registry(config.registry, region),
        config,
        sink=build_sink(config.storage, region) if store else None,
    )
    outcome = processor.process(DocumentLocation(bucket, key))
    output: dict[str, object] = {
        "document_id": outcome.document_id,
        "page_count": outcome.page_count,
        "results": [r.model_dump(mode="json") for r in outcome.results],
    }
    if outcome.storage is not None:
        output["stored"] = outcome.storage.written
        output["storage_failures"] = [f.__dict__ for f in outcome.storage.failures]
    return output


def _result_rows(filename: str, results: list[ExtractionResult]) -> list[dict[str, object]]:
    if not results:
        return [{"filename": filename, "status": "no_match", "error": None}]
    rows: list[dict[str, object]] = []
    for result in results:
        row: dict[str, object] = {
            "filename": filename,
            "status": "success",
            "company": result.company,
            "page_number": result.page_number,
            "line_items": len(result.line_items),
            "error": None,
        }
        row.update(result.extracted_fields)
        rows.append(row)
    return rows


def process_folder(
    input_dir: Path,
    output_csv: Path,
    config: AppConfig | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Extract from every saved analysis response in a folder into a CSV.

    Args:
        input_dir: Directory containing ``*.json`` analysis responses.
        output_csv: Path for the output CSV file.
        config: Application configuration; loaded when omitted.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    config = config or load_config()
    processor = _build_processor(config)

    files = sorted(input_dir.glob("*.json"))
    if not files:
        logger.warning("No analysis responses found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))

    rows: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            graph = _load_graph(file_path, config)
            document_id = make_document_id(DocumentLocation("local", file_path.name))
            results = processor.extract_graph(graph, document_id)
        except DocfieldsError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            rows.append({"filename": file_path.name, "status": "failed", "error": str(exc)})
            failed += 1
            continue

        elapsed = round(time.time() - start_time, 2)
        for row in _result_rows(file_path.name, results):
            row["processing_time_s"] = elapsed
            rows.append(row)
        successful += 1

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write result rows to a CSV file, meta columns first.

    Args:
        rows: One dictionary per result row.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    all_keys: set[str] = set()
    for r in rows:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Extraction Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _emit(result: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(result, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Business document field extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="Configuration YAML file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser(
        "process", help="Process a stored document through the analysis service"
    )
    process_parser.add_argument("bucket", help="Bucket holding the document")
    process_parser.add_argument("key", help="Object key of the document")
    process_parser.add_argument(
        "--store", action="store_true", help="Write results to the configured sink"
    )
    process_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    extract_parser = subparsers.add_parser(
        "extract", help="Extract from a saved analysis response or a local scan"
    )
    extract_parser.add_argument("file", type=Path, help="Analysis JSON, image or PDF")
    extract_parser.add_argument(
        "--line-items", action="store_true", help="Also reconstruct table line items"
    )
    extract_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    batch_parser = subparsers.add_parser(
        "batch", help="Extract from a folder of saved analysis responses"
    )
    batch_parser.add_argument("input_dir", type=Path, help="Directory with *.json files")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    try:
        if args.command == "process":
            _emit(process_stored(args.bucket, args.key, args.store, config), args.output)
        elif args.command == "extract":
            if not args.file.exists():
                print(f"Error: {args.file} does not exist", file=sys.stderr)
                sys.exit(1)
            if args.line_items:
                config.extraction.extract_line_items = True
            _emit(extract_single(args.file, config), args.output)
        elif args.command == "batch":
            if not args.input_dir.is_dir():
                print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
                sys.exit(1)
            process_folder(args.input_dir, args.output, config, args.verbose)
        else:
            parser.print_help()
            sys.exit(0)
    except DocfieldsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
