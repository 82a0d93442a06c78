"""Command-line interface for Genrescope.

Commands:
    classify  - Classify the genre of an audio file
    labels    - Show the configured genre labels
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QEventLoop

from genrescope.core.config import GenrescopeConfig, load_config
from genrescope.core.event_bus import EventBus, Events
from genrescope.core.pipeline import ClassificationPipeline
from genrescope.utils.audio_io import decode_audio_file
from genrescope.utils.logger import setup_logging
from melgrid.classifier import load_classifier, warm_up
from melgrid.errors import PipelineError
from melgrid.types import ClassificationResult


def _log_status(message: str, color: str | None = None) -> None:
    logging.info(f"[CLI] {message}")


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return number


def run_classification(
    pipeline: ClassificationPipeline, clip_path: Path
) -> ClassificationResult:
    """Decode clip_path and block until the pipeline reports back.

    Raises:
        PipelineError: If decoding, extraction or inference fails
    """
    config = pipeline.config
    clip = decode_audio_file(clip_path, config.audio.supported_formats)

    outcome: dict[str, object] = {}
    loop = QEventLoop()

    def on_results(result: ClassificationResult) -> None:
        outcome["result"] = result
        loop.quit()

    def on_failed(error: PipelineError) -> None:
        outcome["error"] = error
        loop.quit()

    pipeline.results_ready.connect(on_results)
    pipeline.failed.connect(on_failed)

    pipeline.load_clip(clip)
    pipeline.classify()
    loop.exec()

    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["result"]  # type: ignore[return-value]


def _print_result(filename: str, result: ClassificationResult) -> None:
    print(f"File:     {filename}")
    print(f"Duration: {result.duration:.1f}s")
    print(f"Genre:    {result.predicted_genre} ({result.confidence:.1f}%)")
    print()
    print(f"Top {len(result.top)}:")
    print("-" * 30)
    for i, prediction in enumerate(result.top, 1):
        print(f"  {i}. {prediction.label:<15} {prediction.formatted:>7}")


def cmd_classify(args: argparse.Namespace, config: GenrescopeConfig) -> int:
    """Classify a single audio file."""
    if args.top_k is not None:
        config.results.top_k = args.top_k
    model_path = Path(args.model) if args.model else config.model.path

    app = QCoreApplication.instance() or QCoreApplication([])  # noqa: F841
    event_bus = EventBus()
    event_bus.subscribe(Events.STATUS_MESSAGE, _log_status)
    pipeline = ClassificationPipeline(config, event_bus=event_bus)

    try:
        classifier = load_classifier(model_path, device=config.model.device)
        if config.model.warmup:
            warm_up(
                classifier,
                config.features.frame_count,
                config.features.mel_bands,
                len(config.model.labels),
            )
        pipeline.set_classifier(classifier)

        result = run_classification(pipeline, Path(args.file))
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        pipeline.shutdown()

    if args.json:
        data = result.to_dict()
        data["file"] = str(args.file)
        print(json.dumps(data, indent=2))
    else:
        _print_result(Path(args.file).name, result)
    return 0


def cmd_labels(args: argparse.Namespace, config: GenrescopeConfig) -> int:
    """Show configured labels in classifier output order."""
    for index, label in enumerate(config.model.labels):
        print(f"{index:>3}  {label}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genrescope",
        description="Music genre classification from log-mel spectrograms",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to config file (default: config/config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # classify command
    classify_parser = subparsers.add_parser("classify", help="Classify an audio file")
    classify_parser.add_argument("file", help="Audio file to classify")
    classify_parser.add_argument(
        "--model", "-m",
        help="Path to exported classifier (default: model.path from config)",
    )
    classify_parser.add_argument(
        "--top-k", "-k",
        type=_positive_int,
        help="Show top K genres (default: results.top_k from config)",
    )
    classify_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    classify_parser.set_defaults(func=cmd_classify)

    # labels command
    labels_parser = subparsers.add_parser("labels", help="Show configured genre labels")
    labels_parser.set_defaults(func=cmd_labels)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Please ensure config/config.yaml exists.", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging)
    logging.debug(f"[CLI] Running '{args.command}'")

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
