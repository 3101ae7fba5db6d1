"""Live dental tool recognition from a camera, stream or video file."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dentool.config import Config, load_config
from dentool.errors import DetectionError
from dentool.io.sink import CompositeSink, LoggingSink, PresentationSink, ResultRecorder
from dentool.pipeline import DetectionPipeline
from dentool.scheduler import TickScheduler
from dentool.viz.overlay import OverlaySink, create_overlay_sink


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Dental Tool Recognition - Live Inference",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--src", "--source",
        type=str,
        help="Video source (camera index, file path or stream URL; overrides config)"
    )

    parser.add_argument(
        "--threshold",
        type=float,
        help="Confidence threshold (overrides config)"
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        help="Record results to this directory"
    )

    parser.add_argument(
        "--no-display",
        action="store_true",
        help="Disable the overlay window"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    parser.add_argument(
        "--api",
        action="store_true",
        help="Serve start/stop controls over HTTP instead of starting immediately"
    )

    parser.add_argument(
        "--api-port",
        type=int,
        default=8000,
        help="API server port"
    )

    return parser.parse_args(argv)


def validate_source(source: str) -> Union[int, str]:
    """Validate and process video source."""
    try:
        return int(source)
    except ValueError:
        pass

    source_path = Path(source)
    if source_path.exists():
        return str(source_path.absolute())

    return source


def build_sinks(config: Config, display: bool) -> List[PresentationSink]:
    """Create the presentation sinks enabled by configuration."""
    sinks: List[PresentationSink] = [LoggingSink()]

    if display and config.runtime.draw_overlay:
        sinks.append(create_overlay_sink(
            show_confidence=config.runtime.show_confidence,
            show_diagram=config.runtime.show_diagram,
            window_name=config.runtime.window_name
        ))

    if config.logging.record_results:
        sinks.append(ResultRecorder(
            output_dir=config.logging.out_dir,
            write_jsonl=config.logging.write_jsonl,
            write_csv=config.logging.write_csv,
            max_files=config.logging.max_log_files
        ))

    return sinks


async def run_detection(pipeline: DetectionPipeline, overlay: Optional[OverlaySink]) -> None:
    """Start the pipeline and tick it until stopped."""
    async with pipeline:
        await pipeline.start()

        scheduler: Optional[TickScheduler] = None

        async def tick():
            result = await pipeline.tick()
            if overlay is not None and overlay.close_requested:
                scheduler.cancel()
            return result

        scheduler = TickScheduler(tick, interval_s=pipeline.config.pipeline.tick_interval_s)
        await scheduler.run()


def main(argv: Optional[List[str]] = None) -> None:
    """Main inference function."""
    args = parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    logger.info("Starting Dental Tool Recognition")
    logger.info(f"Config: {args.config}")

    try:
        config_path = Path(args.config)
        config = load_config(config_path) if config_path.exists() else load_config()
        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_path}, using defaults")

        if args.src is not None:
            config.camera.source = validate_source(args.src)
        if args.threshold is not None:
            config.pipeline.confidence_threshold = args.threshold
        if args.output_dir:
            config.logging.out_dir = args.output_dir
            config.logging.record_results = True

        sinks = build_sinks(config, display=not args.no_display and not args.api)
        overlay = next((s for s in sinks if isinstance(s, OverlaySink)), None)

        pipeline = DetectionPipeline(config, sink=CompositeSink(sinks))

        if args.api:
            from dentool.api.server import run_server
            logger.info(f"API server starting on port {args.api_port}")
            run_server(pipeline, port=args.api_port)
        else:
            asyncio.run(run_detection(pipeline, overlay))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")

    except (DetectionError, ValueError) as e:
        logger.error(f"Error during inference: {e}")
        sys.exit(1)

    finally:
        logger.info("Inference completed")


if __name__ == "__main__":
    main()
