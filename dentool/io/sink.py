"""Presentation sinks and detection result recording."""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import numpy as np
import pandas as pd
import jsonlines
from threading import Lock
import logging

from ..logic.decision import DetectionOutcome, DetectionResult

logger = logging.getLogger(__name__)

RESULT_FIELDS = [
    'timestamp', 'selected_label', 'confidence', 'accepted', 'outcome',
    'tool_name', 'region', 'diagram', 'warning'
]


class PresentationSink:
    """Receives detection results and lifecycle status messages."""

    def frame(self, frame: np.ndarray) -> None:
        """Receive the frame the next result is computed from."""

    def emit(self, result: DetectionResult) -> None:
        """Present one detection result."""

    def status(self, message: str) -> None:
        """Present a free-text status line."""

    def close(self) -> None:
        """Release sink resources."""


class LoggingSink(PresentationSink):
    """Sink that writes results to the log."""

    def emit(self, result: DetectionResult) -> None:
        if result.accepted:
            logger.info(f"{result.tool_name} ({result.confidence_text}) region={result.region}")
        else:
            logger.info(f"{result.tool_name} ({result.confidence_text}) {result.warning}")

    def status(self, message: str) -> None:
        logger.info(f"Status: {message}")


class LatestResultSink(PresentationSink):
    """Keeps only the most recent result and status line."""

    def __init__(self):
        self._lock = Lock()
        self.result: Optional[DetectionResult] = None
        self.message = ""

    def emit(self, result: DetectionResult) -> None:
        with self._lock:
            self.result = result

    def status(self, message: str) -> None:
        with self._lock:
            self.message = message

    def snapshot(self) -> Dict[str, Any]:
        """Latest result as a dictionary."""
        with self._lock:
            return {
                'status': self.message,
                'result': self.result.to_dict() if self.result else None
            }


class CompositeSink(PresentationSink):
    """Fans out to several sinks; a failing sink does not starve the others."""

    def __init__(self, sinks: Sequence[PresentationSink]):
        self.sinks = list(sinks)

    def frame(self, frame: np.ndarray) -> None:
        for sink in self.sinks:
            try:
                sink.frame(frame)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed to take frame: {e}")

    def emit(self, result: DetectionResult) -> None:
        for sink in self.sinks:
            try:
                sink.emit(result)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed to emit result: {e}")

    def status(self, message: str) -> None:
        for sink in self.sinks:
            try:
                sink.status(message)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed to show status: {e}")

    def close(self) -> None:
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                logger.warning(f"Failed to close sink {type(sink).__name__}: {e}")


class ResultRecorder(PresentationSink):
    """Records detection results with multiple output formats."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        write_jsonl: bool = True,
        write_csv: bool = True,
        session_id: Optional[str] = None,
        max_files: int = 10
    ):
        """
        Initialize result recorder.

        Args:
            output_dir: Directory to save result files
            write_jsonl: Enable JSONL output
            write_csv: Enable CSV output
            session_id: Session identifier (auto-generated if None)
            max_files: Maximum number of files to keep per format
        """
        self.output_dir = Path(output_dir)
        self.write_jsonl = write_jsonl
        self.write_csv = write_csv
        self.max_files = max_files

        self.session_id = session_id or f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.jsonl_path = self.output_dir / f"{self.session_id}_results.jsonl"
        self.csv_path = self.output_dir / f"{self.session_id}_results.csv"

        self._lock = Lock()

        self.results: List[Dict[str, Any]] = []

        self._initialize_files()

        logger.info(f"Result recorder initialized: {self.output_dir}")
        if self.write_jsonl:
            logger.info(f"JSONL output: {self.jsonl_path}")
        if self.write_csv:
            logger.info(f"CSV output: {self.csv_path}")

    def _initialize_files(self) -> None:
        """Initialize output files."""
        if self.write_csv and not self.csv_path.exists():
            with open(self.csv_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=RESULT_FIELDS)
                writer.writeheader()

        self._cleanup_old_files()

    def _cleanup_old_files(self) -> None:
        """Remove old files if limit exceeded."""
        for pattern in ['*_results.jsonl', '*_results.csv']:
            files = sorted(self.output_dir.glob(pattern))
            if len(files) > self.max_files:
                for old_file in files[:-self.max_files]:
                    try:
                        old_file.unlink()
                        logger.info(f"Removed old file: {old_file}")
                    except OSError as e:
                        logger.warning(f"Failed to remove old file {old_file}: {e}")

    def emit(self, result: DetectionResult) -> None:
        """
        Record a detection result to configured outputs.

        Args:
            result: Detection result to record
        """
        record = result.to_dict()

        with self._lock:
            self.results.append(record)

            if self.write_jsonl:
                try:
                    with jsonlines.open(self.jsonl_path, mode='a') as writer:
                        writer.write(record)
                except OSError as e:
                    logger.error(f"Failed to write JSONL: {e}")

            if self.write_csv:
                try:
                    with open(self.csv_path, 'a', newline='', encoding='utf-8') as f:
                        writer = csv.DictWriter(f, fieldnames=RESULT_FIELDS)
                        writer.writerow(record)
                except OSError as e:
                    logger.error(f"Failed to write CSV: {e}")

    def get_results(
        self,
        since: Optional[float] = None,
        outcome: Optional[DetectionOutcome] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Retrieve recorded results with optional filtering.

        Args:
            since: Return results at or after this timestamp
            outcome: Filter by presentation outcome
            limit: Maximum number of results to return

        Returns:
            List of result dictionaries
        """
        with self._lock:
            filtered = self.results.copy()

        if since is not None:
            filtered = [r for r in filtered if r['timestamp'] >= since]

        if outcome is not None:
            filtered = [r for r in filtered if r['outcome'] == outcome.value]

        if limit is not None:
            filtered = filtered[-limit:]

        return filtered

    def get_statistics(self) -> Dict[str, Any]:
        """Get statistics about recorded results."""
        with self._lock:
            results = self.results.copy()

        if not results:
            return {
                'total_results': 0,
                'accepted_results': 0,
                'acceptance_rate': 0.0,
                'session_id': self.session_id
            }

        accepted = [r for r in results if r['accepted']]
        tool_counts: Dict[str, int] = {}
        for r in accepted:
            if r['outcome'] == DetectionOutcome.TOOL.value:
                tool_counts[r['selected_label']] = tool_counts.get(r['selected_label'], 0) + 1

        return {
            'total_results': len(results),
            'accepted_results': len(accepted),
            'acceptance_rate': len(accepted) / len(results),
            'outcomes': {o.value: sum(1 for r in results if r['outcome'] == o.value) for o in DetectionOutcome},
            'tool_counts': tool_counts,
            'avg_confidence': sum(r['confidence'] for r in results) / len(results),
            'session_id': self.session_id
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Convert recorded results to pandas DataFrame."""
        with self._lock:
            if not self.results:
                return pd.DataFrame(columns=RESULT_FIELDS)
            df = pd.DataFrame(self.results)

        df['datetime'] = pd.to_datetime(df['timestamp'], unit='s')
        return df

    def export_summary(self, output_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """
        Export summary statistics.

        Args:
            output_path: Optional path to save summary JSON

        Returns:
            Summary dictionary
        """
        stats = self.get_statistics()

        if output_path:
            summary_path = Path(output_path)
            summary_path.parent.mkdir(parents=True, exist_ok=True)

            with open(summary_path, 'w', encoding='utf-8') as f:
                json.dump(stats, f, indent=2, ensure_ascii=False)

            logger.info(f"Summary exported to: {summary_path}")

        return stats

    def close(self) -> None:
        """Close the recorder and export final summary."""
        summary = self.export_summary(self.output_dir / f"{self.session_id}_summary.json")
        logger.info(f"Result recorder closed. Total results: {summary['total_results']}")
