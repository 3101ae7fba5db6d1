"""Test suite for presentation sinks and result recording."""

import json

import jsonlines
import pandas as pd

from dentool.io.sink import CompositeSink, LatestResultSink, LoggingSink, ResultRecorder
from dentool.logic.decision import DetectionOutcome, DetectionResult, ToolProfile

from conftest import RecordingSink

MIRROR = ToolProfile("Mirror", "Mirror", "All quadrants (visual inspection)", "mouth-diagrams/mirror.png")


def tool_result(timestamp=1.0, confidence=0.9):
    return DetectionResult("Mirror", confidence, True, MIRROR, DetectionOutcome.TOOL, timestamp)


def low_result(timestamp=2.0):
    return DetectionResult("Mirror", 0.3, False, None, DetectionOutcome.LOW_CONFIDENCE, timestamp)


class TestResultRecorder:
    """Test cases for ResultRecorder class."""

    def test_writes_jsonl_and_csv(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")

        recorder.emit(tool_result())
        recorder.emit(low_result())

        with jsonlines.open(recorder.jsonl_path) as reader:
            rows = list(reader)
        assert [r['outcome'] for r in rows] == ["tool", "low_confidence"]
        assert rows[0]['diagram'] == "mouth-diagrams/mirror.png"

        df = pd.read_csv(recorder.csv_path)
        assert len(df) == 2
        assert list(df['selected_label']) == ["Mirror", "Mirror"]

    def test_formats_can_be_disabled(self, tmp_path):
        recorder = ResultRecorder(tmp_path, write_jsonl=False, write_csv=False, session_id="s1")
        recorder.emit(tool_result())

        assert not recorder.jsonl_path.exists()
        assert not recorder.csv_path.exists()
        assert len(recorder.get_results()) == 1

    def test_status_lines_are_not_recorded(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")

        for _ in range(100):
            recorder.status("Mirror (90.0%)")

        assert recorder.get_results() == []
        assert not hasattr(recorder, 'messages')
        assert not recorder.jsonl_path.exists()

    def test_get_results_filters(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")
        recorder.emit(tool_result(timestamp=1.0))
        recorder.emit(low_result(timestamp=2.0))
        recorder.emit(tool_result(timestamp=3.0))

        assert len(recorder.get_results(since=2.0)) == 2
        assert len(recorder.get_results(outcome=DetectionOutcome.TOOL)) == 2
        assert [r['timestamp'] for r in recorder.get_results(limit=1)] == [3.0]

    def test_statistics(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")
        assert recorder.get_statistics()['total_results'] == 0

        recorder.emit(tool_result(confidence=0.9))
        recorder.emit(low_result())

        stats = recorder.get_statistics()

        assert stats['total_results'] == 2
        assert stats['accepted_results'] == 1
        assert stats['acceptance_rate'] == 0.5
        assert stats['tool_counts'] == {"Mirror": 1}
        assert stats['outcomes']['low_confidence'] == 1

    def test_to_dataframe(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")
        assert recorder.to_dataframe().empty

        recorder.emit(tool_result())
        df = recorder.to_dataframe()

        assert len(df) == 1
        assert 'datetime' in df.columns

    def test_close_exports_summary(self, tmp_path):
        recorder = ResultRecorder(tmp_path, session_id="s1")
        recorder.emit(tool_result())
        recorder.close()

        summary = json.loads((tmp_path / "s1_summary.json").read_text())
        assert summary['total_results'] == 1

    def test_old_files_pruned(self, tmp_path):
        for i in range(3):
            ResultRecorder(tmp_path, write_jsonl=False, session_id=f"session_{i}", max_files=2)

        assert len(list(tmp_path.glob("*_results.csv"))) == 2


class TestCompositeSink:
    """Test cases for CompositeSink class."""

    def test_fans_out(self):
        a, b = RecordingSink(), RecordingSink()
        sink = CompositeSink([a, b])

        sink.status("Camera running")
        sink.emit(tool_result())
        sink.close()

        for child in (a, b):
            assert child.messages == ["Camera running"]
            assert len(child.results) == 1
            assert child.closed

    def test_failing_child_does_not_starve_others(self):
        class Broken(RecordingSink):
            def emit(self, result):
                raise RuntimeError("boom")

        healthy = RecordingSink()
        sink = CompositeSink([Broken(), healthy])

        sink.emit(tool_result())

        assert len(healthy.results) == 1


class TestLatestResultSink:
    """Test cases for LatestResultSink class."""

    def test_snapshot(self):
        sink = LatestResultSink()
        assert sink.snapshot() == {'status': "", 'result': None}

        sink.emit(low_result())
        sink.emit(tool_result())
        sink.status("Mirror (90.0%)")

        snapshot = sink.snapshot()
        assert snapshot['status'] == "Mirror (90.0%)"
        assert snapshot['result']['selected_label'] == "Mirror"
        assert snapshot['result']['accepted'] is True


class TestLoggingSink:
    """Test cases for LoggingSink class."""

    def test_logs_results(self, caplog):
        sink = LoggingSink()

        with caplog.at_level("INFO"):
            sink.emit(tool_result())
            sink.emit(low_result())
            sink.status("Stopped")

        assert "Mirror (90.0%)" in caplog.text
        assert "Low confidence" in caplog.text
        assert "Status: Stopped" in caplog.text
