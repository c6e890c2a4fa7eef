"""Tests for the BatchAccumulator — capacity flushes, ticks, skip-tick rule."""

from __future__ import annotations

import math
import threading

import pytest

from conftest import RecordingSubmitter, wait_for
from influxin.routing.sinks.batch import BatchAccumulator


def _feed(acc: BatchAccumulator, lines: list[str]) -> None:
    for line in lines:
        acc.on_line(line)


class TestFlushRules:
    def test_tick_flushes_partial_batch(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(3, 60.0, recording_submitter)
        _feed(acc, ["a", "b"])

        acc.on_tick()

        assert recording_submitter.payloads == [b"a\nb\n"]
        assert acc.pending == []

    def test_line_over_capacity_flushes_first(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(2, 60.0, recording_submitter)
        _feed(acc, ["a", "b"])
        assert recording_submitter.payloads == []

        acc.on_line("c")

        assert recording_submitter.batches == [["a", "b"]]
        assert acc.pending == ["c"]
        assert acc.skip_next_tick is True

    def test_tick_after_capacity_flush_is_skipped_once(
        self, recording_submitter: RecordingSubmitter
    ):
        acc = BatchAccumulator(2, 60.0, recording_submitter)
        _feed(acc, ["a", "b", "c"])

        acc.on_tick()
        assert recording_submitter.batches == [["a", "b"]]
        assert acc.pending == ["c"]
        assert acc.skip_next_tick is False

        acc.on_tick()
        assert recording_submitter.batches == [["a", "b"], ["c"]]

    def test_empty_tick_never_submits(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(2, 60.0, recording_submitter)
        for _ in range(5):
            acc.on_tick()
        assert recording_submitter.payloads == []
        assert acc.flush_count == 0

    def test_flush_on_empty_batch_is_noop(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(2, 60.0, recording_submitter)
        acc.flush()
        assert recording_submitter.payloads == []

    def test_payload_is_utf8_newline_terminated(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(5, 60.0, recording_submitter)
        _feed(acc, ["température v=1", "x"])
        acc.flush()
        assert recording_submitter.payloads == ["température v=1\nx\n".encode("utf-8")]

    @pytest.mark.parametrize(("count", "capacity"), [(1, 1), (5, 2), (6, 3), (17, 4), (40, 7)])
    def test_batches_bounded_and_complete(
        self, recording_submitter: RecordingSubmitter, count: int, capacity: int
    ):
        acc = BatchAccumulator(capacity, 60.0, recording_submitter)
        lines = [f"m v={i}" for i in range(count)]
        _feed(acc, lines)
        # The first tick may be the skipped one.
        acc.on_tick()
        acc.on_tick()

        batches = recording_submitter.batches
        assert len(batches) >= math.ceil(count / capacity)
        assert all(0 < len(b) <= capacity for b in batches)
        assert [line for b in batches for line in b] == lines
        assert acc.pending == []


class TestValidation:
    @pytest.mark.parametrize(
        ("capacity", "interval", "inbox"), [(0, 1.0, 1), (1, 0.0, 1), (1, -1.0, 1), (1, 1.0, 0)]
    )
    def test_invalid_arguments(self, capacity, interval, inbox):
        with pytest.raises(ValueError):
            BatchAccumulator(capacity, interval, RecordingSubmitter(), inbox_size=inbox)


class TestReceiveLoop:
    def test_timer_flushes_accepted_lines(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(100, 0.05, recording_submitter)
        acc.start()
        try:
            acc.accept("a")
            acc.accept("b")
            assert wait_for(
                lambda: sum(len(b) for b in recording_submitter.batches) == 2
            )
        finally:
            acc.close(5)
        assert [line for b in recording_submitter.batches for line in b] == ["a", "b"]

    def test_capacity_flush_through_inbox(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(2, 60.0, recording_submitter)
        acc.start()
        for line in ["a", "b", "c", "d", "e"]:
            acc.accept(line)
        acc.close(5)
        assert recording_submitter.batches == [["a", "b"], ["c", "d"]]
        assert acc.pending == ["e"]

    def test_close_with_flush(self, recording_submitter: RecordingSubmitter):
        acc = BatchAccumulator(10, 60.0, recording_submitter)
        acc.start()
        acc.accept("a")
        acc.close(5, flush=True)
        assert recording_submitter.batches == [["a"]]

    def test_accept_blocks_until_loop_drains_inbox(
        self, recording_submitter: RecordingSubmitter
    ):
        acc = BatchAccumulator(10, 60.0, recording_submitter, inbox_size=1)
        acc.accept("a")
        blocked = threading.Thread(target=acc.accept, args=("b",))
        blocked.start()
        blocked.join(0.2)
        assert blocked.is_alive()

        acc.start()
        blocked.join(5)
        assert not blocked.is_alive()
        acc.close(5)
        assert acc.pending == ["a", "b"]


class _StallingAccumulator(BatchAccumulator):
    """Holds the receive loop inside ``on_line`` until ``release`` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def on_line(self, line: str) -> None:
        super().on_line(line)
        self.entered.set()
        self.release.wait(5)


class TestCloseTimeout:
    def test_busy_loop_keeps_its_batch(self, recording_submitter: RecordingSubmitter):
        acc = _StallingAccumulator(10, 60.0, recording_submitter)
        acc.start()
        acc.accept("a")
        assert acc.entered.wait(5)

        acc.close(0.1, flush=True)
        assert recording_submitter.payloads == []

        acc.release.set()
        acc.close(5, flush=True)
        assert recording_submitter.batches == [["a"]]
