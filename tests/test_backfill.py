"""Unit tests for backfill pipeline."""
import threading
import pytest
from unittest.mock import Mock
from conftest import make_record
from src.data_access.feedback_store import FeedbackStore
from src.embedding.indexer import FeedbackIndexer
from src.pipelines.backfill import BackfillPipeline
from src.utils.exceptions import EmbeddingError


@pytest.fixture
def feedback_store():
    return Mock(spec=FeedbackStore)


@pytest.fixture
def indexer():
    return Mock(spec=FeedbackIndexer)


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def pipeline(mock_config, feedback_store, indexer, sleep):
    return BackfillPipeline(mock_config, feedback_store=feedback_store, indexer=indexer, sleep=sleep)


class TestBackfillPipeline:
    """Test BackfillPipeline class."""

    def test_empty_store(self, pipeline, feedback_store, indexer):
        feedback_store.list_for_backfill.return_value = []

        result = pipeline.run()

        assert result.model_dump() == {"processed": 0, "errors": 0, "total": 0}
        indexer.index.assert_not_called()

    def test_processes_every_record(self, pipeline, feedback_store, indexer, sample_feedback_records):
        feedback_store.list_for_backfill.return_value = sample_feedback_records

        result = pipeline.run(batch_size=3)

        assert result.processed == 4
        assert result.errors == 0
        assert result.total == 4
        indexed_ids = sorted(call.args[0].id for call in indexer.index.call_args_list)
        assert indexed_ids == [1, 2, 3, 4]

    def test_failures_are_counted_and_do_not_stop_the_run(self, pipeline, feedback_store, indexer):
        records = [make_record(i) for i in range(1, 8)]
        feedback_store.list_for_backfill.return_value = records

        def index(record):
            if record.id in (2, 6):
                raise EmbeddingError(f"failed on {record.id}")
            return record

        indexer.index.side_effect = index

        result = pipeline.run(batch_size=3)

        assert result.processed == 5
        assert result.errors == 2
        assert result.processed + result.errors == result.total == 7
        assert indexer.index.call_count == 7

    def test_batches_run_strictly_in_sequence(self, pipeline, feedback_store, indexer):
        records = [make_record(i) for i in range(1, 7)]
        feedback_store.list_for_backfill.return_value = records

        lock = threading.Lock()
        in_flight = []
        started = []
        finished = []

        def index(record):
            with lock:
                started.append(record.id)
                in_flight.append(record.id)
                # Nothing from a later batch may start while this batch runs
                batch = (record.id - 1) // 2
                assert all((other - 1) // 2 == batch for other in in_flight)
            with lock:
                in_flight.remove(record.id)
                finished.append(record.id)
            return record

        indexer.index.side_effect = index

        result = pipeline.run(batch_size=2)

        assert result.errors == 0
        assert result.processed == 6
        batches = [set(started[i:i + 2]) for i in range(0, 6, 2)]
        assert batches == [{1, 2}, {3, 4}, {5, 6}]

    def test_concurrency_within_a_batch(self, pipeline, feedback_store, indexer):
        records = [make_record(i) for i in range(1, 4)]
        feedback_store.list_for_backfill.return_value = records
        barrier = threading.Barrier(3, timeout=5)

        def index(record):
            # Only succeeds if all three items of the batch run at once
            barrier.wait()
            return record

        indexer.index.side_effect = index

        result = pipeline.run(batch_size=3)

        assert result.processed == 3
        assert result.errors == 0

    def test_sleeps_between_batches_only(self, mock_config, feedback_store, indexer, sleep):
        mock_config.backfill_batch_delay_seconds = 0.1
        pipeline = BackfillPipeline(mock_config, feedback_store=feedback_store, indexer=indexer, sleep=sleep)
        feedback_store.list_for_backfill.return_value = [make_record(i) for i in range(1, 6)]

        pipeline.run(batch_size=2)

        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_no_sleep_when_delay_disabled(self, pipeline, feedback_store, sleep):
        feedback_store.list_for_backfill.return_value = [make_record(i) for i in range(1, 6)]

        pipeline.run(batch_size=2)

        sleep.assert_not_called()

    def test_default_batch_size_from_config(self, pipeline, feedback_store, indexer, mock_config):
        mock_config.backfill_batch_size = 10
        feedback_store.list_for_backfill.return_value = [make_record(i) for i in range(1, 13)]

        result = pipeline.run()

        assert result.total == 12
        assert result.processed == 12

    @pytest.mark.parametrize("batch_size", [0, -1])
    def test_invalid_batch_size(self, pipeline, batch_size):
        with pytest.raises(ValueError):
            pipeline.run(batch_size=batch_size)

    def test_rerun_upserts_again(self, pipeline, feedback_store, indexer, sample_feedback_records):
        feedback_store.list_for_backfill.return_value = sample_feedback_records

        first = pipeline.run()
        second = pipeline.run()

        assert first == second
        assert indexer.index.call_count == 8

    def test_store_failure_propagates(self, pipeline, feedback_store):
        feedback_store.list_for_backfill.side_effect = RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            pipeline.run()
