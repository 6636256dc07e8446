# src/pipelines/backfill.py
"""
Backfill pipeline to embed all historical feedback records.

Records are processed in fixed-size batches. Items within a batch run
concurrently; the next batch starts only after the whole batch finished.
A failing item is counted and does not stop its batch or later batches,
and re-running the backfill is safe because vectors are upserted by id.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional
import argparse
import logging
import time

from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.data_access.vector_index import VectorIndex
from src.embedding.embedder import Embedder
from src.embedding.indexer import FeedbackIndexer
from src.models.schemas import BackfillResult, FeedbackRecord
from src.utils.logging_config import configure_logging


logger = logging.getLogger(__name__)


class BackfillPipeline:
    """Pipeline for backfilling embeddings for historical feedback."""

    def __init__(
        self,
        config: Settings,
        feedback_store: Optional[FeedbackStore] = None,
        indexer: Optional[FeedbackIndexer] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the backfill pipeline.

        Args:
            config: Application settings
            feedback_store: Relational store (built from config if None)
            indexer: Embed+upsert helper (built from config if None)
            sleep: Pause function used between batches
        """
        self.config = config
        self.feedback_store = feedback_store or FeedbackStore(config)
        self.indexer = indexer or FeedbackIndexer(config)
        self._sleep = sleep

    def run(self, batch_size: Optional[int] = None) -> BackfillResult:
        """
        Execute the backfill pipeline.

        Args:
            batch_size: Records per batch, which is also the concurrency bound
                (default from config)

        Returns:
            BackfillResult where processed + errors == total
        """
        if batch_size is None:
            batch_size = self.config.backfill_batch_size
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        logger.info("Starting backfill pipeline")

        feedback_records = self.feedback_store.list_for_backfill()
        total_records = len(feedback_records)
        logger.info(f"Found {total_records} feedback records to process")

        if total_records == 0:
            logger.info("No records to process")
            return BackfillResult(processed=0, errors=0, total=0)

        processed = 0
        errors = 0
        total_batches = (total_records + batch_size - 1) // batch_size

        for i in range(0, total_records, batch_size):
            batch = feedback_records[i:i + batch_size]
            batch_num = (i // batch_size) + 1

            logger.info(f"Processing batch {batch_num}/{total_batches} ({len(batch)} records)")

            batch_processed, batch_errors = self._process_batch(batch)
            processed += batch_processed
            errors += batch_errors

            if batch_num < total_batches and self.config.backfill_batch_delay_seconds > 0:
                self._sleep(self.config.backfill_batch_delay_seconds)

        logger.info(
            f"Backfill complete: {processed} embeddings created, {errors} errors"
        )

        return BackfillResult(processed=processed, errors=errors, total=total_records)

    def _process_batch(self, batch: List[FeedbackRecord]) -> tuple:
        """
        Embed and upsert every record of one batch concurrently.

        Args:
            batch: Feedback records of this batch

        Returns:
            (processed, errors) counts for the batch
        """
        processed = 0
        errors = 0

        # Leaving the executor block waits for every item of the batch
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            future_to_record = {
                executor.submit(self.indexer.index, record): record
                for record in batch
            }

            for future in as_completed(future_to_record):
                record = future_to_record[future]
                try:
                    future.result()
                    processed += 1
                except Exception as e:
                    logger.error(f"Error processing feedback {record.id}: {e}")
                    errors += 1

        return processed, errors


def main():
    """Main entry point for running the backfill pipeline."""
    parser = argparse.ArgumentParser(
        description='Generate embeddings for every stored feedback record.'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        help='Number of records embedded concurrently per batch'
    )
    args = parser.parse_args()

    # Load configuration
    config = Settings()

    # Configure logging
    configure_logging(config.log_level)

    feedback_store = FeedbackStore(config)
    vector_index = VectorIndex(config)
    indexer = FeedbackIndexer(config, embedder=Embedder(config), vector_index=vector_index)
    pipeline = BackfillPipeline(config, feedback_store=feedback_store, indexer=indexer)

    try:
        vector_index.initialize_schema()
        stats = pipeline.run(batch_size=args.batch_size)
    finally:
        feedback_store.close()
        vector_index.close()

    # Print results
    print("\n" + "="*50)
    print("BACKFILL PIPELINE RESULTS")
    print("="*50)
    print(f"Total records: {stats.total}")
    print(f"Embeddings created: {stats.processed}")
    print(f"Errors: {stats.errors}")
    print("="*50)


if __name__ == "__main__":
    main()
