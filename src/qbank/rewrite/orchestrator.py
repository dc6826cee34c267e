"""Checkpointed, concurrency-bounded rewrite coordinator.

Rewrites every question not yet recorded in the checkpoint:
1. Select unfinished records (optionally a uniform random sample)
2. Partition them into fixed-size batches, preserving input order
3. Dispatch one backend call per record under a run-wide semaphore and
   aiolimiter rate limit; rate-limited calls back off and retry
4. Merge each batch's successes into the corpus and flush the checkpoint
5. Emit the merged corpus (optionally only rewritten records)

A record's failure is logged and leaves it unmarked, so it is retried by
the next invocation. Nothing raises past a batch boundary.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Protocol

from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from qbank.config import PipelinePaths, RewriteConfig
from qbank.corpus import load_corpus, resolve_latest_corpus, save_corpus
from qbank.models import CanonicalRecord, Corpus
from qbank.rewrite.checkpoint import CheckpointState, CheckpointStore
from qbank.rewrite.client import RateLimitException
from qbank.rewrite.parser import parse_rewrite_response
from qbank.rewrite.prompts import PROMPT_VERSION, SYSTEM_PROMPT, build_user_prompt
from qbank.rewrite.schemas import RewriteResult

if TYPE_CHECKING:
    from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

# Rewritten/original character-length ratio outside this band is flagged
MIN_LENGTH_RATIO = 0.5
MAX_LENGTH_RATIO = 2.0


class RewriteBackend(Protocol):
    """Anything that can turn a prompt pair into response text."""

    async def rewrite(
        self,
        user_prompt: str,
        system_prompt: str,
        max_tokens: int = ...,
        temperature: float = ...,
    ) -> tuple[str, int]: ...


@dataclass
class RewriteSummary:
    """Counts describing one coordinator run."""

    total_records: int = 0
    pending: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    ratio_warnings: int = 0
    batches: int = 0
    total_tokens: int = 0
    remaining: int = 0
    elapsed_seconds: float = 0.0
    failed_ids: list[str] = field(default_factory=list)


@dataclass
class RewriteOutcome:
    """Result of :meth:`RewriteCoordinator.run`.

    Attributes:
        corpus: The corpus to emit (filtered when only rewritten records
            are exported), with run metadata attached.
        checkpoint: Checkpoint state after the run.
        results: Successful rewrites from this run, keyed by record id.
        summary: Run counters.
    """

    corpus: Corpus
    checkpoint: CheckpointState
    results: dict[str, RewriteResult]
    summary: RewriteSummary


def length_ratio(rewritten: str, original: str) -> float | None:
    """Character-length ratio of rewritten to original, None if original is empty."""
    if not original:
        return None
    return len(rewritten) / len(original)


def _ratio_out_of_band(ratio: float | None) -> bool:
    return ratio is not None and not (MIN_LENGTH_RATIO <= ratio <= MAX_LENGTH_RATIO)


def select_pending(
    records: list[CanonicalRecord],
    checkpoint: CheckpointState,
    limit: int | None = None,
    rng: random.Random | None = None,
) -> list[CanonicalRecord]:
    """Return unfinished records, optionally capped by a uniform random sample.

    The sample is drawn by shuffling then truncating, and is returned in
    the records' original relative order.
    """
    pending = [
        (index, record)
        for index, record in enumerate(records)
        if not checkpoint.is_processed(record.original_id)
    ]
    if limit is not None and len(pending) > limit:
        rng = rng or random.Random()
        rng.shuffle(pending)
        pending = sorted(pending[:limit], key=lambda pair: pair[0])
    return [record for _, record in pending]


def partition(
    records: list[CanonicalRecord], batch_size: int
) -> list[list[CanonicalRecord]]:
    """Split *records* into consecutive batches of at most *batch_size*."""
    return [records[i : i + batch_size] for i in range(0, len(records), batch_size)]


def merge_result(record: CanonicalRecord, result: RewriteResult) -> None:
    """Apply a rewrite to *record* in place.

    The ``*_original`` fields are only (re)set while they are empty or
    still equal to the live text, so a second rewriting pass never
    replaces the true original.
    """
    if not record.question_text_original or (
        record.question_text_original == record.question_text
    ):
        record.question_text_original = record.question_text
    if not record.explanation_original or (
        record.explanation_original == record.explanation
    ):
        record.explanation_original = record.explanation

    record.question_text = result.question
    record.explanation = result.explanation


class RewriteCoordinator:
    """Runs the rewrite stage over a corpus with checkpointed batches.

    Args:
        client: Rewriting backend (e.g. :class:`MistralRewriteClient`).
        store: Checkpoint store flushed after every batch.
        config: Batch size, concurrency, rate limit and retry settings.
        rng: Random source for run-size sampling.
        retry_wait: Tenacity wait strategy between rate-limited attempts.
        snapshot: Called with the merged corpus after each batch, before
            the checkpoint flush, so flushed ids always have their
            rewrite on disk.
    """

    def __init__(
        self,
        client: RewriteBackend,
        store: CheckpointStore,
        config: RewriteConfig | None = None,
        rng: random.Random | None = None,
        retry_wait: "wait_base | None" = None,
        snapshot: Callable[[Corpus], None] | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._config = config or RewriteConfig()
        self._rng = rng or random.Random()
        self._retry_wait = retry_wait or wait_exponential_jitter(initial=1, max=30)
        self._snapshot = snapshot
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent)
        self._rate_limiter = AsyncLimiter(self._config.rate_limit_rpm, 60)

    async def run(self, corpus: Corpus, checkpoint: CheckpointState) -> RewriteOutcome:
        """Attempt every unfinished record once and return the updated state.

        Args:
            corpus: Canonical or previously rewritten corpus. Records are
                updated in place.
            checkpoint: Completed-id state from the store.

        Returns:
            RewriteOutcome with the emitted corpus, the updated
            checkpoint, this run's results and a summary.
        """
        start_time = time.monotonic()
        summary = RewriteSummary(total_records=len(corpus.records))

        pending_total = sum(
            1 for r in corpus.records if not checkpoint.is_processed(r.original_id)
        )
        logger.info(
            "Progress: %d/%d already rewritten, %d remaining",
            len(corpus.records) - pending_total,
            len(corpus.records),
            pending_total,
        )

        to_process = select_pending(
            corpus.records, checkpoint, self._config.limit, self._rng
        )
        if len(to_process) < pending_total:
            logger.info(
                "Run capped at %d: sampled %d of %d remaining questions",
                self._config.limit,
                len(to_process),
                pending_total,
            )
        summary.pending = len(to_process)

        batches = partition(to_process, self._config.batch_size)
        summary.batches = len(batches)
        results: dict[str, RewriteResult] = {}
        by_id = {r.original_id: r for r in corpus.records}

        if batches:
            logger.info(
                "Created %d batches of up to %d questions (concurrency %d)",
                len(batches),
                self._config.batch_size,
                self._config.max_concurrent,
            )

        for batch_index, batch in enumerate(batches, start=1):
            logger.info("Processing batch %d/%d...", batch_index, len(batches))
            outcomes = await asyncio.gather(
                *(self._rewrite_one(record, summary) for record in batch)
            )
            summary.attempted += len(batch)

            for record, result in zip(batch, outcomes):
                if result is None:
                    summary.failed += 1
                    summary.failed_ids.append(record.original_id)
                    continue
                results[record.original_id] = result
                merge_result(by_id[record.original_id], result)
                checkpoint.mark_processed(record.original_id)
                summary.succeeded += 1

            if self._snapshot is not None:
                self._snapshot(corpus)
            checkpoint.last_batch_index = batch_index
            self._store.persist(checkpoint)
            logger.info(
                "Batch %d/%d done: %d/%d rewritten so far this run",
                batch_index,
                len(batches),
                summary.succeeded,
                summary.pending,
            )

        summary.remaining = sum(
            1 for r in corpus.records if not checkpoint.is_processed(r.original_id)
        )
        summary.elapsed_seconds = round(time.monotonic() - start_time, 2)

        emitted = self._build_output(corpus, checkpoint, len(results))
        logger.info(
            "Rewrite run complete: %d succeeded, %d failed, %d remaining (%.1fs)",
            summary.succeeded,
            summary.failed,
            summary.remaining,
            summary.elapsed_seconds,
        )
        return RewriteOutcome(
            corpus=emitted, checkpoint=checkpoint, results=results, summary=summary
        )

    async def _rewrite_one(
        self, record: CanonicalRecord, summary: RewriteSummary
    ) -> RewriteResult | None:
        """Rewrite one record; return None on any failure.

        Rate-limit responses are retried with exponential backoff while
        the semaphore slot is released. Every other error, including an
        unparseable or incomplete response, fails the record immediately.
        """
        record_id = record.original_id
        user_prompt = build_user_prompt(record)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RateLimitException),
                stop=stop_after_attempt(self._config.max_retries + 1),
                wait=self._retry_wait,
                before_sleep=lambda state: logger.warning(
                    "Rate limited on %s, backing off (attempt %d)",
                    record_id,
                    state.attempt_number,
                ),
                reraise=True,
            ):
                with attempt:
                    async with self._semaphore:
                        async with self._rate_limiter:
                            text, tokens = await self._client.rewrite(
                                user_prompt=user_prompt,
                                system_prompt=SYSTEM_PROMPT,
                                max_tokens=self._config.max_tokens,
                                temperature=self._config.temperature,
                            )
            summary.total_tokens += tokens
            content = parse_rewrite_response(text)
        except Exception as e:
            logger.error("Failed to rewrite %s: %s", record_id, e)
            return None

        question_ratio = length_ratio(content.question, record.question_text)
        explanation_ratio = length_ratio(content.explanation, record.explanation)
        if _ratio_out_of_band(question_ratio):
            summary.ratio_warnings += 1
            logger.warning(
                "Question length ratio unusual: %.2f for %s", question_ratio, record_id
            )
        if _ratio_out_of_band(explanation_ratio):
            summary.ratio_warnings += 1
            logger.warning(
                "Explanation length ratio unusual: %.2f for %s",
                explanation_ratio,
                record_id,
            )

        return RewriteResult(
            record_id=record_id,
            question=content.question,
            explanation=content.explanation,
        )

    def _build_output(
        self, corpus: Corpus, checkpoint: CheckpointState, rewritten_count: int
    ) -> Corpus:
        records = corpus.records
        if self._config.only_export_rewritten:
            records = [r for r in records if checkpoint.is_processed(r.original_id)]
            logger.info(
                "Filtering output: keeping only %d rewritten questions", len(records)
            )

        metadata = {
            **corpus.metadata,
            "rephrasedAt": datetime.now(tz=timezone.utc).isoformat(),
            "rephrasedCount": rewritten_count,
            "totalInFile": len(records),
            "promptVersion": PROMPT_VERSION,
        }
        return Corpus(
            records=list(records),
            assets_base_url=corpus.assets_base_url,
            metadata=metadata,
            categories=list(corpus.categories),
        )


async def run_rewrite(
    paths: PipelinePaths,
    client: RewriteBackend,
    config: RewriteConfig | None = None,
    store: CheckpointStore | None = None,
) -> RewriteOutcome:
    """Run the rewrite stage over the most recent corpus artifact on disk.

    Loads the rewritten corpus if one exists (otherwise the canonical
    one), resumes from the checkpoint, and writes the emitted corpus to
    ``paths.rewritten_file``. Nothing is written when no record is
    pending.

    Raises:
        FileNotFoundError: If no corpus file exists.
    """
    config = config or RewriteConfig()
    store = store or CheckpointStore(paths.checkpoint_file)

    input_path = resolve_latest_corpus(paths.cleaned_file, paths.rewritten_file)
    if input_path == paths.rewritten_file:
        logger.info("Found existing output file, resuming from %s", input_path.name)
    else:
        logger.info("Starting fresh from %s", input_path.name)

    corpus = load_corpus(input_path)
    logger.info("Found %d questions", len(corpus.records))
    checkpoint = store.load()

    output_path: Path = paths.rewritten_file
    coordinator = RewriteCoordinator(
        client=client,
        store=store,
        config=config,
        snapshot=lambda snapshot: save_corpus(output_path, snapshot),
    )
    outcome = await coordinator.run(corpus, checkpoint)

    if outcome.summary.pending == 0:
        logger.info("All questions already rewritten")
        return outcome

    save_corpus(output_path, outcome.corpus)
    return outcome
