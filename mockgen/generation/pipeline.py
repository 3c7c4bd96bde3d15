"""
Mock Generation Pipeline.

Runs N independent mock jobs against one shared KeyPool.

Per job:
1. Assign a key (round-robin by job id)
2. ResponseAssembler.run() drives initial + continuation requests
3. Each request: rate-limit delay, then up to max_retries transport attempts;
   quota errors mark the key failed and fail over to the next working key
4. Write the final document as JSON (or the partial one on AssemblyFailure)

Jobs run concurrently (bounded by a semaphore), each in a worker thread.
One job's failure never cancels the others.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from config import Settings, get_settings
from mockgen.assembly import MockDocument, ResponseAssembler
from mockgen.errors import (
    AssemblyFailure,
    GenerationError,
    ParseFailure,
    PoolExhausted,
)
from mockgen.generation.gemini_client import GeminiClient, is_quota_error
from mockgen.generation.prompts import SYSTEM_PROMPT, build_continuation_parts
from mockgen.keys import KeyPool


@dataclass
class MockJob:
    job_id: int
    total: int
    output_path: Path


@dataclass
class MockResult:
    """Outcome of one job. `document` is partial when success is False."""

    job_id: int
    success: bool
    output_path: Path | None = None
    document: MockDocument | None = None
    error: Exception | None = None
    key_index: int | None = None
    continuations: int = 0
    items_present: int = 0
    expected_total: int | None = None

    @property
    def progress(self) -> str:
        expected = self.expected_total if self.expected_total is not None else "?"
        return f"{self.items_present}/{expected}"


@dataclass
class _JobState:
    key_index: int | None = None
    requests: int = 0
    usage: list[dict[str, Any]] = field(default_factory=list)


def output_path_for(base: str | Path, job_id: int, total: int, suffix: str = ".json") -> Path:
    """
    Output file for a job.

    A single mock keeps the base name; several get a zero-padded number
    (`mock_01.json` .. `mock_12.json`).
    """
    base = Path(base)
    stem = base.stem
    if total <= 1:
        return base.with_name(f"{stem}{suffix}")
    width = max(2, len(str(total)))
    return base.with_name(f"{stem}_{job_id:0{width}d}{suffix}")


class MockGenerator:
    """
    Generates mock tests with a shared key pool.

    Usage:
        generator = MockGenerator(pool, GeminiClient(), base_parts, output_base="out/mock")
        results = asyncio.run(generator.generate_all(count=5))
    """

    def __init__(
        self,
        pool: KeyPool,
        client: GeminiClient,
        base_parts: list[dict[str, Any]],
        output_base: str | Path,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pool = pool
        self.client = client
        self.base_parts = base_parts
        self.output_base = Path(output_base)
        self.settings = settings or get_settings()
        self._sleep = sleep
        self.thinking_budget = self.settings.thinking_budget_for(client.model)

    # ========================================
    # Batch
    # ========================================

    async def generate_all(self, count: int) -> list[MockResult]:
        """Run `count` jobs, at most `concurrent_limit` at a time."""
        semaphore = asyncio.Semaphore(self.settings.concurrent_limit)
        jobs = [
            MockJob(job_id=i, total=count, output_path=output_path_for(self.output_base, i, count))
            for i in range(1, count + 1)
        ]

        async def run_job(job: MockJob) -> MockResult:
            async with semaphore:
                return await asyncio.to_thread(self.generate_single, job)

        logger.info(
            f"Generating {count} mock(s) with {self.pool.size} API key(s), "
            f"concurrency={self.settings.concurrent_limit}"
        )
        results = await asyncio.gather(*(run_job(job) for job in jobs), return_exceptions=True)

        collected: list[MockResult] = []
        for job, result in zip(jobs, results):
            if isinstance(result, BaseException):
                logger.error(f"Mock {job.job_id} crashed: {result}")
                collected.append(MockResult(job_id=job.job_id, success=False, error=result))
            else:
                collected.append(result)
        return collected

    # ========================================
    # Single job
    # ========================================

    def generate_single(self, job: MockJob) -> MockResult:
        """Generate one mock end to end. Never raises for per-job failures."""
        label = f"Mock {job.job_id}/{job.total}"

        try:
            key = self.pool.assign(job.job_id)
        except PoolExhausted as e:
            logger.error(f"Could not assign API key to mock {job.job_id}: {e}")
            return MockResult(job_id=job.job_id, success=False, error=e)
        logger.info(f"{label} assigned to {key.label}")

        state = _JobState(key_index=key.index)
        last_error: Exception | None = None
        max_attempts = self.settings.max_retries

        for attempt in range(1, max_attempts + 1):
            assembler = ResponseAssembler(label=label)
            generate_fn = self._make_generate_fn(job, assembler, state)

            try:
                document = assembler.run(generate_fn, max_rounds=self.settings.max_continuations)
            except ParseFailure as e:
                last_error = e
                logger.warning(f"{label} - unusable response on attempt {attempt}/{max_attempts}: {e}")
                if attempt < max_attempts:
                    self._backoff(attempt)
                continue
            except AssemblyFailure as e:
                return self._partial_result(job, e, state)
            except (PoolExhausted, GenerationError) as e:
                if assembler.accumulated is not None:
                    return self._partial_result(
                        job, e, state,
                        document=assembler.accumulated,
                        continuations=assembler.rounds,
                    )
                logger.error(f"{label} failed: {e}")
                return MockResult(job_id=job.job_id, success=False, error=e, key_index=state.key_index)

            return self._success_result(job, document, assembler.rounds, state)

        logger.error(f"{label} failed after {max_attempts} attempts")
        return MockResult(job_id=job.job_id, success=False, error=last_error, key_index=state.key_index)

    def _make_generate_fn(
        self,
        job: MockJob,
        assembler: ResponseAssembler,
        state: _JobState,
    ) -> Callable[[], str]:
        def generate() -> str:
            if assembler.accumulated is not None and assembler.rounds > 0:
                logger.info(
                    f"Mock {job.job_id}/{job.total} - Continuation "
                    f"{assembler.rounds}/{self.settings.max_continuations}"
                )
                parts = build_continuation_parts(self.base_parts, assembler.accumulated, assembler.rounds)
            else:
                parts = self.base_parts
            return self.request(job.job_id, parts, state)

        return generate

    # ========================================
    # Transport
    # ========================================

    def request(self, job_id: int, parts: list[dict[str, Any]], state: _JobState | None = None) -> str:
        """
        One logical request with key failover and transport retries.

        Quota failovers do not use up attempts: each one removes a key from
        the pool, so they are bounded by the pool size.

        Raises:
            PoolExhausted: If every key has hit its quota.
            GenerationError: If max_retries attempts failed for other reasons.
        """
        state = state or _JobState()
        attempt = 0

        while True:
            key = self.pool.get_assignment(job_id)
            self._rate_limit_delay()

            try:
                response = self.client.generate(
                    key.credential,
                    parts,
                    system_prompt=SYSTEM_PROMPT,
                    max_output_tokens=self.settings.max_output_tokens,
                    temperature=self.settings.temperature,
                    thinking_budget=self.thinking_budget,
                )
            except GenerationError as e:
                if is_quota_error(e):
                    self.pool.mark_failed(key.index, e)
                    replacement = self.pool.next_available(excluding=key.index)
                    self.pool.reassign(job_id, replacement.index)
                    state.key_index = replacement.index
                    logger.info(f"Mock {job_id} switched to {replacement.label}")
                    continue

                attempt += 1
                if attempt >= self.settings.max_retries:
                    raise
                logger.warning(f"Mock {job_id} request failed ({key.label}): {e}")
                self._backoff(attempt)
                continue

            state.key_index = key.index
            state.requests += 1
            if response.usage:
                state.usage.append(response.usage)
            if response.truncated:
                logger.info(f"Mock {job_id} response hit the output token limit")
            return response.text

    def _rate_limit_delay(self) -> None:
        delay_ms = self.settings.rate_limit_delay_ms
        if delay_ms > 0:
            self._sleep(max(0.1, delay_ms / 1000 / self.pool.size))

    def _backoff(self, attempt: int) -> None:
        wait = (1.5 ** (attempt - 1)) * 0.5
        logger.info(f"Waiting {wait:.2f}s before retry...")
        self._sleep(wait)

    # ========================================
    # Results
    # ========================================

    def _success_result(
        self,
        job: MockJob,
        document: MockDocument,
        continuations: int,
        state: _JobState,
    ) -> MockResult:
        if state.key_index is not None:
            self.pool.record_success(state.key_index)

        present = document.item_count()
        expected = document.expected_total
        if expected is not None and present < expected * 0.8:
            logger.warning(f"Generated {present} questions but expected {expected}")

        write_document(document, job.output_path)
        info = f" ({continuations} continuations)" if continuations else ""
        logger.success(f"Mock {job.job_id}/{job.total} completed{info}: {job.output_path.name}")

        return MockResult(
            job_id=job.job_id,
            success=True,
            output_path=job.output_path,
            document=document,
            key_index=state.key_index,
            continuations=continuations,
            items_present=present,
            expected_total=expected,
        )

    def _partial_result(
        self,
        job: MockJob,
        failure: Exception,
        state: _JobState,
        document: MockDocument | None = None,
        continuations: int = 0,
    ) -> MockResult:
        """Failed result that keeps whatever was assembled before the failure."""
        if isinstance(failure, AssemblyFailure):
            document = failure.document
            continuations = failure.rounds

        logger.error(f"Mock {job.job_id}/{job.total}: {failure}")
        output_path = None
        if document is not None:
            output_path = job.output_path.with_name(job.output_path.stem + ".partial.json")
            write_document(document, output_path)
            logger.warning(f"Partial mock {job.job_id} saved to {output_path.name}")

        return MockResult(
            job_id=job.job_id,
            success=False,
            output_path=output_path,
            document=document,
            error=failure,
            key_index=state.key_index,
            continuations=continuations,
            items_present=document.item_count() if document is not None else 0,
            expected_total=document.expected_total if document is not None else None,
        )


def write_document(document: MockDocument, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


def summarize(results: list[MockResult]) -> dict[str, Any]:
    succeeded = [r for r in results if r.success]
    return {
        "total": len(results),
        "succeeded": len(succeeded),
        "failed": len(results) - len(succeeded),
        "continuations": sum(r.continuations for r in results),
        "errors": {r.job_id: str(r.error) for r in results if r.error is not None},
    }


__all__ = [
    "MockGenerator",
    "MockJob",
    "MockResult",
    "output_path_for",
    "summarize",
    "write_document",
]
