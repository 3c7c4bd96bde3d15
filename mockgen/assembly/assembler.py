"""
Response Assembler.

Turns raw (possibly truncated) model output into one complete mock document.

Pipeline per response:
1. parse()    - strip fences, json.loads, bracket repair on failure, validate schema
2. classify() - complete, or incomplete for one of four reasons
3. merge()    - fold the response into the accumulated document by question key
4. run()      - repeat via the caller's generate_fn until complete or out of rounds

The caller's generate_fn decides *what* to ask for next (it can read
`assembler.accumulated` and `assembler.rounds`); this class only decides
*whether* to continue and *how* to merge.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from loguru import logger
from pydantic import ValidationError

from mockgen.assembly.document import MockDocument, Question
from mockgen.assembly.repair import balance_brackets, strip_code_fences
from mockgen.errors import AssemblyFailure, ParseFailure

DEFAULT_MAX_ROUNDS = 15


class IncompleteReason(IntEnum):
    """Why a document needs another round. Checked in this order."""

    CONTINUATION_FLAG = 1     # model set "continuation_needed": true
    ITEM_COUNT_SHORT = 2      # fewer questions than examDetails.totalQuestions
    TRUNCATED_LAST_ITEM = 3   # last question lacks solution/answer/options
    EMPTY_DOCUMENT = 4        # no questions at all


@dataclass(frozen=True)
class Completeness:
    complete: bool
    reason: IncompleteReason | None
    items_present: int
    expected_total: int | None

    @property
    def progress(self) -> str:
        expected = self.expected_total if self.expected_total is not None else "?"
        return f"{self.items_present}/{expected}"


def count_items(doc: MockDocument | None) -> int:
    return doc.item_count() if doc is not None else 0


def last_item_key(doc: MockDocument | None) -> Any:
    """questionNumber of the last question, or None."""
    if doc is None:
        return None
    last = doc.last_question()
    return last.question_number if last is not None else None


class ResponseAssembler:
    """
    Assembles one mock document from one or more model responses.

    Create one assembler per job; `accumulated` and `rounds` are per-run
    state that the job's generate_fn may read.
    """

    def __init__(self, label: str = "mock") -> None:
        self.label = label
        self.accumulated: MockDocument | None = None
        self.rounds = 0

    # ========================================
    # Parsing
    # ========================================

    def parse(self, raw_text: str | None) -> MockDocument:
        """
        Parse raw model output into a MockDocument.

        Raises:
            ParseFailure: If the text is not (repairable) JSON or does not
                fit the document schema.
        """
        raw_text = raw_text or ""
        text = strip_code_fences(raw_text)
        if not text:
            raise ParseFailure("empty response", raw_text)

        # Drop any prose the model put before the JSON object
        if not text.startswith(("{", "[")) and "{" in text:
            text = text[text.index("{"):]

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug(f"Standard JSON parse failed for {self.label}: {e}")
            repaired = balance_brackets(text)
            try:
                data = json.loads(repaired)
            except json.JSONDecodeError as repair_error:
                logger.error(
                    f"JSON parse FAILED for {self.label} even after repair. "
                    f"Original error: {e}. Repair error: {repair_error}. "
                    f"JSON preview: {text[:300]}..."
                )
                raise ParseFailure(e, text, repair_attempted=True) from e
            logger.info(f"Bracket repair salvaged response for {self.label} (original error: {e})")

        return self._validate(data, text)

    def _validate(self, data: Any, text: str) -> MockDocument:
        if not isinstance(data, dict):
            raise ParseFailure(
                f"top-level JSON value is {type(data).__name__}, expected an object", text
            )
        try:
            return MockDocument.model_validate(data)
        except ValidationError as e:
            raise ParseFailure(e, text) from e

    # ========================================
    # Completeness
    # ========================================

    def classify(self, doc: MockDocument) -> Completeness:
        """Decide whether a document is finished."""
        present = doc.item_count()
        expected = doc.expected_total

        def incomplete(reason: IncompleteReason) -> Completeness:
            return Completeness(False, reason, present, expected)

        if doc.continuation_needed is True:
            return incomplete(IncompleteReason.CONTINUATION_FLAG)

        if expected is not None and present < expected:
            return incomplete(IncompleteReason.ITEM_COUNT_SHORT)

        if self._truncated_tails(doc):
            return incomplete(IncompleteReason.TRUNCATED_LAST_ITEM)

        if present == 0:
            return incomplete(IncompleteReason.EMPTY_DOCUMENT)

        return Completeness(True, None, present, expected)

    @staticmethod
    def _truncated_tails(doc: MockDocument) -> list[Question]:
        """Last question of each section's last set, where it looks cut off."""
        truncated = []
        for section in doc.sections:
            if not section.question_sets:
                continue
            questions = section.question_sets[-1].questions
            if questions and questions[-1].is_truncated():
                truncated.append(questions[-1])
        return truncated

    def drop_truncated_tail(self, doc: MockDocument) -> MockDocument:
        """Copy of `doc` without the half-written questions classify() flagged."""
        pruned = doc.model_copy(deep=True)
        for section in pruned.sections:
            if not section.question_sets:
                continue
            last_set = section.question_sets[-1]
            if last_set.questions and last_set.questions[-1].is_truncated():
                last_set.questions = last_set.questions[:-1]
        return pruned

    # ========================================
    # Merging
    # ========================================

    def merge(self, base: MockDocument | None, incoming: MockDocument) -> MockDocument:
        """
        Union two documents by question key. Neither input is modified.

        Questions already present in `base` are never duplicated or
        overwritten. A known expected total in `base` wins over `incoming`.
        """
        if base is None:
            return incoming.without_continuation_flag()

        merged = base.without_continuation_flag()
        addition = incoming.without_continuation_flag()
        seen = merged.keys()

        sections = list(merged.sections)
        sections_changed = False

        for s_idx, new_section in enumerate(addition.sections):
            if s_idx < len(sections):
                if self._merge_section(sections[s_idx], new_section, seen):
                    sections_changed = True
                continue

            kept_sets = []
            for new_set in new_section.question_sets:
                fresh = _take_new(new_set.questions, seen)
                if fresh:
                    new_set.questions = fresh
                    kept_sets.append(new_set)
            if kept_sets:
                new_section.question_sets = kept_sets
                sections.append(new_section)
                sections_changed = True

        if sections_changed:
            merged.sections = sections

        self._merge_metadata(merged, addition)
        return merged

    @staticmethod
    def _merge_section(existing, new_section, seen: set[str]) -> bool:
        sets = list(existing.question_sets)
        changed = False

        for q_idx, new_set in enumerate(new_section.question_sets):
            fresh = _take_new(new_set.questions, seen)
            if not fresh:
                continue
            if q_idx < len(sets):
                sets[q_idx].questions = sets[q_idx].questions + fresh
            else:
                new_set.questions = fresh
                sets.append(new_set)
            changed = True

        if changed:
            existing.question_sets = sets
        return changed

    @staticmethod
    def _merge_metadata(merged: MockDocument, addition: MockDocument) -> None:
        if merged.exam_title is None and addition.exam_title is not None:
            merged.exam_title = addition.exam_title
        if merged.instructions is None and addition.instructions is not None:
            merged.instructions = addition.instructions

        # First known total wins
        if merged.exam_details is None:
            if addition.exam_details is not None:
                merged.exam_details = addition.exam_details
        elif merged.expected_total is None and addition.expected_total is not None:
            merged.exam_details.total_questions = addition.exam_details.total_questions

        for key, value in (addition.model_extra or {}).items():
            if key not in (merged.model_extra or {}):
                setattr(merged, key, value)

    # ========================================
    # Continuation loop
    # ========================================

    def run(
        self,
        generate_fn: Callable[[], str],
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> MockDocument:
        """
        Call generate_fn until the document is complete.

        generate_fn is called at most max_rounds + 1 times.

        Raises:
            ParseFailure: If the very first usable response cannot be parsed
                (there is nothing to continue from).
            AssemblyFailure: If max_rounds continuations were spent and the
                document is still incomplete. Carries the partial document.
        """
        if max_rounds < 0:
            raise ValueError("max_rounds must be >= 0")

        self.accumulated = None
        self.rounds = 0
        last_reason: Any = None

        while True:
            raw = generate_fn()

            try:
                doc = self.parse(raw)
            except ParseFailure as failure:
                if self.accumulated is None:
                    raise
                last_reason = failure
                logger.warning(f"Unparseable continuation for {self.label}: {failure}")
                self._next_round(max_rounds, last_reason, failure)
                continue

            status = self.classify(doc)
            if status.complete:
                self.accumulated = self.merge(self.accumulated, doc)
                return self.accumulated

            last_reason = status.reason
            logger.info(f"Detected incomplete JSON for {self.label} ({status.reason.name.lower()})")

            if status.reason is IncompleteReason.TRUNCATED_LAST_ITEM:
                doc = self.drop_truncated_tail(doc)
            self.accumulated = self.merge(self.accumulated, doc)

            progress = self.classify(self.accumulated)
            if status.reason in (IncompleteReason.ITEM_COUNT_SHORT, IncompleteReason.EMPTY_DOCUMENT):
                # A continuation may carry only the missing questions
                if progress.complete:
                    return self.accumulated

            logger.info(f"Progress for {self.label}: {progress.progress} questions")
            self._next_round(max_rounds, last_reason)

    def _next_round(self, max_rounds: int, reason: Any, cause: Exception | None = None) -> None:
        if self.rounds >= max_rounds:
            failure = AssemblyFailure(
                self.accumulated,
                items_present=count_items(self.accumulated),
                expected_total=self.accumulated.expected_total if self.accumulated else None,
                rounds=self.rounds,
                reason=reason,
            )
            if cause is not None:
                raise failure from cause
            raise failure
        self.rounds += 1


def _take_new(questions: list[Question], seen: set[str]) -> list[Question]:
    """Questions whose key is not in `seen`; records the new keys."""
    fresh = []
    for question in questions:
        if question.key in seen:
            continue
        seen.add(question.key)
        fresh.append(question)
    return fresh
