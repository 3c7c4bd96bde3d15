"""Parsing, completeness checks and continuation merging for model output.

Usage:
    from mockgen.assembly import ResponseAssembler

    assembler = ResponseAssembler(label="mock 1")
    document = assembler.run(generate_fn, max_rounds=15)
"""
from mockgen.assembly.assembler import (
    Completeness,
    IncompleteReason,
    ResponseAssembler,
    count_items,
    last_item_key,
)
from mockgen.assembly.document import MockDocument, Question, coerce_total

__all__ = [
    "Completeness",
    "IncompleteReason",
    "MockDocument",
    "Question",
    "ResponseAssembler",
    "coerce_total",
    "count_items",
    "last_item_key",
]
