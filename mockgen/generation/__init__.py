"""Gemini-backed mock test generation.

Pipeline:
1. Source files (PYQ + reference mocks) become inline request parts
2. MockGenerator runs each mock with its own key from the shared pool
3. ResponseAssembler stitches truncated output across continuation rounds
"""
from mockgen.generation.gemini_client import (
    GeminiClient,
    GenerationResponse,
    file_to_part,
    find_source_files,
    is_quota_error,
)
from mockgen.generation.pipeline import (
    MockGenerator,
    MockJob,
    MockResult,
    output_path_for,
    summarize,
)

__all__ = [
    "GeminiClient",
    "GenerationResponse",
    "MockGenerator",
    "MockJob",
    "MockResult",
    "file_to_part",
    "find_source_files",
    "is_quota_error",
    "output_path_for",
    "summarize",
]
