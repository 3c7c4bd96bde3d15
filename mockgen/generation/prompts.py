"""
Prompts for mock test generation.

Contains:
- SYSTEM_PROMPT: role, template-replication rules, JSON schema, continuation protocol
- build_request_parts(): initial request (PYQ files, reference mock, user instructions)
- build_continuation_prompt(): follow-up request that resumes a truncated mock
"""
from __future__ import annotations

import json
from typing import Any

from mockgen.assembly.document import MockDocument

# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = """You are an expert exam setter creating a new mock test that replicates a reference mock test.

CRITICAL RULES:

1. TEMPLATE REPLICATION
   - Use the FIRST reference mock file as the exact template
   - Keep the same sections, question count, question types and option structure
   - Change surface-level details only: numbers, names, objects, specific scenarios

2. PREVIOUS YEAR QUESTIONS (PYQ)
   - Use PYQ material to learn realistic value ranges, scenarios and terminology
   - Modified values must stay mathematically and logically consistent

3. USER INSTRUCTIONS
   - Follow the user's specific requirements
   - If they conflict with the template structure, keep the template structure

4. CONTINUATION HANDLING
   - If you are about to reach your output limit before finishing:
     - Stop at the last COMPLETE question object
     - Close the JSON properly
     - Add "continuation_needed": true at the root level
   - If the next request says CONTINUE, resume from where you stopped

5. OUTPUT FORMAT
   - Output ONE JSON object and nothing else (no markdown, no commentary)
   - Schema:
{
  "continuation_needed": false,
  "examTitle": "String",
  "examDetails": {"totalQuestions": Number, "timeAllotted": "String", "maxMarks": Number},
  "instructions": {"title": "String", "points": ["String"]},
  "sections": [
    {
      "sectionTitle": "String",
      "questionSets": [
        {
          "type": "group | single",
          "directions": {"title": "String", "text": "String"},
          "questions": [
            {
              "questionNumber": "String",
              "questionText": "String",
              "svg": "String | null",
              "options": [{"label": "String", "text": "String", "svg": "String | null"}],
              "solution": {"answer": "String", "steps": ["String"], "svg": "String | null"}
            }
          ]
        }
      ]
    }
  ]
}

6. CONTENT RULES
   - Every question has a solution with a clear answer and short, ordered steps
   - The final step states the correct option
   - questionNumber is unique and follows the template sequence
   - Diagrams are inline SVG strings in the `svg` fields
"""

CONTINUE_INSTRUCTION = (
    "CONTINUE from where you left off. Generate the remaining questions following the "
    "same template structure and output ONLY the complete final JSON object with all "
    "questions included. Ensure the JSON is valid and properly closed."
)


def build_request_parts(
    pyq_parts: list[dict[str, Any]],
    reference_parts: list[dict[str, Any]],
    user_prompt: str,
) -> list[dict[str, Any]]:
    """Assemble the initial request: labelled file blocks, then the user's instructions."""
    parts: list[dict[str, Any]] = [{"text": "=== PREVIOUS YEAR QUESTIONS (PYQ) ==="}]
    parts.extend(pyq_parts)
    parts.append({"text": "=== REFERENCE MOCK TESTS (the FIRST file is the template) ==="})
    parts.extend(reference_parts)
    parts.append({"text": f"=== USER INSTRUCTIONS ===\n{user_prompt.strip()}"})
    return parts


def build_continuation_prompt(accumulated: MockDocument, round_number: int) -> str:
    """Describe the progress so far and ask for the rest of the mock."""
    current = accumulated.item_count()
    expected = accumulated.expected_total
    last = accumulated.last_question()
    last_number = last.question_number if last is not None else None

    remaining = expected - current if expected is not None else "unknown"
    expected_text = expected if expected is not None else "unknown"

    try:
        next_number: Any = int(str(last_number)) + 1
    except (TypeError, ValueError):
        next_number = current + 1

    return f"""CONTINUATION REQUEST #{round_number}

CONTEXT:
- Last completed question: {last_number if last_number is not None else "unknown"}
- Questions generated so far: {current}
- Total questions needed: {expected_text}
- Remaining questions: {remaining}

CRITICAL INSTRUCTIONS:
1. You are continuing the SAME mock test
2. The template is still the FIRST reference mock file
3. Start from question {next_number}
4. Generate ALL remaining questions until you reach {expected_text}
5. Output a COMPLETE JSON object with all previous questions ({current}) and all new ones

DO NOT:
- Start over or create a new test
- Change the question numbering
- Modify the template structure

{CONTINUE_INSTRUCTION}"""


def build_continuation_parts(
    base_parts: list[dict[str, Any]],
    accumulated: MockDocument,
    round_number: int,
) -> list[dict[str, Any]]:
    """Original request plus the partial output and continuation instructions."""
    return [
        *base_parts,
        {"text": "\n\n=== CONTINUATION CONTEXT ===\nPrevious partial output (for reference only):\n"},
        {"text": json.dumps(accumulated.to_dict(), indent=2, ensure_ascii=False)},
        {"text": "\n\n" + build_continuation_prompt(accumulated, round_number)},
    ]
