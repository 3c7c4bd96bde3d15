"""
Mock test document schema.

The model emits one JSON object per mock:

    {
      "continuation_needed": false,
      "examTitle": "...",
      "examDetails": {"totalQuestions": 10, "timeAllotted": "...", "maxMarks": 50},
      "instructions": {"title": "...", "points": ["..."]},
      "sections": [
        {"sectionTitle": "...",
         "questionSets": [
           {"type": "group | single",
            "directions": {"title": "...", "text": "..."},
            "questions": [
              {"questionNumber": "1", "questionText": "...", "svg": null,
               "options": [{"label": "A", "text": "...", "svg": null}],
               "solution": {"answer": "A", "steps": ["..."], "svg": null}}]}]}]
    }

Every field is optional because partial (truncated) responses are normal.
Unknown keys are kept so the SVG and native-chart variants round-trip.
Only the structure that completeness and merging read (sections, sets,
questions, options, solution.answer, totalQuestions) is validated strictly;
descriptive fields accept whatever shape the model wrote.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONTINUATION_FLAG = "continuation_needed"


class _Node(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _scalar_to_list(value: Any) -> Any:
    """Models sometimes write a list field as one string."""
    if value is None or isinstance(value, list):
        return value
    return [value]


class Option(_Node):
    label: Any = None
    text: Any = None
    svg: Any = None


class Solution(_Node):
    answer: Any = None
    steps: list[Any] | None = None
    explanation: Any = None
    svg: Any = None

    @field_validator("steps", mode="before")
    @classmethod
    def steps_as_list(cls, value: Any) -> Any:
        return _scalar_to_list(value)


class Question(_Node):
    question_number: Any = Field(default=None, alias="questionNumber")
    question_text: Any = Field(default=None, alias="questionText")
    svg: Any = None
    options: list[Option | str] | None = None
    solution: Solution | None = None

    @property
    def key(self) -> str:
        """Identity used for de-duplication across continuation rounds."""
        if self.question_number is not None and str(self.question_number).strip():
            return f"n:{str(self.question_number).strip()}"
        return f"t:{self.question_text or ''}"

    def is_truncated(self) -> bool:
        """True when the question looks cut off mid-generation."""
        return (
            self.solution is None
            or not self.solution.answer
            or not self.options
        )


class Directions(_Node):
    title: Any = None
    text: Any = None


class QuestionSet(_Node):
    type: Any = None
    directions: Directions | Any = Field(default=None, union_mode="left_to_right")
    questions: list[Question] = Field(default_factory=list)

    @field_validator("questions", mode="before")
    @classmethod
    def questions_default(cls, value: Any) -> Any:
        return _none_to_list(value)


class Section(_Node):
    section_title: Any = Field(default=None, alias="sectionTitle")
    question_sets: list[QuestionSet] = Field(default_factory=list, alias="questionSets")

    @field_validator("question_sets", mode="before")
    @classmethod
    def question_sets_default(cls, value: Any) -> Any:
        return _none_to_list(value)


class ExamDetails(_Node):
    total_questions: Any = Field(default=None, alias="totalQuestions")
    time_allotted: Any = Field(default=None, alias="timeAllotted")
    max_marks: Any = Field(default=None, alias="maxMarks")


class Instructions(_Node):
    title: Any = None
    points: list[Any] | None = None

    @field_validator("points", mode="before")
    @classmethod
    def points_as_list(cls, value: Any) -> Any:
        return _scalar_to_list(value)


class MockDocument(_Node):
    """A (possibly partial) generated mock test."""

    continuation_needed: bool | None = None
    exam_title: Any = Field(default=None, alias="examTitle")
    exam_details: ExamDetails | None = Field(default=None, alias="examDetails")
    instructions: Instructions | Any = Field(default=None, union_mode="left_to_right")
    sections: list[Section] = Field(default_factory=list)

    @field_validator("sections", mode="before")
    @classmethod
    def sections_default(cls, value: Any) -> Any:
        return _none_to_list(value)

    # ========================================
    # Derived values
    # ========================================

    @property
    def expected_total(self) -> int | None:
        """Declared question count, or None when missing, zero or non-numeric."""
        if self.exam_details is None:
            return None
        return coerce_total(self.exam_details.total_questions)

    def iter_questions(self):
        for section in self.sections:
            for question_set in section.question_sets:
                yield from question_set.questions

    def item_count(self) -> int:
        return sum(len(qs.questions) for s in self.sections for qs in s.question_sets)

    def keys(self) -> set[str]:
        return {q.key for q in self.iter_questions()}

    def last_question(self) -> Question | None:
        for section in reversed(self.sections):
            for question_set in reversed(section.question_sets):
                if question_set.questions:
                    return question_set.questions[-1]
        return None

    # ========================================
    # Serialization
    # ========================================

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict using the wire (camelCase) field names."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")

    def without_continuation_flag(self) -> MockDocument:
        """Deep copy with `continuation_needed` removed entirely."""
        data = self.to_dict()
        data.pop(CONTINUATION_FLAG, None)
        return MockDocument.model_validate(data)


def coerce_total(value: Any) -> int | None:
    """
    Interpret a declared total.

    Positive ints, integral floats and digit strings count; everything else
    (zero, negatives, booleans, junk) means "unknown".
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        total = int(value.strip())
        return total if total > 0 else None
    return None
