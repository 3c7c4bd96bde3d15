"""
Unit tests for completeness classification and continuation merging.
"""

import pytest

from mockgen.assembly import IncompleteReason, MockDocument, ResponseAssembler, coerce_total


@pytest.fixture
def assembler():
    return ResponseAssembler(label="test")


def doc(data):
    return MockDocument.model_validate(data)


class TestCoerceTotal:
    """Tests for reading examDetails.totalQuestions."""

    @pytest.mark.parametrize("value,expected", [
        (10, 10),
        (10.0, 10),
        ("25", 25),
        (" 7 ", 7),
    ])
    def test_known(self, value, expected):
        assert coerce_total(value) == expected

    @pytest.mark.parametrize("value", [0, -3, None, True, "ten", "", 2.5, [], {}])
    def test_unknown(self, value):
        assert coerce_total(value) is None


class TestClassify:
    """Tests for ResponseAssembler.classify()."""

    def test_complete(self, assembler, complete_mock):
        status = assembler.classify(doc(complete_mock))

        assert status.complete is True
        assert status.reason is None
        assert status.items_present == 4

    def test_explicit_flag(self, assembler, mock_factory):
        status = assembler.classify(doc(mock_factory([[[1, 2]]], total=2, continuation=True)))

        assert status.complete is False
        assert status.reason == IncompleteReason.CONTINUATION_FLAG

    def test_flag_checked_first(self, assembler, mock_factory):
        """The flag wins over a short count."""
        status = assembler.classify(doc(mock_factory([[[1]]], total=5, continuation=True)))
        assert status.reason == IncompleteReason.CONTINUATION_FLAG

    def test_flag_false_is_ignored(self, assembler, mock_factory):
        status = assembler.classify(doc(mock_factory([[[1]]], total=1, continuation=False)))
        assert status.complete is True

    def test_short_count(self, assembler, mock_factory):
        """totalQuestions = 10 with 6 questions present is incomplete (reason 2)."""
        data = mock_factory([[[1, 2, 3]], [[4, 5], [6]]], total=10)

        status = assembler.classify(doc(data))

        assert status.complete is False
        assert status.reason == IncompleteReason.ITEM_COUNT_SHORT
        assert int(status.reason) == 2
        assert status.items_present == 6
        assert status.expected_total == 10
        assert status.progress == "6/10"

    @pytest.mark.parametrize("total", [0, None, "many"])
    def test_unknown_total_disables_count_check(self, assembler, mock_factory, total):
        data = mock_factory([[[1, 2]]])
        data["examDetails"]["totalQuestions"] = total

        assert assembler.classify(doc(data)).complete is True

    def test_truncated_last_question_no_solution(self, assembler, mock_factory, question_factory):
        data = mock_factory([[[1, 2]]])
        data["sections"][0]["questionSets"][0]["questions"].append(question_factory(3, answered=False))

        status = assembler.classify(doc(data))

        assert status.reason == IncompleteReason.TRUNCATED_LAST_ITEM

    def test_truncated_last_question_no_options(self, assembler, mock_factory, question_factory):
        data = mock_factory([[[1]]])
        data["sections"][0]["questionSets"][0]["questions"].append(question_factory(2, options=False))

        assert assembler.classify(doc(data)).reason == IncompleteReason.TRUNCATED_LAST_ITEM

    def test_truncated_last_question_empty_answer(self, assembler, mock_factory):
        data = mock_factory([[[1]]])
        data["sections"][0]["questionSets"][0]["questions"][0]["solution"]["answer"] = ""

        assert assembler.classify(doc(data)).reason == IncompleteReason.TRUNCATED_LAST_ITEM

    def test_earlier_section_tail_checked(self, assembler, mock_factory):
        """Each section's final question is inspected, not only the document's last."""
        data = mock_factory([[[1]], [[2]]])
        del data["sections"][0]["questionSets"][0]["questions"][0]["solution"]

        assert assembler.classify(doc(data)).reason == IncompleteReason.TRUNCATED_LAST_ITEM

    def test_middle_question_not_checked(self, assembler, mock_factory):
        data = mock_factory([[[1, 2]]])
        del data["sections"][0]["questionSets"][0]["questions"][0]["solution"]

        assert assembler.classify(doc(data)).complete is True

    def test_empty_document(self, assembler):
        status = assembler.classify(doc({"examTitle": "Empty", "sections": []}))

        assert status.complete is False
        assert status.reason == IncompleteReason.EMPTY_DOCUMENT

    def test_sections_without_questions(self, assembler):
        data = {"sections": [{"sectionTitle": "A", "questionSets": [{"questions": []}]}]}
        assert assembler.classify(doc(data)).reason == IncompleteReason.EMPTY_DOCUMENT


class TestMerge:
    """Tests for ResponseAssembler.merge()."""

    def test_merge_with_none(self, assembler, mock_factory):
        """merge(None, A) is A minus the continuation flag."""
        data = mock_factory([[[1, 2]]], total=4, continuation=True)

        merged = assembler.merge(None, doc(data))

        expected = dict(data)
        del expected["continuation_needed"]
        assert merged.to_dict() == expected
        assert "continuation_needed" not in merged.to_dict()

    def test_does_not_mutate_inputs(self, assembler, mock_factory):
        base = doc(mock_factory([[[1, 2]]], total=4))
        incoming = doc(mock_factory([[[1, 2, 3, 4]]], continuation=True))
        base_before = base.to_dict()
        incoming_before = incoming.to_dict()

        assembler.merge(base, incoming)

        assert base.to_dict() == base_before
        assert incoming.to_dict() == incoming_before

    def test_appends_only_new_questions(self, assembler, mock_factory):
        base = doc(mock_factory([[[1, 2]]], total=4))
        incoming = doc(mock_factory([[[1, 2, 3, 4]]], total=4))

        merged = assembler.merge(base, incoming)

        numbers = [q.question_number for q in merged.iter_questions()]
        assert numbers == ["1", "2", "3", "4"]

    def test_existing_question_not_overwritten(self, assembler, mock_factory):
        base = doc(mock_factory([[[1]]]))
        incoming_data = mock_factory([[[1, 2]]])
        incoming_data["sections"][0]["questionSets"][0]["questions"][0]["questionText"] = "Rewritten"

        merged = assembler.merge(base, doc(incoming_data))

        assert merged.sections[0].question_sets[0].questions[0].question_text == "Question 1?"

    def test_new_sets_and_sections_appended(self, assembler, mock_factory):
        base = doc(mock_factory([[[1, 2]]], total=6))
        incoming = doc(mock_factory([[[1, 2], [3]], [[4, 5, 6]]]))

        merged = assembler.merge(base, incoming)

        assert len(merged.sections) == 2
        assert len(merged.sections[0].question_sets) == 2
        assert merged.item_count() == 6

    def test_duplicate_only_section_skipped(self, assembler, mock_factory):
        """A new section holding only known questions adds nothing."""
        base = doc(mock_factory([[[1, 2]]]))
        incoming = doc(mock_factory([[[1]], [[2]]]))

        merged = assembler.merge(base, incoming)

        assert len(merged.sections) == 1
        assert merged.item_count() == 2

    def test_keys_deduplicated_across_sections(self, assembler, mock_factory):
        """Question 3 already in section 1 is not re-added under section 2."""
        base = doc(mock_factory([[[1, 2, 3]], [[4]]]))
        incoming = doc(mock_factory([[[1]], [[3, 4, 5]]]))

        merged = assembler.merge(base, incoming)

        assert [q.question_number for q in merged.iter_questions()] == ["1", "2", "3", "4", "5"]

    def test_numeric_and_string_keys_match(self, assembler, mock_factory):
        base_data = mock_factory([[[1]]])
        base_data["sections"][0]["questionSets"][0]["questions"][0]["questionNumber"] = 1

        merged = assembler.merge(doc(base_data), doc(mock_factory([[[1, 2]]])))

        assert merged.item_count() == 2

    def test_base_total_wins(self, assembler, mock_factory):
        base = doc(mock_factory([[[1]]], total=10))
        incoming = doc(mock_factory([[[2]]], total=3))

        assert assembler.merge(base, incoming).expected_total == 10

    def test_total_filled_from_incoming(self, assembler, mock_factory):
        base = doc(mock_factory([[[1]]]))
        incoming = doc(mock_factory([[[2]]], total=8))

        assert assembler.merge(base, incoming).expected_total == 8

    def test_malformed_incoming_total_ignored(self, assembler, mock_factory):
        base = doc(mock_factory([[[1]]], total=10))
        incoming_data = mock_factory([[[2]]])
        incoming_data["examDetails"]["totalQuestions"] = "unknown"

        assert assembler.merge(base, doc(incoming_data)).expected_total == 10

    def test_missing_metadata_filled(self, assembler, mock_factory):
        base = doc({"sections": mock_factory([[[1]]])["sections"]})
        incoming = doc(mock_factory([[[2]]], total=2, title="Filled Title"))

        merged = assembler.merge(base, incoming)

        assert merged.exam_title == "Filled Title"
        assert merged.instructions is not None
        assert merged.expected_total == 2

    def test_flag_removed(self, assembler, mock_factory):
        base = doc(mock_factory([[[1]]], continuation=True))
        incoming = doc(mock_factory([[[2]]], continuation=True))

        assert "continuation_needed" not in assembler.merge(base, incoming).to_dict()

    @pytest.mark.parametrize("a_layout,b_layout", [
        ([[[1, 2]]], [[[1, 2, 3]]]),
        ([[[1, 2]]], [[[3]], [[4, 5]]]),
        ([[[1], [2]], [[3]]], [[[1, 4]], [[3, 5], [6]]]),
        ([], [[[1, 2]]]),
        ([[[1, 2]]], []),
    ])
    def test_idempotent(self, assembler, mock_factory, a_layout, b_layout):
        """merge(merge(A, B), B) == merge(A, B)."""
        a = doc(mock_factory(a_layout, total=6))
        b = doc(mock_factory(b_layout, continuation=True))

        once = assembler.merge(a, b)
        twice = assembler.merge(once, b)

        assert twice.to_dict() == once.to_dict()

    @pytest.mark.parametrize("a_layout,b_layout", [
        ([[[1, 2]]], [[[1, 2, 3]]]),
        ([[[1, 2, 3, 4]]], [[[2]]]),
        ([[[1], [2]], [[3]]], [[[1, 4]], [[3, 5], [6]]]),
        ([], [[[1, 2]]]),
    ])
    def test_count_is_union_of_keys(self, assembler, mock_factory, a_layout, b_layout):
        a = doc(mock_factory(a_layout))
        b = doc(mock_factory(b_layout))

        merged = assembler.merge(a, b)

        assert merged.item_count() >= max(a.item_count(), b.item_count())
        assert merged.item_count() == len(a.keys() | b.keys())
