"""
Tests — ordering engine (pure order arithmetic, no database).

Covers:
    - reorder payload / id list / position parsing
    - compute_reorder (verbatim positions, unknown ids)
    - dense reindex after removal
    - append position
    - strict contiguity check
"""

import pytest

from stepwise.core.exceptions import NotFoundError, ValidationError
from stepwise.services import ordering_engine as engine
from stepwise.services.ordering_engine import ReorderItem, SiblingOrder


def _siblings(*pairs):
    return [SiblingOrder(id=i, order=o) for i, o in pairs]


class TestParseReorderPayload:
    def test_valid_payload(self):
        items = engine.parse_reorder_payload([{"id": 3, "order": 1}, {"id": 1, "order": 2}])
        assert items == [ReorderItem(id=3, new_order=1), ReorderItem(id=1, new_order=2)]

    @pytest.mark.parametrize("raw", [None, [], {}, "1,2", 5])
    def test_non_list_or_empty_rejected(self, raw):
        with pytest.raises(ValidationError):
            engine.parse_reorder_payload(raw, field="steps")

    def test_error_message_names_field(self):
        with pytest.raises(ValidationError) as exc:
            engine.parse_reorder_payload([], field="testCases")
        assert "testCases" in str(exc.value)
        assert "testCases" in exc.value.details

    def test_entry_must_be_object(self):
        with pytest.raises(ValidationError):
            engine.parse_reorder_payload([[1, 2]])

    @pytest.mark.parametrize("entry", [
        {"order": 1},
        {"id": "7", "order": 1},
        {"id": True, "order": 1},
        {"id": 7},
        {"id": 7, "order": -1},
        {"id": 7, "order": 1.5},
        {"id": 7, "order": False},
    ])
    def test_bad_id_or_order_rejected(self, entry):
        with pytest.raises(ValidationError):
            engine.parse_reorder_payload([entry])

    def test_zero_order_allowed(self):
        items = engine.parse_reorder_payload([{"id": 7, "order": 0}])
        assert items[0].new_order == 0

    def test_duplicate_id_rejected(self):
        with pytest.raises(ValidationError) as exc:
            engine.parse_reorder_payload([{"id": 1, "order": 1}, {"id": 1, "order": 2}])
        assert "more than once" in str(exc.value)


class TestParseIds:
    def test_id_list_deduplicates_in_order(self):
        assert engine.parse_id_list([4, 2, 4, 9, 2]) == [4, 2, 9]

    @pytest.mark.parametrize("raw", [None, [], "1", {"ids": [1]}])
    def test_id_list_empty_or_wrong_type(self, raw):
        with pytest.raises(ValidationError):
            engine.parse_id_list(raw, field="stepIds")

    def test_id_list_non_integer_members(self):
        with pytest.raises(ValidationError) as exc:
            engine.parse_id_list([1, "2", None])
        assert "ids" in exc.value.details

    def test_single_id(self):
        assert engine.parse_id(12) == 12
        with pytest.raises(ValidationError):
            engine.parse_id("12", field="sourceStepId")
        with pytest.raises(ValidationError):
            engine.parse_id(None)

    def test_position(self):
        assert engine.parse_position(0) == 0
        assert engine.parse_position(8) == 8
        for bad in (-1, "3", None, 2.0):
            with pytest.raises(ValidationError):
                engine.parse_position(bad)


class TestComputeReorder:
    def test_positions_taken_verbatim(self):
        current = _siblings((1, 1), (2, 2), (3, 3))
        result = engine.compute_reorder(
            current, [ReorderItem(3, 1), ReorderItem(1, 2), ReorderItem(2, 3)],
        )
        assert result == _siblings((3, 1), (1, 2), (2, 3))

    def test_gaps_and_collisions_pass_through(self):
        current = _siblings((1, 1), (2, 2))
        result = engine.compute_reorder(current, [ReorderItem(1, 10), ReorderItem(2, 10)])
        assert [s.order for s in result] == [10, 10]

    def test_partial_request_only_returns_requested(self):
        current = _siblings((1, 1), (2, 2), (3, 3))
        result = engine.compute_reorder(current, [ReorderItem(2, 5)])
        assert result == _siblings((2, 5))

    def test_unknown_id_raises_not_found(self):
        current = _siblings((1, 1), (2, 2))
        with pytest.raises(NotFoundError) as exc:
            engine.compute_reorder(current, [ReorderItem(1, 2), ReorderItem(99, 1)], resource="TestStep")
        assert exc.value.resource == "TestStep"
        assert exc.value.resource_id == 99

    def test_same_input_same_output(self):
        current = _siblings((1, 1), (2, 2))
        request = [ReorderItem(2, 1), ReorderItem(1, 2)]
        assert engine.compute_reorder(current, request) == engine.compute_reorder(current, request)


class TestReindexAndAppend:
    def test_reindex_is_dense_from_one(self):
        result = engine.compute_reindex_after_removal([40, 7, 13])
        assert result == _siblings((40, 1), (7, 2), (13, 3))

    def test_reindex_custom_base(self):
        assert [s.order for s in engine.compute_reindex_after_removal([1, 2], base=0)] == [0, 1]

    def test_reindex_empty(self):
        assert engine.compute_reindex_after_removal([]) == []

    def test_append_to_empty_set(self):
        assert engine.compute_append_order(None) == 1

    def test_append_after_max(self):
        assert engine.compute_append_order(5) == 6


class TestValidateStrictOrder:
    def test_contiguous_passes(self):
        engine.validate_strict_order(_siblings((9, 2), (4, 1), (5, 3)))

    def test_gap_rejected(self):
        with pytest.raises(ValidationError) as exc:
            engine.validate_strict_order(_siblings((1, 1), (2, 3)))
        assert exc.value.details["orders"] == [1, 3]
        assert exc.value.details["duplicates"] == []

    def test_duplicate_rejected(self):
        with pytest.raises(ValidationError) as exc:
            engine.validate_strict_order(_siblings((1, 1), (2, 1), (3, 2)))
        assert exc.value.details["duplicates"] == [1]

    def test_must_start_at_base(self):
        with pytest.raises(ValidationError):
            engine.validate_strict_order(_siblings((1, 0), (2, 1)))
