import sys

import pytest

from app.validation.divergence import MISSING, Difference, diff


def test_identical_nested_values_have_no_divergence():
    value = {"title": "Test", "content": ["a", "b", "c"], "meta": {"n": 1, "ok": True}}
    report = diff(value, {"title": "Test", "content": ["a", "b", "c"], "meta": {"n": 1, "ok": True}})
    assert report.divergence_score == 0
    assert report.differences == ()
    assert report.leaves_compared == 6


def test_four_of_five_scalar_fields_differ():
    report = diff(
        {"a": 1, "b": 2, "c": 3, "d": 4, "e": 5},
        {"a": 9, "b": 8, "c": 7, "d": 6, "e": 5},
    )
    assert report.divergence_score == pytest.approx(0.8)
    assert [d.path for d in report.differences] == ["a", "b", "c", "d"]
    assert report.differences[0] == Difference("a", 1, 9)


def test_deep_single_leaf_change_reports_exact_path():
    primary = {
        "title": "Complex",
        "nested": {"deep": {"value": [1, 2, 3], "map": {"a": True, "b": False}}},
    }
    shadow = {
        "title": "Complex",
        "nested": {"deep": {"value": [1, 2, 3], "map": {"a": False, "b": False}}},
    }
    report = diff(primary, shadow)
    assert len(report.differences) == 1
    assert report.differences[0].path == "nested.deep.map.a"
    assert report.leaves_compared == 6
    assert report.divergence_score == pytest.approx(1 / 6)


def test_list_index_paths_use_brackets():
    report = diff({"sections": ["A", "B"]}, {"sections": ["A", "C"]})
    assert [d.path for d in report.differences] == ["sections[1]"]
    assert report.divergence_score == pytest.approx(0.5)


def test_trailing_elements_count_one_difference_each():
    report = diff([1, 2, 3, 4], [1, 2])
    assert [d.path for d in report.differences] == ["[2]", "[3]"]
    assert all(d.shadow_value is MISSING for d in report.differences)
    assert report.divergence_score == pytest.approx(0.5)

    reverse = diff([1], [1, {"x": 1}])
    assert reverse.differences[0].primary_value is MISSING
    assert reverse.differences[0].shadow_value == {"x": 1}


def test_one_sided_keys_are_leaf_differences():
    report = diff({"a": 1, "b": 2}, {"a": 1, "c": 2})
    paths = {d.path: d for d in report.differences}
    assert set(paths) == {"b", "c"}
    assert paths["b"].shadow_value is MISSING
    assert paths["c"].primary_value is MISSING
    assert report.leaves_compared == 3
    assert report.divergence_score == pytest.approx(2 / 3)


def test_structural_type_mismatch_is_a_single_leaf():
    report = diff({"a": [1, 2]}, {"a": {"x": 1}})
    assert len(report.differences) == 1
    assert report.divergence_score == 1.0


def test_empty_structures_score_zero():
    assert diff({}, {}).divergence_score == 0
    assert diff([], []).leaves_compared == 0
    assert diff(None, None).divergence_score == 0


def test_bool_is_not_equal_to_number():
    assert diff(True, 1).divergence_score == 1.0
    assert diff(1, 1.0).divergence_score == 0


def test_difference_to_dict_marks_missing_side():
    report = diff({"a": 1}, {})
    payload = report.differences[0].to_dict()
    assert payload == {
        "path": "a",
        "primary_value": 1,
        "shadow_value": None,
        "missing": "shadow",
    }


def _nested(depth, leaf):
    value = {"leaf": leaf}
    for _ in range(depth):
        value = {"k": value}
    return value


def test_payload_deeper_than_recursion_limit():
    depth = sys.getrecursionlimit() * 3
    same = diff(_nested(depth, 1), _nested(depth, 1))
    assert same.divergence_score == 0
    assert same.leaves_compared == 1

    changed = diff(_nested(depth, 1), _nested(depth, 2))
    assert changed.divergence_score == 1.0
    assert changed.differences[0].path.endswith("k.leaf")


def test_differences_follow_primary_key_order_depth_first():
    report = diff(
        {"a": {"x": 1, "y": 2}, "b": [1, 2], "c": 3},
        {"a": {"x": 0, "y": 0}, "b": [0], "d": 4},
    )
    assert [d.path for d in report.differences] == ["a.x", "a.y", "b[0]", "b[1]", "c", "d"]
