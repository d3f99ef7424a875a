"""Tests for schema-agnostic JSON tree search."""

from streamgate.services.tree_search import collect, find_first, text_of, walk


TREE = {
    "a": {"marker": {"id": 1, "marker": {"id": 99}}},
    "b": [
        {"x": [{"marker": {"id": 2}}]},
        "scalar",
        [[{"marker": {"id": 3}}]],
    ],
    "token": {"value": "T"},
}


def test_collect_document_order():
    found = collect(TREE, ["marker"])
    assert [m["id"] for m in found["marker"]] == [1, 2, 3]


def test_collect_several_keys():
    found = collect(TREE, ["marker", "token"])
    assert found["token"] == [{"value": "T"}]
    assert len(found["marker"]) == 3


def test_collect_missing_key():
    assert collect(TREE, ["nothing"]) == {"nothing": []}


def test_collect_handles_scalars():
    assert collect("text", ["marker"]) == {"marker": []}
    assert collect(None, ["marker"]) == {"marker": []}


def test_walk_visits_every_key():
    keys = []
    walk(TREE, lambda key, value: keys.append(key))
    assert keys.count("marker") == 4
    assert keys.count("id") == 4


def test_find_first():
    assert find_first(TREE, "marker")["id"] == 1
    assert find_first(TREE, "absent") is None


def test_text_of():
    assert text_of({"runs": [{"text": "Hello "}, {"text": "world"}]}) == "Hello world"
    assert text_of({"simpleText": "Plain"}) == "Plain"
    assert text_of({"content": "Body"}) == "Body"
    assert text_of("raw") == "raw"
    assert text_of(None) == ""
    assert text_of({"runs": []}) == ""
