from skill_registration.schemas.skill import QueryDefinition
from skill_registration.utils.merge import entry_name, merge_by_name


def test_merge_replaces_in_place_and_appends():
    existing = [{"name": "a", "query": "1"}, {"name": "b", "query": "2"}]
    updates = [{"name": "b", "query": "3"}, {"name": "c", "query": "4"}]

    assert merge_by_name(existing, updates) == [
        {"name": "a", "query": "1"},
        {"name": "b", "query": "3"},
        {"name": "c", "query": "4"},
    ]


def test_merge_is_idempotent():
    existing = [{"name": "a", "query": "1"}]
    updates = [{"name": "a", "query": "2"}, {"name": "b", "query": "3"}]

    once = merge_by_name(existing, updates)
    twice = merge_by_name(once, updates)
    assert once == twice


def test_merge_leaves_inputs_untouched():
    existing = [{"name": "a", "query": "1"}]
    merge_by_name(existing, [{"name": "a", "query": "2"}])
    assert existing == [{"name": "a", "query": "1"}]


def test_later_update_wins_for_repeated_names():
    merged = merge_by_name([], [{"name": "a", "query": "1"}, {"name": "a", "query": "2"}])
    assert merged == [{"name": "a", "query": "2"}]


def test_unnamed_entries_are_appended():
    merged = merge_by_name([{"query": "x"}], [{"query": "x"}])
    assert len(merged) == 2


def test_entry_name_reads_models_and_mappings():
    assert entry_name(QueryDefinition(name="on_push", query="[]")) == "on_push"
    assert entry_name({"name": "on_tag"}) == "on_tag"
    assert entry_name("plain") is None
