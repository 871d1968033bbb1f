from wms.audit import NOT_SET, deep_equal, diff_fields, make_history_entry, prepend_history, track_changes


FIELDS = ("name", "budget", "timeline", "clearanceChecklist")


def test_identical_inputs_produce_no_changes():
    record = {
        "name": "Survey",
        "budget": 100,
        "timeline": {"start": "2025-01-01", "end": "2025-02-01"},
        "clearanceChecklist": [{"id": "item_1", "text": "Drawings", "completed": False}],
    }
    assert diff_fields(record, dict(record), FIELDS) == []


def test_key_order_does_not_matter():
    old = {"timeline": {"start": "a", "end": "b"}}
    new = {"timeline": {"end": "b", "start": "a"}}
    assert diff_fields(old, new, FIELDS) == []


def test_changes_follow_field_order():
    old = {"name": "A", "budget": 100, "timeline": {"start": "", "end": ""}}
    new = {"name": "B", "budget": 200, "timeline": {"start": "", "end": ""}}

    changes = diff_fields(old, new, ("budget", "timeline", "name"))

    assert [c["field"] for c in changes] == ["budget", "name"]
    assert changes[0] == {"field": "budget", "oldValue": 100, "newValue": 200}


def test_absent_and_none_are_not_set():
    assert diff_fields({"name": None}, {}, ("name",)) == []

    changes = diff_fields({}, {"budget": 5}, ("budget",))
    assert changes == [{"field": "budget", "oldValue": NOT_SET, "newValue": 5}]


def test_only_whitelisted_fields_are_compared():
    assert diff_fields({"status": "pending"}, {"status": "active"}, FIELDS) == []


def test_diff_is_pure():
    old = {"clearanceChecklist": [{"text": "a"}]}
    new = {"clearanceChecklist": [{"text": "b"}]}

    changes = diff_fields(old, new, FIELDS)
    changes[0]["newValue"][0]["text"] = "mutated"

    assert new["clearanceChecklist"][0]["text"] == "b"
    assert old["clearanceChecklist"][0]["text"] == "a"


def test_booleans_are_not_numbers():
    assert not deep_equal(True, 1)
    assert not deep_equal([0], [False])
    assert deep_equal({"a": [1, {"b": True}]}, {"a": [1, {"b": True}]})


def test_prepend_keeps_existing_entries():
    entity = {"editHistory": [{"id": "edit_old"}]}
    entry = make_history_entry("Ravi", [{"field": "name", "oldValue": "A", "newValue": "B"}])

    prepend_history(entity, entry)

    assert [e["id"] for e in entity["editHistory"]] == [entry["id"], "edit_old"]
    assert entry["id"].startswith("edit_")
    assert entry["editedBy"] == "Ravi"
    assert entry["editedAt"].endswith("Z")


def test_track_changes_adds_one_entry_only_when_changed():
    entity = {"name": "Fort", "budget": 10, "editHistory": []}

    assert track_changes(entity, {"name": "Fort", "budget": 10}, ("name", "budget"), "Ravi") is None
    assert entity["editHistory"] == []

    entry = track_changes(entity, {"name": "Old Fort", "budget": 5}, ("name", "budget"), "Ravi")

    assert len(entity["editHistory"]) == 1
    assert [c["field"] for c in entry["changes"]] == ["name", "budget"]
