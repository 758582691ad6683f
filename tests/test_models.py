import pytest

from services.models import MalformedRelationReferenceError, Relation, WorkItem
from services.settings import FieldNames, Relations


def test_from_api_reads_typed_fields():
    payload = {
        "id": 12,
        "fields": {
            FieldNames.WORK_ITEM_TYPE: "Task",
            FieldNames.TITLE: "Write docs",
            FieldNames.ASSIGNED_TO: {"displayName": "Alice", "uniqueName": "alice.smith@example.com"},
            FieldNames.REMAINING: 3,
        },
        "relations": [
            {"rel": Relations.CHILDREN, "url": "https://dev.azure.com/org/_apis/wit/workItems/13"},
            {"rel": "System.LinkTypes.Hierarchy-Reverse", "url": "https://dev.azure.com/org/_apis/wit/workItems/1"},
        ],
    }

    item = WorkItem.from_api(payload)

    assert item.id == 12
    assert item.is_leaf
    assert item.title == "Write docs"
    assert item.alias == "ALICE.SMITH"
    assert item.remaining_work == 3.0
    assert [relation.target_id for relation in item.relations_of(Relations.CHILDREN)] == [13]


def test_from_api_leaves_absent_fields_empty():
    item = WorkItem.from_api({"id": 5, "fields": {FieldNames.WORK_ITEM_TYPE: "Feature"}})

    assert not item.is_leaf
    assert item.assigned_to is None
    assert item.alias == ""
    assert item.remaining_work is None
    assert item.relations == []
    assert item.reporting_info is None


@pytest.mark.parametrize(
    "url",
    [
        "https://x/_apis/wit/workItems/",
        "https://x/_apis/wit/workItems/12a",
        "https://x/_apis/wit/workItems/1_0",
        "https://x/_apis/wit/workItems/+5",
        "https://x/_apis/wit/workItems/ 5",
        "",
    ],
)
def test_malformed_relation_reference(url):
    with pytest.raises(MalformedRelationReferenceError):
        Relation(rel=Relations.CHILDREN, url=url).target_id
