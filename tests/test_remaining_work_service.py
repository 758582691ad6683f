from fakes import make_item
from services.models import Team
from services.remaining_work_service import calculate_remaining_by_team
from services.team_service import TeamResolver

RESOLVER = TeamResolver([
    Team("Backend", ("ALICE", "BOB")),
    Team("Frontend", ("CAROL",)),
])


def test_groups_remaining_work_by_team():
    items = [
        make_item(1, assigned_to="alice@example.com", remaining=5),
        make_item(2, assigned_to="bob@example.com", remaining=3),
        make_item(3, assigned_to="carol@example.com", remaining=4),
    ]

    lines = calculate_remaining_by_team(RESOLVER, items)

    assert [(line.team, line.remaining) for line in lines] == [("Backend", 8), ("Frontend", 4)]
    assert all(line.tasks is None for line in lines)


def test_unknown_alias_is_used_as_team_label():
    items = [make_item(1, assigned_to="dave@example.com", remaining=2)]

    lines = calculate_remaining_by_team(RESOLVER, items)

    assert lines[0].team == "DAVE"


def test_unassigned_items_and_missing_remaining_work():
    items = [
        make_item(1, remaining=3),
        make_item(2, assigned_to="alice@example.com"),
    ]

    lines = calculate_remaining_by_team(RESOLVER, items)

    assert [(line.team, line.remaining) for line in lines] == [("", 3), ("Backend", 0)]


def test_ties_are_ordered_by_team_name():
    items = [
        make_item(1, assigned_to="zed@example.com", remaining=2),
        make_item(2, assigned_to="carol@example.com", remaining=2),
        make_item(3, assigned_to="alice@example.com", remaining=2),
    ]

    lines = calculate_remaining_by_team(RESOLVER, items)

    assert [line.team for line in lines] == ["Backend", "Frontend", "ZED"]


def test_task_details_sorted_by_remaining_descending():
    items = [
        make_item(1, title="small", assigned_to="alice@example.com", remaining=1),
        make_item(2, title="big", assigned_to="bob@example.com", remaining=8),
        make_item(3, title="first-mid", assigned_to="alice@example.com", remaining=4),
        make_item(4, title="second-mid", assigned_to="alice@example.com", remaining=4),
    ]

    lines = calculate_remaining_by_team(RESOLVER, items, include_tasks=True)

    assert len(lines) == 1
    assert [task.id for task in lines[0].tasks] == [2, 3, 4, 1]
    assert lines[0].to_dict()["tasks"][0] == {"id": 2, "title": "big", "remaining": 8}


def test_totals_are_conserved_and_every_item_is_listed_once():
    items = [
        make_item(i, assigned_to=f"{alias}@example.com", remaining=remaining)
        for i, (alias, remaining) in enumerate(
            [("alice", 1.5), ("carol", 2), ("dave", None), ("bob", 0.25), ("erin", 7)], start=1
        )
    ]

    lines = calculate_remaining_by_team(RESOLVER, items, include_tasks=True)

    assert sum(line.remaining for line in lines) == 10.75
    listed = sorted(task.id for line in lines for task in line.tasks)
    assert listed == [1, 2, 3, 4, 5]


def test_empty_input_yields_no_lines():
    assert calculate_remaining_by_team(RESOLVER, []) == []
