from datetime import timedelta

from cogniflow.application.scheduling.due import due_counts, due_items, is_due
from cogniflow.application.utils.time import start_of_day


def test_item_due_earlier_today_or_before(make_item, now):
    assert is_due(make_item(due_date=now - timedelta(days=3)), now)
    assert is_due(make_item(due_date=start_of_day(now)), now)
    # Later today still counts as today
    assert is_due(make_item(due_date=now + timedelta(hours=5)), now)


def test_item_due_tomorrow_is_not_due(make_item, now):
    assert not is_due(make_item(due_date=start_of_day(now) + timedelta(days=1)), now)


def test_suspended_item_is_never_due(make_item, now):
    assert not is_due(make_item(due_date=now - timedelta(days=1), suspended=True), now)


def test_due_items_across_decks(make_item, make_deck, make_snapshot, now):
    past = now - timedelta(days=1)
    future = now + timedelta(days=3)
    snapshot = make_snapshot(
        [
            make_deck("A", items=[make_item("a1", due_date=past), make_item("a2", due_date=future)]),
            make_deck("B", items=[make_item("b1", due_date=past)]),
            make_deck("C", items=[make_item("c1", due_date=past)], deleted_at=now),
        ]
    )

    entries = due_items(snapshot, now)

    assert [(e.deck_id, e.item.id) for e in entries] == [("A", "a1"), ("B", "b1")]
    assert [e.item.id for e in due_items(snapshot, now, deck_id="B")] == ["b1"]
    assert due_counts(snapshot, now) == {"A": 1, "B": 1}
