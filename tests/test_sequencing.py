from __future__ import annotations

from tailtrack.modules.sequencing import QuerySequencer


def test_newest_result_wins() -> None:
    sequencer: QuerySequencer[str] = QuerySequencer()

    first = sequencer.begin()
    second = sequencer.begin()
    assert sequencer.is_pending

    # the second query answers first
    assert sequencer.accept(second, 'noon')
    assert sequencer.result == 'noon'
    assert not sequencer.is_pending

    # the first one arrives late and is discarded
    assert sequencer.is_stale(first)
    assert not sequencer.accept(first, 'morning')
    assert sequencer.result == 'noon'


def test_results_in_order_are_all_accepted() -> None:
    sequencer: QuerySequencer[int] = QuerySequencer()

    for value in range(3):
        ticket = sequencer.begin()
        assert sequencer.accept(ticket, value)

    assert sequencer.result == 2


def test_abandoned_queries() -> None:
    sequencer: QuerySequencer[int] = QuerySequencer()

    sequencer.begin()  # never answered
    latest = sequencer.begin()

    assert sequencer.result is None
    assert sequencer.accept(latest, 1)
    assert sequencer.result == 1
