"""Tests for LiveFeedReconciler merge rules."""

from __future__ import annotations

from simulive._types import FeedCursor
from simulive.feed.reconciler import LiveFeedReconciler
from tests.helpers import BASE_TIME, make_record


def _ids(view: tuple) -> list[str]:  # type: ignore[type-arg]
    return [record.id for record in view]


class TestApplyWindow:
    def test_first_window_becomes_view_newest_first(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()

        view = reconciler.apply_window(
            [make_record("a", 1), make_record("c", 3), make_record("b", 2)]
        )

        assert _ids(view) == ["c", "b", "a"]

    def test_empty_window_keeps_view(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        before = reconciler.apply_window([make_record("a", 1)])

        after = reconciler.apply_window([])

        assert after is before

    def test_identical_window_returns_same_view_object(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        first = reconciler.apply_window([make_record("b", 2), make_record("a", 1)])

        second = reconciler.apply_window([make_record("b", 2), make_record("a", 1)])

        assert second is first

    def test_history_older_than_window_is_retained(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("c", 3), make_record("b", 2)])
        reconciler.extend_history([make_record("a", 1)])

        view = reconciler.apply_window([make_record("d", 4), make_record("c", 3)])

        assert _ids(view) == ["d", "c", "a"]

    def test_records_at_or_after_boundary_come_from_window(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("b", 2, "original"), make_record("a", 1)])

        view = reconciler.apply_window([make_record("b", 2, "edited")])

        assert view[0].payload == "edited"
        assert _ids(view) == ["b", "a"]

    def test_deleted_window_record_is_dropped(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("c", 3), make_record("b", 2), make_record("a", 1)])

        view = reconciler.apply_window([make_record("c", 3), make_record("a", 1)])

        assert _ids(view) == ["c", "a"]

    def test_record_crossing_boundary_is_not_duplicated(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("b", 2)])
        reconciler.extend_history([make_record("a", 1)])

        # "a" reappears in the window: it must appear once, from the window.
        view = reconciler.apply_window([make_record("a", 1, "fresh"), make_record("z", 0)])

        assert _ids(view) == ["a", "z"]
        assert view[0].payload == "fresh"

    def test_duplicate_ids_inside_window_collapse(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()

        view = reconciler.apply_window([make_record("a", 1), make_record("a", 1)])

        assert _ids(view) == ["a"]

    def test_same_timestamp_ordered_by_id(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()

        view = reconciler.apply_window([make_record("m1", 5), make_record("m2", 5)])

        assert _ids(view) == ["m2", "m1"]


class TestExtendHistory:
    def test_appends_only_older_unknown_records(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("c", 3), make_record("b", 2)])

        added = reconciler.extend_history(
            [make_record("b", 2), make_record("a", 1), make_record("x", 9)]
        )

        assert added == 1
        assert _ids(reconciler.view) == ["c", "b", "a"]

    def test_empty_page_adds_nothing(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("a", 1)])

        assert reconciler.extend_history([]) == 0


class TestCursor:
    def test_no_cursor_for_empty_view(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()

        assert reconciler.cursor() is None
        assert reconciler.oldest() is None

    def test_cursor_points_at_oldest_record(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("b", 2), make_record("a", 0)])

        assert reconciler.cursor() == FeedCursor(order_key=BASE_TIME, record_id="a")

    def test_clear(self) -> None:
        reconciler: LiveFeedReconciler[str] = LiveFeedReconciler()
        reconciler.apply_window([make_record("a", 1)])

        reconciler.clear()

        assert reconciler.view == ()
