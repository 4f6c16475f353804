"""Unit tests for parent edges and change notifications."""

import asyncio

from docgraph.collection import Collection
from docgraph.document import Document
from docgraph.node import flush_notifications


class TestParentEdges:
    """Tests for the parent bookkeeping of graph nodes."""

    def test_child_knows_its_parent_and_label(self) -> None:
        document = Document({"child": {"value": 1}})
        child = document.get("child")

        assert child.parents[document] == "child"

    def test_replacing_a_child_removes_the_edge(self) -> None:
        document = Document({"child": {"value": 1}})
        child = document.get("child")

        document.set("child", {"value": 2})

        assert document not in child.parents
        assert document in document.get("child").parents

    def test_unset_removes_the_edge(self) -> None:
        document = Document({"child": {"value": 1}})
        child = document.get("child")

        document.unset("child")

        assert len(child.parents) == 0

    def test_shared_child_has_several_parents(self) -> None:
        child = Document({"value": 1})
        first = Document()
        second = Document()

        first.set("a", child)
        second.set("b", child)

        assert child.parents[first] == "a"
        assert child.parents[second] == "b"

    def test_collection_items_are_labelled_by_offset(self) -> None:
        first = Document({"name": "first"})
        second = Document({"name": "second"})
        collection = Collection([first, second])

        assert second.parents[collection] == 1
        collection.unset(0)
        assert second.parents[collection] == 0
        assert collection not in first.parents

    def test_disconnect_detaches_from_every_parent(self) -> None:
        child = Document({"value": 1})
        document = Document()
        collection = Collection()
        document.set("child", child)
        collection.push(child)

        child.disconnect()

        assert not document.has("child")
        assert len(collection) == 0
        assert len(child.parents) == 0


class TestWatch:
    """Tests for watch/unwatch callbacks."""

    def test_watch_receives_changed_path(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": {"b": 1}})
        document.watch("a", calls.append)

        document.set("a.b", 2)
        flush_notifications()

        assert calls == [["a", "b"]]

    def test_callbacks_never_run_inside_set(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 1})
        document.watch("a", calls.append)

        document.set("a", 2)
        document.unset("a")

        assert calls == []
        assert flush_notifications() == 1
        assert calls == [["a"]]

    def test_mutations_before_delivery_coalesce(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 0})
        document.watch("a", calls.append)

        document.set("a", 1)
        document.set("a", 2)
        flush_notifications()

        assert calls == [["a"]]

    def test_watch_ignores_other_paths(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 1, "b": 1})
        document.watch("a", calls.append)

        document.set("b", 2)
        flush_notifications()

        assert calls == []

    def test_root_watch_sees_every_change(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 1})
        document.watch(calls.append)

        document.set("a", 2)
        flush_notifications()
        document.set("c.d", 3)
        flush_notifications()

        assert calls == [["a"], ["c", "d"]]

    def test_unwatch_stops_notifications(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 1})
        document.watch("a", calls.append)
        document.unwatch("a", calls.append)

        document.set("a", 2)
        flush_notifications()

        assert calls == []

    def test_shared_child_notifies_every_parent(self) -> None:
        first_calls: list[list[str]] = []
        second_calls: list[list[str]] = []
        child = Document({"value": 1})
        first = Document({"a": child})
        second = Document({"b": child})
        first.watch(first_calls.append)
        second.watch(second_calls.append)

        child.set("value", 2)
        flush_notifications()

        assert first_calls == [["a", "value"]]
        assert second_calls == [["b", "value"]]

    async def test_notifications_are_deferred_and_coalesced(self) -> None:
        calls: list[list[str]] = []
        document = Document({"a": 1})
        document.watch(calls.append)

        document.set("a", 2)
        document.set("a", 3)
        assert calls == []

        await asyncio.sleep(0)

        assert calls == [["a"]]
        assert document.get("a") == 3

    async def test_registering_a_callback_twice_calls_it_once(self) -> None:
        calls: list[list[str]] = []
        document = Document()
        document.watch("a", calls.append)
        document.watch("a", calls.append)

        document.set("a", 1)
        assert calls == []

        await asyncio.sleep(0)

        assert calls == [["a"]]

    async def test_watcher_sees_the_final_state(self) -> None:
        seen: list[int] = []
        document = Document({"a": 0})
        document.watch("a", lambda path: seen.append(document.get("a")))

        document.set("a", 1)
        document.set("a", 2)
        await asyncio.sleep(0)

        assert seen == [2]
