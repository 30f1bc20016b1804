"""Tests for the undo/redo engine.

Most tests drive the engine through :class:`NodeOperations` against the
in-memory node service, so replays hit the same code paths as in the
editor.  Stack bookkeeping is tested against a recording stub.
"""

from __future__ import annotations

from typing import Optional

import pytest

from sitemapper.errors import HistoryReplayError
from sitemapper.history import (
    CreateNodeAction,
    DeleteNodeAction,
    HistoryEngine,
    HistoryState,
    MoveNodeAction,
    UpdateNodeAction,
)
from sitemapper.models import NodeInput, SitemapNode
from sitemapper.operations import NodeOperations

from tests.conftest import FakeNodeService, make_sitemap, shape


class _StubHandlers:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def recreate_node(self, snapshot: SitemapNode) -> int:
        self.calls.append(("recreate", snapshot.id))
        return snapshot.id

    async def delete_node(self, node_id: int) -> None:
        self.calls.append(("delete", node_id))

    async def update_node(self, node_id: int, fields: dict) -> None:
        self.calls.append(("update", node_id, fields))

    async def move_node(self, node_id: int, parent_id: Optional[int]) -> None:
        self.calls.append(("move", node_id, parent_id))

    async def update_position(self, node_id: int, x: float, y: float) -> None:
        self.calls.append(("position", node_id, x, y))


def _move(node_id: int, old: Optional[int] = 1, new: Optional[int] = 2) -> MoveNodeAction:
    return MoveNodeAction(node_id=node_id, old_parent_id=old, new_parent_id=new)


@pytest.fixture
async def ops(node_service: FakeNodeService) -> NodeOperations:
    operations = NodeOperations(node_service, sitemap_id=1)
    await operations.reload()
    return operations


# ---------------------------------------------------------------------------
# Stack bookkeeping
# ---------------------------------------------------------------------------

class TestStacks:
    def test_record_is_bounded_oldest_first(self) -> None:
        engine = HistoryEngine(_StubHandlers(), max_size=3)
        for node_id in range(5):
            engine.record(_move(node_id))
        assert [a.node_id for a in engine.past] == [2, 3, 4]

    def test_default_capacity_comes_from_settings(self, monkeypatch) -> None:
        monkeypatch.setattr("sitemapper.history.engine.settings.history_max_size", 7)
        assert HistoryEngine(_StubHandlers()).max_size == 7

    async def test_record_clears_redo_stack(self) -> None:
        engine = HistoryEngine(_StubHandlers())
        engine.record(_move(1))
        await engine.undo()
        assert engine.can_redo
        engine.record(_move(2))
        assert not engine.can_redo
        assert engine.future == []

    async def test_undo_and_redo_on_empty_stacks_return_none(self) -> None:
        engine = HistoryEngine(_StubHandlers())
        assert await engine.undo() is None
        assert await engine.redo() is None

    async def test_redo_replays_most_recently_undone(self) -> None:
        handlers = _StubHandlers()
        engine = HistoryEngine(handlers)
        engine.record(_move(1, old=None, new=5))
        engine.record(_move(2, old=None, new=6))
        await engine.undo()
        await engine.undo()
        action = await engine.redo()
        assert action.node_id == 1
        assert handlers.calls[-1] == ("move", 1, 5)

    async def test_replay_does_not_record_and_reloads(self) -> None:
        reloads = []

        async def reload() -> None:
            reloads.append(True)

        engine = HistoryEngine(_StubHandlers(), reload=reload)

        class _Recording(_StubHandlers):
            async def move_node(self, node_id, parent_id):
                engine.record(_move(99))

        engine.handlers = _Recording()
        engine.record(_move(1))
        await engine.undo()
        assert engine.past == []
        assert [a.node_id for a in engine.future] == [1]
        assert reloads == [True]
        assert not engine.is_applying

    async def test_on_change_reports_state(self) -> None:
        states: list[HistoryState] = []
        engine = HistoryEngine(_StubHandlers())
        engine.on_change = states.append
        engine.record(_move(1))
        await engine.undo()
        assert states[0].can_undo and states[0].undo_count == 1
        assert states[0].last_action == "Move node"
        assert states[-1].can_redo and not states[-1].can_undo


# ---------------------------------------------------------------------------
# Replays against the node service
# ---------------------------------------------------------------------------

class TestReplay:
    async def test_n_mutations_then_n_undos_restore_the_tree(self, ops: NodeOperations) -> None:
        initial = shape(ops.nodes)

        await ops.create_node(NodeInput(sitemap_id=1, title="Contact", slug="contact", parent_id=1))
        await ops.update_node(2, title="About us")
        await ops.move_node(4, 5)
        await ops.delete_node(2)
        ops.set_position(6, 900, 900)
        await ops.save_positions()
        assert shape(ops.nodes) != initial

        for _ in range(5):
            assert await ops.undo() is not None
        assert await ops.undo() is None

        assert shape(ops.nodes) == initial
        assert len(ops.nodes) == 6
        post = next(n for n in ops.nodes if n.title == "First post")
        assert (post.position_x, post.position_y) == (600, 200)

    async def test_undo_redo_update_is_a_round_trip(self, ops: NodeOperations) -> None:
        await ops.update_node(5, title="News", keywords=["press"])
        await ops.undo()
        assert ops.require(5).title == "Blog"
        assert ops.require(5).keywords == []
        await ops.redo()
        assert ops.require(5).title == "News"
        assert ops.require(5).keywords == ["press"]

    async def test_undo_delete_restores_children_under_new_identity(self, ops: NodeOperations) -> None:
        initial = shape(ops.nodes)
        await ops.delete_node(2)
        assert {n.parent_id for n in ops.nodes if n.title in ("Team", "Careers")} == {1}

        await ops.undo()

        about = next(n for n in ops.nodes if n.title == "About")
        assert about.id != 2
        assert shape(ops.nodes) == initial
        assert [c.title for c in ops.children_of(about.id)] == ["Team", "Careers"]

    async def test_undo_subtree_delete_rebuilds_every_node(
        self, ops: NodeOperations, node_service: FakeNodeService
    ) -> None:
        initial = shape(ops.nodes)
        await ops.delete_nodes([5, 6])
        assert {n.id for n in ops.nodes} == {1, 2, 3, 4}

        await ops.undo()
        assert shape(ops.nodes) == initial
        blog = next(n for n in ops.nodes if n.title == "Blog")
        assert [c.title for c in ops.children_of(blog.id)] == ["First post"]

        await ops.redo()
        assert {n.title for n in ops.nodes} == {"Home", "About", "Team", "Careers"}
        assert node_service.count("delete_node") == 2

    async def test_partial_selection_undo_puts_kept_child_back(self, ops: NodeOperations) -> None:
        initial = shape(ops.nodes)
        await ops.delete_nodes([2, 3])
        await ops.undo()

        about = next(n for n in ops.nodes if n.title == "About")
        assert shape(ops.nodes) == initial
        assert [c.title for c in ops.children_of(about.id)] == ["Team", "Careers"]

    async def test_redo_after_recreate_targets_the_new_id(
        self, ops: NodeOperations, node_service: FakeNodeService
    ) -> None:
        await ops.delete_node(4)
        await ops.undo()
        recreated = next(n for n in ops.nodes if n.title == "Careers")
        (action,) = ops.history.future
        assert isinstance(action, DeleteNodeAction)
        assert action.node.id == recreated.id

        await ops.redo()
        assert node_service.calls[-2] == ("delete_node", recreated.id)
        assert all(n.title != "Careers" for n in ops.nodes)

        await ops.undo()
        again = next(n for n in ops.nodes if n.title == "Careers")
        assert again.id not in (4, recreated.id)
        assert again.parent_id == 2

    async def test_identity_rewrite_reaches_older_actions(self, ops: NodeOperations) -> None:
        initial = shape(ops.nodes)
        created = await ops.create_node(NodeInput(sitemap_id=1, title="Contact", slug="contact", parent_id=1))
        await ops.move_node(created.id, 2)
        await ops.delete_node(created.id)

        await ops.undo()
        contact = next(n for n in ops.nodes if n.title == "Contact")
        assert contact.id != created.id
        assert contact.parent_id == 2
        create_action, move_action = ops.history.past
        assert isinstance(create_action, CreateNodeAction) and create_action.node.id == contact.id
        assert isinstance(move_action, MoveNodeAction) and move_action.node_id == contact.id

        await ops.undo()
        await ops.undo()
        assert shape(ops.nodes) == initial

    async def test_undo_create_then_redo_recreates_with_same_shape(self, ops: NodeOperations) -> None:
        await ops.create_node_at(NodeInput(sitemap_id=1, title="Contact", slug="contact", parent_id=5), 10, 20)
        after_create = shape(ops.nodes)
        await ops.undo()
        await ops.redo()
        assert shape(ops.nodes) == after_create
        contact = next(n for n in ops.nodes if n.title == "Contact")
        assert (contact.position_x, contact.position_y) == (10, 20)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestReplayFailure:
    async def test_failed_undo_drops_action_and_reloads(
        self, ops: NodeOperations, node_service: FakeNodeService
    ) -> None:
        await ops.move_node(4, 5)
        reloads_before = node_service.count("list_nodes")
        node_service.fail.add("move_node")

        with pytest.raises(HistoryReplayError) as excinfo:
            await ops.undo()

        assert excinfo.value.__cause__ is not None
        assert ops.history.last_error is excinfo.value.__cause__
        assert ops.history.past == [] and ops.history.future == []
        assert not ops.history.is_applying
        assert node_service.count("list_nodes") == reloads_before + 1
        assert ops.require(4).parent_id == 5

    async def test_success_clears_last_error(self, ops: NodeOperations, node_service: FakeNodeService) -> None:
        await ops.update_node(3, title="People")
        await ops.update_node(3, title="Crew")
        node_service.fail.add("update_node")
        with pytest.raises(HistoryReplayError):
            await ops.undo()
        node_service.fail.clear()

        action = await ops.undo()
        assert isinstance(action, UpdateNodeAction)
        assert ops.history.last_error is None
        assert ops.require(3).title == "Team"
