import sqlite3

import pytest

from core.errors import IntegrityError, NotFoundError
from models import ConnectionType, NodeStatus, NodeType, Novel
from models.generation import GeneratedConnection, GeneratedNode, GeneratedStoryline
from services.storyline_graph import StorylineGraphService, layout_position, validate_generated


def _generated(title, node_count, connections):
    return GeneratedStoryline(
        title=title,
        type="plot",
        priority=7,
        nodes=[GeneratedNode(title=f"{title} node {i}", node_type="event") for i in range(node_count)],
        connections=[
            GeneratedConnection(from_index=a, to_index=b, connection_type="cause", weight=4)
            for a, b in connections
        ],
    )


@pytest.fixture
def graph(store):
    for novel_id in ("novel-1", "novel-2"):
        store.add_novel(Novel(id=novel_id, title=f"Novel {novel_id}"))
    return StorylineGraphService(store)


class TestPersistGenerated:
    def test_indices_resolve_to_created_node_ids(self, graph, store):
        outcomes = graph.persist_generated("novel-1", [_generated("Main", 3, [(0, 1), (1, 2)])])
        assert len(outcomes) == 1 and outcomes[0].ok

        outcome = outcomes[0]
        nodes = store.list_nodes(outcome.storyline_id)
        assert [n.id for n in nodes] == outcome.node_ids
        assert [n.order_index for n in nodes] == [0, 1, 2]
        assert [n.position for n in nodes] == [layout_position(i) for i in range(3)]
        assert nodes[2].position.x == 100 + 220 * 2

        connections = store.list_connections(outcome.storyline_id)
        pairs = {(c.from_node_id, c.to_node_id) for c in connections}
        assert pairs == {(nodes[0].id, nodes[1].id), (nodes[1].id, nodes[2].id)}
        assert all(c.connection_type == ConnectionType.CAUSE for c in connections)

    def test_out_of_range_index_leaves_no_rows_and_next_storyline_persists(self, graph, store):
        bad = _generated("Broken", 3, [(0, 1), (1, 3)])
        good = _generated("Fine", 2, [(0, 1)])

        outcomes = graph.persist_generated("novel-1", [bad, good])

        assert not outcomes[0].ok
        assert "toIndex=3" in outcomes[0].error
        assert outcomes[0].storyline_id is None
        assert outcomes[1].ok
        assert store.count_rows("storylines") == 1
        assert store.count_rows("story_nodes") == 2
        assert store.count_rows("node_connections") == 1

    def test_negative_index_and_self_loop_are_rejected(self, graph, store):
        outcomes = graph.persist_generated(
            "novel-1",
            [_generated("Negative", 2, [(-1, 0)]), _generated("Loop", 2, [(1, 1)])],
        )
        assert [o.ok for o in outcomes] == [False, False]
        assert store.count_rows("storylines") == 0

    def test_failed_write_rolls_back_the_whole_storyline(self, graph, store, monkeypatch):
        original = store.insert_connection

        def failing_insert(conn, connection):
            original(conn, connection)
            raise IntegrityError("disk said no")

        monkeypatch.setattr(store, "insert_connection", failing_insert)
        outcomes = graph.persist_generated("novel-1", [_generated("Main", 2, [(0, 1)])])

        assert outcomes[0].error == "disk said no"
        assert store.count_rows("storylines") == 0
        assert store.count_rows("story_nodes") == 0
        assert store.count_rows("node_connections") == 0

    def test_storage_failure_is_recorded_and_next_storyline_persists(self, graph, store, monkeypatch):
        original = store.insert_node
        failures = []

        def locked_once(conn, node):
            if not failures:
                failures.append(node.title)
                raise sqlite3.OperationalError("database is locked")
            original(conn, node)

        monkeypatch.setattr(store, "insert_node", locked_once)
        outcomes = graph.persist_generated(
            "novel-1", [_generated("First", 2, [(0, 1)]), _generated("Second", 2, [(0, 1)])]
        )

        assert [o.ok for o in outcomes] == [False, True]
        assert "database is locked" in outcomes[0].error
        assert outcomes[0].storyline_id is None
        assert [s.title for s in graph.list_storylines("novel-1")] == ["Second"]
        assert store.count_rows("story_nodes") == 2

    def test_unknown_novel_writes_nothing(self, graph, store):
        with pytest.raises(NotFoundError):
            graph.persist_generated("no-such-novel", [_generated("Main", 2, [(0, 1)])])
        assert store.count_rows("storylines") == 0
        assert store.count_rows("story_nodes") == 0

    def test_validate_generated_accepts_empty_connections(self):
        validate_generated(_generated("Solo", 1, []))


class TestStorylineCrud:
    def test_stats_and_ordering(self, graph):
        low = graph.create_storyline("novel-1", {"title": "Side", "priority": 1})
        high = graph.create_storyline("novel-1", {"title": "Main", "priority": 9})
        graph.create_storyline("novel-2", {"title": "Elsewhere"})
        first = graph.create_node(high.id, {"title": "a", "status": NodeStatus.COMPLETED})
        graph.create_node(high.id, {"title": "b"})
        graph.create_node(high.id, {"title": "c"})
        assert first.node_type == NodeType.EVENT

        listed = graph.list_storylines("novel-1")
        assert [s.id for s in listed] == [high.id, low.id]
        assert (listed[0].node_count, listed[0].completed_nodes, listed[0].progress) == (3, 1, 33)
        assert (listed[1].node_count, listed[1].progress) == (0, 0)

    def test_title_is_required(self, graph):
        with pytest.raises(IntegrityError):
            graph.create_storyline("novel-1", {"title": "  "})

    def test_storyline_needs_existing_novel(self, graph, store):
        with pytest.raises(NotFoundError):
            graph.create_storyline("no-such-novel", {"title": "Main"})
        assert store.count_rows("storylines") == 0

    def test_partial_update_keeps_unset_fields(self, graph):
        storyline = graph.create_storyline("novel-1", {"title": "Main", "description": "keep me", "color": "#111111"})
        updated = graph.update_storyline(storyline.id, {"title": "Renamed", "description": "", "color": None})
        assert updated.title == "Renamed"
        assert updated.description == "keep me"
        assert updated.color == "#111111"

    def test_delete_cascades_to_nodes_and_connections(self, graph, store):
        outcome = graph.persist_generated("novel-1", [_generated("Main", 3, [(0, 1), (1, 2)])])[0]
        graph.delete_storyline(outcome.storyline_id)
        assert store.count_rows("story_nodes") == 0
        assert store.count_rows("node_connections") == 0
        with pytest.raises(NotFoundError):
            graph.delete_storyline(outcome.storyline_id)

    def test_update_missing_storyline(self, graph):
        with pytest.raises(NotFoundError):
            graph.update_storyline("missing", {"title": "x"})


class TestNodesAndConnections:
    def test_node_needs_existing_storyline(self, graph):
        with pytest.raises(NotFoundError):
            graph.create_node("missing", {"title": "orphan"})

    def test_update_node_position(self, graph):
        storyline = graph.create_storyline("novel-1", {"title": "Main"})
        node = graph.create_node(storyline.id, {"title": "a"})
        moved = graph.update_node(node.id, {"position": {"x": 42, "y": 7}, "title": ""})
        assert (moved.position.x, moved.position.y) == (42, 7)
        assert moved.title == "a"
        assert graph.list_nodes(storyline.id)[0].position.x == 42

    def test_self_loop_is_rejected(self, graph):
        storyline = graph.create_storyline("novel-1", {"title": "Main"})
        node = graph.create_node(storyline.id, {"title": "a"})
        with pytest.raises(IntegrityError):
            graph.create_connection(node.id, node.id)

    def test_connection_endpoints_must_exist(self, graph, store):
        storyline = graph.create_storyline("novel-1", {"title": "Main"})
        node = graph.create_node(storyline.id, {"title": "a"})
        with pytest.raises(NotFoundError):
            graph.create_connection(node.id, "missing")
        assert store.count_rows("node_connections") == 0

    def test_weight_is_clamped_and_node_delete_cascades(self, graph):
        storyline = graph.create_storyline("novel-1", {"title": "Main"})
        a = graph.create_node(storyline.id, {"title": "a"})
        b = graph.create_node(storyline.id, {"title": "b"})
        connection = graph.create_connection(a.id, b.id, weight=99)
        assert connection.weight == 10
        assert [c.id for c in graph.list_connections(storyline.id)] == [connection.id]

        graph.delete_node(b.id)
        assert graph.list_connections(storyline.id) == []
        with pytest.raises(NotFoundError):
            graph.delete_connection(connection.id)
