"""Storyline graph service: authoring CRUD plus persistence of generated graphs."""

import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.errors import GenerationError, IntegrityError, NotFoundError
from models import (
    ConnectionType,
    NodeConnection,
    NodeStatus,
    NodeType,
    PersistOutcome,
    Position,
    StoryNode,
    Storyline,
    StorylineStatus,
    StorylineType,
    StorylineWithStats,
)
from models.generation import GeneratedStoryline
from storage import NovelStore, new_id

logger = logging.getLogger("storyloom.graph")

LAYOUT_ORIGIN_X = 100
LAYOUT_STEP_X = 220
LAYOUT_Y = 100


def layout_position(index: int) -> Position:
    return Position(x=LAYOUT_ORIGIN_X + LAYOUT_STEP_X * index, y=LAYOUT_Y)


def validate_generated(storyline: GeneratedStoryline) -> None:
    """Check every connection index against the storyline's own node list."""
    node_count = len(storyline.nodes)
    for position, connection in enumerate(storyline.connections):
        for label, index in (("fromIndex", connection.from_index), ("toIndex", connection.to_index)):
            if index < 0 or index >= node_count:
                raise IntegrityError(
                    f"connection {position} {label}={index} is outside [0, {node_count}) "
                    f"in storyline '{storyline.title}'"
                )
        if connection.from_index == connection.to_index:
            raise IntegrityError(
                f"connection {position} links node {connection.from_index} to itself "
                f"in storyline '{storyline.title}'"
            )


class StorylineGraphService:
    def __init__(self, store: NovelStore):
        self.store = store

    # Generated graphs

    def persist_generated(
        self, novel_id: str, storylines: List[GeneratedStoryline]
    ) -> List[PersistOutcome]:
        """Persist each generated storyline in its own transaction.

        A storyline that fails validation or whose write fails leaves no rows
        behind and does not stop the storylines after it. The novel must exist.
        """
        self._require_novel(novel_id)
        outcomes: List[PersistOutcome] = []
        for generated in storylines:
            try:
                outcomes.append(self._persist_one(novel_id, generated))
            except (IntegrityError, sqlite3.Error) as exc:
                error = exc.message if isinstance(exc, GenerationError) else f"storage error: {exc}"
                logger.warning(
                    "storyline persist rejected novel_id=%s title=%s error=%s",
                    novel_id,
                    generated.title,
                    error,
                )
                outcomes.append(PersistOutcome(title=generated.title, error=error))
        return outcomes

    def _require_novel(self, novel_id: str) -> None:
        if self.store.get_novel(novel_id) is None:
            raise NotFoundError(f"novel not found: {novel_id}")

    def _persist_one(self, novel_id: str, generated: GeneratedStoryline) -> PersistOutcome:
        validate_generated(generated)

        now = datetime.now()
        storyline = Storyline(
            id=new_id(),
            novel_id=novel_id,
            title=generated.title or "Untitled storyline",
            description=generated.description,
            type=generated.type,
            priority=generated.priority,
            color=generated.color,
            created_at=now,
            updated_at=now,
        )
        outcome = PersistOutcome(title=storyline.title, storyline_id=storyline.id)

        with self.store.transaction() as conn:
            self.store.insert_storyline(conn, storyline)

            index_to_id: Dict[int, str] = {}
            for position, generated_node in enumerate(generated.nodes):
                node = StoryNode(
                    id=new_id(),
                    storyline_id=storyline.id,
                    title=generated_node.title or f"Node {position + 1}",
                    description=generated_node.description,
                    node_type=generated_node.node_type,
                    position=layout_position(position),
                    chapter_range=generated_node.chapter_range,
                    status=generated_node.status,
                    order_index=position,
                    created_at=now,
                    updated_at=now,
                )
                self.store.insert_node(conn, node)
                index_to_id[position] = node.id
                outcome.node_ids.append(node.id)

            for generated_connection in generated.connections:
                connection = NodeConnection(
                    id=new_id(),
                    from_node_id=index_to_id[generated_connection.from_index],
                    to_node_id=index_to_id[generated_connection.to_index],
                    connection_type=generated_connection.connection_type,
                    description=generated_connection.description,
                    weight=generated_connection.weight,
                    created_at=now,
                    updated_at=now,
                )
                self.store.insert_connection(conn, connection)
                outcome.connection_ids.append(connection.id)

        logger.info(
            "storyline persisted novel_id=%s storyline_id=%s nodes=%d connections=%d",
            novel_id,
            storyline.id,
            len(outcome.node_ids),
            len(outcome.connection_ids),
        )
        return outcome

    # Storylines

    def list_storylines(self, novel_id: str) -> List[StorylineWithStats]:
        return self.store.list_storylines(novel_id)

    def create_storyline(self, novel_id: str, data: Dict[str, Any]) -> Storyline:
        title = str(data.get("title") or "").strip()
        if not title:
            raise IntegrityError("storyline title is required")
        self._require_novel(novel_id)
        storyline = Storyline(
            id=new_id(),
            novel_id=novel_id,
            title=title,
            description=data.get("description") or "",
            type=data.get("type") or StorylineType.MAIN,
            status=data.get("status") or StorylineStatus.ACTIVE,
            priority=data.get("priority") or 0,
            color=data.get("color") or "#3B82F6",
        )
        with self.store.transaction() as conn:
            self.store.insert_storyline(conn, storyline)
        return storyline

    def update_storyline(self, storyline_id: str, changes: Dict[str, Any]) -> Storyline:
        storyline = self.store.get_storyline(storyline_id)
        if storyline is None:
            raise NotFoundError(f"storyline not found: {storyline_id}")
        updates = _non_empty(changes, ("title", "description", "type", "status", "priority", "color"))
        if updates:
            storyline = Storyline.model_validate(
                {**storyline.model_dump(), **updates, "updated_at": datetime.now()}
            )
            self.store.update_storyline(storyline)
        return storyline

    def delete_storyline(self, storyline_id: str) -> None:
        if not self.store.delete_storyline(storyline_id):
            raise NotFoundError(f"storyline not found: {storyline_id}")
        logger.info("storyline deleted storyline_id=%s", storyline_id)

    # Nodes

    def list_nodes(self, storyline_id: str) -> List[StoryNode]:
        return self.store.list_nodes(storyline_id)

    def create_node(self, storyline_id: str, data: Dict[str, Any]) -> StoryNode:
        if self.store.get_storyline(storyline_id) is None:
            raise NotFoundError(f"storyline not found: {storyline_id}")
        title = str(data.get("title") or "").strip()
        if not title:
            raise IntegrityError("node title is required")
        node = StoryNode(
            id=new_id(),
            storyline_id=storyline_id,
            title=title,
            description=data.get("description") or "",
            node_type=data.get("node_type") or NodeType.EVENT,
            position=data.get("position") or Position(),
            chapter_range=data.get("chapter_range") or "",
            character_ids=data.get("character_ids") or [],
            plot_point_ids=data.get("plot_point_ids") or [],
            status=data.get("status") or NodeStatus.PLANNED,
            order_index=data.get("order_index") or 0,
        )
        with self.store.transaction() as conn:
            self.store.insert_node(conn, node)
        return node

    def update_node(self, node_id: str, changes: Dict[str, Any]) -> StoryNode:
        node = self.store.get_node(node_id)
        if node is None:
            raise NotFoundError(f"story node not found: {node_id}")
        updates = _non_empty(
            changes,
            (
                "title", "description", "node_type", "position", "chapter_range",
                "character_ids", "plot_point_ids", "status", "order_index",
            ),
        )
        if updates:
            node = StoryNode.model_validate(
                {**node.model_dump(), **updates, "updated_at": datetime.now()}
            )
            self.store.update_node(node)
        return node

    def delete_node(self, node_id: str) -> None:
        if not self.store.delete_node(node_id):
            raise NotFoundError(f"story node not found: {node_id}")

    # Connections

    def list_connections(self, storyline_id: str) -> List[NodeConnection]:
        return self.store.list_connections(storyline_id)

    def create_connection(
        self,
        from_node_id: str,
        to_node_id: str,
        connection_type: Optional[ConnectionType] = None,
        description: str = "",
        weight: Optional[int] = None,
    ) -> NodeConnection:
        if from_node_id == to_node_id:
            raise IntegrityError("a connection cannot link a node to itself")
        connection = NodeConnection(
            id=new_id(),
            from_node_id=from_node_id,
            to_node_id=to_node_id,
            connection_type=connection_type or ConnectionType.SEQUENCE,
            description=description or "",
            weight=max(1, min(10, weight or 1)),
        )
        with self.store.transaction() as conn:
            for node_id in (from_node_id, to_node_id):
                if self.store.get_node(node_id, conn=conn) is None:
                    raise NotFoundError(f"story node not found: {node_id}")
            self.store.insert_connection(conn, connection)
        return connection

    def delete_connection(self, connection_id: str) -> None:
        if not self.store.delete_connection(connection_id):
            raise NotFoundError(f"node connection not found: {connection_id}")


def _non_empty(changes: Dict[str, Any], fields) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    for name in fields:
        value = changes.get(name)
        if value is None or value == "" or value == []:
            continue
        updates[name] = value
    return updates
