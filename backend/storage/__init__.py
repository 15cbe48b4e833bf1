import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional
from uuid import uuid4

from models import (
    Chapter,
    Character,
    NodeConnection,
    Novel,
    PlotPoint,
    Position,
    StoryNode,
    Storyline,
    StorylineWithStats,
)

logger = logging.getLogger("storyloom.storage")


def new_id() -> str:
    return str(uuid4())


def _dump_list(values: List[str]) -> str:
    seen: List[str] = []
    for value in values or []:
        if value not in seen:
            seen.append(value)
    return json.dumps(seen, ensure_ascii=False)


def _load_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


class NovelStore:
    """SQLite persistence for the novel catalog and the storyline graph.

    A fresh connection is opened per operation. Multi-row writes go through
    ``transaction()`` so they commit or roll back as a unit.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
        except sqlite3.OperationalError as exc:
            raise sqlite3.OperationalError(f"{exc} (db_path={self.db_path})") from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=10000")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def _init_db(self):
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS novels (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    genre TEXT,
                    description TEXT,
                    world_setting TEXT,
                    style_guide TEXT,
                    tags TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS characters (
                    id TEXT PRIMARY KEY,
                    novel_id TEXT NOT NULL REFERENCES novels(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS plot_points (
                    id TEXT PRIMARY KEY,
                    novel_id TEXT NOT NULL REFERENCES novels(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    content TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS chapters (
                    id TEXT PRIMARY KEY,
                    novel_id TEXT NOT NULL REFERENCES novels(id) ON DELETE CASCADE,
                    chapter_order INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT,
                    summary TEXT,
                    word_count INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS storylines (
                    id TEXT PRIMARY KEY,
                    novel_id TEXT NOT NULL REFERENCES novels(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    type TEXT NOT NULL DEFAULT 'main',
                    status TEXT NOT NULL DEFAULT 'active',
                    priority INTEGER DEFAULT 0,
                    color TEXT DEFAULT '#3B82F6',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS story_nodes (
                    id TEXT PRIMARY KEY,
                    storyline_id TEXT NOT NULL REFERENCES storylines(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    node_type TEXT NOT NULL DEFAULT 'event',
                    pos_x REAL DEFAULT 0,
                    pos_y REAL DEFAULT 0,
                    chapter_range TEXT,
                    character_ids TEXT,
                    plot_point_ids TEXT,
                    status TEXT NOT NULL DEFAULT 'planned',
                    order_index INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS node_connections (
                    id TEXT PRIMARY KEY,
                    from_node_id TEXT NOT NULL REFERENCES story_nodes(id) ON DELETE CASCADE,
                    to_node_id TEXT NOT NULL REFERENCES story_nodes(id) ON DELETE CASCADE,
                    connection_type TEXT NOT NULL DEFAULT 'sequence',
                    description TEXT,
                    weight INTEGER DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (from_node_id <> to_node_id)
                )
                """
            )
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_chapters_novel ON chapters(novel_id, chapter_order)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_storylines_novel ON storylines(novel_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_nodes_storyline ON story_nodes(storyline_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_connections_from ON node_connections(from_node_id)")
            conn.commit()

    # Catalog

    def add_novel(self, novel: Novel) -> Novel:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO novels
                (id, title, genre, description, world_setting, style_guide, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    novel.id,
                    novel.title,
                    novel.genre,
                    novel.description,
                    novel.world_setting,
                    novel.style_guide,
                    json.dumps(novel.tags, ensure_ascii=False),
                    novel.created_at.isoformat(),
                    novel.updated_at.isoformat(),
                ),
            )
        return novel

    def get_novel(self, novel_id: str) -> Optional[Novel]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM novels WHERE id = ?", (novel_id,)).fetchone()
        if row is None:
            return None
        return Novel(
            id=row["id"],
            title=row["title"],
            genre=row["genre"] or "",
            description=row["description"] or "",
            world_setting=row["world_setting"] or "",
            style_guide=row["style_guide"] or "",
            tags=_load_list(row["tags"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def add_character(self, character: Character) -> Character:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO characters (id, novel_id, name, description, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    character.id,
                    character.novel_id,
                    character.name,
                    character.description,
                    character.created_at.isoformat(),
                ),
            )
        return character

    def list_characters(self, novel_id: str) -> List[Character]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM characters WHERE novel_id = ? ORDER BY created_at, rowid",
                (novel_id,),
            ).fetchall()
        return [
            Character(
                id=row["id"],
                novel_id=row["novel_id"],
                name=row["name"],
                description=row["description"] or "",
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def add_plot_point(self, plot_point: PlotPoint) -> PlotPoint:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO plot_points (id, novel_id, title, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    plot_point.id,
                    plot_point.novel_id,
                    plot_point.title,
                    plot_point.content,
                    plot_point.created_at.isoformat(),
                ),
            )
        return plot_point

    def list_plot_points(self, novel_id: str) -> List[PlotPoint]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM plot_points WHERE novel_id = ? ORDER BY created_at, rowid",
                (novel_id,),
            ).fetchall()
        return [
            PlotPoint(
                id=row["id"],
                novel_id=row["novel_id"],
                title=row["title"],
                content=row["content"] or "",
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def add_chapter(self, chapter: Chapter) -> Chapter:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO chapters
                (id, novel_id, chapter_order, title, content, summary, word_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chapter.id,
                    chapter.novel_id,
                    chapter.order,
                    chapter.title,
                    chapter.content,
                    chapter.summary,
                    chapter.word_count,
                    chapter.created_at.isoformat(),
                    chapter.updated_at.isoformat(),
                ),
            )
        return chapter

    def recent_chapters(self, novel_id: str, limit: int = 5) -> List[Chapter]:
        """Chapters with the highest order first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM chapters WHERE novel_id = ? ORDER BY chapter_order DESC LIMIT ?",
                (novel_id, limit),
            ).fetchall()
        return [
            Chapter(
                id=row["id"],
                novel_id=row["novel_id"],
                order=row["chapter_order"],
                title=row["title"],
                content=row["content"] or "",
                summary=row["summary"] or "",
                word_count=row["word_count"] or 0,
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    # Storylines

    def insert_storyline(self, conn: sqlite3.Connection, storyline: Storyline):
        conn.execute(
            """
            INSERT INTO storylines
            (id, novel_id, title, description, type, status, priority, color, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                storyline.id,
                storyline.novel_id,
                storyline.title,
                storyline.description,
                storyline.type.value,
                storyline.status.value,
                storyline.priority,
                storyline.color,
                storyline.created_at.isoformat(),
                storyline.updated_at.isoformat(),
            ),
        )

    def get_storyline(self, storyline_id: str) -> Optional[Storyline]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM storylines WHERE id = ?", (storyline_id,)).fetchone()
        return self._row_to_storyline(row) if row else None

    def update_storyline(self, storyline: Storyline):
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE storylines
                SET title = ?, description = ?, type = ?, status = ?, priority = ?, color = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    storyline.title,
                    storyline.description,
                    storyline.type.value,
                    storyline.status.value,
                    storyline.priority,
                    storyline.color,
                    storyline.updated_at.isoformat(),
                    storyline.id,
                ),
            )

    def delete_storyline(self, storyline_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM storylines WHERE id = ?", (storyline_id,))
            return cursor.rowcount > 0

    def list_storylines(self, novel_id: str) -> List[StorylineWithStats]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT s.*,
                       COUNT(n.id) AS node_count,
                       COALESCE(SUM(CASE WHEN n.status = 'completed' THEN 1 ELSE 0 END), 0) AS completed_nodes
                FROM storylines s
                LEFT JOIN story_nodes n ON n.storyline_id = s.id
                WHERE s.novel_id = ?
                GROUP BY s.id
                ORDER BY s.priority DESC, s.created_at ASC, s.rowid ASC
                """,
                (novel_id,),
            ).fetchall()
        result: List[StorylineWithStats] = []
        for row in rows:
            base = self._row_to_storyline(row)
            node_count = int(row["node_count"] or 0)
            completed = int(row["completed_nodes"] or 0)
            progress = completed * 100 // node_count if node_count else 0
            result.append(
                StorylineWithStats(
                    **base.model_dump(),
                    node_count=node_count,
                    completed_nodes=completed,
                    progress=progress,
                )
            )
        return result

    def _row_to_storyline(self, row: sqlite3.Row) -> Storyline:
        return Storyline(
            id=row["id"],
            novel_id=row["novel_id"],
            title=row["title"],
            description=row["description"] or "",
            type=row["type"],
            status=row["status"],
            priority=row["priority"] or 0,
            color=row["color"] or "#3B82F6",
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # Nodes

    def insert_node(self, conn: sqlite3.Connection, node: StoryNode):
        conn.execute(
            """
            INSERT INTO story_nodes
            (id, storyline_id, title, description, node_type, pos_x, pos_y, chapter_range,
             character_ids, plot_point_ids, status, order_index, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                node.id,
                node.storyline_id,
                node.title,
                node.description,
                node.node_type.value,
                node.position.x,
                node.position.y,
                node.chapter_range,
                _dump_list(node.character_ids),
                _dump_list(node.plot_point_ids),
                node.status.value,
                node.order_index,
                node.created_at.isoformat(),
                node.updated_at.isoformat(),
            ),
        )

    def get_node(self, node_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[StoryNode]:
        if conn is not None:
            row = conn.execute("SELECT * FROM story_nodes WHERE id = ?", (node_id,)).fetchone()
            return self._row_to_node(row) if row else None
        with self._connection() as own:
            row = own.execute("SELECT * FROM story_nodes WHERE id = ?", (node_id,)).fetchone()
        return self._row_to_node(row) if row else None

    def update_node(self, node: StoryNode):
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE story_nodes
                SET title = ?, description = ?, node_type = ?, pos_x = ?, pos_y = ?, chapter_range = ?,
                    character_ids = ?, plot_point_ids = ?, status = ?, order_index = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    node.title,
                    node.description,
                    node.node_type.value,
                    node.position.x,
                    node.position.y,
                    node.chapter_range,
                    _dump_list(node.character_ids),
                    _dump_list(node.plot_point_ids),
                    node.status.value,
                    node.order_index,
                    node.updated_at.isoformat(),
                    node.id,
                ),
            )

    def delete_node(self, node_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM story_nodes WHERE id = ?", (node_id,))
            return cursor.rowcount > 0

    def list_nodes(self, storyline_id: str) -> List[StoryNode]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM story_nodes WHERE storyline_id = ? ORDER BY order_index ASC, rowid ASC",
                (storyline_id,),
            ).fetchall()
        return [self._row_to_node(row) for row in rows]

    def _row_to_node(self, row: sqlite3.Row) -> StoryNode:
        return StoryNode(
            id=row["id"],
            storyline_id=row["storyline_id"],
            title=row["title"],
            description=row["description"] or "",
            node_type=row["node_type"],
            position=Position(x=row["pos_x"] or 0, y=row["pos_y"] or 0),
            chapter_range=row["chapter_range"] or "",
            character_ids=_load_list(row["character_ids"]),
            plot_point_ids=_load_list(row["plot_point_ids"]),
            status=row["status"],
            order_index=row["order_index"] or 0,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # Connections

    def insert_connection(self, conn: sqlite3.Connection, connection: NodeConnection):
        conn.execute(
            """
            INSERT INTO node_connections
            (id, from_node_id, to_node_id, connection_type, description, weight, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                connection.id,
                connection.from_node_id,
                connection.to_node_id,
                connection.connection_type.value,
                connection.description,
                connection.weight,
                connection.created_at.isoformat(),
                connection.updated_at.isoformat(),
            ),
        )

    def delete_connection(self, connection_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM node_connections WHERE id = ?", (connection_id,))
            return cursor.rowcount > 0

    def list_connections(self, storyline_id: str) -> List[NodeConnection]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT c.*
                FROM node_connections c
                JOIN story_nodes n ON c.from_node_id = n.id
                WHERE n.storyline_id = ?
                ORDER BY c.created_at ASC, c.rowid ASC
                """,
                (storyline_id,),
            ).fetchall()
        return [
            NodeConnection(
                id=row["id"],
                from_node_id=row["from_node_id"],
                to_node_id=row["to_node_id"],
                connection_type=row["connection_type"],
                description=row["description"] or "",
                weight=row["weight"] or 1,
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    def count_rows(self, table: str) -> int:
        if table not in {"storylines", "story_nodes", "node_connections"}:
            raise ValueError(f"unsupported table: {table}")
        with self._connection() as conn:
            return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
