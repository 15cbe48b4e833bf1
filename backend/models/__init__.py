from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StorylineType(str, Enum):
    MAIN = "main"
    CHARACTER = "character"
    PLOT = "plot"
    THEME = "theme"


class StorylineStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class NodeType(str, Enum):
    START = "start"
    EVENT = "event"
    TURNING = "turning"
    MERGE = "merge"
    END = "end"


class NodeStatus(str, Enum):
    PLANNED = "planned"
    WRITING = "writing"
    COMPLETED = "completed"


class ConnectionType(str, Enum):
    SEQUENCE = "sequence"
    CAUSE = "cause"
    PARALLEL = "parallel"
    CONDITION = "condition"


class Novel(CamelModel):
    id: str
    title: str
    genre: str = ""
    description: str = ""
    world_setting: str = ""
    style_guide: str = ""
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Character(CamelModel):
    id: str
    novel_id: str
    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class PlotPoint(CamelModel):
    id: str
    novel_id: str
    title: str
    content: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class Chapter(CamelModel):
    id: str
    novel_id: str
    order: int
    title: str
    content: str = ""
    summary: str = ""
    word_count: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Storyline(CamelModel):
    id: str
    novel_id: str
    title: str
    description: str = ""
    type: StorylineType = StorylineType.MAIN
    status: StorylineStatus = StorylineStatus.ACTIVE
    priority: int = 0
    color: str = "#3B82F6"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class StorylineWithStats(Storyline):
    node_count: int = 0
    completed_nodes: int = 0
    progress: int = 0


class Position(CamelModel):
    x: float = 0
    y: float = 0


class StoryNode(CamelModel):
    id: str
    storyline_id: str
    title: str
    description: str = ""
    node_type: NodeType = NodeType.EVENT
    position: Position = Field(default_factory=Position)
    chapter_range: str = ""
    character_ids: List[str] = Field(default_factory=list)
    plot_point_ids: List[str] = Field(default_factory=list)
    status: NodeStatus = NodeStatus.PLANNED
    order_index: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class NodeConnection(CamelModel):
    id: str
    from_node_id: str
    to_node_id: str
    connection_type: ConnectionType = ConnectionType.SEQUENCE
    description: str = ""
    weight: int = Field(default=1, ge=1, le=10)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class WritingProgress(CamelModel):
    date: str
    word_count: int = 0
    chapter_count: int = 0


class WritingGoals(CamelModel):
    daily_words: int
    weekly_words: int
    monthly_words: int


class PersistOutcome(CamelModel):
    title: str
    storyline_id: Optional[str] = None
    node_ids: List[str] = Field(default_factory=list)
    connection_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
