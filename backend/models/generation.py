from enum import Enum
from typing import Any, List, Optional, Type
from pydantic import Field, field_validator

from models import (
    CamelModel,
    ConnectionType,
    NodeStatus,
    NodeType,
    StorylineType,
    WritingProgress,
)


def _coerce_enum(value: Any, enum_cls: Type[Enum], default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    candidate = str(value or "").strip().lower()
    try:
        return enum_cls(candidate)
    except ValueError:
        return default


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, parsed))


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    return [str(value)]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    return str(value)


class ChatMessage(CamelModel):
    role: str
    content: str


class ChatRequest(CamelModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    novel_id: Optional[str] = None
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


# Character / plot


class CharacterGenerateRequest(CamelModel):
    name: str
    novel_title: str = ""
    novel_genre: str = ""
    role: str = ""
    personality: str = ""
    background: str = ""


class CharacterProfile(CamelModel):
    name: str = ""
    description: str = ""
    personality: str = ""
    background: str = ""
    appearance: str = ""
    skills: str = ""
    goals: str = ""
    weaknesses: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_text(value)


class PlotGenerateRequest(CamelModel):
    title: str
    novel_title: str = ""
    novel_genre: str = ""
    world_setting: str = ""
    characters: str = ""
    plot_type: str = ""
    context: str = ""


class PlotDesign(CamelModel):
    title: str = ""
    content: str = ""
    summary: str = ""
    conflict: str = ""
    development: str = ""
    characters: str = ""
    impact: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_text(value)


# Chapter


class ChapterGenerateRequest(CamelModel):
    title: str
    chapter_number: int = 1
    novel_title: str = ""
    novel_genre: str = ""
    world_setting: str = ""
    style_guide: str = ""
    outline: str = ""
    characters: List[str] = Field(default_factory=list)
    plot_points: List[str] = Field(default_factory=list)
    previous_summary: str = ""
    target_word_count: int = 2000
    writing_style: str = ""
    focus_points: List[str] = Field(default_factory=list)
    avoid_complete: bool = True

    @field_validator("target_word_count", mode="before")
    @classmethod
    def _default_word_count(cls, value: Any) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return 2000
        return parsed if parsed > 0 else 2000


class ChapterDraft(CamelModel):
    title: str = ""
    content: str = ""
    summary: str = ""
    key_events: List[str] = Field(default_factory=list)
    character_dev: str = ""
    plot_progress: str = ""
    foreshadowing: str = ""
    next_chapter_hint: str = ""

    @field_validator("key_events", mode="before")
    @classmethod
    def _events(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @field_validator(
        "title", "content", "summary", "character_dev", "plot_progress",
        "foreshadowing", "next_chapter_hint", mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_text(value)


class ChapterSummaryRequest(CamelModel):
    title: str
    content: str


class ChapterSuggestionsRequest(CamelModel):
    novel_title: str = ""
    novel_genre: str = ""
    world_setting: str = ""
    previous_summary: str = ""
    chapter_number: int = 1


class ChapterSuggestion(CamelModel):
    title: str = ""
    outline: str = ""
    description: str = ""
    type: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_text(value)


class RefineRequest(CamelModel):
    title: str = ""
    content: str
    feedback: str


class ContinueRequest(CamelModel):
    title: str = ""
    content: str
    hint: str = ""


class ExpandContentRequest(CamelModel):
    original_content: str = ""
    expand_target: str
    expand_hint: str = ""
    novel_genre: str = ""
    world_setting: str = ""
    style_guide: str = ""


# Storyline graph, index-addressed until persisted


class ExistingStoryline(CamelModel):
    title: str
    description: str = ""


class StorylineGenerateRequest(CamelModel):
    novel_title: str = ""
    novel_genre: str = ""
    world_setting: str = ""
    characters: List[str] = Field(default_factory=list)
    main_conflict: str = ""
    storyline_count: int = 3
    nodes_per_line: int = 6
    existing_storylines: List[ExistingStoryline] = Field(default_factory=list)

    @field_validator("storyline_count", mode="before")
    @classmethod
    def _default_storyline_count(cls, value: Any) -> int:
        parsed = _clamp_int(value, 0, 10, 3)
        return parsed if parsed > 0 else 3

    @field_validator("nodes_per_line", mode="before")
    @classmethod
    def _default_nodes_per_line(cls, value: Any) -> int:
        parsed = _clamp_int(value, 0, 30, 6)
        return parsed if parsed > 0 else 6


class GeneratedNode(CamelModel):
    title: str = ""
    description: str = ""
    node_type: NodeType = NodeType.EVENT
    chapter_range: str = ""
    order_index: int = 0
    status: NodeStatus = NodeStatus.PLANNED

    @field_validator("node_type", mode="before")
    @classmethod
    def _node_type(cls, value: Any) -> NodeType:
        return _coerce_enum(value, NodeType, NodeType.EVENT)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> NodeStatus:
        return _coerce_enum(value, NodeStatus, NodeStatus.PLANNED)

    @field_validator("chapter_range", mode="before")
    @classmethod
    def _chapter_range(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("order_index", mode="before")
    @classmethod
    def _order_index(cls, value: Any) -> int:
        return _clamp_int(value, 0, 10_000, 0)


class GeneratedConnection(CamelModel):
    from_index: int
    to_index: int
    connection_type: ConnectionType = ConnectionType.SEQUENCE
    description: str = ""
    weight: int = 1

    @field_validator("connection_type", mode="before")
    @classmethod
    def _connection_type(cls, value: Any) -> ConnectionType:
        return _coerce_enum(value, ConnectionType, ConnectionType.SEQUENCE)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight(cls, value: Any) -> int:
        return _clamp_int(value, 1, 10, 1)


class GeneratedStoryline(CamelModel):
    title: str = ""
    description: str = ""
    type: StorylineType = StorylineType.MAIN
    color: str = "#3B82F6"
    priority: int = 5
    nodes: List[GeneratedNode] = Field(default_factory=list)
    connections: List[GeneratedConnection] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> StorylineType:
        return _coerce_enum(value, StorylineType, StorylineType.MAIN)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> int:
        return _clamp_int(value, 1, 10, 5)

    @field_validator("color", mode="before")
    @classmethod
    def _color(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or "#3B82F6"


class StorylineGenerateResponse(CamelModel):
    storylines: List[GeneratedStoryline] = Field(default_factory=list)


class StorylineOptimizeRequest(CamelModel):
    description: str
    feedback: str


class StorylineExpandPartRequest(CamelModel):
    full_description: str = ""
    selected_text: str
    expand_hint: str = ""


class StorylineExpandNodeRequest(CamelModel):
    title: str
    description: str = ""
    context: str = ""


class SuggestConnectionsRequest(CamelModel):
    nodes: List[str]


class AcceptStorylinesRequest(CamelModel):
    novel_id: str
    storylines: List[GeneratedStoryline]


# Settings


class SettingGenerateRequest(CamelModel):
    novel_title: str = ""
    novel_genre: str = ""
    category: str = "other"
    title: str = ""
    context: str = ""
    requirements: str = ""


class SettingDraft(CamelModel):
    title: str = ""
    content: str = ""
    tags: str = ""


class SettingEnhanceRequest(CamelModel):
    title: str = ""
    content: str
    hint: str = ""


class NovelSettingRequest(CamelModel):
    genre: str
    fixed_fields: List[str] = Field(default_factory=list)
    title: str = ""
    description: str = ""
    world_setting: str = ""
    tags: str = ""
    feedback: str = ""


class NovelSetting(CamelModel):
    title: str = ""
    description: str = ""
    world_setting: str = ""
    tags: str = ""


# Style


class StyleAnalysisRequest(CamelModel):
    novel_title: str = ""
    novel_genre: str = ""
    samples: List[str] = Field(default_factory=list)
    analysis_type: str = ""
    full_text: str = ""


class StyleAnalysis(CamelModel):
    writing_style: str = ""
    key_features: List[str] = Field(default_factory=list)
    dialogue_style: str = ""
    description_style: str = ""
    pacing_style: str = ""
    vocabulary_level: str = ""
    sentence_pattern: str = ""
    examples: List[str] = Field(default_factory=list)
    style_guide: str = ""

    @field_validator("key_features", "examples", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @field_validator(
        "writing_style", "dialogue_style", "description_style", "pacing_style",
        "vocabulary_level", "sentence_pattern", "style_guide", mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_text(value)


class NovelChunk(CamelModel):
    label: str
    content: str
    position: int
    char_count: int


class ExtractSamplesRequest(CamelModel):
    full_text: str
    sample_count: int = 3


class StyleSamples(CamelModel):
    samples: List[str] = Field(default_factory=list)
    dialogue: List[str] = Field(default_factory=list)
    descriptions: List[str] = Field(default_factory=list)


# Goals


class GoalRequest(CamelModel):
    history: List[WritingProgress] = Field(default_factory=list)


# Simple text operations


class EnhanceTextRequest(CamelModel):
    name: str = ""
    title: str = ""
    content: str = ""
    description: str = ""


class RelationshipRequest(CamelModel):
    character_a: str
    description_a: str = ""
    character_b: str
    description_b: str = ""


class TextResult(CamelModel):
    content: str
