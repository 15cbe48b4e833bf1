import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import GenerationError, GenerationTimeout, NotFoundError, ParseError
from core.llm_client import CompletionOptions, LLMClient, LLMConfig, LLMProvider, normalize_provider
from generators import GeneratorSuite
from generators.base import GenerationConfig
from models import (
    CamelModel,
    Chapter,
    Character,
    ConnectionType,
    NodeConnection,
    NodeStatus,
    NodeType,
    Novel,
    PlotPoint,
    Position,
    StoryNode,
    Storyline,
    StorylineStatus,
    StorylineType,
    StorylineWithStats,
    WritingGoals,
)
from models.generation import (
    AcceptStorylinesRequest,
    ChapterDraft,
    ChapterGenerateRequest,
    ChapterSuggestion,
    ChapterSuggestionsRequest,
    ChapterSummaryRequest,
    CharacterGenerateRequest,
    CharacterProfile,
    ChatRequest,
    ContinueRequest,
    EnhanceTextRequest,
    ExpandContentRequest,
    ExtractSamplesRequest,
    GeneratedConnection,
    GoalRequest,
    NovelSetting,
    NovelSettingRequest,
    PlotDesign,
    PlotGenerateRequest,
    RefineRequest,
    RelationshipRequest,
    SettingDraft,
    SettingEnhanceRequest,
    SettingGenerateRequest,
    StorylineExpandNodeRequest,
    StorylineExpandPartRequest,
    StorylineGenerateRequest,
    StorylineGenerateResponse,
    StorylineOptimizeRequest,
    StyleAnalysis,
    StyleAnalysisRequest,
    StyleSamples,
    SuggestConnectionsRequest,
    TextResult,
)
from services.context_assembler import ContextAssembler
from services.storyline_graph import StorylineGraphService
from services.streaming import relay, sse_response, stream_call, stream_completion
from storage import NovelStore, new_id

BACKEND_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    database_path: str = "../data/storyloom.db"

    llm_provider: str = "openai"
    llm_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("llm_api_key", "openai_api_key"),
    )
    llm_base_url: Optional[str] = None
    llm_model: Optional[str] = None
    ollama_base_url: Optional[str] = None
    ollama_model: Optional[str] = None
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4000
    llm_request_timeout_seconds: float = 120
    generation_timeout_seconds: float = 300

    log_level: str = "INFO"
    enable_http_logging: bool = True
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=str(BACKEND_ROOT / ".env"),
        env_file_encoding="utf-8",
    )


def build_llm_config(settings: Settings) -> LLMConfig:
    """Turn flat settings into the explicit provider config handed to clients."""
    provider = normalize_provider(settings.llm_provider)
    if provider == LLMProvider.OLLAMA:
        base_url = settings.ollama_base_url or settings.llm_base_url
        model = settings.ollama_model or settings.llm_model
    else:
        base_url = settings.llm_base_url
        model = settings.llm_model
    return LLMConfig(
        provider=provider,
        api_key=settings.llm_api_key,
        base_url=base_url,
        model=model,
        chat_max_tokens=settings.llm_max_tokens,
        chat_temperature=settings.llm_temperature,
        request_timeout=settings.llm_request_timeout_seconds,
    )


settings = Settings()
app = FastAPI(title="Storyloom API", version="0.3.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("storyloom.api")
if settings.log_file:
    log_path = Path(settings.log_file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root_logger = logging.getLogger("storyloom")
    if not any(
        isinstance(handler, logging.FileHandler) and getattr(handler, "baseFilename", None) == str(log_path)
        for handler in root_logger.handlers
    ):
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
        file_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        root_logger.addHandler(file_handler)
        logger.info("file logging enabled path=%s", log_path)


@app.middleware("http")
async def http_access_log_middleware(request: Request, call_next):
    if not settings.enable_http_logging:
        return await call_next(request)

    request_id = uuid4().hex[:8]
    started = time.perf_counter()
    logger.info(
        "REQ start id=%s method=%s path=%s query=%s",
        request_id,
        request.method,
        request.url.path,
        request.url.query or "-",
    )
    try:
        response = await call_next(request)
    except Exception:
        elapsed = (time.perf_counter() - started) * 1000
        logger.exception("REQ failed id=%s duration_ms=%.2f", request_id, elapsed)
        raise

    elapsed = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "REQ end id=%s status=%s duration_ms=%.2f",
        request_id,
        response.status_code,
        elapsed,
    )
    return response


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    content: Dict[str, Any] = {"detail": exc.message}
    if isinstance(exc, ParseError):
        content["snippet"] = exc.snippet
    if exc.call is not None:
        content["callId"] = exc.call.id
    logger.warning(
        "generation error path=%s status=%d type=%s error=%s",
        request.url.path,
        exc.status_code,
        exc.__class__.__name__,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=content)


# Dependencies

_store: Optional[NovelStore] = None
_llm_client: Optional[LLMClient] = None


def database_path() -> Path:
    configured = Path(settings.database_path)
    if configured.is_absolute():
        return configured.resolve()
    return (BACKEND_ROOT / configured).resolve()


def get_store() -> NovelStore:
    global _store
    if _store is None:
        _store = NovelStore(str(database_path()))
        logger.info("store opened path=%s", _store.db_path)
    return _store


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient(build_llm_config(settings))
    return _llm_client


def get_generators(llm_client: LLMClient = Depends(get_llm_client)) -> GeneratorSuite:
    return GeneratorSuite(
        llm_client,
        GenerationConfig(model=llm_client.config.model, temperature=llm_client.config.chat_temperature),
    )


def get_assembler(store: NovelStore = Depends(get_store)) -> ContextAssembler:
    return ContextAssembler(store)


def get_graph(store: NovelStore = Depends(get_store)) -> StorylineGraphService:
    return StorylineGraphService(store)


async def run_generation(func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking generator call off the event loop, bounded by the generation timeout."""
    timeout = settings.generation_timeout_seconds
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GenerationTimeout(f"generation timed out after {timeout:g}s") from exc


def stream_generation(request: Request, llm_client: LLMClient, run: Callable[[Callable[[str], None]], Any]):
    llm_client.ensure_configured()
    segments, result = stream_call(run, settings.generation_timeout_seconds)
    return sse_response(relay(segments, result), request)


# Request models for the authoring surface


class NovelCreateRequest(CamelModel):
    title: str
    genre: str = ""
    description: str = ""
    world_setting: str = ""
    style_guide: str = ""
    tags: List[str] = Field(default_factory=list)


class CharacterCreateRequest(CamelModel):
    name: str
    description: str = ""


class PlotPointCreateRequest(CamelModel):
    title: str
    content: str = ""


class ChapterCreateRequest(CamelModel):
    order: int
    title: str
    content: str = ""
    summary: str = ""


class StorylineCreateRequest(CamelModel):
    novel_id: str
    title: str = ""
    description: str = ""
    type: Optional[StorylineType] = None
    status: Optional[StorylineStatus] = None
    priority: Optional[int] = None
    color: Optional[str] = None


class StorylineUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[StorylineType] = None
    status: Optional[StorylineStatus] = None
    priority: Optional[int] = None
    color: Optional[str] = None


class StoryNodeCreateRequest(CamelModel):
    storyline_id: str
    title: str = ""
    description: str = ""
    node_type: Optional[NodeType] = None
    position: Optional[Position] = None
    chapter_range: str = ""
    character_ids: List[str] = Field(default_factory=list)
    plot_point_ids: List[str] = Field(default_factory=list)
    status: Optional[NodeStatus] = None
    order_index: Optional[int] = None


class StoryNodeUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    node_type: Optional[NodeType] = None
    position: Optional[Position] = None
    chapter_range: Optional[str] = None
    character_ids: Optional[List[str]] = None
    plot_point_ids: Optional[List[str]] = None
    status: Optional[NodeStatus] = None
    order_index: Optional[int] = None


class ConnectionCreateRequest(CamelModel):
    from_node_id: str
    to_node_id: str
    connection_type: Optional[ConnectionType] = None
    description: str = ""
    weight: Optional[int] = None


# Health and runtime


@app.get("/health")
async def health(store: NovelStore = Depends(get_store)):
    return {
        "status": "healthy",
        "storylines": store.count_rows("storylines"),
        "storyNodes": store.count_rows("story_nodes"),
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/api/llm/status")
async def llm_status(llm_client: LLMClient = Depends(get_llm_client)):
    config = llm_client.config
    return {
        "provider": config.provider.value,
        "model": config.model,
        "baseUrl": config.base_url,
        "configured": config.is_configured,
    }


# Catalog


@app.post("/api/novels", response_model=Novel)
async def create_novel(body: NovelCreateRequest, store: NovelStore = Depends(get_store)):
    novel = Novel(id=new_id(), **body.model_dump())
    return store.add_novel(novel)


def _require_novel(store: NovelStore, novel_id: str) -> Novel:
    novel = store.get_novel(novel_id)
    if novel is None:
        raise NotFoundError(f"novel not found: {novel_id}")
    return novel


@app.get("/api/novels/{novel_id}", response_model=Novel)
async def get_novel(novel_id: str, store: NovelStore = Depends(get_store)):
    return _require_novel(store, novel_id)


@app.post("/api/novels/{novel_id}/characters", response_model=Character)
async def add_character(novel_id: str, body: CharacterCreateRequest, store: NovelStore = Depends(get_store)):
    _require_novel(store, novel_id)
    return store.add_character(Character(id=new_id(), novel_id=novel_id, **body.model_dump()))


@app.post("/api/novels/{novel_id}/plot-points", response_model=PlotPoint)
async def add_plot_point(novel_id: str, body: PlotPointCreateRequest, store: NovelStore = Depends(get_store)):
    _require_novel(store, novel_id)
    return store.add_plot_point(PlotPoint(id=new_id(), novel_id=novel_id, **body.model_dump()))


@app.post("/api/novels/{novel_id}/chapters", response_model=Chapter)
async def add_chapter(novel_id: str, body: ChapterCreateRequest, store: NovelStore = Depends(get_store)):
    _require_novel(store, novel_id)
    chapter = Chapter(
        id=new_id(),
        novel_id=novel_id,
        word_count=len(body.content.split()),
        **body.model_dump(),
    )
    return store.add_chapter(chapter)


@app.get("/api/ai/context/{novel_id}")
async def get_context(novel_id: str, assembler: ContextAssembler = Depends(get_assembler)):
    message = await asyncio.to_thread(assembler.build, novel_id)
    return {"novelId": novel_id, "message": message}


# Chat


@app.post("/api/ai/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    llm_client: LLMClient = Depends(get_llm_client),
    assembler: ContextAssembler = Depends(get_assembler),
):
    llm_client.ensure_configured()
    messages = [message.model_dump() for message in body.messages]
    if body.novel_id:
        messages = await asyncio.to_thread(assembler.with_context, body.novel_id, messages)
    options = CompletionOptions(temperature=body.temperature, max_tokens=body.max_tokens)

    if body.stream:
        segments = stream_completion(llm_client, messages, options, settings.generation_timeout_seconds)
        return sse_response(relay(segments), request)

    content = await run_generation(llm_client.complete, messages, options)
    return {"message": {"role": "assistant", "content": content}}


# Characters and plots


@app.post("/api/ai/character/generate", response_model=CharacterProfile)
async def generate_character(body: CharacterGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.character.generate, body)


@app.post("/api/ai/character/generate-stream")
async def generate_character_stream(
    body: CharacterGenerateRequest,
    request: Request,
    suite: GeneratorSuite = Depends(get_generators),
):
    return stream_generation(request, suite.llm_client, lambda emit: suite.character.generate_stream(body, emit))


@app.post("/api/ai/character/enhance", response_model=TextResult)
async def enhance_character(body: EnhanceTextRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.character.enhance_description, body.name, body.description)
    return TextResult(content=content)


@app.post("/api/ai/character/relationships", response_model=TextResult)
async def character_relationships(body: RelationshipRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(
        suite.character.suggest_relationships,
        body.character_a,
        body.description_a,
        body.character_b,
        body.description_b,
    )
    return TextResult(content=content)


@app.post("/api/ai/plot/generate", response_model=PlotDesign)
async def generate_plot(body: PlotGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.plot.generate, body)


@app.post("/api/ai/plot/enhance", response_model=TextResult)
async def enhance_plot(body: EnhanceTextRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.plot.enhance_content, body.title, body.content)
    return TextResult(content=content)


# Chapters


@app.post("/api/ai/chapter/generate", response_model=ChapterDraft)
async def generate_chapter(body: ChapterGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.chapter.generate, body)


@app.post("/api/ai/chapter/generate-stream")
async def generate_chapter_stream(
    body: ChapterGenerateRequest,
    request: Request,
    suite: GeneratorSuite = Depends(get_generators),
):
    return stream_generation(request, suite.llm_client, lambda emit: suite.chapter.generate_stream(body, emit))


@app.post("/api/ai/chapter/summary", response_model=TextResult)
async def summarize_chapter(body: ChapterSummaryRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.chapter.summarize, body.title, body.content)
    return TextResult(content=content)


@app.post("/api/ai/chapter/suggestions")
async def chapter_suggestions(body: ChapterSuggestionsRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    suggestions: List[ChapterSuggestion] = await run_generation(suite.chapter.suggest_next, body)
    return {"suggestions": [s.model_dump(by_alias=True) for s in suggestions]}


@app.post("/api/ai/chapter/outline", response_model=TextResult)
async def chapter_outline(body: ChapterGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return TextResult(content=await run_generation(suite.chapter.outline, body))


@app.post("/api/ai/chapter/refine", response_model=TextResult)
async def refine_chapter(body: RefineRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.chapter.refine, body.title, body.content, body.feedback)
    return TextResult(content=content)


@app.post("/api/ai/chapter/continue", response_model=TextResult)
async def continue_chapter(body: ContinueRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.chapter.continue_chapter, body.title, body.content, body.hint)
    return TextResult(content=content)


@app.post("/api/ai/chapter/expand", response_model=TextResult)
async def expand_chapter(body: ExpandContentRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return TextResult(content=await run_generation(suite.chapter.expand, body))


# Storyline generation


@app.post("/api/ai/storyline/generate", response_model=StorylineGenerateResponse)
async def generate_storylines(body: StorylineGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.storyline.generate, body)


@app.post("/api/ai/storyline/optimize", response_model=TextResult)
async def optimize_storyline(body: StorylineOptimizeRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.storyline.optimize, body.description, body.feedback)
    return TextResult(content=content)


@app.post("/api/ai/storyline/expand-part", response_model=TextResult)
async def expand_storyline_part(
    body: StorylineExpandPartRequest,
    suite: GeneratorSuite = Depends(get_generators),
):
    suite.llm_client.ensure_configured()
    content = await run_generation(
        suite.storyline.expand_part, body.full_description, body.selected_text, body.expand_hint
    )
    return TextResult(content=content)


@app.post("/api/ai/storyline/expand-node", response_model=TextResult)
async def expand_story_node(body: StorylineExpandNodeRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.storyline.expand_node, body.title, body.description, body.context)
    return TextResult(content=content)


@app.post("/api/ai/storyline/suggest-connections")
async def suggest_connections(body: SuggestConnectionsRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    connections: List[GeneratedConnection] = await run_generation(suite.storyline.suggest_connections, body.nodes)
    return {"connections": [c.model_dump(mode="json", by_alias=True) for c in connections]}


@app.post("/api/ai/storyline/accept")
async def accept_storylines(body: AcceptStorylinesRequest, graph: StorylineGraphService = Depends(get_graph)):
    outcomes = await asyncio.to_thread(graph.persist_generated, body.novel_id, body.storylines)
    return {
        "outcomes": [outcome.model_dump(by_alias=True) for outcome in outcomes],
        "persisted": sum(1 for outcome in outcomes if outcome.ok),
    }


# Settings


@app.post("/api/ai/setting/generate", response_model=SettingDraft)
async def generate_setting(body: SettingGenerateRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.setting.generate, body)


@app.post("/api/ai/setting/enhance", response_model=TextResult)
async def enhance_setting(body: SettingEnhanceRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    content = await run_generation(suite.setting.enhance, body.title, body.content, body.hint)
    return TextResult(content=content)


@app.post("/api/ai/novel/generate-setting", response_model=NovelSetting)
async def generate_novel_setting(body: NovelSettingRequest, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    return await run_generation(suite.setting.generate_novel_setting, body)


# Style


@app.post("/api/ai/style/analyze", response_model=StyleAnalysis)
async def analyze_style(body: StyleAnalysisRequest, suite: GeneratorSuite = Depends(get_generators)):
    if not body.samples and not body.full_text.strip():
        raise HTTPException(status_code=400, detail="samples or fullText is required")
    suite.llm_client.ensure_configured()
    return await run_generation(suite.style.analyze, body)


@app.post("/api/ai/style/extract-samples", response_model=StyleSamples)
async def extract_style_samples(body: ExtractSamplesRequest, suite: GeneratorSuite = Depends(get_generators)):
    style = suite.style
    return StyleSamples(
        samples=style.extract_samples(body.full_text, body.sample_count),
        dialogue=style.extract_dialogue_samples(body.full_text),
        descriptions=style.extract_description_samples(body.full_text),
    )


# Goals


@app.post("/api/ai/goals/generate", response_model=WritingGoals)
async def generate_goals(body: Optional[GoalRequest] = None, suite: GeneratorSuite = Depends(get_generators)):
    suite.llm_client.ensure_configured()
    history = body.history if body is not None else []
    return await run_generation(suite.goal.generate, history)


# Storyline graph CRUD


@app.get("/api/storylines/{novel_id}", response_model=List[StorylineWithStats])
async def list_storylines(novel_id: str, graph: StorylineGraphService = Depends(get_graph)):
    return graph.list_storylines(novel_id)


@app.post("/api/storylines", response_model=Storyline)
async def create_storyline(body: StorylineCreateRequest, graph: StorylineGraphService = Depends(get_graph)):
    data = body.model_dump(exclude_none=True, exclude={"novel_id"})
    return graph.create_storyline(body.novel_id, data)


@app.put("/api/storylines/{storyline_id}", response_model=Storyline)
async def update_storyline(
    storyline_id: str,
    body: StorylineUpdateRequest,
    graph: StorylineGraphService = Depends(get_graph),
):
    return graph.update_storyline(storyline_id, body.model_dump(exclude_none=True))


@app.delete("/api/storylines/{storyline_id}")
async def delete_storyline(storyline_id: str, graph: StorylineGraphService = Depends(get_graph)):
    graph.delete_storyline(storyline_id)
    return {"deleted": storyline_id}


@app.get("/api/story-nodes/{storyline_id}", response_model=List[StoryNode])
async def list_story_nodes(storyline_id: str, graph: StorylineGraphService = Depends(get_graph)):
    return graph.list_nodes(storyline_id)


@app.post("/api/story-nodes", response_model=StoryNode)
async def create_story_node(body: StoryNodeCreateRequest, graph: StorylineGraphService = Depends(get_graph)):
    data = body.model_dump(exclude_none=True, exclude={"storyline_id"})
    return graph.create_node(body.storyline_id, data)


@app.put("/api/story-nodes/{node_id}", response_model=StoryNode)
async def update_story_node(
    node_id: str,
    body: StoryNodeUpdateRequest,
    graph: StorylineGraphService = Depends(get_graph),
):
    return graph.update_node(node_id, body.model_dump(exclude_none=True))


@app.delete("/api/story-nodes/{node_id}")
async def delete_story_node(node_id: str, graph: StorylineGraphService = Depends(get_graph)):
    graph.delete_node(node_id)
    return {"deleted": node_id}


@app.get("/api/node-connections", response_model=List[NodeConnection])
async def list_node_connections(
    storyline_id: str = Query(..., alias="storylineId"),
    graph: StorylineGraphService = Depends(get_graph),
):
    return graph.list_connections(storyline_id)


@app.post("/api/node-connections", response_model=NodeConnection)
async def create_node_connection(body: ConnectionCreateRequest, graph: StorylineGraphService = Depends(get_graph)):
    return graph.create_connection(
        body.from_node_id,
        body.to_node_id,
        connection_type=body.connection_type,
        description=body.description,
        weight=body.weight,
    )


@app.delete("/api/node-connections/{connection_id}")
async def delete_node_connection(connection_id: str, graph: StorylineGraphService = Depends(get_graph)):
    graph.delete_connection(connection_id)
    return {"deleted": connection_id}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
