"""
Ask Your Graph FastAPI Application

A REST API exposing `run_query` to remote collaborators (LLM tool layers, UIs).
Each session owns an explicit ConversationState holding its published results.
"""

import os
from collections import OrderedDict
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from askgraph.config import Config
from askgraph.core.factory import GraphStoreFactory, LLMFactory
from askgraph.models.intent import AutomaticExpansionMode
from askgraph.models.plan import ToolParams
from askgraph.models.policy import AccessMode
from askgraph.models.results import MergeMode, ResultSet, ResultSummary
from askgraph.services.query_engine import AskGraphEngine
from askgraph.services.result_lifecycle import ConversationState, summarize
from askgraph.utils.exceptions import ParseError, PlanError, QueryError
from askgraph.utils.logger import get_logger, setup_logging

# Global engine instance
engine: AskGraphEngine | None = None
# Named conversations, least recently used first
sessions: OrderedDict[str, ConversationState] = OrderedDict()
logger = get_logger(__name__)


# Pydantic models for API
class QueryRequest(BaseModel):
    """Request model for running a query."""

    request: str = Field(..., min_length=1, description="Symbolic or natural-language request")
    session_id: str | None = Field(
        default=None, description="Conversation to publish into (one-shot when unset)"
    )
    access_mode: AccessMode | None = Field(default=None, description="private, balanced or full")
    merge_mode: MergeMode = Field(default=MergeMode.REPLACE)
    expansion_mode: AutomaticExpansionMode | None = None
    summary_only: bool = Field(default=False, description="Return the compact summary only")


class ToolRequest(BaseModel):
    """Request model for running one search tool directly."""

    params: ToolParams = Field(..., description="Tool parameters; `tool` selects the tool")
    session_id: str | None = Field(default=None, description="Conversation for prior results")
    access_mode: AccessMode | None = None


class QueryResponse(BaseModel):
    """Response model for a query."""

    session_id: str
    results: ResultSet | None = None
    summary: ResultSummary | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    engine_initialized: bool
    graph_store: str
    llm: str
    sessions: int


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global engine

    # Load configuration: env vars > YAML (ASKGRAPH_CONFIG) > defaults
    config = Config.from_env_or_yaml(yaml_path=os.getenv("ASKGRAPH_CONFIG", "config.yaml"))

    setup_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        log_dir=config.logging.log_dir,
        file_rotation=config.logging.file_rotation,
        file_retention=config.logging.file_retention,
        compression=config.logging.compression,
        serialize=config.logging.serialize,
    )

    logger.info("Starting Ask Your Graph server")
    logger.info(
        f"Configuration: LLM={config.llm.provider}/{config.llm.model}, "
        f"Graph={config.graph_store.backend}:{config.graph_store.db_path}, "
        f"Access={config.access.default_mode}"
    )

    engine = AskGraphEngine(
        graph_store=GraphStoreFactory.create(config.graph_store),
        llm=LLMFactory.create(config.llm),
        config=config,
    )
    await engine.initialize()

    yield

    logger.info("Shutting down Ask Your Graph server")
    await engine.close()
    sessions.clear()
    logger.info("Cleanup complete")


app = FastAPI(
    title="Ask Your Graph API",
    description="Query compilation and adaptive retrieval over a block-based knowledge graph",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_engine() -> AskGraphEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def _session(session_id: str) -> ConversationState:
    state = sessions.get(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Session not found")
    sessions.move_to_end(session_id)
    return state


def _open_session(current: AskGraphEngine, session_id: str | None) -> ConversationState:
    """
    Conversation state for a request.

    Requests without a session id run in a one-shot conversation that is not
    kept. Named sessions are kept up to `max_conversations`; the least
    recently used one is evicted beyond that.
    """
    concurrency = current.config.search.concurrent_requests
    if not session_id:
        return ConversationState(concurrency=concurrency)

    state = sessions.get(session_id)
    if state is None:
        state = ConversationState(session_id=session_id, concurrency=concurrency)
        sessions[session_id] = state
    sessions.move_to_end(session_id)

    while len(sessions) > current.config.search.max_conversations:
        evicted, _ = sessions.popitem(last=False)
        logger.info(f"Evicted session {evicted}")
    return state


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if engine else "initializing",
        engine_initialized=engine is not None,
        graph_store=engine.config.graph_store.backend if engine else "",
        llm=engine.config.llm.provider if engine else "",
        sessions=len(sessions),
    )


@app.post("/query", response_model=QueryResponse)
async def run_query(request: QueryRequest):
    """
    Run a request and publish its results into the session.

    Symbolic requests use the query language (`[[page]] + term -[[DONE]]`,
    `A > B`, `UNION(q1, q2)`, ...); anything else is parsed as natural language.
    """
    current = _require_engine()
    state = _open_session(current, request.session_id)
    policy = current.default_policy(request.access_mode)

    try:
        result_set = await current.run_query(
            request.request,
            policy,
            state,
            merge_mode=request.merge_mode,
            expansion_mode=request.expansion_mode,
        )
    except ParseError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": e.reason, "position": e.position, "token": e.token},
        ) from e
    except PlanError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
    except QueryError as e:
        logger.error(f"Query failed: {e}")
        raise HTTPException(status_code=502, detail=e.message) from e

    if request.summary_only:
        summary = summarize(result_set, current.tokenizer)
        return QueryResponse(session_id=state.session_id, summary=summary)
    return QueryResponse(session_id=state.session_id, results=result_set)


@app.post("/tools", response_model=ResultSet)
async def run_tool(request: ToolRequest):
    """
    Run one tool of the catalogue (e.g. `get_node_details`,
    `extract_hierarchy_content`) without publishing its results.
    """
    current = _require_engine()
    state = _session(request.session_id) if request.session_id else None

    try:
        return await current.run_tool(
            request.params, current.default_policy(request.access_mode), state
        )
    except PlanError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
    except QueryError as e:
        logger.error(f"Tool failed: {e}")
        raise HTTPException(status_code=502, detail=e.message) from e


@app.get("/sessions/{session_id}/results", response_model=ResultSet | None)
async def get_results(session_id: str):
    """Currently published results of a session."""
    return _session(session_id).lifecycle.current()


@app.get("/sessions/{session_id}/summary", response_model=ResultSummary | None)
async def get_summary(session_id: str):
    """Compact metadata form of the session's current results."""
    return _session(session_id).lifecycle.summary()


@app.delete("/sessions/{session_id}/results")
async def clear_results(session_id: str):
    """Clear the session's current results (history is kept)."""
    _session(session_id).lifecycle.clear()
    return {"status": "cleared", "session_id": session_id}
