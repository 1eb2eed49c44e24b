"""
Chronicle: Forensic API Server
==============================

Read-only API over one narrative store.

Endpoints:
- GET /health                      -> Store status
- GET /api/v1/projection           -> State at (message, swipe)
- GET /api/v1/events/state         -> Live state events in a message range
- GET /api/v1/events/narrative     -> Live narrative events (optionally one chapter)
- GET /api/v1/milestones           -> Milestones for one pair
- GET /api/v1/verify               -> Invariant violations

Usage:
    CHRONICLE_STORE_PATH=store.json uvicorn chronicle.api.server:app
    CHRONICLE_STORE_PATH=store.json python -m chronicle.api.server
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..engine import NarrativeStore
from ..temporal.event_log import fold_order
from ..temporal.swipes import ChatMessage, canonical_swipe, parse_chat
from .mapper import (
    map_error,
    map_milestone,
    map_narrative_events,
    map_projection_to_dto,
    map_state_events,
)


logger = logging.getLogger(__name__)

STORE_PATH_ENV = "CHRONICLE_STORE_PATH"


class HealthResponse(BaseModel):
    status: str
    mode: str
    state_events: int
    narrative_events: int
    snapshots: int


class VerifyResponse(BaseModel):
    ok: bool
    violations: List[Dict[str, Any]]


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(store_path: Optional[str] = None) -> FastAPI:
    """
    Build the read-only app over the store at store_path (or the
    CHRONICLE_STORE_PATH environment variable).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        path = store_path or os.environ.get(STORE_PATH_ENV)
        app.state.store = None
        if not path:
            logger.warning("No store path configured; set %s", STORE_PATH_ENV)
        else:
            try:
                app.state.store = NarrativeStore.open(path)
                logger.info("Opened store at %s", path)
            except ValueError as exc:
                logger.warning("Failed to open store at %s: %s", path, exc)
        yield
        app.state.store = None

    app = FastAPI(
        title="Chronicle API",
        version="0.1.0",
        description="Read-only view over a narrative state store",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET"],  # read-only
        allow_headers=["*"],
    )

    def get_store(request: Request) -> NarrativeStore:
        store = getattr(request.app.state, "store", None)
        if store is None:
            raise HTTPException(status_code=503, detail="Store not available")
        return store

    def get_chat(chat: Optional[str]) -> List[ChatMessage]:
        try:
            return parse_chat(chat)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid chat: {chat!r}") from None

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        store = get_store(request)
        return HealthResponse(
            status="online",
            mode="read-only",
            state_events=len(store.log.active_state_events()),
            narrative_events=len(store.log.active_narrative_events()),
            snapshots=len(store.snapshots),
        )

    @app.get("/api/v1/projection")
    async def get_projection(
        request: Request,
        message_id: int = Query(..., ge=0),
        swipe_id: Optional[int] = Query(None, ge=0),
        chat: Optional[str] = None,
    ):
        """
        State as of (message_id, swipe_id). Without swipe_id the
        canonical swipe under `chat` is used.
        """
        store = get_store(request)
        messages = get_chat(chat)
        if swipe_id is None:
            swipe_id = canonical_swipe(message_id, messages)
        projection = store.project(message_id, swipe_id, messages)
        return map_projection_to_dto(projection, message_id, swipe_id)

    @app.get("/api/v1/events/state")
    async def get_state_events(
        request: Request,
        start: int = Query(0, ge=0),
        end: Optional[int] = Query(None, ge=0),
    ):
        store = get_store(request)
        if end is None:
            end = max(store.log.last_message_with_events(), start)
        if end < start:
            raise HTTPException(status_code=400, detail="end must not be before start")
        events = fold_order(store.log.state_events_in_range(start, end))
        return {"start": start, "end": end, "events": map_state_events(events)}

    @app.get("/api/v1/events/narrative")
    async def get_narrative_events(request: Request, chapter: Optional[int] = None):
        store = get_store(request)
        if chapter is None:
            events = store.log.active_narrative_events()
        else:
            events = fold_order(store.log.narrative_events_for_chapter(chapter))
        return {"chapter": chapter, "events": map_narrative_events(events)}

    @app.get("/api/v1/milestones")
    async def get_milestones(request: Request, a: str = Query(..., min_length=1), b: str = Query(..., min_length=1)):
        store = get_store(request)
        derived = store.derive_relationship(a, b)
        return {
            "pair": list(derived.pair),
            "status": derived.status.value,
            "milestones": [map_milestone(m) for m in store.milestones_for_pair(a, b)],
        }

    @app.get("/api/v1/verify", response_model=VerifyResponse)
    async def verify_store(request: Request, chat: Optional[str] = None):
        store = get_store(request)
        errors = store.verify(get_chat(chat))
        return VerifyResponse(ok=not errors, violations=[map_error(e) for e in errors])

    return app


app = create_app()


def main() -> None:
    """Serve the read-only API over CHRONICLE_STORE_PATH."""
    host = os.environ.get("CHRONICLE_HOST", "127.0.0.1")
    port = int(os.environ.get("CHRONICLE_PORT", "8000"))
    print("Starting Chronicle API Server...")
    print(f"Docs available at: http://{host}:{port}/docs")
    uvicorn.run("chronicle.api.server:app", host=host, port=port)


if __name__ == "__main__":
    main()
