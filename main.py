"""FastAPI application for the walk-in queue controller.

Exposes the actor operations over HTTP: the reception desk issues tickets,
module operators call / attend / complete, the admin toggles modules and
resets the day, and the public display reads the board or follows the
``/events`` stream.

The shared store is chosen from ``STATE_BACKEND`` at startup.  Tests (or an
embedding process) may put their own store on ``app.state.store`` first.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

import config
from display import admin_stats, build_board, module_summary, module_view, queue_preview
from models import UnknownModuleError
from schemas import BulkModulesRequest, ModuleActionRequest, TicketRequest
from services import InvalidActionError, issue_ticket, reset_system, run_module_action, set_all_modules
from store import RedisStateStore, SharedStateStore, build_store, parse_snapshot
from tickets import peek_code, peek_next, total_waiting

logging.basicConfig(
    level=config.LOG_LEVEL,
    format=config.LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Walk-in Queue Controller",
    description="Ticket issuance and service module assignment for a multi-counter service point",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    if getattr(app.state, "store", None) is None:
        app.state.store = build_store()
    logger.info("🚀 Queue controller started (%s store, %s modules)",
                type(app.state.store).__name__, config.MODULE_COUNT)


@app.on_event("shutdown")
def on_shutdown() -> None:
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


def get_store() -> SharedStateStore:
    return app.state.store


@app.exception_handler(UnknownModuleError)
async def unknown_module_handler(request: Request, exc: UnknownModuleError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc), "type": type(exc).__name__},
    )


@app.get("/")
def root() -> Dict[str, Any]:
    return {
        "service": "Walk-in Queue Controller",
        "status": "running",
        "version": app.version,
        "modules": config.MODULE_COUNT,
        "endpoints": {
            "reception": ["/tickets", "/queue", "/reception/preview"],
            "modules": ["/modules/{module_id}", "/modules/{module_id}/action"],
            "admin": ["/modules/bulk", "/admin/reset", "/admin/stats"],
            "display": ["/display/board", "/events"],
        },
    }


@app.get("/health")
def health_check() -> Dict[str, Any]:
    try:
        state = get_store().read()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {e}")
    return {
        "status": "healthy",
        "store": type(get_store()).__name__,
        "waiting": total_waiting(state),
        "lastUpdated": state.last_updated,
    }


@app.get("/state")
def get_state() -> Dict[str, Any]:
    return get_store().read().model_dump(mode="json", by_alias=True)


@app.get("/queue")
def get_queue() -> Dict[str, Any]:
    state = get_store().read()
    nxt = peek_next(state)
    return {
        "highQueue": [t.model_dump(mode="json", by_alias=True) for t in state.high_queue],
        "queue": [t.model_dump(mode="json", by_alias=True) for t in state.queue],
        "next": nxt.model_dump(mode="json", by_alias=True) if nxt else None,
        "nextCode": peek_code(state.ticket_counter),
        "total": total_waiting(state),
    }


@app.post("/tickets", status_code=201)
def create_ticket(request: TicketRequest) -> Dict[str, Any]:
    """Issue a ticket at the reception desk."""
    ticket, assigned_to, state = issue_ticket(get_store(), request.subject_id, request.priority)
    return {
        "ticket": ticket.model_dump(mode="json", by_alias=True),
        "assignedTo": assigned_to,
        "waiting": total_waiting(state),
        "nextCode": peek_code(state.ticket_counter),
    }


@app.get("/reception/preview")
def reception_preview() -> Dict[str, Any]:
    state = get_store().read()
    return {
        "preview": queue_preview(state),
        "modules": module_summary(state),
        "nextCode": peek_code(state.ticket_counter),
    }


@app.get("/modules/{module_id}")
def get_module(module_id: int, q: str = "") -> Dict[str, Any]:
    """Operator panel; ``q`` filters the call log by ticket code."""
    return module_view(get_store().read(), module_id, q)


@app.post("/modules/bulk")
def bulk_modules(request: BulkModulesRequest) -> Dict[str, Any]:
    state = set_all_modules(get_store(), request.active)
    return {"modules": module_summary(state), "stats": admin_stats(state)}


@app.post("/modules/{module_id}/action")
def module_action(module_id: int, request: ModuleActionRequest) -> Dict[str, Any]:
    """Perform an operator or admin action on a module."""
    try:
        state = run_module_action(get_store(), module_id, request.action)
    except InvalidActionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return module_view(state, module_id)


@app.post("/admin/reset")
def admin_reset() -> Dict[str, Any]:
    state = reset_system(get_store())
    return {"status": "reset", "stats": admin_stats(state)}


@app.get("/admin/stats")
def get_admin_stats() -> Dict[str, Any]:
    state = get_store().read()
    return {"stats": admin_stats(state), "modules": module_summary(state)}


@app.get("/display/board")
def display_board() -> Dict[str, Any]:
    return build_board(get_store().read())


def _frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _redis_board_events(store: RedisStateStore) -> AsyncIterator[str]:
    pubsub = store.client.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(store.channel)
    try:
        yield _frame({"type": "board_update", "data": build_board(store.read())})
        while True:
            try:
                message = await asyncio.to_thread(
                    pubsub.get_message, timeout=config.EVENTS_POLL_SECONDS
                )
                state = None
                if message and message["type"] == "message":
                    state = parse_snapshot(json.loads(message["data"])["state"], store.module_count)
                if state is not None:
                    yield _frame({"type": "board_update", "data": build_board(state)})
                else:
                    yield _frame({"type": "heartbeat"})
            except Exception as e:
                logger.warning("Event stream read failed: %s", e)
                yield _frame({"type": "error", "message": str(e)})
                await asyncio.sleep(1)
    finally:
        pubsub.close()


async def _polled_board_events(store: SharedStateStore) -> AsyncIterator[str]:
    last_seen = None
    while True:
        try:
            state = store.read()
            if state.last_updated != last_seen:
                last_seen = state.last_updated
                yield _frame({"type": "board_update", "data": build_board(state)})
            else:
                yield _frame({"type": "heartbeat"})
        except Exception as e:
            logger.warning("Event stream read failed: %s", e)
            yield _frame({"type": "error", "message": str(e)})
        await asyncio.sleep(config.EVENTS_POLL_SECONDS)


def board_events(store: SharedStateStore) -> AsyncIterator[str]:
    """SSE frames for the public board.

    Follows the updates channel when the store is Redis backed; otherwise
    polls the snapshot and sends the board whenever ``lastUpdated`` changes.
    A heartbeat goes out when nothing changed.
    """
    if isinstance(store, RedisStateStore):
        return _redis_board_events(store)
    return _polled_board_events(store)


@app.get("/events")
async def events():
    """Server-Sent Events feed of the public board."""
    return StreamingResponse(
        board_events(get_store()),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
