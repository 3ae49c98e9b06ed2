"""
Planner Agent — HTTP API.

POST /agent runs one orchestration loop for a user query.
GET /users/{user_id}/schedule lists what occurs on a date (calendar panel).
Every error is returned as {"error": "..."} with a non-2xx status.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.core.agent import AgentRequest, AgentService
from src.core.dispatcher import ToolDispatcher
from src.core.llm import CapabilityError
from src.core.resource_service import ResourceService
from src.core.time_parser import parse_date
from src.ports.store_port import RowStore, StoreError

logger = logging.getLogger(__name__)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def create_app(
    store: RowStore | None = None,
    agent: AgentService | None = None,
    api_token: str | None = None,
    request_timeout: float | None = None,
) -> FastAPI:
    """Build the API around a row store (SQLite from settings by default)."""
    from src.config import settings

    if store is None:
        from src.data.db import SQLiteRowStore
        store = SQLiteRowStore()
    if api_token is None:
        api_token = settings.API_TOKEN
    if request_timeout is None:
        request_timeout = settings.REQUEST_TIMEOUT_SECONDS

    service = ResourceService(store)
    if agent is None:
        agent = AgentService(service, ToolDispatcher(service))

    app = FastAPI(title="Planner Agent", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    async def require_token(authorization: str | None = Header(default=None)) -> None:
        if not api_token:
            return
        if authorization != f"Bearer {api_token}":
            logger.warning("Rejected request with missing or invalid API token")
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "healthy"}

    @app.post("/agent", dependencies=[Depends(require_token)])
    async def run_agent(request: Request) -> JSONResponse:
        try:
            body = await request.json()
            agent_request = AgentRequest.model_validate(body)
        except ValidationError as exc:
            return _error(400, f"Invalid request: {exc.errors()[0]['msg']}")
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError
            return _error(400, "Request body must be UTF-8 encoded JSON")

        try:
            response = await asyncio.wait_for(agent.run(agent_request), timeout=request_timeout)
        except asyncio.TimeoutError:
            logger.error("Agent run for user %s timed out after %.0fs", agent_request.user_id, request_timeout)
            return _error(504, "The assistant took too long to respond")
        except CapabilityError as exc:
            logger.error("Agent run for user %s failed: %s", agent_request.user_id, exc)
            return _error(500, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error in agent run for user %s", agent_request.user_id)
            return _error(500, str(exc) or "An error occurred processing your request")

        return JSONResponse(content=response.to_payload())

    @app.get("/users/{user_id}/schedule", dependencies=[Depends(require_token)])
    async def schedule_for_date(user_id: str, date: str | None = None) -> JSONResponse:
        target = parse_date(date) if date else service.today()
        if target is None:
            return _error(400, f"Invalid date '{date}', expected YYYY-MM-DD")

        try:
            rows = await service.schedule_for_date(user_id, target)
        except StoreError as exc:
            logger.error("Schedule read for user %s failed: %s", user_id, exc)
            return _error(500, str(exc))
        items = [service.format_schedule_item(row, target) for row in rows]
        return JSONResponse(content={"date": target.isoformat(), "scheduleItems": items, "count": len(items)})

    return app
