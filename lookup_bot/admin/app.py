from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from ..config import Settings
from ..errors import InvalidAmount, PrincipalNotFound
from ..storage.store import LookupStore

logger = logging.getLogger(__name__)


class CreditsBody(BaseModel):
    credits: int


class BalanceBody(BaseModel):
    balance: int


class BanBody(BaseModel):
    reason: Optional[str] = None


def _clamp_limit(limit: Any, *, default_limit: int, max_limit: int) -> int:
    try:
        safe_limit = int(limit)
    except (TypeError, ValueError):
        safe_limit = default_limit
    if safe_limit <= 0:
        safe_limit = default_limit
    return min(safe_limit, max_limit)


def create_app(store: LookupStore) -> FastAPI:
    """JSON admin API over an existing store. The store schema is migrated on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        version = await store.init()
        logger.info("Admin API using %s (schema v%s)", store.db_path, version)
        yield

    app = FastAPI(title="Lookup Bot Admin", lifespan=lifespan)
    app.state.store = store

    @app.exception_handler(PrincipalNotFound)
    async def _principal_not_found(request: Request, exc: PrincipalNotFound) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(InvalidAmount)
    async def _invalid_amount(request: Request, exc: InvalidAmount) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=400)

    @app.get("/api/stats")
    async def stats() -> dict:
        return await store.get_dashboard_stats()

    @app.get("/api/principals")
    async def principals(limit: int = 20) -> dict:
        rows = await store.list_principals(_clamp_limit(limit, default_limit=20, max_limit=500))
        return {"principals": rows}

    @app.get("/api/principals/search")
    async def search_principals(q: str = "", limit: int = 50) -> dict:
        rows = await store.search_principals(q, _clamp_limit(limit, default_limit=50, max_limit=500))
        return {"query": q, "principals": rows}

    @app.get("/api/principals/{principal_id}")
    async def principal_detail(principal_id: str) -> dict:
        principal = await store.get_principal(principal_id)
        if principal is None:
            raise PrincipalNotFound(principal_id)
        summary = await store.get_referral_summary(principal_id)
        searches = await store.count_search_records(principal_id)
        return {
            "principal": principal,
            "credits_earned": summary["credits_earned"] if summary else 0,
            "search_records": searches,
        }

    @app.get("/api/history")
    async def history(principal_id: Optional[str] = None, limit: int = 50) -> dict:
        view = await store.get_search_history(
            principal_id,
            limit=_clamp_limit(limit, default_limit=50, max_limit=1000),
        )
        return {"rows": view.rows, "skipped_record_ids": view.skipped_record_ids}

    @app.post("/api/principals/{principal_id}/credits")
    async def add_credits(principal_id: str, body: CreditsBody) -> dict:
        balance = await store.credit(principal_id, body.credits)
        logger.info("Admin added %s credits to %s (balance %s)", body.credits, principal_id, balance)
        return {"principal_id": principal_id, "balance": balance}

    @app.put("/api/principals/{principal_id}/balance")
    async def set_balance(principal_id: str, body: BalanceBody) -> dict:
        balance = await store.set_balance(principal_id, body.balance)
        logger.info("Admin set balance of %s to %s", principal_id, balance)
        return {"principal_id": principal_id, "balance": balance}

    @app.post("/api/principals/{principal_id}/ban")
    async def ban(principal_id: str, body: BanBody) -> dict:
        await store.ban_principal(principal_id, body.reason)
        return {"principal_id": principal_id, "is_banned": True, "reason": body.reason}

    @app.post("/api/principals/{principal_id}/unban")
    async def unban(principal_id: str) -> dict:
        await store.unban_principal(principal_id)
        return {"principal_id": principal_id, "is_banned": False}

    @app.delete("/api/principals/{principal_id}")
    async def delete_principal(principal_id: str) -> dict:
        await store.delete_principal(principal_id)
        return {"principal_id": principal_id, "deleted": True}

    @app.delete("/api/history")
    async def clear_history() -> dict:
        removed = await store.clear_search_history()
        return {"deleted_records": removed}

    return app


def main() -> None:
    from ..app import configure_logging

    configure_logging()
    settings = Settings.from_env()
    app = create_app(LookupStore(settings.sqlite_path))
    uvicorn.run(app, host=settings.admin_host, port=settings.admin_port)


if __name__ == "__main__":
    main()
