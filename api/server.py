"""
Investments API server.

Endpoints:
- GET    /health
- GET    /api/investments/manifest
- POST   /api/investments/metrics/query
- POST   /api/investments/cards/query
- POST   /api/investments/assets/manual
- POST   /api/investments/assets/{asset_id}/edit
- DELETE /api/investments/assets/{asset_id}?confirm=...
- GET    /api/investments/assets/search?q=...&limit=...
- POST   /api/orchestrator/validate

The caller is identified by the `X-User-Id` header.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from investments.brapi_client import BrapiClient
from investments.filters import FilterValidationError
from investments.manual_entry import AssetNotFoundError, ManualEntryError
from investments.repository import InvestmentsRepository
from investments.service import InvestmentsMetricsService
from orchestrator.validators import validate_doc
from shared import settings

logger = logging.getLogger(__name__)


class MetricsQueryRequest(BaseModel):
    metric_ids: list[str] = Field(default_factory=list, alias="metricIds")
    filters: Any = None
    trace_id: str | None = Field(default=None, alias="traceId")

    model_config = {"populate_by_name": True}


class CardsQueryRequest(BaseModel):
    cards: list[dict[str, Any]] = Field(default_factory=list)
    filters: Any = None
    trace_id: str | None = Field(default=None, alias="traceId")

    model_config = {"populate_by_name": True}


class EditAssetRequest(BaseModel):
    operation: str
    payload: dict[str, Any] = Field(default_factory=dict)


def _require_user(user_id: str | None) -> str:
    value = (user_id or "").strip()
    if not value:
        raise HTTPException(status_code=400, detail="Missing X-User-Id header")
    return value


def create_app(service: InvestmentsMetricsService | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        owned = getattr(_app.state, "service", None) is None
        if owned:
            repository = InvestmentsRepository(settings.INVESTMENTS_DB_PATH)
            _app.state.service = InvestmentsMetricsService(repository, price_provider=BrapiClient())
        yield
        if owned:
            await _app.state.service.close()

    app = FastAPI(title="Personal Finance Investments API", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(FilterValidationError)
    async def _filter_error(_request: Request, exc: FilterValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(ManualEntryError)
    async def _manual_entry_error(_request: Request, exc: ManualEntryError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(AssetNotFoundError)
    async def _not_found(_request: Request, exc: AssetNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"success": False, "error": str(exc.args[0] if exc.args else exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/investments/manifest")
    def manifest() -> dict[str, Any]:
        return app.state.service.get_manifest()

    @app.post("/api/investments/metrics/query")
    async def metrics_query(
        request: MetricsQueryRequest,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        if not request.metric_ids:
            raise HTTPException(status_code=400, detail="metricIds must be a non-empty list")
        return await app.state.service.query_metrics(user_id, request.metric_ids, request.filters, request.trace_id)

    @app.post("/api/investments/cards/query")
    async def cards_query(
        request: CardsQueryRequest,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        if not request.cards:
            raise HTTPException(status_code=400, detail="cards must be a non-empty list")
        return await app.state.service.query_cards(user_id, request.cards, request.filters, request.trace_id)

    @app.post("/api/investments/assets/manual", status_code=201)
    def create_manual_asset(
        payload: dict[str, Any],
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        return {"success": True, **app.state.service.create_manual_asset(user_id, payload)}

    @app.post("/api/investments/assets/{asset_id}/edit")
    def edit_manual_asset(
        asset_id: str,
        request: EditAssetRequest,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        result = app.state.service.edit_manual_asset(user_id, asset_id, request.operation, request.payload)
        return {"success": True, **result}

    @app.delete("/api/investments/assets/{asset_id}")
    def delete_manual_asset(
        asset_id: str,
        confirm: str | None = None,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        if not app.state.service.delete_manual_asset(user_id, asset_id, confirm):
            raise AssetNotFoundError(f"Asset not found: {asset_id}")
        return {"success": True, "asset_id": asset_id}

    @app.get("/api/investments/assets/search")
    def search_assets(
        q: str = "",
        limit: int = 20,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        return {"success": True, **app.state.service.search_user_assets(user_id, q, limit)}

    @app.post("/api/orchestrator/validate")
    def validate_orchestrator_doc(doc: dict[str, Any]) -> dict[str, Any]:
        validation = validate_doc(doc)
        return {"valid": validation.valid, "errors": validation.errors, "warnings": validation.warnings}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
