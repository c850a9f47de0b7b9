"""FastAPI server for Codora."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from codora import (
    AnalysisRequest,
    BudgetExceededError,
    Gateway,
    NoProviderConfiguredError,
    ProviderError,
    ResetMode,
    Tier,
    ValidationError,
    __version__,
    get_default_gateway,
)


def _get_api_key() -> Optional[str]:
    return os.getenv("CODORA_API_KEY")


def _require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    api_key = _get_api_key()
    if api_key and x_api_key != api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_gateway() -> Gateway:
    return get_default_gateway()


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, NoProviderConfiguredError):
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if isinstance(exc, BudgetExceededError):
        raise HTTPException(status_code=402, detail=str(exc)) from exc
    if isinstance(exc, ProviderError):
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    raise exc


app = FastAPI(title="Codora API", version=__version__)


class ExplainRequest(BaseModel):
    code: str = Field(..., min_length=1)
    context: str = ""
    language: str = Field("plaintext", min_length=1)
    tier: Optional[Tier] = None


class ExplainResponse(BaseModel):
    text: str
    cached: bool
    tier: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    cost: str
    total_tokens: int
    complexity_score: Optional[float] = None


class PlanResponse(BaseModel):
    tier: str
    provider: str
    model: str
    complexity_score: Optional[float] = None
    threshold: float
    why: str


class ResetRequest(BaseModel):
    mode: Optional[ResetMode] = None


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/explain", response_model=ExplainResponse, dependencies=[Depends(_require_api_key)])
def explain(req: ExplainRequest, gateway: Gateway = Depends(get_gateway)) -> ExplainResponse:
    try:
        result = gateway.handle(AnalysisRequest(req.code, req.context, req.language, req.tier))
    except Exception as exc:
        _raise_http(exc)

    return ExplainResponse(
        text=result.text,
        cached=result.cached,
        tier=result.tier.value if result.tier else None,
        provider=result.provider,
        model=result.model,
        cost=str(result.cost),
        total_tokens=result.total_tokens,
        complexity_score=result.complexity_score,
    )


@app.post("/plan", response_model=PlanResponse, dependencies=[Depends(_require_api_key)])
def plan(req: ExplainRequest, gateway: Gateway = Depends(get_gateway)) -> PlanResponse:
    try:
        decision = gateway.plan(req.code, req.context, req.language, req.tier)
    except Exception as exc:
        _raise_http(exc)

    return PlanResponse(
        tier=decision.tier.value,
        provider=decision.provider,
        model=decision.model,
        complexity_score=decision.complexity_score,
        threshold=decision.threshold,
        why=decision.why,
    )


@app.get("/usage", dependencies=[Depends(_require_api_key)])
def usage(gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    stats = gateway.get_usage_stats()
    return {
        "total_cost": str(stats.total_cost),
        "total_tokens": stats.total_tokens,
        "total_requests": stats.total_requests,
        "daily_cost": str(stats.daily_cost),
        "weekly_cost": str(stats.weekly_cost),
        "monthly_cost": str(stats.monthly_cost),
        "budget_limit": str(stats.budget_limit),
        "budget_period": stats.budget_period.value,
        "budget_used": str(stats.budget_used),
        "budget_remaining": str(stats.budget_remaining),
        "by_provider": [
            {"provider": b.name, "cost": str(b.cost), "requests": b.requests}
            for b in stats.by_provider
        ],
        "by_model": [
            {"model": b.name, "cost": str(b.cost), "requests": b.requests}
            for b in stats.by_model
        ],
    }


@app.get("/cache", dependencies=[Depends(_require_api_key)])
def cache_stats(gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    stats = gateway.get_cache_stats()
    return {
        "entries": stats.entries,
        "hit_rate": stats.hit_rate,
        "hits": stats.hits,
        "misses": stats.misses,
        "size_bytes": stats.size_bytes,
        "oldest": stats.oldest.isoformat() if stats.oldest else None,
        "newest": stats.newest.isoformat() if stats.newest else None,
    }


@app.post("/cache/clear", dependencies=[Depends(_require_api_key)])
def cache_clear(gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    gateway.clear_cache()
    return {"cleared": True}


@app.post("/budget/reset", dependencies=[Depends(_require_api_key)])
def budget_reset(req: ResetRequest, gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    archive_key = gateway.reset_budget(req.mode)
    return {"reset": True, "archive_key": archive_key}


@app.get("/providers", dependencies=[Depends(_require_api_key)])
def providers(gateway: Gateway = Depends(get_gateway)) -> Dict[str, Any]:
    return gateway.get_provider_status()
