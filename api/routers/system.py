# MPL/api/routers/system.py

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from api.routers.upload import get_orchestrator, get_settings
from services.extraction_orchestrator import ExtractionOrchestrator

router = APIRouter(prefix="/api", tags=["System Information"])


@router.get("/model", summary="Model and provider used for extraction")
def current_model(request: Request, settings=Depends(get_settings)):
    orchestrator = getattr(request.app.state, "orchestrator", None)
    provider = getattr(getattr(orchestrator, "provider", None), "name", None)
    return {
        "model": settings.openai_model,
        "provider": provider or settings.extraction_provider,
    }


@router.get("/debug", summary="Configuration presence and upstream health")
def debug_info(
    settings=Depends(get_settings),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
):
    provider = orchestrator.provider
    info: Dict[str, Any] = {
        "ok": True,
        "provider": getattr(provider, "name", None),
        "env_present": {
            "OPENAI_API_KEY": bool(settings.openai_api_key),
            "PARSER_URL": bool(settings.parser_url),
            "PARSER_TOKEN": bool(settings.parser_token),
        },
        "parser_url": settings.parser_url,
        "health": {"tried": False},
    }
    health = getattr(provider, "health", None)
    if callable(health):
        info["health"] = health()
    return info
