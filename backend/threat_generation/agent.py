"""
Threat Generation entry point
"""

import time
from contextlib import asynccontextmanager
from functools import lru_cache
from threading import Lock
from typing import Any, Dict

from config import GenerationConfig
from exceptions import ThreatGenerationError
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from generation_service import GenerationService
from model_utils import create_provider
from monitoring import logger
from repository import ThreatModelRepository
from storage import create_storage

REQUEST_ID_HEADER = "x-request-id"

status_lock = Lock()
last_known_status = None
last_status_update_time = time.time()


@lru_cache(maxsize=1)
def get_generation_service() -> GenerationService:
    """Build the process-wide service from environment configuration."""
    config = GenerationConfig.from_env()
    return GenerationService(
        repository=ThreatModelRepository.from_config(config),
        storage=create_storage(config),
        config=config,
        provider_factory=lambda: create_provider(config),
    )


def _resolve_service(app: FastAPI) -> GenerationService:
    factory = app.dependency_overrides.get(get_generation_service, get_generation_service)
    return factory()


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = _resolve_service(app)
    try:
        failed = service.fail_stale_generations()
        logger.info("Stale generation recovery finished", failed_count=failed)
    except ThreatGenerationError as e:
        logger.error("Stale generation recovery failed", error=str(e))
    yield
    service.shutdown(wait=False)


# Initialize FastAPI app
app = FastAPI(title="Threat Generation Server", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(ThreatGenerationError)
async def handle_generation_error(request: Request, error: ThreatGenerationError):
    status_code = int(error.STATUS)
    logger.error(
        "Request failed",
        path=request.url.path,
        error_type=type(error).__name__,
        error_message=str(error),
        status_code=status_code,
    )
    return JSONResponse(
        error.to_dict(request.headers.get(REQUEST_ID_HEADER)),
        status_code=status_code,
    )


@app.get("/ping")
def ping(service: GenerationService = Depends(get_generation_service)):
    global last_known_status, last_status_update_time

    with status_lock:
        # Determine current status
        if service.active_generations > 0:
            current_status = "HealthyBusy"
        else:
            current_status = "Healthy"

        # Update timestamp only when status changes
        if last_known_status != current_status:
            last_known_status = current_status
            last_status_update_time = time.time()

        return {
            "status": current_status,
            "time_of_last_update": int(last_status_update_time),
        }


@app.post("/threat-models/{threat_model_id}/generate", status_code=202)
def start_generation(
    threat_model_id: str,
    service: GenerationService = Depends(get_generation_service),
) -> Dict[str, Any]:
    """
    Start threat generation for a threat model.
    Returns immediately; poll the status endpoint for progress.
    """
    return service.start_generation(threat_model_id)


@app.get("/threat-models/{threat_model_id}/generation-status")
def generation_status(
    threat_model_id: str,
    service: GenerationService = Depends(get_generation_service),
) -> Dict[str, Any]:
    status = service.get_generation_status(threat_model_id)
    return status.model_dump(mode="json", exclude_none=True)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8080,
        loop="uvloop",
        http="httptools",
        timeout_keep_alive=75,
        access_log=False,
    )
