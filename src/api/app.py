import os
import time
import json
import logging
from collections import defaultdict
from typing import Any, Dict, List

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import Response, JSONResponse
from pydantic import ValidationError
from prometheus_client import Counter, Histogram, generate_latest

from src.api.schemas import (
    AnalysisRequest,
    ModelCreateRequest,
    SwitchInfrastructureRequest,
)
from src.inference.activation import (
    active_model_names,
    get_model,
    register_model,
    switch_infrastructure,
    toggle_model_active,
)
from src.inference.clients.llm import GenerativeAIClient
from src.inference.clients.local_backend import LocalInferenceBackend
from src.inference.clients.persistence import InMemoryCollection, RestCollection
from src.inference.errors import (
    ActivationError,
    GenerativeAIError,
    ModelNotFoundError,
    PersistenceError,
)
from src.inference.response_schemas import RESPONSE_SCHEMAS
from src.inference.router import (
    InferenceServices,
    load_system_configuration,
    outcome_payload,
    run_analysis,
)
from src.inference.schemas import Failure, NoModelActive


# =================================================
# Environment
# =================================================
BASE_DIR = os.path.dirname(
    os.path.dirname(
        os.path.dirname(__file__)
    )
)
ENV_PATH = os.path.join(BASE_DIR, ".env")
load_dotenv(dotenv_path=ENV_PATH)

APP_NAME = os.getenv("APP_NAME", "Heart Triage Inference")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
BAAS_BASE_URL = os.getenv("BAAS_BASE_URL")
BAAS_API_KEY = os.getenv("BAAS_API_KEY")
LLM_API_URL = os.getenv("LLM_API_URL")
LLM_API_KEY = os.getenv("LLM_API_KEY")
MODEL_CACHE_DIR = os.getenv("MODEL_CACHE_DIR", os.path.join(BASE_DIR, "models", "cache"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT_SECONDS", 60))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", 5))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 60))


# =================================================
# Structured JSON logging
# =================================================
class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "service": APP_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())

logger = logging.getLogger(APP_NAME)
logger.setLevel(LOG_LEVEL)
logger.handlers = [handler]
logger.propagate = False

# Router and client modules log under the "src" package hierarchy
package_logger = logging.getLogger("src")
package_logger.setLevel(LOG_LEVEL)
package_logger.handlers = [handler]
package_logger.propagate = False


# =================================================
# Prometheus metrics
# =================================================
REQUEST_COUNT = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "api_request_latency_seconds",
    "API request latency",
    ["endpoint"],
)

ANALYSES_TOTAL = Counter(
    "ai_analyses_total",
    "AI analyses by outcome",
    ["analysis_type", "outcome"],
)

FALLBACKS_TOTAL = Counter(
    "ai_analysis_fallbacks_total",
    "Local-model analyses answered by a fallback prediction",
    ["kind"],
)

ANALYSIS_LATENCY = Histogram(
    "ai_analysis_latency_seconds",
    "AI analysis latency",
)


# =================================================
# Rate limiting storage
# =================================================
rate_limit_store = defaultdict(list)


# =================================================
# FastAPI app
# =================================================
app = FastAPI(title=APP_NAME)

_http_clients: List[httpx.AsyncClient] = []


# =================================================
# Service wiring
# =================================================
def build_services() -> InferenceServices:
    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
    _http_clients.append(http_client)

    if BAAS_BASE_URL:
        headers = {"api_key": BAAS_API_KEY} if BAAS_API_KEY else None
        baas_client = httpx.AsyncClient(
            base_url=BAAS_BASE_URL,
            headers=headers,
            timeout=HTTP_TIMEOUT,
        )
        _http_clients.append(baas_client)
        models = RestCollection(baas_client, "MLModel")
        configs = RestCollection(baas_client, "SystemSetting")
    else:
        logger.warning("BAAS_BASE_URL not set, using in-memory collections")
        models = InMemoryCollection("MLModel")
        configs = InMemoryCollection("SystemSetting")

    return InferenceServices(
        models=models,
        configs=configs,
        local_backend=LocalInferenceBackend(models, http_client, MODEL_CACHE_DIR),
        llm=GenerativeAIClient(http_client, LLM_API_URL, LLM_API_KEY),
    )


def get_services(request: Request) -> InferenceServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


@app.on_event("startup")
def startup():
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    logger.info("Inference services ready")


@app.on_event("shutdown")
async def shutdown():
    while _http_clients:
        await _http_clients.pop().aclose()


# =================================================
# Middleware: logging + metrics
# =================================================
@app.middleware("http")
async def log_and_metrics(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=str(response.status_code),
    ).inc()

    REQUEST_LATENCY.labels(
        endpoint=request.url.path
    ).observe(duration)

    logger.info(
        "%s %s status=%s latency=%.4fs",
        request.method,
        request.url.path,
        response.status_code,
        duration,
    )

    return response


# =================================================
# Health check
# =================================================
@app.get("/")
def health():
    return {"status": "ok"}


# =================================================
# AI analysis endpoint
# =================================================
@app.post("/analysis")
async def analysis(request: Request):
    start_time = time.time()

    client_ip = request.client.host
    now = time.time()

    rate_limit_store[client_ip] = [
        t for t in rate_limit_store[client_ip]
        if now - t < RATE_LIMIT_WINDOW
    ]

    if len(rate_limit_store[client_ip]) >= RATE_LIMIT_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail="rate_limit_exceeded",
        )

    rate_limit_store[client_ip].append(now)

    try:
        body = await request.json()
        data = AnalysisRequest(**body)
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={"details": json.loads(exc.json())},
        )
    except Exception:
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_json"},
        )

    response_schema = data.response_schema
    if data.schema_name:
        response_schema = RESPONSE_SCHEMAS[data.schema_name]

    services = get_services(request)

    try:
        outcome = await run_analysis(
            data.prompt,
            response_schema,
            data.structured_input,
            data.analysis_type,
            services,
        )
    except PersistenceError:
        ANALYSES_TOTAL.labels(analysis_type=data.analysis_type, outcome="error").inc()
        logger.exception("Persistence unavailable during analysis")
        raise HTTPException(
            status_code=503,
            detail="persistence_unavailable",
        )

    if isinstance(outcome, Failure):
        ANALYSES_TOTAL.labels(analysis_type=data.analysis_type, outcome="error").inc()
    elif isinstance(outcome, NoModelActive):
        ANALYSES_TOTAL.labels(analysis_type=data.analysis_type, outcome="no_model_active").inc()
    else:
        ANALYSES_TOTAL.labels(analysis_type=data.analysis_type, outcome="prediction").inc()
        if outcome.source in ("mock", "default"):
            FALLBACKS_TOTAL.labels(kind=outcome.source).inc()

    try:
        result = outcome_payload(outcome)
    except GenerativeAIError:
        logger.exception("AI analysis failed")
        raise HTTPException(
            status_code=502,
            detail="ai_analysis_failed",
        )

    ANALYSIS_LATENCY.observe(time.time() - start_time)
    return result


# =================================================
# Model management
# =================================================
@app.get("/models")
async def list_models(request: Request):
    services = get_services(request)
    return await services.models.list(sort="-created_date")


@app.post("/models", status_code=201)
async def create_model(payload: ModelCreateRequest, request: Request):
    services = get_services(request)
    try:
        model = await register_model(payload.model_dump(exclude_none=True), services.models)
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={"details": json.loads(exc.json())},
        )
    return model.model_dump(mode="json")


@app.post("/models/{model_id}/toggle")
async def toggle_model(model_id: str, request: Request):
    services = get_services(request)
    config = await load_system_configuration(services.configs)

    try:
        model = await get_model(model_id, services.models)
    except ModelNotFoundError:
        raise HTTPException(status_code=404, detail="model_not_found")

    try:
        model = await toggle_model_active(
            model, config, services.models, services.configs
        )
    except ActivationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return model.model_dump(mode="json")


# =================================================
# System configuration
# =================================================
@app.get("/system/configuration")
async def get_configuration(request: Request):
    services = get_services(request)
    config = await load_system_configuration(services.configs)
    return config.model_dump(mode="json")


@app.put("/system/infrastructure")
async def put_infrastructure(payload: SwitchInfrastructureRequest, request: Request):
    services = get_services(request)
    config = await load_system_configuration(services.configs)
    try:
        updated = await switch_infrastructure(
            payload.active_model_type, config, services.models, services.configs
        )
    except ActivationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return updated.model_dump(mode="json")


@app.get("/system/active-models")
async def get_active_models(request: Request):
    services = get_services(request)
    config = await load_system_configuration(services.configs)
    return await active_model_names(config, services.models)


# =================================================
# Metrics endpoint
# =================================================
@app.get("/metrics")
def metrics():
    return Response(
        generate_latest(),
        media_type="text/plain",
    )
