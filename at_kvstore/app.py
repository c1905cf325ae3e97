import logging
import sys
import time
import uuid
from typing import Dict, Any, Optional

from fastapi import FastAPI, Request, Response, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
import structlog
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from . import __version__
from .commands import GetCommand, QPushCommand, SetCommand, parse_command
from .config import Settings
from .errors import ConditionFailed, InvalidArgument, NotFound, StoreError
from .models import CommandRequest, QPushRequest, SetRequest
from .store import KeyValueStore
from .sweeper import ExpirySweeper

logger = structlog.get_logger()

# Prometheus metrics
operations_total = Counter('kvstore_operations_total', 'Store operations by outcome', ['operation', 'outcome'])
request_duration = Histogram('kvstore_request_duration_seconds', 'Request processing duration', ['status_class'])
evictions_total = Counter('kvstore_evictions_total', 'Expired keys evicted', ['reason'])
keys_gauge = Gauge('kvstore_keys', 'Entries currently held by the store')
payload_rejections = Counter('kvstore_payload_too_large_total', 'Requests rejected for size')


def configure_logging(level: str = "INFO"):
    """Configure structured JSON logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def status_for(err: StoreError) -> int:
    """Map a store failure to its HTTP status."""
    if isinstance(err, ConditionFailed):
        # NX on an existing key conflicts; XX on a missing key is a 404
        return 409 if err.key_exists else 404
    if isinstance(err, NotFound):
        return 404
    if isinstance(err, InvalidArgument):
        return 400
    return 500


def _reject(err: StoreError, operation: str, corr_id: str):
    status_code = status_for(err)
    operations_total.labels(operation=operation, outcome=type(err).__name__).inc()

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Store operation rejected",
        corr_id=corr_id,
        operation=operation,
        key=err.key,
        error=str(err),
        status_code=status_code
    )
    raise HTTPException(status_code=status_code, detail=str(err))


def create_app(store: Optional[KeyValueStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the HTTP adapter around a store.

    Args:
        store: Store to serve (a new one is created when omitted)
        settings: Service settings (read from the environment when omitted)
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = KeyValueStore(evictions=evictions_total)

    app = FastAPI(
        title=settings.service_name,
        description="In-memory key-value store",
        version=__version__
    )
    app.state.store = store
    app.state.settings = settings
    app.state.sweeper = None
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        max_age=3600,
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Enforce request size limit and attach a correlation ID"""
        if request.headers.get("content-length"):
            try:
                content_length = int(request.headers["content-length"])
            except ValueError:
                content_length = 0
            if content_length > settings.max_payload_size:
                payload_rejections.inc()
                return JSONResponse(
                    status_code=413,
                    content={
                        "detail": "KV-007: Payload too large",
                        "max_size": f"{settings.max_payload_size} bytes"
                    }
                )

        corr_id = request.headers.get("X-Correlation-ID", f"req_{uuid.uuid4().hex[:12]}")
        request.state.corr_id = corr_id

        start = time.time()
        response = await call_next(request)

        response.headers["X-Correlation-ID"] = corr_id
        response.headers["X-Service-Name"] = settings.service_name

        status_class = f"{response.status_code // 100}xx"
        request_duration.labels(status_class=status_class).observe(time.time() - start)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request data")
        if field:
            message = f"{field}: {message}"

        operations_total.labels(operation=request.url.path.strip("/") or "unknown", outcome="InvalidArgument").inc()
        logger.warning(
            "Invalid request data",
            corr_id=getattr(request.state, "corr_id", None),
            path=request.url.path,
            error=message
        )
        return JSONResponse(status_code=400, content={"detail": f"KV-001: {message}"})

    @app.on_event("startup")
    async def startup_event():
        configure_logging(settings.log_level)

        if settings.sweep_interval_sec > 0:
            app.state.sweeper = ExpirySweeper(store, settings.sweep_interval_sec)
            app.state.sweeper.start()

        logger.info(
            "Key-value store started",
            service_name=settings.service_name,
            port=settings.port,
            sweep_interval_sec=settings.sweep_interval_sec
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.sweeper is not None:
            await app.state.sweeper.stop()
            app.state.sweeper = None
        logger.info("Key-value store stopped")

    def do_set(corr_id: str, key: str, value: str, ttl_seconds: Any, condition: Any) -> Dict[str, Any]:
        try:
            store.set(key, value, ttl_seconds, condition)
        except StoreError as e:
            _reject(e, "set", corr_id)
        operations_total.labels(operation="set", outcome="success").inc()
        return {"status": "created", "key": key}

    def do_get(corr_id: str, key: str) -> Dict[str, Any]:
        try:
            value = store.get(key)
        except StoreError as e:
            _reject(e, "get", corr_id)
        operations_total.labels(operation="get", outcome="success").inc()
        return {"value": value}

    def do_qpush(corr_id: str, key: str, values) -> Dict[str, Any]:
        try:
            length = store.queue_push(key, values)
        except StoreError as e:
            _reject(e, "qpush", corr_id)
        operations_total.labels(operation="qpush", outcome="success").inc()
        return {"status": "created", "key": key, "length": length}

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint"""
        sweeper = app.state.sweeper
        return {
            "ok": True,
            "service": settings.service_name,
            "version": __version__,
            "uptime_seconds": int(time.time() - app.state.start_time),
            "keys": len(store),
            "sweeper_running": sweeper is not None and sweeper.running
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        keys_gauge.set(len(store))
        return PlainTextResponse(
            generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.post("/set", status_code=201)
    def set_key(request: Request, body: SetRequest):
        """Store a value, optionally with a TTL and an NX/XX condition"""
        return do_set(request.state.corr_id, body.key, body.value, body.expiry, body.condition)

    @app.get("/get")
    def get_key(request: Request, key: str = ""):
        """Return the value stored at key"""
        return do_get(request.state.corr_id, key)

    @app.post("/qpush", status_code=201)
    def queue_push(request: Request, body: QPushRequest):
        """Append values to the queue stored at key"""
        return do_qpush(request.state.corr_id, body.key, body.values)

    @app.post("/command")
    def run_command(request: Request, response: Response, body: CommandRequest):
        """Execute a command string such as "SET key value EX 10 NX" """
        corr_id = request.state.corr_id
        try:
            command = parse_command(body.command)
        except StoreError as e:
            _reject(e, "command", corr_id)

        if isinstance(command, GetCommand):
            return do_get(corr_id, command.key)

        response.status_code = 201
        if isinstance(command, SetCommand):
            return do_set(corr_id, command.key, command.value, command.ttl_seconds, command.condition)
        return do_qpush(corr_id, command.key, list(command.values))

    return app


app = create_app()
