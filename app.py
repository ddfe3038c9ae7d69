import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from access_codes import AccessCodeStore
from auth import AdminAuthenticator
from backend import KeyValueBackend, create_backend
from errors import BackendError
from janitor import Janitor
from logging_config import get_logger, setup_logging
from rate_limiter import RateLimiter
from routers.admin import admin_router
from routers.auth import auth_router
from schemas.codes import HealthResponse
from sessions import SessionRegistry
from signaling import PeerConnection, SignalingCoordinator

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

BANNER = "Signaling Server\nNo message logging • Ephemeral sessions • Access control enabled"


def create_app(backend: Optional[KeyValueBackend] = None,
               admin_auth: Optional[AdminAuthenticator] = None,
               rate_limiter: Optional[RateLimiter] = None,
               clock: Optional[Callable[[], float]] = None,
               start_janitor: bool = True) -> FastAPI:
    """Build the application with its own registry and stores.

    Everything stateful hangs off ``app.state`` so tests can build isolated
    instances.
    """
    backend = backend or create_backend()
    clock_kwargs = {"clock": clock} if clock else {}

    registry = SessionRegistry(**clock_kwargs)
    code_store = AccessCodeStore(backend, **clock_kwargs)
    janitor = Janitor(registry, code_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await run_in_threadpool(backend.ping)
        except BackendError:
            logger.error(f"Storage backend '{backend.name}' is not reachable at startup")
        if app.state.admin_auth.using_default_secret:
            logger.warning("Admin secret: using the default value, set ADMIN_SECRET")
        if start_janitor:
            janitor.start()
        logger.info("Signaling server started")
        yield
        await janitor.stop()
        logger.info("Shutting down")

    app = FastAPI(lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.state.backend = backend
    app.state.registry = registry
    app.state.coordinator = SignalingCoordinator(registry)
    app.state.code_store = code_store
    app.state.rate_limiter = rate_limiter or RateLimiter(backend, **clock_kwargs)
    app.state.admin_auth = admin_auth or AdminAuthenticator()
    app.state.janitor = janitor

    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(BackendError)
    async def backend_exception_handler(request: Request, exc: BackendError):
        logger.error(f"Backend failure on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return BANNER

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        return HealthResponse(
            status="ok",
            sessions=len(request.app.state.registry),
            activeCodes=await run_in_threadpool(request.app.state.code_store.count_active),
            storage=request.app.state.backend.name,
        )

    @app.websocket("/")
    @app.websocket("/ws")
    async def signaling_endpoint(websocket: WebSocket):
        """Signaling WebSocket: join a session, then relay offer/answer/ice-candidate to the other peer."""
        coordinator: SignalingCoordinator = websocket.app.state.coordinator
        await websocket.accept()
        peer = PeerConnection(websocket)
        logger.info(f"WebSocket connection accepted: {peer.connection_id}")

        try:
            while True:
                data = await websocket.receive_text()
                await coordinator.handle_message(peer, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {peer.connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {peer.connection_id}: {e}", exc_info=True)
        finally:
            await coordinator.handle_close(peer)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
