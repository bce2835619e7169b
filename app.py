from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from backend import redis_backend
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE
from errors import StoreUnavailable
from routers.rooms import rooms_router, users_router
from services import connection_manager, event_dispatcher, room_directory
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await redis_backend.ping()
        logger.info("Redis store reachable")
    except StoreUnavailable:
        logger.error("Redis store unreachable at startup")
        raise
    await room_directory.load()
    yield
    await redis_backend.redis_client.aclose()
    logger.info("Redis connection closed")


app = FastAPI(title="Room Chat", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)
app.include_router(users_router)

logger.info("FastAPI application initialized")


@app.get("/health")
async def health():
    try:
        await redis_backend.ping()
    except StoreUnavailable:
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ok"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Full-duplex chat channel.

    Frames are JSON objects `{"type": <event>, "data": <payload>}` in both directions.
    """
    connection_id = await connection_manager.connect(websocket)
    message_count = 0
    try:
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received frame #{message_count} from connection {connection_id}")
            await event_dispatcher.handle_text(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        connection_manager.disconnect(connection_id)
        await event_dispatcher.on_disconnect(connection_id)
