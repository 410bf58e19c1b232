from serverlib.config import config, logging_config
from serverlib.helpers import get_utc_now, redact_connection_string
from serverlib.realtime.presence import presence
from serverlib.realtime.sockets import sio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
import logging
import logging.config
import socketio

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("MONGO_URI: %s", redact_connection_string(config.MONGO_URI) or "<not set>")
    logger.info("Server is running on port: %s", config.PORT)
    yield

    # Shutdown cleanup
    presence.clear()
    logger.info("Shutting down")

app = FastAPI(
    title="Chat Backend",
    version="1.0.0",
    lifespan=lifespan
)

# Credentials (session cookie) must cross origins for the browser client
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc: Exception):
    """Return 500 { \"detail\": \"<error>\" }"""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get('/', response_class=PlainTextResponse)
async def root() -> str:
    return "Hello World"

@app.get("/health")
async def health():
    """Detailed health check"""
    return {
        'status': 'healthy',
        'ts': get_utc_now(),
        'online_users': len(presence.online_user_ids()),
    }


# Socket.IO handles /socket.io/*, everything else goes to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


def main() -> None:
    import uvicorn

    logging.config.dictConfig(logging_config(config.LOG_LEVEL))
    uvicorn.run(asgi_app, host=config.HOST, port=config.PORT, log_config=None)


if __name__ == "__main__":
    main()
