from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from caddate.core.config import CORS_ORIGINS
from caddate.core.logging import setup_logging
from caddate.core.init_db import init_db
from caddate.api.router import api_router
from caddate.realtime.socket_server import SocketServer

setup_logging()
logger.info("Starting Caddate backend")


app = FastAPI(
    title="Caddate Backend",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=CORS_ORIGINS != ["*"],
)

# All API routes (location lives under /v1/location)
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed fields are a plain 400 like the range checks in the store
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    logger.info(f"Request rejected | path={request.url.path} field={field}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "message": "Invalid request",
                "field": field or None,
                "reason": first.get("msg"),
            }
        },
    )


# Realtime layer; one presence registry per process
socket_server = SocketServer()
asgi_app = socket_server.asgi_app(app)

# Init DB after app is created
init_db()

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok", "online": len(socket_server.registry)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("caddate.main:asgi_app", host="0.0.0.0", port=3000)
