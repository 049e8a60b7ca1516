import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.database import connect_to_mongo, close_mongo_connection
from src.core.logger import setup_logging
from src.database.collections import get_users_collection, get_videos_collection
from src.database.video_store import VideoStore
from src.api.routes_videos import router as videos_router
from src.utils.api_error import ApiError, ValidationError
from src.utils.asset_resolver import AssetResolver
from src.utils.upload_gateway import S3UploadGateway, UploadGatewayConfig

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # a failed connect raises here and the server never starts listening
    await connect_to_mongo()
    await VideoStore(get_videos_collection(), get_users_collection()).ensure_indexes()

    if settings.AWS_S3_BUCKET:
        gateway = S3UploadGateway(UploadGatewayConfig.from_settings(settings))
        app.state.asset_resolver = AssetResolver(gateway, timeout=settings.UPLOAD_TIMEOUT_SECONDS)
    else:
        logger.warning("AWS_S3_BUCKET is not set, uploads are disabled")

    yield
    await close_mongo_connection()


app = FastAPI(title="VideoTube API", lifespan=lifespan)

# Allow CORS (for frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Replace with your frontend URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(videos_router, prefix="/videos", tags=["videos"])


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.errors)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(include_trace=settings.DEBUG))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    error = ValidationError(message="invalid request", errors=errors)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = ApiError(500, errors=[str(exc)] if settings.DEBUG else [])
    return JSONResponse(status_code=error.status_code, content=error.to_dict(include_trace=settings.DEBUG))


@app.get("/")
async def root():
    return {"message": "VideoTube API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT)
