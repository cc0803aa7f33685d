import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import Settings
from .context import AppContext, build_context
from .errors import AuthError, CollaboratorError, InvalidInputError, NotFoundError, PolicyError, SchoolAdminError
from .routes import router
from .sharing import EXPORT_PREFIX
from .storage import STATIC_PREFIX


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthError: 401,
    PolicyError: 403,
    NotFoundError: 404,
    InvalidInputError: 422,
    CollaboratorError: 502,
}


def _status_for(exc: SchoolAdminError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


async def school_admin_error_handler(request: Request, exc: SchoolAdminError) -> JSONResponse:
    status_code = _status_for(exc)
    if isinstance(exc, CollaboratorError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.__cause__!r})")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content={"title": exc.title, "detail": exc.message})


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    if context is None:
        context = build_context(settings or Settings())
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("School admin API starting")
        yield
        logger.info("Shutting down...")
        if context.engine is not None:
            context.engine.dispose()

    app = FastAPI(title="School Admin API", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SchoolAdminError, school_admin_error_handler)

    os.makedirs(settings.upload_dir, exist_ok=True)
    os.makedirs(settings.export_dir, exist_ok=True)
    app.mount(STATIC_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")
    app.mount(EXPORT_PREFIX, StaticFiles(directory=settings.export_dir), name="exports")

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    app.include_router(router)
    return app


def main() -> FastAPI:
    env_path = os.path.join(os.getcwd(), ".env")
    load_dotenv(dotenv_path=env_path, override=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()],
    )
    logger.info(f"Loaded configuration from: {env_path}")
    return create_app(Settings())


def serve() -> None:
    import uvicorn

    host = os.getenv("BACKEND_HOST", "127.0.0.1")
    port = int(os.getenv("BACKEND_PORT", "8000"))
    try:
        uvicorn.run(main(), host=host, port=port)
    except OSError as e:
        if "address already in use" in str(e).lower():
            logger.error(f"Port {port} is already in use. Stop the old process or set BACKEND_PORT to another port.")
        raise


if __name__ == "__main__":
    serve()
