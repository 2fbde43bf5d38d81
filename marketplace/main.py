import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.core.config import settings
from marketplace.core.errors import MarketplaceError, StorageError
from marketplace.routers import applications as applications_router
from marketplace.routers import auth as auth_router
from marketplace.routers import messages as messages_router
from marketplace.routers import projects as projects_router
from marketplace.routers import users as users_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)
app.include_router(users_router.router)
app.include_router(projects_router.router)
app.include_router(applications_router.router)
app.include_router(messages_router.router)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    # The traceback was logged where the store failed
    logger.error("Request %s %s failed on storage", request.method, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.default_detail})


@app.get("/")
async def root():
    return {"message": "Welcome to the Freelance Marketplace API"}


@app.get("/health")
async def health():
    return {"status": "ok"}


def main():
    """Run the FastAPI application."""
    uvicorn.run(
        "marketplace.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
