from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from config.logger import setup_logging
from config.settings import get_settings
from database.mongodb import mongodb

settings = get_settings()

# Routers
from routes import (
    analyze,
    scope
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    mongodb.ensure_indexes()

    yield

    mongodb.close()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_credentials=True,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/")
def root():
    return {"message": "Hello, FastAPI!"}


@app.get("/health")
def health():
    return {"status": "ok", "version": settings.APP_VERSION}


# Register routes
app.include_router(scope.router, prefix="/api/v1", tags=["Scoping"])
app.include_router(analyze.router, prefix="/api/v1", tags=["Photo Analysis"])

# handler for AWS
handler = Mangum(app)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.APP_PORT)
