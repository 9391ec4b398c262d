from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from credit_ledger.core.config import settings
from credit_ledger.core.logging import configure_logging
from credit_ledger.db.mongo import connect_to_mongo, close_mongo_connection
from credit_ledger.repositories.ledger_store import connect_ledger_store, close_ledger_store
from credit_ledger.api.v1.api import api_router

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_ledger_store()
    await connect_to_mongo()
    try:
        yield
    finally:
        await close_mongo_connection()
        await close_ledger_store()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {"message": "Welcome to Credit Ledger API"}

app.include_router(api_router, prefix=settings.API_V1_STR)
