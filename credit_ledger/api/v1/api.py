from fastapi import APIRouter
from credit_ledger.api.v1.endpoints import credits

api_router = APIRouter()

api_router.include_router(credits.router, prefix="/credits", tags=["credits"])
