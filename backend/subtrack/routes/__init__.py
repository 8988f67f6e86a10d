from fastapi import APIRouter
from subtrack.routes import subscription_import

api_router = APIRouter()

api_router.include_router(subscription_import.router, prefix="/import", tags=["import"])
