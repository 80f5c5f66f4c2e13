from fastapi import APIRouter
from bizdata.api.endpoints import protocol, assistant

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(protocol.router)
api_router.include_router(assistant.router)
