from fastapi import APIRouter

from src.mailflow.api.v1 import automations, executions, queues, usage

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(automations.router)
api_router.include_router(executions.router)
api_router.include_router(queues.router)
api_router.include_router(usage.router)
