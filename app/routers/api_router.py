from fastapi import APIRouter
from app.routers import leave, approvals, delegations, balances, workflows, notifications, cron

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave.router)
api_router.include_router(approvals.router)
api_router.include_router(delegations.router)
api_router.include_router(balances.router)
api_router.include_router(workflows.router)
api_router.include_router(notifications.router)
api_router.include_router(cron.router)
