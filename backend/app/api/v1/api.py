from fastapi import APIRouter

from backend.app.api.v1.endpoints import health, recurring, scheduled_tasks

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(recurring.router, prefix="/recurring-invoices", tags=["recurring-invoices"])
api_router.include_router(
    scheduled_tasks.router,
    prefix="/scheduled-tasks/recurring-invoices",
    tags=["scheduled-tasks"],
)
