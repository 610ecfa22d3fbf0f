from fastapi import APIRouter, FastAPI

from . import admin, ledger, system


def register_routes(app: FastAPI) -> None:
    router = APIRouter(prefix="/api/v1")
    router.include_router(ledger.router, prefix="/ledger", tags=["ledger"])
    router.include_router(admin.router, prefix="/admin", tags=["admin"])
    router.include_router(system.router, tags=["system"])
    app.include_router(router)
