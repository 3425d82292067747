import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .db import create_db_and_tables

from .routers.orders import router as orders_router
from .routers.reconciliation import router as reconciliation_router
from .routers.designs import router as designs_router
from .routers.karigars import router as karigars_router
from .routers.ageing import router as ageing_router


def get_cors_origins():
    """Get CORS origins from environment or use defaults for development"""
    origins_env = os.getenv("CORS_ORIGINS", "")
    if origins_env:
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    # Default development origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


def create_app() -> FastAPI:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        title="Karigar Order Tracking",
        description="Jewellery production orders: karigar assignment, RB partial supply, hallmarking and ageing",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(orders_router)
    app.include_router(reconciliation_router)
    app.include_router(designs_router)
    app.include_router(karigars_router)
    app.include_router(ageing_router)

    @app.on_event("startup")
    def on_startup():
        print("[karigar_core] Creating database tables at startup...")
        create_db_and_tables()
        print("[karigar_core] Database ready.")

    return app


app = create_app()
