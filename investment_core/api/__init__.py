"""
Investment API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import investment_error_handler
from .accounts import router as accounts_router
from .products import router as products_router
from .investments import router as investments_router
from .withdrawals import router as withdrawals_router, deposits_router
from .admin import router as admin_router
from .. import __version__
from ..errors import InvestmentError
from ..logging_config import get_logger
from ..scheduler import start_scheduler
from ..system import InvestmentSystem

logger = get_logger(__name__)


def create_app(system: Optional[InvestmentSystem] = None,
               enable_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Engine instance to serve (built from configuration if omitted)
        enable_scheduler: Start the daily accrual job with the app
            (defaults to the scheduler_enabled setting)
    """
    system = system or InvestmentSystem()
    if enable_scheduler is None:
        enable_scheduler = system.config.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = start_scheduler(system) if enable_scheduler else None
        yield
        if scheduler:
            scheduler.shutdown(wait=False)
            logger.info("Accrual scheduler stopped")

    app = FastAPI(
        title="Investment Engine API",
        description="Investment accrual, profit claims and withdrawal escrow",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(InvestmentError, investment_error_handler)

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(products_router, prefix="/products", tags=["Products"])
    app.include_router(investments_router, prefix="/investments", tags=["Investments"])
    app.include_router(withdrawals_router, prefix="/withdrawals", tags=["Withdrawals"])
    app.include_router(deposits_router, prefix="/deposits", tags=["Deposits"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "investment_core_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        return {
            "name": "Investment Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "products": "/products",
                "investments": "/investments",
                "withdrawals": "/withdrawals",
                "deposits": "/deposits",
                "admin": "/admin",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "investment_core.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
