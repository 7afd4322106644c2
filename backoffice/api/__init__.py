"""
Back-Office API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..logging_config import CORRELATION_HEADER, correlation_context, new_correlation_id
from .customers import router as customers_router
from .organizations import router as organizations_router
from .operators import router as operators_router
from .accounts import customer_accounts_router, organization_accounts_router
from .transactions import router as transactions_router
from .kyc import router as kyc_router
from .audit import router as audit_router
from .rbac import router as rbac_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Bank Back-Office API",
        description="Read-mostly staff console over core-banking customers, accounts and transactions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlate_requests(request: Request, call_next):
        """Tag the request's log lines with X-Request-ID (or a fresh id) and echo it back"""
        correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
        with correlation_context(correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    # Include routers
    app.include_router(rbac_router, tags=["RBAC"])
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(organizations_router, prefix="/organizations", tags=["Organizations"])
    app.include_router(operators_router, prefix="/operators", tags=["Operators"])
    app.include_router(customer_accounts_router, prefix="/customer-accounts", tags=["Accounts"])
    app.include_router(organization_accounts_router, prefix="/organization-accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(kyc_router, prefix="/kyc", tags=["KYC"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "backoffice_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Bank Back-Office API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "login": "/auth/login",
                "customers": "/customers",
                "organizations": "/organizations",
                "operators": "/operators",
                "customer-accounts": "/customer-accounts",
                "organization-accounts": "/organization-accounts",
                "transactions": "/transactions",
                "kyc": "/kyc",
                "audit": "/audit",
            }
        }

    return app


app = create_app()
