from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_ledger.api.v1.audit.router import router as audit_router
from school_ledger.api.v1.enrollments.router import router as enrollments_router
from school_ledger.api.v1.fee_dues.router import router as fee_dues_router
from school_ledger.api.v1.payments.router import router as payments_router
from school_ledger.api.v1.promotions.router import router as promotions_router
from school_ledger.api.v1.reference.router import router as reference_router
from school_ledger.core.config import settings
from school_ledger.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings)
    app = FastAPI(title="School Ledger")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(reference_router)
    app.include_router(enrollments_router)
    app.include_router(promotions_router)
    app.include_router(fee_dues_router)
    app.include_router(payments_router)
    app.include_router(audit_router)

    logger.info("app_created", routes=len(app.routes))
    return app


app = create_app()
