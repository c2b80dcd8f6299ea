# main.py (FastAPI application entry point)

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.middleware.cors import CORSMiddleware

from config import Settings
from exceptions import PaymentNotFound, PaymentStateConflict
from models import (
    ConfirmPaymentRequest,
    ConfirmPaymentResult,
    Payment,
    PaymentCreate,
    PaymentFilter,
    PaymentPage,
    PaymentStatus,
    SortField,
    SortOrder,
    VerificationOutcome,
    VerificationRequest,
)
from services.ledger_client import SorobanLedgerClient
from services.payment_service import PaymentService
from services.signer import Signer
from services.soroban_service import SorobanService

log = logging.getLogger(__name__)


def build_verifier(settings: Settings) -> SorobanService:
    return SorobanService(
        settings=settings,
        ledger_client=SorobanLedgerClient(settings.rpc_url, timeout=settings.rpc_timeout),
        signer=Signer(settings.admin_secret_key),
    )


def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[SorobanService] = None,
    payment_service: Optional[PaymentService] = None,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal settings, verifier, payment_service
        settings = settings or Settings.from_env()
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        owns_verifier = verifier is None
        verifier = verifier or build_verifier(settings)
        payment_service = payment_service or PaymentService(verifier)

        app.state.verifier = verifier
        app.state.payment_service = payment_service
        if not settings.contract_configured:
            log.warning("PAYMENT_CONTRACT_ID is not configured; every on-chain verification will be rejected.")
        try:
            yield
        finally:
            if owns_verifier:
                await verifier.ledger_client.close()

    app = FastAPI(
        title="Payment Verifier",
        description="API to record merchant payments and confirm them against the Soroban verification contract.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error_details = []
        for error in exc.errors():
            field = ".".join(map(str, error["loc"])) if error["loc"] else "unknown"
            error_details.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"]
            })
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": error_details,
                "message": "Validation Error: The provided data does not match the expected format.",
                "debug_info": "Check 'detail' for specific field errors."
            },
        )

    def get_payment_service(request: Request) -> PaymentService:
        return request.app.state.payment_service

    def get_verifier(request: Request) -> SorobanService:
        return request.app.state.verifier

    def payment_filter(
        status: Optional[PaymentStatus] = None,
        currency: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: SortField = SortField.CREATED_AT,
        order: SortOrder = SortOrder.DESC,
    ) -> PaymentFilter:
        return PaymentFilter(
            status=status, currency=currency, search=search,
            date_from=date_from, date_to=date_to, sort_by=sort_by, order=order,
        )

    @app.post("/verify_payment_on_chain", response_model=VerificationOutcome)
    async def verify_payment_on_chain(
        verification: VerificationRequest,
        verifier: SorobanService = Depends(get_verifier),
    ):
        return await verifier.verify(verification)

    @app.post("/payments", response_model=Payment, status_code=status.HTTP_201_CREATED)
    async def create_payment(details: PaymentCreate, service: PaymentService = Depends(get_payment_service)):
        return service.create_payment(details)

    @app.get("/payments", response_model=PaymentPage)
    async def list_payments(
        filters: PaymentFilter = Depends(payment_filter),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        service: PaymentService = Depends(get_payment_service),
    ):
        return service.list_payments(filters, page=page, limit=limit)

    @app.get("/payments/export")
    async def export_payments(
        filters: PaymentFilter = Depends(payment_filter),
        service: PaymentService = Depends(get_payment_service),
    ):
        return Response(
            content=service.export_csv(filters),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="payments_history.csv"'},
        )

    @app.get("/payments/{payment_id}", response_model=Payment)
    async def get_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
        try:
            return service.get_payment(payment_id)
        except PaymentNotFound:
            raise HTTPException(status_code=404, detail={"error": "Payment not found", "payment_id": payment_id})

    @app.post("/payments/{payment_id}/confirm", response_model=ConfirmPaymentResult)
    async def confirm_payment(
        payment_id: str,
        confirmation: ConfirmPaymentRequest,
        service: PaymentService = Depends(get_payment_service),
    ):
        try:
            payment, outcome = await service.confirm_payment(
                payment_id, confirmation.transaction_hash, confirmation.payer_address,
            )
        except PaymentNotFound:
            raise HTTPException(status_code=404, detail={"error": "Payment not found", "payment_id": payment_id})
        except PaymentStateConflict as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "Payment cannot be confirmed", "payment_id": payment_id, "status": e.status},
            )
        return ConfirmPaymentResult(payment=payment, outcome=outcome)

    @app.get("/")
    async def root():
        return {"message": "Payment Verification API. Use /docs for API documentation."}

    return app


app = create_app()
