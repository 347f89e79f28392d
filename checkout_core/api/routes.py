"""
API routes for checkout processing.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..context import AppContext
from ..errors import CheckoutCoreError, PaymentGatewayError
from ..monitoring.health import HealthCheck
from ..payments.models import PaymentIntent
from ..payments.production import StripePaymentService
from ..services.email import SendGridEmailService
from .schemas import (
    AutoAdvanceRequest,
    AutoAdvanceResponse,
    CreatePaymentIntentRequest,
    HealthCheckResponse,
    IntegrationStatusResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    ScheduledOrdersResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
payment_router = APIRouter(prefix="/payments", tags=["payments"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
integration_router = APIRouter(prefix="/integration", tags=["integration"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context


def _unavailable(e: CheckoutCoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Service unavailable: {str(e)}",
    )


@payment_router.post(
    "/process",
    response_model=ProcessPaymentResponse,
    summary="Process a payment",
    description="Charge a payment method through the configured payment engine",
)
async def process_payment(
    request: ProcessPaymentRequest,
    context: AppContext = Depends(get_app_context),
) -> ProcessPaymentResponse:
    """
    Process a payment.

    Field errors answer 400 and declines answer 402.
    """
    try:
        service = context.get_payment_service()
    except CheckoutCoreError as e:
        raise _unavailable(e)

    validation = service.validate_payment_method(request.payment_method)
    if not validation.valid:
        logger.warning("api_payment_validation_error", fields=sorted(validation.errors))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid payment method", "errors": validation.errors},
        )

    result = await service.process_payment(request.amount, request.payment_method)
    if not result.success:
        logger.info("api_payment_declined", payment_id=result.payment_id, error=result.error)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=result.error or "Payment failed",
        )

    logger.info("api_payment_processed", payment_id=result.payment_id, amount=request.amount)
    return ProcessPaymentResponse(
        success=True,
        payment_id=result.payment_id,
        transaction_id=result.transaction_id,
        receipt=result.receipt,
        processing_time=result.processing_time,
        is_demo=service.is_demo(),
    )


@payment_router.post(
    "/intents",
    response_model=PaymentIntent,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payment intent",
)
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    context: AppContext = Depends(get_app_context),
) -> Any:
    try:
        service = context.get_payment_service()
        return await service.create_payment_intent(request.amount, request.currency)
    except PaymentGatewayError as e:
        logger.error("api_create_payment_intent_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Payment intent creation failed: {str(e)}",
        )
    except CheckoutCoreError as e:
        raise _unavailable(e)


@webhook_router.post(
    "/stripe",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Receive and process Stripe webhook events",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    context: AppContext = Depends(get_app_context),
) -> WebhookResponse:
    try:
        service = context.get_payment_service()
    except CheckoutCoreError as e:
        raise _unavailable(e)

    if not isinstance(service, StripePaymentService):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Stripe webhooks are not accepted by the demo payment engine",
        )

    payload = await request.body()
    result = await service.handle_webhook(payload, stripe_signature)
    if not result["success"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])

    return WebhookResponse(success=True, event_type=result["event"].get("type"))


@webhook_router.post(
    "/sendgrid",
    response_model=WebhookResponse,
    summary="SendGrid event webhook endpoint",
)
async def sendgrid_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias="X-Twilio-Email-Event-Webhook-Signature"),
    context: AppContext = Depends(get_app_context),
) -> WebhookResponse:
    try:
        service = context.get_email_service()
    except CheckoutCoreError as e:
        raise _unavailable(e)

    if not isinstance(service, SendGridEmailService):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="SendGrid webhooks require the SendGrid email provider",
        )

    payload = await request.body()
    result = await service.handle_webhook(payload, signature)
    if not result["success"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])

    return WebhookResponse(success=True, events_processed=len(result["events"]))


@order_router.post(
    "/auto-advance",
    response_model=AutoAdvanceResponse,
    summary="Start demo order progression",
)
async def start_auto_advance(
    request: AutoAdvanceRequest,
    context: AppContext = Depends(get_app_context),
) -> AutoAdvanceResponse:
    try:
        engine = context.get_progression_engine()
    except CheckoutCoreError as e:
        raise _unavailable(e)

    order = request.order
    scheduled = engine.start_auto_advancement(order)
    next_update = engine.get_estimated_next_update(order.id)
    return AutoAdvanceResponse(
        order_id=order.id,
        scheduled=scheduled,
        next_update_at=next_update.isoformat() if next_update else None,
    )


@order_router.delete(
    "/{order_id}/auto-advance",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop demo order progression",
)
async def stop_auto_advance(
    order_id: str,
    context: AppContext = Depends(get_app_context),
) -> Response:
    engine = context.progression_engine
    if engine is not None:
        engine.stop_auto_advancement(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@order_router.get(
    "/auto-advance",
    response_model=ScheduledOrdersResponse,
    summary="List orders with a scheduled advance",
)
async def list_auto_advance(
    context: AppContext = Depends(get_app_context),
) -> ScheduledOrdersResponse:
    engine = context.progression_engine
    return ScheduledOrdersResponse(order_ids=engine.scheduled_order_ids() if engine else [])


@integration_router.get(
    "/status",
    response_model=IntegrationStatusResponse,
    summary="Provider selection and configuration summary",
)
async def integration_status(
    context: AppContext = Depends(get_app_context),
) -> IntegrationStatusResponse:
    try:
        return IntegrationStatusResponse(
            services=context.get_service_status(),
            config=context.get_config_summary(),
        )
    except CheckoutCoreError as e:
        raise _unavailable(e)


@integration_router.get("/checklist", summary="Production readiness checklist")
async def integration_checklist(
    context: AppContext = Depends(get_app_context),
) -> Dict[str, Any]:
    report = context.validate_production_config()
    return {
        "checklist": context.get_production_checklist(),
        "production_config": report.model_dump(),
    }


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Liveness check",
    description="Check if application is alive",
)
async def health_check(context: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    return await HealthCheck(context).liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    description="Check if configuration and providers are usable",
)
async def readiness_check(
    response: Response,
    context: AppContext = Depends(get_app_context),
) -> Dict[str, Any]:
    health = await HealthCheck(context).readiness()
    if health["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return health


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose metrics in Prometheus format",
)
async def get_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
