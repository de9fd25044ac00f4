from __future__ import annotations

import logging

from django.conf import settings
from ninja import NinjaAPI
from ninja.errors import ValidationError

from accounts.api import router as auth_router
from checkout.api import router as checkout_router
from payments.api import router as payments_router
from promotions.api import router as promotions_router
from shiprocket.api import router as shiprocket_router

from .errors import PipelineError

logger = logging.getLogger(__name__)

docs_url = "/docs" if getattr(settings, "NINJA_ENABLE_DOCS", True) else None
openapi_url = "/openapi.json" if getattr(settings,
                                         "NINJA_ENABLE_DOCS", True) else None

api = NinjaAPI(
    title="StickySpot order pipeline API",
    version="1",
    docs_url=docs_url,
    openapi_url=openapi_url,
)

api.add_router("/auth", auth_router)
api.add_router("/checkout", checkout_router)
api.add_router("/payments", payments_router)
api.add_router("/promotions", promotions_router)
api.add_router("/shiprocket", shiprocket_router)


@api.exception_handler(PipelineError)
def pipeline_error(request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.category, exc.message, extra={"path": request.path})
    return api.create_response(request, exc.as_payload(), status=exc.status_code)


@api.exception_handler(ValidationError)
def validation_error(request, exc: ValidationError):
    return api.create_response(
        request,
        {"error": "Invalid request", "category": "validation", "details": {"errors": exc.errors}},
        status=400,
    )


@api.get("/health")
def health(request):
    return {"status": "ok"}
