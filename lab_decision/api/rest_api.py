"""
REST API for the Lab Decision Engine
Trigger surface for the SLA and interpretation engines
"""

from fastapi import FastAPI, HTTPException, Depends, Header, Request, status, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import List, Optional
from datetime import datetime
import hmac
import logging

from ..core.config import settings
from ..core.database import db_manager
from ..core.exceptions import NotFoundError, ValidationError, StorageError
from ..services.store import LabStore
from ..services.sla_engine import SLAEngine, SLAPolicy
from ..services.interpretation_engine import InterpretationEngine
from ..services.edit_guard import denied_fields
from .schemas import (
    RuleCreate, RuleResponse, AppliedInterpretationResponse,
    EvaluateRequest, EvaluateResponse,
    SLAUpdateRequest, SLABatchResponse, SLAStatsResponse, SampleSLAResponse, SLAOverviewResponse,
    EditCheckRequest, EditCheckResponse,
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="SLA tracking and result interpretation for laboratory samples",
    debug=settings.debug,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api_cors_origins,
    allow_credentials=True,
    allow_methods=settings.api_cors_methods,
    allow_headers=settings.api_cors_headers,
)


# Dependencies
def get_store() -> LabStore:
    return LabStore(company_id=settings.company_id)


def get_sla_engine(store: LabStore = Depends(get_store)) -> SLAEngine:
    return SLAEngine(store, SLAPolicy.from_settings(settings))


def get_interpretation_engine(store: LabStore = Depends(get_store)) -> InterpretationEngine:
    return InterpretationEngine(store)


def require_cron_secret(authorization: Optional[str] = Header(None)):
    """Scheduled calls must present the configured bearer secret"""
    secret = settings.cron_secret
    expected = f"Bearer {secret}" if secret else None
    if not expected or not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# Error mapping
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": exc.message, "errors": exc.errors}
    )


@app.exception_handler(StorageError)
async def storage_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Storage failure"})


# Health check endpoint
@app.get("/health", tags=["System"])
def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy" if db_manager.test_connection() else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.app_version,
        "environment": settings.environment
    }


def _batch_response(engine: SLAEngine, message: str) -> SLABatchResponse:
    result = engine.update_all_sla_statuses()
    logger.info(f"SLA update completed: {result.updated} updated, {result.errors} errors")
    return SLABatchResponse(
        message=message,
        updated=result.updated,
        errors=result.errors,
        status="partial_success" if result.errors else "success",
        timestamp=datetime.utcnow(),
    )


def _overview(engine: SLAEngine) -> SLAOverviewResponse:
    return SLAOverviewResponse(
        stats=SLAStatsResponse(**engine.get_sla_stats().to_dict()),
        attention=[SampleSLAResponse.model_validate(s) for s in engine.get_samples_needing_attention()],
        express_due_soon=[SampleSLAResponse.model_validate(s) for s in engine.get_express_due_soon()],
    )


# Scheduled SLA trigger
@app.post("/cron/sla-update", response_model=SLABatchResponse, tags=["SLA"],
          dependencies=[Depends(require_cron_secret)])
def cron_sla_update(engine: SLAEngine = Depends(get_sla_engine)):
    """Daily sweep over every tracked sample"""
    logger.info("Starting scheduled SLA status update")
    return _batch_response(engine, "SLA update completed successfully")


@app.get("/cron/sla-update", response_model=SLAOverviewResponse, tags=["SLA"],
         dependencies=[Depends(require_cron_secret)])
def cron_sla_check(engine: SLAEngine = Depends(get_sla_engine)):
    """SLA overview for monitoring"""
    return _overview(engine)


# On-demand SLA endpoints
@app.post("/sla/update", tags=["SLA"])
def update_sla(request: SLAUpdateRequest, engine: SLAEngine = Depends(get_sla_engine)):
    """Refresh one sample, or sweep everything when no sample is given"""
    if request.sample_id is None:
        return _batch_response(engine, "SLA status update completed")

    if not engine.update_sample_sla_status(request.sample_id):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update SLA status"
        )
    return {"message": "SLA status updated successfully", "sample_id": request.sample_id}


@app.get("/sla", response_model=SLAOverviewResponse, tags=["SLA"])
def get_sla_overview(engine: SLAEngine = Depends(get_sla_engine)):
    """SLA statistics and samples needing attention"""
    return _overview(engine)


# Interpretation endpoints
@app.get("/interpretations/rules", response_model=List[RuleResponse], tags=["Interpretations"])
def list_rules(
    area: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    engine: InterpretationEngine = Depends(get_interpretation_engine)
):
    """List interpretation rules"""
    return [RuleResponse.model_validate(rule) for rule in engine.get_rules(area=area, active=active)]


@app.post("/interpretations/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED,
          tags=["Interpretations"])
def create_rule(payload: dict, engine: InterpretationEngine = Depends(get_interpretation_engine)):
    """Create an interpretation rule"""
    # Validated by the engine so API and console share one set of rules
    return RuleResponse.model_validate(engine.create_rule(payload))


@app.post("/interpretations/rules/{rule_id}/deactivate", response_model=RuleResponse, tags=["Interpretations"])
def deactivate_rule(rule_id: int, engine: InterpretationEngine = Depends(get_interpretation_engine)):
    """Deactivate an interpretation rule"""
    return RuleResponse.model_validate(engine.deactivate_rule(rule_id))


@app.post("/interpretations/evaluate", response_model=EvaluateResponse, tags=["Interpretations"])
def evaluate_sample(request: EvaluateRequest, engine: InterpretationEngine = Depends(get_interpretation_engine)):
    """Evaluate every active rule against a sample"""
    applied = engine.evaluate_and_apply_rules(request.sample_id)
    return EvaluateResponse(
        message="Interpretation rules evaluated successfully",
        applied_interpretations=[AppliedInterpretationResponse.model_validate(a) for a in applied],
        count=len(applied),
    )


@app.get("/samples/{sample_id}/interpretations", response_model=List[AppliedInterpretationResponse],
         tags=["Interpretations"])
def get_sample_interpretations(sample_id: int, engine: InterpretationEngine = Depends(get_interpretation_engine)):
    """Applied interpretations recorded for a sample"""
    return [AppliedInterpretationResponse.model_validate(a) for a in engine.get_applied_interpretations(sample_id)]


# Edit guard
@app.post("/samples/{sample_id}/edit-check", response_model=EditCheckResponse, tags=["Samples"])
def check_sample_edit(sample_id: int, request: EditCheckRequest, store: LabStore = Depends(get_store)):
    """Report which of the requested fields may be changed"""
    if store.get_sample(sample_id) is None:
        raise NotFoundError("Sample", sample_id)
    validated = store.sample_has_validated_results(sample_id)
    denied = denied_fields(request.fields, validated)
    return EditCheckResponse(
        sample_id=sample_id,
        has_validated_results=validated,
        allowed=not denied,
        denied_fields=denied,
    )
