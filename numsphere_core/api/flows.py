"""Flow editor routes: validation and call preview."""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..flows import CallContext, FlowResponseBuilder, FlowValidator
from .deps import get_flow_validator, get_response_builder

logger = structlog.get_logger()

router = APIRouter(prefix="/flows", tags=["flows"])


class FlowConfigRequest(BaseModel):
    """A flow definition as the editor saves it."""

    config: Any = Field(..., description="Flow definition (object or JSON string)")


class PreviewRequest(FlowConfigRequest):
    """Preview a flow with a mock call."""

    caller: str = "+15555550100"
    called: str = "+15555550199"
    call_sid: str = "CApreview"
    voice: Optional[str] = None


class ValidationIssueResponse(BaseModel):
    severity: str
    message: str
    block_id: Optional[str] = None
    property_name: Optional[str] = None


class ValidationResponse(BaseModel):
    valid: bool
    errors: int
    warnings: int
    issues: List[ValidationIssueResponse]


class PreviewResponse(BaseModel):
    twiml: str
    flow_format: Optional[str] = None
    visited: List[str] = Field(default_factory=list)
    stopped_by: Optional[str] = None
    fallback: str
    validation: ValidationResponse


def _validation_response(validator: FlowValidator, config: Any) -> ValidationResponse:
    result = validator.validate(config)
    return ValidationResponse(
        valid=result.valid,
        errors=len(result.errors),
        warnings=len(result.warnings),
        issues=[ValidationIssueResponse(**issue.to_dict()) for issue in result.issues],
    )


@router.post("/validate", response_model=ValidationResponse)
async def validate_flow(
    body: FlowConfigRequest,
    validator: FlowValidator = Depends(get_flow_validator),
) -> ValidationResponse:
    """Validate a flow definition."""
    return _validation_response(validator, body.config)


@router.post("/preview", response_model=PreviewResponse)
async def preview_flow(
    body: PreviewRequest,
    builder: FlowResponseBuilder = Depends(get_response_builder),
    validator: FlowValidator = Depends(get_flow_validator),
) -> PreviewResponse:
    """Compile a flow for a mock call and return the document a caller would get."""
    context = CallContext(
        call_sid=body.call_sid,
        caller=body.caller,
        called=body.called,
    )
    rendered = builder.build_with_details(body.config, context, voice=body.voice)

    details: Dict[str, Any] = {
        "flow_format": rendered.flow_format.value if rendered.flow_format else None,
        "stopped_by": rendered.stopped_by.value if rendered.stopped_by else None,
    }
    logger.debug("Previewed flow", visited=rendered.visited, **details)

    return PreviewResponse(
        twiml=rendered.twiml,
        visited=rendered.visited,
        fallback=rendered.fallback.value,
        validation=_validation_response(validator, body.config),
        **details,
    )
