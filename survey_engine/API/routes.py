from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from survey_engine.models.responses import CompletionRequest, ResponseSubmission
from survey_engine.services.exporter import ExportFormat, csv_filename

from .survey_data_provider import SurveyDataProvider, get_data_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get(
    "/surveys",
    summary="List every survey with session counts",
)
def list_surveys(provider: SurveyDataProvider = Depends(get_data_provider)) -> List[Dict[str, Any]]:
    return [summary.model_dump() for summary in provider.aggregator.summaries()]


@router.post(
    "/survey/response",
    summary="Create or overwrite one answer and touch the respondent's session",
)
def submit_response(
    req: ResponseSubmission,
    provider: SurveyDataProvider = Depends(get_data_provider),
) -> Dict[str, Any]:
    provider.responses.upsert_response(
        respondent_id=req.respondent_id,
        survey_id=req.survey_id,
        question_id=req.question_id,
        answer_value=req.answer_value,
        answer_text=req.answer_text,
        original_position=req.original_position,
    )
    return {"success": True, "message": "Response saved successfully"}


@router.post(
    "/survey/complete",
    summary="Mark a respondent's session as completed (one-way)",
)
def complete_survey(
    req: CompletionRequest,
    provider: SurveyDataProvider = Depends(get_data_provider),
) -> Dict[str, Any]:
    session = provider.sessions.complete_session(req.respondent_id, req.survey_id)
    return {
        "success": True,
        "message": "Survey completed successfully",
        "completed_at": session.completed_at,
    }


@router.get(
    "/survey/{survey_id}",
    summary="Get an active survey and its ordered questions",
)
def get_survey(survey_id: str, provider: SurveyDataProvider = Depends(get_data_provider)) -> Dict[str, Any]:
    return provider.catalog.load(survey_id).to_payload()


@router.get(
    "/survey/{survey_id}/results",
    summary="Answer distributions and completion metrics",
)
def get_results(survey_id: str, provider: SurveyDataProvider = Depends(get_data_provider)) -> Dict[str, Any]:
    return provider.aggregator.compute(survey_id).model_dump()


@router.get(
    "/survey/{survey_id}/export",
    summary="Download every response as CSV (default) or nested JSON",
    response_model=None,
)
def export_survey(
    survey_id: str,
    export_format: str = Query("csv", alias="format"),
    provider: SurveyDataProvider = Depends(get_data_provider),
) -> Response | Dict[str, Any]:
    try:
        resolved = ExportFormat(export_format.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {export_format}")

    if resolved is ExportFormat.JSON:
        return provider.exporter.to_archive(survey_id)

    content = provider.exporter.to_csv(survey_id)
    filename = csv_filename(survey_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
