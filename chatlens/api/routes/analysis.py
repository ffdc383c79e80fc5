"""
Analysis Route

Runs the pipeline synchronously on the posted text.
"""

from fastapi import APIRouter, Depends, HTTPException

from chatlens.api.deps import get_app_settings, get_store
from chatlens.api.schemas import AnalyzeRequest, AnalyzeResponse
from chatlens.config import Settings
from chatlens.learning import CorrectionStore
from chatlens.pipeline import AnalysisError, analyze_with_trace

router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_text(
    request: AnalyzeRequest,
    store: CorrectionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> AnalyzeResponse:
    """
    Analyze pasted chat text.

    Args:
        request: Raw inputs and whether to apply the correction store

    Returns:
        AnalyzeResponse with messages, semantic groups and stage timings
    """
    try:
        result, trace = analyze_with_trace(
            request.inputs,
            store=store if request.use_store else None,
            settings=settings,
        )
    except AnalysisError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return AnalyzeResponse(
        messages=result.messages,
        semantic_groups=result.semantic_groups,
        detected_source=result.detected_source,
        message_count=len(result.messages),
        group_count=len(result.semantic_groups),
        learned_deltas=trace.learned_deltas,
        stage_durations=trace.stage_durations,
    )
