"""
Learning Routes

Record corrections, recompute weights and manage user topics.
"""

from fastapi import APIRouter, Depends, HTTPException

from chatlens.api.deps import get_app_settings, get_store
from chatlens.api.schemas import (
    CorrectionRequest,
    CorrectionResponse,
    StoreStatsResponse,
    TopicItem,
    TopicListResponse,
    TopicRequest,
    WeightsResponse,
)
from chatlens.config import Settings
from chatlens.learning import CorrectionStore, correction_from_text, recompute_weights, record_role_correction

router = APIRouter()


@router.post("/corrections", response_model=CorrectionResponse, status_code=201)
def add_correction(
    request: CorrectionRequest,
    store: CorrectionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> CorrectionResponse:
    """Store a role correction, optionally folding it into the weights."""
    record = correction_from_text(
        request.text,
        original_role=request.original_role,
        corrected_role=request.corrected_role,
        original_confidence=request.original_confidence,
    )
    record_role_correction(record, store=store)

    deltas = recompute_weights(store, settings=settings) if request.recompute else None
    return CorrectionResponse(active_features=record.active_features, weight_deltas=deltas)


@router.post("/weights/recompute", response_model=WeightsResponse)
def recompute(
    store: CorrectionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> WeightsResponse:
    deltas = recompute_weights(store, settings=settings)
    return WeightsResponse(weight_deltas=deltas, count=len(deltas))


@router.get("/weights", response_model=WeightsResponse)
def get_weights(store: CorrectionStore = Depends(get_store)) -> WeightsResponse:
    deltas = store.weight_deltas()
    return WeightsResponse(weight_deltas=deltas, count=len(deltas))


@router.get("/store/stats", response_model=StoreStatsResponse)
def get_store_stats(store: CorrectionStore = Depends(get_store)) -> StoreStatsResponse:
    return StoreStatsResponse(**store.stats().model_dump())


@router.delete("/store", status_code=204)
def clear_store(store: CorrectionStore = Depends(get_store)) -> None:
    """Delete every correction, user topic and learned weight."""
    store.clear()


# =============================================================================
# User topics
# =============================================================================

@router.get("/topics", response_model=TopicListResponse)
def list_topics(store: CorrectionStore = Depends(get_store)) -> TopicListResponse:
    items = [TopicItem(topic=e.topic, keywords=e.keywords) for e in store.user_topics()]
    return TopicListResponse(topics=items, count=len(items))


@router.post("/topics", response_model=TopicItem, status_code=201)
def add_topic(request: TopicRequest, store: CorrectionStore = Depends(get_store)) -> TopicItem:
    entry = store.add_user_topic(request.topic, request.keywords)
    return TopicItem(topic=entry.topic, keywords=entry.keywords)


@router.delete("/topics/{topic}", status_code=204)
def remove_topic(topic: str, store: CorrectionStore = Depends(get_store)) -> None:
    if not store.remove_user_topic(topic):
        raise HTTPException(status_code=404, detail=f"Topic not found: {topic}")
