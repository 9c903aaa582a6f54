from __future__ import annotations

"""
FastAPI service exposing the two core operations over HTTP.

- POST /select runs one partition selector over the posted lines
- POST /merge merges bounded lists (from selectors or earlier merges)
- Every request gets fresh core objects; nothing is shared between calls
"""

from fastapi import FastAPI, HTTPException
from loguru import logger

from .config import (
    HealthResponse,
    MergeRequest,
    MergeResponse,
    SelectRequest,
    SelectResponse,
)
from .mapping import from_api_lists, to_merge_response, to_select_response
from .merger import merge_top_k
from .pipeline_types import TiePolicy
from .records import XmlRowParser
from .selector import PartitionSelector


app = FastAPI(title="topk")


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.post("/select", response_model=SelectResponse)
def select(req: SelectRequest) -> SelectResponse:
    selector = PartitionSelector(
        req.k,
        parser=XmlRowParser(req.id_field, req.score_field),
        tie_policy=TiePolicy(req.tie_policy),
    )
    selector.process_many(req.lines)
    candidates = selector.finalize()
    logger.info(
        "select: {} lines, {} skipped, {} kept (k={})",
        selector.seen, selector.skipped, len(candidates), req.k,
    )
    return to_select_response(candidates, selector.skipped)


@app.post("/merge", response_model=MergeResponse)
def merge(req: MergeRequest) -> MergeResponse:
    oversized = [i for i, part in enumerate(req.lists) if len(part) > req.k]
    if oversized:
        raise HTTPException(
            status_code=422,
            detail=f"Lists {oversized} hold more than k={req.k} candidates; they are not bounded outputs",
        )
    result = merge_top_k(from_api_lists(req.lists), req.k, TiePolicy(req.tie_policy))
    logger.info("merge: {} lists -> {} results (k={})", len(req.lists), len(result), req.k)
    return to_merge_response(result)
