import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from prgate_core.services import Services
from prgate_server.dependencies import get_services
from prgate_server.schemas import ReviewAccepted, ReviewOut, ReviewRequest
from prgate_store.models import ReviewStatus

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"],
)


@router.get("", response_model=List[ReviewOut])
def list_reviews(
    user_id: Optional[str] = None,
    repository_id: Optional[str] = None,
    status: Optional[ReviewStatus] = None,
    pr_number: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    reviews = services.store.list_reviews(
        user_id=user_id,
        repository_id=repository_id,
        status=status,
        pr_number=pr_number,
        limit=limit,
    )
    return [ReviewOut.from_review(r) for r in reviews]


@router.get("/{review_id}", response_model=ReviewOut)
def get_review(review_id: str, services: Services = Depends(get_services)):
    review = services.store.get_review(review_id)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    return ReviewOut.from_review(review)


@router.post("", response_model=ReviewAccepted, status_code=202)
def trigger_review(body: ReviewRequest, services: Services = Depends(get_services)):
    """Manually start a review of an open pull request."""
    review_id = services.orchestrator.trigger_review(body.repository_id, body.pr_number)
    return ReviewAccepted(review_id=review_id)


@router.post("/retry", response_model=ReviewAccepted, status_code=202)
def retry_review(body: ReviewRequest, services: Services = Depends(get_services)):
    """Re-run the most recent review of a PR after it failed."""
    review_id = services.orchestrator.retry_review(body.repository_id, body.pr_number)
    return ReviewAccepted(review_id=review_id)
