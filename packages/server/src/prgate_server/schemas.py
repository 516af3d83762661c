from typing import List, Optional

from pydantic import BaseModel, Field

from prgate_store.models import Review


class FindingOut(BaseModel):
    file: str
    line: int
    severity: str
    category: str
    message: str
    suggestion: Optional[str] = None


class ReviewOut(BaseModel):
    id: str
    repository_id: str
    user_id: str
    pr_number: int
    pr_title: str
    pr_url: str
    status: str
    summary: Optional[str] = None
    risk_score: Optional[int] = None
    findings: List[FindingOut] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_review(cls, review: Review) -> "ReviewOut":
        return cls(
            id=review.id,
            repository_id=review.repository_id,
            user_id=review.user_id,
            pr_number=review.pr_number,
            pr_title=review.pr_title,
            pr_url=review.pr_url,
            status=review.status.value,
            summary=review.summary,
            risk_score=review.risk_score,
            findings=[FindingOut(**f.to_dict()) for f in review.findings],
            error=review.error,
            created_at=review.created_at,
            updated_at=review.updated_at,
        )


class ReviewRequest(BaseModel):
    repository_id: str
    pr_number: int = Field(..., gt=0)


class ReviewAccepted(BaseModel):
    status: str = "queued"
    review_id: str
