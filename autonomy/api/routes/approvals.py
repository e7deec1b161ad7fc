"""
Approval Routes

Human decisions for runs waiting in supervised mode.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from autonomy.api.dependencies import get_approval_channel
from autonomy.safety.modes import ApprovalChannel

router = APIRouter()


class ResolveApprovalRequest(BaseModel):
    approved: bool
    reason: str | None = None


@router.get("/approvals")
async def list_pending(channel: ApprovalChannel = Depends(get_approval_channel)) -> list[dict[str, Any]]:
    return [p.to_dict() for p in channel.pending()]


@router.post("/approvals/{approval_id}")
async def resolve(
    approval_id: str,
    request: ResolveApprovalRequest,
    channel: ApprovalChannel = Depends(get_approval_channel),
) -> dict[str, Any]:
    if not channel.resolve(approval_id, request.approved, request.reason):
        raise HTTPException(status_code=404, detail=f"No pending approval: {approval_id}")
    return {"id": approval_id, "approved": request.approved}
