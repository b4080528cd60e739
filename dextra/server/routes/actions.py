"""Scheduled action listing and editing routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...tools.builtin.actions import describe_frequency
from ..app import get_caller, require_app, verify_api_key
from ..models import ActionUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _action_payload(action) -> dict:
    data = action.to_dict()
    data["frequency_label"] = describe_frequency(action.frequency)
    return data


@router.get("/api/actions", dependencies=[Depends(verify_api_key)])
async def list_actions(user_id: str = Depends(get_caller)):
    app = require_app()
    actions = await app.list_actions(user_id)
    return [_action_payload(a) for a in actions]


@router.patch("/api/actions/{action_id}", dependencies=[Depends(verify_api_key)])
async def update_action(
    action_id: str,
    req: ActionUpdateRequest,
    user_id: str = Depends(get_caller),
):
    app = require_app()
    try:
        action = await app.update_action(action_id, user_id, req.model_dump(exclude_unset=True))
    except Exception as e:
        logger.error(f"[Actions] Failed to update action {action_id}: {e}", exc_info=True)
        raise HTTPException(400, "Failed to update action")
    if action is None:
        raise HTTPException(400, "Failed to update action")
    return _action_payload(action)


@router.delete("/api/actions/{action_id}", dependencies=[Depends(verify_api_key)])
async def delete_action(action_id: str, user_id: str = Depends(get_caller)):
    app = require_app()
    try:
        deleted = await app.delete_action(action_id, user_id)
    except Exception as e:
        logger.error(f"[Actions] Failed to delete action {action_id}: {e}", exc_info=True)
        raise HTTPException(400, "Failed to delete action")
    if not deleted:
        raise HTTPException(400, "Failed to delete action")
    return {"success": True}
