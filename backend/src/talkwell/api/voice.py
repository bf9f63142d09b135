from fastapi import APIRouter, Request

from talkwell.ws_manager import manager

router = APIRouter()


@router.post("/webhook")
async def vapi_webhook(request: Request):
    """Vapi server messages; always acknowledged so Vapi does not retry."""
    payload = await request.json()
    transition = await manager.handle_webhook(payload if isinstance(payload, dict) else {})
    return {"received": True, "applied": bool(transition and not transition.ignored)}
