import logging
import os

from supabase_client import send_realtime_event

logger = logging.getLogger("haftify.notify")

NOTIFY_CHANNEL = os.getenv("QUIZ_NOTIFY_CHANNEL", "quiz_notifications")


def broadcast_quiz_event(user_id: str, event: str, payload: dict) -> bool:
    """
    Forwards module / catalog completion notices to Supabase Realtime
    so every open client of the user can show them.
    """
    if not user_id or not event:
        logger.debug("[NOTIFY] ignored, missing user_id/event")
        return False

    # 🔥 Build payload EXACTLY as the clients subscribe to it
    realtime_payload = {
        "user_id": user_id,
        "event": event,
        "data": payload,
    }

    ok = send_realtime_event(NOTIFY_CHANNEL, event, realtime_payload)
    if not ok:
        logger.warning("⚠️ [NOTIFY] %s for user=%s was not delivered", event, user_id)
    return ok
