# supabase_client.py
from functools import lru_cache
import logging
import os

from dotenv import load_dotenv
import requests
from supabase import Client, create_client

from quiz.errors import StoreUnavailable

# 🔹 Load environment variables
load_dotenv()

logger = logging.getLogger("haftify.supabase")

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY")


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Single Supabase client, created on first use so the app can boot
    (and be tested) without credentials.
    """
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise StoreUnavailable("connect", "SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")

    return create_client(SUPABASE_URL, SUPABASE_KEY)


def send_realtime_event(channel: str, event: str, payload: dict) -> bool:
    """
    Sends a broadcast event to Supabase Realtime (v2) using REST API.
    """
    if not SUPABASE_URL or not SUPABASE_KEY:
        logger.warning("⚠️ Realtime broadcast skipped, Supabase not configured")
        return False

    url = f"{SUPABASE_URL}/realtime/v1/api/broadcast"

    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {SUPABASE_KEY}",
        "apikey": SUPABASE_KEY,
    }

    body = {
        "messages": [
            {
                "topic": channel,
                "event": event,
                "payload": payload,
            }
        ]
    }

    try:
        resp = requests.post(url, headers=headers, json=body, timeout=5)
        if resp.ok:
            logger.info(f"📡 Broadcasted [{event}] → {channel}")
        else:
            logger.warning(f"⚠️ Broadcast Failed {resp.status_code} → {resp.text}")
        return resp.ok
    except requests.RequestException as e:
        logger.error(f"💥 Broadcast Error ({event}): {e}")
        return False
