from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from auth import Identity, current_identity, verified_identity
from notify import broadcast_quiz_event
from quiz import navigation as nav
from quiz.catalog import get_catalog, load_catalogs
from quiz.effects import EffectExecutor
from quiz.errors import InvariantViolation, MalformedCatalogReference, NotAuthenticated, StoreUnavailable
from quiz.session import QuizSession, SessionRegistry
from quiz.store import ProgressStore, SupabaseProgressStore
from quiz.views import build_view
from supabase_client import get_supabase

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("haftify")

# ───────────────────────────────────────────────
# Initialize FastAPI app
# ───────────────────────────────────────────────
app = FastAPI(title="Haftify Quiz Orchestra API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory session registry, one entry per open catalog page
SESSIONS = SessionRegistry()


def get_store() -> ProgressStore:
    return SupabaseProgressStore(get_supabase)


def get_executor(store: ProgressStore = Depends(get_store)) -> EffectExecutor:
    return EffectExecutor(store, broadcaster=broadcast_quiz_event)


# ───────────────────────────────────────────────
# ERROR MAPPING
# ───────────────────────────────────────────────
@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    return JSONResponse(status_code=401, content={"error": str(exc), "redirect": "/login"})


@app.exception_handler(MalformedCatalogReference)
async def malformed_reference_handler(request: Request, exc: MalformedCatalogReference):
    logger.warning(f"⚠️ {exc}")
    return JSONResponse(status_code=404, content={"error": str(exc), "redirect": "/catalogs"})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"error": "Fortschritt ist momentan nicht verfügbar.", "detail": str(exc)})


@app.exception_handler(InvariantViolation)
async def invariant_handler(request: Request, exc: InvariantViolation):
    return JSONResponse(status_code=409, content={"error": str(exc), "emptyState": True})


# ───────────────────────────────────────────────
# CATALOG LIST (dashboard)
# ───────────────────────────────────────────────
@app.get("/catalogs")
def list_catalogs(
    identity: Identity = Depends(current_identity),
    store: ProgressStore = Depends(get_store),
):
    warnings = []
    try:
        rollups = store.load_rollups(identity.user_id)
    except StoreUnavailable:
        rollups = {}
        warnings.append("Statistiken konnten nicht geladen werden.")

    catalogs = []
    for catalog in load_catalogs():
        rollup = rollups.get(catalog.id)
        catalogs.append({
            "id": catalog.id,
            "year": catalog.year,
            "title": catalog.title,
            "modules": len(catalog.modules),
            "questions": len(catalog.questions),
            "rollup": rollup.model_dump(by_alias=True, mode="json") if rollup else None,
        })

    return {"catalogs": catalogs, "warnings": warnings}


# ───────────────────────────────────────────────
# MASTER ORCHESTRATOR ENDPOINT
# ───────────────────────────────────────────────
def _session_for(payload: dict, identity: Identity) -> QuizSession:
    session = SESSIONS.get(payload.get("session_id") or "")
    if session is None or session.user_id != identity.user_id:
        raise HTTPException(status_code=404, detail="Session expired")
    return session


@app.post("/quiz_orchestrate")
def quiz_orchestrate(
    payload: dict = Body(...),
    identity: Identity = Depends(verified_identity),
    store: ProgressStore = Depends(get_store),
    executor: EffectExecutor = Depends(get_executor),
):
    action = payload.get("action")

    logger.info(f"🎬 Action = {action}, User = {identity.user_id}, Session = {payload.get('session_id')}")

    # ───────────────────────────────────────────
    # 1️⃣ OPEN A CATALOG
    # ───────────────────────────────────────────
    if action == "start":
        catalog = get_catalog(payload.get("catalog_id") or "")

        # a reload or catalog switch retires the previous page; flush its queued writes first
        for stale in SESSIONS.close_for(identity.user_id):
            if stale.pending_effects:
                executor.retry_unsynced(stale)

        progress = store.load_catalog_progress(identity.user_id, catalog.id)

        session = SESSIONS.add(QuizSession(
            user_id=identity.user_id,
            email_verified=identity.email_verified,
            catalog=catalog,
            progress=progress,
        ))
        transition = nav.start(session, resume=payload.get("resume", True))
        return {"transition": transition.to_dict(), "warnings": [], "view": build_view(session)}

    # ───────────────────────────────────────────
    # 2️⃣ CLOSE
    # ───────────────────────────────────────────
    if action == "close":
        _session_for(payload, identity)
        SESSIONS.close(payload["session_id"])
        return {"closed": True}

    session = _session_for(payload, identity)
    transition = None
    warnings = []

    try:
        # ───────────────────────────────────────
        # 3️⃣ BROWSING
        # ───────────────────────────────────────
        if action == "view":
            pass

        elif action == "select_module":
            transition = nav.select_module(session, payload.get("module_id") or "")

        elif action == "select_category":
            transition = nav.select_category(session, payload.get("category_id") or "")

        elif action == "select_question":
            transition = nav.select_question(session, payload.get("question_id") or "")

        elif action == "toggle_answer":
            transition = nav.toggle_answer(session, payload.get("answer") or "")

        elif action == "update_settings":
            settings = payload.get("settings") or {}
            transition = nav.update_settings(
                session,
                show_only_wrong_answers=settings.get("showOnlyWrongAnswers"),
                progress_bar_type=settings.get("progressBarType"),
            )

        # ───────────────────────────────────────
        # 4️⃣ ANSWER + ADVANCE
        # ───────────────────────────────────────
        elif action == "submit":
            transition = nav.submit(session)

        elif action == "next":
            transition = nav.advance(session)

        # ───────────────────────────────────────
        # 5️⃣ MODULE / CATALOG COMPLETE
        # ───────────────────────────────────────
        elif action == "repeat_module":
            transition = nav.repeat_module(session)

        elif action == "next_module":
            transition = nav.next_module(session)

        elif action == "dismiss":
            transition = nav.dismiss(session)

        elif action == "repeat_catalog":
            transition = nav.repeat_catalog(session)

        elif action == "choose_repeat":
            transition = nav.choose_repeat(session, payload.get("mode"))

        elif action == "reset_progress":
            transition = nav.reset_progress(session)

        # ───────────────────────────────────────
        # 6️⃣ TIMER + SYNC
        # ───────────────────────────────────────
        elif action == "timer_start":
            session.stopwatch.start()

        elif action == "timer_pause":
            session.stopwatch.pause()

        elif action == "timer_reset":
            session.stopwatch.reset()

        elif action == "retry_sync":
            if not executor.retry_unsynced(session):
                warnings.append("Fortschritt konnte weiterhin nicht gespeichert werden.")

        else:
            return {"error": f"Unknown action '{action}'"}

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if transition is not None and transition.effects:
        warnings += executor.run(session, transition.effects)

    return {
        "transition": transition.to_dict() if transition else None,
        "warnings": warnings,
        "view": build_view(session),
    }


# ───────────────────────────────────────────────
# HEALTH CHECK
# ───────────────────────────────────────────────
@app.get("/")
def home():
    return {"message": "🧠 Haftify Quiz Orchestra API is live ✅", "version": "1.0.0"}
