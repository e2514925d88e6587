import json
import time
from dataclasses import asdict
from typing import Optional

import stripe
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool

import accessories as accessory_service
import levels as level_engine
import monsters as monster_service
import payments
import quests as quest_service
import wallet as wallet_service
from database import db, ensure_indexes, utcnow
from errors import TamagotchiError, UnauthorizedError
from logger import get_logger, setup_logging
from schemas import MonsterState, QuestType
from settings import Settings, get_settings

setup_logging(get_settings().log_level)
logger = get_logger(__name__)

app = FastAPI(title="Tamagotcho API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

COLLECTIONS = ["monster", "xplevel", "wallet", "dailyquest", "ownedaccessory", "stripeevent"]

# renew-quests only runs this long after UTC midnight unless forced
RENEWAL_WINDOW_MINUTES = 5


# -----------------------------
# Dependencies
# -----------------------------

def get_db() -> Database:
    if db is None:
        raise HTTPException(500, "Database not available")
    return db


def current_owner(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    return x_user_id


@app.exception_handler(TamagotchiError)
async def handle_domain_error(request: Request, exc: TamagotchiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# -----------------------------
# Schemas for requests
# -----------------------------
class MonsterCreate(BaseModel):
    name: str = Field(..., min_length=1)
    state: MonsterState = MonsterState.HAPPY
    traits: Optional[str] = None


class ActionRequest(BaseModel):
    action: str


class PublicToggle(BaseModel):
    is_public: bool


class PurchaseRequest(BaseModel):
    accessory_id: str
    monster_id: Optional[str] = None


class EquipRequest(BaseModel):
    monster_id: str


class ProgressRequest(BaseModel):
    increment_by: int = 1


class ClaimRequest(BaseModel):
    monster_id: Optional[str] = None


class CheckoutRequest(BaseModel):
    amount: int = Field(..., description="Koins in the package to buy")


# -----------------------------
# Seeds
# -----------------------------
@app.on_event("startup")
def seed_data():
    if db is None:
        return
    ensure_indexes(db)
    if db.xplevel.count_documents({}) == 0:
        level_engine.seed_levels(db)


# -----------------------------
# Routes
# -----------------------------
@app.get("/")
def root():
    return {"name": "Tamagotcho API", "status": "ok"}


@app.get("/schema")
def get_schema_info():
    return {"collections": COLLECTIONS}


@app.get("/test")
def test_database(settings: Settings = Depends(get_settings)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is not None:
        response["database"] = "✅ Available"
        response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# XP levels
@app.get("/api/xp-levels")
def list_xp_levels(database: Database = Depends(get_db)):
    return [lvl.model_dump() for lvl in level_engine.load_levels(database)]


@app.api_route("/api/seed-xp", methods=["GET", "POST"])
def seed_xp_levels(database: Database = Depends(get_db)):
    seeded = level_engine.seed_levels(database)
    return {"success": True, "count": len(seeded), "levels": [lvl.model_dump() for lvl in seeded]}


# Monsters
@app.get("/api/monsters")
def list_monsters(owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    levels = level_engine.load_levels(database)
    return [monster_service.monster_to_response(m, levels) for m in monster_service.list_monsters(database, owner_id)]


@app.post("/api/monsters", status_code=201)
def create_monster(payload: MonsterCreate, owner_id: str = Depends(current_owner),
                   database: Database = Depends(get_db)):
    monster = monster_service.create_monster(database, owner_id, payload.name, payload.state, payload.traits)
    return monster_service.monster_to_response(monster, level_engine.load_levels(database))


@app.get("/api/monsters/{monster_id}")
def get_monster(monster_id: str, owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    monster = monster_service.get_monster(database, owner_id, monster_id)
    return monster_service.monster_to_response(monster, level_engine.load_levels(database))


@app.post("/api/monsters/{monster_id}/actions")
def do_monster_action(monster_id: str, payload: ActionRequest, owner_id: str = Depends(current_owner),
                      database: Database = Depends(get_db)):
    result = monster_service.do_action(database, owner_id, monster_id, payload.action)
    return result.to_dict()


@app.patch("/api/monsters/{monster_id}/public")
def toggle_public(monster_id: str, payload: PublicToggle, owner_id: str = Depends(current_owner),
                  database: Database = Depends(get_db)):
    monster = monster_service.set_public(database, owner_id, monster_id, payload.is_public)
    return {"success": True, "is_public": monster.is_public}


@app.get("/api/monsters/{monster_id}/accessories")
def list_monster_accessories(monster_id: str, owner_id: str = Depends(current_owner),
                             database: Database = Depends(get_db)):
    return [a.model_dump() for a in accessory_service.list_equipped(database, owner_id, monster_id)]


@app.get("/api/gallery")
def gallery(page: int = 1, per_page: int = 12, x_user_id: Optional[str] = Header(None),
            database: Database = Depends(get_db)):
    page = max(page, 1)
    per_page = min(max(per_page, 1), 50)
    monsters, total = monster_service.list_public_monsters(database, page, per_page)
    if x_user_id:
        quest_service.track_quietly(database, x_user_id, QuestType.VISIT_GALLERY, 1)

    levels = level_engine.load_levels(database)
    return {
        "monsters": [monster_service.monster_to_response(m, levels) for m in monsters],
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": (total + per_page - 1) // per_page,
    }


# Wallet
@app.get("/api/wallet")
def get_wallet(owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    return wallet_service.get_or_create_wallet(database, owner_id).model_dump()


# Accessories
@app.get("/api/accessories")
def list_accessories(category: Optional[str] = None, rarity: Optional[str] = None):
    if category and category.lower() != "all":
        category = accessory_service.parse_category(category).value
    return [a.to_response() for a in accessory_service.list_accessories(category, rarity)]


@app.get("/api/accessories/owned")
def list_owned_accessories(owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    owned = accessory_service.list_owned(database, owner_id)
    return {
        "accessories": [a.model_dump() for a in owned],
        "accessory_ids": accessory_service.owned_accessory_ids(database, owner_id),
    }


@app.post("/api/accessories/purchase")
def purchase_accessory(payload: PurchaseRequest, owner_id: str = Depends(current_owner),
                       database: Database = Depends(get_db)):
    result = accessory_service.purchase_accessory(database, owner_id, payload.accessory_id, payload.monster_id)
    return {
        "success": True,
        "owned_accessory": result["owned_accessory"].model_dump(),
        "accessory": result["accessory"].to_response(),
        "remaining_coins": result["remaining_coins"],
    }


@app.post("/api/accessories/owned/{owned_id}/equip")
def equip_accessory(owned_id: str, payload: EquipRequest, owner_id: str = Depends(current_owner),
                    database: Database = Depends(get_db)):
    return accessory_service.equip_accessory(database, owner_id, owned_id, payload.monster_id).model_dump()


@app.post("/api/accessories/owned/{owned_id}/unequip")
def unequip_accessory(owned_id: str, owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    return accessory_service.unequip_accessory(database, owner_id, owned_id).model_dump()


# Quests
@app.get("/api/quests")
def list_quests(owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    return [q.model_dump() for q in quest_service.get_daily_quests(database, owner_id)]


@app.post("/api/quests/{quest_id}/progress")
def update_quest_progress(quest_id: str, payload: ProgressRequest, owner_id: str = Depends(current_owner),
                          database: Database = Depends(get_db)):
    return quest_service.update_quest_progress(database, owner_id, quest_id, payload.increment_by).model_dump()


@app.post("/api/quests/{quest_id}/complete")
def complete_quest(quest_id: str, owner_id: str = Depends(current_owner), database: Database = Depends(get_db)):
    return quest_service.complete_daily_quest(database, owner_id, quest_id).model_dump()


@app.post("/api/quests/{quest_id}/claim")
def claim_quest(quest_id: str, payload: Optional[ClaimRequest] = None, owner_id: str = Depends(current_owner),
                database: Database = Depends(get_db)):
    monster_id = payload.monster_id if payload else None
    result = quest_service.claim_quest_reward(database, owner_id, quest_id, monster_id)
    progress = result["monster"]
    return {
        "success": True,
        "quest": result["quest"].model_dump(),
        "coins_earned": result["quest"].coin_reward,
        "balance": result["wallet"].coin,
        "monster": asdict(progress) if progress else None,
        "xp_reward_unapplied": result["xp_reward_unapplied"],
    }


# Cron
def _cron_rejection(request: Request, settings: Settings) -> Optional[JSONResponse]:
    """401 response when a cron token is configured and the request does not carry it."""
    if not settings.cron_secret_token:
        return None
    if request.headers.get("authorization") == f"Bearer {settings.cron_secret_token}":
        return None
    logger.warning("Unauthorized cron call to %s from %s", request.url.path,
                   request.client.host if request.client else "unknown")
    return JSONResponse(status_code=401, content={"error": "Unauthorized", "message": "Invalid or missing token"})


@app.api_route("/api/cron/update-monsters", methods=["GET", "POST"])
def cron_update_monsters(request: Request, user_id: Optional[str] = Query(None, alias="userId"),
                         settings: Settings = Depends(get_settings), database: Database = Depends(get_db)):
    started = time.monotonic()
    rejection = _cron_rejection(request, settings)
    if rejection is not None:
        return rejection

    updates = monster_service.randomize_states(database, owner_id=user_id)
    duration = int((time.monotonic() - started) * 1000)
    logger.info("Cron update-monsters: %d monster(s) updated in %d ms", len(updates), duration)

    response = {
        "success": True,
        "updated": len(updates),
        "timestamp": utcnow().isoformat(),
        "duration": duration,
        "details": updates,
    }
    if not updates:
        response["message"] = f"No monsters found for user {user_id}" if user_id else "No monsters to update"
    return response


@app.api_route("/api/cron/renew-quests", methods=["GET", "POST"])
def cron_renew_quests(request: Request, user_id: Optional[str] = Query(None, alias="userId"), force: bool = False,
                      settings: Settings = Depends(get_settings), database: Database = Depends(get_db)):
    started = time.monotonic()
    rejection = _cron_rejection(request, settings)
    if rejection is not None:
        return rejection

    now = utcnow()
    next_renewal = quest_service.next_midnight(now).isoformat()
    if not force and not (now.hour == 0 and now.minute < RENEWAL_WINDOW_MINUTES):
        return {
            "success": True,
            "renewed": 0,
            "message": "Not renewal time yet",
            "next_renewal": next_renewal,
            "timestamp": now.isoformat(),
            "duration": int((time.monotonic() - started) * 1000),
        }

    summary = quest_service.renew_daily_quests(database, now, owner_id=user_id)
    duration = int((time.monotonic() - started) * 1000)
    logger.info(
        "Cron renew-quests: %d user(s), %d expired, %d created, %d error(s) in %d ms",
        summary.users_processed, summary.total_quests_expired, summary.total_quests_created,
        len(summary.errors), duration,
    )

    response = {
        "success": True,
        "users_processed": summary.users_processed,
        "total_quests_expired": summary.total_quests_expired,
        "total_quests_created": summary.total_quests_created,
        "next_renewal": next_renewal,
        "timestamp": now.isoformat(),
        "duration": duration,
    }
    if summary.errors:
        response["errors"] = summary.errors
    return response


# Payments
@app.get("/api/pricing")
def get_pricing():
    return [
        {"koins": koins, "price": package.price, "product_id": package.product_id}
        for koins, package in payments.PRICING_TABLE.items()
    ]


@app.post("/api/checkout/sessions")
def create_checkout_session(payload: CheckoutRequest, owner_id: str = Depends(current_owner),
                            settings: Settings = Depends(get_settings)):
    url = payments.create_checkout_session(owner_id, payload.amount, settings.stripe_secret_key, settings.app_url)
    return {"url": url}


@app.post("/api/webhooks/stripe")
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(None),
                         settings: Settings = Depends(get_settings), database: Database = Depends(get_db)):
    if not stripe_signature:
        return JSONResponse(status_code=400, content={"error": "Missing signature"})
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return JSONResponse(status_code=500, content={"error": "Invalid server configuration"})

    payload = (await request.body()).decode("utf-8")
    try:
        stripe.WebhookSignature.verify_header(
            payload, stripe_signature, settings.stripe_webhook_secret,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
        event = json.loads(payload)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})

    return await run_in_threadpool(payments.handle_event, database, event)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
