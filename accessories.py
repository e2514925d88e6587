"""
Accessory shop and wardrobe.

The catalog is static; only ownership is stored. A monster wears at most
one accessory per category: equipping a hat takes off the hat it had on.
"""
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

import monsters as monster_service
import quests as quest_service
import wallet as wallet_service
from database import create_document, to_object_id, utcnow
from errors import InvalidArgumentError, NotFoundError, PreconditionFailedError
from logger import get_logger
from schemas import AccessoryCategory, AccessoryRarity, OwnedAccessory, QuestType

logger = get_logger(__name__)

BASE_PRICE = 50
RARITY_MULTIPLIERS: Dict[AccessoryRarity, int] = {
    AccessoryRarity.COMMON: 1,
    AccessoryRarity.RARE: 2,
    AccessoryRarity.EPIC: 4,
    AccessoryRarity.LEGENDARY: 8,
}


class Accessory(BaseModel):
    id: str
    name: str
    description: str
    category: AccessoryCategory
    rarity: AccessoryRarity
    icon: str

    @property
    def price(self) -> int:
        return price_for(self.rarity)

    def to_response(self) -> dict:
        return {**self.model_dump(mode="json"), "price": self.price}


def price_for(rarity: AccessoryRarity, base_price: int = BASE_PRICE) -> int:
    return base_price * RARITY_MULTIPLIERS[AccessoryRarity(rarity)]


CATALOG = (
    Accessory(id="hat-party", name="Party Hat", description="A festive hat to celebrate!",
              category=AccessoryCategory.HAT, rarity=AccessoryRarity.COMMON, icon="🎉"),
    Accessory(id="hat-crown", name="Royal Crown", description="For a monster fit for a king",
              category=AccessoryCategory.HAT, rarity=AccessoryRarity.EPIC, icon="👑"),
    Accessory(id="hat-wizard", name="Wizard Hat", description="Magic powers included!",
              category=AccessoryCategory.HAT, rarity=AccessoryRarity.LEGENDARY, icon="🧙"),
    Accessory(id="glasses-cool", name="Sunglasses", description="Style, mostly",
              category=AccessoryCategory.GLASSES, rarity=AccessoryRarity.COMMON, icon="😎"),
    Accessory(id="glasses-nerd", name="Genius Glasses", description="Maximum intelligence",
              category=AccessoryCategory.GLASSES, rarity=AccessoryRarity.RARE, icon="🤓"),
    Accessory(id="shoes-sneakers", name="Cool Sneakers", description="Right on trend",
              category=AccessoryCategory.SHOES, rarity=AccessoryRarity.COMMON, icon="👟"),
    Accessory(id="shoes-boots", name="Leather Boots", description="Adventurer style",
              category=AccessoryCategory.SHOES, rarity=AccessoryRarity.EPIC, icon="🥾"),
    Accessory(id="bg-stars", name="Starry Sky", description="A sky full of stars",
              category=AccessoryCategory.BACKGROUND, rarity=AccessoryRarity.RARE, icon="✨"),
    Accessory(id="bg-rainbow", name="Rainbow", description="Every colour at once!",
              category=AccessoryCategory.BACKGROUND, rarity=AccessoryRarity.EPIC, icon="🌈"),
    Accessory(id="effect-sparkles", name="Magic Sparkles", description="Shines bright!",
              category=AccessoryCategory.EFFECT, rarity=AccessoryRarity.RARE, icon="✨"),
    Accessory(id="effect-fire", name="Fire Aura", description="A blazing aura",
              category=AccessoryCategory.EFFECT, rarity=AccessoryRarity.LEGENDARY, icon="🔥"),
)


def list_accessories(category: Optional[str] = None, rarity: Optional[str] = None,
                     catalog: Sequence[Accessory] = CATALOG) -> List[Accessory]:
    out = list(catalog)
    if category and category.lower() != "all":
        out = [a for a in out if a.category == category]
    if rarity and rarity.lower() != "all":
        out = [a for a in out if a.rarity == rarity]
    return out


def get_accessory(accessory_id: str, catalog: Sequence[Accessory] = CATALOG) -> Accessory:
    for accessory in catalog:
        if accessory.id == accessory_id:
            return accessory
    raise NotFoundError("Accessory", accessory_id)


# -----------------------------
# Ownership
# -----------------------------

def _owned_from_doc(doc: Dict) -> OwnedAccessory:
    data = {k: v for k, v in doc.items() if k in OwnedAccessory.model_fields and k != "id"}
    return OwnedAccessory(id=str(doc["_id"]), **data)


def user_owns_accessory(db: Database, owner_id: str, accessory_id: str) -> bool:
    return db.ownedaccessory.count_documents({"owner_id": owner_id, "accessory_id": accessory_id}) > 0


def list_owned(db: Database, owner_id: str) -> List[OwnedAccessory]:
    return [_owned_from_doc(d) for d in db.ownedaccessory.find({"owner_id": owner_id})]


def owned_accessory_ids(db: Database, owner_id: str) -> List[str]:
    return sorted(db.ownedaccessory.distinct("accessory_id", {"owner_id": owner_id}))


def list_equipped(db: Database, owner_id: str, monster_id: str) -> List[OwnedAccessory]:
    monster_service.get_monster(db, owner_id, monster_id)
    docs = db.ownedaccessory.find({"owner_id": owner_id, "monster_id": monster_id, "is_equipped": True})
    return [_owned_from_doc(d) for d in docs]


def purchase_accessory(db: Database, owner_id: str, accessory_id: str,
                       monster_id: Optional[str] = None) -> Dict:
    """
    Buy one accessory. With `monster_id` it is put on that monster right away.

    Rejects unknown accessories, ones the owner already has, and purchases
    the wallet cannot cover.
    """
    accessory = get_accessory(accessory_id)
    if monster_id is not None:
        monster_service.get_monster(db, owner_id, monster_id)
    if user_owns_accessory(db, owner_id, accessory_id):
        raise PreconditionFailedError("Accessory already owned", {"accessory_id": accessory_id})

    wallet_service.get_or_create_wallet(db, owner_id)
    wallet = wallet_service.subtract_coins(db, owner_id, accessory.price)

    owned = OwnedAccessory(owner_id=owner_id, accessory_id=accessory_id, purchased_at=utcnow())
    try:
        owned_id = create_document("ownedaccessory", owned, database=db)
    except Exception:
        wallet_service.add_coins(db, owner_id, accessory.price)
        logger.exception("Refunded %s after failing to record purchase of %s", owner_id, accessory_id)
        raise
    owned = owned.model_copy(update={"id": owned_id})
    logger.info("%s bought %s for %d koins", owner_id, accessory_id, accessory.price)

    quest_service.track_quietly(db, owner_id, QuestType.BUY_ACCESSORY, 1)
    if monster_id is not None:
        owned = equip_accessory(db, owner_id, owned_id, monster_id)

    return {"owned_accessory": owned, "remaining_coins": wallet.coin, "accessory": accessory}


def equip_accessory(db: Database, owner_id: str, owned_accessory_id: str, monster_id: str) -> OwnedAccessory:
    monster_service.get_monster(db, owner_id, monster_id)
    doc = db.ownedaccessory.find_one({"_id": to_object_id(owned_accessory_id), "owner_id": owner_id})
    if doc is None:
        raise NotFoundError("OwnedAccessory", owned_accessory_id)

    category = get_accessory(doc["accessory_id"]).category
    same_category = [a.id for a in list_accessories(category=category)]
    db.ownedaccessory.update_many(
        {
            "owner_id": owner_id,
            "monster_id": monster_id,
            "is_equipped": True,
            "accessory_id": {"$in": same_category},
            "_id": {"$ne": doc["_id"]},
        },
        {"$set": {"monster_id": None, "is_equipped": False, "updated_at": utcnow()}},
    )

    updated = db.ownedaccessory.find_one_and_update(
        {"_id": doc["_id"]},
        {"$set": {"monster_id": monster_id, "is_equipped": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    quest_service.track_quietly(db, owner_id, QuestType.EQUIP_ACCESSORY, 1)
    return _owned_from_doc(updated)


def unequip_accessory(db: Database, owner_id: str, owned_accessory_id: str) -> OwnedAccessory:
    updated = db.ownedaccessory.find_one_and_update(
        {"_id": to_object_id(owned_accessory_id), "owner_id": owner_id},
        {"$set": {"monster_id": None, "is_equipped": False, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError("OwnedAccessory", owned_accessory_id)
    return _owned_from_doc(updated)


def parse_category(value: str) -> AccessoryCategory:
    try:
        return AccessoryCategory(value)
    except ValueError:
        raise InvalidArgumentError("Unknown accessory category", {"category": value})
