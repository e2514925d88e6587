"""
Koin wallets. One per owner, created on first touch.

Every balance change is a single `$inc`; debits carry `coin >= amount` in
the filter so the balance cannot go below zero even with concurrent buyers.
"""
from typing import Dict

from pymongo import ReturnDocument
from pymongo.database import Database

from database import utcnow
from errors import InvalidArgumentError, NotFoundError, PreconditionFailedError
from logger import get_logger
from schemas import Wallet

logger = get_logger(__name__)


def _wallet_from_doc(doc: Dict) -> Wallet:
    return Wallet(id=str(doc["_id"]), owner_id=doc["owner_id"], coin=doc.get("coin", 0))


def get_wallet(db: Database, owner_id: str) -> Wallet:
    doc = db.wallet.find_one({"owner_id": owner_id})
    if doc is None:
        raise NotFoundError("Wallet", owner_id)
    return _wallet_from_doc(doc)


def get_or_create_wallet(db: Database, owner_id: str) -> Wallet:
    now = utcnow()
    doc = db.wallet.find_one_and_update(
        {"owner_id": owner_id},
        {"$setOnInsert": {"owner_id": owner_id, "coin": 0, "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return _wallet_from_doc(doc)


def add_coins(db: Database, owner_id: str, amount: int) -> Wallet:
    if amount < 0:
        raise InvalidArgumentError("Amount to add must be positive", {"amount": amount})

    now = utcnow()
    doc = db.wallet.find_one_and_update(
        {"owner_id": owner_id},
        {
            "$inc": {"coin": amount},
            "$set": {"updated_at": now},
            "$setOnInsert": {"owner_id": owner_id, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    if amount:
        logger.info("Credited %d koins to %s (balance %d)", amount, owner_id, doc["coin"])
    return _wallet_from_doc(doc)


def subtract_coins(db: Database, owner_id: str, amount: int) -> Wallet:
    if amount < 0:
        raise InvalidArgumentError("Amount to subtract must be positive", {"amount": amount})

    doc = db.wallet.find_one_and_update(
        {"owner_id": owner_id, "coin": {"$gte": amount}},
        {"$inc": {"coin": -amount}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        wallet = get_wallet(db, owner_id)
        raise PreconditionFailedError(
            "Insufficient balance",
            {"balance": wallet.coin, "required": amount},
        )

    logger.info("Debited %d koins from %s (balance %d)", amount, owner_id, doc["coin"])
    return _wallet_from_doc(doc)


def has_sufficient_balance(db: Database, owner_id: str, amount: int) -> bool:
    doc = db.wallet.find_one({"owner_id": owner_id})
    if doc is None:
        return False
    return doc.get("coin", 0) >= amount
