import pytest

import accessories as accessory_service
import monsters as monster_service
import quests as quest_service
import wallet as wallet_service
from errors import InvalidArgumentError, NotFoundError, PreconditionFailedError
from schemas import AccessoryCategory, AccessoryRarity, QuestType


class TestCatalog:

    def test_price_follows_rarity(self):
        assert accessory_service.price_for(AccessoryRarity.COMMON) == 50
        assert accessory_service.price_for(AccessoryRarity.RARE) == 100
        assert accessory_service.price_for(AccessoryRarity.EPIC) == 200
        assert accessory_service.price_for(AccessoryRarity.LEGENDARY) == 400
        assert accessory_service.get_accessory("hat-crown").price == 200

    def test_catalog_ids_are_unique(self):
        ids = [a.id for a in accessory_service.CATALOG]
        assert len(ids) == len(set(ids)) == 11

    def test_filters(self):
        hats = accessory_service.list_accessories(category="hat")
        assert {a.id for a in hats} == {"hat-party", "hat-crown", "hat-wizard"}

        legendary = accessory_service.list_accessories(rarity="legendary")
        assert {a.id for a in legendary} == {"hat-wizard", "effect-fire"}

        assert len(accessory_service.list_accessories(category="all", rarity="all")) == 11

    def test_unknown_accessory(self):
        with pytest.raises(NotFoundError):
            accessory_service.get_accessory("hat-missing")

    def test_parse_category(self):
        assert accessory_service.parse_category("shoes") == AccessoryCategory.SHOES
        with pytest.raises(InvalidArgumentError):
            accessory_service.parse_category("cape")


class TestPurchase:

    def test_purchase_debits_wallet(self, db):
        wallet_service.add_coins(db, "user-1", 120)
        result = accessory_service.purchase_accessory(db, "user-1", "glasses-nerd")

        assert result["remaining_coins"] == 20
        assert result["owned_accessory"].id
        assert accessory_service.owned_accessory_ids(db, "user-1") == ["glasses-nerd"]
        assert accessory_service.user_owns_accessory(db, "user-1", "glasses-nerd")

    def test_cannot_buy_twice(self, db):
        wallet_service.add_coins(db, "user-1", 500)
        accessory_service.purchase_accessory(db, "user-1", "hat-party")
        with pytest.raises(PreconditionFailedError):
            accessory_service.purchase_accessory(db, "user-1", "hat-party")
        assert wallet_service.get_wallet(db, "user-1").coin == 450

    def test_insufficient_balance(self, db):
        wallet_service.add_coins(db, "user-1", 10)
        with pytest.raises(PreconditionFailedError):
            accessory_service.purchase_accessory(db, "user-1", "hat-party")
        assert accessory_service.list_owned(db, "user-1") == []
        assert wallet_service.get_wallet(db, "user-1").coin == 10

    def test_new_user_has_empty_wallet(self, db):
        with pytest.raises(PreconditionFailedError):
            accessory_service.purchase_accessory(db, "newcomer", "hat-party")
        assert wallet_service.get_wallet(db, "newcomer").coin == 0

    def test_purchase_tracks_quest(self, db, rng):
        quest_service.generate_daily_quests(db, "user-1", rng=rng, count=len(quest_service.QUEST_TEMPLATES))
        wallet_service.add_coins(db, "user-1", 50)
        accessory_service.purchase_accessory(db, "user-1", "shoes-sneakers")

        progress = {
            d["title"]: d["current_progress"]
            for d in db.dailyquest.find({"type": QuestType.BUY_ACCESSORY.value})
        }
        assert progress == {"Window shopper": 1, "Collector": 1}

    def test_purchase_and_equip(self, db):
        monster = monster_service.create_monster(db, "user-1", "Pixel")
        wallet_service.add_coins(db, "user-1", 50)
        result = accessory_service.purchase_accessory(db, "user-1", "hat-party", monster.id)

        assert result["owned_accessory"].is_equipped
        assert result["owned_accessory"].monster_id == monster.id


class TestEquip:

    def test_one_per_category(self, db):
        monster = monster_service.create_monster(db, "user-1", "Pixel")
        wallet_service.add_coins(db, "user-1", 1000)
        party = accessory_service.purchase_accessory(db, "user-1", "hat-party")["owned_accessory"]
        crown = accessory_service.purchase_accessory(db, "user-1", "hat-crown")["owned_accessory"]
        shades = accessory_service.purchase_accessory(db, "user-1", "glasses-cool")["owned_accessory"]

        accessory_service.equip_accessory(db, "user-1", party.id, monster.id)
        accessory_service.equip_accessory(db, "user-1", shades.id, monster.id)
        accessory_service.equip_accessory(db, "user-1", crown.id, monster.id)

        equipped = {a.accessory_id for a in accessory_service.list_equipped(db, "user-1", monster.id)}
        assert equipped == {"hat-crown", "glasses-cool"}

    def test_unequip(self, db):
        monster = monster_service.create_monster(db, "user-1", "Pixel")
        wallet_service.add_coins(db, "user-1", 100)
        owned = accessory_service.purchase_accessory(db, "user-1", "bg-stars", monster.id)["owned_accessory"]

        unequipped = accessory_service.unequip_accessory(db, "user-1", owned.id)
        assert not unequipped.is_equipped
        assert unequipped.monster_id is None
        assert accessory_service.list_equipped(db, "user-1", monster.id) == []

    def test_equip_someone_elses_accessory(self, db):
        monster = monster_service.create_monster(db, "user-1", "Pixel")
        wallet_service.add_coins(db, "other", 100)
        owned = accessory_service.purchase_accessory(db, "other", "hat-party")["owned_accessory"]
        with pytest.raises(NotFoundError):
            accessory_service.equip_accessory(db, "user-1", owned.id, monster.id)
