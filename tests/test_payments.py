import pytest

import payments
import wallet as wallet_service
from errors import InvalidArgumentError


def completed(event_id="evt_1", user_id="user-1", amount=200):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "metadata": {"userId": user_id}, "amount_total": amount}},
    }


def test_amount_maps_to_package():
    assert payments.koins_for_amount(50) == 10
    assert payments.koins_for_amount(200) == 500
    assert payments.koins_for_amount(1000) == 5000
    with pytest.raises(InvalidArgumentError):
        payments.koins_for_amount(999)


def test_checkout_credits_wallet(db):
    result = payments.handle_event(db, completed())
    assert result == {"received": True, "koins": 500, "balance": 500}
    assert db.stripeevent.find_one({"event_id": "evt_1"})["owner_id"] == "user-1"


def test_redelivery_is_ignored(db):
    payments.handle_event(db, completed())
    assert payments.handle_event(db, completed())["duplicate"] is True
    assert wallet_service.get_wallet(db, "user-1").coin == 500


def test_missing_metadata(db):
    event = completed()
    event["data"]["object"]["metadata"] = {}
    with pytest.raises(InvalidArgumentError):
        payments.handle_event(db, event)
    assert db.stripeevent.count_documents({}) == 0


def test_failed_credit_allows_retry(db, monkeypatch):
    def broken_add_coins(*args, **kwargs):
        raise RuntimeError("wallet down")

    with monkeypatch.context() as m:
        m.setattr(wallet_service, "add_coins", broken_add_coins)
        with pytest.raises(RuntimeError):
            payments.handle_event(db, completed())

    assert payments.handle_event(db, completed())["balance"] == 500
