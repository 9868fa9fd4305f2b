def buy(client, **payload):
    data = {"asset": "BTC", "assetName": "Bitcoin", "quantity": 0.1, "price": 45000, "tradeType": "buy"}
    data.update(payload)
    return client.post("/api/trade", json=data).get_json()


def test_trade_returns_new_balance(user_client):
    res = buy(user_client)
    assert res["success"] is True
    assert res["totalAmount"] == 4500
    assert res["balance"] == 5500

    res = buy(user_client, tradeType="sell", quantity=0.05, price=46000)
    assert res["balance"] == 7800


def test_buy_beyond_balance(user_client):
    res = buy(user_client, quantity=1)
    assert res == {"success": False, "message": "Insufficient balance"}
    assert user_client.get("/api/trades").get_json()["trades"] == []


def test_trade_validation_messages(user_client):
    assert buy(user_client, tradeType="short")["message"] == "Invalid trade type"
    assert buy(user_client, quantity=0)["message"] == "Quantity and price must be greater than zero"
    assert buy(user_client, asset="")["message"] == "Asset is required"


def test_trade_on_live_account_after_switch(user_client):
    user_client.post("/api/switch-account-type", json={"accountType": "live"})
    assert buy(user_client) == {"success": False, "message": "Insufficient balance"}


def test_deposit_and_withdraw_validation(user_client):
    res = user_client.post("/api/deposit", json={"amount": -5}).get_json()
    assert res["success"] is False
    res = user_client.post("/api/withdraw", json={"amount": 20000}).get_json()
    assert res == {"success": False, "message": "Insufficient balance"}
    assert user_client.get("/api/withdrawals").get_json()["withdrawals"] == []


def test_history_endpoints(user_client):
    buy(user_client)
    dep = user_client.post("/api/deposit", json={"amount": 100, "method": "card"}).get_json()
    user_client.post("/api/withdraw", json={"amount": 50, "method": "bank"})

    deposits = user_client.get("/api/deposits").get_json()["deposits"]
    assert [d["reference_number"] for d in deposits] == [dep["referenceNumber"]]
    assert deposits[0]["status"] == "pending"

    trades = user_client.get("/api/trades").get_json()["trades"]
    assert trades[0]["asset"] == "BTC"

    history = user_client.get("/api/history").get_json()["history"]
    assert sorted(h["type"] for h in history) == ["deposit", "trade", "withdrawal"]
