import pytest


def dashboard_balance(client):
    body = client.get("/api/dashboard").get_json()
    assert body["success"] is True
    return body["accounts"][0]["balance"]


def test_end_to_end_balance_scenario(user_client, admin_client):
    assert dashboard_balance(user_client) == 10000

    withdrawal = user_client.post("/api/withdraw", json={"amount": 500, "method": "bank",
                                                         "bankDetails": {"iban": "DE00"}}).get_json()
    assert withdrawal["success"] is True
    assert withdrawal["referenceNumber"].startswith("WD-")

    trade = user_client.post("/api/trade", json={
        "asset": "BTC", "assetName": "Bitcoin", "quantity": 0.1, "price": 45000,
        "totalAmount": 4500, "tradeType": "buy",
    }).get_json()
    assert trade["success"] is True
    assert trade["balance"] == 5500
    assert dashboard_balance(user_client) == 5500

    deposit = user_client.post("/api/deposit", json={"amount": 2000, "method": "card"}).get_json()
    assert deposit["success"] is True
    # Chưa duyệt -> chưa cộng
    assert dashboard_balance(user_client) == 5500

    approved = admin_client.post(f"/api/admin/deposits/{deposit['depositId']}/approve").get_json()
    assert approved["success"] is True
    assert dashboard_balance(user_client) == 7500

    failed = admin_client.post("/api/admin/update-withdrawal-status",
                               json={"withdrawalId": withdrawal["withdrawalId"], "status": "failed"}).get_json()
    assert failed["success"] is True
    assert dashboard_balance(user_client) == 8000


def test_deposit_approval_is_idempotent(user_client, admin_client):
    deposit = user_client.post("/api/deposit", json={"amount": 2000}).get_json()
    payload = {"depositId": deposit["depositId"], "status": "completed"}

    first = admin_client.post("/api/admin/update-deposit-status", json=payload).get_json()
    second = admin_client.post("/api/admin/update-deposit-status", json=payload).get_json()

    assert first["changed"] is True
    assert second == {"success": True, "message": "Deposit already completed", "status": "completed", "changed": False}
    assert dashboard_balance(user_client) == 12000


def test_withdrawal_completed_keeps_balance(user_client, admin_client):
    wd = user_client.post("/api/withdraw", json={"amount": 300}).get_json()
    res = admin_client.post(f"/api/admin/withdrawals/{wd['withdrawalId']}/approve").get_json()
    assert res["status"] == "completed"
    assert dashboard_balance(user_client) == 10000

    # completed -> failed không được phép
    again = admin_client.post(f"/api/admin/withdrawals/{wd['withdrawalId']}/reject").get_json()
    assert again == {"success": False, "message": "Invalid status transition"}
    assert dashboard_balance(user_client) == 10000


def test_update_balance_credit_and_debit(user_client, admin_client, user_row):
    user_id = user_row()["id"]
    credit = admin_client.post("/api/admin/update-balance",
                               json={"userId": user_id, "amount": 150.25, "action": "credit"}).get_json()
    assert credit["success"] is True
    assert credit["accountType"] == "demo"
    assert dashboard_balance(user_client) == 10150.25

    debit = admin_client.post("/api/admin/update-balance",
                              json={"userId": user_id, "amount": 50000, "action": "debit"}).get_json()
    assert debit == {"success": False, "message": "Insufficient balance"}

    live = admin_client.post("/api/admin/update-balance",
                             json={"userId": user_id, "amount": 20, "action": "credit", "accountType": "live"}).get_json()
    assert live["balance"] == 20
    assert dashboard_balance(user_client) == 10150.25


def test_dashboard_stats_are_live(user_client, admin_client):
    stats = admin_client.get("/api/admin/dashboard-stats").get_json()["stats"]
    # admin (live, 0) + alice (demo, 10000)
    assert stats["totalUsers"] == 2
    assert stats["totalBalance"] == 10000
    assert stats["totalTrades"] == 0
    assert stats["pendingActions"] == 0

    user_client.post("/api/trade", json={"asset": "ETH", "quantity": 1, "price": 1000, "tradeType": "buy"})
    user_client.post("/api/deposit", json={"amount": 10})
    user_client.post("/api/withdraw", json={"amount": 10})

    stats = admin_client.get("/api/admin/dashboard-stats").get_json()["stats"]
    assert stats["totalBalance"] == 9000
    assert stats["totalTrades"] == 1
    assert stats["pendingDeposits"] == 1
    assert stats["pendingWithdrawals"] == 1
    assert stats["pendingActions"] == 2


def test_list_users_joins_accounts(user_client, admin_client):
    body = admin_client.get("/api/admin/users?per_page=10").get_json()
    assert body["total"] == 2
    alice = next(u for u in body["users"] if u["email"] == "alice@example.com")
    assert [(a["account_type"], a["balance"]) for a in alice["accounts"]] == [("demo", 10000)]


def test_list_users_pages_by_user(user_client, admin_client):
    # alice có cả tài khoản demo và live
    user_client.post("/api/switch-account-type", json={"accountType": "live"})

    first = admin_client.get("/api/admin/users?per_page=1&page=1").get_json()
    second = admin_client.get("/api/admin/users?per_page=1&page=2").get_json()

    assert first["total"] == second["total"] == 2
    # Mới nhất trước: admin tạo sau alice
    assert [u["email"] for u in first["users"]] == ["admin@example.com"]
    assert [a["account_type"] for a in first["users"][0]["accounts"]] == ["live"]
    assert [u["email"] for u in second["users"]] == ["alice@example.com"]
    assert sorted(a["account_type"] for a in second["users"][0]["accounts"]) == ["demo", "live"]


def test_admin_lists_pending_requests(user_client, admin_client):
    user_client.post("/api/deposit", json={"amount": 10})
    pending = admin_client.get("/api/admin/deposits?status=pending").get_json()["deposits"]
    assert len(pending) == 1
    assert pending[0]["email"] == "alice@example.com"
    assert admin_client.get("/api/admin/withdrawals?status=pending").get_json()["withdrawals"] == []

    bad = admin_client.get("/api/admin/deposits?status=lost").get_json()
    assert bad == {"success": False, "message": "Invalid status"}


def test_admin_can_suspend_user(user_client, admin_client, user_row, login, app):
    res = admin_client.post("/api/admin/update-user-status",
                            json={"userId": user_row()["id"], "status": "suspended"}).get_json()
    assert res["success"] is True
    assert login(c=app.test_client()).get_json()["message"] == "Account suspended"


@pytest.mark.parametrize("method, path", [
    ("get", "/api/admin/users"),
    ("get", "/api/admin/dashboard-stats"),
    ("post", "/api/admin/update-balance"),
    ("post", "/api/admin/update-deposit-status"),
    ("post", "/api/admin/update-withdrawal-status"),
])
def test_admin_routes_require_admin_session(client, user_client, app, method, path):
    anonymous = getattr(app.test_client(), method)(path)
    assert anonymous.status_code == 401
    assert anonymous.get_json() == {"success": False, "message": "Admin access required"}

    regular = getattr(user_client, method)(path)
    assert regular.status_code == 200
    assert regular.get_json() == {"success": False, "message": "Admin access required"}


def test_admin_login_rejects_regular_user(client, register):
    register()
    res = client.post("/api/admin-login", json={"email": "alice@example.com", "password": "secret123"})
    assert res.get_json() == {"success": False, "message": "Admin access required"}


def test_admin_via_regular_login_is_not_elevated(app, admin_client):
    c = app.test_client()
    assert c.post("/api/login", json={"email": "admin@example.com", "password": "adminpass"}).get_json()["success"]
    assert c.get("/api/admin/users").get_json()["message"] == "Admin access required"
