from models import support


def open_ticket(client, **payload):
    data = {"subject": "Cannot withdraw", "message": "My withdrawal is stuck", "priority": "high"}
    data.update(payload)
    return client.post("/api/support/tickets", json=data).get_json()


def test_user_opens_ticket_and_reads_it(user_client):
    res = open_ticket(user_client)
    assert res["success"] is True

    tickets = user_client.get("/api/support/tickets").get_json()["tickets"]
    assert [t["id"] for t in tickets] == [res["ticketId"]]
    assert tickets[0]["status"] == "open"

    detail = user_client.get(f"/api/support/tickets/{res['ticketId']}").get_json()["ticket"]
    assert detail["subject"] == "Cannot withdraw"
    assert [m["message"] for m in detail["messages"]] == ["My withdrawal is stuck"]


def test_ticket_requires_subject_and_valid_priority(user_client):
    assert open_ticket(user_client, subject="  ") == {"success": False, "message": "Subject and message are required"}
    assert open_ticket(user_client, priority="urgent") == {"success": False, "message": "Invalid priority"}


def test_staff_reply_moves_ticket_to_pending(user_client, admin_client):
    ticket_id = open_ticket(user_client)["ticketId"]

    staff = admin_client.post(f"/api/support/tickets/{ticket_id}/messages", json={"message": "Looking into it"})
    assert staff.get_json()["success"] is True
    listed = admin_client.get("/api/admin/support/tickets?status=pending").get_json()["tickets"]
    assert [t["id"] for t in listed] == [ticket_id]
    assert listed[0]["email"] == "alice@example.com"

    user_client.post(f"/api/support/tickets/{ticket_id}/messages", json={"message": "Thanks"})
    detail = user_client.get(f"/api/support/tickets/{ticket_id}").get_json()["ticket"]
    assert detail["status"] == "open"
    assert [m["is_staff"] for m in detail["messages"]] == [False, True, False]


def test_closed_ticket_rejects_messages(user_client, admin_client):
    ticket_id = open_ticket(user_client)["ticketId"]
    res = admin_client.post(f"/api/admin/support/tickets/{ticket_id}/status", json={"status": "closed"})
    assert res.get_json()["status"] == "closed"

    reply = user_client.post(f"/api/support/tickets/{ticket_id}/messages", json={"message": "hello?"})
    assert reply.get_json() == {"success": False, "message": "Ticket is closed"}


def test_user_cannot_see_other_users_ticket(app, user_client, register, login):
    ticket_id = open_ticket(user_client)["ticketId"]

    other = app.test_client()
    register(username="bob", email="bob@example.com")
    assert login(email="bob@example.com", c=other).get_json()["success"]

    res = other.get(f"/api/support/tickets/{ticket_id}").get_json()
    assert res == {"success": False, "message": "Ticket not found"}
    assert other.get("/api/support/tickets").get_json()["tickets"] == []


def test_slugify():
    assert support.slugify("How to deposit funds?") == "how-to-deposit-funds"
    assert support.slugify("!!!") == "article"


def test_knowledge_base(client, admin_client):
    first = admin_client.post("/api/admin/kb", json={
        "title": "Deposits", "content": "Deposits are reviewed by staff.", "category": "funding",
    }).get_json()
    second = admin_client.post("/api/admin/kb", json={"title": "Deposits", "content": "Again."}).get_json()
    admin_client.post("/api/admin/kb", json={"title": "Draft", "content": "wip", "isPublished": False})

    assert first["slug"] == "deposits"
    assert second["slug"] == "deposits-2"

    listed = client.get("/api/kb").get_json()["articles"]
    assert sorted(a["slug"] for a in listed) == ["deposits", "deposits-2"]
    assert [a["slug"] for a in client.get("/api/kb?category=funding").get_json()["articles"]] == ["deposits"]

    article = client.get("/api/kb/deposits").get_json()["article"]
    assert article["content"] == "Deposits are reviewed by staff."
    assert client.get("/api/kb/draft").get_json() == {"success": False, "message": "Article not found"}


def test_creating_articles_requires_admin(user_client):
    res = user_client.post("/api/admin/kb", json={"title": "x", "content": "y"})
    assert res.get_json() == {"success": False, "message": "Admin access required"}
