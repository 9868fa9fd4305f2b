from datetime import timedelta

from utils.security import utcnow


def test_create_admin_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-admin", "--username", "root", "--email", "root@example.com",
                                 "--password", "rootpass"])
    assert result.exit_code == 0
    assert "Admin created" in result.output

    res = app.test_client().post("/api/admin-login", json={"email": "root@example.com", "password": "rootpass"})
    assert res.get_json()["success"] is True

    again = runner.invoke(args=["create-admin", "--username", "root", "--email", "root@example.com",
                                "--password", "rootpass"])
    assert again.exit_code != 0


def test_purge_sessions_command(app):
    store = app.session_interface.store
    store.set("stale", {"a": 1}, utcnow() - timedelta(minutes=5))
    result = app.test_cli_runner().invoke(args=["purge-sessions"])
    assert result.exit_code == 0
    assert "Removed 1 expired sessions" in result.output


def test_init_db_is_repeatable(app):
    result = app.test_cli_runner().invoke(args=["init-db"])
    assert result.exit_code == 0
    assert "Database initialized" in result.output
