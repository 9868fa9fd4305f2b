from sqlalchemy import text, bindparam

from models.errors import ValidationError
from models.ledger import TXN_STATUSES


def list_users(conn, limit=50, offset=0):
    """Phân trang theo user, mỗi user kèm danh sách tài khoản giao dịch"""
    rows = conn.execute(text("""
        SELECT id, first_name, last_name, username, email, role, status,
               email_verified, failed_logins, last_login_at, created_at
        FROM users
        ORDER BY id DESC
        LIMIT :limit OFFSET :offset
    """), {"limit": limit, "offset": offset})
    users = [dict(r, accounts=[]) for r in rows.mappings()]

    if users:
        by_id = {u["id"]: u for u in users}
        accounts = conn.execute(
            text("""
                SELECT id, user_id, account_number, account_type, balance, currency
                FROM trading_accounts
                WHERE user_id IN :ids
                ORDER BY id
            """).bindparams(bindparam("ids", expanding=True)),
            {"ids": list(by_id)},
        )
        for a in accounts.mappings():
            by_id[a["user_id"]]["accounts"].append(dict(a))

    total = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
    return users, total


def dashboard_stats(conn):
    """Số liệu tổng hợp, luôn tính trực tiếp từ DB"""
    row = conn.execute(text("""
        SELECT
            (SELECT COUNT(*) FROM users) AS total_users,
            (SELECT COALESCE(SUM(balance), 0) FROM trading_accounts) AS total_balance,
            (SELECT COUNT(*) FROM trades) AS total_trades,
            (SELECT COUNT(*) FROM deposits WHERE status = 'pending') AS pending_deposits,
            (SELECT COUNT(*) FROM withdrawals WHERE status = 'pending') AS pending_withdrawals
    """)).mappings().first()
    pending_deposits = int(row["pending_deposits"] or 0)
    pending_withdrawals = int(row["pending_withdrawals"] or 0)
    return {
        "totalUsers": int(row["total_users"] or 0),
        "totalBalance": float(row["total_balance"] or 0),
        "totalTrades": int(row["total_trades"] or 0),
        "pendingDeposits": pending_deposits,
        "pendingWithdrawals": pending_withdrawals,
        "pendingActions": pending_deposits + pending_withdrawals,
    }


def list_all_trades(conn, limit=100, offset=0):
    rows = conn.execute(text("""
        SELECT t.id, t.user_id, u.email, t.account_id, t.asset, t.asset_name, t.quantity, t.price,
               t.total_amount, t.trade_type, t.status, t.created_at
        FROM trades t JOIN users u ON u.id = t.user_id
        ORDER BY t.created_at DESC, t.id DESC
        LIMIT :limit OFFSET :offset
    """), {"limit": limit, "offset": offset})
    return [dict(r) for r in rows.mappings()]


def _list_requests(conn, table, status, limit, offset):
    if status and status not in TXN_STATUSES:
        raise ValidationError("Invalid status")
    # table chỉ nhận 'deposits' hoặc 'withdrawals' từ code, không từ request
    where = "WHERE r.status = :status" if status else ""
    sql = f"""
        SELECT r.id, r.user_id, u.email, r.account_id, a.account_type, r.amount, r.currency,
               r.payment_method, r.reference_number, r.status, r.processed_at, r.created_at
        FROM {table} r
        JOIN users u ON u.id = r.user_id
        JOIN trading_accounts a ON a.id = r.account_id
        {where}
        ORDER BY r.created_at DESC, r.id DESC
        LIMIT :limit OFFSET :offset
    """
    params = {"limit": limit, "offset": offset}
    if status:
        params["status"] = status
    rows = conn.execute(text(sql), params)
    return [dict(r) for r in rows.mappings()]


def list_all_deposits(conn, status=None, limit=100, offset=0):
    return _list_requests(conn, "deposits", status, limit, offset)


def list_all_withdrawals(conn, status=None, limit=100, offset=0):
    return _list_requests(conn, "withdrawals", status, limit, offset)
