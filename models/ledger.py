"""
Sổ cái tài khoản giao dịch (demo / live).

Mọi hàm nhận một Connection đang nằm trong transaction
(``with engine.begin() as conn``). Các thao tác thay đổi số dư luôn khóa dòng
tài khoản bằng SELECT ... FOR UPDATE trước khi đọc số dư, rồi ghi bản ghi
giao dịch và số dư mới trong cùng transaction đó.
"""
import json
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from flask import current_app, has_app_context
from sqlalchemy import select, insert, update, text

from models.database import insert_ignore
from models.errors import ValidationError, InsufficientFunds, NotFound
from models.schema import trading_accounts, trades, deposits, withdrawals, users, user_profiles
from utils.security import generate_account_number, generate_reference, utcnow

logger = logging.getLogger(__name__)

ACCOUNT_TYPES = ("demo", "live")
TRADE_TYPES = ("buy", "sell")
TXN_STATUSES = ("pending", "completed", "failed")
CENTS = Decimal("0.01")

# Giá trị mặc định khi chạy ngoài app context (script, test model)
DEFAULT_STARTING_BALANCES = {"demo": Decimal("10000"), "live": Decimal("0")}
DEFAULT_CURRENCY = "USD"
BALANCE_SETTINGS = {"demo": "DEMO_STARTING_BALANCE", "live": "LIVE_STARTING_BALANCE"}


def _setting(name):
    # Mỗi app đọc cấu hình của chính nó
    if has_app_context():
        return current_app.config.get(name)
    return None


def to_decimal(value, field="amount"):
    if value is None or value == "":
        raise ValidationError(f"Invalid {field}")
    try:
        number = Decimal(str(value).replace(",", ""))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}")
    if not number.is_finite():
        raise ValidationError(f"Invalid {field}")
    return number


def to_money(value, field="amount"):
    return to_decimal(value, field).quantize(CENTS, rounding=ROUND_HALF_UP)


def _positive_money(value, field="amount"):
    amount = to_money(value, field)
    if amount <= 0:
        raise ValidationError(f"{field.capitalize()} must be greater than zero")
    return amount


def check_account_type(account_type):
    account_type = str(account_type or "").lower()
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError("Invalid account type")
    return account_type


def starting_balance(account_type):
    account_type = check_account_type(account_type)
    value = _setting(BALANCE_SETTINGS[account_type])
    if value is None:
        return DEFAULT_STARTING_BALANCES[account_type]
    return to_money(value)


def default_currency():
    return _setting("DEFAULT_CURRENCY") or DEFAULT_CURRENCY


def _account_query(user_id, account_type=None, account_id=None):
    query = select(trading_accounts).where(trading_accounts.c.user_id == user_id)
    if account_id is not None:
        query = query.where(trading_accounts.c.id == account_id)
    if account_type is not None:
        query = query.where(trading_accounts.c.account_type == account_type)
    return query


def _row(result):
    row = result.mappings().first()
    return dict(row) if row else None


def get_account(conn, user_id, account_type=None, account_id=None, for_update=False):
    if account_type is None and account_id is None:
        raise ValidationError("Account is required")
    query = _account_query(user_id, account_type, account_id)
    if for_update:
        query = query.with_for_update()
    return _row(conn.execute(query))


def list_accounts(conn, user_id):
    query = select(trading_accounts).where(trading_accounts.c.user_id == user_id).order_by(trading_accounts.c.id)
    return [dict(r) for r in conn.execute(query).mappings()]


def ensure_account(conn, user_id, account_type):
    """
    Lấy tài khoản (user_id, account_type), chưa có thì tạo.
    Ràng buộc UNIQUE(user_id, account_type) + INSERT bỏ qua trùng đảm bảo
    hai request song song không tạo ra hai dòng.
    """
    account_type = check_account_type(account_type)
    account = get_account(conn, user_id, account_type=account_type)
    if account:
        return account

    for _ in range(3):
        inserted = insert_ignore(conn, trading_accounts, {
            "user_id": user_id,
            "account_number": generate_account_number(),
            "account_type": account_type,
            "balance": starting_balance(account_type),
            "currency": default_currency(),
        })
        account = get_account(conn, user_id, account_type=account_type, for_update=True)
        if account:
            if inserted:
                logger.info("Tạo tài khoản %s cho user %s (%s)", account_type, user_id, account["account_number"])
            return account
        # Trùng số tài khoản (rất hiếm) -> thử lại với số mới
    raise ValidationError("Could not create trading account")


def _resolve_account(conn, user_id, account_id=None, account_type=None, for_update=False):
    if account_id not in (None, ""):
        try:
            account_id = int(account_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid account")
        account = get_account(conn, user_id, account_id=account_id, for_update=for_update)
        if not account:
            raise NotFound("Trading account not found")
        return account
    account = ensure_account(conn, user_id, account_type or "demo")
    if for_update:
        account = get_account(conn, user_id, account_id=account["id"], for_update=True)
    return account


def _lock_account_by_id(conn, account_id):
    account = _row(conn.execute(
        select(trading_accounts).where(trading_accounts.c.id == account_id).with_for_update()
    ))
    if not account:
        raise NotFound("Trading account not found")
    return account


def _set_balance(conn, account_id, balance):
    conn.execute(
        update(trading_accounts).where(trading_accounts.c.id == account_id).values(balance=balance)
    )


def _balance(account):
    return to_money(account["balance"])


# --- GIAO DỊCH ---

def apply_trade(conn, user_id, trade_type, asset, quantity, price, total_amount=None,
                account_id=None, account_type=None, asset_name=None):
    """
    Ghi lệnh đã khớp và cập nhật số dư: mua trừ total_amount, bán cộng total_amount.
    Lệnh mua làm số dư âm bị từ chối.
    """
    trade_type = str(trade_type or "").lower()
    if trade_type not in TRADE_TYPES:
        raise ValidationError("Invalid trade type")
    if not asset:
        raise ValidationError("Asset is required")

    quantity = to_decimal(quantity, "quantity")
    price = to_money(price, "price")
    if quantity <= 0 or price <= 0:
        raise ValidationError("Quantity and price must be greater than zero")
    if total_amount in (None, ""):
        total = (quantity * price).quantize(CENTS, rounding=ROUND_HALF_UP)
    else:
        total = to_money(total_amount, "total amount")
    if total <= 0:
        raise ValidationError("Total amount must be greater than zero")

    account = _resolve_account(conn, user_id, account_id, account_type, for_update=True)
    delta = -total if trade_type == "buy" else total
    new_balance = _balance(account) + delta
    if new_balance < 0:
        raise InsufficientFunds()

    result = conn.execute(insert(trades).values(
        user_id=user_id,
        account_id=account["id"],
        asset=str(asset).upper(),
        asset_name=asset_name,
        quantity=quantity,
        price=price,
        total_amount=total,
        trade_type=trade_type,
        status="completed",
    ))
    _set_balance(conn, account["id"], new_balance)

    trade_id = result.inserted_primary_key[0]
    logger.info("Trade %s: user %s %s %s %s @ %s, số dư %s -> %s",
                trade_id, user_id, trade_type, quantity, asset, price, account["balance"], new_balance)
    return {"trade_id": trade_id, "account_id": account["id"], "total_amount": total, "balance": new_balance}


# --- NẠP / RÚT ---

def request_deposit(conn, user_id, amount, method=None, account_id=None, account_type=None, currency=None):
    amount = _positive_money(amount)
    account = _resolve_account(conn, user_id, account_id, account_type)
    reference = generate_reference("DEP")
    result = conn.execute(insert(deposits).values(
        user_id=user_id,
        account_id=account["id"],
        amount=amount,
        currency=currency or account["currency"],
        payment_method=method,
        reference_number=reference,
        status="pending",
    ))
    deposit_id = result.inserted_primary_key[0]
    logger.info("Yêu cầu nạp %s: user %s, %s %s", reference, user_id, amount, currency or account["currency"])
    return {"id": deposit_id, "reference_number": reference, "status": "pending"}


def request_withdrawal(conn, user_id, amount, method=None, bank_details=None, account_id=None,
                       account_type=None, currency=None):
    # Số dư chỉ thay đổi khi admin duyệt (failed -> hoàn tiền)
    amount = _positive_money(amount)
    account = _resolve_account(conn, user_id, account_id, account_type)
    if amount > _balance(account):
        raise InsufficientFunds()
    reference = generate_reference("WD")
    result = conn.execute(insert(withdrawals).values(
        user_id=user_id,
        account_id=account["id"],
        amount=amount,
        currency=currency or account["currency"],
        payment_method=method,
        bank_details=json.dumps(bank_details) if bank_details is not None else None,
        reference_number=reference,
        status="pending",
    ))
    withdrawal_id = result.inserted_primary_key[0]
    logger.info("Yêu cầu rút %s: user %s, %s", reference, user_id, amount)
    return {"id": withdrawal_id, "reference_number": reference, "status": "pending"}


def _transition(conn, table, record_id, status, label, apply_on):
    """
    Chuyển trạng thái pending -> completed / failed đúng một lần.
    apply_on: trạng thái đích làm cộng tiền vào tài khoản.
    """
    status = str(status or "").lower()
    if status not in TXN_STATUSES:
        raise ValidationError("Invalid status")
    try:
        record_id = int(record_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label.lower()} id")

    record = _row(conn.execute(select(table).where(table.c.id == record_id).with_for_update()))
    if not record:
        raise NotFound(f"{label} not found")

    current = record["status"]
    if current == status:
        # Gọi lại lần 2 -> không cộng tiền thêm
        return {"id": record_id, "status": current, "changed": False, "balance": None}
    if current != "pending" or status == "pending":
        raise ValidationError("Invalid status transition")

    account = _lock_account_by_id(conn, record["account_id"])
    conn.execute(
        update(table)
        .where(table.c.id == record_id)
        .where(table.c.status == "pending")
        .values(status=status, processed_at=utcnow())
    )

    balance = _balance(account)
    if status == apply_on:
        balance = balance + to_money(record["amount"])
        _set_balance(conn, account["id"], balance)

    logger.info("%s %s: %s -> %s (tài khoản %s, số dư %s)",
                label, record_id, current, status, account["id"], balance)
    return {"id": record_id, "status": status, "changed": True, "balance": balance}


def set_deposit_status(conn, deposit_id, status):
    return _transition(conn, deposits, deposit_id, status, "Deposit", apply_on="completed")


def set_withdrawal_status(conn, withdrawal_id, status):
    return _transition(conn, withdrawals, withdrawal_id, status, "Withdrawal", apply_on="failed")


def preferred_account_type(conn, user_id):
    row = conn.execute(
        select(user_profiles.c.account_type)
        .where(user_profiles.c.user_id == user_id)
        .order_by(user_profiles.c.id.desc())
        .limit(1)
    ).first()
    return row[0] if row else "demo"


def adjust_balance(conn, user_id, amount, action, account_type=None):
    """Admin cộng / trừ tiền thủ công trên một tài khoản cụ thể"""
    action = str(action or "").lower()
    if action not in ("credit", "debit"):
        raise ValidationError("Invalid action")
    amount = _positive_money(amount)

    exists = conn.execute(select(users.c.id).where(users.c.id == user_id)).first()
    if not exists:
        raise NotFound("User not found")

    account_type = check_account_type(account_type) if account_type else preferred_account_type(conn, user_id)
    account = ensure_account(conn, user_id, account_type)
    account = _lock_account_by_id(conn, account["id"])

    balance = _balance(account)
    new_balance = balance + amount if action == "credit" else balance - amount
    if new_balance < 0:
        raise InsufficientFunds()
    _set_balance(conn, account["id"], new_balance)

    logger.info("Admin %s %s cho user %s (%s): %s -> %s",
                action, amount, user_id, account_type, balance, new_balance)
    return {"account_id": account["id"], "account_type": account_type, "balance": new_balance}


# --- LỊCH SỬ ---

def list_trades(conn, user_id):
    rows = conn.execute(text("""
        SELECT id, account_id, asset, asset_name, quantity, price, total_amount, trade_type, status, created_at
        FROM trades WHERE user_id = :uid ORDER BY created_at DESC, id DESC
    """), {"uid": user_id})
    return [dict(r) for r in rows.mappings()]


def list_deposits(conn, user_id):
    rows = conn.execute(text("""
        SELECT id, account_id, amount, currency, payment_method, reference_number, status, created_at
        FROM deposits WHERE user_id = :uid ORDER BY created_at DESC, id DESC
    """), {"uid": user_id})
    return [dict(r) for r in rows.mappings()]


def list_withdrawals(conn, user_id):
    rows = conn.execute(text("""
        SELECT id, account_id, amount, currency, payment_method, bank_details, reference_number, status, created_at
        FROM withdrawals WHERE user_id = :uid ORDER BY created_at DESC, id DESC
    """), {"uid": user_id})
    result = []
    for r in rows.mappings():
        item = dict(r)
        if item.get("bank_details"):
            try:
                item["bank_details"] = json.loads(item["bank_details"])
            except ValueError:
                pass
        result.append(item)
    return result


def history(conn, user_id):
    # Gộp lệnh, nạp, rút thành một danh sách
    rows = conn.execute(text("""
        SELECT 'trade' AS type, id, asset AS description, total_amount AS amount,
               CASE WHEN trade_type = 'buy' THEN 'out' ELSE 'in' END AS direction, status, created_at
        FROM trades WHERE user_id = :uid
        UNION ALL
        SELECT 'deposit' AS type, id, payment_method AS description, amount,
               'in' AS direction, status, created_at
        FROM deposits WHERE user_id = :uid
        UNION ALL
        SELECT 'withdrawal' AS type, id, payment_method AS description, amount,
               'out' AS direction, status, created_at
        FROM withdrawals WHERE user_id = :uid
        ORDER BY created_at DESC, id DESC
    """), {"uid": user_id})
    return [dict(r) for r in rows.mappings()]
