import logging
from flask import Blueprint
from sqlalchemy.exc import SQLAlchemyError

from models import ledger
from models.database import get_db
from models.errors import LedgerError
from models.user import get_profile
from utils.auth import auth_required
from utils.responses import ok, fail, request_data

logger = logging.getLogger(__name__)

trade_bp = Blueprint("trade", __name__)


# DASHBOARD: thông tin user + tài khoản đang dùng
@trade_bp.route("/api/dashboard")
@auth_required
def dashboard(ctx):
    try:
        with get_db().begin() as conn:
            user = get_profile(conn, ctx.user_id)
            account = ledger.ensure_account(conn, ctx.user_id, ctx.account_type)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi dashboard")
        return fail("Dashboard failed")
    return ok(user=user, accounts=[account])


# ĐẶT LỆNH
@trade_bp.route("/api/trade", methods=["POST"])
@auth_required
def trade(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            result = ledger.apply_trade(
                conn,
                ctx.user_id,
                trade_type=data.get("tradeType"),
                asset=data.get("asset"),
                quantity=data.get("quantity"),
                price=data.get("price"),
                total_amount=data.get("totalAmount"),
                account_id=data.get("accountId"),
                account_type=ctx.account_type,
                asset_name=data.get("assetName"),
            )
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi đặt lệnh")
        return fail("Trade failed")
    return ok("Trade completed successfully", tradeId=result["trade_id"],
              accountId=result["account_id"], totalAmount=result["total_amount"], balance=result["balance"])


# NẠP TIỀN (chờ admin duyệt)
@trade_bp.route("/api/deposit", methods=["POST"])
@auth_required
def deposit(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            result = ledger.request_deposit(
                conn, ctx.user_id, data.get("amount"), method=data.get("method"),
                account_id=data.get("accountId"), account_type=ctx.account_type, currency=data.get("currency"),
            )
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi nạp tiền")
        return fail("Deposit failed")
    return ok("Deposit request submitted", depositId=result["id"], referenceNumber=result["reference_number"])


# RÚT TIỀN (chờ admin duyệt)
@trade_bp.route("/api/withdraw", methods=["POST"])
@auth_required
def withdraw(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            result = ledger.request_withdrawal(
                conn, ctx.user_id, data.get("amount"), method=data.get("method"),
                bank_details=data.get("bankDetails"), account_id=data.get("accountId"),
                account_type=ctx.account_type, currency=data.get("currency"),
            )
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi rút tiền")
        return fail("Withdrawal failed")
    return ok("Withdrawal request submitted", withdrawalId=result["id"], referenceNumber=result["reference_number"])


# LỊCH SỬ
def _history(ctx, fetch, key, label):
    try:
        with get_db().connect() as conn:
            rows = fetch(conn, ctx.user_id)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy lịch sử %s", label)
        return fail(f"Failed to fetch {label}")
    return ok(**{key: rows})


@trade_bp.route("/api/trades")
@auth_required
def trades(ctx):
    return _history(ctx, ledger.list_trades, "trades", "trades")


@trade_bp.route("/api/deposits")
@auth_required
def deposits(ctx):
    return _history(ctx, ledger.list_deposits, "deposits", "deposits")


@trade_bp.route("/api/withdrawals")
@auth_required
def withdrawals(ctx):
    return _history(ctx, ledger.list_withdrawals, "withdrawals", "withdrawals")


@trade_bp.route("/api/history")
@auth_required
def history(ctx):
    return _history(ctx, ledger.history, "history", "history")
