import logging
from flask import Blueprint, request
from sqlalchemy.exc import SQLAlchemyError

from models import admin, ledger
from models.database import get_db
from models.errors import LedgerError, ValidationError
from models.user import set_user_status
from utils.auth import admin_required
from utils.responses import ok, fail, request_data, paging

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/users")
@admin_required
def users(ctx):
    limit, offset, page = paging(request.args)
    try:
        with get_db().connect() as conn:
            rows, total = admin.list_users(conn, limit, offset)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy danh sách user")
        return fail("Failed to fetch users")
    return ok(users=rows, total=total, page=page)


@admin_bp.route("/dashboard-stats")
@admin_required
def dashboard_stats(ctx):
    try:
        with get_db().connect() as conn:
            stats = admin.dashboard_stats(conn)
    except SQLAlchemyError:
        logger.exception("Lỗi thống kê")
        return fail("Failed to fetch dashboard statistics")
    return ok(stats=stats)


@admin_bp.route("/trades")
@admin_required
def trades(ctx):
    limit, offset, page = paging(request.args, default=100)
    try:
        with get_db().connect() as conn:
            rows = admin.list_all_trades(conn, limit, offset)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy danh sách lệnh")
        return fail("Failed to fetch trades")
    return ok(trades=rows, page=page)


@admin_bp.route("/deposits")
@admin_required
def deposits(ctx):
    limit, offset, page = paging(request.args, default=100)
    try:
        with get_db().connect() as conn:
            rows = admin.list_all_deposits(conn, request.args.get("status"), limit, offset)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy danh sách nạp tiền")
        return fail("Failed to fetch deposits")
    return ok(deposits=rows, page=page)


@admin_bp.route("/withdrawals")
@admin_required
def withdrawals(ctx):
    limit, offset, page = paging(request.args, default=100)
    try:
        with get_db().connect() as conn:
            rows = admin.list_all_withdrawals(conn, request.args.get("status"), limit, offset)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy danh sách rút tiền")
        return fail("Failed to fetch withdrawals")
    return ok(withdrawals=rows, page=page)


@admin_bp.route("/update-balance", methods=["POST"])
@admin_required
def update_balance(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            result = ledger.adjust_balance(conn, _int(data.get("userId"), "user"), data.get("amount"),
                                           data.get("action"), data.get("accountType"))
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi cập nhật số dư")
        return fail("Failed to update balance")
    logger.info("Admin %s cập nhật số dư user %s", ctx.user_id, data.get("userId"))
    return ok("Balance updated successfully", balance=result["balance"],
              accountId=result["account_id"], accountType=result["account_type"])


@admin_bp.route("/update-user-status", methods=["POST"])
@admin_required
def update_user_status(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            set_user_status(conn, _int(data.get("userId"), "user"), data.get("status"))
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi cập nhật trạng thái user")
        return fail("Failed to update user status")
    return ok("User status updated")


def _int(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id")


# --- DUYỆT NẠP / RÚT ---

def _set_status(setter, record_id, status, label):
    try:
        with get_db().begin() as conn:
            result = setter(conn, record_id, status)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi cập nhật %s", label.lower())
        return fail(f"Failed to update {label.lower()} status")
    if not result["changed"]:
        return ok(f"{label} already {result['status']}", status=result["status"], changed=False)
    return ok(f"{label} marked as {result['status']}", status=result["status"], changed=True,
              balance=result["balance"])


@admin_bp.route("/update-deposit-status", methods=["POST"])
@admin_required
def update_deposit_status(ctx):
    data = request_data()
    return _set_status(ledger.set_deposit_status, data.get("depositId"), data.get("status"), "Deposit")


@admin_bp.route("/update-withdrawal-status", methods=["POST"])
@admin_required
def update_withdrawal_status(ctx):
    data = request_data()
    return _set_status(ledger.set_withdrawal_status, data.get("withdrawalId"), data.get("status"), "Withdrawal")


@admin_bp.route("/deposits/<int:deposit_id>/approve", methods=["POST"])
@admin_required
def approve_deposit(ctx, deposit_id):
    return _set_status(ledger.set_deposit_status, deposit_id, "completed", "Deposit")


@admin_bp.route("/deposits/<int:deposit_id>/reject", methods=["POST"])
@admin_required
def reject_deposit(ctx, deposit_id):
    return _set_status(ledger.set_deposit_status, deposit_id, "failed", "Deposit")


@admin_bp.route("/withdrawals/<int:withdrawal_id>/approve", methods=["POST"])
@admin_required
def approve_withdrawal(ctx, withdrawal_id):
    return _set_status(ledger.set_withdrawal_status, withdrawal_id, "completed", "Withdrawal")


@admin_bp.route("/withdrawals/<int:withdrawal_id>/reject", methods=["POST"])
@admin_required
def reject_withdrawal(ctx, withdrawal_id):
    return _set_status(ledger.set_withdrawal_status, withdrawal_id, "failed", "Withdrawal")
