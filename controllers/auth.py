import logging
from flask import Blueprint, current_app, request, session
from flask_login import login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from models import ledger
from models.database import get_db
from models.errors import LedgerError
from models.user import (
    register_user, verify_email, authenticate, authenticate_admin,
    get_profile, update_profile, change_password,
)
from utils.auth import auth_required
from utils.responses import ok, fail, request_data

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _start_session(user, account_type, is_admin=False):
    # Phiên mới sau khi đăng nhập
    session.clear()
    if hasattr(session, "regenerate"):
        session.regenerate()
    login_user(user)
    session.permanent = True
    session["account_type"] = account_type
    session["is_admin"] = is_admin


@auth_bp.route("/api/register", methods=["POST"])
def register():
    data = request_data()
    try:
        with get_db().begin() as conn:
            register_user(conn, data, current_app.config["BCRYPT_ROUNDS"])
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi đăng ký")
        return fail("Registration failed")
    return ok("Registered successfully. Please verify your email.")


@auth_bp.route("/api/verify-email", methods=["POST"])
def verify():
    data = request_data()
    try:
        with get_db().begin() as conn:
            verify_email(conn, data.get("email"), data.get("code"),
                         current_app.config["VERIFICATION_CODE_TTL_HOURS"])
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi xác thực email")
        return fail("Verification failed")
    return ok("Email verified successfully")


@auth_bp.route("/api/login", methods=["POST"])
def login():
    data = request_data()
    try:
        user, account = authenticate(get_db(), data.get("email"), data.get("password"), request.remote_addr)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi đăng nhập")
        return fail("Login failed")

    _start_session(user, account["account_type"])
    logger.info("User %s đăng nhập (%s)", user.id, account["account_type"])
    return ok("Login successful", user={
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "accountType": account["account_type"],
    })


@auth_bp.route("/api/admin-login", methods=["POST"])
def admin_login():
    data = request_data()
    try:
        user = authenticate_admin(get_db(), data.get("email"), data.get("password"), request.remote_addr)
        with get_db().connect() as conn:
            account_type = ledger.preferred_account_type(conn, user.id)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi đăng nhập admin")
        return fail("Login failed")

    _start_session(user, account_type, is_admin=True)
    logger.info("Admin %s đăng nhập", user.id)
    return ok("Admin login successful", user={"id": user.id, "email": user.email, "role": user.role})


@auth_bp.route("/api/logout", methods=["POST"])
@auth_required
def logout(ctx):
    logout_user()
    session.clear()
    return ok("Logged out successfully")


@auth_bp.route("/api/current-account-type")
@auth_required
def current_account_type(ctx):
    return ok(accountType=ctx.account_type)


@auth_bp.route("/api/switch-account-type", methods=["POST"])
@auth_required
def switch_account_type(ctx):
    account_type = request_data().get("accountType")
    try:
        with get_db().begin() as conn:
            account = ledger.ensure_account(conn, ctx.user_id, account_type)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi chuyển tài khoản")
        return fail("Failed to switch account")

    session["account_type"] = account["account_type"]
    return ok(f"Switched to {account['account_type']} account", accountType=account["account_type"])


@auth_bp.route("/api/verify-admin-access")
@auth_required
def verify_admin_access(ctx):
    if not ctx.is_admin:
        return fail("Admin access required")
    return ok("Admin access verified")


@auth_bp.route("/api/profile")
@auth_required
def profile(ctx):
    try:
        with get_db().connect() as conn:
            user = get_profile(conn, ctx.user_id)
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi lấy profile")
        return fail("Failed to fetch profile")
    return ok(user=user)


@auth_bp.route("/api/profile", methods=["PUT"])
@auth_required
def edit_profile(ctx):
    try:
        with get_db().begin() as conn:
            update_profile(conn, ctx.user_id, request_data())
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi cập nhật profile")
        return fail("Failed to update profile")
    return ok("Profile updated successfully")


@auth_bp.route("/api/change-password", methods=["PUT"])
@auth_required
def update_password(ctx):
    data = request_data()
    try:
        with get_db().begin() as conn:
            change_password(conn, ctx.user_id, data.get("currentPassword"), data.get("newPassword"),
                            current_app.config["BCRYPT_ROUNDS"])
    except LedgerError as e:
        return fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi đổi mật khẩu")
        return fail("Failed to update password")
    return ok("Password updated successfully")
