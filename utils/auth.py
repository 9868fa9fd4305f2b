from dataclasses import dataclass
from functools import wraps
from flask import session, jsonify, current_app
from flask_login import current_user

ADMIN_REQUIRED = "Admin access required"


@dataclass(frozen=True)
class SessionContext:
    """Thông tin phiên truyền thẳng vào handler"""
    user_id: int
    account_type: str
    is_admin: bool


def current_context():
    return SessionContext(
        user_id=int(current_user.id),
        account_type=session.get("account_type", "demo"),
        is_admin=bool(session.get("is_admin")) and current_user.is_admin,
    )


def auth_required(view):
    """Cần đăng nhập; handler nhận SessionContext làm tham số đầu tiên"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return current_app.login_manager.unauthorized()
        return view(current_context(), *args, **kwargs)
    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"success": False, "message": ADMIN_REQUIRED}), 401
        ctx = current_context()
        if not ctx.is_admin:
            return jsonify({"success": False, "message": ADMIN_REQUIRED})
        return view(ctx, *args, **kwargs)
    return wrapper
