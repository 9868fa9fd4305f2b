import logging
from datetime import timedelta
from flask_login import UserMixin
from sqlalchemy import select, insert, update, or_
from sqlalchemy.exc import IntegrityError

from models import ledger
from models.errors import ValidationError, AuthError, NotFound
from models.schema import users, user_profiles
from utils.security import hash_password, check_password, generate_verification_code, utcnow

logger = logging.getLogger(__name__)

INVALID_LOGIN = "Invalid email or password"
DUPLICATE_USER = "Email or username already in use"
USER_STATUSES = ("pending", "active", "suspended")


# Class User kế thừa UserMixin để dùng cho Flask-Login
class User(UserMixin):
    def __init__(self, id, username, email, role="user", status="pending", first_name="", last_name=""):
        self.id = id
        self.username = username
        self.email = email
        self.role = role
        self.status = status
        self.first_name = first_name
        self.last_name = last_name

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_active(self):
        # Flask-Login từ chối tài khoản bị khóa
        return self.status != "suspended"

    @classmethod
    def from_row(cls, row):
        return cls(row["id"], row["username"], row["email"], row["role"], row["status"],
                   row.get("first_name") or "", row.get("last_name") or "")


def _find_user(conn, **where):
    query = select(users)
    for column, value in where.items():
        query = query.where(users.c[column] == value)
    row = conn.execute(query).mappings().first()
    return dict(row) if row else None


def _text(value):
    # JSON có thể gửi số thay vì chuỗi
    if value is None:
        return ""
    return str(value).strip()


def _secret(value):
    # Mật khẩu giữ nguyên khoảng trắng, chỉ đổi kiểu
    return "" if value is None else str(value)


def _required(fields, *names):
    for name in names:
        if not _text(fields.get(name)):
            raise ValidationError(f"{name} is required")


# Đăng ký: user + profile + tài khoản giao dịch trong cùng transaction
def register_user(conn, fields, rounds=12):
    _required(fields, "username", "email", "password")
    email = _text(fields["email"]).lower()
    username = _text(fields["username"])
    account_type = ledger.check_account_type(fields.get("accountType") or "demo")

    existing = conn.execute(
        select(users.c.id).where(or_(users.c.email == email, users.c.username == username))
    ).first()
    if existing:
        raise ValidationError(DUPLICATE_USER)

    code = generate_verification_code()
    try:
        result = conn.execute(insert(users).values(
            first_name=_text(fields.get("firstName")),
            last_name=_text(fields.get("lastName")),
            username=username,
            email=email,
            phone=fields.get("phone"),
            country=fields.get("country"),
            password_hash=hash_password(_secret(fields["password"]), rounds),
            verification_code=code,
            verification_sent_at=utcnow(),
            email_verified=False,
            role="user",
            status="pending",
            failed_logins=0,
        ))
    except IntegrityError:
        # Hai request đăng ký cùng lúc -> unique index chặn
        raise ValidationError(DUPLICATE_USER)

    user_id = result.inserted_primary_key[0]
    conn.execute(insert(user_profiles).values(user_id=user_id, account_type=account_type))
    account = ledger.ensure_account(conn, user_id, account_type)

    logger.info("Đăng ký user %s (%s), tài khoản %s", user_id, username, account_type)
    return {"user_id": user_id, "account": account, "verification_code": code}


def verify_email(conn, email, code, ttl_hours=24):
    user = _find_user(conn, email=_text(email).lower(), status="pending")
    if not user:
        raise ValidationError("Invalid request")
    if not _text(code) or user["verification_code"] != _text(code):
        raise ValidationError("Invalid code")

    sent_at = user["verification_sent_at"]
    if sent_at is None or utcnow() - sent_at > timedelta(hours=ttl_hours):
        raise ValidationError("Verification code expired")

    conn.execute(
        update(users).where(users.c.id == user["id"])
        .values(email_verified=True, status="active", verification_code=None)
    )
    logger.info("User %s đã xác thực email", user["id"])
    return user["id"]


def record_failed_login(conn, user_id):
    conn.execute(
        update(users).where(users.c.id == user_id).values(failed_logins=users.c.failed_logins + 1)
    )


def check_credentials(conn, email, password):
    """
    Kiểm tra mật khẩu. Sai email hay sai mật khẩu đều trả về cùng 1 thông báo.
    Trả về (user_row, None) nếu đúng, (user_row hoặc None, lỗi) nếu sai.
    """
    user = _find_user(conn, email=_text(email).lower())
    if not user:
        return None, INVALID_LOGIN
    if not check_password(_secret(password), user["password_hash"]):
        return user, INVALID_LOGIN
    return user, None


def mark_login(conn, user_id, ip):
    conn.execute(
        update(users).where(users.c.id == user_id)
        .values(failed_logins=0, last_login_at=utcnow(), last_login_ip=ip)
    )


def authenticate(engine, email, password, ip=None):
    """
    Đăng nhập thường. Trả về (User, tài khoản đang dùng).
    Bộ đếm đăng nhập sai được commit trước khi báo lỗi.
    """
    account = None
    with engine.begin() as conn:
        row, error = check_credentials(conn, email, password)
        if error and row:
            record_failed_login(conn, row["id"])
        elif not error and row["status"] != "suspended":
            mark_login(conn, row["id"], ip)
            account_type = ledger.preferred_account_type(conn, row["id"])
            account = ledger.ensure_account(conn, row["id"], account_type)

    if error:
        logger.warning("Đăng nhập thất bại cho %s từ %s", email, ip)
        raise AuthError(error)
    if row["status"] == "suspended":
        raise AuthError("Account suspended")
    return User.from_row(row), account


def authenticate_admin(engine, email, password, ip=None):
    with engine.begin() as conn:
        row, error = check_credentials(conn, email, password)
        if error and row:
            record_failed_login(conn, row["id"])
        allowed = not error and row["role"] == "admin" and row["status"] != "suspended"
        if allowed:
            mark_login(conn, row["id"], ip)

    if error:
        logger.warning("Đăng nhập admin thất bại cho %s từ %s", email, ip)
        raise AuthError(error)
    if not allowed:
        logger.warning("User %s không có quyền admin", row["id"])
        raise AuthError("Admin access required")
    return User.from_row(row)


# Hàm lấy user theo ID (Dùng cho @login_manager.user_loader)
def get_user_by_id(conn, user_id):
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    row = _find_user(conn, id=user_id)
    return User.from_row(row) if row else None


def get_profile(conn, user_id):
    row = conn.execute(
        select(users.c.id, users.c.first_name, users.c.last_name, users.c.username, users.c.email,
               users.c.phone, users.c.country, users.c.status, users.c.email_verified, users.c.role)
        .where(users.c.id == user_id)
    ).mappings().first()
    if not row:
        raise NotFound("User not found")
    return dict(row)


def update_profile(conn, user_id, fields):
    values = {}
    for key, column in (("firstName", "first_name"), ("lastName", "last_name"),
                        ("phone", "phone"), ("country", "country")):
        if key in fields:
            values[column] = fields[key]

    if fields.get("email"):
        email = _text(fields["email"]).lower()
        taken = conn.execute(
            select(users.c.id).where(users.c.email == email).where(users.c.id != user_id)
        ).first()
        if taken:
            raise ValidationError(DUPLICATE_USER)
        values["email"] = email

    if fields.get("username"):
        username = _text(fields["username"])
        taken = conn.execute(
            select(users.c.id).where(users.c.username == username).where(users.c.id != user_id)
        ).first()
        if taken:
            raise ValidationError(DUPLICATE_USER)
        values["username"] = username

    if not values:
        raise ValidationError("Nothing to update")
    try:
        conn.execute(update(users).where(users.c.id == user_id).values(**values))
    except IntegrityError:
        raise ValidationError(DUPLICATE_USER)


def change_password(conn, user_id, current_password, new_password, rounds=12):
    new_password = _secret(new_password)
    if len(new_password) < 6:
        raise ValidationError("New password must be at least 6 characters")
    row = _find_user(conn, id=user_id)
    if not row:
        raise NotFound("User not found")
    if not check_password(_secret(current_password), row["password_hash"]):
        raise ValidationError("Current password is incorrect")
    conn.execute(
        update(users).where(users.c.id == user_id).values(password_hash=hash_password(new_password, rounds))
    )
    logger.info("User %s đổi mật khẩu", user_id)


def set_user_status(conn, user_id, status):
    status = str(status or "").lower()
    if status not in USER_STATUSES:
        raise ValidationError("Invalid status")
    result = conn.execute(update(users).where(users.c.id == user_id).values(status=status))
    if result.rowcount == 0:
        raise NotFound("User not found")
    logger.info("User %s -> %s", user_id, status)


def create_admin(conn, username, email, password, rounds=12):
    """Tạo tài khoản admin (dùng từ lệnh CLI)"""
    email = email.strip().lower()
    existing = conn.execute(
        select(users.c.id).where(or_(users.c.email == email, users.c.username == username))
    ).first()
    if existing:
        raise ValidationError(DUPLICATE_USER)
    result = conn.execute(insert(users).values(
        username=username,
        email=email,
        password_hash=hash_password(password, rounds),
        email_verified=True,
        role="admin",
        status="active",
        failed_logins=0,
    ))
    user_id = result.inserted_primary_key[0]
    conn.execute(insert(user_profiles).values(user_id=user_id, account_type="live"))
    ledger.ensure_account(conn, user_id, "live")
    logger.info("Tạo admin %s (%s)", user_id, email)
    return user_id
