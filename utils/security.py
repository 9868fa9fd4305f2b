import secrets
import uuid
from datetime import datetime, timezone
import bcrypt


def hash_password(plain_password, rounds=12):
    """Mã hóa mật khẩu (bcrypt, có salt)"""
    password_bytes = plain_password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password_bytes, salt)
    # Trả về dạng string để lưu vào Database
    return hashed.decode("utf-8")


def check_password(plain_password, password_hash):
    if not isinstance(plain_password, str) or not isinstance(password_hash, str):
        return False
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # hash hỏng / không phải bcrypt
        return False


def generate_verification_code():
    # 6 chữ số, 100000 - 999999
    return str(100000 + secrets.randbelow(900000))


def generate_reference(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:20].upper()}"


def generate_account_number():
    return "TD" + "".join(str(secrets.randbelow(10)) for _ in range(12))


def utcnow():
    # Lưu thời gian dạng naive UTC cho mọi CSDL
    return datetime.now(timezone.utc).replace(tzinfo=None)
