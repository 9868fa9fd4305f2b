from datetime import date, datetime
from decimal import Decimal
from flask import jsonify, request


def to_json(value):
    """Đổi Decimal / datetime trong kết quả SQL sang kiểu JSON"""
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def ok(message=None, **data):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(to_json(data))
    return jsonify(body)


def fail(message, status=200, **data):
    body = {"success": False, "message": message}
    body.update(to_json(data))
    return jsonify(body), status


def request_data():
    # Nhận cả JSON lẫn form
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def paging(args, default=50, maximum=200):
    try:
        page = max(int(args.get("page", 1)), 1)
        per_page = min(max(int(args.get("per_page", default)), 1), maximum)
    except (TypeError, ValueError):
        page, per_page = 1, default
    return per_page, (page - 1) * per_page, page
