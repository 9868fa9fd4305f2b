import logging
from flask import Blueprint, request
from sqlalchemy.exc import SQLAlchemyError

from models import support
from models.database import get_db
from models.errors import LedgerError
from utils.auth import auth_required, admin_required
from utils.responses import ok, fail, request_data

logger = logging.getLogger(__name__)

support_bp = Blueprint("support", __name__)


def _run(action, label, write=True):
    """Chạy một thao tác DB, đổi lỗi thành {success: false}"""
    engine = get_db()
    try:
        with (engine.begin() if write else engine.connect()) as conn:
            return action(conn), None
    except LedgerError as e:
        return None, fail(e.message)
    except SQLAlchemyError:
        logger.exception("Lỗi support: %s", label)
        return None, fail(f"Failed to {label}")


@support_bp.route("/api/support/tickets", methods=["POST"])
@auth_required
def open_ticket(ctx):
    data = request_data()
    ticket_id, error = _run(lambda conn: support.open_ticket(
        conn, ctx.user_id, data.get("subject"), data.get("message"),
        data.get("category"), data.get("priority"),
    ), "open ticket")
    return error or ok("Ticket created", ticketId=ticket_id)


@support_bp.route("/api/support/tickets")
@auth_required
def my_tickets(ctx):
    tickets, error = _run(lambda conn: support.list_tickets(conn, user_id=ctx.user_id),
                          "fetch tickets", write=False)
    return error or ok(tickets=tickets)


@support_bp.route("/api/support/tickets/<int:ticket_id>")
@auth_required
def ticket_detail(ctx, ticket_id):
    owner = None if ctx.is_admin else ctx.user_id
    ticket, error = _run(lambda conn: support.get_ticket(conn, ticket_id, owner), "fetch ticket", write=False)
    return error or ok(ticket=ticket)


@support_bp.route("/api/support/tickets/<int:ticket_id>/messages", methods=["POST"])
@auth_required
def reply(ctx, ticket_id):
    data = request_data()
    message_id, error = _run(lambda conn: support.add_message(
        conn, ticket_id, ctx.user_id, data.get("message"), is_staff=ctx.is_admin,
    ), "send message")
    return error or ok("Message sent", messageId=message_id)


@support_bp.route("/api/admin/support/tickets")
@admin_required
def all_tickets(ctx):
    tickets, error = _run(lambda conn: support.list_tickets(conn, status=request.args.get("status")),
                          "fetch tickets", write=False)
    return error or ok(tickets=tickets)


@support_bp.route("/api/admin/support/tickets/<int:ticket_id>/status", methods=["POST"])
@admin_required
def ticket_status(ctx, ticket_id):
    status = request_data().get("status")
    _, error = _run(lambda conn: support.set_ticket_status(conn, ticket_id, status), "update ticket")
    return error or ok("Ticket updated", status=status)


# --- KNOWLEDGE BASE ---

@support_bp.route("/api/kb")
def articles():
    rows, error = _run(lambda conn: support.list_articles(conn, request.args.get("category")),
                       "fetch articles", write=False)
    return error or ok(articles=rows)


@support_bp.route("/api/kb/<slug>")
def article(slug):
    row, error = _run(lambda conn: support.get_article(conn, slug), "fetch article", write=False)
    return error or ok(article=row)


@support_bp.route("/api/admin/kb", methods=["POST"])
@admin_required
def create_article(ctx):
    data = request_data()
    result, error = _run(lambda conn: support.create_article(
        conn, data.get("title"), data.get("content"), data.get("category"), data.get("isPublished", True),
    ), "create article")
    return error or ok("Article created", **result)
