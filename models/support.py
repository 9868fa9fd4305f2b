import logging
import re
from sqlalchemy import select, insert, update

from models.errors import ValidationError, NotFound
from models.schema import support_tickets, support_messages, kb_articles, users
from utils.security import utcnow

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
TICKET_STATUSES = ("open", "pending", "resolved", "closed")


def _get_ticket(conn, ticket_id, user_id=None, for_update=False):
    query = select(support_tickets).where(support_tickets.c.id == ticket_id)
    if user_id is not None:
        # User thường chỉ xem được ticket của mình
        query = query.where(support_tickets.c.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    row = conn.execute(query).mappings().first()
    if not row:
        raise NotFound("Ticket not found")
    return dict(row)


def open_ticket(conn, user_id, subject, message, category="general", priority="medium"):
    subject = str(subject or "").strip()
    message = str(message or "").strip()
    if not subject or not message:
        raise ValidationError("Subject and message are required")
    priority = str(priority or "medium").lower()
    if priority not in PRIORITIES:
        raise ValidationError("Invalid priority")

    result = conn.execute(insert(support_tickets).values(
        user_id=user_id, subject=subject[:200], category=category or "general",
        priority=priority, status="open", updated_at=utcnow(),
    ))
    ticket_id = result.inserted_primary_key[0]
    conn.execute(insert(support_messages).values(
        ticket_id=ticket_id, user_id=user_id, message=message, is_staff=False,
    ))
    logger.info("User %s mở ticket %s", user_id, ticket_id)
    return ticket_id


def add_message(conn, ticket_id, user_id, message, is_staff=False):
    message = str(message or "").strip()
    if not message:
        raise ValidationError("Message is required")
    ticket = _get_ticket(conn, ticket_id, None if is_staff else user_id, for_update=True)
    if ticket["status"] == "closed":
        raise ValidationError("Ticket is closed")

    result = conn.execute(insert(support_messages).values(
        ticket_id=ticket["id"], user_id=user_id, message=message, is_staff=is_staff,
    ))
    # Nhân viên trả lời -> chờ khách; khách trả lời -> mở lại
    new_status = "pending" if is_staff else "open"
    conn.execute(
        update(support_tickets).where(support_tickets.c.id == ticket["id"])
        .values(status=new_status, updated_at=utcnow())
    )
    return result.inserted_primary_key[0]


def set_ticket_status(conn, ticket_id, status):
    status = str(status or "").lower()
    if status not in TICKET_STATUSES:
        raise ValidationError("Invalid status")
    _get_ticket(conn, ticket_id, for_update=True)
    conn.execute(
        update(support_tickets).where(support_tickets.c.id == ticket_id)
        .values(status=status, updated_at=utcnow())
    )


def list_tickets(conn, user_id=None, status=None):
    query = (
        select(support_tickets, users.c.email)
        .join(users, users.c.id == support_tickets.c.user_id)
        .order_by(support_tickets.c.updated_at.desc(), support_tickets.c.id.desc())
    )
    if user_id is not None:
        query = query.where(support_tickets.c.user_id == user_id)
    if status:
        query = query.where(support_tickets.c.status == status)
    return [dict(r) for r in conn.execute(query).mappings()]


def get_ticket(conn, ticket_id, user_id=None):
    ticket = _get_ticket(conn, ticket_id, user_id)
    messages = conn.execute(
        select(support_messages)
        .where(support_messages.c.ticket_id == ticket["id"])
        .order_by(support_messages.c.id)
    ).mappings()
    ticket["messages"] = [dict(m) for m in messages]
    return ticket


# --- KNOWLEDGE BASE ---

def slugify(title):
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "article"


def create_article(conn, title, content, category="general", is_published=True):
    title = str(title or "").strip()
    if not title or not str(content or "").strip():
        raise ValidationError("Title and content are required")
    base = slugify(title)[:180]
    slug = base
    n = 1
    while conn.execute(select(kb_articles.c.id).where(kb_articles.c.slug == slug)).first():
        n += 1
        slug = f"{base}-{n}"
    result = conn.execute(insert(kb_articles).values(
        title=title, slug=slug, category=category or "general", content=content, is_published=bool(is_published),
    ))
    return {"id": result.inserted_primary_key[0], "slug": slug}


def list_articles(conn, category=None):
    query = (
        select(kb_articles.c.id, kb_articles.c.title, kb_articles.c.slug, kb_articles.c.category, kb_articles.c.created_at)
        .where(kb_articles.c.is_published.is_(True))
        .order_by(kb_articles.c.title)
    )
    if category:
        query = query.where(kb_articles.c.category == category)
    return [dict(r) for r in conn.execute(query).mappings()]


def get_article(conn, slug):
    row = conn.execute(
        select(kb_articles).where(kb_articles.c.slug == slug).where(kb_articles.c.is_published.is_(True))
    ).mappings().first()
    if not row:
        raise NotFound("Article not found")
    return dict(row)
