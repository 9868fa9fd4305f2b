"""
Phiên đăng nhập lưu trong CSDL (bảng ``sessions``).

Cookie chỉ chứa session id ngẫu nhiên; dữ liệu phiên nằm ở server và được đọc
lại ở mỗi request.
"""
import json
import logging
import secrets
from flask.sessions import SessionInterface, SessionMixin
from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import CallbackDict

from models.schema import sessions
from utils.security import utcnow

logger = logging.getLogger(__name__)


class DatabaseSessionStore:
    """Key-value store: get / set / destroy theo session id"""

    def __init__(self, engine):
        self.engine = engine

    def get(self, sid):
        with self.engine.connect() as conn:
            row = conn.execute(
                select(sessions.c.data, sessions.c.expires_at).where(sessions.c.session_id == sid)
            ).first()
        if row is None or row.expires_at <= utcnow():
            return None
        try:
            return json.loads(row.data)
        except ValueError:
            logger.warning("Dữ liệu phiên hỏng, bỏ qua")
            return None

    def set(self, sid, data, expires_at):
        payload = json.dumps(data)
        with self.engine.begin() as conn:
            result = conn.execute(
                update(sessions).where(sessions.c.session_id == sid)
                .values(data=payload, expires_at=expires_at)
            )
            if result.rowcount:
                return
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(sessions).values(session_id=sid, data=payload, expires_at=expires_at))
        except IntegrityError:
            # Request song song vừa tạo cùng sid
            with self.engine.begin() as conn:
                conn.execute(
                    update(sessions).where(sessions.c.session_id == sid)
                    .values(data=payload, expires_at=expires_at)
                )

    def destroy(self, sid):
        with self.engine.begin() as conn:
            conn.execute(delete(sessions).where(sessions.c.session_id == sid))

    def purge_expired(self):
        with self.engine.begin() as conn:
            result = conn.execute(delete(sessions).where(sessions.c.expires_at <= utcnow()))
        return result.rowcount


class ServerSession(CallbackDict, SessionMixin):
    def __init__(self, initial=None, sid=None, new=False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False
        self.old_sid = None

    def regenerate(self):
        # Đổi session id khi đăng nhập (chống session fixation)
        self.old_sid = self.sid
        self.sid = secrets.token_urlsafe(32)
        self.modified = True


class DatabaseSessionInterface(SessionInterface):
    session_class = ServerSession

    def __init__(self, store):
        self.store = store

    def open_session(self, app, request):
        sid = request.cookies.get(self.get_cookie_name(app))
        if sid:
            data = self.store.get(sid)
            if data is not None:
                return self.session_class(data, sid=sid)
        return self.session_class(sid=secrets.token_urlsafe(32), new=True)

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if session.old_sid:
            self.store.destroy(session.old_sid)
            session.old_sid = None

        if not session:
            if session.modified:
                self.store.destroy(session.sid)
                response.delete_cookie(name, domain=domain, path=path)
            return

        if not self.should_set_cookie(app, session):
            return

        expires = self.get_expiration_time(app, session)
        stored_until = utcnow() + app.permanent_session_lifetime
        self.store.set(session.sid, dict(session), stored_until)
        response.set_cookie(
            name,
            session.sid,
            expires=expires,
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )
