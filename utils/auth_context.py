from functools import wraps
from flask import g, jsonify
from security.session import get_session_from_request
from models import db
from models.user import User


def load_current_user():
    g.user = None
    g.session = None

    sess = get_session_from_request()
    if not sess:
        return
    user = db.session.get(User, sess.user_id)
    if user is None or user.status != "active":
        return
    g.session = sess
    g.user = user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
