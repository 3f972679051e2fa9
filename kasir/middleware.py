"""Middleware for request actor context."""
import uuid
from flask import g, request, current_app

ACTOR_HEADER = 'X-User-ID'


def load_actor():
    """
    Load the acting user id into g (Flask's per-request global).

    Called before each request. Sets g.actor_id to the UUID from the
    X-User-ID header, or None when it is absent or malformed; the order
    engine treats a missing actor as recoverable.
    """
    g.actor_id = None

    raw = request.headers.get(ACTOR_HEADER, '').strip()
    if not raw:
        return

    try:
        g.actor_id = uuid.UUID(raw)
    except ValueError:
        current_app.logger.warning(f"Ignoring malformed {ACTOR_HEADER} header: {raw!r}")


def get_actor_id():
    return g.get('actor_id')
