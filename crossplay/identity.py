"""Who is calling: a logged-in user, or a guest with a session-scoped id."""

import uuid

from flask import session
from flask_login import current_user

from crossplay.services.rooms import Player


def current_player(display_name=None) -> Player:
    if current_user.is_authenticated:
        return Player(id=current_user.player_id, display_name=current_user.display_name)

    guest_id = session.get('guest_id')
    if not guest_id:
        guest_id = f"guest-{uuid.uuid4().hex}"
        session['guest_id'] = guest_id
    if display_name:
        session['guest_name'] = display_name[:64]
    name = session.get('guest_name') or f"Guest_{guest_id[6:14]}"
    return Player(id=guest_id, display_name=name)
