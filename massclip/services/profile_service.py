"""User profiles, usernames and public creator pages."""

import logging
import re
import time

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists

from massclip.errors import ApiError, NotFound
from massclip.repositories import users_repo
from massclip.services import bundle_service, usage_service

logger = logging.getLogger('massclip')

USERNAME_RE = re.compile(r'^[a-z0-9_]{3,30}$')
RESERVED_USERNAMES = {'admin', 'api', 'dashboard', 'creator', 'login', 'signup', 'support', 'massclip'}
EDITABLE_FIELDS = ('displayName', 'bio', 'profilePic')
MAX_BIO_LENGTH = 500
MAX_DISPLAY_NAME_LENGTH = 80
USERNAME_CLAIM_ATTEMPTS = 3


def validate_username(username):
    """Return an error message for an unusable username, or ''."""
    username = str(username or '')
    if not USERNAME_RE.match(username):
        return 'Username must be 3-30 characters: lowercase letters, numbers and underscores only'
    if username in RESERVED_USERNAMES:
        return 'This username is reserved'
    return ''


def is_username_available(db, username):
    username = str(username or '').lower()
    if users_repo.find_by_username(db, username) is not None:
        return False
    return not users_repo.username_ref(db, username).get().exists


def base_username(email, display_name=None):
    source = display_name if display_name else str(email or '').split('@')[0]
    base = re.sub(r'[^a-z0-9]', '', str(source or '').lower())
    if len(base) < 3:
        base = 'user' + base
    return base[:30]


def generate_unique_username(db, email, display_name=None):
    base = base_username(email, display_name)
    username = base
    counter = 1
    while not is_username_available(db, username) or username in RESERVED_USERNAMES:
        if counter > 999:
            return f"user{int(time.time() * 1000)}"
        suffix = str(counter)
        username = f"{base[:30 - len(suffix)]}{suffix}"
        counter += 1
    return username


def get_profile(db, uid):
    snapshot = users_repo.get_doc(db, uid)
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def _creator_card(uid, username, display_name, bio, profile_pic):
    return {
        'uid': uid,
        'username': username,
        'displayName': display_name,
        'bio': bio or '',
        'profilePic': profile_pic,
        'totalVideos': 0,
        'totalDownloads': 0,
        'totalEarnings': 0,
        'isVerified': False,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }


def _reservation(uid):
    return {'uid': uid, 'createdAt': firestore.SERVER_TIMESTAMP}


def _complete_existing_profile(db, uid, email, existing, display_name, photo_url):
    """Fill in a profile that already owns a username instead of minting a second one."""
    username = existing['username']
    reservation_ref = users_repo.username_ref(db, username)
    reservation = reservation_ref.get()
    if reservation.exists and (reservation.to_dict() or {}).get('uid', uid) != uid:
        raise ApiError('Username is already taken', status=409)
    card_ref = users_repo.creator_ref(db, username)
    card_snapshot = card_ref.get()

    name = display_name or username
    profile_pic = existing.get('profilePic') or photo_url or None
    batch = db.batch()
    batch.set(users_repo.doc_ref(db, uid), {
        'uid': uid,
        'email': existing.get('email') or email or '',
        'displayName': name,
        'profilePic': profile_pic,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }, merge=True)
    if not reservation.exists:
        batch.create(reservation_ref, _reservation(uid))
    if card_snapshot.exists:
        batch.set(card_ref, {'displayName': name, 'updatedAt': firestore.SERVER_TIMESTAMP}, merge=True)
    else:
        batch.set(card_ref, _creator_card(uid, username, name, existing.get('bio'), profile_pic))
    try:
        batch.commit()
    except AlreadyExists:
        raise ApiError('Username is already taken', status=409)
    logger.info(f"✅ Completed profile @{username} for {uid[:8]}...")

    usage_service.ensure_free_user(db, uid, email)
    return get_profile(db, uid)


def setup_complete_profile(db, uid, email, display_name=None, photo_url=None):
    """Create the user, username reservation and creator card once. Returns ``(profile, created)``."""
    existing = get_profile(db, uid) or {}
    if existing.get('username') and existing.get('displayName'):
        usage_service.ensure_free_user(db, uid, email)
        return existing, False
    if existing.get('username'):
        return _complete_existing_profile(db, uid, email, existing, display_name, photo_url), True

    for _ in range(USERNAME_CLAIM_ATTEMPTS):
        username = generate_unique_username(db, email, display_name)
        profile = {
            'uid': uid,
            'email': email or '',
            'username': username,
            'displayName': display_name or username,
            'bio': '',
            'profilePic': photo_url or None,
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }
        batch = db.batch()
        batch.set(users_repo.doc_ref(db, uid), profile, merge=True)
        batch.create(users_repo.username_ref(db, username), _reservation(uid))
        batch.set(users_repo.creator_ref(db, username), _creator_card(uid, username, profile['displayName'], '', profile['profilePic']))
        try:
            batch.commit()
        except AlreadyExists:
            logger.warning(f"⚠️ Username @{username} was claimed by another account, picking another")
            continue
        logger.info(f"✅ Created profile @{username} for {uid[:8]}...")

        usage_service.ensure_free_user(db, uid, email)
        return get_profile(db, uid) or profile, True
    raise ApiError('Could not reserve a username, please try again', status=409)


def update_profile(db, uid, fields):
    profile = get_profile(db, uid)
    if profile is None:
        raise NotFound('Profile not found')

    updates = {}
    for key in EDITABLE_FIELDS:
        if key in fields:
            updates[key] = str(fields.get(key) or '').strip() or None
    if updates.get('displayName') and len(updates['displayName']) > MAX_DISPLAY_NAME_LENGTH:
        raise ApiError(f"Display name must be at most {MAX_DISPLAY_NAME_LENGTH} characters")
    if 'bio' in updates:
        updates['bio'] = updates['bio'] or ''
        if len(updates['bio']) > MAX_BIO_LENGTH:
            raise ApiError(f"Bio must be at most {MAX_BIO_LENGTH} characters")

    old_username = profile.get('username', '')
    new_username = str(fields.get('username') or '').strip().lower() if 'username' in fields else old_username
    username_changed = bool(new_username) and new_username != old_username
    if username_changed:
        error = validate_username(new_username)
        if error:
            raise ApiError(error)
        if not is_username_available(db, new_username):
            raise ApiError('Username is already taken', status=409)
        updates['username'] = new_username

    if not updates:
        raise ApiError('No valid fields to update')
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP

    batch = db.batch()
    batch.update(users_repo.doc_ref(db, uid), updates)
    merged = dict(profile)
    merged.update(updates)
    creator_fields = {
        'displayName': merged.get('displayName') or new_username,
        'bio': merged.get('bio') or '',
        'profilePic': merged.get('profilePic'),
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    if username_changed:
        if old_username:
            batch.delete(users_repo.username_ref(db, old_username))
            old_card = users_repo.creator_ref(db, old_username).get()
            card = (old_card.to_dict() or {}) if old_card.exists else _creator_card(uid, new_username, '', '', None)
            batch.delete(users_repo.creator_ref(db, old_username))
        else:
            card = _creator_card(uid, new_username, '', '', None)
        card.update(creator_fields)
        card['username'] = new_username
        batch.create(users_repo.username_ref(db, new_username), _reservation(uid))
        batch.set(users_repo.creator_ref(db, new_username), card)
    elif old_username:
        batch.set(users_repo.creator_ref(db, old_username), creator_fields, merge=True)
    try:
        batch.commit()
    except AlreadyExists:
        raise ApiError('Username is already taken', status=409)
    return get_profile(db, uid)


def get_public_creator(db, username):
    username = str(username or '').strip().lower()
    user_doc = users_repo.find_by_username(db, username)
    if user_doc is None:
        raise NotFound('Creator not found')
    user = user_doc.to_dict() or {}
    card_snapshot = users_repo.creator_ref(db, username).get()
    card = (card_snapshot.to_dict() or {}) if card_snapshot.exists else {}

    bundles = [
        bundle_service.public_bundle_card(bundle)
        for bundle in bundle_service.list_public_bundles_for_creator(db, user_doc.id)
    ]

    return {
        'uid': user_doc.id,
        'username': username,
        'displayName': user.get('displayName') or card.get('displayName') or username,
        'bio': user.get('bio') or card.get('bio') or '',
        'profilePic': user.get('profilePic') or card.get('profilePic'),
        'profileViews': int(user.get('profileViews', 0) or 0),
        'totalVideos': int(card.get('totalVideos', 0) or 0),
        'totalDownloads': int(card.get('totalDownloads', 0) or 0),
        'isVerified': bool(card.get('isVerified', False)),
        'bundles': bundles,
    }
