"""In-app notifications, plus the sale email sent to creators."""

import logging

from firebase_admin import firestore

from massclip.errors import Forbidden, NotFound
from massclip.repositories import notifications_repo, users_repo
from massclip.repositories.query_utils import sort_key_for, to_datetime
from massclip.services import email_service

logger = logging.getLogger('massclip')

NOTIFICATION_TYPES = {'purchase', 'download', 'system'}


def create_notification(db, user_id, notification_type, title, message, data=None):
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    _, ref = notifications_repo.add_doc(db, {
        'userId': user_id,
        'type': notification_type,
        'title': title,
        'message': message,
        'data': data or {},
        'read': False,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    return ref.id


def serialize(doc):
    data = doc.to_dict() or {}
    created_at = to_datetime(data.get('createdAt'))
    return {
        'id': doc.id,
        'type': data.get('type', 'system'),
        'title': data.get('title', ''),
        'message': data.get('message', ''),
        'data': data.get('data') or {},
        'read': bool(data.get('read', False)),
        'createdAt': created_at.isoformat() if created_at else None,
    }


def list_notifications(db, uid, limit=20):
    docs = notifications_repo.list_by_user(db, uid)
    docs.sort(key=lambda doc: sort_key_for('createdAt')(doc.to_dict()), reverse=True)
    return [serialize(doc) for doc in docs[:max(1, int(limit))]]


def unread_count(db, uid):
    return len(notifications_repo.list_unread(db, uid))


def mark_as_read(db, uid, notification_id):
    ref = notifications_repo.doc_ref(db, notification_id)
    snapshot = ref.get()
    if not snapshot.exists:
        raise NotFound('Notification not found')
    if (snapshot.to_dict() or {}).get('userId') != uid:
        raise Forbidden('Forbidden')
    ref.update({'read': True, 'updatedAt': firestore.SERVER_TIMESTAMP})


def mark_all_as_read(db, uid):
    unread = notifications_repo.list_unread(db, uid)
    if not unread:
        return 0
    batch = db.batch()
    for doc in unread:
        batch.update(doc.reference, {'read': True, 'updatedAt': firestore.SERVER_TIMESTAMP})
    batch.commit()
    return len(unread)


def notify_creator_of_sale(app_ctx, creator_id, bundle_title, buyer_name, amount, currency='usd'):
    db = app_ctx.db
    notification_id = create_notification(
        db,
        creator_id,
        'purchase',
        'New sale! 🎉',
        f"{buyer_name} purchased \"{bundle_title}\" for ${amount:.2f}",
        data={'bundleTitle': bundle_title, 'buyerName': buyer_name, 'amount': amount, 'currency': currency},
    )

    creator_snapshot = users_repo.get_doc(db, creator_id)
    creator = (creator_snapshot.to_dict() or {}) if creator_snapshot.exists else {}
    creator_email = creator.get('email', '')
    if creator_email and app_ctx.config.resend_api_key:
        html = email_service.render_sale_notification(
            creator.get('displayName') or creator.get('username') or 'creator',
            bundle_title,
            buyer_name,
            amount,
            currency,
        )
        ok, detail = app_ctx.send_email(creator_email, f"You sold {bundle_title}!", html)
        if not ok:
            logger.warning(f"⚠️ Sale email to creator {creator_id[:8]}... failed: {detail}")
    return notification_id
