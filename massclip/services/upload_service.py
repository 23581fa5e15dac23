"""Creator uploads: presigned R2 PUTs and the ``uploads`` records that follow them."""

import logging

from firebase_admin import firestore

from massclip.errors import ApiError, Forbidden, NotFound
from massclip.repositories import uploads_repo
from massclip.repositories.query_utils import sort_key_for
from massclip.services import bundle_service, content_utils, storage_service

logger = logging.getLogger('massclip')

MB = 1024 * 1024

ALLOWED_FILE_TYPES = {
    'application/pdf': {'category': 'document', 'maxSize': 50 * MB},
    'application/msword': {'category': 'document', 'maxSize': 25 * MB},
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': {'category': 'document', 'maxSize': 25 * MB},
    'text/plain': {'category': 'document', 'maxSize': 10 * MB},
    'image/jpeg': {'category': 'image', 'maxSize': 10 * MB},
    'image/png': {'category': 'image', 'maxSize': 10 * MB},
    'image/gif': {'category': 'image', 'maxSize': 10 * MB},
    'image/webp': {'category': 'image', 'maxSize': 10 * MB},
    'video/mp4': {'category': 'video', 'maxSize': 500 * MB},
    'video/quicktime': {'category': 'video', 'maxSize': 500 * MB},
    'video/x-msvideo': {'category': 'video', 'maxSize': 500 * MB},
    'video/webm': {'category': 'video', 'maxSize': 500 * MB},
    'audio/mpeg': {'category': 'audio', 'maxSize': 50 * MB},
    'audio/wav': {'category': 'audio', 'maxSize': 50 * MB},
    'audio/mp4': {'category': 'audio', 'maxSize': 50 * MB},
    'audio/ogg': {'category': 'audio', 'maxSize': 50 * MB},
}
EDITABLE_FIELDS = ('title', 'folderId', 'tags')
PRESIGN_EXPIRES_IN = 3600


def validate_file(file_type, file_size):
    file_config = ALLOWED_FILE_TYPES.get(str(file_type or '').lower())
    if not file_config:
        raise ApiError('Unsupported file type', extra={'supportedTypes': sorted(ALLOWED_FILE_TYPES)})
    size = content_utils.as_number(file_size, default=-1)
    if size <= 0:
        raise ApiError('Invalid file size')
    if size > file_config['maxSize']:
        raise ApiError('File too large', extra={'maxSize': file_config['maxSize'], 'actualSize': size})
    return file_config


def _require_owned_product_box(db, uid, product_box_id):
    bundle = bundle_service.get_bundle(db, product_box_id)
    if bundle is None:
        raise NotFound('Product box not found')
    if bundle.get('creatorId') != uid:
        raise Forbidden('Access denied')
    return bundle


def _key_prefixes(uid, product_box_id=None):
    prefixes = [f"uploads/{uid}/"]
    if product_box_id:
        prefixes.append(f"product-boxes/{product_box_id}/")
    return tuple(prefixes)


def key_belongs_to(key, uid, product_box_id=None):
    """True when ``key`` sits under the caller's upload prefix or the given product box prefix."""
    key = str(key or '')
    return '..' not in key and key.startswith(_key_prefixes(uid, product_box_id))


def request_upload(app_ctx, uid, file_name, file_type, file_size, product_box_id=None):
    if not str(file_name or '').strip():
        raise ApiError('Missing fileName')
    file_config = validate_file(file_type, file_size)

    if product_box_id:
        _require_owned_product_box(app_ctx.db, uid, product_box_id)
        prefix, owner = 'product-boxes', product_box_id
    else:
        prefix, owner = 'uploads', uid

    key = storage_service.build_object_key(prefix, owner, file_config['category'], file_name)
    config = app_ctx.config
    upload_url = storage_service.create_presigned_upload(
        app_ctx.get_storage_client(),
        bucket=config.r2_bucket,
        key=key,
        content_type=str(file_type).lower(),
        expires_in=PRESIGN_EXPIRES_IN,
    )
    logger.info(f"📁 Presigned {file_config['category']} upload for {uid[:8]}...: {key}")
    return {
        'uploadUrl': upload_url,
        'key': key,
        'publicUrl': storage_service.public_url_for(key, public_base=config.r2_public_url, bucket=config.r2_bucket),
        'expiresIn': PRESIGN_EXPIRES_IN,
        'category': file_config['category'],
    }


def serialize_upload(upload_id, data):
    item = dict(data)
    item['id'] = upload_id
    for field_name in ('createdAt', 'updatedAt'):
        value = item.get(field_name)
        if hasattr(value, 'isoformat'):
            item[field_name] = value.isoformat()
    return item


def register_upload(db, uid, payload):
    file_url = str(payload.get('fileUrl') or payload.get('publicUrl') or '').strip()
    if not file_url.startswith('http'):
        raise ApiError('A valid fileUrl is required')
    mime_type = str(payload.get('mimeType') or payload.get('fileType') or 'application/octet-stream').lower()
    filename = str(payload.get('filename') or payload.get('fileName') or '').strip() or file_url.rsplit('/', 1)[-1]
    product_box_id = str(payload.get('productBoxId') or '').strip() or None
    if product_box_id:
        _require_owned_product_box(db, uid, product_box_id)
    r2_key = str(payload.get('key') or payload.get('r2Key') or '').strip() or None
    if r2_key and not key_belongs_to(r2_key, uid, product_box_id):
        raise Forbidden('Storage key does not belong to this account')
    record = {
        'uid': uid,
        'title': str(payload.get('title') or '').strip() or content_utils.MEDIA_SUFFIX_RE.sub('', filename),
        'filename': filename,
        'fileUrl': file_url,
        'publicUrl': str(payload.get('publicUrl') or file_url),
        'r2Key': r2_key,
        'mimeType': mime_type,
        'type': content_utils.detect_content_type(mime_type, file_url),
        'fileSize': content_utils.as_number(payload.get('fileSize')),
        'folderId': payload.get('folderId') or None,
        'duration': payload.get('duration'),
        'thumbnailUrl': payload.get('thumbnailUrl'),
        'productBoxId': product_box_id,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    record = content_utils.clean_for_firestore(record)
    _, doc_ref = uploads_repo.add_doc(db, record)
    logger.info(f"✅ Registered upload {doc_ref.id} for {uid[:8]}...")
    return doc_ref.id, record


def list_uploads(db, uid, upload_type=None, search=None, folder_id=None, folder=None):
    uploads = [serialize_upload(doc.id, doc.to_dict() or {}) for doc in uploads_repo.list_by_uid(db, uid)]

    if folder == 'main':
        uploads = [item for item in uploads if not item.get('folderId')]
    elif folder_id and folder_id != 'root':
        uploads = [item for item in uploads if item.get('folderId') == folder_id]

    if upload_type:
        uploads = [item for item in uploads if item.get('type') == upload_type]
    if search:
        needle = search.lower()
        uploads = [
            item for item in uploads
            if needle in str(item.get('title', '')).lower() or needle in str(item.get('filename', '')).lower()
        ]

    uploads.sort(key=sort_key_for('createdAt'), reverse=True)
    return uploads


def _owned_upload(db, uid, upload_id):
    snapshot = uploads_repo.get_doc(db, upload_id)
    if not snapshot.exists:
        raise NotFound('Upload not found')
    data = snapshot.to_dict() or {}
    if data.get('uid') != uid:
        raise Forbidden('Access denied')
    return data


def get_upload(db, uid, upload_id):
    return serialize_upload(upload_id, _owned_upload(db, uid, upload_id))


def update_upload(db, uid, upload_id, fields):
    data = _owned_upload(db, uid, upload_id)
    updates = {}
    if 'title' in fields:
        title = str(fields.get('title') or '').strip()
        if not title:
            raise ApiError('Title cannot be empty')
        updates['title'] = title[:200]
    if 'folderId' in fields:
        updates['folderId'] = fields.get('folderId') or None
    if 'tags' in fields:
        tags = fields.get('tags') or []
        if not isinstance(tags, list):
            raise ApiError('Tags must be a list')
        updates['tags'] = [str(tag).strip() for tag in tags if str(tag).strip()]
    if not updates:
        raise ApiError('No valid fields to update')

    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    uploads_repo.doc_ref(db, upload_id).update(updates)
    data.update(updates)
    return serialize_upload(upload_id, data)


def delete_upload(app_ctx, uid, upload_id):
    db = app_ctx.db
    data = _owned_upload(db, uid, upload_id)
    key = data.get('r2Key')
    product_box_id = data.get('productBoxId')
    if key and product_box_id and (bundle_service.get_bundle(db, product_box_id) or {}).get('creatorId') != uid:
        product_box_id = None
    if key and not key_belongs_to(key, uid, product_box_id):
        logger.warning(f"⚠️ Upload {upload_id} points at foreign key {key}; leaving the object in place")
    elif key:
        try:
            storage_service.delete_object(app_ctx.get_storage_client(), bucket=app_ctx.config.r2_bucket, key=key)
        except Exception as e:
            logger.warning(f"⚠️ Could not delete R2 object {key}: {e}")
    uploads_repo.doc_ref(db, upload_id).delete()
    logger.info(f"🗑️ Deleted upload {upload_id}")
    return True
