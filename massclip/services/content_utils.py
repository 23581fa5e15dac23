"""Normalization helpers for bundle and purchase content items."""

import math
import re

FILE_EXTENSIONS = {
    'video/mp4': 'mp4',
    'video/webm': 'webm',
    'video/quicktime': 'mov',
    'audio/mpeg': 'mp3',
    'audio/wav': 'wav',
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'application/pdf': 'pdf',
}

SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB']
MEDIA_SUFFIX_RE = re.compile(r'\.(mp4|mov|avi|mkv|webm|m4v|mp3|wav|jpg|jpeg|png|gif|pdf)$', re.IGNORECASE)
VIDEO_URL_MARKERS = ('.mp4', '.mov', '.avi', '.mkv', '.webm')
AUDIO_URL_MARKERS = ('.mp3', '.wav')
IMAGE_URL_MARKERS = ('.jpg', '.jpeg', '.png', '.gif')


def as_number(value, default=0):
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def format_file_size(size_bytes):
    size_bytes = as_number(size_bytes)
    if size_bytes <= 0:
        return '0 Bytes'
    index = min(int(math.floor(math.log(size_bytes, 1024))), len(SIZE_UNITS) - 1)
    value = round(size_bytes / (1024 ** index), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {SIZE_UNITS[index]}"


def format_duration(seconds):
    total = int(as_number(seconds))
    return f"{total // 60}:{total % 60:02d}"


def file_extension_for(mime_type):
    return FILE_EXTENSIONS.get(str(mime_type or ''), 'file')


def detect_content_type(mime_type, url=''):
    mime_type = str(mime_type or '')
    if mime_type.startswith('video/'):
        return 'video'
    if mime_type.startswith('audio/'):
        return 'audio'
    if mime_type.startswith('image/'):
        return 'image'
    lowered = str(url or '').lower()
    if any(marker in lowered for marker in VIDEO_URL_MARKERS):
        return 'video'
    if any(marker in lowered for marker in AUDIO_URL_MARKERS):
        return 'audio'
    if any(marker in lowered for marker in IMAGE_URL_MARKERS):
        return 'image'
    return 'document'


def _valid_url(url):
    return isinstance(url, str) and url.startswith('http')


def normalize_content_item(item_id, data, source=''):
    """Return the display-ready shape of a stored content item, or None without a usable URL."""
    data = data or {}
    file_url = data.get('fileUrl') or data.get('publicUrl') or data.get('downloadUrl') or ''
    if not _valid_url(file_url):
        return None

    mime_type = data.get('mimeType') or data.get('fileType') or 'application/octet-stream'
    raw_title = (
        data.get('title') or data.get('filename') or data.get('originalFileName')
        or data.get('name') or f"Content Item {str(item_id)[-6:]}"
    )
    display_title = MEDIA_SUFFIX_RE.sub('', raw_title)
    file_size = data.get('fileSize') or data.get('size') or 0
    duration = data.get('duration') or data.get('videoDuration') or None
    resolution = data.get('resolution') or (f"{data['height']}p" if data.get('height') else None)

    return {
        'id': item_id,
        'title': display_title,
        'fileUrl': file_url,
        'mimeType': mime_type,
        'fileSize': file_size,
        'thumbnailUrl': data.get('thumbnailUrl') or data.get('previewUrl') or '',
        'contentType': detect_content_type(mime_type, file_url),
        'duration': duration,
        'filename': data.get('filename') or data.get('originalFileName') or f"{display_title}.{file_extension_for(mime_type)}",
        'displayTitle': display_title,
        'displaySize': format_file_size(file_size),
        'displayResolution': resolution,
        'displayDuration': format_duration(duration) if duration else None,
        'description': data.get('description') or None,
        'tags': data.get('tags') or [],
        'category': data.get('category') or None,
        'uploadedAt': data.get('uploadedAt') or data.get('createdAt'),
        'creatorId': data.get('creatorId') or data.get('userId') or None,
        'isPublic': data.get('isPublic') is not False,
        'source': source or None,
    }


def normalize_bundle_item(item_id, data):
    """A bundle document that is itself a single downloadable file."""
    data = data or {}
    file_url = data.get('downloadUrl') or data.get('fileUrl') or ''
    if not _valid_url(file_url):
        return None

    file_type = data.get('fileType') or data.get('mimeType') or 'application/octet-stream'
    lowered_type = file_type.lower()
    lowered_url = file_url.lower()
    if 'video' in lowered_type or '.mp4' in lowered_url:
        content_type = 'video'
    elif 'audio' in lowered_type or '.mp3' in lowered_url:
        content_type = 'audio'
    elif 'image' in lowered_type or '.jpg' in lowered_url:
        content_type = 'image'
    else:
        content_type = 'document'

    display_title = data.get('title') or f"Bundle {str(item_id)[-6:]}"
    file_size = data.get('fileSize') or data.get('size') or 0
    duration = data.get('duration') or None
    return {
        'id': item_id,
        'title': display_title,
        'fileUrl': file_url,
        'mimeType': file_type,
        'fileSize': file_size,
        'thumbnailUrl': data.get('thumbnailUrl') or '',
        'contentType': content_type,
        'duration': duration,
        'filename': data.get('filename') or f"{display_title}.{file_extension_for(file_type)}",
        'displayTitle': display_title,
        'displaySize': format_file_size(file_size),
        'displayDuration': format_duration(duration) if duration else None,
        'description': data.get('description') or None,
        'tags': data.get('tags') or [],
        'category': data.get('category') or None,
        'uploadedAt': data.get('createdAt'),
        'creatorId': data.get('creatorId') or None,
        'isPublic': data.get('isPublic') is not False,
    }


def to_api_item(item_id, data):
    """Shape served by the bundle content endpoint."""
    data = data or {}
    mime_type = data.get('mimeType') or data.get('contentType') or 'application/octet-stream'
    title = data.get('title') or data.get('filename') or 'Untitled'
    duration = data.get('duration')
    return {
        'id': item_id or data.get('id') or data.get('contentId'),
        'title': title,
        'displayTitle': data.get('displayTitle') or title,
        'fileUrl': data.get('fileUrl') or data.get('downloadUrl') or data.get('url'),
        'mimeType': mime_type,
        'fileSize': data.get('fileSize') or 0,
        'displaySize': format_file_size(data.get('fileSize') or 0),
        'thumbnailUrl': data.get('thumbnailUrl') or data.get('previewUrl'),
        'contentType': detect_content_type(mime_type),
        'duration': duration,
        'displayDuration': format_duration(duration) if duration else None,
        'filename': data.get('filename') or title or 'download',
        'description': data.get('description') or '',
        'displayResolution': data.get('resolution') or data.get('dimensions'),
    }


def summarize_content(items):
    """Aggregate size, duration, formats and type counts for a bundle's items."""
    total_size = 0
    total_duration = 0
    formats = set()
    qualities = set()
    breakdown = {'videos': 0, 'audios': 0, 'images': 0, 'documents': 0}
    for item in items:
        total_size += as_number(item.get('fileSize'))
        total_duration += as_number(item.get('duration'))
        mime_type = item.get('mimeType') or ''
        fmt = item.get('format') or (mime_type.split('/', 1)[1] if '/' in mime_type else '')
        if fmt:
            formats.add(fmt)
        if item.get('quality'):
            qualities.add(item['quality'])
        content_type = item.get('contentType') or detect_content_type(mime_type, item.get('fileUrl', ''))
        key = {'video': 'videos', 'audio': 'audios', 'image': 'images'}.get(content_type, 'documents')
        breakdown[key] += 1
    return {
        'totalItems': len(items),
        'totalSize': total_size,
        'totalSizeFormatted': format_file_size(total_size),
        'totalDuration': total_duration,
        'totalDurationFormatted': format_duration(total_duration),
        'formats': sorted(formats),
        'qualities': sorted(qualities),
        'contentBreakdown': breakdown,
    }


def clean_for_firestore(value):
    if isinstance(value, dict):
        return {k: clean_for_firestore(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [clean_for_firestore(v) for v in value if v is not None]
    return value


def json_safe(value):
    """Timestamps become ISO strings; Firestore sentinels and other opaque values are dropped."""
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return None
