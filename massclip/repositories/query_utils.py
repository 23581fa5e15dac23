"""Shared Firestore query helpers.

Uses keyword-based filters to avoid positional-argument warnings in newer
Firestore SDK versions. Falls back to positional style for simple test doubles
that do not support keyword filters.
"""

from datetime import datetime, timezone

from google.cloud.firestore_v1.base_query import FieldFilter


def apply_where(query, field_path, op_string, value):
    try:
        return query.where(filter=FieldFilter(field_path, op_string, value))
    except TypeError:
        return query.where(field_path, op_string, value)


def first_doc(query):
    for doc in query.limit(1).stream():
        return doc
    return None


def to_datetime(value):
    """Firestore timestamp, datetime, epoch ms/s or ISO string to an aware datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if hasattr(value, 'to_datetime'):
        return to_datetime(value.to_datetime())
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return to_datetime(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            return None
    return None


def sort_key_for(field_name):
    epoch = datetime.fromtimestamp(0, tz=timezone.utc)

    def _key(item):
        return to_datetime((item or {}).get(field_name)) or epoch

    return _key
