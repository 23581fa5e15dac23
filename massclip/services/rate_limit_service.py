"""Request throttling for checkout and other abuse-prone endpoints.

Counters live in Firestore as one document per (key, window) so every worker
shares the same budget. When Firestore is disabled or errors out, a per-process
sliding window takes over.
"""

import hashlib
import re

from massclip.repositories import rate_limit_repo

_KEY_PART_RE = re.compile(r'[^A-Za-z0-9_.:@-]')


def normalize_key_part(value, fallback='anon', max_len=120):
    cleaned = _KEY_PART_RE.sub('_', str(value or '').strip())[:max_len]
    return cleaned or fallback


def window_counter_id(key, window_seconds, window_start):
    digest_source = f"{key}|{window_seconds}|{int(window_start)}"
    return hashlib.sha256(digest_source.encode('utf-8')).hexdigest()


def _fixed_window(now_ts, window_seconds):
    window_seconds = int(window_seconds)
    start = int(now_ts // window_seconds) * window_seconds
    return start, max(1, int(start + window_seconds - now_ts))


def _counter_document(key, count, window_start, window_seconds, now_ts):
    return {
        'key': key,
        'count': count,
        'window_start': window_start,
        'window_seconds': int(window_seconds),
        'updated_at': now_ts,
        # Firestore TTL policy sweeps on this field.
        'expires_at': window_start + int(window_seconds) * 3,
    }


def check_rate_limit_firestore(
    key,
    limit,
    window_seconds,
    now_ts,
    *,
    firestore_enabled,
    db,
    firestore_module,
    counter_collection,
):
    """Return ``(allowed, retry_after)`` or None when Firestore cannot answer."""
    if not firestore_enabled or db is None:
        return None
    window_start, retry_after = _fixed_window(now_ts, window_seconds)
    try:
        counter_ref = rate_limit_repo.counter_doc_ref(
            db, counter_collection, window_counter_id(key, window_seconds, window_start)
        )

        @firestore_module.transactional
        def _consume(txn):
            snapshot = counter_ref.get(transaction=txn)
            used = int((snapshot.to_dict() or {}).get('count', 0) or 0) if snapshot.exists else 0
            if used >= limit:
                return False, retry_after
            txn.set(counter_ref, _counter_document(key, used + 1, window_start, window_seconds, now_ts), merge=True)
            return True, 0

        return _consume(db.transaction())
    except Exception:
        return None


def check_sliding_window(key, limit, window_seconds, now_ts, *, events, lock):
    with lock:
        recent = [ts for ts in events.get(key, []) if ts >= now_ts - window_seconds]
        allowed = len(recent) < limit
        if allowed:
            recent.append(now_ts)
        events[key] = recent
    if allowed:
        return True, 0
    return False, max(1, int(recent[0] + window_seconds - now_ts))


def check_rate_limit(
    key,
    limit,
    window_seconds,
    *,
    firestore_enabled,
    db,
    firestore_module,
    counter_collection,
    in_memory_events,
    in_memory_lock,
    time_module,
):
    now_ts = time_module.time()
    shared = check_rate_limit_firestore(
        key,
        limit,
        window_seconds,
        now_ts,
        firestore_enabled=firestore_enabled,
        db=db,
        firestore_module=firestore_module,
        counter_collection=counter_collection,
    )
    if shared is not None:
        return shared
    return check_sliding_window(key, limit, window_seconds, now_ts, events=in_memory_events, lock=in_memory_lock)
