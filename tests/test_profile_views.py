from datetime import datetime, timedelta, timezone

from massclip.services import profile_view_service

NOW = datetime(2026, 5, 20, 15, 0, tzinfo=timezone.utc)


def _track(db, viewer='viewer-1', ip='10.0.0.1', session_id=None, now=NOW):
    return profile_view_service.track_profile_view(db, 'creator-1', viewer, ip, 'pytest-agent', session_id=session_id, now=now)


def test_session_id_is_short_and_deterministic():
    first = profile_view_service.generate_session_id('10.0.0.1', 'agent', now=NOW)
    assert len(first) == 16
    assert first == profile_view_service.generate_session_id('10.0.0.1', 'agent', now=NOW)


def test_track_view_updates_counters_and_writes_view_record(db):
    db.seed('users/creator-1', {'profileViews': 4})

    result = _track(db, session_id='sess-a')

    assert result == {'success': True, 'message': 'Profile view tracked successfully', 'viewCount': 5}
    assert db.data('users/creator-1')['profileViews'] == 5
    assert db.data('users/creator-1')['lastProfileView'] == NOW
    views = [db.data(path) for path in db.paths('profile_views')]
    assert len(views) == 1
    assert views[0]['viewerId'] == 'viewer-1'
    assert views[0]['sessionId'] == 'sess-a'
    assert db.data('profile_view_stats/creator-1_2026-05-20')['viewCount'] == 1
    assert db.data('view_rate_limits/creator-1_10.0.0.1')['viewCount'] == 1


def test_self_views_and_missing_profile_id_are_rejected(db):
    db.seed('users/creator-1', {'profileViews': 0})
    assert _track(db, viewer='creator-1')['message'] == 'Self-views are not tracked'
    assert profile_view_service.track_profile_view(db, '', 'v', '1.1.1.1', 'ua')['message'] == 'Profile user ID is required'
    assert db.data('users/creator-1')['profileViews'] == 0


def test_unknown_profile_leaves_no_writes(db):
    result = _track(db, session_id='sess-a')
    assert result == {'success': False, 'message': 'Profile user not found'}
    assert db.paths('profile_views') == []


def test_same_session_is_deduplicated_for_thirty_minutes(db):
    db.seed('users/creator-1', {'profileViews': 0})
    assert _track(db, session_id='sess-a')['success'] is True
    assert _track(db, session_id='sess-a', now=NOW + timedelta(minutes=10))['message'] == 'Duplicate view within session'
    assert _track(db, session_id='sess-a', now=NOW + timedelta(minutes=31))['success'] is True
    assert db.data('users/creator-1')['profileViews'] == 2


def test_ip_window_allows_three_views_per_minute(db):
    db.seed('users/creator-1', {'profileViews': 0})
    for index in range(3):
        assert _track(db, session_id=f"sess-{index}", now=NOW + timedelta(seconds=index))['success'] is True
    assert _track(db, session_id='sess-4', now=NOW + timedelta(seconds=5))['message'] == 'Rate limit exceeded'

    later = _track(db, session_id='sess-5', now=NOW + timedelta(seconds=90))
    assert later['success'] is True
    limit_doc = db.data('view_rate_limits/creator-1_10.0.0.1')
    assert limit_doc['viewCount'] == 1
    assert limit_doc['windowStart'] == NOW + timedelta(seconds=90)


def test_window_is_enforced_when_the_counter_fills_after_the_precheck(db, monkeypatch):
    db.seed('users/creator-1', {'profileViews': 7})
    db.seed('view_rate_limits/creator-1_10.0.0.1', {'viewCount': 3, 'windowStart': NOW - timedelta(seconds=10)})
    monkeypatch.setattr(profile_view_service, 'check_view_rate_limit', lambda *args, **kwargs: True)

    assert _track(db, session_id='sess-late')['message'] == 'Rate limit exceeded'
    assert db.data('users/creator-1')['profileViews'] == 7
    assert db.paths('profile_views') == []
    assert db.data('view_rate_limits/creator-1_10.0.0.1')['viewCount'] == 3


def test_stats_aggregate_daily_buckets_and_unique_viewers(db):
    db.seed('users/creator-1', {'profileViews': 9, 'lastProfileView': NOW})
    db.seed('profile_view_stats/creator-1_2026-05-20', {'profileUserId': 'creator-1', 'date': '2026-05-20', 'viewCount': 2})
    db.seed('profile_view_stats/creator-1_2026-05-16', {'profileUserId': 'creator-1', 'date': '2026-05-16', 'viewCount': 3})
    db.seed('profile_view_stats/creator-1_2026-04-25', {'profileUserId': 'creator-1', 'date': '2026-04-25', 'viewCount': 4})
    db.seed('profile_view_stats/creator-1_2026-03-01', {'profileUserId': 'creator-1', 'date': '2026-03-01', 'viewCount': 50})
    db.seed('profile_views/v1', {'profileUserId': 'creator-1', 'viewerId': 'a', 'sessionId': 's1'})
    db.seed('profile_views/v2', {'profileUserId': 'creator-1', 'viewerId': 'a', 'sessionId': 's2'})
    db.seed('profile_views/v3', {'profileUserId': 'creator-1', 'viewerId': None, 'sessionId': 's3'})

    stats = profile_view_service.get_profile_view_stats(db, 'creator-1', now=NOW)

    assert stats == {
        'totalViews': 9,
        'uniqueViews': 2,
        'todayViews': 2,
        'weekViews': 5,
        'monthViews': 9,
        'lastViewAt': NOW.isoformat(),
    }


def test_stats_for_unknown_user_are_zero(db):
    assert profile_view_service.get_profile_view_stats(db, 'ghost') == profile_view_service.empty_stats()


def test_repair_sets_counter_to_number_of_view_records(db):
    db.seed('users/creator-1', {'profileViews': 40})
    db.seed('profile_views/v1', {'profileUserId': 'creator-1', 'sessionId': 's1'})

    result = profile_view_service.verify_and_repair_view_count(db, 'creator-1')

    assert result == {'success': True, 'originalCount': 40, 'actualCount': 1, 'repaired': True}
    assert db.data('users/creator-1')['profileViews'] == 1


def test_track_endpoint_maps_outcomes_to_status_codes(client, db):
    db.seed('users/creator-1', {'profileViews': 0})

    ok = client.post('/api/profile-views/track', json={'profileUserId': 'creator-1', 'sessionId': 'web-1'})
    assert ok.status_code == 200
    assert ok.get_json()['viewCount'] == 1

    dup = client.post('/api/profile-views/track', json={'profileUserId': 'creator-1', 'sessionId': 'web-1'})
    assert dup.status_code == 200
    assert dup.get_json()['success'] is False

    missing = client.post('/api/profile-views/track', json={})
    assert missing.status_code == 400

    unknown = client.post('/api/profile-views/track', json={'profileUserId': 'nobody', 'sessionId': 'web-2'})
    assert unknown.status_code == 404


def test_admin_reset_requires_admin(client, db, sign_in):
    db.seed('users/creator-1', {'profileViews': 12})

    sign_in('user-1', 'user1@example.com')
    assert client.post('/api/admin/profile-views/creator-1/reset').status_code == 403

    sign_in('admin-1', 'admin@massclip.test')
    response = client.post('/api/admin/profile-views/creator-1/reset')
    assert response.status_code == 200
    assert db.data('users/creator-1')['profileViews'] == 0
    assert db.data('users/creator-1')['lastProfileView'] is None
