import pytest

from massclip.errors import ApiError, NotFound
from massclip.services import profile_service


@pytest.mark.parametrize('username, ok', [
    ('creator_1', True),
    ('ab', False),
    ('Has-Caps', False),
    ('admin', False),
    ('x' * 31, False),
])
def test_validate_username(username, ok):
    assert (profile_service.validate_username(username) == '') is ok


def test_generated_usernames_skip_taken_and_reserved(db):
    db.seed('users/other', {'username': 'janedoe'})
    assert profile_service.generate_unique_username(db, 'jane@example.com', 'Jane Doe') == 'janedoe1'
    assert profile_service.generate_unique_username(db, 'support@example.com') == 'support1'
    assert profile_service.generate_unique_username(db, 'a@example.com') == 'usera'


def test_username_change_moves_reservation_and_creator_card(db):
    profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')
    db.store['creators/jane']['totalVideos'] = 7

    updated = profile_service.update_profile(db, 'u1', {'username': 'Jane_Clips', 'bio': 'Filmmaker'})

    assert updated['username'] == 'jane_clips'
    assert db.data('usernames/jane') is None
    assert db.data('creators/jane') is None
    assert db.data('usernames/jane_clips')['uid'] == 'u1'
    card = db.data('creators/jane_clips')
    assert card['totalVideos'] == 7
    assert card['bio'] == 'Filmmaker'


def test_update_profile_rejections(db):
    with pytest.raises(NotFound):
        profile_service.update_profile(db, 'ghost', {'bio': 'x'})

    profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')
    profile_service.setup_complete_profile(db, 'u2', 'bob@example.com', 'Bob')

    with pytest.raises(ApiError) as taken:
        profile_service.update_profile(db, 'u1', {'username': 'bob'})
    assert taken.value.status == 409
    with pytest.raises(ApiError):
        profile_service.update_profile(db, 'u1', {'bio': 'x' * 501})
    with pytest.raises(ApiError):
        profile_service.update_profile(db, 'u1', {'unknown': 'field'})


def test_setup_picks_another_username_when_reservation_is_taken_concurrently(db, monkeypatch):
    db.seed('usernames/jane', {'uid': 'other'})
    real_check = profile_service.is_username_available
    stale = {'jane'}

    def check_before_other_signup_commits(db_, username):
        if username in stale:
            stale.discard(username)
            return True
        return real_check(db_, username)

    monkeypatch.setattr(profile_service, 'is_username_available', check_before_other_signup_commits)

    profile, created = profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')

    assert created is True
    assert profile['username'] == 'jane1'
    assert db.data('usernames/jane') == {'uid': 'other'}
    assert db.data('usernames/jane1')['uid'] == 'u1'
    assert db.data('creators/jane') is None


def test_rename_conflicting_with_concurrent_claim_is_rejected(db, monkeypatch):
    profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')
    db.seed('usernames/bob', {'uid': 'u2'})
    monkeypatch.setattr(profile_service, 'is_username_available', lambda db_, username: True)

    with pytest.raises(ApiError) as taken:
        profile_service.update_profile(db, 'u1', {'username': 'bob', 'bio': 'new'})

    assert taken.value.status == 409
    assert db.data('usernames/bob') == {'uid': 'u2'}
    assert db.data('usernames/jane')['uid'] == 'u1'
    assert db.data('users/u1')['username'] == 'jane'
    assert db.data('users/u1')['bio'] == ''


def test_setup_keeps_existing_username_when_display_name_is_missing(db):
    db.seed('users/u1', {'uid': 'u1', 'username': 'oldname', 'displayName': '', 'email': 'jane@example.com'})
    db.seed('usernames/oldname', {'uid': 'u1'})
    db.seed('users/u2', {'uid': 'u2', 'username': 'bobby'})

    profile, created = profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')
    assert created is True
    assert profile['username'] == 'oldname'
    assert profile['displayName'] == 'Jane'
    assert db.data('creators/oldname')['displayName'] == 'Jane'

    profile, _ = profile_service.setup_complete_profile(db, 'u2', 'bob@example.com')
    assert profile['displayName'] == 'bobby'
    assert db.data('usernames/bobby')['uid'] == 'u2'

    assert db.paths('usernames') == ['usernames/bobby', 'usernames/oldname']
    assert db.paths('creators') == ['creators/bobby', 'creators/oldname']


def test_public_creator_lists_only_active_bundles(db):
    profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')
    db.seed('bundles/live', {'creatorId': 'u1', 'title': 'Live', 'active': True, 'price': 5})
    db.seed('bundles/off', {'creatorId': 'u1', 'title': 'Off', 'active': False})

    creator = profile_service.get_public_creator(db, 'JANE')

    assert creator['uid'] == 'u1'
    assert [bundle['title'] for bundle in creator['bundles']] == ['Live']
    with pytest.raises(NotFound):
        profile_service.get_public_creator(db, 'nobody')


def test_profile_endpoints(client, db, sign_in):
    profile_service.setup_complete_profile(db, 'u1', 'jane@example.com', 'Jane')

    assert client.get('/api/profile/username-available?username=jane').get_json() == {'available': False}
    assert client.get('/api/profile/username-available?username=fresh_name').get_json() == {'available': True}
    assert client.get('/api/profile/username-available?username=no').get_json()['available'] is False

    assert client.get('/api/creators/jane').get_json()['creator']['displayName'] == 'Jane'
    assert client.get('/api/creators/nobody').status_code == 404

    assert client.patch('/api/profile', json={'bio': 'hi'}).status_code == 401
    sign_in('u1', 'jane@example.com')
    assert client.patch('/api/profile', json={'displayName': 'Jane D'}).get_json()['profile']['displayName'] == 'Jane D'
