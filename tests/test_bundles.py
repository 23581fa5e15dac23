from massclip.services import bundle_service

from tests.fakes import StripeObject


def _connect_creator(db, uid='creator-1', **overrides):
    account = {'stripe_user_id': 'acct_c1', 'connected': True, 'charges_enabled': True, 'details_submitted': True}
    account.update(overrides)
    db.seed(f'connectedStripeAccounts/{uid}', account)


def _seed_upload(db, upload_id, uid='creator-1', title='Clip'):
    db.seed(f'uploads/{upload_id}', {
        'uid': uid,
        'title': title,
        'fileUrl': f'https://media.massclip.test/{upload_id}.mp4',
        'publicUrl': f'https://media.massclip.test/{upload_id}.mp4',
        'mimeType': 'video/mp4',
        'fileSize': 2048,
        'duration': 75,
        'type': 'video',
    })


def _create(client, **payload):
    body = {'title': 'Sunset Pack', 'description': 'Golden hour clips', 'price': '19.99', 'uploadIds': ['up1']}
    body.update(payload)
    return client.post('/api/creator/bundles', json=body)


def test_create_bundle_requires_fields_and_connected_account(client, db, sign_in):
    sign_in('creator-1', 'c1@example.com')
    _seed_upload(db, 'up1')

    missing = _create(client, description='')
    assert missing.status_code == 400

    no_account = _create(client)
    assert no_account.get_json()['code'] == 'NO_STRIPE_ACCOUNT'

    _connect_creator(db, details_submitted=False)
    assert _create(client).get_json()['code'] == 'STRIPE_ACCOUNT_INCOMPLETE'


def test_create_bundle_creates_stripe_catalog_and_counts_usage(client, db, sign_in, fake_stripe):
    sign_in('creator-1', 'c1@example.com')
    _connect_creator(db)
    _seed_upload(db, 'up1', title='Sunset')
    _seed_upload(db, 'up2', uid='someone-else')
    fake_stripe.handlers['Product.create'] = StripeObject(id='prod_1')
    fake_stripe.handlers['Price.create'] = StripeObject(id='price_1')

    response = _create(client, uploadIds=['up1', 'up2'])

    assert response.status_code == 201
    bundle_id = response.get_json()['bundleId']
    stored = db.data(f'bundles/{bundle_id}')
    assert stored['stripeProductId'] == 'prod_1'
    assert stored['stripePriceId'] == 'price_1'
    assert stored['price'] == 19.99
    assert stored['contentItems'] == ['up1']
    assert stored['contentTitles'] == ['Sunset']
    assert stored['contentMetadata']['totalDurationFormatted'] == '1:15'
    assert fake_stripe.called('Price.create')[0][2]['unit_amount'] == 1999
    assert fake_stripe.called('Product.create')[0][2]['stripe_account'] == 'acct_c1'
    assert db.data('freeUsers/creator-1')['bundlesCreated'] == 1


def test_free_creator_bundle_limit(client, db, sign_in):
    sign_in('creator-1', 'c1@example.com')
    _connect_creator(db)
    _seed_upload(db, 'up1')
    db.seed('freeUsers/creator-1', {'uid': 'creator-1', 'bundlesCreated': 2, 'bundlesLimit': 2})

    response = _create(client)

    assert response.status_code == 403
    assert response.get_json()['code'] == 'BUNDLE_LIMIT_REACHED'


def test_free_creator_video_cap_per_bundle(client, db, sign_in, fake_stripe):
    sign_in('creator-1', 'c1@example.com')
    _connect_creator(db)
    _seed_upload(db, 'up1')
    _seed_upload(db, 'up2')
    db.seed('freeUsers/creator-1', {'uid': 'creator-1', 'bundlesCreated': 0, 'bundlesLimit': 2, 'maxVideosPerBundle': 1})

    response = _create(client, uploadIds=['up1', 'up2'])

    assert response.status_code == 403
    assert response.get_json()['code'] == 'CONTENT_LIMIT_REACHED'
    assert response.get_json()['error'] == 'Video limit reached (1 videos per bundle max)'
    assert fake_stripe.called('Product.create') == []

    db.seed('bundles/b1', {'creatorId': 'creator-1', 'active': True, 'detailedContentItems': []})
    body = client.post('/api/creator/bundles/b1/add-content', json={'uploadIds': ['up1', 'up2']}).get_json()
    assert body['added'] == ['up1']
    assert body['skipped'] == [{'id': 'up2', 'reason': 'limit_reached'}]


def test_pro_creator_is_not_capped_per_bundle(db):
    db.seed('memberships/creator-1', {'uid': 'creator-1', 'plan': 'creator_pro', 'status': 'active', 'isActive': True})
    db.seed('freeUsers/creator-1', {'uid': 'creator-1', 'maxVideosPerBundle': 1})
    db.seed('bundles/b1', {'creatorId': 'creator-1', 'active': True, 'detailedContentItems': []})
    _seed_upload(db, 'up1')
    _seed_upload(db, 'up2')

    added, skipped = bundle_service.add_content(db, 'creator-1', 'b1', ['up1', 'up2'])

    assert added == ['up1', 'up2']
    assert skipped == []


def test_price_change_creates_new_price_and_archives_old(ctx, db, fake_stripe):
    db.seed('bundles/b1', {
        'creatorId': 'creator-1', 'price': 10.0, 'stripeProductId': 'prod_1',
        'stripePriceId': 'price_old', 'stripeAccountId': 'acct_c1', 'currency': 'usd',
    })
    fake_stripe.handlers['Price.create'] = StripeObject(id='price_new')

    updated = bundle_service.update_bundle(ctx, 'creator-1', 'b1', {'price': '12.5', 'active': False})

    assert updated['stripePriceId'] == 'price_new'
    assert updated['status'] == 'inactive'
    archive = fake_stripe.called('Price.modify')[0]
    assert archive[1] == ('price_old',)
    assert archive[2]['active'] is False


def test_update_and_delete_are_owner_only(client, db, sign_in):
    db.seed('bundles/b1', {'creatorId': 'creator-1', 'title': 'Mine', 'active': True})
    db.seed('freeUsers/creator-1', {'uid': 'creator-1', 'bundlesCreated': 1, 'bundlesLimit': 2})

    sign_in('intruder', 'i@example.com')
    assert client.patch('/api/creator/bundles/b1', json={'title': 'Stolen'}).status_code == 403
    assert client.get('/api/creator/bundles/b1').status_code == 403
    assert client.delete('/api/creator/bundles/b1').status_code == 403

    sign_in('creator-1', 'c1@example.com')
    assert client.patch('/api/creator/bundles/b1', json={'nothing': 1}).status_code == 400
    assert client.delete('/api/creator/bundles/b1').get_json() == {'success': True, 'alreadyDeleted': False}
    assert client.delete('/api/creator/bundles/b1').get_json()['alreadyDeleted'] is True
    assert db.data('bundles/b1')['status'] == 'deleted'
    assert db.data('freeUsers/creator-1')['bundlesCreated'] == 0
    assert client.get('/api/creator/bundles').get_json()['count'] == 0
    assert client.get('/api/bundles/b1').status_code == 404


def test_add_and_remove_content(client, db, sign_in):
    db.seed('bundles/b1', {'creatorId': 'creator-1', 'active': True, 'detailedContentItems': []})
    _seed_upload(db, 'up1')
    _seed_upload(db, 'foreign', uid='someone-else')
    sign_in('creator-1', 'c1@example.com')

    assert client.post('/api/creator/bundles/b1/add-content', json={'uploadIds': []}).status_code == 400
    body = client.post('/api/creator/bundles/b1/add-content', json={'uploadIds': ['up1', 'up1', 'foreign', 'ghost']}).get_json()

    assert body['added'] == ['up1']
    assert [entry['reason'] for entry in body['skipped']] == ['already_in_bundle', 'not_owner', 'not_found']
    assert db.data('bundles/b1')['contentItems'] == ['up1']

    assert client.delete('/api/creator/bundles/b1/content/ghost').status_code == 404
    assert client.delete('/api/creator/bundles/b1/content/up1').get_json() == {'success': True, 'remainingCount': 0}
    assert db.data('bundles/b1')['contentItems'] == []


def test_public_bundle_card(client, db):
    db.seed('bundles/b1', {
        'creatorId': 'creator-1', 'title': 'Sunset Pack', 'price': 19.99, 'active': True,
        'contentItems': ['a', 'b'], 'contentTitles': ['A', 'B'],
    })
    card = client.get('/api/bundles/b1').get_json()['bundle']
    assert card['contentCount'] == 2
    assert card['price'] == 19.99
    assert 'detailedContentItems' not in card


def test_legacy_content_layouts_are_resolved(db):
    zipped = bundle_service.resolve_bundle_contents(db, 'b1', {
        'contentItems': ['x'], 'contentUrls': ['https://media.massclip.test/x.mp4'],
    })
    assert zipped[0]['title'] == 'Content 1'
    assert zipped[0]['downloadUrl'] == 'https://media.massclip.test/x.mp4'

    assert bundle_service.resolve_bundle_contents(db, 'b1', {'videos': [{'id': 'v'}]}) == [{'id': 'v'}]

    db.seed('bundleContent/bc1', {'bundleId': 'b2', 'title': 'Legacy'})
    assert bundle_service.resolve_bundle_contents(db, 'b2', {})[0]['id'] == 'bc1'
