from datetime import datetime, timezone

import pytest

from massclip.errors import UsageRecordNotFound
from massclip.services import usage_service

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def _seed_free_user(db, uid='u1', **fields):
    doc = {
        'uid': uid,
        'downloadsUsed': 0,
        'bundlesCreated': 0,
        'downloadsLimit': 15,
        'bundlesLimit': 2,
        'maxVideosPerBundle': 10,
        'lastResetDate': datetime(2026, 3, 1, 1, 0, tzinfo=timezone.utc),
    }
    doc.update(fields)
    db.seed(f'freeUsers/{uid}', doc)


def test_days_until_reset_rounds_up_to_first_of_next_month():
    assert usage_service.days_until_reset(NOW) == 18
    assert usage_service.next_month_start(datetime(2026, 12, 5, tzinfo=timezone.utc)) == datetime(2027, 1, 1, tzinfo=timezone.utc)


def test_ensure_free_user_is_idempotent(db):
    usage_service.ensure_free_user(db, 'u1', 'u1@example.com', now=NOW)
    db.store['freeUsers/u1']['downloadsUsed'] = 4
    record = usage_service.ensure_free_user(db, 'u1', 'u1@example.com', now=NOW)
    assert record['downloadsUsed'] == 4
    assert record['hasLimitedOrganization'] is True
    assert record['currentPeriodStart'] == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_monthly_reset_zeroes_downloads_from_previous_month(db):
    _seed_free_user(db, downloadsUsed=9, lastResetDate=datetime(2026, 2, 20, tzinfo=timezone.utc))
    record = usage_service.check_and_reset_monthly_limits(db, 'u1', now=NOW)
    assert record['downloadsUsed'] == 0


def test_monthly_reset_requires_record(db):
    with pytest.raises(UsageRecordNotFound):
        usage_service.check_and_reset_monthly_limits(db, 'missing', now=NOW)


def test_increment_downloads_stops_at_record_limit(db):
    _seed_free_user(db, downloadsUsed=4, downloadsLimit=5)
    assert usage_service.increment_downloads(db, 'u1', now=NOW) == (True, '')
    allowed, reason = usage_service.increment_downloads(db, 'u1', now=NOW)
    assert allowed is False
    assert reason == 'Monthly download limit reached (5 downloads)'
    assert db.data('freeUsers/u1')['downloadsUsed'] == 5


def test_bundle_counter_increments_and_never_goes_negative(db):
    _seed_free_user(db, bundlesCreated=1)
    assert usage_service.increment_bundles(db, 'u1') == (True, '')
    assert usage_service.increment_bundles(db, 'u1') == (False, 'Bundle limit reached (2 bundles max)')
    assert usage_service.decrement_bundles(db, 'u1') == 1
    assert usage_service.decrement_bundles(db, 'u1') == 0
    assert usage_service.decrement_bundles(db, 'u1') == 0


def test_get_limits_reports_reached_flags(db):
    _seed_free_user(db, downloadsUsed=15, bundlesCreated=1)
    limits = usage_service.get_limits(db, 'u1', now=NOW)
    assert limits['reachedDownloadLimit'] is True
    assert limits['reachedBundleLimit'] is False
    assert limits['daysUntilReset'] == 18


def test_record_download_for_pro_only_bumps_membership_counter(db):
    db.seed('memberships/pro1', {
        'plan': 'creator_pro',
        'status': 'active',
        'isActive': True,
        'features': {'unlimitedDownloads': True},
    })
    assert usage_service.record_download(db, 'pro1') == (True, '')
    assert db.data('memberships/pro1')['downloadsUsed'] == 1
    assert db.data('freeUsers/pro1') is None


def test_record_download_for_free_user_creates_record_and_counts(db):
    assert usage_service.record_download(db, 'new-user', email='n@example.com') == (True, '')
    assert db.data('freeUsers/new-user')['downloadsUsed'] == 1


def test_record_download_keeps_legacy_creator_pro_on_pro(db):
    from massclip.services import membership_service

    db.seed('creatorProUsers/p1', {'subscriptionStatus': 'active', 'subscriptionId': 'sub_legacy'})

    assert usage_service.record_download(db, 'p1') == (True, '')
    assert usage_service.record_download(db, 'p1') == (True, '')

    membership = membership_service.get_effective_membership(db, 'p1')
    assert membership['plan'] == 'creator_pro'
    assert membership_service.is_pro(membership) is True
    assert membership['downloadsUsed'] == 2
    assert membership['stripeSubscriptionId'] == 'sub_legacy'
    assert db.data('freeUsers/p1') is None


def test_membership_doc_without_plan_falls_back_to_legacy_record(db):
    from massclip.services import membership_service

    db.seed('memberships/p1', {'downloadsUsed': 4})
    db.seed('creatorProUsers/p1', {'subscriptionStatus': 'active'})

    assert membership_service.get_effective_membership(db, 'p1')['plan'] == 'creator_pro'


def test_bundle_slot_purchase_applies_slots_once(db):
    _seed_free_user(db)
    usage_service.create_bundle_slot_purchase(db, 'u1', 'u1@example.com', '3_bundle', 'cs_slots_1')
    assert db.data('bundleSlotPurchases/cs_slots_1')['status'] == 'pending'

    assert usage_service.complete_bundle_slot_purchase(db, 'cs_slots_1', 'pi_1') is True
    assert usage_service.complete_bundle_slot_purchase(db, 'cs_slots_1', 'pi_1') is False

    assert db.data('freeUsers/u1')['bundlesLimit'] == 5
    slots = db.data('userBundleSlots/u1')
    assert slots['totalPurchasedSlots'] == 3
    assert slots['purchases'] == ['cs_slots_1']


def test_concurrent_slot_completion_grants_slots_once(db, monkeypatch):
    from massclip.repositories import usage_repo

    _seed_free_user(db)
    usage_service.create_bundle_slot_purchase(db, 'u1', 'u1@example.com', '3_bundle', 'cs_slots_1')
    pending = usage_repo.find_slot_purchase_by_session(db, 'cs_slots_1')
    monkeypatch.setattr(usage_repo, 'find_slot_purchase_by_session', lambda db_, session_id: pending)

    assert usage_service.complete_bundle_slot_purchase(db, 'cs_slots_1', 'pi_1') is True
    assert usage_service.complete_bundle_slot_purchase(db, 'cs_slots_1', 'pi_1') is False

    assert db.transactions == 2
    assert db.data('freeUsers/u1')['bundlesLimit'] == 5
    assert db.data('userBundleSlots/u1')['totalPurchasedSlots'] == 3


def test_video_cap_per_bundle_comes_from_free_record(db):
    _seed_free_user(db, maxVideosPerBundle=2)
    assert usage_service.can_add_video_to_bundle(db, 'u1', 1) == (True, '')
    assert usage_service.can_add_video_to_bundle(db, 'u1', 2) == (False, 'Video limit reached (2 videos per bundle max)')
    with pytest.raises(UsageRecordNotFound):
        usage_service.can_add_video_to_bundle(db, 'ghost', 0)


def test_apply_bundle_slots_creates_missing_records(db):
    usage_service.apply_bundle_slots(db, 'fresh', 1, 'manual-grant', email='f@example.com')
    usage_service.apply_bundle_slots(db, 'fresh', 5, 'support-credit')

    assert db.data('freeUsers/fresh')['bundlesLimit'] == 8
    slots = db.data('userBundleSlots/fresh')
    assert slots['totalPurchasedSlots'] == 6
    assert slots['availableSlots'] == 6
    assert slots['purchases'] == ['manual-grant', 'support-credit']


def test_unknown_slot_tier_is_rejected(db):
    with pytest.raises(ValueError):
        usage_service.create_bundle_slot_purchase(db, 'u1', '', 'gold', 'cs_x')
