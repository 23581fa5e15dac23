"""Creator earnings: sales rollups from purchase records plus the Stripe balance."""

import logging
from datetime import datetime, timedelta, timezone

from massclip.repositories import purchases_repo
from massclip.repositories.query_utils import to_datetime
from massclip.services import content_utils

logger = logging.getLogger('massclip')

TOP_BUNDLES_LIMIT = 5
BREAKDOWN_MONTHS = 6


def _month_key(value):
    return f"{value.year:04d}-{value.month:02d}"


def _previous_months(now, count):
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def get_sales_summary(db, creator_id, now=None):
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    thirty_days_ago = now - timedelta(days=30)
    month_keys = _previous_months(now, BREAKDOWN_MONTHS)
    monthly = {key: {'month': key, 'revenue': 0.0, 'sales': 0} for key in month_keys}

    total_sales = 0
    total_revenue = this_month = last_30_days = 0.0
    by_bundle = {}

    for doc in purchases_repo.list_bundle_purchases_by_creator(db, creator_id):
        data = doc.to_dict() or {}
        if data.get('status', 'completed') != 'completed':
            continue
        amount = float(content_utils.as_number(data.get('amount') or data.get('price')))
        purchased_at = to_datetime(data.get('purchasedAt') or data.get('createdAt'))
        total_sales += 1
        total_revenue += amount

        if purchased_at is not None:
            if purchased_at >= month_start:
                this_month += amount
            if purchased_at >= thirty_days_ago:
                last_30_days += amount
            bucket = monthly.get(_month_key(purchased_at))
            if bucket is not None:
                bucket['revenue'] += amount
                bucket['sales'] += 1

        bundle_id = data.get('bundleId') or data.get('productBoxId') or data.get('itemId') or 'unknown'
        entry = by_bundle.setdefault(bundle_id, {
            'bundleId': bundle_id,
            'title': data.get('productBoxTitle') or data.get('bundleTitle') or 'Untitled',
            'sales': 0,
            'revenue': 0.0,
        })
        entry['sales'] += 1
        entry['revenue'] += amount

    top_bundles = sorted(by_bundle.values(), key=lambda entry: entry['revenue'], reverse=True)[:TOP_BUNDLES_LIMIT]
    for entry in top_bundles:
        entry['revenue'] = round(entry['revenue'], 2)
    breakdown = [dict(monthly[key], revenue=round(monthly[key]['revenue'], 2)) for key in month_keys]

    return {
        'totalSales': total_sales,
        'totalRevenue': round(total_revenue, 2),
        'thisMonthRevenue': round(this_month, 2),
        'last30DaysRevenue': round(last_30_days, 2),
        'averageOrderValue': round(total_revenue / total_sales, 2) if total_sales else 0,
        'topBundles': top_bundles,
        'monthlyBreakdown': breakdown,
    }


def _balance_entries(entries):
    return [
        {'amount': (entry.get('amount') or 0) / 100.0, 'currency': str(entry.get('currency') or 'usd').upper()}
        for entry in entries or []
    ]


def get_stripe_balance(app_ctx, account_id):
    if not account_id:
        return None
    stripe = app_ctx.stripe
    try:
        account = stripe.Account.retrieve(account_id)
    except stripe.error.StripeError as e:
        logger.warning(f"⚠️ Could not retrieve Stripe account {account_id}: {e}")
        return None
    if not (account.get('charges_enabled') and account.get('details_submitted')):
        return None

    try:
        balance = stripe.Balance.retrieve(stripe_account=account_id)
    except stripe.error.StripeError as e:
        logger.warning(f"⚠️ Could not retrieve balance for {account_id}: {e}")
        return None

    available = _balance_entries(balance.get('available'))
    pending = _balance_entries(balance.get('pending'))
    return {
        'accountId': account_id,
        'chargesEnabled': bool(account.get('charges_enabled')),
        'payoutsEnabled': bool(account.get('payouts_enabled')),
        'available': available,
        'pending': pending,
        'availableTotal': round(sum(entry['amount'] for entry in available), 2),
        'pendingTotal': round(sum(entry['amount'] for entry in pending), 2),
    }
