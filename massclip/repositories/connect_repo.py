"""Firestore accessors for Stripe Connect state."""

from .query_utils import apply_where


def account_ref(db, uid):
    return db.collection('connectedStripeAccounts').document(uid)


def find_by_account_id(db, account_id):
    return list(apply_where(db.collection('connectedStripeAccounts'), 'stripe_user_id', '==', account_id).limit(1).stream())


def oauth_state_ref(db, state):
    return db.collection('stripe_oauth_states').document(state)
