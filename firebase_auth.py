from flask import session, jsonify, current_app, g
from functools import wraps
import logging

import requests
from firebase_admin import auth as firebase_auth

SIGN_IN_CANCELLED_CODES = ('auth/popup-closed-by-user', 'auth/cancelled-popup-request')
UNAUTHORIZED_DOMAIN_CODE = 'auth/unauthorized-domain'


class IdentityError(Exception):
    """An ID token could not be verified"""


class FirebaseIdentityProvider:
    """Verify Firebase ID tokens with the Admin SDK"""

    def __init__(self, app=None, check_revoked=False):
        self.app = app
        self.check_revoked = check_revoked

    def verify(self, id_token):
        try:
            claims = firebase_auth.verify_id_token(id_token, app=self.app, check_revoked=self.check_revoked)
        except (firebase_auth.InvalidIdTokenError, firebase_auth.CertificateFetchError, ValueError) as e:
            raise IdentityError(str(e)) from e
        return {
            'uid': claims['uid'],
            'email': claims.get('email', ''),
            'name': claims.get('name', ''),
            'picture': claims.get('picture', ''),
        }


class IdentityToolkitProvider:
    """Verify ID tokens through the Identity Toolkit REST API"""

    LOOKUP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:lookup"

    def __init__(self, api_key, timeout=10):
        self.api_key = api_key
        self.timeout = timeout

    def verify(self, id_token):
        if not id_token:
            raise IdentityError('Missing ID token.')
        try:
            response = requests.post(self.LOOKUP_URL, params={'key': self.api_key},
                                     json={'idToken': id_token}, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityError(f"Identity service unreachable: {e}") from e
        if response.status_code != 200:
            logging.warning(f"Identity Toolkit lookup failed: {response.text}")
            raise IdentityError('The ID token was rejected.')
        users = response.json().get('users') or []
        if not users:
            raise IdentityError('No account matches this ID token.')
        account = users[0]
        return {
            'uid': account['localId'],
            'email': account.get('email', ''),
            'name': account.get('displayName', ''),
            'picture': account.get('photoUrl', ''),
        }


def describe_sign_in_error(code, message=None, hostname=None):
    """Classify a sign-in failure reported by the browser SDK.

    Returns None when the user simply closed the popup, otherwise the message
    to show.
    """
    if code in SIGN_IN_CANCELLED_CODES:
        return None
    if code == UNAUTHORIZED_DOMAIN_CODE:
        host = hostname or 'this host'
        return (
            "Domain Authentication Error:\n\n"
            f"The domain \"{host}\" is not authorized for Google Sign-In.\n\n"
            "1. Go to the Firebase Console (https://console.firebase.google.com)\n"
            "2. Select your project\n"
            "3. Go to Authentication > Settings > Authorized Domains\n"
            f"4. Add \"{host}\" to the list."
        )
    return f"Login failed: {message or code or 'unknown error'}"


def get_services():
    """The collaborators wired into this app by create_app"""
    return current_app.extensions['audoc']


def get_current_user():
    """Profile of the signed-in user, or None"""
    uid = session.get('user_id')
    if not uid:
        return None
    profile = get_services().users.get_profile(uid)
    if not profile:
        return None
    return profile


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'error': 'Please sign in to access this page.'}), 401
        return f(*args, **kwargs)
    return decorated_function


def engagement_access_required(write=False):
    """Gate a route taking engagement_id on the caller's team access.

    The decision is stored on g.access for the view.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(engagement_id, *args, **kwargs):
            if 'user_id' not in session:
                return jsonify({'error': 'Please sign in to access this page.'}), 401
            services = get_services()
            owner_id = services.engagements.get_owner(engagement_id)
            if owner_id is None:
                return jsonify({'error': 'Engagement not found.'}), 404

            access = services.membership.check_permissions(engagement_id, session['user_id'], owner_id=owner_id)
            if not access.is_member:
                return jsonify({'error': 'You are not a member of this engagement.'}), 403
            if write and access.is_read_only:
                return jsonify({'error': 'You have read-only access to this engagement.'}), 403
            g.access = access
            return f(engagement_id, *args, **kwargs)
        return decorated_function
    return decorator
