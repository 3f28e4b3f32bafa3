import os
import json
import logging
import threading
from contextlib import contextmanager

import firebase_admin
from firebase_admin import credentials, db as firebase_db, exceptions as firebase_exceptions

from data_store import (
    DatabaseError, PermissionDeniedError, InMemoryDatabase,
    split_path, set_in, to_plain,
)
from utils import new_key

# Firebase web configuration from environment variables. The browser sign-in
# flow needs the public part of this; the service needs the database URL.
firebase_config = {
    "apiKey": os.environ.get("FIREBASE_API_KEY", ""),
    "authDomain": os.environ.get("FIREBASE_AUTH_DOMAIN", ""),
    "projectId": os.environ.get("FIREBASE_PROJECT_ID", ""),
    "storageBucket": os.environ.get("FIREBASE_STORAGE_BUCKET", ""),
    "messagingSenderId": os.environ.get("FIREBASE_MESSAGING_SENDER_ID", ""),
    "appId": os.environ.get("FIREBASE_APP_ID", ""),
    "databaseURL": os.environ.get("FIREBASE_DATABASE_URL", ""),
}

_init_lock = threading.Lock()


def public_client_config(config=None):
    """The subset of the Firebase config that is safe to hand to browsers"""
    config = config or firebase_config
    keys = ('apiKey', 'authDomain', 'projectId', 'appId', 'databaseURL')
    return {key: config.get(key, '') for key in keys}


def init_firebase_app(config=None, credentials_path=None):
    """Initialize (once) and return the default Firebase Admin app"""
    config = config or firebase_config
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        if credentials_path:
            credential = credentials.Certificate(credentials_path)
        else:
            credential = credentials.ApplicationDefault()

        options = {'databaseURL': config.get('databaseURL')}
        if config.get('projectId'):
            options['projectId'] = config['projectId']
        app = firebase_admin.initialize_app(credential, options)
        logging.info(f"Firebase Admin initialized for project {config.get('projectId') or '(default)'}")
        return app


@contextmanager
def translate_firebase_errors(operation, path):
    """Re-raise Firebase SDK failures as DatabaseError / PermissionDeniedError"""
    try:
        yield
    except firebase_exceptions.PermissionDeniedError as e:
        logging.error(f"Firebase denied {operation} on '{path}': {str(e)}")
        raise PermissionDeniedError(str(e)) from e
    except firebase_exceptions.FirebaseError as e:
        logging.error(f"Firebase {operation} on '{path}' failed: {str(e)}")
        raise DatabaseError(str(e)) from e


class RealtimeDatabase:
    """Document store contract implemented on the Firebase Realtime Database"""

    def __init__(self, app=None):
        self.app = app

    def _ref(self, path):
        return firebase_db.reference('/' + '/'.join(split_path(path)), app=self.app)

    def new_key(self):
        return new_key()

    def get(self, path=''):
        with translate_firebase_errors('read', path):
            return self._ref(path).get()

    def set(self, path, value):
        with translate_firebase_errors('write', path):
            if value is None:
                self._ref(path).delete()
            else:
                self._ref(path).set(value)

    def update(self, path, changes):
        # Multi-path updates (slash-separated keys) are applied atomically by the server
        if not isinstance(changes, dict) or not changes:
            raise ValueError('Update requires a non-empty dictionary of changes.')
        with translate_firebase_errors('update', path):
            self._ref(path).update(changes)

    def delete(self, path):
        with translate_firebase_errors('delete', path):
            self._ref(path).delete()

    def subscribe(self, path, callback):
        """Listen on path, rebuilding the full subtree value from put/patch events"""
        state = {'value': None}
        lock = threading.Lock()

        def handle(event):
            with lock:
                segments = split_path(event.path)
                if event.event_type == 'patch':
                    for key, value in (event.data or {}).items():
                        state['value'] = set_in(state['value'], segments + split_path(key), value)
                else:
                    state['value'] = set_in(state['value'], segments, event.data)
                snapshot = to_plain(state['value'])
            callback(snapshot)

        with translate_firebase_errors('listen', path):
            registration = self._ref(path).listen(handle)
        return registration.close


def build_database(app_config):
    """Pick the document store backend named by DATABASE_BACKEND"""
    backend = app_config.get('DATABASE_BACKEND', 'memory')
    if backend == 'firebase':
        config = dict(app_config.get('FIREBASE_CONFIG') or firebase_config)
        app = init_firebase_app(config, app_config.get('FIREBASE_CREDENTIALS'))
        return RealtimeDatabase(app)
    if backend == 'memory':
        seed_path = app_config.get('MEMORY_SEED_FILE')
        initial = None
        if seed_path and os.path.exists(seed_path):
            with open(seed_path) as f:
                initial = json.load(f)
        logging.warning("Using the in-memory document store; data is lost on restart")
        return InMemoryDatabase(initial)
    raise ValueError(f"Unknown DATABASE_BACKEND: {backend}")
