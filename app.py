import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from data_store import DatabaseError, PermissionDeniedError
from firebase_auth import FirebaseIdentityProvider, IdentityToolkitProvider
from firebase_config import firebase_config, build_database, init_firebase_app
from firebase_models import EngagementModel, UserModel
from membership import MembershipService

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Services:
    """Collaborators shared by the routes of one app"""

    def __init__(self, database, identity, allow_unregistered_invites=True):
        self.db = database
        self.identity = identity
        self.engagements = EngagementModel(database)
        self.users = UserModel(database)
        self.membership = MembershipService(database, allow_unregistered_invites)


def default_config():
    database_url = os.environ.get("FIREBASE_DATABASE_URL", "")
    return {
        'SECRET_KEY': os.environ.get("SESSION_SECRET", "audoc-development-key"),
        'FIREBASE_CONFIG': firebase_config,
        'FIREBASE_CREDENTIALS': os.environ.get("FIREBASE_CREDENTIALS"),
        'DATABASE_BACKEND': os.environ.get("DATABASE_BACKEND", "firebase" if database_url else "memory"),
        'MEMORY_SEED_FILE': os.environ.get("MEMORY_SEED_FILE"),
        'IDENTITY_BACKEND': os.environ.get("IDENTITY_BACKEND", "admin"),
        'ALLOW_UNREGISTERED_INVITES': _env_flag("ALLOW_UNREGISTERED_INVITES", True),
        'SSE_KEEPALIVE_SECONDS': float(os.environ.get("SSE_KEEPALIVE_SECONDS", "15")),
    }


def build_identity(app_config):
    backend = app_config.get('IDENTITY_BACKEND', 'admin')
    if backend == 'rest':
        return IdentityToolkitProvider(app_config['FIREBASE_CONFIG'].get('apiKey'))
    if backend == 'admin':
        firebase_app = None
        if app_config.get('DATABASE_BACKEND') == 'firebase':
            firebase_app = init_firebase_app(app_config['FIREBASE_CONFIG'], app_config.get('FIREBASE_CREDENTIALS'))
        return FirebaseIdentityProvider(firebase_app)
    raise ValueError(f"Unknown IDENTITY_BACKEND: {backend}")


def create_app(config=None, database=None, identity=None):
    """Create the Flask app; database and identity may be injected"""
    app = Flask(__name__)
    app.config.update(default_config())
    if config:
        app.config.update(config)
    app.secret_key = app.config['SECRET_KEY']
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    if database is None:
        database = build_database(app.config)
    if identity is None:
        identity = build_identity(app.config)
    app.extensions['audoc'] = Services(database, identity, app.config['ALLOW_UNREGISTERED_INVITES'])

    from firebase_routes import bp
    app.register_blueprint(bp)
    register_error_handlers(app)
    register_commands(app)
    return app


def register_error_handlers(app):

    @app.errorhandler(PermissionDeniedError)
    def permission_denied(error):
        logging.error(f"Database permission denied: {str(error)}")
        return jsonify({'error': 'Permission denied. Please check Firebase Database Rules.'}), 503

    @app.errorhandler(DatabaseError)
    def database_error(error):
        logging.error(f"Database error: {str(error)}")
        return jsonify({'error': f"Database request failed: {str(error) or 'Check your connection.'}"}), 503

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found.'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'error': 'Internal server error.'}), 500


def register_commands(app):

    @app.cli.command('repair-index')
    @click.argument('engagement_ids', nargs=-1)
    def repair_index(engagement_ids):
        """Rebuild user engagement index entries from engagement rosters"""
        services = app.extensions['audoc']
        if not engagement_ids:
            engagement_ids = list(services.engagements.get_all().keys())
        total = 0
        for engagement_id in engagement_ids:
            fixed = services.membership.repair_user_index(engagement_id)
            total += fixed
            click.echo(f"{engagement_id}: {fixed} entries repaired")
        click.echo(f"Done: {total} entries repaired across {len(engagement_ids)} engagements")
