"""
Flask application factory for the Petbook ownership ledger.

Authentication and organization roles live outside this package; the factory
takes them as collaborators so the surrounding service can plug in its own.
"""

import logging
from typing import Any, Callable, Optional

from flask import Flask, Request, jsonify, request
from flask_login import LoginManager, UserMixin

from config import Config

from .domain.repositories import OrganizationManagers, OwnerDirectory
from .infrastructure import build_store
from .services import OwnershipLedger

logger = logging.getLogger(__name__)

IdentityLoader = Callable[[Request], Optional[str]]


class Principal(UserMixin):
    """The authenticated caller, identified by an individual owner id."""

    def __init__(self, user_id: str):
        self.id = user_id


def _configure_logging(app: Flask):
    # Configure Python logging level from LOG_LEVEL (default ERROR)
    log_level_name = str(app.config.get('LOG_LEVEL', 'ERROR')).upper()
    log_level = getattr(logging, log_level_name, logging.ERROR)
    logging.getLogger().setLevel(log_level)
    app.logger.setLevel(log_level)


def _init_login(app: Flask, identity_loader: Optional[IdentityLoader]):
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_principal(req):
        if identity_loader is None:
            return None
        user_id = identity_loader(req)
        return Principal(user_id) if user_id else None

    @login_manager.unauthorized_handler
    def unauthorized():
        """Return JSON for API requests instead of redirecting to a login page."""
        return jsonify({
            'error': 'Authentication required',
            'message': f'{request.path} requires an authenticated user.',
        }), 401


def create_app(config_object: Any = Config, ledger: Optional[OwnershipLedger] = None,
               identity_loader: Optional[IdentityLoader] = None,
               organization_managers: Optional[OrganizationManagers] = None,
               owner_directory: Optional[OwnerDirectory] = None) -> Flask:
    """Create the Flask application.

    When no ledger is given one is built over the store named by
    OWNERSHIP_STORE, with owner_directory used to validate destinations.
    """
    app = Flask(__name__, static_folder=None, static_url_path=None)
    app.config.from_object(config_object)
    _configure_logging(app)

    app.secret_key = app.config.get('SECRET_KEY')
    if not app.secret_key:
        raise RuntimeError("SECRET_KEY must be set in environment or config")

    if ledger is None:
        ledger = OwnershipLedger(build_store(app.config), owner_directory=owner_directory)
    app.extensions['ownership_ledger'] = ledger
    app.extensions['organization_managers'] = organization_managers

    _init_login(app, identity_loader)

    from .api.ownership import ownership_api
    app.register_blueprint(ownership_api)

    logger.info(f"{app.config.get('SITE_NAME', 'Petbook')} ownership API ready "
                f"(store: {type(ledger.store).__name__})")
    return app
