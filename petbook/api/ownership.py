"""
Pet Ownership API Endpoints

Exposes current owner, ownership history, initial ownership and transfer.
The ledger enforces ownership rules; this layer only decides who may ask.
"""

import logging
from typing import Optional

from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user, login_required

from ..domain.exceptions import OwnershipError
from ..domain.models import Owner, OwnerKind, VALID_REASONS
from ..services import OwnershipLedger

logger = logging.getLogger(__name__)

ownership_api = Blueprint('ownership_api', __name__, url_prefix='/api/v1/pets')

RETRY_MESSAGE = 'Ownership service temporarily unavailable, please retry'


def _ledger() -> OwnershipLedger:
    return current_app.extensions['ownership_ledger']


def _can_act_for(owner: Owner, user_id: str) -> bool:
    """An individual acts for themselves; organizations through their managers."""
    if owner.kind is OwnerKind.INDIVIDUAL:
        return owner.owner_id == user_id
    managers = current_app.extensions.get('organization_managers')
    if managers is None:
        return False
    return managers.can_manage(user_id, owner.owner_id)


def _error(message: str, status: int):
    return jsonify({'error': message}), status


@ownership_api.errorhandler(OwnershipError)
def handle_ownership_error(error: OwnershipError):
    if error.http_status >= 500:
        # No partial-state details leave the server
        logger.error(f"Ownership request failed: {error.message}")
        return jsonify({'error': RETRY_MESSAGE, 'retryable': True}), error.http_status
    return _error(error.message, error.http_status)


@ownership_api.route('/<pet_id>/owner', methods=['GET'])
def get_current_owner(pet_id):
    owner = _ledger().get_current_owner(pet_id)
    return jsonify({'pet_id': pet_id, **owner.to_dict()})


@ownership_api.route('/<pet_id>/history', methods=['GET'])
def get_history(pet_id):
    """Public ownership timeline, current owner first."""
    history = _ledger().get_history(pet_id)
    return jsonify({'pet_id': pet_id, 'history': [record.to_dict() for record in history]})


@ownership_api.route('/<pet_id>/ownership', methods=['POST'])
@login_required
def create_ownership(pet_id):
    """Record the first owner of a newly registered pet."""
    data = request.get_json(silent=True) or {}
    org_id: Optional[str] = data.get('acting_as_org_id')

    if org_id:
        owner = Owner(org_id, OwnerKind.ORGANIZATION)
        if not _can_act_for(owner, current_user.id):
            return _error("You don't manage this organization", 403)
    else:
        owner = Owner(current_user.id, OwnerKind.INDIVIDUAL)

    record = _ledger().create_initial_ownership(pet_id, owner.owner_id, owner.kind)
    return jsonify(record.to_dict()), 201


@ownership_api.route('/<pet_id>/transfer', methods=['POST'])
@login_required
def transfer_pet(pet_id):
    """Transfer a pet to another user or organization."""
    data = request.get_json(silent=True) or {}
    to_user_id = data.get('to_user_id')
    to_org_id = data.get('to_org_id')
    reason = data.get('reason')

    if not to_user_id and not to_org_id:
        return _error('Must specify to_user_id or to_org_id', 400)
    if to_user_id and to_org_id:
        return _error('Cannot specify both to_user_id and to_org_id', 400)
    if reason not in VALID_REASONS:
        return _error(f"Invalid reason. Must be one of: {', '.join(VALID_REASONS)}", 400)

    ledger = _ledger()
    current_owner = ledger.get_current_owner(pet_id)
    if not _can_act_for(current_owner, current_user.id):
        return _error("You don't own this pet", 403)

    if to_user_id:
        target = Owner(to_user_id, OwnerKind.INDIVIDUAL)
    else:
        target = Owner(to_org_id, OwnerKind.ORGANIZATION)

    # The ledger re-checks the owner inside its transaction; a change since the
    # permission check above becomes OwnerChanged (409)
    record = ledger.transfer(pet_id, target.owner_id, target.kind, reason, expected_owner=current_owner)

    return jsonify({'message': 'Pet transferred successfully', 'ownership': record.to_dict()})
