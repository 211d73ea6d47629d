from petbook.domain.models import OwnerKind, TransferReason


def _auth(user_id):
    return {'X-User-Id': user_id}


def test_get_owner_for_registered_pet(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    resp = client.get('/api/v1/pets/p1/owner')

    assert resp.status_code == 200
    assert resp.get_json() == {'pet_id': 'p1', 'owner_id': 'u1', 'owner_kind': 'individual'}


def test_get_owner_unknown_pet_is_404(client):
    resp = client.get('/api/v1/pets/ghost/owner')
    assert resp.status_code == 404
    assert 'ghost' in resp.get_json()['error']


def test_history_lists_current_first(client, ledger, clock):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    clock.advance(days=30)
    ledger.transfer('p1', 'o1', OwnerKind.ORGANIZATION, TransferReason.SURRENDER)

    resp = client.get('/api/v1/pets/p1/history')

    assert resp.status_code == 200
    history = resp.get_json()['history']
    assert [(h['owner_id'], h['status']) for h in history] == [('o1', 'current'), ('u1', 'past')]
    assert history[1]['transfer_reason'] == 'surrender'
    assert history[1]['end_date'] == clock.now.isoformat()


def test_history_for_unknown_pet_is_empty(client):
    resp = client.get('/api/v1/pets/ghost/history')
    assert resp.status_code == 200
    assert resp.get_json()['history'] == []


def test_create_ownership_requires_login(client):
    resp = client.post('/api/v1/pets/p1/ownership', json={})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Authentication required'


def test_create_ownership_for_caller(client, ledger):
    resp = client.post('/api/v1/pets/p1/ownership', json={}, headers=_auth('u1'))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['owner_id'] == 'u1'
    assert body['status'] == 'current'
    assert ledger.get_current_owner('p1').owner_id == 'u1'


def test_create_ownership_for_managed_organization(client, ledger):
    resp = client.post('/api/v1/pets/p1/ownership', json={'acting_as_org_id': 'o1'},
                       headers=_auth('manager1'))

    assert resp.status_code == 201
    owner = ledger.get_current_owner('p1')
    assert (owner.owner_id, owner.kind) == ('o1', OwnerKind.ORGANIZATION)


def test_create_ownership_for_unmanaged_organization_is_403(client, ledger):
    resp = client.post('/api/v1/pets/p1/ownership', json={'acting_as_org_id': 'o1'},
                       headers=_auth('u1'))

    assert resp.status_code == 403
    assert ledger.get_history('p1') == []


def test_create_ownership_twice_is_409(client):
    client.post('/api/v1/pets/p1/ownership', json={}, headers=_auth('u1'))
    resp = client.post('/api/v1/pets/p1/ownership', json={}, headers=_auth('u2'))
    assert resp.status_code == 409


def test_transfer_requires_login(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u2', 'reason': 'gift'})
    assert resp.status_code == 401


def test_owner_transfers_to_organization(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_org_id': 'o1', 'reason': 'surrender'},
                       headers=_auth('u1'))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['message'] == 'Pet transferred successfully'
    assert body['ownership']['owner_id'] == 'o1'
    assert body['ownership']['owner_kind'] == 'organization'
    assert ledger.get_current_owner('p1').owner_id == 'o1'


def test_organization_manager_transfers_org_pet(client, ledger):
    ledger.create_initial_ownership('p1', 'o1', OwnerKind.ORGANIZATION)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u9', 'reason': 'adoption'},
                       headers=_auth('manager1'))

    assert resp.status_code == 200
    assert ledger.get_current_owner('p1').owner_id == 'u9'


def test_non_owner_transfer_is_403(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u3', 'reason': 'gift'},
                       headers=_auth('u2'))

    assert resp.status_code == 403
    assert resp.get_json()['error'] == "You don't own this pet"
    assert len(ledger.get_history('p1')) == 1


def test_org_pet_transfer_by_non_manager_is_403(client, ledger):
    ledger.create_initial_ownership('p1', 'o1', OwnerKind.ORGANIZATION)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u3', 'reason': 'adoption'},
                       headers=_auth('u3'))

    assert resp.status_code == 403


def test_transfer_target_validation(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    neither = client.post('/api/v1/pets/p1/transfer', json={'reason': 'gift'}, headers=_auth('u1'))
    both = client.post('/api/v1/pets/p1/transfer',
                       json={'to_user_id': 'u2', 'to_org_id': 'o1', 'reason': 'gift'},
                       headers=_auth('u1'))

    assert neither.status_code == 400
    assert both.status_code == 400
    assert len(ledger.get_history('p1')) == 1


def test_transfer_invalid_reason_is_400(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u2', 'reason': 'theft'},
                       headers=_auth('u1'))

    assert resp.status_code == 400
    assert 'adoption' in resp.get_json()['error']
    assert len(ledger.get_history('p1')) == 1


def test_self_transfer_is_400(client, ledger):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u1', 'reason': 'gift'},
                       headers=_auth('u1'))

    assert resp.status_code == 400
    assert len(ledger.get_history('p1')) == 1


def test_transfer_unowned_pet_is_404(client):
    resp = client.post('/api/v1/pets/ghost/transfer', json={'to_user_id': 'u2', 'reason': 'gift'},
                       headers=_auth('u1'))
    assert resp.status_code == 404


def test_store_outage_returns_generic_retryable_error(client, ledger, store):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    store.close()

    resp = client.get('/api/v1/pets/p1/owner')

    assert resp.status_code == 503
    body = resp.get_json()
    assert body['retryable'] is True
    assert body['error'] == 'Ownership service temporarily unavailable, please retry'


def test_transfer_after_owner_changed_since_check_is_409(client, ledger, monkeypatch):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    checked_owner = ledger.get_current_owner

    def owner_then_sold(pet_id):
        owner = checked_owner(pet_id)
        # p1 changes hands between the permission check and the transfer
        ledger.transfer(pet_id, 'u3', OwnerKind.INDIVIDUAL, TransferReason.SALE)
        return owner

    monkeypatch.setattr(ledger, 'get_current_owner', owner_then_sold)

    resp = client.post('/api/v1/pets/p1/transfer', json={'to_user_id': 'u2', 'reason': 'gift'},
                       headers=_auth('u1'))

    assert resp.status_code == 409
    assert 'u1' in resp.get_json()['error']
    monkeypatch.undo()
    assert ledger.get_current_owner('p1').owner_id == 'u3'
    assert len(ledger.get_history('p1')) == 2
