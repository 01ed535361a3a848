from tests.test_utils_seed import ensure_user, user_headers, auth_headers, login, unique_email, audit_events


def test_admin_lists_users_with_filters(client):
    admin = ensure_user('lister', role='system_admin')
    ensure_user('filter-owner', role='store_owner')
    headers = user_headers(client, admin)
    resp = client.get('/api/users?role=store_owner&limit=5', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['data'] and all(u['role'] == 'store_owner' for u in body['data'])
    assert body['pagination']['limit'] == 5
    assert all(u['canEdit'] for u in body['data'])

    assert client.get('/api/users?limit=abc', headers=headers).status_code == 400
    assert client.get('/api/users?role=wizard', headers=headers).status_code == 400


def test_non_admin_cannot_list_users(client):
    owner = ensure_user('owner-lister', role='store_owner')
    assert client.get('/api/users', headers=user_headers(client, owner)).status_code == 403


def test_admin_creates_user_and_is_audited(client):
    admin = ensure_user('creator', role='system_admin')
    admin_id = admin.id
    resp = client.post('/api/users', headers=user_headers(client, admin),
                       json={'name': 'New Owner', 'email': unique_email('new-owner'), 'password': 'pw', 'role': 'store_owner'})
    assert resp.status_code == 201, resp.get_json()
    created = resp.get_json()['data']
    assert created['role'] == 'store_owner'
    assert 'password_hash' not in created

    checks = audit_events('PERMISSION_CHECK', admin_id)
    assert len(checks) == 1 and checks[0].granted is True
    creates = audit_events('USER_CREATE', admin_id)
    assert creates[0].resource_id == str(created['id'])


def test_create_user_rejects_unknown_role(client):
    admin = ensure_user('creator-bad', role='system_admin')
    resp = client.post('/api/users', headers=user_headers(client, admin),
                       json={'name': 'X', 'email': unique_email('x'), 'password': 'pw', 'role': 'overlord'})
    assert resp.status_code == 400


def test_profile_access_is_self_only(client):
    me = ensure_user('profile-me')
    other = ensure_user('profile-other')
    headers = user_headers(client, me)

    resp = client.get(f'/api/users/{me.id}', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['email'] == me.email

    assert client.get(f'/api/users/{other.id}', headers=headers).status_code == 403

    resp = client.put(f'/api/users/{me.id}', json={'name': 'Renamed'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['name'] == 'Renamed'
    assert client.put(f'/api/users/{other.id}', json={'name': 'Hijack'}, headers=headers).status_code == 403
    assert client.put(f'/api/users/{me.id}', json={'name': '  '}, headers=headers).status_code == 400


def test_admin_changes_role_and_old_token_dies(client):
    admin = ensure_user('role-admin', role='system_admin')
    target = ensure_user('role-target')
    target_id = target.id
    target_token = login(client, target.email)

    resp = client.put(f'/api/users/{target_id}/role', json={'role': 'store_owner'}, headers=user_headers(client, admin))
    assert resp.status_code == 200
    assert resp.get_json()['data'] == {'user_id': target_id, 'role': 'store_owner'}
    events = audit_events('USER_ROLE_CHANGE', admin.id)
    assert events[-1].details == {'from': 'normal_user', 'to': 'store_owner'}

    assert client.get('/api/rbac/me', headers=auth_headers(target_token)).status_code == 401
    fresh = login(client, target.email)
    me = client.get('/api/rbac/me', headers=auth_headers(fresh)).get_json()['data']
    assert me['user']['role'] == 'store_owner'


def test_admin_cannot_change_peer_admin(client):
    admin = ensure_user('peer-a', role='system_admin')
    peer = ensure_user('peer-b', role='system_admin')
    resp = client.put(f'/api/users/{peer.id}/role', json={'role': 'normal_user'}, headers=user_headers(client, admin))
    assert resp.status_code == 403
    checks = audit_events('PERMISSION_CHECK', admin.id)
    assert checks[-1].granted is False


def test_change_role_unknown_user(client):
    admin = ensure_user('role-404', role='system_admin')
    resp = client.put('/api/users/999999/role', json={'role': 'store_owner'}, headers=user_headers(client, admin))
    assert resp.status_code == 404
