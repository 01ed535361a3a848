from sqlalchemy import select, func
from storerate import get_db
from storerate.models.authz import User
from storerate.models.rating import Rating
from tests.test_utils_seed import ensure_user, ensure_store, ensure_rating, user_headers, unique_email, audit_events


def test_admin_creates_store_for_owner(client):
    admin = ensure_user('store-admin', role='system_admin')
    owner = ensure_user('store-owner', role='store_owner')
    plain = ensure_user('store-plain')
    headers = user_headers(client, admin)

    resp = client.post('/api/stores', headers=headers,
                       json={'name': 'Corner Shop', 'email': unique_email('corner'), 'address': '2 Side St', 'owner_id': owner.id})
    assert resp.status_code == 201, resp.get_json()
    data = resp.get_json()['data']
    assert data['owner_id'] == owner.id
    assert data['total_ratings'] == 0 and data['average_rating'] is None
    assert audit_events('STORE_CREATE', admin.id)[-1].resource_id == str(data['id'])

    resp = client.post('/api/stores', headers=headers,
                       json={'name': 'Bad Owner', 'email': unique_email('bad'), 'owner_id': plain.id})
    assert resp.status_code == 400


def test_only_admin_creates_or_deletes_stores(client):
    owner = ensure_user('wannabe', role='store_owner')
    store = ensure_store('Own Shop', owner_id=owner.id)
    headers = user_headers(client, owner)
    assert client.post('/api/stores', headers=headers, json={'name': 'N', 'email': unique_email('n')}).status_code == 403
    assert client.delete(f'/api/stores/{store.id}', headers=headers).status_code == 403


def test_listing_and_averages(client):
    user_a = ensure_user('avg-a')
    user_b = ensure_user('avg-b')
    store = ensure_store('Average Shop')
    store_id = store.id
    ensure_rating(user_a.id, store_id, 2)
    ensure_rating(user_b.id, store_id, 5)

    headers = user_headers(client, user_a)
    resp = client.get(f'/api/stores/{store_id}', headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['average_rating'] == 3.5
    assert data['total_ratings'] == 2
    assert data['canEdit'] is False

    resp = client.get('/api/stores?search=Average', headers=headers)
    assert resp.status_code == 200
    assert any(s['id'] == store_id for s in resp.get_json()['data'])
    assert client.get('/api/stores/999999', headers=headers).status_code == 404


def test_owner_updates_only_own_store(client):
    owner = ensure_user('upd-owner', role='store_owner')
    other = ensure_user('upd-other', role='store_owner')
    store = ensure_store('Mine', owner_id=owner.id)
    foreign = ensure_store('Theirs', owner_id=other.id)
    headers = user_headers(client, owner)

    resp = client.put(f'/api/stores/{store.id}', json={'name': 'Mine Renamed'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['name'] == 'Mine Renamed'
    assert resp.get_json()['data']['canEdit'] is True
    assert client.put(f'/api/stores/{foreign.id}', json={'name': 'Taken'}, headers=headers).status_code == 403


def test_admin_deletes_store_with_ratings(client):
    admin = ensure_user('del-admin', role='system_admin')
    user = ensure_user('del-user')
    store = ensure_store('Doomed')
    store_id = store.id
    ensure_rating(user.id, store_id, 3)
    headers = user_headers(client, admin)
    assert client.delete(f'/api/stores/{store_id}', headers=headers).status_code == 200
    assert client.get(f'/api/stores/{store_id}', headers=headers).status_code == 404
    assert audit_events('STORE_DELETE', admin.id)


def test_rating_lifecycle(client):
    user = ensure_user('rater')
    store = ensure_store('Rated Shop')
    store_id = store.id
    headers = user_headers(client, user)

    resp = client.post('/api/ratings', json={'store_id': store_id, 'rating': 4, 'comment': 'nice'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    rating_id = resp.get_json()['data']['id']

    assert client.post('/api/ratings', json={'store_id': store_id, 'rating': 3}, headers=headers).status_code == 400
    assert client.post('/api/ratings', json={'store_id': store_id, 'rating': 9}, headers=headers).status_code == 400
    assert client.post('/api/ratings', json={'store_id': 999999, 'rating': 3}, headers=headers).status_code == 404

    mine = client.get('/api/ratings/mine', headers=headers).get_json()['data']
    assert [(r['id'], r['store_name']) for r in mine] == [(rating_id, 'Rated Shop')]

    resp = client.put(f'/api/ratings/{rating_id}', json={'rating': 2}, headers=headers)
    assert resp.status_code == 200 and resp.get_json()['data']['rating'] == 2
    assert client.delete(f'/api/ratings/{rating_id}', headers=headers).status_code == 200


def test_store_owner_cannot_submit_ratings(client):
    owner = ensure_user('owner-rater', role='store_owner')
    store = ensure_store('Owner Rated')
    resp = client.post('/api/ratings', json={'store_id': store.id, 'rating': 5}, headers=user_headers(client, owner))
    assert resp.status_code == 403


def test_audit_events_endpoint(client):
    admin = ensure_user('auditor', role='system_admin')
    headers = user_headers(client, admin)
    resp = client.get(f'/api/audit/events?event_type=LOGIN&user_id={admin.id}', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['pagination']['total'] == 1
    assert body['data'][0]['event_type'] == 'LOGIN'
    assert client.get('/api/audit/events?user_id=abc', headers=headers).status_code == 400


def test_update_to_taken_email_is_400(client):
    admin = ensure_user('dup-admin', role='system_admin')
    first = ensure_store('First Email')
    second = ensure_store('Second Email')
    taken, second_id = first.email, second.id
    headers = user_headers(client, admin)
    resp = client.put(f'/api/stores/{second_id}', json={'email': taken}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json() == {'success': False, 'message': 'Store with this email already exists'}
    resp = client.put(f'/api/stores/{second_id}', json={'name': 'Still Works'}, headers=headers)
    assert resp.status_code == 200


def test_malformed_store_payloads(client):
    admin = ensure_user('payload-admin', role='system_admin')
    user = ensure_user('payload-user')
    store = ensure_store('Payload Shop')
    headers = user_headers(client, admin)
    assert client.post('/api/stores', headers=headers, json=['x']).status_code == 400
    assert client.post('/api/stores', headers=headers,
                       json={'name': 'N', 'email': unique_email('n'), 'owner_id': ['1']}).status_code == 400
    assert client.put(f'/api/stores/{store.id}', headers=headers, json={'name': 7}).status_code == 400
    user_h = user_headers(client, user)
    assert client.post('/api/ratings', headers=user_h, json={'store_id': {'id': 1}, 'rating': 3}).status_code == 400
    assert client.post('/api/ratings', headers=user_h,
                       json={'store_id': store.id, 'rating': 3, 'comment': {'x': 1}}).status_code == 400


def test_search_query_is_sanitized(client):
    user = ensure_user('searcher')
    store = ensure_store('Bracket Shop')
    store_id = store.id
    resp = client.get('/api/stores?search=<Bracket>', headers=user_headers(client, user))
    assert resp.status_code == 200
    assert any(s['id'] == store_id for s in resp.get_json()['data'])


def test_owner_sees_own_stores_and_ratings(client):
    owner = ensure_user('mine-owner', role='store_owner')
    rater_a = ensure_user('mine-a')
    rater_b = ensure_user('mine-b')
    rated = ensure_store('Mine Rated', owner_id=owner.id)
    empty = ensure_store('Mine Empty', owner_id=owner.id)
    ensure_store('Not Mine')
    rated_id, empty_id = rated.id, empty.id
    ensure_rating(rater_a.id, rated_id, 2)
    ensure_rating(rater_b.id, rated_id, 5)
    headers = user_headers(client, owner)

    resp = client.get('/api/stores/mine', headers=headers)
    assert resp.status_code == 200
    stores = {s['id']: s for s in resp.get_json()['data']['stores']}
    assert set(stores) == {rated_id, empty_id}
    assert stores[rated_id]['average_rating'] == 3.5
    assert stores[rated_id]['total_rating_users'] == 2
    assert stores[empty_id]['average_rating'] == 0

    resp = client.get('/api/stores/mine/ratings', headers=headers)
    data = resp.get_json()['data']
    assert data['total'] == 2
    assert {r['store_name'] for r in data['ratings']} == {'Mine Rated'}
    assert {r['user_name'] for r in data['ratings']} == {'mine-a', 'mine-b'}


def test_owner_endpoints_require_store_owner(client):
    admin = ensure_user('mine-admin', role='system_admin')
    user = ensure_user('mine-user')
    for who in (admin, user):
        headers = user_headers(client, who)
        assert client.get('/api/stores/mine', headers=headers).status_code == 403
        assert client.get('/api/stores/mine/ratings', headers=headers).status_code == 403
        assert client.get('/api/dashboard/owner-stats', headers=headers).status_code == 403


def test_owner_stats_weight_by_rating_count(client):
    owner = ensure_user('stats-owner', role='store_owner')
    raters = [ensure_user(f'stats-rater-{i}') for i in range(3)]
    busy = ensure_store('Busy', owner_id=owner.id)
    quiet = ensure_store('Quiet', owner_id=owner.id)
    ensure_store('Unowned Stats')
    for rater in raters:
        ensure_rating(rater.id, busy.id, 5)
    ensure_rating(raters[0].id, quiet.id, 1)

    resp = client.get('/api/dashboard/owner-stats', headers=user_headers(client, owner))
    assert resp.status_code == 200
    # (5 + 5 + 5 + 1) / 4, not the mean of the two store averages
    assert resp.get_json()['data'] == {'averageRating': 4.0, 'totalRatings': 4, 'storeCount': 2}


def test_owner_stats_without_ratings(client):
    owner = ensure_user('stats-empty', role='store_owner')
    resp = client.get('/api/dashboard/owner-stats', headers=user_headers(client, owner))
    assert resp.get_json()['data'] == {'averageRating': 0, 'totalRatings': 0, 'storeCount': 0}


def test_admin_stats(client):
    admin = ensure_user('stats-admin', role='system_admin')
    owner = ensure_user('stats-no', role='store_owner')
    headers = user_headers(client, admin)
    session = get_db()
    expected_users = session.execute(select(func.count()).select_from(User)).scalar_one()
    expected_ratings = session.execute(select(func.count()).select_from(Rating)).scalar_one()
    expected_avg = session.execute(select(func.avg(Rating.rating))).scalar_one()
    session.commit()

    resp = client.get('/api/dashboard/admin-stats', headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['totalUsers'] == expected_users
    assert data['totalRatings'] == expected_ratings
    assert data['averageRating'] == round(float(expected_avg or 0), 2)
    assert isinstance(data['totalStores'], int)

    assert client.get('/api/dashboard/admin-stats', headers=user_headers(client, owner)).status_code == 403
