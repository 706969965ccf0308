from models import db, User, ActivityLog


def test_list_users_with_filters(client, headers):
    res = client.get('/api/admin/users?role=admin', headers=headers['admin'])
    assert [u['email'] for u in res.get_json()['data']] == ['admin@example.com']

    res = client.get('/api/admin/users?search=project', headers=headers['admin'])
    assert [u['email'] for u in res.get_json()['data']] == ['user@example.com']

    assert client.get('/api/admin/users', headers=headers['user']).status_code == 403
    assert client.get('/api/admin/users').status_code == 401


def test_create_user_rules(client, headers):
    payload = {'email': 'site@example.com', 'password': 'abcdef', 'allottedProjects': ['P1']}
    res = client.post('/api/admin/users', headers=headers['admin'], json=payload)
    assert res.status_code == 201
    assert res.get_json()['data']['allottedProjects'] == ['P1']

    assert client.post('/api/admin/users', headers=headers['admin'], json=payload).status_code == 400
    assert client.post('/api/admin/users', headers=headers['admin'],
                       json={'email': 'short@example.com', 'password': 'abc'}).status_code == 400

    admin_payload = {'email': 'boss@example.com', 'password': 'abcdef', 'role': 'admin'}
    assert client.post('/api/admin/users', headers=headers['admin'], json=admin_payload).status_code == 403
    assert client.post('/api/admin/users', headers=headers['super'], json=admin_payload).status_code == 201


def test_update_and_delete_user(app, client, headers, ids):
    res = client.put(f"/api/admin/users/{ids['user']}", headers=headers['admin'],
                     json={'name': 'Renamed', 'canUpload': False})
    data = res.get_json()['data']
    assert data['name'] == 'Renamed'
    assert data['canUpload'] is False

    res = client.put(f"/api/admin/users/{ids['user']}", headers=headers['admin'], json={'role': 'admin'})
    assert res.status_code == 403

    res = client.put(f"/api/admin/users/{ids['user']}", headers=headers['admin'],
                     json={'email': 'admin@example.com'})
    assert res.status_code == 400

    assert client.delete(f"/api/admin/users/{ids['admin']}", headers=headers['admin']).status_code == 400
    assert client.delete(f"/api/admin/users/{ids['user']}", headers=headers['admin']).status_code == 200
    assert client.get(f"/api/admin/users/{ids['user']}", headers=headers['admin']).status_code == 404


def test_toggle_active_and_upload(app, client, headers, ids):
    res = client.post(f"/api/admin/users/{ids['admin']}/toggle-active", headers=headers['admin'])
    assert res.status_code == 400

    res = client.post(f"/api/admin/users/{ids['user']}/toggle-active", headers=headers['admin'])
    assert res.get_json()['data']['active'] is False
    assert client.get('/api/profile', headers=headers['user']).status_code == 401

    res = client.post(f"/api/admin/users/{ids['user']}/toggle-upload", headers=headers['admin'])
    assert res.get_json()['data']['canUpload'] is False


def test_reset_password(app, client, headers, ids):
    url = f"/api/admin/users/{ids['user']}/reset-password"
    assert client.post(url, headers=headers['admin'], json={'newPassword': 'abc'}).status_code == 400
    assert client.post(url, headers=headers['admin'], json={'newPassword': 'fresh-pass'}).status_code == 200
    with app.app_context():
        assert db.session.get(User, ids['user']).check_password('fresh-pass')


def test_activity_logs_filters_and_order(client, headers, ids):
    client.post(f"/api/admin/users/{ids['user']}/toggle-upload", headers=headers['admin'])
    client.post(f"/api/admin/users/{ids['user']}/toggle-upload", headers=headers['super'])
    client.post('/api/admin/employees', headers=headers['admin'],
                json={'empId': 'EMP777', 'name': 'Log Test', 'site': 'Camp', 'role': 'Helper'})

    res = client.get('/api/admin/logs', headers=headers['admin'])
    body = res.get_json()
    assert body['pagination']['total'] == 3
    assert body['data'][0]['entityType'] == 'EMPLOYEE'

    res = client.get(f"/api/admin/logs?entityType=USER&userId=user:{ids['super']}", headers=headers['admin'])
    logs = res.get_json()['data']
    assert len(logs) == 1
    assert logs[0]['userEmail'] == 'root@example.com'


def test_log_activity_without_caller(app):
    from utils.activity_logger import log_activity

    with app.test_request_context():
        entry = log_activity('CREATE', 'EXCEL', 'System task', entity_id=5)
        assert entry.user_id == 'system'
        assert entry.entity_id == '5'
        assert ActivityLog.query.count() == 1


def test_admin_cannot_manage_other_admin_accounts(app, client, headers, ids):
    with app.app_context():
        other = User(email='admin2@example.com', username='admin2', name='Second Admin', role='admin')
        other.set_password('secret123')
        db.session.add(other)
        db.session.commit()
        other_id = other.id

    for target in (ids['super'], other_id):
        assert client.post(f'/api/admin/users/{target}/reset-password', headers=headers['admin'],
                           json={'newPassword': 'hijacked1'}).status_code == 403
        assert client.post(f'/api/admin/users/{target}/toggle-active', headers=headers['admin']).status_code == 403
        assert client.post(f'/api/admin/users/{target}/toggle-upload', headers=headers['admin']).status_code == 403
        assert client.put(f'/api/admin/users/{target}', headers=headers['admin'],
                          json={'name': 'Renamed'}).status_code == 403
        assert client.delete(f'/api/admin/users/{target}', headers=headers['admin']).status_code == 403

    with app.app_context():
        assert db.session.get(User, ids['super']).check_password('secret123')
        assert db.session.get(User, ids['super']).active is True

    res = client.post(f'/api/admin/users/{other_id}/toggle-upload', headers=headers['super'])
    assert res.status_code == 200
    res = client.post(f'/api/admin/users/{other_id}/reset-password', headers=headers['super'],
                      json={'newPassword': 'fresh-pass'})
    assert res.status_code == 200
    res = client.post(f'/api/admin/users/{other_id}/toggle-active', headers=headers['super'])
    assert res.get_json()['data']['active'] is False
