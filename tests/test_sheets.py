from models import SheetRow, UploadedSheet

from conftest import upload_data

WORKERS = [
    {'Worker': 'Ali', 'Trade': 'Mason', 'Login': 'Tower A'},
    {'Worker': 'Omar', 'Trade': 'Fitter', 'Login': 'Tower B'},
    {'Worker': 'Sami', 'Trade': 'Painter', 'Login': 'Tower A'},
    {'Worker': 'Zaid', 'Trade': 'Helper', 'Login': ''},
]


def _save(client, headers, login_column='Login'):
    return client.post('/api/admin/sheets/save', headers=headers['admin'],
                       data=upload_data(WORKERS, 'workers.xlsx', name='Workers', loginColumnName=login_column),
                       content_type='multipart/form-data')


def test_preview_does_not_store(app, client, headers):
    res = client.post('/api/admin/sheets/upload', headers=headers['admin'],
                      data=upload_data(WORKERS, 'workers.xlsx'), content_type='multipart/form-data')
    data = res.get_json()['data']
    assert data['headers'] == ['Worker', 'Trade', 'Login']
    assert data['totalRows'] == 4
    assert data['uniqueByColumn']['Login'] == ['Tower A', 'Tower B']

    with app.app_context():
        assert UploadedSheet.query.count() == 0


def test_save_requires_known_login_column(client, headers):
    assert _save(client, headers, login_column='Camp').status_code == 400
    assert _save(client, headers, login_column='').status_code == 400


def test_save_and_list_projects(app, client, headers):
    res = _save(client, headers)
    assert res.status_code == 201
    sheet_id = res.get_json()['data']['id']

    res = client.get(f'/api/admin/sheets/{sheet_id}/projects', headers=headers['admin'])
    data = res.get_json()['data']
    assert data['projects'] == ['Tower A', 'Tower B', 'UNASSIGNED']
    assert {'name': 'Tower A', 'rowCount': 2} in data['counts']

    res = client.get('/api/admin/sheets', headers=headers['admin'])
    assert res.get_json()['data'][0]['rowCount'] == 4


def test_merge_projects_rewrites_login_column(app, client, headers):
    sheet_id = _save(client, headers).get_json()['data']['id']

    res = client.post('/api/admin/sheets/merge-projects', headers=headers['admin'],
                      json={'sheetId': sheet_id, 'targetProject': 'Tower A',
                            'sourceValues': ['Tower B', 'UNASSIGNED']})
    assert res.get_json()['data']['updated'] == 2

    with app.app_context():
        rows = SheetRow.query.filter_by(sheet_id=sheet_id).all()
        assert {r.project_name for r in rows} == {'Tower A'}
        assert {r.data['Login'] for r in rows} == {'Tower A'}

    res = client.post('/api/admin/sheets/merge-projects', headers=headers['admin'],
                      json={'sheetId': sheet_id, 'targetProject': 'Tower A', 'sourceValues': []})
    assert res.status_code == 400


def test_sheet_rows_paging_and_transfer(app, client, headers):
    sheet_id = _save(client, headers).get_json()['data']['id']

    assert client.get('/api/admin/sheet-rows', headers=headers['admin']).status_code == 400

    res = client.get('/api/admin/sheet-rows', headers=headers['admin'],
                     query_string={'sheetId': sheet_id, 'projectName': 'Tower A', 'limit': 1})
    body = res.get_json()
    assert body['pagination'] == {'page': 1, 'limit': 1, 'total': 2, 'totalPages': 2}
    row_id = body['data'][0]['id']

    res = client.patch(f'/api/admin/sheet-rows/{row_id}', headers=headers['admin'],
                       json={'projectName': 'Tower C', 'notes': 'moved'})
    row = res.get_json()['data']
    assert row['projectName'] == 'Tower C'
    assert row['data']['Login'] == 'Tower C'
    assert row['notes'] == 'moved'


def test_delete_sheet_removes_rows(app, client, headers):
    sheet_id = _save(client, headers).get_json()['data']['id']
    assert client.delete(f'/api/admin/sheets/{sheet_id}', headers=headers['admin']).status_code == 200
    assert client.delete(f'/api/admin/sheets/{sheet_id}', headers=headers['admin']).status_code == 404
    with app.app_context():
        assert SheetRow.query.count() == 0


def test_sheets_are_admin_only(client, headers):
    assert client.get('/api/admin/sheets', headers=headers['employee']).status_code == 403
