import io

import pytest
from openpyxl import load_workbook

from models import db, CreatedExcelFile

COLUMNS = [
    {'name': 'Item', 'type': 'text', 'required': True, 'editable': False},
    {'name': 'Qty', 'type': 'number', 'required': True, 'validation': {'min': 0}},
    {'name': 'Needed By', 'type': 'date'},
]


@pytest.fixture
def format_id(client, headers):
    res = client.post('/api/admin/excel-formats', headers=headers['admin'],
                      json={'name': 'Materials', 'columns': COLUMNS, 'assignedToType': 'all'})
    format_id = res.get_json()['data']['id']
    client.post('/api/admin/excel-formats/save-template-data', headers=headers['admin'],
                json={'formatId': format_id, 'rows': [{'Item': 'Cable'}, {'Item': 'Pipe'}]})
    return format_id


def _payload(format_id, rows, picked=None, **extra):
    data = {'formatId': format_id, 'labourType': 'OUR_LABOUR', 'rows': rows,
            'pickedTemplateRowIndices': picked or []}
    data.update(extra)
    return data


def test_save_excel_stores_workbook(app, client, headers, format_id):
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': 4, 'Needed By': '2024-06-01'}], [0],
                                    filename='cables'))
    assert res.status_code == 201
    data = res.get_json()['data']
    assert data['filename'] == 'cables.xlsx'
    assert data['rowCount'] == 1
    assert data['createdByKind'] == 'employee'

    with app.app_context():
        created = db.session.get(CreatedExcelFile, data['id'])
        ws = load_workbook(io.BytesIO(created.file_data)).active
        assert [c.value for c in ws[1]] == ['Item', 'Qty', 'Needed By']
        assert ws.cell(row=2, column=2).value == 4


def test_save_excel_validation_errors(client, headers, format_id):
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': ''}]))
    assert res.status_code == 400
    assert res.get_json()['validationError'] == ["Row 1: 'Qty' is required"]

    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': -1, 'Needed By': 'tomorrow'}]))
    errors = res.get_json()['validationError']
    assert "Row 1: 'Qty' must be >= 0" in errors
    assert "Row 1: 'Needed By' must be a date" in errors

    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Wire', 'Qty': 1}], [0]))
    assert res.status_code == 400
    assert res.get_json()['error'] == "Column 'Item' is locked and cannot be changed (row 1)"

    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [], labourType='CASUAL'))
    assert res.status_code == 400


def test_locked_columns_checked_by_position_without_picks(client, headers, format_id):
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}, {'Item': 'Wire', 'Qty': 2}]))
    assert res.status_code == 400
    assert res.get_json()['error'] == "Column 'Item' is locked and cannot be changed (row 2)"

    # rows past the end of the template are free
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}, {'Item': 'Pipe', 'Qty': 2},
                                                {'Item': 'Wire', 'Qty': 3}]))
    assert res.status_code == 201


def test_save_excel_requires_assignment(client, headers):
    res = client.post('/api/admin/excel-formats', headers=headers['admin'],
                      json={'name': 'Private', 'columns': COLUMNS, 'assignedToType': 'user', 'assignedTo': []})
    private_id = res.get_json()['data']['id']
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(private_id, [{'Item': 'Cable', 'Qty': 1}]))
    assert res.status_code == 403


def test_update_own_file_only(client, headers, format_id):
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}]))
    file_id = res.get_json()['data']['id']

    res = client.put('/api/employee/save-excel', headers=headers['user'],
                     json=_payload(format_id, [{'Item': 'Cable', 'Qty': 2}], fileId=file_id))
    assert res.status_code == 403

    res = client.put('/api/employee/save-excel', headers=headers['employee'],
                     json=_payload(format_id, [{'Item': 'Cable', 'Qty': 2}, {'Item': 'Pipe', 'Qty': 3}],
                                   fileId=file_id))
    assert res.status_code == 200
    assert res.get_json()['data']['rowCount'] == 2


def test_user_and_employee_with_same_id_do_not_share_files(client, headers, ids, format_id):
    # seeded accounts may share a numeric id across the two tables
    client.post('/api/employee/save-excel', headers=headers['employee'],
                json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}]))
    res = client.get('/api/employee/created-excel-files', headers=headers['employee'])
    assert len(res.get_json()['data']) == 1

    for key in ('super', 'admin', 'user'):
        res = client.get('/api/employee/created-excel-files', headers=headers[key])
        assert res.get_json()['data'] == []


def test_delete_own_created_file(client, headers, format_id):
    res = client.post('/api/employee/save-excel', headers=headers['employee'],
                      json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}]))
    file_id = res.get_json()['data']['id']

    assert client.delete(f'/api/employee/created-excel-files/{file_id}', headers=headers['user']).status_code == 403
    assert client.delete(f'/api/employee/created-excel-files/{file_id}',
                         headers=headers['employee']).status_code == 200


def test_admin_merge_created_files(app, client, headers, format_id):
    first = client.post('/api/employee/save-excel', headers=headers['employee'],
                        json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}])).get_json()['data']['id']
    second = client.post('/api/employee/save-excel', headers=headers['user'],
                         json=_payload(format_id, [{'Item': 'Pipe', 'Qty': 2},
                                                   {'Item': 'Valve', 'Qty': 3}], [1])).get_json()['data']['id']
    other_type = client.post('/api/employee/save-excel', headers=headers['user'],
                             json=_payload(format_id, [{'Item': 'Pipe', 'Qty': 2}], [1],
                                           labourType='SUPPLY_LABOUR')).get_json()['data']['id']

    res = client.post('/api/admin/created-excel-files/merge', headers=headers['admin'], json={'fileIds': [first]})
    assert res.status_code == 400
    res = client.post('/api/admin/created-excel-files/merge', headers=headers['admin'],
                      json={'fileIds': [first, str(first)]})
    assert res.status_code == 400
    res = client.post('/api/admin/created-excel-files/merge', headers=headers['admin'],
                      json={'fileIds': [first, other_type]})
    assert res.status_code == 400

    res = client.post('/api/admin/created-excel-files/merge', headers=headers['admin'],
                      json={'fileIds': [first, second]})
    assert res.status_code == 201
    merged = res.get_json()['data']
    assert merged['rowCount'] == 3
    assert merged['mergedFrom'] == [first, second]
    assert merged['mergeCount'] == 2

    res = client.get('/api/admin/created-excel-files?isMerged=true', headers=headers['admin'])
    assert sorted(f['id'] for f in res.get_json()['data']) == [first, second]

    res = client.post('/api/admin/created-excel-files/merge', headers=headers['admin'],
                      json={'fileIds': [first, second]})
    assert res.status_code == 400

    res = client.get(f"/api/admin/created-excel-files/{merged['id']}/download", headers=headers['admin'])
    ws = load_workbook(io.BytesIO(res.data)).active
    assert [ws.cell(row=r, column=1).value for r in range(2, 5)] == ['Cable', 'Pipe', 'Valve']

    res = client.get('/api/employee/created-excel-files', headers=headers['employee'])
    assert res.get_json()['data'] == []


def test_admin_list_filters_and_delete(client, headers, format_id):
    client.post('/api/employee/save-excel', headers=headers['employee'],
                json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}], labourType='SUBCONTRACTOR'))
    res = client.get('/api/admin/created-excel-files?labourType=SUBCONTRACTOR', headers=headers['admin'])
    files = res.get_json()['data']
    assert len(files) == 1
    assert client.get('/api/admin/created-excel-files?labourType=SUPPLY_LABOUR',
                      headers=headers['admin']).get_json()['data'] == []

    assert client.delete(f"/api/admin/created-excel-files/{files[0]['id']}",
                         headers=headers['admin']).status_code == 200
    assert client.delete(f"/api/admin/created-excel-files/{files[0]['id']}",
                         headers=headers['admin']).status_code == 404


def test_admin_view_and_edit_created_file(app, client, headers, format_id):
    file_id = client.post('/api/employee/save-excel', headers=headers['employee'],
                          json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}, {'Item': 'Pipe', 'Qty': 2}]
                                        )).get_json()['data']['id']

    res = client.get(f'/api/admin/created-excel-files/{file_id}/view', headers=headers['admin'])
    data = res.get_json()['data']
    assert data['headers'] == ['Item', 'Qty', 'Needed By']
    assert [r['Item'] for r in data['data']] == ['Cable', 'Pipe']
    assert client.get(f'/api/admin/created-excel-files/{file_id}/view', headers=headers['user']).status_code == 403

    res = client.patch(f'/api/admin/created-excel-files/{file_id}/row', headers=headers['admin'],
                       json={'rowIndex': 1, 'columnName': 'Qty', 'value': 9})
    assert res.status_code == 200
    with app.app_context():
        created = db.session.get(CreatedExcelFile, file_id)
        assert created.rows[1]['Qty'] == 9
        ws = load_workbook(io.BytesIO(created.file_data)).active
        assert ws.cell(row=3, column=2).value == 9

    res = client.patch(f'/api/admin/created-excel-files/{file_id}/row', headers=headers['admin'],
                       json={'rowIndex': 5, 'columnName': 'Qty', 'value': 1})
    assert res.status_code == 400
    res = client.patch(f'/api/admin/created-excel-files/{file_id}/row', headers=headers['admin'],
                       json={'rowIndex': 0, 'columnName': 'Colour', 'value': 1})
    assert res.status_code == 400


def test_created_file_unique_values(client, headers, format_id):
    file_id = client.post('/api/employee/save-excel', headers=headers['employee'],
                          json=_payload(format_id, [{'Item': 'Cable', 'Qty': 1}, {'Item': 'Pipe', 'Qty': 2},
                                                    {'Item': 'Cable', 'Qty': 3}], [0, 1, 0]
                                        )).get_json()['data']['id']
    res = client.get(f'/api/admin/created-excel-files/{file_id}/unique-values?column=Item', headers=headers['admin'])
    assert res.get_json()['data'] == {'column': 'Item', 'uniqueValues': ['Cable', 'Pipe']}
    res = client.get(f'/api/admin/created-excel-files/{file_id}/unique-values', headers=headers['admin'])
    assert res.status_code == 400
