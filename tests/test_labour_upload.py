import io

from models import db, Employee, SupplyLabour, Subcontractor, ExcelUpload, UploadLog
from utils.excel_upload_handler import ExcelUploadValidator

from conftest import upload_data

OUR_LABOUR = [
    {'Employee ID': 'EMP010', 'Name': 'Ali Hassan', 'Site': 'MEP Tower', 'Site Type': 'MEP',
     'Role': 'Electrician', 'Department': 'MEP', 'Active': 'Yes'},
    {'Employee ID': 'EMP011', 'Name': 'Ravi Kumar', 'Site': 'Civil Yard', 'Site Type': 'civil',
     'Role': 'Mason', 'Department': '', 'Active': 'No'},
    {'Employee ID': '', 'Name': 'Nobody', 'Site': '', 'Site Type': 'MEP', 'Role': 'Helper',
     'Department': '', 'Active': ''},
]


def test_validator_reports_missing_fields():
    data, errors = ExcelUploadValidator().validate_row('OUR_LABOUR', {'Name': 'X'}, 2)
    assert data is None
    assert errors == ['Row 2: Missing required fields: Employee ID, Site, Role']


def test_validator_normalizes_site_type_and_active():
    data, errors = ExcelUploadValidator().validate_row('OUR_LABOUR', {
        'Employee ID': 'E1', 'Name': 'A', 'Site': 'S', 'Role': 'R', 'Site Type': 'head office', 'Active': 'no'
    }, 2)
    assert errors == []
    assert data['site_type'] == 'HEAD_OFFICE'
    assert data['active'] is False


def test_validator_rejects_bad_supply_status_and_negative_headcount():
    validator = ExcelUploadValidator()
    _, errors = validator.validate_row('SUPPLY_LABOUR', {
        'Employee ID': 'S1', 'Name': 'A', 'Trade': 'Mason', 'Company Name': 'ABC', 'Status': 'Late'
    }, 3)
    assert 'must be PRESENT or ABSENT' in errors[0]

    _, errors = validator.validate_row('SUBCONTRACTOR', {
        'Company Name': 'XYZ', 'Trade': 'Paint', 'Scope of Work': 'Walls', 'Employees Present': -2
    }, 4)
    assert errors == ['Row 4: Employees Present cannot be negative']


def test_upload_our_labour(app, client, headers):
    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data=upload_data(OUR_LABOUR, 'labour.xlsx', labourType='OUR_LABOUR'),
                      content_type='multipart/form-data')
    assert res.status_code == 200
    data = res.get_json()['data']
    assert data['created'] == 2
    assert data['failed'] == 1
    assert data['errors'][0].startswith('Row 4: Missing required fields')

    with app.app_context():
        ali = Employee.query.filter_by(emp_id='EMP010').first()
        assert ali.site_type == 'MEP'
        assert Employee.query.filter_by(emp_id='EMP011').first().active is False
        upload = db.session.get(ExcelUpload, data['uploadId'])
        assert upload.status == 'ERROR'
        assert upload.processed_count == 2
        assert UploadLog.query.count() == 1


def test_reupload_updates_existing_employee(app, client, headers):
    rows = [{'Employee ID': 'EMP001', 'Name': 'John Smith', 'Site': 'Civil Yard', 'Site Type': 'CIVIL',
             'Role': 'Foreman', 'Department': 'Civil', 'Active': 'Yes'}]
    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data=upload_data(rows, labourType='OUR_LABOUR'),
                      content_type='multipart/form-data')
    assert res.get_json()['data']['created'] == 1

    with app.app_context():
        assert Employee.query.count() == 1
        employee = Employee.query.first()
        assert employee.role == 'Foreman'
        assert employee.check_password('secret123')


def test_upload_supply_labour_upserts_on_company(app, client, headers):
    rows = [
        {'Employee ID': 'SL1', 'Name': 'Ahmed', 'Trade': 'Mason', 'Company Name': 'ABC', 'Status': 'present'},
        {'Employee ID': 'SL1', 'Name': 'Ahmed', 'Trade': 'Mason', 'Company Name': 'DEF', 'Status': 'ABSENT'},
    ]
    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data=upload_data(rows, labourType='SUPPLY_LABOUR', projectId='P1'),
                      content_type='multipart/form-data')
    assert res.get_json()['data']['created'] == 2
    with app.app_context():
        assert SupplyLabour.query.count() == 2
        assert SupplyLabour.query.filter_by(company_name='ABC').first().status == 'PRESENT'

    res = client.get('/api/admin/supply-labour?companyName=DEF', headers=headers['user'])
    assert res.get_json()['data'][0]['status'] == 'ABSENT'


def test_subcontractor_upload_requires_project(client, headers):
    rows = [{'Company Name': 'XYZ', 'Trade': 'Electrical', 'Scope of Work': 'Cabling', 'Employees Present': 12}]
    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data=upload_data(rows, labourType='SUBCONTRACTOR'),
                      content_type='multipart/form-data')
    assert res.status_code == 400


def test_subcontractor_upload_is_unique_per_project(app, client, headers):
    rows = [{'Company Name': 'XYZ', 'Trade': 'Electrical', 'Scope of Work': 'Cabling', 'Employees Present': 12}]
    for present in (12, 15):
        rows[0]['Employees Present'] = present
        client.post('/api/admin/excel/upload', headers=headers['admin'],
                    data=upload_data(rows, labourType='SUBCONTRACTOR', projectId='P1'),
                    content_type='multipart/form-data')
    with app.app_context():
        assert Subcontractor.query.count() == 1
        assert Subcontractor.query.first().employees_present == 15


def test_user_role_needs_project_and_upload_permission(app, client, headers, ids):
    form = dict(labourType='OUR_LABOUR')
    res = client.post('/api/admin/excel/upload', headers=headers['user'],
                      data=upload_data(OUR_LABOUR[:1], **form), content_type='multipart/form-data')
    assert res.status_code == 400

    client.post(f"/api/admin/users/{ids['user']}/toggle-upload", headers=headers['admin'])
    res = client.post('/api/admin/excel/upload', headers=headers['user'],
                      data=upload_data(OUR_LABOUR[:1], projectId='P1', **form),
                      content_type='multipart/form-data')
    assert res.status_code == 403
    assert res.get_json()['error'] == 'Upload permission required'


def test_upload_rejects_bad_files(client, headers):
    res = client.post('/api/admin/excel/upload', headers=headers['admin'], data={},
                      content_type='multipart/form-data')
    assert res.status_code == 400
    assert res.get_json()['error'] == 'No file provided'

    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data={'file': (io.BytesIO(b'hello'), 'notes.txt')},
                      content_type='multipart/form-data')
    assert res.status_code == 400

    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data={'file': (io.BytesIO(b'not a workbook'), 'broken.xlsx'), 'labourType': 'OUR_LABOUR'},
                      content_type='multipart/form-data')
    assert res.status_code == 400
    assert res.get_json()['error'].startswith('Error reading file')


def test_upload_history(client, headers):
    client.post('/api/admin/excel/upload', headers=headers['admin'],
                data=upload_data(OUR_LABOUR[:1], labourType='OUR_LABOUR'),
                content_type='multipart/form-data')
    res = client.get('/api/admin/uploads', headers=headers['admin'])
    assert res.get_json()['pagination']['total'] == 1
    res = client.get('/api/admin/uploads?type=log', headers=headers['admin'])
    assert res.get_json()['data'][0]['status'] == 'success'
    res = client.get('/api/employee/uploads', headers=headers['admin'])
    assert len(res.get_json()['data']) == 1


def test_validator_rejects_non_finite_headcount():
    validator = ExcelUploadValidator()
    for value in ('1e400', 'inf', 'ten'):
        _, errors = validator.validate_row('SUBCONTRACTOR', {
            'Company Name': 'XYZ', 'Trade': 'Paint', 'Scope of Work': 'Walls', 'Employees Present': value
        }, 5)
        assert errors == ['Row 5: Employees Present must be a number']


def test_upload_marks_error_when_processing_breaks(app, client, headers, monkeypatch):
    def broken(self, labour_type, row, row_num):
        raise RuntimeError('disk full')

    monkeypatch.setattr(ExcelUploadValidator, 'validate_row', broken)
    res = client.post('/api/admin/excel/upload', headers=headers['admin'],
                      data=upload_data(OUR_LABOUR[:1], 'labour.xlsx', labourType='OUR_LABOUR'),
                      content_type='multipart/form-data')
    assert res.status_code == 500

    with app.app_context():
        upload = ExcelUpload.query.one()
        assert upload.status == 'ERROR'
        assert upload.error_messages == ['disk full']
        assert Employee.query.count() == 1
