from models import db, Employee, Upload, AttendanceRaw, AttendanceMaster, Role
from utils.attendance import (
    detect_column_mapping, parse_attendance_rows, normalize_date, validate_attendance_row, infer_site_type
)

from conftest import upload_data

ATTENDANCE = [
    {'Employee ID': 'EMP001', 'Name': 'John Smith', 'Role': 'Engineer', 'Site': 'Head Office',
     'Date': '2024-05-01', 'Time': '08:00', 'Status': 'Present'},
    {'Employee ID': 'EMP500', 'Name': 'Sami Ali', 'Role': 'Fitter', 'Site': 'MEP Tower',
     'Date': '01/05/2024', 'Time': '', 'Status': 'Absent'},
    {'Employee ID': 'EMP501', 'Name': 'No Status', 'Role': 'Fitter', 'Site': 'MEP Tower',
     'Date': '2024-05-01', 'Time': '', 'Status': ''},
]


def _upload(client, headers, rows=ATTENDANCE, filename='e1.xlsx'):
    return client.post('/api/e1/upload', headers=headers['admin'],
                       data=upload_data(rows, filename, field='files'),
                       content_type='multipart/form-data')


def test_detect_column_mapping_prefers_exact_headers():
    mapping = detect_column_mapping(['Emp ID', 'Full Name', 'Designation', 'Location',
                                     'Attendance Date', 'Time In', 'Attendance Status'])
    assert mapping == {
        'empId': 'Emp ID',
        'name': 'Full Name',
        'role': 'Designation',
        'site': 'Location',
        'date': 'Attendance Date',
        'time': 'Time In',
        'status': 'Attendance Status',
    }


def test_parse_skips_rows_without_id_or_name():
    headers = ['Employee ID', 'Name', 'Status']
    rows = [{'Employee ID': 'E1', 'Name': '', 'Status': 'Present'},
            {'Employee ID': '', 'Name': '', 'Status': 'Absent'}]
    parsed = parse_attendance_rows(headers, rows)
    assert len(parsed) == 1
    assert parsed[0]['empId'] == 'E1'
    assert parsed[0]['raw'] == rows[0]
    assert 'name' not in parsed[0]


def test_normalize_date_and_site_type():
    assert normalize_date('01/05/2024') == '2024-05-01'
    assert normalize_date('1-5-2024') == '2024-05-01'
    assert normalize_date('2024-05-01 00:00:00') == '2024-05-01'
    assert infer_site_type('Head Office') == 'HEAD_OFFICE'
    assert infer_site_type('Civil Yard 3') == 'CIVIL'
    assert infer_site_type('Camp 7') == 'OTHER'


def test_validate_attendance_row(app):
    with app.app_context():
        db.session.add(Role(name='ENGINEER', allowed_statuses=['Present']))
        db.session.commit()

        assert validate_attendance_row({'date': '2024-05-01', 'status': 'Present'})[0] == 'ERROR'
        assert validate_attendance_row({'empId': 'E1', 'date': 'soon', 'status': 'Present'}) == \
            ('WARNING', 'Date format may be invalid')
        assert validate_attendance_row({'empId': 'E1', 'date': '2024-05-01', 'status': 'Late'})[0] == 'WARNING'
        assert 'not found' in validate_attendance_row(
            {'empId': 'E1', 'date': '2024-05-01', 'status': 'Present', 'role': 'Pilot'})[1]
        assert 'may not be allowed' in validate_attendance_row(
            {'empId': 'E1', 'date': '2024-05-01', 'status': 'Absent', 'role': 'engineer'})[1]
        assert validate_attendance_row(
            {'empId': 'E1', 'date': '2024-05-01', 'status': 'Present', 'role': 'Engineer'}) == \
            ('OK', 'Validation passed')

        db.session.add(AttendanceMaster(emp_id='E1', date='2024-05-01', status='Present'))
        db.session.commit()
        assert validate_attendance_row({'empId': 'E1', 'date': '01/05/2024', 'status': 'Present'})[1] == \
            'Duplicate attendance record found (will be updated)'


def test_upload_parses_into_raw(app, client, headers):
    res = _upload(client, headers)
    assert res.status_code == 200
    result = res.get_json()['data'][0]
    assert result['success'] is True
    assert result['rowsParsed'] == 3

    with app.app_context():
        upload = Upload.query.filter_by(file_id=result['fileId']).first()
        assert upload.status == 'parsed'
        assert len(AttendanceRaw.query.filter_by(file_id=result['fileId']).first().rows) == 3


def test_upload_requires_files(client, headers):
    res = client.post('/api/e1/upload', headers=headers['admin'], data={},
                      content_type='multipart/form-data')
    assert res.status_code == 400


def test_merge_creates_master_records_and_employees(app, client, headers):
    _upload(client, headers)

    res = client.post('/api/merge/trigger', headers=headers['admin'])
    body = res.get_json()
    assert body['merged'] == 2
    assert body['errors'] == 1
    assert body['processedFiles'] == 1

    with app.app_context():
        assert AttendanceMaster.query.count() == 2
        record = AttendanceMaster.query.filter_by(emp_id='EMP500').first()
        assert record.date == '2024-05-01'
        assert record.status == 'Absent'
        new_employee = Employee.query.filter_by(emp_id='EMP500').first()
        assert new_employee.site_type == 'MEP'
        assert Upload.query.first().status == 'merged'
        assert AttendanceRaw.query.first().status == 'merged'

    res = client.post('/api/merge/trigger', headers=headers['admin'])
    assert res.get_json()['merged'] == 0
    assert res.get_json()['message'] == 'No new records to merge'


def test_merge_updates_existing_day(app, client, headers):
    _upload(client, headers, ATTENDANCE[:1])
    client.post('/api/merge/trigger', headers=headers['admin'])

    changed = [dict(ATTENDANCE[0], Status='Sick Leave')]
    _upload(client, headers, changed, 'e1-fix.xlsx')
    client.post('/api/merge/trigger', headers=headers['admin'])

    with app.app_context():
        records = AttendanceMaster.query.filter_by(emp_id='EMP001').all()
        assert len(records) == 1
        assert records[0].status == 'Sick Leave'
        assert records[0].validation == 'WARNING'


def test_master_listing(client, headers):
    _upload(client, headers)
    client.post('/api/merge/trigger', headers=headers['admin'])

    res = client.get('/api/admin/master?date=2024-05-01', headers=headers['user'])
    body = res.get_json()
    assert body['pagination']['total'] == 2
    sites = [r['site'] for r in body['data']]
    assert sites == sorted(sites)
    assert body['data'][0]['siteType'] == 'HEAD_OFFICE'


def test_roles_endpoints(client, headers):
    res = client.post('/api/admin/roles', headers=headers['admin'],
                      json={'name': 'foreman', 'allowedStatuses': ['Present', 'Absent']})
    assert res.status_code == 201
    assert res.get_json()['data']['name'] == 'FOREMAN'
    assert client.post('/api/admin/roles', headers=headers['admin'],
                       json={'name': 'Foreman'}).status_code == 400

    res = client.get('/api/admin/roles', headers=headers['admin'])
    assert [r['name'] for r in res.get_json()['data']] == ['FOREMAN']


def test_dashboard_counts_day(client, headers):
    _upload(client, headers)
    client.post('/api/merge/trigger', headers=headers['admin'])

    res = client.get('/api/admin/dashboard?date=2024-05-01', headers=headers['user'])
    data = res.get_json()['data']
    assert data['metrics']['totalHeadcount'] == 2
    assert data['metrics']['present'] == 1
    assert data['metrics']['absent'] == 1
    assert data['dates'][-1] == '2024-05-01'
    assert data['absentCountDateWise'][-1] == 1


def test_clear_data_is_super_admin_only(app, client, headers):
    _upload(client, headers)
    assert client.post('/api/admin/clear-data', headers=headers['admin']).status_code == 403

    res = client.post('/api/admin/clear-data', headers=headers['super'])
    assert res.status_code == 200
    with app.app_context():
        assert Upload.query.count() == 0
        assert Employee.query.count() == 0


def test_dashboard_rejects_bad_date(client, headers):
    for value in ('abc', '2024-13-01', '2024-5-1x'):
        res = client.get(f'/api/admin/dashboard?date={value}', headers=headers['user'])
        assert res.status_code == 400
        assert res.get_json()['error'] == 'date must be YYYY-MM-DD'


def test_master_listing_total_pages(client, headers):
    _upload(client, headers)
    client.post('/api/merge/trigger', headers=headers['admin'])

    res = client.get('/api/admin/master?date=2024-05-01&limit=1&page=2', headers=headers['user'])
    body = res.get_json()
    assert body['pagination'] == {'page': 2, 'limit': 1, 'total': 2, 'totalPages': 2}
    assert len(body['data']) == 1
