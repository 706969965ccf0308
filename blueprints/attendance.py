# blueprints/attendance.py
"""
Attendance pipeline API
e1 uploads -> AttendanceRaw -> merge into AttendanceMaster, plus roles,
the admin dashboard and data reset
"""

import uuid
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from flask import Blueprint, request
from werkzeug.utils import secure_filename
from models import db, Employee, Role, Upload, UploadLog, AttendanceRaw, AttendanceMaster
from utils.activity_logger import log_activity
from utils.attendance import (
    parse_attendance_rows, validate_attendance_row, normalize_date, normalize_time,
    infer_site_type, is_present, is_absent
)
from utils.decorators import auth_required, admin_required, super_admin_required, upload_permission_required
from utils.helpers import (
    ApiError, allowed_file, caller_ref, get_json_body, paginate_query, success_response, error_response
)
from utils.spreadsheets import read_rows
from utils.summary_report import categorize_role

logger = logging.getLogger(__name__)

attendance_bp = Blueprint('attendance', __name__)


# ==========================================
# UPLOAD AND MERGE
# ==========================================

@attendance_bp.route('/api/e1/upload', methods=['POST'])
@upload_permission_required
def upload_attendance_files():
    """Parse one or more attendance sheets into AttendanceRaw"""
    files = request.files.getlist('files') or request.files.getlist('file')
    files = [f for f in files if f and f.filename]
    if not files:
        return error_response('No files provided', 400)

    uploader = caller_ref()
    results = []
    for file in files:
        filename = secure_filename(file.filename) or 'attendance.xlsx'
        file_id = uuid.uuid4().hex
        try:
            if not allowed_file(file.filename):
                raise ApiError('Invalid file type. Please upload .xlsx, .xls or .csv')
            headers, rows = read_rows(file.read(), file.filename)
            parsed = parse_attendance_rows(headers, rows)
            if not parsed:
                raise ApiError('No attendance rows with an employee ID or name were found')

            db.session.add(Upload(file_id=file_id, filename=filename, uploader_id=uploader,
                                  parsed_rows_count=len(parsed), status='parsed'))
            db.session.add(AttendanceRaw(file_id=file_id, rows=parsed, status='processed'))
            db.session.add(UploadLog(user_id=uploader, file_name=filename, rows_count=len(parsed),
                                     status='success', file_id=file_id))
            db.session.commit()

            logger.info(f"Parsed attendance file {filename}: {len(parsed)} rows")
            results.append({'filename': filename, 'fileId': file_id, 'success': True,
                            'rowsParsed': len(parsed)})

        except Exception as e:
            db.session.rollback()
            message = e.message if isinstance(e, ApiError) else str(e)
            logger.error(f"Attendance upload {filename} failed: {message}")
            db.session.add(Upload(file_id=file_id, filename=filename, uploader_id=uploader,
                                  status='error', error_message=message))
            db.session.add(UploadLog(user_id=uploader, file_name=filename, status='failed',
                                     error_message=message, file_id=file_id))
            db.session.commit()
            results.append({'filename': filename, 'fileId': file_id, 'success': False, 'error': message})

    uploaded = sum(1 for r in results if r['success'])
    return success_response(results, message=f'{uploaded} of {len(results)} file(s) uploaded')


@attendance_bp.route('/api/merge/trigger', methods=['POST'])
@admin_required
def trigger_merge():
    """Merge every parsed, unmerged upload into AttendanceMaster"""
    try:
        pending = Upload.query.filter_by(status='parsed').order_by(Upload.uploaded_at.asc()).all()
        raws = []
        for upload in pending:
            raw = AttendanceRaw.query.filter_by(file_id=upload.file_id, status='processed').first()
            if raw is not None:
                raws.append((upload, raw))

        if not raws:
            return success_response(merged=0, message='No new records to merge')

        merged = 0
        errors = 0
        for upload, raw in raws:
            for row in raw.rows or []:
                validation, message = validate_attendance_row(row)
                if validation == 'ERROR':
                    errors += 1
                    continue

                emp_id = row['empId'].strip()
                record_date = normalize_date(row.get('date'))
                site = (row.get('site') or '').strip() or 'Unknown'

                employee = Employee.query.filter_by(emp_id=emp_id).first()
                if employee is None:
                    employee = Employee(
                        emp_id=emp_id,
                        name=(row.get('name') or '').strip() or 'Unknown',
                        site=site,
                        site_type=infer_site_type(site),
                        role=(row.get('role') or '').strip() or 'Unknown',
                        active=True,
                    )
                    db.session.add(employee)
                    db.session.flush()

                record = AttendanceMaster.query.filter_by(emp_id=emp_id, date=record_date).first()
                if record is None:
                    record = AttendanceMaster(emp_id=emp_id, date=record_date)
                    db.session.add(record)
                record.name = employee.name
                record.role = employee.role
                record.site = employee.site
                record.time = normalize_time(row.get('time'))
                record.status = row['status'].strip()
                record.validation = validation
                record.validation_message = message
                record.source_file_id = raw.file_id
                db.session.flush()
                merged += 1

            raw.status = 'merged'
            upload.status = 'merged'

        db.session.commit()
        log_activity('MERGE', 'EXCEL', f'Merged {merged} attendance rows from {len(raws)} file(s)',
                     details={'merged': merged, 'errors': errors})
        logger.info(f"Attendance merge: {merged} merged, {errors} errors, {len(raws)} files")

        return success_response(merged=merged, errors=errors, processedFiles=len(raws),
                                message='Merge completed')

    except Exception as e:
        logger.error(f"Merge error: {e}")
        db.session.rollback()
        return error_response(f'Merge failed: {e}', 500)


# ==========================================
# MASTER LISTING
# ==========================================

@attendance_bp.route('/api/admin/master', methods=['GET'])
@auth_required
def list_master():
    """Merged attendance, newest date first, enriched with employee data"""
    try:
        query = AttendanceMaster.query
        for arg, column in (('date', AttendanceMaster.date), ('site', AttendanceMaster.site),
                            ('empId', AttendanceMaster.emp_id)):
            if request.args.get(arg):
                query = query.filter(column == request.args[arg])
        if request.args.get('validation'):
            query = query.filter(AttendanceMaster.validation == request.args['validation'].upper())

        query = query.order_by(AttendanceMaster.date.desc(), AttendanceMaster.site.asc(),
                               AttendanceMaster.emp_id.asc())
        records, pagination = paginate_query(query, default_limit=100, max_limit=1000)

        emp_ids = {r.emp_id for r in records}
        employees = {e.emp_id: e for e in Employee.query.filter(Employee.emp_id.in_(emp_ids)).all()} if emp_ids else {}

        data = []
        for record in records:
            item = record.to_dict()
            employee = employees.get(record.emp_id)
            item['siteType'] = employee.site_type if employee else None
            item['department'] = employee.department if employee else None
            item['employeeActive'] = employee.active if employee else None
            data.append(item)

        return success_response(data, pagination=pagination)

    except Exception as e:
        logger.error(f"Error fetching master attendance: {e}")
        return error_response('Failed to fetch master data', 500)


# ==========================================
# ROLES
# ==========================================

@attendance_bp.route('/api/admin/roles', methods=['GET'])
@admin_required
def list_roles():
    roles = Role.query.order_by(Role.name.asc()).all()
    return success_response([r.to_dict() for r in roles])


@attendance_bp.route('/api/admin/roles', methods=['POST'])
@admin_required
def create_role():
    data = get_json_body()
    name = str(data.get('name') or '').strip().upper()
    if not name:
        return error_response('Role name is required', 400)

    allowed = data.get('allowedStatuses')
    if allowed is not None and (not isinstance(allowed, list) or not all(isinstance(s, str) for s in allowed)):
        return error_response('allowedStatuses must be a list of strings', 400)

    try:
        if Role.query.filter_by(name=name).first():
            return error_response('Role already exists', 400)

        role = Role(name=name, description=data.get('description'))
        if allowed is not None:
            role.allowed_statuses = [s.strip() for s in allowed if s.strip()]
        db.session.add(role)
        db.session.commit()
        return success_response(role.to_dict(), 201)

    except Exception as e:
        logger.error(f"Error creating role: {e}")
        db.session.rollback()
        return error_response('Failed to create role', 500)


# ==========================================
# DASHBOARD
# ==========================================

def _staff_bucket(role):
    role = (role or '').upper()
    if 'OFFICE' in role and 'BOY' not in role:
        return 'OFFICE'
    if 'LABOUR' in role or 'LABOR' in role:
        return 'LABOUR'
    if 'SUPERVISOR' in role:
        return 'SUPERVISOR'
    if 'FOREMAN' in role:
        return 'FOREMAN'
    if 'CHARGE' in role:
        return 'CHARGEHAND'
    if 'DOCUMENT' in role:
        return 'DOCUMENT CONTROL'
    if 'SECURITY' in role or 'BOY' in role:
        return 'OFFICE BOY/SECURITY'
    if 'STAFF' in role:
        return 'STAFF'
    if 'SUPPORT' in role:
        return 'SUPPORTING STAFF'
    return 'BLANK'


@attendance_bp.route('/api/admin/dashboard', methods=['GET'])
@auth_required
def dashboard():
    """Headcount and attendance metrics for a day (default today)"""
    value = request.args.get('date')
    try:
        base = datetime.strptime(value, '%Y-%m-%d').date() if value else date.today()
    except ValueError:
        return error_response('date must be YYYY-MM-DD', 400)
    day = base.isoformat()

    try:
        employees = Employee.query.all()
        total = len(employees)
        active = sum(1 for e in employees if e.active)

        statuses = [(r.status or '').lower() for r in AttendanceMaster.query.filter_by(date=day).all()]
        present = sum(1 for s in statuses if is_present(s))
        absent = sum(1 for s in statuses if is_absent(s) and 'leave' not in s)

        metrics = {
            'totalHeadcount': total,
            'activeEmployees': active,
            'inactiveEmployees': total - active,
            'present': present,
            'absent': absent,
            'absentPercent': f"{absent / total * 100:.2f}" if total else '0.00',
            'vacation': sum(1 for s in statuses if 'vacation' in s),
            'visaMedical': sum(1 for s in statuses if 'visa' in s or 'medical' in s),
            'weekOff': sum(1 for s in statuses if 'week' in s or 'off' in s),
            'sickLeave': sum(1 for s in statuses if 'sick' in s),
        }

        dates = [(base - timedelta(days=i)).isoformat() for i in range(8, -1, -1)]
        absent_by_date = []
        for d in dates:
            day_statuses = [(r.status or '').lower() for r in AttendanceMaster.query.filter_by(date=d).all()]
            absent_by_date.append(sum(1 for s in day_statuses if 'absent' in s or s == 'a'))

        recent = Upload.query.order_by(Upload.uploaded_at.desc()).limit(10).all()

        return success_response({
            'date': day,
            'metrics': metrics,
            'divisions': dict(Counter(e.site_type for e in employees)),
            'staffLabour': dict(Counter(_staff_bucket(e.role) for e in employees)),
            'categories': dict(Counter(categorize_role(e.role) for e in employees)),
            'departments': dict(Counter(e.department or 'UNASSIGNED' for e in employees)),
            'camps': dict(Counter(e.site or 'UNKNOWN' for e in employees)),
            'dates': dates,
            'absentCountDateWise': absent_by_date,
            'recentUploads': [u.to_dict() for u in recent],
        })

    except Exception as e:
        logger.error(f"Dashboard error: {e}")
        return error_response('Failed to fetch dashboard data', 500)


# ==========================================
# DATA RESET
# ==========================================

@attendance_bp.route('/api/admin/clear-data', methods=['POST'])
@super_admin_required
def clear_data():
    """Delete attendance, uploads and employees"""
    try:
        deleted = {
            'attendanceMaster': AttendanceMaster.query.delete(),
            'attendanceRaw': AttendanceRaw.query.delete(),
            'uploads': Upload.query.delete(),
            'employees': Employee.query.delete(),
        }
        db.session.commit()

        log_activity('DELETE', 'EMPLOYEE', 'Cleared attendance, upload and employee data', details=deleted)
        logger.warning(f"Data cleared by {caller_ref()}: {deleted}")
        return success_response(deleted, message='All data cleared successfully')

    except Exception as e:
        logger.error(f"Clear data error: {e}")
        db.session.rollback()
        return error_response('Failed to clear data', 500)
