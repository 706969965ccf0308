# utils/attendance.py
"""
Attendance sheet parsing, row validation and normalisation
Used by the e1 upload and the merge into AttendanceMaster
"""

import re
import logging

from models import Role, AttendanceMaster

logger = logging.getLogger(__name__)

# Header variants per mapped field, matched case-insensitively
COLUMN_VARIANTS = {
    'empId': ['empid', 'employee id', 'employee_id', 'emp id', 'emp_id', 'id', 'employeeid'],
    'name': ['name', 'employee name', 'emp name', 'full name', 'employee_name'],
    'role': ['role', 'designation', 'position', 'job title', 'job_title'],
    'site': ['site', 'location', 'project', 'camp', 'worksite'],
    'date': ['date', 'attendance date', 'att_date', 'attendance_date'],
    'time': ['time', 'time in', 'time_in', 'check in', 'check_in', 'timein'],
    'status': ['status', 'attendance', 'attendance status', 'present/absent', 'present_absent'],
}

STANDARD_STATUSES = ['Present', 'Absent', 'Leave', 'Vacation', 'Sick Leave', 'Week Off', 'Visa Medical']

DATE_RE = re.compile(r'^(\d{4}-\d{2}-\d{2}|\d{2}[/\-]\d{2}[/\-]\d{4})$')
TIME_RE = re.compile(r'^(\d{1,2}:\d{2}(:\d{2})?(\s?(AM|PM))?)$', re.IGNORECASE)


def detect_column_mapping(headers):
    """
    Map each field to a header matching one of its variants
    Exact matches win over partial ones, so 'Attendance Date' stays a date
    column even when the sheet also has a 'Status' column
    """
    mapping = {}
    lowered = [(header, str(header).strip().lower()) for header in headers]
    lowered = [(header, low) for header, low in lowered if low]
    for field, variants in COLUMN_VARIANTS.items():
        exact = [header for header, low in lowered if low in variants]
        if exact:
            mapping[field] = exact[0]
            continue
        for header, low in lowered:
            if any(v in low or low in v for v in variants):
                mapping[field] = header
                break
    return mapping


def parse_attendance_rows(headers, rows, mapping=None):
    """
    Map spreadsheet rows onto attendance fields
    Each result is {'raw': {...}, 'empId': ..., ...}; rows with neither an
    employee id nor a name are skipped
    """
    mapping = mapping or detect_column_mapping(headers)
    parsed = []
    for row in rows:
        entry = {'raw': dict(row)}
        for field, header in mapping.items():
            value = row.get(header)
            if value is not None and str(value).strip() != '':
                entry[field] = str(value).strip()
        if entry.get('empId') or entry.get('name'):
            parsed.append(entry)
    return parsed


def normalize_date(value):
    """DD/MM/YYYY, DD-MM-YYYY and YYYY-MM-DD become YYYY-MM-DD"""
    value = (value or '').strip()
    # Spreadsheet datetimes arrive as 'YYYY-MM-DD HH:MM:SS'
    if len(value) > 10 and value[4:5] == '-' and value[10:11] == ' ':
        value = value[:10]
    for sep in ('/', '-'):
        parts = value.split(sep)
        if len(parts) != 3:
            continue
        if len(parts[0]) == 4:
            return f"{parts[0]}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"
        if len(parts[2]) == 4:
            return f"{parts[2]}-{parts[1].zfill(2)}-{parts[0].zfill(2)}"
    return value


def normalize_time(value):
    return (value or '').strip()


def infer_site_type(site):
    site_upper = (site or '').upper()
    if 'HEAD' in site_upper or 'OFFICE' in site_upper:
        return 'HEAD_OFFICE'
    if 'MEP' in site_upper:
        return 'MEP'
    if 'CIVIL' in site_upper:
        return 'CIVIL'
    if 'SUPPORT' in site_upper:
        return 'SUPPORT'
    if 'OUTSOURCE' in site_upper:
        return 'OUTSOURCED'
    return 'OTHER'


def is_present(status):
    status = (status or '').strip().lower()
    return 'present' in status or status == 'p'


def is_absent(status):
    status = (status or '').strip().lower()
    return 'absent' in status or 'leave' in status or status == 'a'


def validate_attendance_row(row):
    """
    Validate one mapped attendance row
    Returns (validation, message) with validation in OK, WARNING, ERROR
    """
    emp_id = (row.get('empId') or '').strip()
    date_value = (row.get('date') or '').strip()
    status = (row.get('status') or '').strip()

    if not emp_id:
        return 'ERROR', 'Employee ID is required'
    if not date_value:
        return 'ERROR', 'Date is required'
    if not status:
        return 'ERROR', 'Status is required'

    normalized_date = normalize_date(date_value)
    if not DATE_RE.match(date_value) and not DATE_RE.match(normalized_date):
        return 'WARNING', 'Date format may be invalid'

    time_value = (row.get('time') or '').strip()
    if time_value and not TIME_RE.match(time_value):
        return 'WARNING', 'Time format may be invalid'

    if status.lower() not in [s.lower() for s in STANDARD_STATUSES]:
        return 'WARNING', f"Status '{status}' may not be standard"

    role_name = (row.get('role') or '').strip()
    if role_name:
        role = Role.query.filter_by(name=role_name.upper()).first()
        if role is None:
            return 'WARNING', f"Role '{role_name}' not found in roles table"
        allowed = [s.lower() for s in (role.allowed_statuses or [])]
        if allowed and status.lower() not in allowed:
            return 'WARNING', f"Status '{status}' may not be allowed for role '{role_name}'"

    existing = AttendanceMaster.query.filter_by(emp_id=emp_id, date=normalized_date).first()
    if existing:
        return 'WARNING', 'Duplicate attendance record found (will be updated)'

    return 'OK', 'Validation passed'
