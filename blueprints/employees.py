# blueprints/employees.py
"""
Employee management API
CRUD, counts, bulk create, active toggle, template download and export
"""

import logging
from datetime import datetime
from flask import Blueprint, request
from sqlalchemy import or_
from models import db, Employee, ExcelFormat, SITE_TYPES
from utils.activity_logger import log_activity
from utils.decorators import auth_required, admin_required
from utils.excel_upload_handler import LABOUR_COLUMNS, LABOUR_SAMPLE_ROWS
from utils.helpers import (
    ApiError, get_json_body, paginate_query, parse_bool, parse_int, success_response, error_response
)
from utils.spreadsheets import build_workbook, send_workbook

logger = logging.getLogger(__name__)

employees_bp = Blueprint('employees', __name__)

REQUIRED_FIELDS = (('empId', 'Employee ID'), ('name', 'Name'), ('site', 'Site'), ('role', 'Role'))


def _employee_fields(data, partial=False):
    """Validate an employee payload and map it onto model attribute names"""
    fields = {}
    if not partial:
        missing = [label for key, label in REQUIRED_FIELDS if not str(data.get(key) or '').strip()]
        if missing:
            raise ApiError(f"Missing required fields: {', '.join(missing)}")

    for key, attr in (('empId', 'emp_id'), ('name', 'name'), ('site', 'site'),
                      ('role', 'role'), ('department', 'department'), ('projectId', 'project_id')):
        if key in data:
            value = str(data.get(key) or '').strip()
            if attr in ('emp_id', 'name', 'site', 'role') and not value:
                raise ApiError(f'{key} cannot be empty')
            fields[attr] = value or None

    if 'siteType' in data or not partial:
        site_type = str(data.get('siteType') or 'OTHER').strip().upper()
        if site_type not in SITE_TYPES:
            raise ApiError(f"Invalid site type '{site_type}'")
        fields['site_type'] = site_type

    if 'active' in data:
        fields['active'] = parse_bool(data.get('active'), True)

    return fields


def _get_employee_or_404(employee_id):
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        raise ApiError('Employee not found', 404)
    return employee


# ==========================================
# LISTING AND COUNTS
# ==========================================

@employees_bp.route('/api/admin/employees', methods=['GET'])
@auth_required
def list_employees():
    """Paginated employee list sorted by employee ID"""
    try:
        query = Employee.query
        search = request.args.get('search', '').strip()
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(
                Employee.emp_id.ilike(pattern),
                Employee.name.ilike(pattern),
                Employee.site.ilike(pattern)
            ))
        site_type = request.args.get('siteType')
        if site_type:
            query = query.filter(Employee.site_type == site_type.upper())
        active = parse_bool(request.args.get('active'))
        if active is not None:
            query = query.filter(Employee.active == active)

        employees, pagination = paginate_query(query.order_by(Employee.emp_id.asc()), default_limit=50)
        return success_response([e.to_dict() for e in employees], pagination=pagination)

    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error listing employees: {e}")
        return error_response('Failed to fetch employees', 500)


@employees_bp.route('/api/admin/employees/counts', methods=['GET'])
@auth_required
def employee_counts():
    try:
        active = Employee.query.filter_by(active=True).count()
        inactive = Employee.query.filter_by(active=False).count()
        return success_response({'active': active, 'inactive': inactive, 'total': active + inactive})
    except Exception as e:
        logger.error(f"Error counting employees: {e}")
        return error_response('Failed to fetch employee counts', 500)


# ==========================================
# CREATE / READ / UPDATE / DELETE
# ==========================================

@employees_bp.route('/api/admin/employees', methods=['POST'])
@admin_required
def create_employee():
    data = get_json_body()
    fields = _employee_fields(data)

    try:
        if Employee.query.filter_by(emp_id=fields['emp_id']).first():
            return error_response('Employee ID already exists', 400)

        employee = Employee(**fields)
        if data.get('password'):
            employee.set_password(data['password'])
        db.session.add(employee)
        db.session.commit()

        log_activity('CREATE', 'EMPLOYEE', f'Created employee {employee.emp_id} ({employee.name})',
                     entity_id=employee.id, project_id=employee.project_id)
        return success_response(employee.to_dict(), 201, message='Employee created successfully')

    except Exception as e:
        logger.error(f"Error creating employee: {e}")
        db.session.rollback()
        return error_response('Failed to create employee', 500)


@employees_bp.route('/api/admin/employees/<int:employee_id>', methods=['GET'])
@admin_required
def get_employee(employee_id):
    return success_response(_get_employee_or_404(employee_id).to_dict())


@employees_bp.route('/api/admin/employees/<int:employee_id>', methods=['PUT'])
@admin_required
def update_employee(employee_id):
    employee = _get_employee_or_404(employee_id)
    data = get_json_body()
    fields = _employee_fields(data, partial=True)

    try:
        new_emp_id = fields.get('emp_id')
        if new_emp_id and new_emp_id != employee.emp_id:
            if Employee.query.filter_by(emp_id=new_emp_id).first():
                return error_response('Employee ID already exists', 400)

        for attr, value in fields.items():
            setattr(employee, attr, value)
        if data.get('password'):
            employee.set_password(data['password'])
        db.session.commit()

        log_activity('EDIT', 'EMPLOYEE', f'Updated employee {employee.emp_id}',
                     entity_id=employee.id, project_id=employee.project_id,
                     details={'fields': sorted(fields)})
        return success_response(employee.to_dict(), message='Employee updated successfully')

    except Exception as e:
        logger.error(f"Error updating employee {employee_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update employee', 500)


@employees_bp.route('/api/admin/employees/<int:employee_id>', methods=['DELETE'])
@admin_required
def delete_employee(employee_id):
    employee = _get_employee_or_404(employee_id)
    try:
        emp_id = employee.emp_id
        db.session.delete(employee)
        db.session.commit()

        log_activity('DELETE', 'EMPLOYEE', f'Deleted employee {emp_id}', entity_id=employee_id)
        return success_response(message='Employee deleted successfully')

    except Exception as e:
        logger.error(f"Error deleting employee {employee_id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete employee', 500)


@employees_bp.route('/api/admin/employees/<int:employee_id>/toggle-active', methods=['POST'])
@admin_required
def toggle_employee_active(employee_id):
    employee = _get_employee_or_404(employee_id)
    try:
        employee.active = not employee.active
        db.session.commit()

        state = 'activated' if employee.active else 'deactivated'
        log_activity('TOGGLE_STATUS', 'EMPLOYEE', f'Employee {employee.emp_id} {state}',
                     entity_id=employee.id)
        return success_response(employee.to_dict(), message=f'Employee {state} successfully')

    except Exception as e:
        logger.error(f"Error toggling employee {employee_id}: {e}")
        db.session.rollback()
        return error_response('Failed to toggle employee status', 500)


@employees_bp.route('/api/admin/employees/<int:employee_id>/assign-format', methods=['POST'])
@admin_required
def assign_format_to_employee(employee_id):
    """Add or remove one employee on a format's assignment list"""
    employee = _get_employee_or_404(employee_id)
    data = get_json_body()
    excel_format = db.session.get(ExcelFormat, parse_int(data.get('formatId'), 'formatId'))
    if excel_format is None:
        return error_response('Format not found', 404)
    assign = parse_bool(data.get('assign', True))

    assigned = [] if excel_format.assigned_to_type != 'employee' else list(excel_format.assigned_to or [])
    if assign:
        excel_format.assigned_to_type = 'employee'
        if employee.id not in assigned:
            assigned.append(employee.id)
    elif employee.id in assigned:
        assigned.remove(employee.id)
    if excel_format.assigned_to_type == 'employee':
        excel_format.assigned_to = assigned

    db.session.commit()
    action = 'Assigned' if assign else 'Unassigned'
    log_activity('EDIT', 'EXCEL', f"{action} format '{excel_format.name}' for employee {employee.emp_id}",
                 entity_id=excel_format.id)
    return success_response(excel_format.to_dict())


@employees_bp.route('/api/admin/employees/bulk', methods=['POST'])
@admin_required
def bulk_create_employees():
    """Create many employees; each failure is reported without stopping the batch"""
    data = get_json_body()
    items = data.get('employees')
    if not isinstance(items, list) or not items:
        return error_response('employees must be a non-empty list', 400)

    created = 0
    errors = []
    seen = set()
    for index, item in enumerate(items):
        try:
            fields = _employee_fields(item if isinstance(item, dict) else {})
            emp_id = fields['emp_id']
            if emp_id in seen or Employee.query.filter_by(emp_id=emp_id).first():
                errors.append(f'Employee ID {emp_id} already exists')
                continue
            employee = Employee(**fields)
            if item.get('password'):
                employee.set_password(item['password'])
            db.session.add(employee)
            db.session.flush()
            seen.add(emp_id)
            created += 1
        except ApiError as e:
            errors.append(f'Item {index + 1}: {e.message}')
        except Exception as e:
            logger.error(f"Bulk employee item {index + 1} failed: {e}")
            errors.append(f'Item {index + 1}: {e}')

    try:
        db.session.commit()
    except Exception as e:
        logger.error(f"Bulk employee commit failed: {e}")
        db.session.rollback()
        return error_response('Failed to create employees', 500)

    if created:
        log_activity('CREATE', 'EMPLOYEE', f'Bulk created {created} employees',
                     details={'created': created, 'failed': len(errors)})
    return success_response({'created': created, 'failed': len(errors), 'errors': errors})


# ==========================================
# TEMPLATE AND EXPORT
# ==========================================

@employees_bp.route('/api/admin/employees/template', methods=['GET'])
@admin_required
def download_employee_template():
    headers = LABOUR_COLUMNS['OUR_LABOUR']
    sample = dict(zip(headers, LABOUR_SAMPLE_ROWS['OUR_LABOUR']))
    wb = build_workbook(headers, [sample], sheet_title='Employees')
    return send_workbook(wb, 'employee_template.xlsx')


@employees_bp.route('/api/admin/employees/export', methods=['GET'])
@auth_required
def export_employees():
    """Export current employees to Excel"""
    try:
        headers = LABOUR_COLUMNS['OUR_LABOUR']
        rows = [{
            'Employee ID': e.emp_id,
            'Name': e.name,
            'Site': e.site,
            'Site Type': e.site_type,
            'Role': e.role,
            'Department': e.department or '',
            'Active': 'Yes' if e.active else 'No',
        } for e in Employee.query.order_by(Employee.emp_id.asc()).all()]

        wb = build_workbook(headers, rows, sheet_title='Employees')
        return send_workbook(wb, f'employees_export_{datetime.now().strftime("%Y%m%d_%H%M%S")}.xlsx')

    except Exception as e:
        logger.error(f"Error exporting employees: {e}")
        return error_response('Error exporting employees', 500)
