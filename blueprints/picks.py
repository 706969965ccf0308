# blueprints/picks.py
"""
Template row picks
Employees claim rows of an assigned format; admins inspect, reassign and release them
"""

import logging
from flask import Blueprint, request
from flask_login import current_user
from sqlalchemy.exc import IntegrityError
from models import db, Employee, PickedTemplateRow
from blueprints.formats import get_format_or_404
from utils.activity_logger import log_activity
from utils.decorators import auth_required, admin_required
from utils.excel_formats import get_template_rows, remove_row_from_picker_files
from utils.helpers import ApiError, get_json_body, parse_int, success_response, error_response

logger = logging.getLogger(__name__)

picks_bp = Blueprint('picks', __name__)


def _caller_labels():
    """(emp_id, display name) stored on a pick"""
    if current_user.kind == 'employee':
        return current_user.emp_id, current_user.name
    return current_user.email, current_user.name


def _assigned_format(format_id):
    excel_format = get_format_or_404(format_id)
    if not excel_format.is_assigned_to(current_user):
        raise ApiError('This format is not assigned to you', 403)
    return excel_format


# ==========================================
# EMPLOYEE
# ==========================================

@picks_bp.route('/api/employee/picked-rows', methods=['GET'])
@auth_required
def get_picked_rows():
    """Rows picked by others and the caller's own picks for a format"""
    format_id = parse_int(request.args.get('formatId'), 'formatId')
    _assigned_format(format_id)

    picks = PickedTemplateRow.query.filter_by(format_id=format_id).all()
    mine = sorted(p.row_index for p in picks if p.is_owned_by(current_user))
    others = [
        {'rowIndex': p.row_index, 'empId': p.emp_id, 'empName': p.emp_name}
        for p in sorted(picks, key=lambda p: p.row_index) if not p.is_owned_by(current_user)
    ]
    return success_response({'pickedRows': others, 'myPickedRows': mine})


@picks_bp.route('/api/employee/picked-rows', methods=['POST'])
@auth_required
def pick_rows():
    """Claim template rows; rows already held by someone else are a 409"""
    data = get_json_body()
    format_id = parse_int(data.get('formatId'), 'formatId')
    indices = data.get('rowIndices')
    if indices is None and 'rowIndex' in data:
        indices = [data.get('rowIndex')]
    if not isinstance(indices, list) or not indices:
        return error_response('rowIndices must be a non-empty list', 400)
    indices = sorted({parse_int(i, 'rowIndex', minimum=0) for i in indices})

    _assigned_format(format_id)
    row_total = len(get_template_rows(format_id))
    out_of_range = [i for i in indices if i >= row_total]
    if out_of_range:
        return error_response(f'Row index out of range: {out_of_range}', 400)

    existing = {
        p.row_index: p for p in PickedTemplateRow.query.filter(
            PickedTemplateRow.format_id == format_id,
            PickedTemplateRow.row_index.in_(indices)
        ).all()
    }
    conflicts = sorted(i for i, p in existing.items() if not p.is_owned_by(current_user))
    if conflicts:
        return error_response('Some rows are already picked by another employee', 409, conflicts=conflicts)

    emp_id, emp_name = _caller_labels()
    try:
        for index in indices:
            if index in existing:
                continue
            db.session.add(PickedTemplateRow(
                format_id=format_id,
                row_index=index,
                picked_by=current_user.id,
                picked_by_kind=current_user.kind,
                emp_id=emp_id,
                emp_name=emp_name,
            ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response('Some rows were picked by another employee, please refresh', 409)
    except Exception as e:
        logger.error(f"Error picking rows: {e}")
        db.session.rollback()
        return error_response('Failed to pick rows', 500)

    mine = sorted(p.row_index for p in PickedTemplateRow.query.filter_by(format_id=format_id).all()
                  if p.is_owned_by(current_user))
    return success_response({'myPickedRows': mine}, message=f'Picked {len(indices)} row(s)')


@picks_bp.route('/api/employee/picked-rows', methods=['DELETE'])
@auth_required
def unpick_row():
    format_id = parse_int(request.args.get('formatId'), 'formatId')
    row_index = parse_int(request.args.get('rowIndex'), 'rowIndex', minimum=0)

    pick = PickedTemplateRow.query.filter_by(format_id=format_id, row_index=row_index).first()
    if pick is None or not pick.is_owned_by(current_user):
        return error_response('Pick not found', 404)

    try:
        db.session.delete(pick)
        db.session.commit()
        return success_response(message=f'Row {row_index} released')
    except Exception as e:
        logger.error(f"Error unpicking row: {e}")
        db.session.rollback()
        return error_response('Failed to release row', 500)


# ==========================================
# ADMIN
# ==========================================

@picks_bp.route('/api/admin/emp-pick/picks', methods=['GET'])
@admin_required
def admin_picks():
    """All picks of a format keyed by row index"""
    format_id = parse_int(request.args.get('formatId'), 'formatId')
    get_format_or_404(format_id)
    picks = PickedTemplateRow.query.filter_by(format_id=format_id).all()
    return success_response({str(p.row_index): p.to_dict() for p in picks})


@picks_bp.route('/api/admin/emp-pick/assign', methods=['POST'])
@admin_required
def admin_assign_pick():
    """Give a row to an employee; the previous picker loses it from their saved files"""
    data = get_json_body()
    format_id = parse_int(data.get('formatId'), 'formatId')
    row_index = parse_int(data.get('rowIndex'), 'rowIndex', minimum=0)
    employee_id = parse_int(data.get('employeeId'), 'employeeId')

    excel_format = get_format_or_404(format_id)
    if row_index >= len(get_template_rows(format_id)):
        return error_response('Row index out of range', 400)
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        return error_response('Employee not found', 404)

    try:
        pick = PickedTemplateRow.query.filter_by(format_id=format_id, row_index=row_index).first()
        previous = None
        if pick is None:
            pick = PickedTemplateRow(format_id=format_id, row_index=row_index)
            db.session.add(pick)
        elif not (pick.picked_by == employee.id and pick.picked_by_kind == 'employee'):
            previous = (pick.picked_by, pick.picked_by_kind)

        pick.picked_by = employee.id
        pick.picked_by_kind = 'employee'
        pick.emp_id = employee.emp_id
        pick.emp_name = employee.name

        if previous:
            remove_row_from_picker_files(format_id, row_index, *previous)
        db.session.commit()

        log_activity('EDIT', 'EXCEL', f"Assigned row {row_index} of '{excel_format.name}' to {employee.emp_id}",
                     entity_id=format_id, details={'rowIndex': row_index, 'previous': previous})
        return success_response(pick.to_dict(), message=f'Row {row_index} assigned to {employee.name}')

    except Exception as e:
        logger.error(f"Error assigning pick: {e}")
        db.session.rollback()
        return error_response('Failed to assign row', 500)


@picks_bp.route('/api/admin/emp-pick/release', methods=['POST', 'DELETE'])
@admin_required
def admin_release_pick():
    data = get_json_body()
    format_id = parse_int(data.get('formatId'), 'formatId')
    row_index = parse_int(data.get('rowIndex'), 'rowIndex', minimum=0)

    pick = PickedTemplateRow.query.filter_by(format_id=format_id, row_index=row_index).first()
    if pick is None:
        return success_response(message='No pick found for this row (already released)')

    try:
        holder = f'{pick.emp_name} ({pick.emp_id})'
        remove_row_from_picker_files(format_id, row_index, pick.picked_by, pick.picked_by_kind)
        db.session.delete(pick)
        db.session.commit()

        log_activity('EDIT', 'EXCEL', f'Released row {row_index} of format {format_id} from {holder}',
                     entity_id=format_id)
        return success_response(message=f'Released row {row_index} from {holder}')

    except Exception as e:
        logger.error(f"Error releasing pick: {e}")
        db.session.rollback()
        return error_response('Failed to release row', 500)
