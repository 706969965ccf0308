# blueprints/formats.py
"""
Excel formats: admin CRUD, template data, and the employee view of assigned formats
"""

import logging
from flask import Blueprint, request
from flask_login import current_user
from models import db, ExcelFormat, FormatTemplateData, PickedTemplateRow, CreatedExcelFile, ASSIGNED_TO_TYPES
from utils.activity_logger import log_activity
from utils.decorators import auth_required, admin_required
from utils.excel_formats import normalize_columns, get_template_rows, check_file_against_format, sample_row
from utils.helpers import (
    ApiError, caller_ref, get_json_body, get_uploaded_file, parse_bool, parse_int, success_response, error_response
)
from utils.spreadsheets import build_workbook, read_rows, send_workbook

logger = logging.getLogger(__name__)

formats_bp = Blueprint('formats', __name__)


def get_format_or_404(format_id):
    excel_format = db.session.get(ExcelFormat, format_id)
    if excel_format is None:
        raise ApiError('Format not found', 404)
    return excel_format


def _assignment_fields(data):
    fields = {}
    if 'assignedToType' in data:
        assigned_type = data.get('assignedToType') or 'all'
        if assigned_type not in ASSIGNED_TO_TYPES:
            raise ApiError(f"Invalid assignedToType '{assigned_type}'")
        fields['assigned_to_type'] = assigned_type
    if 'assignedTo' in data:
        assigned = data.get('assignedTo') or []
        if not isinstance(assigned, list):
            raise ApiError('assignedTo must be a list of ids')
        try:
            fields['assigned_to'] = sorted({int(i) for i in assigned})
        except (TypeError, ValueError):
            raise ApiError('assignedTo must be a list of ids')
    return fields


def _store_template_rows(excel_format, rows):
    template = FormatTemplateData.query.filter_by(format_id=excel_format.id).first()
    if template is None:
        template = FormatTemplateData(format_id=excel_format.id)
        db.session.add(template)
    template.rows = rows


def _check_uploaded_file(excel_format):
    file = get_uploaded_file('file')
    headers, rows = read_rows(file.read(), file.filename)
    return check_file_against_format(excel_format, headers, rows)


# ==========================================
# ADMIN
# ==========================================

@formats_bp.route('/api/admin/excel-formats', methods=['GET'])
@admin_required
def list_formats():
    formats = ExcelFormat.query.order_by(ExcelFormat.created_at.desc(), ExcelFormat.id.desc()).all()
    return success_response([f.to_dict() for f in formats])


@formats_bp.route('/api/admin/excel-formats', methods=['POST'])
@admin_required
def create_format():
    data = get_json_body()
    name = str(data.get('name') or '').strip()
    if not name:
        return error_response('Name and at least one column are required', 400)
    columns = normalize_columns(data.get('columns'))
    fields = _assignment_fields(data)

    try:
        excel_format = ExcelFormat(
            name=name,
            description=data.get('description'),
            columns=columns,
            assigned_to=fields.get('assigned_to', []),
            assigned_to_type=fields.get('assigned_to_type', 'all'),
            created_by=caller_ref(),
            active=data.get('active', True) is not False,
        )
        db.session.add(excel_format)
        db.session.commit()

        log_activity('CREATE', 'EXCEL', f"Created Excel format '{name}'", entity_id=excel_format.id)
        return success_response(excel_format.to_dict(), 201)

    except Exception as e:
        logger.error(f"Error creating format: {e}")
        db.session.rollback()
        return error_response('Failed to create format', 500)


@formats_bp.route('/api/admin/excel-formats/<int:format_id>', methods=['GET'])
@admin_required
def get_format(format_id):
    excel_format = get_format_or_404(format_id)
    data = excel_format.to_dict()
    data['templateRows'] = get_template_rows(excel_format.id)
    return success_response(data)


@formats_bp.route('/api/admin/excel-formats/<int:format_id>', methods=['PUT'])
@admin_required
def update_format(format_id):
    excel_format = get_format_or_404(format_id)
    data = get_json_body()

    if 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            return error_response('Name cannot be empty', 400)
        excel_format.name = name
    if 'columns' in data:
        excel_format.columns = normalize_columns(data.get('columns'))
    for attr, value in _assignment_fields(data).items():
        setattr(excel_format, attr, value)
    if 'description' in data:
        excel_format.description = data.get('description')
    if 'active' in data:
        excel_format.active = data.get('active') is not False

    try:
        db.session.commit()
        log_activity('EDIT', 'EXCEL', f"Updated Excel format '{excel_format.name}'", entity_id=excel_format.id)
        return success_response(excel_format.to_dict())
    except Exception as e:
        logger.error(f"Error updating format {format_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update format', 500)


@formats_bp.route('/api/admin/excel-formats/<int:format_id>', methods=['DELETE'])
@admin_required
def delete_format(format_id):
    excel_format = get_format_or_404(format_id)
    try:
        PickedTemplateRow.query.filter_by(format_id=excel_format.id).delete()
        FormatTemplateData.query.filter_by(format_id=excel_format.id).delete()
        CreatedExcelFile.query.filter_by(format_id=excel_format.id).update({'format_id': None})
        name = excel_format.name
        db.session.delete(excel_format)
        db.session.commit()

        log_activity('DELETE', 'EXCEL', f"Deleted Excel format '{name}'", entity_id=format_id)
        return success_response(message='Format deleted successfully')
    except Exception as e:
        logger.error(f"Error deleting format {format_id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete format', 500)


@formats_bp.route('/api/admin/excel-formats/save-template-data', methods=['POST'])
@admin_required
def save_template_data():
    """Replace the template rows employees pick from"""
    data = get_json_body()
    format_id = data.get('formatId')
    rows = data.get('rows')

    if not format_id or not isinstance(rows, list):
        return error_response('formatId and rows are required', 400)
    if not all(isinstance(r, dict) for r in rows):
        return error_response('rows must be a list of objects', 400)
    excel_format = get_format_or_404(format_id)

    try:
        _store_template_rows(excel_format, rows)
        db.session.commit()

        return success_response({'formatId': excel_format.id, 'rowCount': len(rows)},
                                message='Template data saved')
    except Exception as e:
        logger.error(f"Error saving template data for format {format_id}: {e}")
        db.session.rollback()
        return error_response('Failed to save template data', 500)


@formats_bp.route('/api/admin/excel-formats/<int:format_id>/download', methods=['GET'])
@admin_required
def download_format(format_id):
    excel_format = get_format_or_404(format_id)
    headers = [c['name'] for c in excel_format.sorted_columns]
    wb = build_workbook(headers, get_template_rows(excel_format.id), sheet_title=excel_format.name)
    return send_workbook(wb, f'{excel_format.name.replace(" ", "_")}.xlsx')


@formats_bp.route('/api/admin/excel-formats/<int:format_id>/view', methods=['GET'])
@admin_required
def view_format(format_id):
    excel_format = get_format_or_404(format_id)
    data = excel_format.to_dict()
    data['rows'] = get_template_rows(excel_format.id)
    data['rowCount'] = len(data['rows'])
    return success_response(data)


@formats_bp.route('/api/admin/excel-formats/<int:format_id>/upload', methods=['POST'])
@admin_required
def upload_format_file(format_id):
    """
    Validate a workbook against the format
    With saveAsTemplate=true a valid workbook replaces the template rows
    """
    excel_format = get_format_or_404(format_id)
    report, rows = _check_uploaded_file(excel_format)
    report['savedAsTemplate'] = False

    if report['isValid'] and parse_bool(request.form.get('saveAsTemplate'), False):
        try:
            _store_template_rows(excel_format, rows)
            db.session.commit()
            report['savedAsTemplate'] = True
            log_activity('UPLOAD', 'EXCEL', f"Uploaded {len(rows)} template rows for '{excel_format.name}'",
                         entity_id=excel_format.id)
        except Exception as e:
            logger.error(f"Error storing uploaded template for format {format_id}: {e}")
            db.session.rollback()
            return error_response('Failed to save template data', 500)

    return success_response(report)


# ==========================================
# EMPLOYEE
# ==========================================

@formats_bp.route('/api/employee/excel-formats', methods=['GET'])
@auth_required
def my_formats():
    """Active formats assigned to the caller"""
    formats = ExcelFormat.query.filter_by(active=True).order_by(ExcelFormat.created_at.desc()).all()
    assigned = [f.to_dict() for f in formats if f.is_assigned_to(current_user)]
    return success_response(assigned)


@formats_bp.route('/api/employee/excel-formats/<int:format_id>', methods=['GET'])
@auth_required
def my_format(format_id):
    excel_format = get_format_or_404(format_id)
    if not excel_format.is_assigned_to(current_user):
        return error_response('This format is not assigned to you', 403)
    data = excel_format.to_dict()
    data['templateRows'] = get_template_rows(excel_format.id)
    return success_response(data)


@formats_bp.route('/api/employee/excel-formats/<int:format_id>/download', methods=['GET'])
@auth_required
def download_my_format(format_id):
    """Blank workbook for an assigned format: template rows, or one example row"""
    excel_format = get_format_or_404(format_id)
    if not excel_format.is_assigned_to(current_user):
        return error_response('This format is not assigned to you', 403)
    columns = excel_format.sorted_columns
    rows = get_template_rows(excel_format.id) or [sample_row(columns)]
    wb = build_workbook([c['name'] for c in columns], rows, sheet_title=excel_format.name)
    return send_workbook(wb, f'{excel_format.name.replace(" ", "_")}_template.xlsx')


@formats_bp.route('/api/employee/validate-excel-format', methods=['POST'])
@auth_required
def validate_my_file():
    """Check a filled-in workbook against a format assigned to the caller"""
    format_id = request.form.get('formatId')
    if format_id:
        excel_format = get_format_or_404(parse_int(format_id, 'formatId'))
        if not excel_format.is_assigned_to(current_user):
            return error_response('This format is not assigned to you', 403)
    else:
        formats = ExcelFormat.query.filter_by(active=True).order_by(ExcelFormat.created_at.desc(),
                                                                    ExcelFormat.id.desc()).all()
        excel_format = next((f for f in formats if f.is_assigned_to(current_user)), None)
        if excel_format is None:
            return error_response('No format assigned to you. Please contact administrator.', 404,
                                  hasFormat=False)

    report, _ = _check_uploaded_file(excel_format)
    report['formatId'] = excel_format.id
    report['formatName'] = excel_format.name
    return success_response(report)
