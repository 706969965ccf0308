# blueprints/created_files.py
"""
Workbooks employees fill in from their assigned formats,
and the admin side that lists, downloads and merges them
"""

import logging
from datetime import datetime
from flask import Blueprint, request
from flask_login import current_user
from models import db, CreatedExcelFile, LABOUR_TYPES
from blueprints.formats import get_format_or_404
from utils.activity_logger import log_activity
from utils.decorators import auth_required, admin_required
from utils.excel_formats import validate_rows_against_format, store_rows
from utils.helpers import ApiError, get_json_body, parse_bool, parse_int, success_response, error_response
from utils.spreadsheets import send_workbook

logger = logging.getLogger(__name__)

created_files_bp = Blueprint('created_files', __name__)


def _get_file_or_404(file_id):
    created_file = db.session.get(CreatedExcelFile, file_id)
    if created_file is None:
        raise ApiError('File not found', 404)
    return created_file


def _xlsx_name(name, fallback):
    name = (name or '').strip() or fallback
    return name if name.lower().endswith('.xlsx') else f'{name}.xlsx'


def _parse_save_payload(data):
    labour_type = data.get('labourType')
    if labour_type not in LABOUR_TYPES:
        raise ApiError(f"labourType must be one of {', '.join(LABOUR_TYPES)}")

    rows = data.get('rows')
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ApiError('rows must be a list of objects')

    picked = data.get('pickedTemplateRowIndices') or []
    if not isinstance(picked, list):
        raise ApiError('pickedTemplateRowIndices must be a list')
    picked = [parse_int(i, 'pickedTemplateRowIndices', minimum=0) for i in picked]

    excel_format = get_format_or_404(parse_int(data.get('formatId'), 'formatId'))
    if not excel_format.is_assigned_to(current_user):
        raise ApiError('This format is not assigned to you', 403)

    return excel_format, labour_type, rows, picked


# ==========================================
# EMPLOYEE
# ==========================================

@created_files_bp.route('/api/employee/save-excel', methods=['POST', 'PUT'])
@auth_required
def save_excel():
    """Create (POST) or overwrite (PUT with fileId) a workbook from a format"""
    data = get_json_body()
    excel_format, labour_type, rows, picked = _parse_save_payload(data)
    validate_rows_against_format(excel_format, rows, picked)

    headers = [c['name'] for c in excel_format.sorted_columns]

    if request.method == 'PUT':
        created_file = _get_file_or_404(parse_int(data.get('fileId'), 'fileId'))
        if not created_file.is_owned_by(current_user):
            return error_response('You can only edit your own files', 403)
        if created_file.is_merged:
            return error_response('Merged files cannot be edited', 400)
    else:
        created_file = None

    try:
        if created_file is None:
            filename = _xlsx_name(data.get('filename'), f"{excel_format.name.replace(' ', '_')}_{labour_type}")
            created_file = CreatedExcelFile(
                filename=filename,
                original_filename=filename,
                labour_type=labour_type,
                created_by=current_user.id,
                created_by_kind=current_user.kind,
                created_by_name=current_user.name,
                created_by_email=current_user.email,
                format_id=excel_format.id,
            )
            db.session.add(created_file)
            status = 201
        else:
            if data.get('filename'):
                created_file.filename = _xlsx_name(data.get('filename'), created_file.filename)
            created_file.labour_type = labour_type
            created_file.format_id = excel_format.id
            status = 200

        store_rows(created_file, headers, rows, sheet_title=labour_type)
        created_file.picked_template_row_indices = picked
        db.session.commit()

        action = 'CREATE' if status == 201 else 'EDIT'
        log_activity(action, 'EXCEL', f"Saved '{created_file.filename}' ({len(rows)} rows)",
                     entity_id=created_file.id, details={'formatId': excel_format.id})
        return success_response(created_file.to_dict(), status, message='File saved successfully')

    except Exception as e:
        logger.error(f"Error saving created Excel file: {e}")
        db.session.rollback()
        return error_response('Failed to save file', 500)


@created_files_bp.route('/api/employee/created-excel-files', methods=['GET'])
@auth_required
def my_created_files():
    files = CreatedExcelFile.query.filter_by(
        created_by=current_user.id,
        created_by_kind=current_user.kind,
        is_merged=False
    ).order_by(CreatedExcelFile.created_at.desc(), CreatedExcelFile.id.desc()).all()
    return success_response([f.to_dict() for f in files])


@created_files_bp.route('/api/employee/created-excel-files/<int:file_id>', methods=['DELETE'])
@auth_required
def delete_my_created_file(file_id):
    created_file = _get_file_or_404(file_id)
    if not created_file.is_owned_by(current_user):
        return error_response('You can only delete your own files', 403)
    return _delete_file(created_file)


def _delete_file(created_file):
    try:
        name = created_file.filename
        file_id = created_file.id
        db.session.delete(created_file)
        db.session.commit()
        log_activity('DELETE', 'EXCEL', f"Deleted created file '{name}'", entity_id=file_id)
        return success_response(message='File deleted successfully')
    except Exception as e:
        logger.error(f"Error deleting created file {created_file.id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete file', 500)


# ==========================================
# ADMIN
# ==========================================

@created_files_bp.route('/api/admin/created-excel-files', methods=['GET'])
@admin_required
def list_created_files():
    query = CreatedExcelFile.query

    labour_type = request.args.get('labourType')
    if labour_type:
        query = query.filter_by(labour_type=labour_type)
    is_merged = parse_bool(request.args.get('isMerged'))
    if is_merged is not None:
        query = query.filter_by(is_merged=is_merged)

    files = query.order_by(CreatedExcelFile.created_at.desc(), CreatedExcelFile.id.desc()).all()
    return success_response([f.to_dict() for f in files])


@created_files_bp.route('/api/admin/created-excel-files/<int:file_id>/download', methods=['GET'])
@admin_required
def download_created_file(file_id):
    created_file = _get_file_or_404(file_id)
    return send_workbook(created_file.file_data, created_file.filename)


@created_files_bp.route('/api/admin/created-excel-files/<int:file_id>/view', methods=['GET'])
@admin_required
def view_created_file(file_id):
    created_file = _get_file_or_404(file_id)
    data = created_file.to_dict()
    data['headers'] = created_file.headers or []
    data['data'] = created_file.rows or []
    return success_response(data)


@created_files_bp.route('/api/admin/created-excel-files/<int:file_id>/row', methods=['PATCH'])
@admin_required
def update_created_file_cell(file_id):
    """Change one cell, e.g. the login column of a transferred worker"""
    created_file = _get_file_or_404(file_id)
    data = get_json_body()
    row_index = parse_int(data.get('rowIndex'), 'rowIndex', minimum=0)
    column = str(data.get('columnName') or '').strip()
    if not column:
        return error_response('columnName is required', 400)

    headers = list(created_file.headers or [])
    rows = [dict(r) for r in created_file.rows or []]
    if column not in headers:
        return error_response(f"Column '{column}' not found in sheet", 400)
    if row_index >= len(rows):
        return error_response('rowIndex out of range', 400)

    value = data.get('value')
    rows[row_index][column] = '' if value is None else value

    try:
        store_rows(created_file, headers, rows, sheet_title=created_file.labour_type)
        db.session.commit()
        log_activity('EDIT', 'EXCEL', f"Edited row {row_index + 1} '{column}' of '{created_file.filename}'",
                     entity_id=created_file.id)
        return success_response({'rowIndex': row_index, 'columnName': column, 'value': rows[row_index][column]})
    except Exception as e:
        logger.error(f"Error editing created file {file_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update row', 500)


@created_files_bp.route('/api/admin/created-excel-files/<int:file_id>/unique-values', methods=['GET'])
@admin_required
def created_file_unique_values(file_id):
    created_file = _get_file_or_404(file_id)
    column = request.args.get('column', '').strip()
    if not column:
        return error_response('column is required', 400)
    values = {str(r.get(column)).strip() for r in created_file.rows or [] if r.get(column) not in (None, '')}
    values.discard('')
    return success_response({'column': column, 'uniqueValues': sorted(values, key=str.lower)})


@created_files_bp.route('/api/admin/created-excel-files/<int:file_id>', methods=['DELETE'])
@admin_required
def admin_delete_created_file(file_id):
    return _delete_file(_get_file_or_404(file_id))


@created_files_bp.route('/api/admin/created-excel-files/merge', methods=['POST'])
@admin_required
def merge_created_files():
    """
    Concatenate several employee files of one labour type into a new file
    Headers are the union of the source headers in first-seen order
    """
    data = get_json_body()
    file_ids = data.get('fileIds')
    if not isinstance(file_ids, list):
        return error_response('fileIds must be a list', 400)
    file_ids = list(dict.fromkeys(parse_int(i, 'fileIds') for i in file_ids))
    if len(file_ids) < 2:
        return error_response('At least 2 files are required to merge', 400)

    files = CreatedExcelFile.query.filter(CreatedExcelFile.id.in_(file_ids)).all()
    if len(files) != len(file_ids):
        return error_response('One or more files were not found', 404)
    if any(f.is_merged for f in files):
        return error_response('Some files are already merged', 400)
    labour_types = {f.labour_type for f in files}
    if len(labour_types) > 1:
        return error_response('All files must have the same labour type', 400)
    labour_type = labour_types.pop()

    files.sort(key=lambda f: file_ids.index(f.id))
    headers = []
    rows = []
    for created_file in files:
        for header in created_file.headers or []:
            if header not in headers:
                headers.append(header)
        rows.extend(created_file.rows or [])
    rows = [{h: row.get(h, '') for h in headers} for row in rows]

    try:
        now = datetime.utcnow()
        filename = _xlsx_name(data.get('filename'), f"MERGED_{labour_type}_{now.strftime('%Y%m%d_%H%M%S')}")
        merged = CreatedExcelFile(
            filename=filename,
            original_filename=filename,
            labour_type=labour_type,
            created_by=current_user.id,
            created_by_kind=current_user.kind,
            created_by_name=current_user.name,
            created_by_email=current_user.email,
            merged_from=[f.id for f in files],
            merged_date=now,
            merge_count=len(files),
        )
        store_rows(merged, headers, rows, sheet_title=labour_type)
        db.session.add(merged)

        for created_file in files:
            created_file.is_merged = True
            created_file.merged_date = now
        db.session.commit()

        log_activity('MERGE', 'EXCEL', f'Merged {len(files)} {labour_type} files into {filename}',
                     entity_id=merged.id, details={'fileIds': file_ids, 'rows': len(rows)})
        return success_response(merged.to_dict(), 201, message=f'Merged {len(files)} files ({len(rows)} rows)')

    except Exception as e:
        logger.error(f"Error merging created files: {e}")
        db.session.rollback()
        return error_response('Failed to merge files', 500)
