# blueprints/sheets.py
"""
Uploaded sheets: preview, save as rows keyed by a login (project) column,
project listing/merging and per-row worker transfer
"""

import logging
from flask import Blueprint, request
from sqlalchemy import func
from models import db, UploadedSheet, SheetRow
from utils.activity_logger import log_activity
from utils.decorators import admin_required
from utils.helpers import (
    ApiError, caller_ref, get_json_body, get_uploaded_file, paginate_query,
    success_response, error_response
)
from utils.spreadsheets import read_rows

logger = logging.getLogger(__name__)

sheets_bp = Blueprint('sheets', __name__)

PREVIEW_ROW_LIMIT = 100
UNIQUE_VALUES_LIMIT = 200
INSERT_BATCH_SIZE = 500
UNASSIGNED = 'UNASSIGNED'


def _text(value):
    return '' if value is None else str(value).strip()


def _read_sheet_upload():
    file = get_uploaded_file('file')
    headers, rows = read_rows(file.read(), file.filename)
    if not rows:
        raise ApiError('Excel file has no data rows')
    if not headers:
        raise ApiError('No column headers found')
    return file, headers, rows


def _get_sheet_or_404(sheet_id):
    sheet = db.session.get(UploadedSheet, sheet_id)
    if sheet is None:
        raise ApiError('Sheet not found', 404)
    return sheet


@sheets_bp.route('/api/admin/sheets/upload', methods=['POST'])
@admin_required
def preview_sheet():
    """Parse a sheet and return headers and a preview; nothing is stored"""
    _, headers, rows = _read_sheet_upload()

    unique_by_column = {}
    for header in headers:
        values = sorted({_text(row.get(header)) for row in rows} - {''})
        unique_by_column[header] = values[:UNIQUE_VALUES_LIMIT]

    return success_response({
        'headers': headers,
        'previewRows': rows[:PREVIEW_ROW_LIMIT],
        'totalRows': len(rows),
        'uniqueByColumn': unique_by_column,
    })


@sheets_bp.route('/api/admin/sheets/save', methods=['POST'])
@admin_required
def save_sheet():
    """Store every row; the login column value becomes the row's project"""
    file, headers, rows = _read_sheet_upload()
    name = (request.form.get('name') or '').strip() or 'Sheet'
    login_column = (request.form.get('loginColumnName') or '').strip()

    if not login_column:
        return error_response('loginColumnName is required', 400)
    if login_column not in headers:
        return error_response(f"Login column '{login_column}' is not one of the sheet headers", 400)

    try:
        sheet = UploadedSheet(
            name=name,
            login_column_name=login_column,
            headers=headers,
            row_count=len(rows),
            created_by=caller_ref(),
        )
        db.session.add(sheet)
        db.session.flush()

        for start in range(0, len(rows), INSERT_BATCH_SIZE):
            batch = rows[start:start + INSERT_BATCH_SIZE]
            db.session.add_all([
                SheetRow(sheet_id=sheet.id, data=row,
                         project_name=_text(row.get(login_column)) or UNASSIGNED)
                for row in batch
            ])
            db.session.flush()

        db.session.commit()
        logger.info(f"Saved sheet '{name}' with {len(rows)} rows")
        log_activity('UPLOAD', 'EXCEL', f"Saved sheet '{name}' ({len(rows)} rows)",
                     entity_id=sheet.id, details={'filename': file.filename})

        return success_response(sheet.to_dict(), 201, message=f'Saved {len(rows)} rows')

    except Exception as e:
        logger.error(f"Error saving sheet: {e}")
        db.session.rollback()
        return error_response('Failed to save sheet', 500)


@sheets_bp.route('/api/admin/sheets', methods=['GET'])
@admin_required
def list_sheets():
    sheets = UploadedSheet.query.order_by(UploadedSheet.created_at.desc(), UploadedSheet.id.desc()).all()
    return success_response([s.to_dict() for s in sheets])


@sheets_bp.route('/api/admin/sheets/<int:sheet_id>', methods=['DELETE'])
@admin_required
def delete_sheet(sheet_id):
    sheet = _get_sheet_or_404(sheet_id)
    try:
        SheetRow.query.filter_by(sheet_id=sheet.id).delete()
        db.session.delete(sheet)
        db.session.commit()
        return success_response(message='Sheet deleted successfully')
    except Exception as e:
        logger.error(f"Error deleting sheet {sheet_id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete sheet', 500)


@sheets_bp.route('/api/admin/sheets/<int:sheet_id>/projects', methods=['GET'])
@admin_required
def sheet_projects(sheet_id):
    """Distinct project names in a sheet with their row counts"""
    sheet = _get_sheet_or_404(sheet_id)
    counts = db.session.query(SheetRow.project_name, func.count(SheetRow.id)).filter(
        SheetRow.sheet_id == sheet.id
    ).group_by(SheetRow.project_name).all()

    projects = sorted(
        ({'name': name, 'rowCount': count} for name, count in counts if _text(name)),
        key=lambda p: p['name']
    )
    return success_response({
        'sheetId': sheet.id,
        'projects': [p['name'] for p in projects],
        'counts': projects,
    })


@sheets_bp.route('/api/admin/sheets/merge-projects', methods=['POST'])
@admin_required
def merge_projects():
    """Rename every row whose project is in sourceValues to targetProject"""
    data = get_json_body()
    sheet_id = data.get('sheetId')
    target = _text(data.get('targetProject'))
    sources = data.get('sourceValues')

    if not sheet_id or not target:
        return error_response('sheetId and targetProject are required', 400)
    if not isinstance(sources, list) or not [s for s in sources if _text(s)]:
        return error_response('sourceValues must be a non-empty list', 400)

    sheet = _get_sheet_or_404(sheet_id)
    sources = [_text(s) for s in sources if _text(s)]

    try:
        rows = SheetRow.query.filter(
            SheetRow.sheet_id == sheet.id,
            SheetRow.project_name.in_(sources)
        ).all()
        for row in rows:
            row.project_name = target
            data_copy = dict(row.data or {})
            data_copy[sheet.login_column_name] = target
            row.data = data_copy
        db.session.commit()

        log_activity('EDIT', 'EXCEL', f"Merged projects {sources} into '{target}' on sheet {sheet.id}",
                     entity_id=sheet.id, details={'updated': len(rows)})
        return success_response({'updated': len(rows)}, message=f'Updated {len(rows)} rows')

    except Exception as e:
        logger.error(f"Error merging projects: {e}")
        db.session.rollback()
        return error_response('Failed to merge projects', 500)


# ==========================================
# SHEET ROWS
# ==========================================

@sheets_bp.route('/api/admin/sheet-rows', methods=['GET'])
@admin_required
def list_sheet_rows():
    sheet_id = request.args.get('sheetId', type=int)
    if not sheet_id:
        return error_response('sheetId is required', 400)
    _get_sheet_or_404(sheet_id)

    query = SheetRow.query.filter_by(sheet_id=sheet_id)
    project = request.args.get('projectName')
    if project:
        query = query.filter_by(project_name=project)

    rows, pagination = paginate_query(query.order_by(SheetRow.id.asc()), default_limit=50, max_limit=200)
    return success_response([r.to_dict() for r in rows], pagination=pagination)


@sheets_bp.route('/api/admin/sheet-rows/<int:row_id>', methods=['PATCH'])
@admin_required
def update_sheet_row(row_id):
    """Edit a row; a project change also rewrites its login column (worker transfer)"""
    row = db.session.get(SheetRow, row_id)
    if row is None:
        return error_response('Row not found', 404)
    data = get_json_body()

    try:
        if 'projectName' in data:
            project = _text(data.get('projectName')) or UNASSIGNED
            row.project_name = project
            data_copy = dict(row.data or {})
            data_copy[row.sheet.login_column_name] = project
            row.data = data_copy
        for key, attr in (('employeeAssigned', 'employee_assigned'), ('status', 'status'), ('notes', 'notes')):
            if key in data:
                setattr(row, attr, data.get(key))
        db.session.commit()
        return success_response(row.to_dict())

    except Exception as e:
        logger.error(f"Error updating sheet row {row_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update row', 500)
