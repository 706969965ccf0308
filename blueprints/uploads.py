# blueprints/uploads.py
"""
Labour workbook uploads (our labour, supply labour, subcontractors)
plus upload history and labour listings
"""

import logging
from flask import Blueprint, request
from flask_login import current_user
from werkzeug.utils import secure_filename
from models import (
    db, Employee, SupplyLabour, Subcontractor, ExcelUpload, UploadLog, LABOUR_TYPES
)
from utils.activity_logger import log_activity
from utils.decorators import auth_required, admin_required, upload_permission_required
from utils.excel_upload_handler import (
    ExcelUploadProcessor, LABOUR_COLUMNS, LABOUR_SAMPLE_ROWS, MAX_RETURNED_ERRORS
)
from utils.helpers import (
    ApiError, caller_ref, get_uploaded_file, paginate_query, success_response, error_response
)
from utils.spreadsheets import read_rows, build_workbook, send_workbook

logger = logging.getLogger(__name__)

uploads_bp = Blueprint('uploads', __name__)


def get_processor():
    models = {
        'Employee': Employee,
        'SupplyLabour': SupplyLabour,
        'Subcontractor': Subcontractor,
        'ExcelUpload': ExcelUpload,
        'UploadLog': UploadLog,
    }
    return ExcelUploadProcessor(db, models)


@uploads_bp.route('/api/admin/excel/upload', methods=['POST'])
@upload_permission_required
def upload_labour_excel():
    """Upload a labour workbook and upsert every row"""
    file = get_uploaded_file('file')
    labour_type = (request.form.get('labourType') or 'OUR_LABOUR').strip().upper()
    project_id = (request.form.get('projectId') or '').strip() or None

    if labour_type not in LABOUR_TYPES:
        return error_response('Invalid labour type', 400)
    if current_user.auth_role == 'user' and not project_id:
        return error_response('Project ID required for user role', 400)
    if labour_type == 'SUBCONTRACTOR' and not project_id:
        return error_response('Project ID required for subcontractor uploads', 400)

    original_filename = secure_filename(file.filename) or 'upload.xlsx'
    _, rows = read_rows(file.read(), file.filename)
    if not rows:
        return error_response('Excel file is empty', 400)

    try:
        result = get_processor().process_labour_upload(rows, labour_type, {
            'original_filename': original_filename,
            'uploaded_by': caller_ref(),
            'project_id': project_id,
        })
        upload = result['upload']

        log_activity('UPLOAD', 'EXCEL', f'Uploaded Excel file: {original_filename} ({labour_type})',
                     entity_id=upload.id, project_id=project_id,
                     details={'filename': original_filename, 'rowCount': len(rows),
                              'created': result['created'], 'failed': result['failed']})

        return success_response(
            {
                'uploadId': upload.id,
                'created': result['created'],
                'failed': result['failed'],
                'errors': result['errors'][:MAX_RETURNED_ERRORS],
            },
            message=f"Processed {result['created']} records, {result['failed']} failed"
        )

    except Exception as e:
        logger.error(f"Labour upload failed: {e}")
        db.session.rollback()
        return error_response(f'Failed to upload Excel: {e}', 500)


@uploads_bp.route('/api/admin/excel/template', methods=['GET'])
@auth_required
def download_labour_template():
    labour_type = (request.args.get('labourType') or 'OUR_LABOUR').upper()
    if labour_type not in LABOUR_TYPES:
        raise ApiError('Invalid labour type')
    headers = LABOUR_COLUMNS[labour_type]
    sample = dict(zip(headers, LABOUR_SAMPLE_ROWS[labour_type]))
    wb = build_workbook(headers, [sample], sheet_title=labour_type.replace('_', ' ').title())
    return send_workbook(wb, f'{labour_type.lower()}_template.xlsx')


# ==========================================
# UPLOAD HISTORY
# ==========================================

@uploads_bp.route('/api/admin/uploads', methods=['GET'])
@admin_required
def list_uploads():
    """Labour uploads (type=excel, default) or upload logs (type=log)"""
    try:
        if request.args.get('type') == 'log':
            query = UploadLog.query.order_by(UploadLog.upload_time.desc())
        else:
            query = ExcelUpload.query
            if request.args.get('labourType'):
                query = query.filter_by(labour_type=request.args['labourType'].upper())
            if request.args.get('status'):
                query = query.filter_by(status=request.args['status'].upper())
            query = query.order_by(ExcelUpload.created_at.desc())

        items, pagination = paginate_query(query, default_limit=50)
        return success_response([i.to_dict() for i in items], pagination=pagination)

    except Exception as e:
        logger.error(f"Error listing uploads: {e}")
        return error_response('Failed to fetch uploads', 500)


@uploads_bp.route('/api/employee/uploads', methods=['GET'])
@auth_required
def my_uploads():
    try:
        query = ExcelUpload.query.filter_by(uploaded_by=caller_ref()).order_by(ExcelUpload.created_at.desc())
        items, pagination = paginate_query(query, default_limit=50)
        return success_response([i.to_dict() for i in items], pagination=pagination)
    except Exception as e:
        logger.error(f"Error listing own uploads: {e}")
        return error_response('Failed to fetch uploads', 500)


# ==========================================
# LABOUR LISTINGS
# ==========================================

@uploads_bp.route('/api/admin/supply-labour', methods=['GET'])
@auth_required
def list_supply_labour():
    try:
        query = SupplyLabour.query
        if request.args.get('projectId'):
            query = query.filter_by(project_id=request.args['projectId'])
        if request.args.get('companyName'):
            query = query.filter_by(company_name=request.args['companyName'])
        items, pagination = paginate_query(
            query.order_by(SupplyLabour.company_name.asc(), SupplyLabour.emp_id.asc()), default_limit=50
        )
        return success_response([i.to_dict() for i in items], pagination=pagination)
    except Exception as e:
        logger.error(f"Error listing supply labour: {e}")
        return error_response('Failed to fetch supply labour', 500)


@uploads_bp.route('/api/admin/subcontractors', methods=['GET'])
@auth_required
def list_subcontractors():
    try:
        query = Subcontractor.query
        if request.args.get('projectId'):
            query = query.filter_by(project_id=request.args['projectId'])
        items, pagination = paginate_query(query.order_by(Subcontractor.company_name.asc()), default_limit=50)
        return success_response([i.to_dict() for i in items], pagination=pagination)
    except Exception as e:
        logger.error(f"Error listing subcontractors: {e}")
        return error_response('Failed to fetch subcontractors', 500)
