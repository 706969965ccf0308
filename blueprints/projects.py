# blueprints/projects.py
"""
Project heads (site logins)
A project head logs in with a project name and sees only the sheet rows
whose login column holds that project
"""

import logging
from flask import Blueprint, request
from flask_login import current_user
from sqlalchemy import func, or_
from models import db, ProjectHead, SheetRow, UploadedSheet
from utils.activity_logger import log_activity
from utils.decorators import admin_required, project_head_required
from utils.helpers import ApiError, get_json_body, paginate_query, parse_int, success_response, error_response

logger = logging.getLogger(__name__)

projects_bp = Blueprint('projects', __name__)

DEFAULT_PASSWORD = 'Password@1234'
MIN_PASSWORD_LENGTH = 6


def _get_project_or_404(project_id):
    project = db.session.get(ProjectHead, project_id)
    if project is None:
        raise ApiError('Project not found', 404)
    return project


def _check_password(password, field='newPassword'):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(f'{field} must be at least {MIN_PASSWORD_LENGTH} characters')


def _worker_counts():
    counts = db.session.query(SheetRow.project_name, func.count(SheetRow.id)).group_by(SheetRow.project_name).all()
    return dict(counts)


# ==========================================
# ADMIN
# ==========================================

@projects_bp.route('/api/admin/projects', methods=['GET'])
@admin_required
def list_projects():
    counts = _worker_counts()
    projects = ProjectHead.query.order_by(ProjectHead.project_name).all()
    return success_response([p.to_dict(total_workers=counts.get(p.project_name, 0)) for p in projects])


@projects_bp.route('/api/admin/projects', methods=['POST'])
@admin_required
def create_project():
    data = get_json_body()
    project_name = str(data.get('projectName') or '').strip()
    if not project_name:
        return error_response('projectName is required', 400)
    password = str(data.get('password') or DEFAULT_PASSWORD)
    _check_password(password, 'password')

    if ProjectHead.query.filter_by(project_name=project_name).first():
        return error_response('A project with this name already exists', 400)

    try:
        project = ProjectHead(
            name=str(data.get('name') or '').strip() or project_name,
            project_name=project_name,
        )
        project.set_password(password)
        db.session.add(project)
        db.session.commit()

        log_activity('CREATE', 'PROJECT', f"Created project login '{project_name}'", entity_id=project.id)
        return success_response(project.to_dict(), 201, message='Project created successfully')

    except Exception as e:
        logger.error(f"Error creating project {project_name}: {e}")
        db.session.rollback()
        return error_response('Failed to create project', 500)


@projects_bp.route('/api/admin/projects/<int:project_id>', methods=['DELETE'])
@admin_required
def delete_project(project_id):
    project = _get_project_or_404(project_id)
    try:
        name = project.project_name
        db.session.delete(project)
        db.session.commit()
        log_activity('DELETE', 'PROJECT', f"Deleted project login '{name}'", entity_id=project_id)
        return success_response(message='Project deleted successfully')
    except Exception as e:
        logger.error(f"Error deleting project {project_id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete project', 500)


@projects_bp.route('/api/admin/projects/<int:project_id>/password', methods=['PATCH'])
@admin_required
def change_project_password(project_id):
    project = _get_project_or_404(project_id)
    new_password = str(get_json_body().get('newPassword') or '')
    _check_password(new_password)

    project.set_password(new_password)
    db.session.commit()
    log_activity('EDIT', 'PROJECT', f"Password changed for project '{project.project_name}'", entity_id=project.id)
    return success_response(message='Password updated successfully')


@projects_bp.route('/api/admin/projects/bulk-password-reset', methods=['POST'])
@admin_required
def bulk_reset_project_passwords():
    """Set one password (default Password@1234) on several project logins"""
    data = get_json_body()
    project_ids = data.get('projectIds')
    if not isinstance(project_ids, list) or not project_ids:
        return error_response('projectIds array is required and must not be empty', 400)
    project_ids = [parse_int(i, 'projectIds') for i in project_ids]
    new_password = str(data.get('newPassword') or DEFAULT_PASSWORD)
    _check_password(new_password)

    projects = ProjectHead.query.filter(ProjectHead.id.in_(project_ids)).all()
    for project in projects:
        project.set_password(new_password)
    db.session.commit()

    log_activity('EDIT', 'PROJECT', f'Bulk password reset for {len(projects)} project(s)',
                 details={'projectIds': [p.id for p in projects]})
    return success_response({'modifiedCount': len(projects)})


# ==========================================
# LOGIN SCREEN (no auth)
# ==========================================

@projects_bp.route('/api/auth/project-heads', methods=['GET'])
def project_head_choices():
    projects = ProjectHead.query.order_by(ProjectHead.project_name).all()
    return success_response([{'projectName': p.project_name, 'name': p.name} for p in projects])


@projects_bp.route('/api/auth/sites', methods=['GET'])
def login_sites():
    """Per uploaded sheet: its login column and the project values that have a login"""
    with_login = {p.project_name for p in ProjectHead.query.all()}
    result = []
    for sheet in UploadedSheet.query.order_by(UploadedSheet.created_at.desc(), UploadedSheet.id.desc()).all():
        names = db.session.query(SheetRow.project_name).filter(
            SheetRow.sheet_id == sheet.id
        ).distinct().all()
        sites = sorted(name for (name,) in names if name in with_login)
        if sites:
            result.append({
                'sheetId': sheet.id,
                'name': sheet.name,
                'loginColumnName': sheet.login_column_name,
                'sites': [{'siteValue': s} for s in sites],
            })
    return success_response(result)


# ==========================================
# PROJECT HEAD
# ==========================================

@projects_bp.route('/api/project-head/rows', methods=['GET'])
@project_head_required
def project_rows():
    query = SheetRow.query.filter_by(project_name=current_user.project_name)

    sheet_id = request.args.get('sheetId', type=int)
    if sheet_id:
        query = query.filter_by(sheet_id=sheet_id)
    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(SheetRow.status.ilike(pattern), SheetRow.notes.ilike(pattern)))

    rows, pagination = paginate_query(
        query.order_by(SheetRow.updated_at.desc(), SheetRow.id.desc()),
        default_limit=50, max_limit=200
    )
    return success_response([r.to_dict() for r in rows], pagination=pagination)


@projects_bp.route('/api/project-head/rows/<int:row_id>', methods=['PATCH'])
@project_head_required
def update_project_row(row_id):
    """Edit status, notes and data cells of a row in the caller's project"""
    row = db.session.get(SheetRow, row_id)
    if row is None:
        return error_response('Row not found', 404)
    if row.project_name != current_user.project_name:
        return error_response('You can only edit rows in your project', 403)

    data = get_json_body()
    cells = data.get('data')
    if cells is not None:
        if not isinstance(cells, dict):
            return error_response('data must be an object', 400)
        login_column = row.sheet.login_column_name
        if login_column in cells and str(cells[login_column]).strip() != row.project_name:
            return error_response('Workers can only be moved to another project by an admin', 400)

    try:
        if 'status' in data:
            row.status = data.get('status')
        if 'notes' in data:
            row.notes = data.get('notes')
        if cells:
            merged = dict(row.data or {})
            merged.update(cells)
            row.data = merged
        db.session.commit()
        return success_response(row.to_dict())

    except Exception as e:
        logger.error(f"Error updating row {row_id} for project {current_user.project_name}: {e}")
        db.session.rollback()
        return error_response('Failed to update row', 500)
