# models.py - Complete Database Models
"""
Database models for the Workforce HR backend
Users, employees, labour records, uploads, attendance, sheets and Excel formats
"""

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime

db = SQLAlchemy()

# Choices
USER_ROLES = ('super-admin', 'admin', 'user')
ADMIN_ROLES = ('super-admin', 'admin')
SITE_TYPES = ('HEAD_OFFICE', 'MEP', 'CIVIL', 'OTHER', 'OUTSOURCED', 'SUPPORT')
LABOUR_TYPES = ('OUR_LABOUR', 'SUPPLY_LABOUR', 'SUBCONTRACTOR')
SUPPLY_STATUSES = ('PRESENT', 'ABSENT')
COLUMN_TYPES = ('text', 'number', 'date', 'email', 'dropdown')
ASSIGNED_TO_TYPES = ('employee', 'user', 'all')
ACTIVITY_ACTIONS = ('UPLOAD', 'EDIT', 'DELETE', 'CREATE', 'MERGE', 'TOGGLE_STATUS')
ENTITY_TYPES = ('EMPLOYEE', 'SUPPLY_LABOUR', 'SUBCONTRACTOR', 'USER', 'EXCEL', 'PROJECT')
DEFAULT_ALLOWED_STATUSES = ['Present', 'Absent', 'Leave']


def _iso(value):
    return value.isoformat() if value else None


# ==========================================
# USER & EMPLOYEE MODELS
# ==========================================

class User(UserMixin, db.Model):
    """Dashboard account (super-admin, admin or project user)"""
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    username = db.Column(db.String(80), unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='user')
    active = db.Column(db.Boolean, default=True, nullable=False)
    can_upload = db.Column(db.Boolean, default=True, nullable=False)
    allotted_projects = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = 'user'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def get_id(self):
        return f'{self.kind}:{self.id}'

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def auth_role(self):
        return self.role

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self):
        return self.role == 'super-admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'username': self.username,
            'name': self.name,
            'role': self.role,
            'active': self.active,
            'canUpload': self.can_upload,
            'allottedProjects': self.allotted_projects or [],
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Employee(UserMixin, db.Model):
    """Workforce employee; may log in with emp_id once a password is set"""
    id = db.Column(db.Integer, primary_key=True)
    emp_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    site = db.Column(db.String(120), nullable=False)
    site_type = db.Column(db.String(20), nullable=False, default='OTHER')
    role = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100))
    project_id = db.Column(db.String(100))
    active = db.Column(db.Boolean, default=True, nullable=False)
    password_hash = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = 'employee'
    # Callers authenticated as an employee always carry this role
    auth_role = 'employee'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def get_id(self):
        return f'{self.kind}:{self.id}'

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def email(self):
        return None

    @property
    def is_admin(self):
        return False

    @property
    def is_super_admin(self):
        return False

    def to_dict(self):
        return {
            'id': self.id,
            'empId': self.emp_id,
            'name': self.name,
            'site': self.site,
            'siteType': self.site_type,
            'role': self.role,
            'department': self.department,
            'projectId': self.project_id,
            'active': self.active,
            'hasPassword': bool(self.password_hash),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Employee {self.emp_id}>'


class ProjectHead(UserMixin, db.Model):
    """Site login for one project; sees only the sheet rows of that project"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    project_name = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = 'project'
    auth_role = 'project'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def get_id(self):
        return f'{self.kind}:{self.id}'

    @property
    def email(self):
        return None

    @property
    def is_admin(self):
        return False

    @property
    def is_super_admin(self):
        return False

    def to_dict(self, total_workers=None):
        data = {
            'id': self.id,
            'name': self.name,
            'projectName': self.project_name,
            'createdAt': _iso(self.created_at),
        }
        if total_workers is not None:
            data['totalWorkers'] = total_workers
        return data

    def __repr__(self):
        return f'<ProjectHead {self.project_name}>'


class Role(db.Model):
    """Workforce role with the attendance statuses it may report"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    allowed_statuses = db.Column(db.JSON, default=lambda: list(DEFAULT_ALLOWED_STATUSES))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'allowedStatuses': self.allowed_statuses or [],
            'description': self.description,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Role {self.name}>'


# ==========================================
# LABOUR MODELS
# ==========================================

class Subcontractor(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(200), nullable=False)
    trade = db.Column(db.String(100), nullable=False)
    scope_of_work = db.Column(db.Text, nullable=False)
    employees_present = db.Column(db.Integer, default=0, nullable=False)
    project_id = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('company_name', 'project_id', name='_subcontractor_company_project_uc'),
        db.CheckConstraint('employees_present >= 0', name='_subcontractor_present_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'companyName': self.company_name,
            'trade': self.trade,
            'scopeOfWork': self.scope_of_work,
            'employeesPresent': self.employees_present,
            'projectId': self.project_id,
            'createdAt': _iso(self.created_at),
        }


class SupplyLabour(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    emp_id = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    trade = db.Column(db.String(100), nullable=False)
    company_name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(10), default='PRESENT', nullable=False)
    project_id = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('emp_id', 'company_name', name='_supply_labour_emp_company_uc'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'empId': self.emp_id,
            'name': self.name,
            'trade': self.trade,
            'companyName': self.company_name,
            'status': self.status,
            'projectId': self.project_id,
            'createdAt': _iso(self.created_at),
        }


# ==========================================
# UPLOAD TRACKING MODELS
# ==========================================

class ExcelUpload(db.Model):
    """Labour workbook upload (our labour, supply labour, subcontractors)"""
    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), unique=True, nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    uploaded_by = db.Column(db.String(50), nullable=False)
    project_id = db.Column(db.String(100))
    labour_type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), default='PENDING', nullable=False)
    row_count = db.Column(db.Integer, default=0)
    processed_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    error_messages = db.Column(db.JSON, default=list)
    merged = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'originalFilename': self.original_filename,
            'uploadedBy': self.uploaded_by,
            'projectId': self.project_id,
            'labourType': self.labour_type,
            'status': self.status,
            'rowCount': self.row_count,
            'processedCount': self.processed_count,
            'errorCount': self.error_count,
            'errorMessages': self.error_messages or [],
            'merged': self.merged,
            'createdAt': _iso(self.created_at),
        }


class UploadLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(50), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    rows_count = db.Column(db.Integer, default=0)
    upload_time = db.Column(db.DateTime, default=datetime.utcnow)
    status = db.Column(db.String(20), default='processing')  # success, failed, processing
    error_message = db.Column(db.Text)
    file_id = db.Column(db.String(100))

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'fileName': self.file_name,
            'rowsCount': self.rows_count,
            'uploadTime': _iso(self.upload_time),
            'status': self.status,
            'errorMessage': self.error_message,
            'fileId': self.file_id,
        }


class Upload(db.Model):
    """Attendance file upload"""
    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(db.String(100), unique=True, nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    uploader_id = db.Column(db.String(50), nullable=False)
    parsed_rows_count = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), default='uploaded')  # uploaded, parsing, parsed, merged, error
    error_message = db.Column(db.Text)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'fileId': self.file_id,
            'filename': self.filename,
            'uploaderId': self.uploader_id,
            'parsedRowsCount': self.parsed_rows_count,
            'status': self.status,
            'errorMessage': self.error_message,
            'uploadedAt': _iso(self.uploaded_at),
        }


class AttendanceRaw(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(db.String(100), unique=True, nullable=False)
    rows = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='processed')  # processed, merged
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class AttendanceMaster(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    emp_id = db.Column(db.String(50), nullable=False, index=True)
    name = db.Column(db.String(120))
    role = db.Column(db.String(100))
    site = db.Column(db.String(120))
    date = db.Column(db.String(10), nullable=False, index=True)  # YYYY-MM-DD
    time = db.Column(db.String(20))
    status = db.Column(db.String(50))
    validation = db.Column(db.String(10), default='OK')  # OK, WARNING, ERROR
    validation_message = db.Column(db.Text)
    source_file_id = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('emp_id', 'date', name='_attendance_emp_date_uc'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'empId': self.emp_id,
            'name': self.name,
            'role': self.role,
            'site': self.site,
            'date': self.date,
            'time': self.time,
            'status': self.status,
            'validation': self.validation,
            'validationMessage': self.validation_message,
            'sourceFileId': self.source_file_id,
        }


# ==========================================
# SHEET MODELS
# ==========================================

class UploadedSheet(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    login_column_name = db.Column(db.String(200), nullable=False)
    headers = db.Column(db.JSON, default=list)
    row_count = db.Column(db.Integer, default=0)
    created_by = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    rows = db.relationship('SheetRow', backref='sheet', lazy='dynamic',
                           cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'loginColumnName': self.login_column_name,
            'headers': self.headers or [],
            'rowCount': self.row_count,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
        }


class SheetRow(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sheet_id = db.Column(db.Integer, db.ForeignKey('uploaded_sheet.id'), nullable=False, index=True)
    data = db.Column(db.JSON, default=dict)
    project_name = db.Column(db.String(200), default='UNASSIGNED', index=True)
    employee_assigned = db.Column(db.String(120))
    status = db.Column(db.String(50))
    notes = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'sheetId': self.sheet_id,
            'data': self.data or {},
            'projectName': self.project_name,
            'employeeAssigned': self.employee_assigned,
            'status': self.status,
            'notes': self.notes,
        }


# ==========================================
# EXCEL FORMAT MODELS
# ==========================================

class ExcelFormat(db.Model):
    """Column layout that admins assign to employees or users"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    columns = db.Column(db.JSON, default=list)
    assigned_to = db.Column(db.JSON, default=list)
    assigned_to_type = db.Column(db.String(20), default='all')
    created_by = db.Column(db.String(50))
    active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    template_data = db.relationship('FormatTemplateData', backref='format', uselist=False,
                                    cascade='all, delete-orphan')
    picks = db.relationship('PickedTemplateRow', backref='format', lazy='dynamic',
                            cascade='all, delete-orphan')

    @property
    def sorted_columns(self):
        return sorted(self.columns or [], key=lambda c: c.get('order', 0))

    def is_assigned_to(self, caller):
        if not self.active:
            return False
        if self.assigned_to_type == 'all':
            return True
        if self.assigned_to_type != caller.kind:
            return False
        return caller.id in (self.assigned_to or [])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'columns': self.sorted_columns,
            'assignedTo': self.assigned_to or [],
            'assignedToType': self.assigned_to_type,
            'createdBy': self.created_by,
            'active': self.active,
            'createdAt': _iso(self.created_at),
        }


class FormatTemplateData(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    format_id = db.Column(db.Integer, db.ForeignKey('excel_format.id'), unique=True, nullable=False)
    rows = db.Column(db.JSON, default=list)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PickedTemplateRow(db.Model):
    """One claim per (format, row index)"""
    id = db.Column(db.Integer, primary_key=True)
    format_id = db.Column(db.Integer, db.ForeignKey('excel_format.id'), nullable=False)
    row_index = db.Column(db.Integer, nullable=False)
    picked_by = db.Column(db.Integer, nullable=False)
    picked_by_kind = db.Column(db.String(20), nullable=False, default='employee')
    emp_id = db.Column(db.String(50))
    emp_name = db.Column(db.String(120))
    picked_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('format_id', 'row_index', name='_picked_format_row_uc'),
    )

    def is_owned_by(self, caller):
        return self.picked_by == caller.id and self.picked_by_kind == caller.kind

    def to_dict(self):
        return {
            'formatId': self.format_id,
            'rowIndex': self.row_index,
            'pickedBy': self.picked_by,
            'pickedByKind': self.picked_by_kind,
            'empId': self.emp_id,
            'empName': self.emp_name,
            'pickedAt': _iso(self.picked_at),
        }


class CreatedExcelFile(db.Model):
    """Workbook filled in by an employee from an assigned format"""
    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    file_data = db.Column(db.LargeBinary, nullable=False)
    headers = db.Column(db.JSON, default=list)
    rows = db.Column(db.JSON, default=list)
    labour_type = db.Column(db.String(20), nullable=False)
    row_count = db.Column(db.Integer, default=0)
    created_by = db.Column(db.Integer, nullable=False)
    created_by_kind = db.Column(db.String(20), nullable=False, default='employee')
    created_by_name = db.Column(db.String(120))
    created_by_email = db.Column(db.String(120))
    is_merged = db.Column(db.Boolean, default=False)
    merged_from = db.Column(db.JSON, default=list)
    merged_date = db.Column(db.DateTime)
    merge_count = db.Column(db.Integer, default=0)
    format_id = db.Column(db.Integer, db.ForeignKey('excel_format.id'))
    picked_template_row_indices = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_owned_by(self, caller):
        return self.created_by == caller.id and self.created_by_kind == caller.kind

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'originalFilename': self.original_filename,
            'labourType': self.labour_type,
            'rowCount': self.row_count,
            'createdBy': self.created_by,
            'createdByKind': self.created_by_kind,
            'createdByName': self.created_by_name,
            'createdByEmail': self.created_by_email,
            'isMerged': self.is_merged,
            'mergedFrom': self.merged_from or [],
            'mergedDate': _iso(self.merged_date),
            'mergeCount': self.merge_count,
            'formatId': self.format_id,
            'pickedTemplateRowIndices': self.picked_template_row_indices or [],
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


# ==========================================
# ACTIVITY LOG
# ==========================================

class ActivityLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(50), nullable=False)
    user_email = db.Column(db.String(120))
    action = db.Column(db.String(20), nullable=False)
    entity_type = db.Column(db.String(20), nullable=False)
    entity_id = db.Column(db.String(50))
    description = db.Column(db.Text, nullable=False)
    project_id = db.Column(db.String(100))
    details = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'userEmail': self.user_email,
            'action': self.action,
            'entityType': self.entity_type,
            'entityId': self.entity_id,
            'description': self.description,
            'projectId': self.project_id,
            'details': self.details,
            'createdAt': _iso(self.created_at),
        }
