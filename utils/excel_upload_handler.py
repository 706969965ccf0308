# utils/excel_upload_handler.py
"""
Validation and processing for labour workbook uploads
Rows are upserted into Employee, SupplyLabour or Subcontractor by labour type
"""

import logging
from datetime import datetime
from typing import Dict, List, Tuple, Any, Optional

from models import SITE_TYPES

logger = logging.getLogger(__name__)

# Column headers per labour type (also used for the download templates)
LABOUR_COLUMNS = {
    'OUR_LABOUR': ['Employee ID', 'Name', 'Site', 'Site Type', 'Role', 'Department', 'Active'],
    'SUPPLY_LABOUR': ['Employee ID', 'Name', 'Trade', 'Company Name', 'Status'],
    'SUBCONTRACTOR': ['Company Name', 'Trade', 'Scope of Work', 'Employees Present'],
}

LABOUR_SAMPLE_ROWS = {
    'OUR_LABOUR': ['EMP001', 'John Smith', 'Head Office', 'HEAD_OFFICE', 'Engineer', 'Engineering', 'Yes'],
    'SUPPLY_LABOUR': ['SL001', 'Ahmed Khan', 'Mason', 'ABC Manpower LLC', 'Present'],
    'SUBCONTRACTOR': ['XYZ Contracting', 'Electrical', 'Cable tray installation', 12],
}

MAX_RETURNED_ERRORS = 10


def _text(row: Dict, *keys) -> str:
    """First non-empty value among keys, as stripped text"""
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip() != '':
            return str(value).strip()
    return ''


class ExcelUploadValidator:
    """Row level validation for labour uploads"""

    def validate_row(self, labour_type: str, row: Dict, row_num: int) -> Tuple[Optional[Dict], List[str]]:
        if labour_type == 'OUR_LABOUR':
            return self.validate_our_labour(row, row_num)
        if labour_type == 'SUPPLY_LABOUR':
            return self.validate_supply_labour(row, row_num)
        if labour_type == 'SUBCONTRACTOR':
            return self.validate_subcontractor(row, row_num)
        return None, [f"Row {row_num}: Invalid labour type '{labour_type}'"]

    def validate_our_labour(self, row: Dict, row_num: int) -> Tuple[Optional[Dict], List[str]]:
        row_errors = []

        emp_id = _text(row, 'Employee ID', 'empId')
        name = _text(row, 'Name', 'name')
        site = _text(row, 'Site', 'site')
        role = _text(row, 'Role', 'role')
        missing = [label for label, value in
                   (('Employee ID', emp_id), ('Name', name), ('Site', site), ('Role', role)) if not value]
        if missing:
            row_errors.append(f"Row {row_num}: Missing required fields: {', '.join(missing)}")

        site_type = _text(row, 'Site Type', 'siteType').upper().replace(' ', '_') or 'OTHER'
        if site_type not in SITE_TYPES:
            row_errors.append(f"Row {row_num}: Invalid site type '{site_type}'")

        active_text = _text(row, 'Active', 'active').lower()
        active = active_text in ('', 'yes', 'y', 'true', '1', 'active')

        if row_errors:
            return None, row_errors

        return {
            'emp_id': emp_id,
            'name': name,
            'site': site,
            'site_type': site_type,
            'role': role,
            'department': _text(row, 'Department', 'department') or None,
            'active': active,
        }, []

    def validate_supply_labour(self, row: Dict, row_num: int) -> Tuple[Optional[Dict], List[str]]:
        emp_id = _text(row, 'Employee ID', 'empId')
        name = _text(row, 'Name', 'name')
        trade = _text(row, 'Trade', 'trade')
        company_name = _text(row, 'Company Name', 'companyName')
        missing = [label for label, value in
                   (('Employee ID', emp_id), ('Name', name), ('Trade', trade),
                    ('Company Name', company_name)) if not value]
        if missing:
            return None, [f"Row {row_num}: Missing required fields: {', '.join(missing)}"]

        status = _text(row, 'Status', 'status').upper() or 'PRESENT'
        if status not in ('PRESENT', 'ABSENT'):
            return None, [f"Row {row_num}: Invalid status '{status}' (must be PRESENT or ABSENT)"]

        return {
            'emp_id': emp_id,
            'name': name,
            'trade': trade,
            'company_name': company_name,
            'status': status,
        }, []

    def validate_subcontractor(self, row: Dict, row_num: int) -> Tuple[Optional[Dict], List[str]]:
        company_name = _text(row, 'Company Name', 'companyName')
        trade = _text(row, 'Trade', 'trade')
        scope = _text(row, 'Scope of Work', 'scopeOfWork')
        missing = [label for label, value in
                   (('Company Name', company_name), ('Trade', trade), ('Scope of Work', scope)) if not value]
        if missing:
            return None, [f"Row {row_num}: Missing required fields: {', '.join(missing)}"]

        present_text = _text(row, 'Employees Present', 'employeesPresent') or '0'
        try:
            employees_present = int(float(present_text))
        except (ValueError, OverflowError):
            return None, [f"Row {row_num}: Employees Present must be a number"]
        if employees_present < 0:
            return None, [f"Row {row_num}: Employees Present cannot be negative"]

        return {
            'company_name': company_name,
            'trade': trade,
            'scope_of_work': scope,
            'employees_present': employees_present,
        }, []


class ExcelUploadProcessor:
    """Process validated labour rows and record the upload"""

    def __init__(self, db, models):
        self.db = db
        self.Employee = models['Employee']
        self.SupplyLabour = models['SupplyLabour']
        self.Subcontractor = models['Subcontractor']
        self.ExcelUpload = models['ExcelUpload']
        self.UploadLog = models['UploadLog']
        self.validator = ExcelUploadValidator()

    def process_labour_upload(self, rows: List[Dict], labour_type: str, file_info: Dict) -> Dict[str, Any]:
        """
        Upsert every row of a labour workbook
        file_info: original_filename, uploaded_by, project_id
        """
        timestamp = datetime.utcnow().strftime('%Y%m%d%H%M%S%f')
        upload = self.ExcelUpload(
            filename=f"upload_{timestamp}_{file_info['original_filename']}",
            original_filename=file_info['original_filename'],
            uploaded_by=file_info['uploaded_by'],
            project_id=file_info.get('project_id'),
            labour_type=labour_type,
            status='PENDING',
            row_count=len(rows),
        )
        self.db.session.add(upload)
        self.db.session.commit()

        created = 0
        errors = []
        project_id = file_info.get('project_id')

        try:
            for idx, row in enumerate(rows):
                row_num = idx + 2  # Excel row number (header is row 1)
                data, row_errors = self.validator.validate_row(labour_type, row, row_num)
                if row_errors:
                    errors.extend(row_errors)
                    continue
                try:
                    with self.db.session.begin_nested():
                        self._upsert(labour_type, data, project_id)
                    created += 1
                except Exception as e:
                    errors.append(f"Row {row_num}: {e}")

            upload.status = 'PROCESSED' if not errors else 'ERROR'
            upload.processed_count = created
            upload.error_count = len(errors)
            upload.error_messages = errors

            self.db.session.add(self.UploadLog(
                user_id=file_info['uploaded_by'],
                file_name=file_info['original_filename'],
                rows_count=len(rows),
                status='success' if not errors else 'failed',
                error_message='\n'.join(errors[:MAX_RETURNED_ERRORS]) if errors else None,
                file_id=upload.filename,
            ))
            self.db.session.commit()
        except Exception as e:
            logger.error(f"Labour upload {upload.filename} aborted: {e}")
            self.db.session.rollback()
            upload.status = 'ERROR'
            upload.processed_count = 0
            upload.error_count = 1
            upload.error_messages = [str(e)]
            self.db.session.commit()
            raise

        logger.info(f"Processed labour upload {upload.filename}: {created} ok, {len(errors)} failed")

        return {
            'upload': upload,
            'created': created,
            'failed': len(errors),
            'errors': errors,
        }

    def _upsert(self, labour_type: str, data: Dict, project_id: Optional[str]):
        if labour_type == 'OUR_LABOUR':
            employee = self.Employee.query.filter_by(emp_id=data['emp_id']).first()
            if employee is None:
                employee = self.Employee(emp_id=data['emp_id'])
                self.db.session.add(employee)
            for key, value in data.items():
                setattr(employee, key, value)
            if project_id:
                employee.project_id = project_id

        elif labour_type == 'SUPPLY_LABOUR':
            record = self.SupplyLabour.query.filter_by(
                emp_id=data['emp_id'],
                company_name=data['company_name']
            ).first()
            if record is None:
                record = self.SupplyLabour(emp_id=data['emp_id'], company_name=data['company_name'])
                self.db.session.add(record)
            record.name = data['name']
            record.trade = data['trade']
            record.status = data['status']
            record.project_id = project_id

        elif labour_type == 'SUBCONTRACTOR':
            record = self.Subcontractor.query.filter_by(
                company_name=data['company_name'],
                project_id=project_id
            ).first()
            if record is None:
                record = self.Subcontractor(company_name=data['company_name'], project_id=project_id)
                self.db.session.add(record)
            record.trade = data['trade']
            record.scope_of_work = data['scope_of_work']
            record.employees_present = data['employees_present']

        self.db.session.flush()
