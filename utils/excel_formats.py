# utils/excel_formats.py
"""
Excel format column definitions and the checks applied to employee saved files
"""

import re
import logging
from datetime import datetime

from sqlalchemy import or_

from models import COLUMN_TYPES, CreatedExcelFile, FormatTemplateData
from utils.helpers import ApiError
from utils.spreadsheets import build_workbook, workbook_bytes

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def normalize_columns(columns):
    """Validate a format's column list and fill in order/editable defaults"""
    if not isinstance(columns, list) or not columns:
        raise ApiError('Name and at least one column are required')

    normalized = []
    seen = set()
    for index, column in enumerate(columns):
        if not isinstance(column, dict):
            raise ApiError(f'Column {index + 1} must be an object')
        name = str(column.get('name') or '').strip()
        if not name:
            raise ApiError(f'Column {index + 1} needs a name')
        if name in seen:
            raise ApiError(f"Duplicate column name '{name}'")
        seen.add(name)

        column_type = column.get('type') or 'text'
        if column_type not in COLUMN_TYPES:
            raise ApiError(f"Invalid type '{column_type}' for column '{name}'")

        normalized.append({
            'name': name,
            'type': column_type,
            'required': bool(column.get('required', False)),
            'validation': column.get('validation') or {},
            'order': column['order'] if isinstance(column.get('order'), int) else index,
            'editable': column.get('editable', True) is not False,
        })
    return normalized


def get_template_rows(format_id):
    template = FormatTemplateData.query.filter_by(format_id=format_id).first()
    return list(template.rows or []) if template else []


def _is_blank(value):
    return value is None or str(value).strip() == ''


def _cell_text(value):
    return '' if value is None else str(value).strip()


def _check_value(column, value):
    """Type/validation check for one non-blank cell; returns an error or None"""
    name = column['name']
    rules = column.get('validation') or {}
    column_type = column.get('type', 'text')

    if column_type == 'number':
        try:
            number = float(value)
        except (TypeError, ValueError):
            return f"'{name}' must be a number"
        if rules.get('min') is not None and number < float(rules['min']):
            return f"'{name}' must be >= {rules['min']}"
        if rules.get('max') is not None and number > float(rules['max']):
            return f"'{name}' must be <= {rules['max']}"
    elif column_type == 'email':
        if not EMAIL_RE.match(str(value).strip()):
            return f"'{name}' must be a valid email"
    elif column_type == 'date':
        text = str(value).strip()[:10]
        for fmt in ('%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y'):
            try:
                datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        else:
            return f"'{name}' must be a date"
    elif column_type == 'dropdown':
        options = rules.get('options') or []
        if options and str(value) not in [str(o) for o in options]:
            return f"'{name}' must be one of: {', '.join(str(o) for o in options)}"

    pattern = rules.get('pattern')
    if pattern and column_type in ('text', 'email') and not re.search(pattern, str(value)):
        return f"'{name}' does not match the required pattern"
    return None


def validate_rows_against_format(excel_format, rows, picked_indices=None):
    """
    Check rows a caller wants to save against the format
    Required columns must be filled, typed columns must parse, and locked
    (non-editable) columns must keep the template values of the picked rows
    """
    columns = excel_format.sorted_columns
    problems = []

    for row_number, row in enumerate(rows, 1):
        for column in columns:
            value = row.get(column['name'])
            if _is_blank(value):
                if column.get('required'):
                    problems.append(f"Row {row_number}: '{column['name']}' is required")
                continue
            error = _check_value(column, value)
            if error:
                problems.append(f"Row {row_number}: {error}")

    if problems:
        raise ApiError('Validation failed', 400, validationError=problems[:50])

    locked = [c['name'] for c in columns if c.get('editable') is False]
    if not locked:
        return
    template_rows = get_template_rows(excel_format.id)
    # without picked indices, rows line up with template rows by position
    indices = list(picked_indices) if picked_indices else list(range(len(template_rows)))
    for position, template_index in enumerate(indices):
        if position >= len(rows) or template_index >= len(template_rows):
            continue
        for name in locked:
            expected = _cell_text(template_rows[template_index].get(name))
            if expected and expected != _cell_text(rows[position].get(name)):
                raise ApiError(
                    f"Column '{name}' is locked and cannot be changed (row {position + 1})", 400
                )


def sample_row(columns):
    """One example row for a blank template download"""
    row = {}
    for column in columns:
        rules = column.get('validation') or {}
        column_type = column.get('type', 'text')
        if column_type == 'number':
            value = rules.get('min') or 0
        elif column_type == 'date':
            value = '2024-01-01'
        elif column_type == 'email':
            value = 'example@email.com'
        elif column_type == 'dropdown':
            value = (rules.get('options') or ['Example'])[0]
        else:
            value = 'Example'
        row[column['name']] = value
    return row


def check_file_against_format(excel_format, headers, rows):
    """
    Validate an uploaded workbook against a format without storing anything
    File headers match column names case-insensitively. Returns the report
    and the rows re-keyed by the format's column names.
    """
    columns = excel_format.sorted_columns
    by_lower = {str(h).strip().lower(): h for h in headers}
    missing = [c['name'] for c in columns
               if c.get('required') and c['name'].strip().lower() not in by_lower]

    errors = []
    if not rows:
        errors.append('Excel file is empty')
    if missing:
        errors.append(f"Missing required columns: {', '.join(missing)}")

    valid_rows = 0
    keyed_rows = []
    for row_number, row in enumerate(rows, 2):
        row_errors = []
        values = {}
        for column in columns:
            header = by_lower.get(column['name'].strip().lower())
            value = row.get(header, '') if header is not None else ''
            values[column['name']] = value
            if _is_blank(value):
                if column.get('required'):
                    row_errors.append(f"Row {row_number}: '{column['name']}' is required")
                continue
            error = _check_value(column, value)
            if error:
                row_errors.append(f"Row {row_number}: {error}")
        keyed_rows.append(values)
        if row_errors:
            errors.extend(row_errors)
        else:
            valid_rows += 1

    report = {
        'isValid': not errors,
        'errors': errors[:50],
        'missingColumns': missing,
        'rowCount': len(rows),
        'validRows': valid_rows,
        'invalidRows': len(rows) - valid_rows,
    }
    return report, keyed_rows


def store_rows(created_file, headers, rows, sheet_title='Data'):
    """Write headers/rows onto a CreatedExcelFile and regenerate its workbook"""
    created_file.headers = list(headers)
    created_file.rows = list(rows)
    created_file.row_count = len(rows)
    created_file.file_data = workbook_bytes(build_workbook(headers, rows, sheet_title))


def remove_row_from_picker_files(format_id, row_index, picker_id, picker_kind):
    """
    Drop a released/reassigned template row from every saved file of its
    previous picker. Returns the number of files changed.
    """
    files = CreatedExcelFile.query.filter_by(
        created_by=picker_id,
        created_by_kind=picker_kind,
        is_merged=False
    ).filter(
        or_(CreatedExcelFile.format_id == format_id, CreatedExcelFile.format_id.is_(None))
    ).all()

    changed = 0
    for created_file in files:
        indices = list(created_file.picked_template_row_indices or [])
        if row_index not in indices:
            continue
        position = indices.index(row_index)
        rows = list(created_file.rows or [])
        if position < len(rows):
            rows.pop(position)
        indices.pop(position)
        store_rows(created_file, created_file.headers or [], rows)
        created_file.picked_template_row_indices = indices
        changed += 1

    if changed:
        logger.info(f"Removed template row {row_index} of format {format_id} from {changed} file(s)")
    return changed
