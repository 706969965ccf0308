# utils/spreadsheets.py
"""
Spreadsheet reading and writing
pandas loads uploaded workbooks into row dicts, openpyxl builds downloads
"""

import io
import logging
from datetime import datetime, date, time

import pandas as pd
from flask import send_file
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from utils.helpers import ApiError

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
HEADER_FILL = '4472C4'


def clean_value(value):
    """Turn a cell value into a JSON friendly scalar"""
    if value is None:
        return ''
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return value
    try:
        if pd.isna(value):
            return ''
    except (TypeError, ValueError):
        return value
    if isinstance(value, datetime):
        if value.hour or value.minute or value.second:
            return value.strftime('%Y-%m-%d %H:%M:%S')
        return value.strftime('%Y-%m-%d')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, time):
        return value.strftime('%H:%M')
    if hasattr(value, 'item'):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def read_dataframe(file_bytes, filename):
    """Load the first sheet (or the CSV) of an uploaded file"""
    buffer = io.BytesIO(file_bytes)
    if filename.lower().endswith('.csv'):
        return pd.read_csv(buffer, dtype=object)
    return pd.read_excel(buffer, sheet_name=0, dtype=object)


def read_rows(file_bytes, filename):
    """
    Parse an uploaded spreadsheet into (headers, rows)
    rows is a list of dicts keyed by the stripped header names; blank rows are dropped
    """
    if not file_bytes:
        raise ApiError('Uploaded file is empty')
    try:
        df = read_dataframe(file_bytes, filename)
    except Exception as e:
        logger.error(f"Error reading spreadsheet {filename}: {e}")
        raise ApiError(f'Error reading file: {e}')

    df = df.dropna(how='all')
    headers = []
    for column in df.columns:
        header = str(column).strip()
        if header.startswith('Unnamed:') and df[column].isna().all():
            continue
        headers.append(header)

    rows = []
    for record in df.to_dict(orient='records'):
        row = {}
        for column, value in record.items():
            header = str(column).strip()
            if header in headers:
                row[header] = clean_value(value)
        rows.append(row)

    return headers, rows


def build_workbook(headers, rows, sheet_title='Data'):
    """Single sheet workbook with a styled header row"""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31] or 'Data'

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color=HEADER_FILL, end_color=HEADER_FILL, fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        ws.column_dimensions[get_column_letter(col)].width = max(12, min(len(str(header)) + 4, 40))

    for row_num, row in enumerate(rows, 2):
        for col, header in enumerate(headers, 1):
            value = row.get(header, '')
            ws.cell(row=row_num, column=col, value=value if value != '' else None)

    return wb


def workbook_bytes(wb):
    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def send_workbook(payload, download_name):
    """Stream a Workbook (or xlsx bytes) as an attachment"""
    if isinstance(payload, Workbook):
        payload = workbook_bytes(payload)
    return send_file(
        io.BytesIO(payload),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=download_name
    )
