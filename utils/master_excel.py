# utils/master_excel.py
"""
Master Excel: manpower summary grouped by site type, site and role
"""

import logging
from collections import defaultdict

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from models import AttendanceMaster, Employee
from utils.attendance import is_present, is_absent

logger = logging.getLogger(__name__)

SHEET_TITLE = 'Summary of Manpower'
HEADERS = ['Section', 'Site', 'Role', 'Present', 'Absent', 'Total', 'Absent %']
COLUMN_WIDTHS = [20, 30, 25, 12, 12, 12, 12]

# (section label, employee site type) in report order
SECTIONS = [
    ('HEAD OFFICE', 'HEAD_OFFICE'),
    ('MEP SITES', 'MEP'),
    ('CIVIL SITES', 'CIVIL'),
    ('OTHER SITES', 'OTHER'),
    ('OUTSOURCED', 'OUTSOURCED'),
    ('SUPPORT TEAM', 'SUPPORT'),
]

HEADER_FILL = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
SECTION_FILL = PatternFill(start_color='D9E1F2', end_color='D9E1F2', fill_type='solid')
TOTAL_FILL = PatternFill(start_color='FFC000', end_color='FFC000', fill_type='solid')


def _counts():
    return {'present': 0, 'absent': 0, 'total': 0}


def absent_percent(absent, total):
    if not total:
        return '0.00'
    return f"{absent / total * 100:.2f}"


def build_master_rows(report_date=None):
    """
    Aggregate AttendanceMaster (optionally for one date) into report rows
    Each row is a dict with kind in header, role, total, count
    """
    query = AttendanceMaster.query
    if report_date:
        query = query.filter_by(date=report_date)
    records = query.all()
    employees = {emp.emp_id: emp for emp in Employee.query.all()}

    # site type -> site -> role -> counts
    groups = defaultdict(lambda: defaultdict(lambda: defaultdict(_counts)))
    for record in records:
        employee = employees.get(record.emp_id)
        if employee is None:
            continue
        site_type = employee.site_type or 'OTHER'
        site = record.site or employee.site or 'Unknown'
        role = record.role or 'Unknown'

        stats = groups[site_type][site][role]
        if is_present(record.status):
            stats['present'] += 1
        elif is_absent(record.status):
            stats['absent'] += 1
        stats['total'] += 1

    rows = []
    grand = _counts()
    for label, site_type in SECTIONS:
        sites = groups.get(site_type)
        if not sites:
            continue
        rows.append({'kind': 'header', 'section': label})
        for site in sorted(sites):
            rows.append({'kind': 'header', 'section': label, 'site': site})
            site_total = _counts()
            for role in sorted(sites[site]):
                stats = sites[site][role]
                rows.append({'kind': 'role', 'section': label, 'site': site, 'role': role, **stats})
                for key in site_total:
                    site_total[key] += stats[key]
            rows.append({'kind': 'total', 'section': label, 'site': site, 'role': 'TOTAL', **site_total})
            for key in grand:
                grand[key] += site_total[key]

    vacation = sum(1 for r in records if 'vacation' in (r.status or '').lower())
    inactive = sum(1 for emp in employees.values() if not emp.active)

    rows.append({'kind': 'header', 'section': 'MANAGEMENT'})
    rows.append({'kind': 'header', 'section': 'MD REFERENCE'})
    rows.append({'kind': 'count', 'section': 'VACATION', 'role': 'Count', 'total': vacation})
    rows.append({'kind': 'count', 'section': 'INACTIVE', 'role': 'Count', 'total': inactive})
    rows.append({'kind': 'count', 'section': 'ABSCONDED-RUN AWAY', 'role': 'Count', 'total': 0})
    rows.append({'kind': 'header', 'section': 'GRAND TOTAL'})
    rows.append({'kind': 'total', 'section': 'GRAND TOTAL', 'role': 'TOTAL', **grand})
    return rows


def render_master_workbook(rows):
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    ws.append(HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')

    for row in rows:
        if row['kind'] == 'header':
            ws.append([row.get('section', ''), row.get('site', ''), '', '', '', '', ''])
            fill, bold = SECTION_FILL, True
        else:
            present = row.get('present', 0)
            absent = row.get('absent', 0)
            total = row.get('total', 0)
            ws.append([
                row.get('section', ''),
                row.get('site', ''),
                row.get('role', ''),
                present,
                absent,
                total,
                absent_percent(absent, total),
            ])
            if row['kind'] != 'total':
                continue
            fill, bold = TOTAL_FILL, True

        for cell in ws[ws.max_row]:
            cell.fill = fill
            cell.font = Font(bold=bold)

    for col, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    return wb


def generate_master_excel(report_date=None):
    """Build the master summary workbook from current database state"""
    rows = build_master_rows(report_date)
    logger.info(f"Generated master summary with {len(rows)} rows (date={report_date or 'all'})")
    return render_master_workbook(rows)
