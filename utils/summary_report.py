# utils/summary_report.py
"""
Manpower summary report by role category for one day
"""

from datetime import datetime, time

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from models import Employee, AttendanceMaster, SupplyLabour, Subcontractor
from utils.attendance import is_present
from utils.master_excel import absent_percent

CATEGORIES = [
    'MBM_STAFF',
    'SUPPORTING_STAFF',
    'DOCUMENT_CONTROLLER',
    'SUPERVISOR_FOREMAN',
    'CHARGEHAND',
    'OFFICE_BOY_SECURITY',
    'LABOUR',
]

# site type -> report section
SECTION_BY_SITE_TYPE = {
    'HEAD_OFFICE': 'HEAD_OFFICE',
    'MEP': 'MEP_SITES',
    'CIVIL': 'CIVIL_SITES',
    'SUPPORT': 'SUPPORT_TEAM',
    'OUTSOURCED': 'OUTSOURCED_SITES',
}
SECTION_ORDER = ['HEAD_OFFICE', 'MEP_SITES', 'CIVIL_SITES', 'OTHER_SITES', 'SUPPORT_TEAM', 'OUTSOURCED_SITES']


def categorize_role(role):
    role_upper = (role or '').upper()
    if 'MBM' in role_upper or 'MANAGEMENT' in role_upper or 'MANAGER' in role_upper:
        return 'MBM_STAFF'
    if 'SUPPORT' in role_upper:
        return 'SUPPORTING_STAFF'
    if 'DOCUMENT' in role_upper:
        return 'DOCUMENT_CONTROLLER'
    if 'SUPERVISOR' in role_upper or 'FOREMAN' in role_upper:
        return 'SUPERVISOR_FOREMAN'
    if 'CHARGEHAND' in role_upper or 'CHARGE HAND' in role_upper:
        return 'CHARGEHAND'
    if 'BOY' in role_upper or 'SECURITY' in role_upper:
        return 'OFFICE_BOY_SECURITY'
    return 'LABOUR'


def _empty_categories():
    return {category: {'present': 0, 'absent': 0} for category in CATEGORIES}


def _section_totals(sites):
    totals = _empty_categories()
    for site in sites:
        for category, counts in site['categories'].items():
            totals[category]['present'] += counts['present']
            totals[category]['absent'] += counts['absent']
    return totals


def build_summary_report(report_date):
    """
    report_date is a YYYY-MM-DD string; active employees are counted present
    when their attendance status for that day is a present status
    """
    cutoff = datetime.combine(datetime.strptime(report_date, '%Y-%m-%d').date(), time.max)

    all_employees = Employee.query.all()
    employees = [emp for emp in all_employees if emp.active]
    attendance = {a.emp_id: a for a in AttendanceMaster.query.filter_by(date=report_date).all()}
    supply_labour = SupplyLabour.query.filter(
        SupplyLabour.status == 'PRESENT',
        SupplyLabour.created_at <= cutoff
    ).all()
    subcontractors = Subcontractor.query.filter(Subcontractor.created_at <= cutoff).all()

    def attended(emp_id):
        record = attendance.get(emp_id)
        return record is not None and is_present(record.status)

    site_groups = {}
    for emp in employees:
        key = (emp.site_type, emp.site)
        if key not in site_groups:
            site_groups[key] = {'siteType': emp.site_type, 'site': emp.site, 'categories': _empty_categories()}
        category = categorize_role(emp.role)
        bucket = 'present' if attended(emp.emp_id) else 'absent'
        site_groups[key]['categories'][category][bucket] += 1

    sections = {name: [] for name in SECTION_ORDER}
    for key in sorted(site_groups):
        group = site_groups[key]
        sections[SECTION_BY_SITE_TYPE.get(group['siteType'], 'OTHER_SITES')].append(group)

    site_type_by_emp = {emp.emp_id: emp.site_type for emp in employees}
    site_type_by_project = {}
    for emp in employees:
        if emp.project_id:
            site_type_by_project.setdefault(emp.project_id, emp.site_type)

    result_sections = {}
    for name in SECTION_ORDER:
        totals = _section_totals(sections[name])
        if name in ('MEP_SITES', 'CIVIL_SITES'):
            site_type = 'MEP' if name == 'MEP_SITES' else 'CIVIL'
            subs = [s for s in subcontractors if site_type_by_project.get(s.project_id) == site_type]
            totals['labourSupply'] = sum(1 for sl in supply_labour if site_type_by_emp.get(sl.emp_id) == site_type)
            totals['subContPresent'] = sum(s.employees_present or 0 for s in subs)
            totals['subContTotal'] = len(subs)
        result_sections[name] = {'sites': sections[name], 'totals': totals}

    grand_total = _empty_categories()
    for name in SECTION_ORDER:
        for category in CATEGORIES:
            grand_total[category]['present'] += result_sections[name]['totals'][category]['present']
            grand_total[category]['absent'] += result_sections[name]['totals'][category]['absent']

    total_present = sum(c['present'] for c in grand_total.values())
    total_absent = sum(c['absent'] for c in grand_total.values())

    absent_breakdown = {
        'MANAGEMENT': sum(1 for emp in employees
                          if categorize_role(emp.role) == 'MBM_STAFF' and not attended(emp.emp_id)),
        'MD_REFERENCE': 0,
        'VACATION': 0,
        'INACTIVE': sum(1 for emp in all_employees if not emp.active),
        'ABSCONDED': 0,
    }
    for record in attendance.values():
        status = (record.status or '').lower()
        if 'vacation' in status:
            absent_breakdown['VACATION'] += 1
        elif 'md' in status or 'reference' in status:
            absent_breakdown['MD_REFERENCE'] += 1
        elif 'absconded' in status or 'run away' in status:
            absent_breakdown['ABSCONDED'] += 1

    return {
        'reportDate': report_date,
        'sections': result_sections,
        'grandTotal': grand_total,
        'totalPresent': total_present,
        'totalAbsent': total_absent,
        'grandTotalCount': total_present + total_absent,
        'absentPercentage': absent_percent(total_absent, total_present + total_absent),
        'absentBreakdown': absent_breakdown,
    }


def render_summary_workbook(report):
    wb = Workbook()
    ws = wb.active
    ws.title = 'Summary Report'

    headers = ['Section', 'Site'] + [f"{c} {k}" for c in CATEGORIES for k in ('P', 'A')]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')

    total_fill = PatternFill(start_color='FFC000', end_color='FFC000', fill_type='solid')
    for name in SECTION_ORDER:
        section = report['sections'][name]
        for site in section['sites']:
            ws.append([name, site['site']] + [site['categories'][c][k] for c in CATEGORIES for k in ('present', 'absent')])
        ws.append([name, 'TOTAL'] + [section['totals'][c][k] for c in CATEGORIES for k in ('present', 'absent')])
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)
            cell.fill = total_fill

    ws.append(['GRAND TOTAL', ''] + [report['grandTotal'][c][k] for c in CATEGORIES for k in ('present', 'absent')])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)
        cell.fill = total_fill

    ws.append([])
    ws.append(['Absent %', report['absentPercentage']])
    for key, value in report['absentBreakdown'].items():
        ws.append([key, value])

    ws.column_dimensions['A'].width = 20
    ws.column_dimensions['B'].width = 30
    for col in range(3, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 14

    return wb
