# blueprints/reports.py
"""
Report downloads: master manpower Excel and the role category summary
"""

import logging
from datetime import date, datetime
from flask import Blueprint, request
from utils.decorators import admin_required, super_admin_required
from utils.helpers import ApiError, success_response, error_response
from utils.master_excel import generate_master_excel
from utils.spreadsheets import send_workbook
from utils.summary_report import build_summary_report, render_summary_workbook

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__)


def _report_date(default_today=True):
    value = request.args.get('date')
    if not value:
        return date.today().isoformat() if default_today else None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date().isoformat()
    except ValueError:
        raise ApiError('date must be YYYY-MM-DD')


@reports_bp.route('/api/download/master-excel', methods=['GET'])
@admin_required
def download_master_excel():
    """Master summary workbook, for one date or all merged attendance"""
    report_date = _report_date(default_today=False)
    try:
        wb = generate_master_excel(report_date)
        stamp = report_date or date.today().isoformat()
        return send_workbook(wb, f'MASTER_SUMMARY_{stamp}.xlsx')
    except Exception as e:
        logger.error(f"Master Excel generation failed: {e}")
        return error_response('Failed to generate master Excel', 500)


@reports_bp.route('/api/admin/summary-report', methods=['GET'])
@super_admin_required
def summary_report():
    report_date = _report_date()
    try:
        return success_response(build_summary_report(report_date))
    except Exception as e:
        logger.error(f"Summary report error: {e}")
        return error_response('Failed to generate summary report', 500)


@reports_bp.route('/api/admin/summary-report/export', methods=['GET'])
@super_admin_required
def export_summary_report():
    report_date = _report_date()
    try:
        wb = render_summary_workbook(build_summary_report(report_date))
        return send_workbook(wb, f'SUMMARY_REPORT_{report_date}.xlsx')
    except Exception as e:
        logger.error(f"Summary report export error: {e}")
        return error_response('Failed to export summary report', 500)
