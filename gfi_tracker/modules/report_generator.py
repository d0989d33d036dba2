"""
Report Generator Module - GFI Tracker Dashboard Service

This module handles the admin analytics views and their exports.

Features:
- Admin dashboard metrics and unit logs
- Progress aggregated per subject or per teacher
- Teacher/subject/date-range filters
- Excel/CSV/PDF export of unit logs
- Cleanup of old export files
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from .api_client import ApiError
from .time_slots import parse_timestamp


DEFAULT_FILTERS = {'teacherId': 'all', 'subject': 'all', 'dateRange': 'today'}
DATE_RANGES = ['today', 'week', 'month', 'all']
EXPORT_COLUMNS = ['Teacher', 'Subject', 'Unit', 'Status', 'Started', 'Completed', 'Hours']
METRIC_KEYS = ['total', 'completed', 'inProgress', 'delayed', 'totalHours']


def normalize_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Fill missing filters with defaults; unknown date ranges fall back to today."""
    merged = dict(DEFAULT_FILTERS)
    for key, value in (filters or {}).items():
        if key in merged and value:
            merged[key] = str(value)
    if merged['dateRange'] not in DATE_RANGES:
        merged['dateRange'] = 'today'
    return merged


def aggregate_metrics(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Totals across progress rows.

    Returns:
        Dict[str, Any]: total, completed, inProgress, delayed, totalHours,
        avgHours and completionRate (percent)
    """
    totals = {key: 0 for key in METRIC_KEYS}
    for row in rows:
        for key in METRIC_KEYS:
            try:
                totals[key] += float(row.get(key) or 0)
            except (TypeError, ValueError):
                continue

    for key in ('total', 'completed', 'inProgress', 'delayed'):
        totals[key] = int(totals[key])
    totals['totalHours'] = round(totals['totalHours'], 2)
    totals['avgHours'] = round(totals['totalHours'] / totals['total'], 2) if totals['total'] else 0
    totals['completionRate'] = round(totals['completed'] / totals['total'] * 100) if totals['total'] else 0
    return totals


def _subject_name(subject) -> Optional[str]:
    if isinstance(subject, str):
        return subject
    if isinstance(subject, dict):
        return subject.get('name')
    return None


class ReportGenerator:
    """
    Admin analytics and report export.
    """

    def __init__(self, api, output_dir: str = 'exports'):
        """
        Args:
            api: ApiClient instance
            output_dir (str): Folder export files are written to
        """
        self.api = api
        self.logger = logging.getLogger(__name__)

        self.output_dir = output_dir
        self.supported_formats = ['excel', 'csv', 'pdf']
        os.makedirs(self.output_dir, exist_ok=True)

    def load_dashboard(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Admin dashboard metrics plus the unit logs used for export.

        Returns:
            Dict[str, Any]: success, metrics, unitLogs, delayedUnits, filterOptions
        """
        applied = normalize_filters(filters)
        try:
            response = self.api.get_admin_dashboard(applied)
        except ApiError as e:
            self.logger.error(f"Admin dashboard error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to load dashboard'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to load dashboard'}

        data = response.get('data') or {}
        logs = []
        for item in data.get('unitLogs') or []:
            logs.append({
                'teacherName': item.get('teacherName'),
                'subject': item.get('subject'),
                'unit': item.get('unit'),
                'status': item.get('status'),
                'startedAt': parse_timestamp(item.get('startedAt')),
                'completedAt': parse_timestamp(item.get('completedAt')),
                'totalHours': item.get('totalHours') or 0
            })

        return {
            'success': True,
            'filters': applied,
            'metrics': data.get('metrics') or {},
            'unitLogs': logs,
            'delayedUnits': data.get('delayedUnits') or [],
            'filterOptions': data.get('filters') or {'teachers': ['all'], 'subjects': ['all']}
        }

    def load_progress(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Progress rows grouped by teacher when a subject is chosen, by subject otherwise.
        """
        applied = normalize_filters(filters)
        group_by = 'teacher' if applied['subject'] != 'all' else 'subject'
        try:
            response = self.api.get_admin_progress(dict(applied, groupBy=group_by))
        except ApiError as e:
            self.logger.error(f"Admin progress error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to load analytics data'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to load analytics data'}

        rows = response.get('data') or []
        return {
            'success': True,
            'groupBy': group_by,
            'rows': rows,
            'metrics': aggregate_metrics(rows)
        }

    def subjects_for_filter(self, teacher_name: str, teachers: List[Dict[str, Any]]) -> List[str]:
        """Subject options: every teacher's subjects for 'all', else the chosen teacher's."""
        if teacher_name == 'all':
            pool = teachers
        else:
            pool = [t for t in teachers if t.get('name') == teacher_name]

        names = []
        for teacher in pool:
            for subject in teacher.get('subjects') or []:
                name = _subject_name(subject)
                if name and name not in names:
                    names.append(name)
        return ['all'] + names

    def load_teachers(self) -> Dict[str, Any]:
        try:
            response = self.api.get_teachers()
        except ApiError as e:
            self.logger.error(f"Error loading teachers: {str(e)}")
            return {'success': False, 'teachers': [], 'error': e.message}
        return {'success': bool(response.get('success')), 'teachers': response.get('data') or []}

    def search_logs(self, logs: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
        needle = (query or '').strip().lower()
        if not needle:
            return list(logs)
        return [
            log for log in logs
            if any(needle in str(log.get(key) or '').lower() for key in ('teacherName', 'subject', 'unit'))
        ]

    def _records(self, logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        records = []
        for log in logs:
            started = parse_timestamp(log.get('startedAt'))
            completed = parse_timestamp(log.get('completedAt'))
            try:
                hours = round(float(log.get('totalHours') or 0), 2)
            except (TypeError, ValueError):
                hours = 0.0
            records.append({
                'Teacher': log.get('teacherName') or '',
                'Subject': log.get('subject') or '',
                'Unit': log.get('unit') or '',
                'Status': log.get('status') or '',
                'Started': started.strftime('%d/%m/%Y') if started else '',
                'Completed': completed.strftime('%d/%m/%Y') if completed else '-',
                'Hours': hours
            })
        return records

    def export(self, logs: List[Dict[str, Any]], output_format: str = 'excel',
               filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Export unit logs to a file.

        Args:
            logs (List[Dict[str, Any]]): Unit logs from load_dashboard
            output_format (str): excel, csv or pdf
            filters (Dict[str, Any]): Filters shown in the PDF header

        Returns:
            Dict[str, Any]: success, filename, filepath, format, size (or error)
        """
        if not logs:
            return {'success': False, 'error': 'No data available to export'}
        if output_format not in self.supported_formats:
            return {'success': False, 'error': f'Unsupported format: {output_format}'}

        records = self._records(logs)
        applied = normalize_filters(filters)
        try:
            if output_format == 'excel':
                return self._generate_excel_report(records)
            if output_format == 'csv':
                return self._generate_csv_report(records)
            return self._generate_pdf_report(records, applied)
        except (OSError, ValueError) as e:
            self.logger.error(f"{output_format} report generation failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def _filepath(self, extension: str) -> str:
        filename = f"analytics_report_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.{extension}"
        return os.path.join(self.output_dir, filename)

    def _result(self, filepath: str, output_format: str) -> Dict[str, Any]:
        self.logger.info(f"Report written: {filepath}")
        return {
            'success': True,
            'filename': os.path.basename(filepath),
            'filepath': filepath,
            'format': output_format,
            'size': os.path.getsize(filepath)
        }

    def _generate_excel_report(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        filepath = self._filepath('xlsx')
        with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
            pd.DataFrame(records, columns=EXPORT_COLUMNS).to_excel(writer, sheet_name='Detailed Report', index=False)
        return self._result(filepath, 'excel')

    def _generate_csv_report(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        filepath = self._filepath('csv')
        pd.DataFrame(records, columns=EXPORT_COLUMNS).to_csv(filepath, index=False, encoding='utf-8')
        return self._result(filepath, 'csv')

    def _generate_pdf_report(self, records: List[Dict[str, Any]], filters: Dict[str, str]) -> Dict[str, Any]:
        filepath = self._filepath('pdf')
        doc = SimpleDocTemplate(filepath, pagesize=landscape(A4))
        styles = getSampleStyleSheet()
        elements = []

        title_style = ParagraphStyle('ReportTitle', parent=styles['Heading1'], fontSize=18, spaceAfter=12)
        elements.append(Paragraph('Analytics Report', title_style))
        elements.append(Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles['Normal']))
        elements.append(Paragraph(
            f"Filters: {filters['teacherId']} | {filters['subject']} | {filters['dateRange']}",
            styles['Normal']
        ))
        elements.append(Spacer(1, 12))

        table_data = [EXPORT_COLUMNS]
        for record in records:
            row = [str(record[column]) for column in EXPORT_COLUMNS[:-1]]
            row.append(f"{record['Hours']:.2f}")
            table_data.append(row)

        table = Table(table_data, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.Color(66 / 255, 133 / 255, 244 / 255)),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey)
        ]))
        elements.append(table)

        doc.build(elements)
        return self._result(filepath, 'pdf')

    def delete_old_reports(self, days_old: int = 30) -> Dict[str, Any]:
        """
        Delete export files older than the given number of days.

        Returns:
            Dict[str, Any]: deleted_count and deleted_files
        """
        if not os.path.isdir(self.output_dir):
            return {'success': True, 'deleted_count': 0, 'deleted_files': []}

        cutoff = datetime.now() - timedelta(days=days_old)
        deleted = []
        for filename in os.listdir(self.output_dir):
            filepath = os.path.join(self.output_dir, filename)
            if not os.path.isfile(filepath):
                continue
            if datetime.fromtimestamp(os.path.getmtime(filepath)) < cutoff:
                try:
                    os.remove(filepath)
                except OSError as e:
                    self.logger.error(f"Failed to delete file {filename}: {str(e)}")
                    continue
                deleted.append(filename)
                self.logger.info(f"Deleted old report file: {filename}")

        return {'success': True, 'deleted_count': len(deleted), 'deleted_files': deleted}
