"""
Calendar Manager Module - GFI Tracker Dashboard Service

Teacher calendar: the month grid of worked/scheduled slots and unit
activity, and the planning list built from the time-table a verifier sent.
"""

import calendar
import logging
from datetime import date as date_type, datetime
from typing import Dict, List, Any, Optional

from .api_client import ApiError
from .time_slots import parse_timestamp, format_date


def _display_slots(day_slot: Dict[str, Any]) -> List[str]:
    """Scheduled slot ids when the verifier sent a time-table, else approved or unreviewed checked slots."""
    scheduled = day_slot.get('scheduledSlotIds')
    if isinstance(scheduled, list) and scheduled:
        return list(scheduled)
    return [
        s.get('slotId') for s in day_slot.get('slots') or []
        if s.get('checked') and s.get('status') in (None, '', 'approved')
    ]


def _empty_day(key: str) -> Dict[str, Any]:
    return {
        'date': key,
        'timeSlots': [],
        'scheduleEntries': [],
        'completedUnits': 0,
        'inProgressUnits': 0,
        'totalUnits': 0
    }


class CalendarManager:
    """Month view and planning list for a teacher."""

    def __init__(self, api):
        self.api = api
        self.logger = logging.getLogger(__name__)

    def month_view(self, year: int, month: int) -> Dict[str, Any]:
        """
        Calendar days of one month keyed YYYY-MM-DD.

        Returns:
            Dict[str, Any]: success, start, end and days
        """
        start = date_type(year, month, 1)
        end = date_type(year, month, calendar.monthrange(year, month)[1])

        try:
            response = self.api.get_teacher_calendar(start.isoformat(), end.isoformat())
        except ApiError as e:
            self.logger.error(f"Error loading calendar data: {str(e)}")
            return {'success': False, 'days': {}, 'error': e.message}

        data = response.get('data') if response.get('success') else None
        days = {}
        if not data:
            return {'success': True, 'start': start.isoformat(), 'end': end.isoformat(), 'days': days}

        for day_slot in data.get('timeSlots') or []:
            key = format_date(parse_timestamp(day_slot.get('date')) or day_slot.get('date'))
            slots = _display_slots(day_slot)
            if not key or not slots:
                continue
            day = days.setdefault(key, _empty_day(key))
            day['timeSlots'] = slots
            entries = day_slot.get('scheduleEntries')
            if isinstance(entries, list) and entries:
                day['scheduleEntries'] = [
                    {
                        'subjectName': e.get('subjectName') or '',
                        'batch': e.get('batch'),
                        'slotIds': e.get('slotIds') if isinstance(e.get('slotIds'), list) else []
                    }
                    for e in entries
                ]

        for log in data.get('unitLogs') or []:
            started = parse_timestamp(log.get('startTime'))
            if started is None:
                continue
            key = started.date().isoformat()
            day = days.setdefault(key, _empty_day(key))
            day['totalUnits'] += 1
            if log.get('status') == 'completed':
                day['completedUnits'] += 1
            elif log.get('status') == 'in-progress':
                day['inProgressUnits'] += 1

        return {'success': True, 'start': start.isoformat(), 'end': end.isoformat(), 'days': days}

    def planning(self, days: Dict[str, Dict[str, Any]], today: Optional[date_type] = None) -> Dict[str, Any]:
        """
        Planning items from the month's days, one per schedule entry.

        Days without schedule entries give one "Class" item covering their slots.
        Days before today are history, the rest scheduled.
        """
        today = today or datetime.now().date()
        items = []
        for key, day in days.items():
            if not day.get('timeSlots'):
                continue
            day_date = date_type.fromisoformat(key)
            entries = day.get('scheduleEntries') or [{'subjectName': 'Class', 'slotIds': day['timeSlots']}]
            for entry in entries:
                hours = len(entry.get('slotIds') or [])
                if hours == 0:
                    continue
                items.append({
                    'date': key,
                    'hours': hours,
                    'subject': entry.get('subjectName') or 'Class',
                    'batch': entry.get('batch'),
                    'status': 'history' if day_date < today else 'scheduled'
                })

        items.sort(key=lambda item: item['date'])
        history = [i for i in items if i['status'] == 'history']
        return {
            'items': items,
            'scheduled': [i for i in items if i['status'] == 'scheduled'],
            'recentHistory': list(reversed(history[-7:]))
        }

    def update_day(self, day, subject_name: str, batch: Optional[str] = None) -> Dict[str, Any]:
        """Set the subject and batch taught on a calendar day."""
        if not (subject_name or '').strip():
            return {'success': False, 'error': 'Subject is required'}
        try:
            response = self.api.update_teacher_calendar_day(format_date(day), subject_name.strip(), batch)
        except ApiError as e:
            self.logger.error(f"Calendar day update failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to update day'}
        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to update day'}
        return {'success': True, 'data': response.get('data'), 'message': response.get('message') or 'Day updated'}
