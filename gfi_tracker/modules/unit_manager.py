"""
Unit Manager Module - GFI Tracker Dashboard Service

This module builds the teacher dashboard and drives the unit start/complete
workflow. Starting or completing a unit may be applied at once or queued for
a verifier, depending on the API's answer.

Features:
- Teacher dashboard view-model
- Unit statistics and active unit list
- Unit start/complete requests with conflict detection
- Progress labels and elapsed time formatting
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional

from .api_client import ApiError
from .time_slots import TimeSlotManager, parse_timestamp, format_date


IN_PROGRESS_CONFLICT_MARKERS = ('already in progress', 'another unit', 'unit is already')


def is_in_progress_conflict(message: str) -> bool:
    """True when the API refused a start because another unit is running."""
    lower = (message or '').lower()
    return any(marker in lower for marker in IN_PROGRESS_CONFLICT_MARKERS)


def unit_log_minutes(start_time, end_time) -> Optional[int]:
    """Whole minutes between start and end of a unit log."""
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


def format_elapsed(seconds: int) -> str:
    seconds = max(0, int(seconds or 0))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class UnitManager:
    """
    Teacher-side unit workflow.
    """

    def __init__(self, api, database_manager=None, owner: Optional[str] = None):
        self.api = api
        self.db = database_manager
        self.owner = owner
        self.logger = logging.getLogger(__name__)

        self.UNIT_STATUSES = {
            'NOT_STARTED': 'not-started',
            'IN_PROGRESS': 'in-progress',
            'COMPLETED': 'completed'
        }

    def summarize(self, subjects: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Count units by status across subjects.

        Returns:
            Dict[str, int]: total, completed, inProgress, pending
        """
        units = [unit for subject in subjects for unit in subject.get('units') or []]
        return {
            'total': len(units),
            'completed': len([u for u in units if u.get('status') == 'completed']),
            'inProgress': len([u for u in units if u.get('status') == 'in-progress']),
            'pending': len([u for u in units if u.get('status') == 'not-started'])
        }

    def active_units(self, subjects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """In-progress units with their subject, most recently started first."""
        active = []
        for subject in subjects:
            for unit in subject.get('units') or []:
                if unit.get('status') != 'in-progress':
                    continue
                active.append(dict(
                    unit,
                    subjectName=subject.get('name'),
                    subjectColor=subject.get('color'),
                    subjectId=subject.get('id')
                ))

        def started(unit):
            return parse_timestamp(unit.get('startedAt')) or datetime.min

        active.sort(key=started, reverse=True)
        return active

    def subject_progress(self, subject: Dict[str, Any]) -> Dict[str, Any]:
        units = subject.get('units') or []
        completed = len([u for u in units if u.get('status') == 'completed'])
        in_progress = len([u for u in units if u.get('status') == 'in-progress'])
        percentage = round(completed / len(units) * 100) if units else 0
        return {
            'total': len(units),
            'completed': completed,
            'inProgress': in_progress,
            'percentage': percentage
        }

    def progress_label(self, unit: Dict[str, Any]) -> str:
        status = unit.get('status')
        if status == 'completed':
            return 'Completed'
        if status == 'in-progress':
            return 'In Progress' if (unit.get('progressDays') or 0) >= 1 else 'Started'
        return 'Not Started'

    def day_label(self, unit: Dict[str, Any]) -> Optional[str]:
        days = unit.get('progressDays')
        if unit.get('status') == 'in-progress' and days is not None and days >= 1:
            return f"Day {days + 1}"
        return None

    def unit_progress(self, unit: Dict[str, Any]) -> int:
        """Progress bar fill: 100 completed, 50 from day two, 15 on day one, 0 otherwise."""
        status = unit.get('status')
        if status == 'completed':
            return 100
        if status == 'in-progress':
            return 50 if (unit.get('progressDays') or 0) >= 1 else 15
        return 0

    def decorate_unit(self, unit: Dict[str, Any]) -> Dict[str, Any]:
        return dict(
            unit,
            label=self.progress_label(unit),
            dayLabel=self.day_label(unit),
            progress=self.unit_progress(unit),
            elapsed=format_elapsed(unit.get('elapsedTime'))
        )

    def start_unit(self, unit_id: str) -> Dict[str, Any]:
        """
        Ask the API to start a unit.

        Returns:
            Dict[str, Any]: success, pending (awaiting verifier), conflict flag and message
        """
        try:
            response = self.api.start_unit(unit_id)
        except ApiError as e:
            self.logger.warning(f"Start unit {unit_id} refused: {str(e)}")
            return self._start_error(e.message or 'Failed to start unit')

        if not response.get('success'):
            return self._start_error(response.get('message') or 'Failed to start unit')

        message = response.get('message') or ''
        if 'pending' in message:
            self.logger.info(f"Unit start request submitted: {unit_id}")
            return {
                'success': True,
                'pending': True,
                'message': 'Unit start request submitted! Waiting for verifier approval.'
            }

        self.logger.info(f"Unit started: {unit_id}")
        return {'success': True, 'pending': False, 'reload': True, 'message': message or 'Unit started'}

    def _start_error(self, message: str) -> Dict[str, Any]:
        return {
            'success': False,
            'conflict': is_in_progress_conflict(message),
            'error': message
        }

    def complete_unit(self, unit_id: str) -> Dict[str, Any]:
        try:
            response = self.api.complete_unit(unit_id)
        except ApiError as e:
            self.logger.warning(f"Complete unit {unit_id} refused: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to complete unit'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to complete unit'}

        message = response.get('message') or ''
        if 'pending' in message:
            return {
                'success': True,
                'pending': True,
                'message': 'Unit completion request submitted! Waiting for verifier approval.'
            }

        self.logger.info(f"Unit completed: {unit_id}")
        return {'success': True, 'pending': False, 'reload': True, 'message': message or 'Unit completed'}

    def pending_notifications_count(self) -> int:
        """Pending notifications plus assignments waiting for this teacher."""
        count = 0
        try:
            notifications = self.api.get_notifications()
            if notifications.get('success'):
                count += len([n for n in notifications.get('data') or [] if n.get('status') == 'pending'])
            assignments = self.api.get_teacher_assignments()
            if assignments.get('success'):
                count += len([a for a in assignments.get('data') or [] if a.get('status') == 'admin_approved'])
        except ApiError as e:
            self.logger.error(f"Error loading notifications count: {str(e)}")
        return count

    def load_dashboard(self, batch_id: Optional[str] = None, date=None) -> Dict[str, Any]:
        """
        Build the teacher dashboard.

        Returns:
            Dict[str, Any]: success and the dashboard data, or an error message
        """
        try:
            response = self.api.get_teacher_dashboard(batch_id, format_date(date))
        except ApiError as e:
            self.logger.error(f"Teacher dashboard error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to load dashboard'}

        if not response.get('success') or not response.get('data'):
            return {'success': False, 'error': response.get('message') or 'Failed to load dashboard'}

        data = response['data']
        subjects = [
            dict(subject, units=[self.decorate_unit(u) for u in subject.get('units') or []],
                 progress=self.subject_progress(subject))
            for subject in data.get('subjects') or []
        ]
        time_slots = data.get('timeSlots') or {}
        checked = [s['slotId'] for s in time_slots.get('slots') or [] if s.get('checked') is True]

        slot_manager = TimeSlotManager(self.api, self.db, self.owner)
        try:
            status_map, _ = slot_manager.get_approval_status(date)
            selected = [s for s in checked if (status_map.get(s) or {}).get('status') != 'rejected']
        except ApiError as e:
            self.logger.warning(f"Approval status unavailable, showing all checked slots: {str(e)}")
            selected = checked

        return {
            'success': True,
            'data': {
                'subjects': subjects,
                'selectedSlots': selected,
                'breakDuration': time_slots.get('breakDuration'),
                'approvedHours': time_slots.get('totalHours'),
                'summary': self.summarize(subjects),
                'activeUnits': self.active_units(subjects),
                'pendingNotifications': self.pending_notifications_count(),
                'currentUser': data.get('currentUser')
            }
        }
