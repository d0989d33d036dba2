"""
Notification System Module - GFI Tracker Dashboard Service

This module assembles the notification feed of each role and renders the
role specific message of every notification.

Features:
- Role specific feeds (admin, verifier, teacher)
- Assignment notifications for teachers
- Role aware status bucketing (pending / approved / rejected)
- Customizable message templates
- Badge counts
- Notification deletion
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, List, Any, Optional

from jinja2 import Template

from .api_client import ApiError
from .time_slots import parse_timestamp


@dataclass
class NotificationData:
    """Data structure for a rendered notification."""
    id: Optional[str]
    type: str
    title: str
    message: str
    severity: str
    status: str
    created_at: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)


def _created(notification) -> datetime:
    return parse_timestamp(notification.get('createdAt')) or datetime.min


def badge_label(count: int) -> str:
    return '9+' if count > 9 else str(count)


class NotificationSystem:
    """
    Notification feeds for every role.
    """

    def __init__(self, api, role: Optional[str] = None):
        """
        Args:
            api: ApiClient instance
            role (str): Signed-in user's role
        """
        self.api = api
        self.role = role
        self.logger = logging.getLogger(__name__)

        self.NOTIFICATION_TYPES = {
            'UNIT_START': 'unit-start',
            'UNIT_COMPLETE': 'unit-complete',
            'TIME_SLOT': 'time-slot',
            'SUBJECT_ASSIGN': 'subject-assign',
            'BREAK_TIMING': 'break-timing'
        }

        self.TYPE_LABELS = {
            'unit-start': 'Unit Start Request',
            'unit-complete': 'Unit Completion Request',
            'time-slot': 'Time Slot Request',
            'subject-assign': 'Subject Assignment'
        }

        # status bucket -> severity
        self.SEVERITY_LEVELS = {
            'pending': 'warning',
            'approved': 'success',
            'rejected': 'error'
        }

        self.templates = {
            'unit_verifier': Template(
                '{{ teacher }} {{ "started" if kind == "unit-start" else "completed" }} '
                'unit "{{ unit }}" in {{ subject }}'
            ),
            'unit_pending': Template(
                '{{ "Start" if kind == "unit-start" else "Complete" }} unit "{{ unit }}" in {{ subject }}'
            ),
            'unit_approved': Template(
                '✅ {{ "Started" if kind == "unit-start" else "Completed" }} unit "{{ unit }}" in {{ subject }}'
            ),
            'unit_rejected': Template(
                '❌ {{ "Start" if kind == "unit-start" else "Completion" }} request for '
                '"{{ unit }}" in {{ subject }} was rejected'
            ),
            'slot_verifier_break': Template('{{ teacher }} updated break time to {{ minutes }} mins'),
            'slot_verifier': Template('{{ teacher }} requested time slot "{{ slot }}"'),
            'slot_pending': Template('Select time slot "{{ slot }}"'),
            'slot_approved': Template('✅ Time slot "{{ slot }}" approved'),
            'slot_rejected': Template('❌ Time slot "{{ slot }}" request was rejected'),
            'assign_admin_waiting': Template(
                'Subject assignment "{{ subject }}" (Approved by you, waiting for teacher)'
            ),
            'assign_teacher_waiting': Template(
                'Subject assignment for you: "{{ subject }}" (admin approved – accept or reject)'
            ),
            'assign_requested': Template('Subject "{{ subject }}": {{ verifier }} requests assign to {{ to_name }}'),
            'assign_approved': Template('✅ Subject assignment for "{{ subject }}" approved'),
            'assign_rejected': Template('❌ Subject assignment for "{{ subject }}" was rejected'),
        }

    def _render(self, name: str, **context) -> str:
        return self.templates[name].render(**context)

    def load(self) -> Dict[str, Any]:
        """
        Notification feed of the signed-in role.

        Returns:
            Dict[str, Any]: success, notifications and (verifiers) historyCount
        """
        try:
            if self.role == 'admin':
                response = self.api.get_admin_notifications(skip_cache=True)
                notifications = response.get('data') or [] if response.get('success') else []
                return {'success': True, 'notifications': notifications}

            if self.role == 'verifier':
                approvals = self.api.get_verifier_approvals({'status': 'all'})
                history = self.api.get_verifier_assignments('all', skip_cache=True)
                notifications = []
                if approvals.get('success'):
                    notifications = [
                        n for n in approvals.get('data') or []
                        if n.get('type') != self.NOTIFICATION_TYPES['SUBJECT_ASSIGN']
                    ]
                history_count = 0
                if history.get('success') and isinstance(history.get('data'), list):
                    history_count = len(history['data'])
                return {'success': True, 'notifications': notifications, 'historyCount': history_count}

            own = self.api.get_notifications()
            assignments = self.api.get_teacher_assignments()
            notifications = own.get('data') or [] if own.get('success') else []
            assignment_list = assignments.get('data') or [] if assignments.get('success') else []
            combined = self.assignment_notifications(assignment_list) + list(notifications)
            combined.sort(key=_created, reverse=True)
            return {'success': True, 'notifications': combined}

        except ApiError as e:
            self.logger.error(f"Error loading notifications: {str(e)}")
            return {'success': False, 'notifications': [], 'error': e.message}

    def assignment_notifications(self, assignments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Turn assignments waiting for or accepted by a teacher into notifications."""
        notifications = []
        for assignment in assignments:
            if assignment.get('status') not in ('admin_approved', 'approved'):
                continue
            notifications.append({
                '_id': assignment.get('_id'),
                'type': self.NOTIFICATION_TYPES['SUBJECT_ASSIGN'],
                'status': assignment.get('status'),
                'requestData': {
                    'assignmentId': assignment.get('_id'),
                    'subjectName': (assignment.get('subject') or {}).get('name'),
                    'fromTeacherName': (assignment.get('fromTeacher') or {}).get('name'),
                    'toTeacherName': (assignment.get('toTeacher') or {}).get('name'),
                    'reason': assignment.get('reason'),
                    'verifierName': (assignment.get('requestedBy') or {}).get('name')
                },
                'createdAt': assignment.get('createdAt'),
                'requestedBy': assignment.get('requestedBy'),
                'approvedAt': assignment.get('approvedAt')
            })
        return notifications

    def status_for_filter(self, notification: Dict[str, Any]) -> str:
        """
        Status bucket of a notification for the signed-in role.
        An admin-approved assignment is done for admins and still open for everyone else.
        """
        status = (notification.get('status') or 'pending').lower()
        if status == 'rejected':
            return 'rejected'
        if status == 'approved':
            return 'approved'
        if status == 'admin_approved':
            return 'approved' if self.role == 'admin' else 'pending'
        return 'pending'

    def message_for(self, notification: Dict[str, Any]) -> str:
        """Role specific text of a notification."""
        kind = notification.get('type')
        status = notification.get('status')
        request_data = notification.get('requestData') or {}
        requester = notification.get('requestedBy') or {}
        teacher = (requester.get('name') if isinstance(requester, dict) else None) or 'Teacher'

        if kind in ('unit-start', 'unit-complete'):
            context = {
                'kind': kind,
                'unit': request_data.get('unitName') or 'Unit',
                'subject': request_data.get('subjectName') or 'Subject',
                'teacher': teacher
            }
            if self.role == 'verifier':
                return self._render('unit_verifier', **context)
            if status == 'pending':
                return self._render('unit_pending', **context)
            if status == 'approved':
                return self._render('unit_approved', **context)
            return self._render('unit_rejected', **context)

        if kind == 'time-slot':
            slot = request_data.get('label') or request_data.get('slotId') or 'Time Slot'
            if self.role == 'verifier':
                if request_data.get('isBreak'):
                    return self._render('slot_verifier_break', teacher=teacher,
                                        minutes=request_data.get('breakDuration'))
                return self._render('slot_verifier', teacher=teacher, slot=slot)
            if status == 'pending':
                return self._render('slot_pending', slot=slot)
            if status == 'approved':
                return self._render('slot_approved', slot=slot)
            return self._render('slot_rejected', slot=slot)

        if kind == 'subject-assign':
            context = {
                'subject': request_data.get('subjectName') or 'Subject',
                'verifier': (request_data.get('verifierName')
                             or (requester.get('name') if isinstance(requester, dict) else None)
                             or 'Verifier'),
                'to_name': request_data.get('toTeacherName') or '—'
            }
            if status in ('pending', 'admin_approved'):
                if status == 'admin_approved':
                    template = 'assign_admin_waiting' if self.role == 'admin' else 'assign_teacher_waiting'
                    return self._render(template, **context)
                return self._render('assign_requested', **context)
            if status == 'approved':
                return self._render('assign_approved', **context)
            return self._render('assign_rejected', **context)

        return 'Notification'

    def render(self, notification: Dict[str, Any]) -> NotificationData:
        bucket = self.status_for_filter(notification)
        kind = notification.get('type') or ''
        return NotificationData(
            id=notification.get('_id'),
            type=kind,
            title=self.TYPE_LABELS.get(kind, kind),
            message=self.message_for(notification),
            severity=self.SEVERITY_LEVELS[bucket],
            status=bucket,
            created_at=notification.get('createdAt'),
            data=notification.get('requestData') or {}
        )

    def filter(self, notifications: List[Dict[str, Any]], status_filter: str = 'pending',
               type_filter: str = 'all') -> List[Dict[str, Any]]:
        """
        Verifiers filter by type only; other roles filter by status bucket.
        """
        if self.role == 'verifier':
            if type_filter in ('time-slot', 'unit-start', 'unit-complete'):
                return [n for n in notifications if n.get('type') == type_filter]
            return list(notifications)
        return [n for n in notifications if self.status_for_filter(n) == status_filter]

    def counts(self, notifications: List[Dict[str, Any]]) -> Dict[str, int]:
        buckets = [self.status_for_filter(n) for n in notifications]
        return {
            'pending': buckets.count('pending'),
            'approved': buckets.count('approved'),
            'rejected': buckets.count('rejected')
        }

    def feed(self, status_filter: str = 'pending', type_filter: str = 'all') -> Dict[str, Any]:
        """Loaded, filtered and rendered feed plus its counters."""
        loaded = self.load()
        notifications = loaded.get('notifications') or []
        visible = self.filter(notifications, status_filter, type_filter)
        result = {
            'success': loaded['success'],
            'notifications': [asdict(self.render(n)) for n in visible],
            'counts': self.counts(notifications)
        }
        if 'historyCount' in loaded:
            result['historyCount'] = loaded['historyCount']
        if not loaded['success']:
            result['error'] = loaded.get('error')
        return result

    def teacher_badge_count(self) -> int:
        """Pending notifications plus assignments waiting for the teacher."""
        count = 0
        try:
            notifications = self.api.get_notifications()
            if notifications.get('success'):
                count += len([n for n in notifications.get('data') or [] if n.get('status') == 'pending'])
            assignments = self.api.get_teacher_assignments()
            if assignments.get('success'):
                count += len([a for a in assignments.get('data') or [] if a.get('status') == 'admin_approved'])
        except ApiError as e:
            self.logger.error(f"Error loading notification count: {str(e)}")
        return count

    def admin_badge_count(self) -> int:
        try:
            response = self.api.get_admin_notifications(skip_cache=True)
        except ApiError as e:
            self.logger.error(f"Error loading admin notification count: {str(e)}")
            return 0
        if not response.get('success'):
            return 0
        return len([n for n in response.get('data') or [] if n.get('status') == 'pending'])

    def badge(self) -> Dict[str, Any]:
        if self.role == 'admin':
            count = self.admin_badge_count()
        elif self.role == 'teacher':
            count = self.teacher_badge_count()
        else:
            count = 0
        return {'count': count, 'label': badge_label(count) if count else ''}

    def delete(self, notification_id: str) -> Dict[str, Any]:
        try:
            response = self.api.delete_notification(notification_id)
        except ApiError as e:
            self.logger.error(f"Error deleting notification {notification_id}: {str(e)}")
            return {'success': False, 'error': e.message}
        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to delete notification'}
        return {'success': True, 'message': response.get('message') or 'Notification deleted'}
