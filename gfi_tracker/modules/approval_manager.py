"""
Approval Manager Module - GFI Tracker Dashboard Service

This module implements the verifier side of the approval workflow:
loading the queue, filtering it, and approving or rejecting teacher
requests with optimistic counter updates.

Features:
- Verifier dashboard with safe statistics
- Status/type filtering and time-slot de-duplication
- Optimistic approve/reject with reload on failure
- Human readable request descriptions
- Pending requests grouped per teacher
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional

from .api_client import ApiError
from .time_slots import slot_label, parse_timestamp


APPROVAL_TYPES = {
    'unit-complete': 'Unit Completion',
    'unit-start': 'Start Unit',
    'time-slot': 'Time Slot',
    'subject-assign': 'Subject Assignment',
    'break-timing': 'Break Timing'
}

APPROVAL_STATUSES = ['pending', 'approved', 'rejected']
STATUS_FILTERS = ['all'] + APPROVAL_STATUSES

STAT_KEYS = ['pending', 'approvedToday', 'rejectedToday', 'totalPending', 'notificationsCount']


def type_label(approval_type: str) -> str:
    return APPROVAL_TYPES.get(approval_type, approval_type)


def person_id(value) -> Optional[str]:
    """Id of a populated user reference or a bare id string."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get('_id') or value.get('id')
    return None


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def safe_stats(stats) -> Dict[str, int]:
    """Merge raw dashboard stats with zero defaults, every value an int."""
    raw = stats if isinstance(stats, dict) else {}
    merged = dict(raw)
    for key in STAT_KEYS:
        merged[key] = _to_int(raw.get(key))
    return merged


def _created(approval) -> datetime:
    return parse_timestamp(approval.get('createdAt')) or datetime.min


class ApprovalManager:
    """
    Verifier approval queue.
    """

    def __init__(self, api, user_id: Optional[str] = None):
        """
        Args:
            api: ApiClient instance
            user_id (str): Signed-in verifier id
        """
        self.api = api
        self.user_id = user_id
        self.logger = logging.getLogger(__name__)

    def load_dashboard(self) -> Dict[str, Any]:
        """
        Fetch the verifier dashboard.

        Returns:
            Dict[str, Any]: success and data (pendingApprovals, recentApprovals, stats)
        """
        try:
            response = self.api.get_verifier_dashboard()
        except ApiError as e:
            self.logger.error(f"Verifier dashboard error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to load dashboard'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to load dashboard'}

        data = dict(response.get('data') or {})
        data['pendingApprovals'] = list(data.get('pendingApprovals') or [])
        data['recentApprovals'] = list(data.get('recentApprovals') or [])
        data['stats'] = safe_stats(data.get('stats'))
        return {'success': True, 'data': data}

    def filter_approvals(self, data: Dict[str, Any], status_filter: str = 'pending',
                         type_filter: str = 'all') -> List[Dict[str, Any]]:
        """
        Approvals to list for the signed-in verifier.

        History only holds requests this verifier approved or rejected, and
        requests the verifier raised are never listed. Time-slot requests are
        collapsed to the newest per slot, date, direction, status and teacher.
        """
        pending = list(data.get('pendingApprovals') or [])
        recent = list(data.get('recentApprovals') or [])

        if self.user_id:
            recent = [
                a for a in recent
                if person_id(a.get('approvedBy') or a.get('rejectedBy')) == self.user_id
            ]
            pending = [a for a in pending if person_id(a.get('requestedBy')) != self.user_id]
            recent = [a for a in recent if person_id(a.get('requestedBy')) != self.user_id]

        if status_filter == 'all':
            approvals = pending + recent
        elif status_filter == 'pending':
            approvals = pending
        else:
            approvals = [a for a in recent if a.get('status') == status_filter]

        if type_filter and type_filter != 'all':
            approvals = [a for a in approvals if a.get('type') == type_filter]

        seen = {}
        for approval in approvals:
            if approval.get('type') == 'time-slot':
                request_data = approval.get('requestData') or {}
                requester = person_id(approval.get('requestedBy')) or 'unknown'
                key = (f"{request_data.get('slotId')}-{request_data.get('date')}-"
                       f"{request_data.get('checked')}-{approval.get('status')}-{requester}")
                existing = seen.get(key)
                if existing is None or _created(approval) > _created(existing):
                    seen[key] = approval
            else:
                seen.setdefault(approval.get('_id'), approval)

        return sorted(seen.values(), key=_created, reverse=True)

    def approve(self, approval_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Approve a request, updating the dashboard data before the API answers.

        Args:
            approval_id (str): Approval to approve
            data (Dict[str, Any]): Dashboard data currently shown

        Returns:
            Dict[str, Any]: success, data (optimistic or reloaded), reverted flag
        """
        optimistic = self._remove_pending(data, approval_id, 'approvedToday')
        try:
            response = self.api.approve_request(approval_id)
            if response.get('success'):
                self.logger.info(f"Approval {approval_id} approved")
                return {'success': True, 'data': optimistic, 'message': response.get('message', 'Approved')}
            error = response.get('message') or 'Failed to approve request'
        except ApiError as e:
            error = e.message
        self.logger.error(f"Approve {approval_id} failed: {error}")
        return self._revert(error)

    def reject(self, approval_id: str, reason: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Reject a request with an optional reason, same optimistic flow as approve."""
        optimistic = self._remove_pending(data, approval_id, 'rejectedToday')
        try:
            response = self.api.reject_request(approval_id, reason or '')
            if response.get('success'):
                self.logger.info(f"Approval {approval_id} rejected")
                return {'success': True, 'data': optimistic, 'message': response.get('message', 'Rejected')}
            error = response.get('message') or 'Failed to reject request'
        except ApiError as e:
            error = e.message
        self.logger.error(f"Reject {approval_id} failed: {error}")
        return self._revert(error)

    def _remove_pending(self, data: Dict[str, Any], approval_id: str, counter: str) -> Dict[str, Any]:
        stats = safe_stats(data.get('stats'))
        stats['pending'] -= 1
        stats[counter] += 1
        updated = dict(data)
        updated['pendingApprovals'] = [
            a for a in data.get('pendingApprovals') or [] if a.get('_id') != approval_id
        ]
        updated['stats'] = stats
        return updated

    def _revert(self, error: str) -> Dict[str, Any]:
        reloaded = self.load_dashboard()
        return {
            'success': False,
            'reverted': True,
            'error': error,
            'data': reloaded.get('data')
        }

    def describe(self, approval: Dict[str, Any]) -> Dict[str, str]:
        """Title, action and date line for an approval card."""
        approval_type = approval.get('type')
        request_data = approval.get('requestData') or {}
        created = parse_timestamp(approval.get('createdAt'))
        created_text = created.strftime('%d/%m/%Y %H:%M') if created else ''

        def request_date():
            requested = parse_timestamp(request_data.get('date'))
            return requested.strftime('%d/%m/%Y') if requested else 'Today'

        if approval_type == 'time-slot':
            return {
                'title': f"Time Slot: {slot_label(request_data.get('slotId'))}",
                'action': 'Select' if request_data.get('checked') else 'Deselect',
                'date': request_date()
            }
        if approval_type in ('unit-complete', 'unit-start'):
            unit_name = request_data.get('unitName')
            subject_name = request_data.get('subjectName')
            suffix = f" ({subject_name})" if subject_name else ''
            if approval_type == 'unit-complete':
                title = f"Complete Unit: {unit_name or 'Unknown Unit'}"
                action = f'Mark unit "{unit_name or "Unknown"}" as completed{suffix}'
            else:
                title = f"Start Unit: {unit_name or 'Unknown Unit'}"
                action = f'Start working on "{unit_name or "Unknown"}"{suffix}'
            return {'title': title, 'action': action, 'date': created_text}
        if approval_type == 'subject-assign':
            return {'title': 'Assign Subject', 'action': 'Assign subject to teacher', 'date': ''}
        if approval_type == 'break-timing':
            duration = request_data.get('breakDuration')
            return {
                'title': 'Break Timing',
                'action': f"Set break to {duration} minutes" if duration else 'Remove break',
                'date': request_date()
            }
        return {'title': type_label(approval_type), 'action': '', 'date': ''}

    def group_by_teacher(self, approvals: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Group approvals by requesting teacher, keeping first-seen order."""
        groups = {}
        for approval in approvals:
            requester = approval.get('requestedBy')
            teacher_id = person_id(requester) or 'unknown'
            if teacher_id not in groups:
                name = requester.get('name') if isinstance(requester, dict) else None
                groups[teacher_id] = {
                    'teacherId': teacher_id,
                    'teacherName': name or 'Unknown Teacher',
                    'approvals': []
                }
            groups[teacher_id]['approvals'].append(dict(approval, details=self.describe(approval),
                                                        typeLabel=type_label(approval.get('type'))))
        return list(groups.values())
