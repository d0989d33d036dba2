"""
Assignment Manager Module - GFI Tracker Dashboard Service

This module handles subject reassignment requests. A verifier raises a
request, an admin approves or rejects it, and the receiving teacher then
accepts or rejects the subject.

Features:
- Assignment state machine (pending -> admin_approved -> approved / rejected)
- Role based action checks before any API call
- Request creation in normal and replacement mode
- Remaining unit lookup for the subject being moved
- Verifier request history with status filter
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional

from .api_client import ApiError
from .approval_manager import person_id
from .time_slots import parse_timestamp


ASSIGNMENT_STATUSES = {
    'PENDING': 'pending',
    'ADMIN_APPROVED': 'admin_approved',
    'APPROVED': 'approved',
    'REJECTED': 'rejected'
}

# status -> action -> next status
TRANSITIONS = {
    'pending': {'admin_approve': 'admin_approved', 'admin_reject': 'rejected'},
    'admin_approved': {'teacher_accept': 'approved', 'teacher_reject': 'rejected'}
}

NORMAL_ASSIGNMENT_REASON = 'Normal assignment'


class AssignmentError(Exception):
    """Raised when an assignment action is not allowed in its current state."""


def next_status(status: str, action: str) -> str:
    """
    Status an assignment moves to after an action.

    Raises:
        AssignmentError: When the action is not valid from the status
    """
    target = TRANSITIONS.get(status, {}).get(action)
    if target is None:
        raise AssignmentError(f"Cannot {action.replace('_', ' ')} an assignment that is {status}")
    return target


class AssignmentManager:
    """
    Subject assignment workflow for admins, verifiers and teachers.
    """

    def __init__(self, api, role: Optional[str] = None, user_id: Optional[str] = None):
        self.api = api
        self.role = role
        self.user_id = user_id
        self.logger = logging.getLogger(__name__)

    def allowed_actions(self, assignment: Dict[str, Any]) -> List[str]:
        """Actions the signed-in user may take on an assignment."""
        status = assignment.get('status')
        actions = []
        if self.role == 'admin' and status == 'pending':
            actions += ['admin_approve', 'admin_reject']
        if (self.role == 'teacher' and status == 'admin_approved'
                and person_id(assignment.get('toTeacher')) == self.user_id):
            actions += ['teacher_accept', 'teacher_reject']
        if self.role == 'verifier':
            actions.append('delete')
        return actions

    def _check(self, assignment: Dict[str, Any], action: str) -> Optional[Dict[str, Any]]:
        if action not in self.allowed_actions(assignment):
            status = assignment.get('status')
            self.logger.warning(f"Assignment action {action} refused for {self.role} on {status}")
            try:
                next_status(status, action)
            except AssignmentError as e:
                return {'success': False, 'error': str(e)}
            return {'success': False, 'error': 'You are not allowed to perform this action'}
        return None

    def _call(self, action: str, assignment: Dict[str, Any], call, *args) -> Dict[str, Any]:
        refused = self._check(assignment, action)
        if refused:
            return refused

        assignment_id = assignment.get('_id')
        try:
            response = call(assignment_id, *args)
        except ApiError as e:
            self.logger.error(f"Assignment {action} failed for {assignment_id}: {str(e)}")
            return {'success': False, 'error': e.message}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or f"Failed to {action.replace('_', ' ')}"}

        status = next_status(assignment.get('status'), action)
        self.logger.info(f"Assignment {assignment_id} -> {status}")
        return {
            'success': True,
            'status': status,
            'message': response.get('message') or 'Assignment updated',
            'data': response.get('data')
        }

    def admin_approve(self, assignment: Dict[str, Any]) -> Dict[str, Any]:
        return self._call('admin_approve', assignment, self.api.approve_assignment)

    def admin_reject(self, assignment: Dict[str, Any], reason: str) -> Dict[str, Any]:
        if not (reason or '').strip():
            return {'success': False, 'error': 'Rejection reason is required'}
        return self._call('admin_reject', assignment, self.api.reject_assignment, reason.strip())

    def teacher_accept(self, assignment: Dict[str, Any]) -> Dict[str, Any]:
        return self._call('teacher_accept', assignment, self.api.approve_teacher_assignment)

    def teacher_reject(self, assignment: Dict[str, Any], reason: str) -> Dict[str, Any]:
        if not (reason or '').strip():
            return {'success': False, 'error': 'Rejection reason is required'}
        return self._call('teacher_reject', assignment, self.api.reject_teacher_assignment, reason.strip())

    def create_request(self, to_teacher_id: str, subject_id: str, from_teacher_id: Optional[str] = None,
                       reason: Optional[str] = None, unit_ids: Optional[List[str]] = None,
                       batch_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Raise an assignment request for admin approval.

        A request naming the current teacher (replacement mode) needs a reason;
        a plain assignment uses a fixed reason.

        Returns:
            Dict[str, Any]: success and message, or error
        """
        if from_teacher_id:
            if not subject_id or not to_teacher_id or not (reason or '').strip():
                return {'success': False, 'error': 'Please fill in all fields'}
            if from_teacher_id == to_teacher_id:
                return {'success': False, 'error': 'Select a different teacher to receive the subject'}
            reason_text = reason.strip()
        else:
            if not subject_id or not to_teacher_id:
                return {'success': False, 'error': 'Please fill in all required fields'}
            reason_text = NORMAL_ASSIGNMENT_REASON

        try:
            response = self.api.create_assignment_request(
                from_teacher_id or None, to_teacher_id, subject_id, reason_text,
                unit_ids or [], batch_id or None
            )
        except ApiError as e:
            self.logger.error(f"Create assignment request error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to create assignment request'}

        if not response.get('success'):
            return {
                'success': False,
                'error': response.get('message') or response.get('error') or 'Failed to create assignment request'
            }

        self.logger.info(f"Assignment request created for subject {subject_id}")
        return {
            'success': True,
            'message': 'Assignment request created! Waiting for admin approval.',
            'data': response.get('data')
        }

    def remaining_units(self, subject_id: str, teacher_id: Optional[str] = None) -> Dict[str, Any]:
        """Units of a subject that are not completed yet."""
        try:
            response = self.api.get_subject_units(subject_id, teacher_id)
        except ApiError as e:
            self.logger.error(f"Error loading subject units: {str(e)}")
            return {'success': False, 'error': e.message}

        units = response.get('data') or []
        if isinstance(units, dict):
            units = units.get('units') or []
        remaining = [u for u in units if u.get('status') != 'completed']
        return {'success': True, 'units': remaining}

    def history(self, status_filter: str = 'pending') -> Dict[str, Any]:
        """
        Requests raised by verifiers, newest first.
        The pending filter also lists requests waiting for the teacher.
        """
        try:
            response = self.api.get_verifier_assignments('all', skip_cache=True)
        except ApiError as e:
            self.logger.error(f"Error loading assignment history: {str(e)}")
            return {'success': False, 'assignments': [], 'error': e.message}

        assignments = response.get('data') if response.get('success') else []
        if not isinstance(assignments, list):
            assignments = []

        if status_filter == 'pending':
            assignments = [a for a in assignments if a.get('status') in ('pending', 'admin_approved')]
        elif status_filter and status_filter != 'all':
            assignments = [a for a in assignments if a.get('status') == status_filter]

        assignments.sort(key=lambda a: parse_timestamp(a.get('createdAt')) or datetime.min, reverse=True)
        return {'success': True, 'assignments': assignments}

    def pending_for_admin(self) -> Dict[str, Any]:
        try:
            response = self.api.get_assignments('pending')
        except ApiError as e:
            self.logger.error(f"Error loading assignments: {str(e)}")
            return {'success': False, 'assignments': [], 'error': e.message}
        return {'success': True, 'assignments': response.get('data') or []}

    def teacher_assignments(self) -> Dict[str, Any]:
        """Assignments addressed to the signed-in teacher."""
        try:
            response = self.api.get_teacher_assignments()
        except ApiError as e:
            self.logger.error(f"Error loading teacher assignments: {str(e)}")
            return {'success': False, 'assignments': [], 'error': e.message}
        assignments = [
            dict(a, actions=self.allowed_actions(a)) for a in response.get('data') or []
        ]
        return {'success': True, 'assignments': assignments}

    def available_teachers(self, batch_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            response = self.api.get_available_teachers(batch_id or None)
        except ApiError as e:
            self.logger.error(f"Error loading available teachers: {str(e)}")
            return {'success': False, 'teachers': [], 'error': e.message}
        return {'success': True, 'teachers': response.get('data') or []}

    def find(self, assignment_id: str, assignments: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return next((a for a in assignments if a.get('_id') == assignment_id), None)

    def delete(self, assignment_id: str) -> Dict[str, Any]:
        """Delete a request; one the API no longer knows counts as removed."""
        try:
            response = self.api.delete_verifier_assignment(assignment_id)
        except ApiError as e:
            if e.is_not_found:
                self.logger.info(f"Assignment {assignment_id} already removed")
                return {'success': True, 'removed': True, 'message': 'Assignment already removed'}
            return {'success': False, 'error': e.message or 'Failed to delete'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to delete'}
        return {'success': True, 'removed': True, 'message': response.get('message') or 'Assignment deleted'}
