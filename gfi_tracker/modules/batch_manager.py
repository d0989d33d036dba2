"""
Batch Manager Module - GFI Tracker Dashboard Service

This module manages batches (cohorts), the subjects created inside them,
and the exam status of completed units.

Features:
- Batch listing, search and CRUD
- Subject creation with unit names
- Exam batches, subjects and units
- Exam finished toggle with optimistic update
"""

import logging
from typing import Dict, List, Any, Optional

from .api_client import ApiError


DUPLICATE_BATCH_MESSAGE = 'Batch with this name already exists'
MANAGER_ROLES = ('admin', 'verifier')


def can_manage(role: Optional[str]) -> bool:
    """Admins and verifiers may create, edit and delete batches."""
    return (role or '').lower() in MANAGER_ROLES


def can_edit_exam(role: Optional[str], unit: Dict[str, Any]) -> bool:
    """Verifiers edit exam status of units that are completed or already marked."""
    if (role or '').lower() != 'verifier':
        return False
    return bool(unit.get('isCompleted') or unit.get('isExamFinished'))


class BatchManager:
    """
    Batch, subject and exam management.
    """

    def __init__(self, api, role: Optional[str] = None):
        self.api = api
        self.role = role
        self.logger = logging.getLogger(__name__)

    # Batches

    def list_batches(self, allowed_ids: Optional[List[str]] = None, query: str = '') -> Dict[str, Any]:
        """
        Batches visible to the user.

        Args:
            allowed_ids (List[str]): Restrict to these batch ids (None means all)
            query (str): Match on name (case-insensitive) or year
        """
        try:
            response = self.api.get_batches()
        except ApiError as e:
            self.logger.error(f"Error loading batches: {str(e)}")
            return {'success': False, 'batches': [], 'error': e.message}

        batches = response.get('data') if response.get('success') else []
        if not isinstance(batches, list):
            batches = []
        if allowed_ids is not None:
            batches = [b for b in batches if b.get('_id') in allowed_ids]

        needle = (query or '').strip().lower()
        if needle:
            batches = [
                b for b in batches
                if needle in (b.get('name') or '').lower() or needle in str(b.get('year') or '')
            ]
        return {'success': True, 'batches': batches}

    def get_batch(self, batch_id: str) -> Dict[str, Any]:
        try:
            response = self.api.get_batch(batch_id)
        except ApiError as e:
            self.logger.error(f"Error loading batch {batch_id}: {str(e)}")
            return {'success': False, 'error': e.message, 'not_found': e.is_not_found}
        return {'success': bool(response.get('success')), 'batch': response.get('data')}

    def _friendly_error(self, error: ApiError, fallback: str) -> str:
        if error.message == DUPLICATE_BATCH_MESSAGE:
            return 'A batch with this name already exists. Please choose a different name.'
        return error.message or fallback

    def create_batch(self, name: str, year: Optional[str] = None, description: Optional[str] = None,
                     teacher_ids: Optional[List[str]] = None,
                     subjects: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Create a batch and then each named subject inside it.

        Args:
            name (str): Batch name (required)
            year (str): Batch year
            description (str): Free text
            teacher_ids (List[str]): Teachers attached to the batch
            subjects (List[Dict[str, Any]]): [{'name': str, 'units': [str]}]

        Returns:
            Dict[str, Any]: success, batch, message and an optional warning
        """
        if not (name or '').strip():
            return {'success': False, 'error': 'Batch name is required'}

        try:
            response = self.api.create_batch(name.strip(), year, description, [], teacher_ids or [])
        except ApiError as e:
            self.logger.warning(f"Create batch refused: {str(e)}")
            return {'success': False, 'error': self._friendly_error(e, 'Failed to create batch')}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to create batch'}

        batch = response.get('data') or {}
        batch_id = batch.get('_id')
        result = {'success': True, 'batch': batch, 'message': 'Batch created successfully.'}

        failed = []
        if batch_id:
            for subject in subjects or []:
                subject_name = (subject.get('name') or '').strip()
                if not subject_name:
                    continue
                units = [u.strip() for u in subject.get('units') or [] if (u or '').strip()]
                try:
                    self.api.create_subject(subject_name, None, batch_id, units)
                except ApiError as e:
                    self.logger.error(f"Error creating subject {subject_name}: {str(e)}")
                    failed.append(subject_name)

        if failed:
            result['warning'] = 'Batch created, but some subjects failed to create.'
            result['failedSubjects'] = failed

        self.logger.info(f"Batch created: {name.strip()} ({batch_id})")
        return result

    def update_batch(self, batch_id: str, name: str, year: Optional[str] = None,
                     description: Optional[str] = None, student_ids: Optional[List[str]] = None,
                     teacher_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        if not (name or '').strip():
            return {'success': False, 'error': 'Batch name is required'}
        try:
            response = self.api.update_batch(batch_id, name.strip(), year, description,
                                             student_ids or [], teacher_ids or [])
        except ApiError as e:
            self.logger.warning(f"Update batch {batch_id} refused: {str(e)}")
            return {'success': False, 'error': self._friendly_error(e, 'Failed to update batch')}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to update batch'}
        return {'success': True, 'batch': response.get('data'), 'message': 'Batch updated.'}

    def delete_batch(self, batch_id: str) -> Dict[str, Any]:
        """Delete a batch; one the API no longer knows counts as deleted."""
        try:
            response = self.api.delete_batch(batch_id)
        except ApiError as e:
            if e.is_not_found:
                self.logger.info(f"Batch {batch_id} was already deleted")
                return {'success': True, 'message': 'Batch was already deleted. List refreshed.'}
            self.logger.error(f"Delete batch {batch_id} failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to delete batch'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to delete batch'}
        self.logger.info(f"Batch deleted: {batch_id}")
        return {'success': True, 'message': 'Batch deleted successfully.'}

    def batch_students(self, batch_id: str) -> Dict[str, Any]:
        try:
            response = self.api.get_batch_students(batch_id)
        except ApiError as e:
            self.logger.error(f"Error loading students of batch {batch_id}: {str(e)}")
            return {'success': False, 'students': [], 'error': e.message}
        return {'success': True, 'students': response.get('data') or []}

    # Subjects

    def create_subject(self, name: str, teacher_id: Optional[str] = None, batch_id: Optional[str] = None,
                       unit_names: Optional[List[str]] = None) -> Dict[str, Any]:
        if not (name or '').strip():
            return {'success': False, 'error': 'Subject name is required'}

        units = [u.strip() for u in unit_names or [] if (u or '').strip()]
        try:
            response = self.api.create_subject(name.strip(), teacher_id or None, batch_id or None, units)
        except ApiError as e:
            self.logger.error(f"Create subject error: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to create subject'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to create subject'}
        return {
            'success': True,
            'subject': response.get('data'),
            'message': f'Subject "{name.strip()}" created with {len(units)} unit(s).'
        }

    def list_subjects(self, batch_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            response = self.api.get_verifier_subjects(batch_id)
        except ApiError as e:
            self.logger.error(f"Error loading subjects: {str(e)}")
            return {'success': False, 'subjects': [], 'error': e.message}
        return {'success': True, 'subjects': response.get('data') or []}

    # Exams

    def exam_batches(self, skip_cache: bool = False) -> Dict[str, Any]:
        try:
            response = self.api.get_exam_batches(skip_cache=skip_cache)
        except ApiError as e:
            self.logger.error(f"Error loading exam batches: {str(e)}")
            return {'success': False, 'batches': [], 'error': e.message or 'Failed to load batches'}
        if not response.get('success'):
            return {'success': False, 'batches': [], 'error': response.get('message')}
        return {'success': True, 'batches': response.get('data') or []}

    def exam_subjects(self, batch_id: str) -> Dict[str, Any]:
        try:
            response = self.api.get_exam_subjects(batch_id)
        except ApiError as e:
            self.logger.error(f"Error loading exam subjects: {str(e)}")
            return {'success': False, 'subjects': [], 'error': e.message or 'Failed to load subjects'}
        if not response.get('success'):
            return {'success': False, 'subjects': [], 'error': response.get('message')}
        return {'success': True, 'subjects': response.get('data') or []}

    def exam_units(self, subject_id: str) -> Dict[str, Any]:
        """Units of a subject with a canEdit flag for the signed-in role."""
        try:
            response = self.api.get_exam_units(subject_id)
        except ApiError as e:
            self.logger.error(f"Error loading exam units: {str(e)}")
            return {'success': False, 'units': [], 'error': e.message or 'Failed to load units'}
        if not response.get('success'):
            return {'success': False, 'units': [], 'error': response.get('message')}
        units = [dict(u, canEdit=can_edit_exam(self.role, u)) for u in response.get('data') or []]
        return {'success': True, 'units': units}

    def toggle_exam(self, unit_id: str, finished: bool, units: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Mark a unit's exam finished or not.

        The unit list is flipped before the API call and restored if it fails.
        Clearing the flag is allowed on units whose teaching is not completed.

        Returns:
            Dict[str, Any]: success, units and error
        """
        unit = next((u for u in units if u.get('_id') == unit_id), None)
        if unit is None:
            return {'success': False, 'units': units, 'error': 'Unit not found'}
        if finished and not unit.get('isCompleted'):
            return {
                'success': False,
                'units': units,
                'error': ('This unit is not completed yet. Teaching must be completed '
                          'before the exam can be finished.')
            }

        previous = bool(unit.get('isExamFinished'))
        optimistic = [dict(u, isExamFinished=finished) if u.get('_id') == unit_id else u for u in units]
        reverted = [dict(u, isExamFinished=previous) if u.get('_id') == unit_id else u for u in units]

        try:
            response = self.api.toggle_exam_status(unit_id, finished)
        except ApiError as e:
            self.logger.error(f"Error toggling exam status of {unit_id}: {str(e)}")
            return {'success': False, 'units': reverted, 'error': 'Network error: Failed to save status'}

        if not response.get('success'):
            self.logger.warning(f"Exam status of {unit_id} not saved: {response.get('message')}")
            return {'success': False, 'units': reverted, 'error': response.get('message') or 'Failed to update status'}

        return {'success': True, 'units': optimistic}

    def delete_exam_batch(self, batch_id: str) -> Dict[str, Any]:
        try:
            response = self.api.delete_exam_batch(batch_id)
        except ApiError as e:
            self.logger.error(f"Error deleting exam batch {batch_id}: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to delete batch'}
        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to delete batch'}
        return {'success': True, 'message': response.get('message') or 'Batch deleted successfully.'}
