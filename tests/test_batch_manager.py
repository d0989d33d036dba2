"""
Tests: batches, subjects and exam status
"""

import unittest
from unittest.mock import MagicMock

from gfi_tracker.modules.api_client import ApiError
from gfi_tracker.modules.batch_manager import BatchManager, can_manage, can_edit_exam


BATCHES = [
    {'_id': 'b1', 'name': 'CMA Inter June 2026', 'year': 2026},
    {'_id': 'b2', 'name': 'CMA Final Dec 2025', 'year': 2025},
]


class TestPermissions(unittest.TestCase):

    def test_can_manage(self):
        self.assertTrue(can_manage('admin'))
        self.assertTrue(can_manage('Verifier'))
        self.assertFalse(can_manage('teacher'))
        self.assertFalse(can_manage(None))

    def test_can_edit_exam(self):
        self.assertTrue(can_edit_exam('verifier', {'isCompleted': True}))
        self.assertTrue(can_edit_exam('verifier', {'isExamFinished': True}))
        self.assertFalse(can_edit_exam('verifier', {}))
        self.assertFalse(can_edit_exam('admin', {'isCompleted': True}))


class TestBatches(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()
        self.api.get_batches.return_value = {'success': True, 'data': BATCHES}
        self.manager = BatchManager(self.api, 'admin')

    def test_list_and_search(self):
        self.assertEqual(len(self.manager.list_batches()['batches']), 2)
        self.assertEqual([b['_id'] for b in self.manager.list_batches(query='inter')['batches']], ['b1'])
        self.assertEqual([b['_id'] for b in self.manager.list_batches(query='2025')['batches']], ['b2'])
        self.assertEqual([b['_id'] for b in self.manager.list_batches(allowed_ids=['b2'])['batches']], ['b2'])

    def test_create_batch_with_subjects(self):
        self.api.create_batch.return_value = {'success': True, 'data': {'_id': 'b3', 'name': 'New'}}
        self.api.create_subject.side_effect = [{'success': True}, ApiError('Subject exists')]

        result = self.manager.create_batch(' New ', '2026', None, ['t1'], [
            {'name': 'FM', 'units': ['Unit 1', ' ', 'Unit 2']},
            {'name': 'Costing', 'units': []},
            {'name': '  ', 'units': ['ignored']},
        ])

        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Batch created successfully.')
        self.assertEqual(result['warning'], 'Batch created, but some subjects failed to create.')
        self.assertEqual(result['failedSubjects'], ['Costing'])
        self.api.create_batch.assert_called_once_with('New', '2026', None, [], ['t1'])
        self.api.create_subject.assert_any_call('FM', None, 'b3', ['Unit 1', 'Unit 2'])
        self.assertEqual(self.api.create_subject.call_count, 2)

    def test_create_duplicate_batch(self):
        self.api.create_batch.side_effect = ApiError('Batch with this name already exists', status=400)
        result = self.manager.create_batch('CMA Inter June 2026')
        self.assertEqual(result['error'], 'A batch with this name already exists. Please choose a different name.')

    def test_create_batch_requires_name(self):
        self.assertEqual(self.manager.create_batch('  '), {'success': False, 'error': 'Batch name is required'})

    def test_update_batch(self):
        self.api.update_batch.return_value = {'success': True, 'data': {'_id': 'b1'}}
        result = self.manager.update_batch('b1', 'Renamed', 2026)
        self.assertEqual(result['message'], 'Batch updated.')

    def test_delete_already_deleted(self):
        self.api.delete_batch.side_effect = ApiError('Batch not found', status=404)
        result = self.manager.delete_batch('b1')
        self.assertEqual(result, {'success': True, 'message': 'Batch was already deleted. List refreshed.'})

    def test_delete_failure(self):
        self.api.delete_batch.side_effect = ApiError('Server error', status=500)
        self.assertFalse(self.manager.delete_batch('b1')['success'])

    def test_get_batch_not_found(self):
        self.api.get_batch.side_effect = ApiError('Not found', status=404)
        result = self.manager.get_batch('b9')
        self.assertTrue(result['not_found'])


class TestSubjectsAndExams(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()
        self.manager = BatchManager(self.api, 'verifier')
        self.units = [
            {'_id': 'u1', 'name': 'Motion', 'isCompleted': True, 'isExamFinished': False},
            {'_id': 'u2', 'name': 'Force', 'isCompleted': False, 'isExamFinished': False},
        ]

    def test_create_subject(self):
        self.api.create_subject.return_value = {'success': True, 'data': {'_id': 's1'}}
        result = self.manager.create_subject('Physics', 't1', 'b1', ['Motion', '', 'Force'])
        self.assertEqual(result['message'], 'Subject "Physics" created with 2 unit(s).')
        self.assertEqual(self.manager.create_subject('')['error'], 'Subject name is required')

    def test_exam_units_flag_editable(self):
        self.api.get_exam_units.return_value = {'success': True, 'data': self.units}
        units = self.manager.exam_units('s1')['units']
        self.assertEqual([u['canEdit'] for u in units], [True, False])

    def test_toggle_exam_success(self):
        self.api.toggle_exam_status.return_value = {'success': True}

        result = self.manager.toggle_exam('u1', True, self.units)

        self.assertTrue(result['success'])
        self.assertTrue(result['units'][0]['isExamFinished'])
        self.assertFalse(self.units[0]['isExamFinished'])

    def test_toggle_exam_incomplete_unit(self):
        result = self.manager.toggle_exam('u2', True, self.units)
        self.assertFalse(result['success'])
        self.assertIn('not completed yet', result['error'])
        self.api.toggle_exam_status.assert_not_called()

    def test_toggle_exam_reverts_on_network_error(self):
        self.api.toggle_exam_status.side_effect = ApiError('timeout')

        result = self.manager.toggle_exam('u1', True, self.units)

        self.assertEqual(result['error'], 'Network error: Failed to save status')
        self.assertFalse(result['units'][0]['isExamFinished'])

    def test_toggle_unknown_unit(self):
        self.assertEqual(self.manager.toggle_exam('u9', True, self.units)['error'], 'Unit not found')

    def test_exam_batches_failure(self):
        self.api.get_exam_batches.side_effect = ApiError('')
        result = self.manager.exam_batches(skip_cache=True)
        self.assertEqual(result['error'], 'Failed to load batches')
        self.api.get_exam_batches.assert_called_once_with(skip_cache=True)


if __name__ == '__main__':
    unittest.main()
