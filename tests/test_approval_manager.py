"""
Tests: verifier approval queue
"""

import unittest
from unittest.mock import MagicMock

from gfi_tracker.modules.api_client import ApiError
from gfi_tracker.modules.approval_manager import ApprovalManager, safe_stats, person_id


def slot_request(approval_id, slot_id, created, requester='t1', status='pending', checked=True):
    return {
        '_id': approval_id,
        'type': 'time-slot',
        'status': status,
        'createdAt': created,
        'requestedBy': {'_id': requester, 'name': f"Teacher {requester}"},
        'requestData': {'slotId': slot_id, 'date': '2026-01-27', 'checked': checked}
    }


class TestHelpers(unittest.TestCase):

    def test_safe_stats(self):
        stats = safe_stats({'pending': '3', 'approvedToday': None, 'extra': 'x'})
        self.assertEqual(stats['pending'], 3)
        self.assertEqual(stats['approvedToday'], 0)
        self.assertEqual(stats['notificationsCount'], 0)
        self.assertEqual(stats['extra'], 'x')
        self.assertEqual(safe_stats(None)['totalPending'], 0)

    def test_person_id(self):
        self.assertEqual(person_id('abc'), 'abc')
        self.assertEqual(person_id({'_id': 'x'}), 'x')
        self.assertEqual(person_id({'id': 'y'}), 'y')
        self.assertIsNone(person_id(None))


class TestApprovalManager(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()
        self.manager = ApprovalManager(self.api, user_id='v1')
        self.data = {
            'pendingApprovals': [
                slot_request('a1', '9-10', '2026-01-27T09:00:00'),
                slot_request('a2', '9-10', '2026-01-27T10:00:00'),
                {'_id': 'a3', 'type': 'unit-start', 'status': 'pending', 'createdAt': '2026-01-27T08:00:00',
                 'requestedBy': {'_id': 'v1'}, 'requestData': {'unitName': 'Motion'}},
                {'_id': 'a4', 'type': 'unit-complete', 'status': 'pending', 'createdAt': '2026-01-27T11:00:00',
                 'requestedBy': {'_id': 't2', 'name': 'Ravi'},
                 'requestData': {'unitName': 'Force', 'subjectName': 'Physics'}},
            ],
            'recentApprovals': [
                {'_id': 'r1', 'type': 'break-timing', 'status': 'approved', 'approvedBy': {'_id': 'v1'},
                 'createdAt': '2026-01-26T09:00:00', 'requestedBy': 't1'},
                {'_id': 'r2', 'type': 'break-timing', 'status': 'rejected', 'rejectedBy': 'v2',
                 'createdAt': '2026-01-26T10:00:00', 'requestedBy': 't1'},
            ],
            'stats': {'pending': 4, 'approvedToday': 1, 'rejectedToday': 0}
        }

    def test_pending_filter_dedupes_and_hides_own_requests(self):
        approvals = self.manager.filter_approvals(self.data, 'pending')
        self.assertEqual([a['_id'] for a in approvals], ['a4', 'a2'])

    def test_history_only_shows_own_decisions(self):
        self.assertEqual([a['_id'] for a in self.manager.filter_approvals(self.data, 'approved')], ['r1'])
        self.assertEqual(self.manager.filter_approvals(self.data, 'rejected'), [])

    def test_all_with_type_filter(self):
        approvals = self.manager.filter_approvals(self.data, 'all', 'break-timing')
        self.assertEqual([a['_id'] for a in approvals], ['r1'])

    def test_load_dashboard(self):
        self.api.get_verifier_dashboard.return_value = {
            'success': True, 'data': {'stats': {'pending': '2'}}
        }
        result = self.manager.load_dashboard()
        self.assertTrue(result['success'])
        self.assertEqual(result['data']['pendingApprovals'], [])
        self.assertEqual(result['data']['stats']['pending'], 2)

    def test_load_dashboard_failure(self):
        self.api.get_verifier_dashboard.side_effect = ApiError('down')
        self.assertEqual(self.manager.load_dashboard(), {'success': False, 'error': 'down'})

    def test_approve_optimistic(self):
        self.api.approve_request.return_value = {'success': True, 'message': 'Approved'}

        result = self.manager.approve('a4', self.data)

        self.assertTrue(result['success'])
        self.assertNotIn('a4', [a['_id'] for a in result['data']['pendingApprovals']])
        self.assertEqual(result['data']['stats']['pending'], 3)
        self.assertEqual(result['data']['stats']['approvedToday'], 2)
        # input not mutated
        self.assertEqual(len(self.data['pendingApprovals']), 4)

    def test_reject_failure_reloads(self):
        self.api.reject_request.side_effect = ApiError('Already processed')
        self.api.get_verifier_dashboard.return_value = {'success': True, 'data': self.data}

        result = self.manager.reject('a4', 'Not finished', self.data)

        self.assertFalse(result['success'])
        self.assertTrue(result['reverted'])
        self.assertEqual(result['error'], 'Already processed')
        self.assertEqual(len(result['data']['pendingApprovals']), 4)
        self.api.reject_request.assert_called_once_with('a4', 'Not finished')

    def test_describe(self):
        time_slot = self.manager.describe(self.data['pendingApprovals'][0])
        self.assertEqual(time_slot, {'title': 'Time Slot: 9:00 - 10:00', 'action': 'Select', 'date': '27/01/2026'})

        complete = self.manager.describe(self.data['pendingApprovals'][3])
        self.assertEqual(complete['title'], 'Complete Unit: Force')
        self.assertEqual(complete['action'], 'Mark unit "Force" as completed (Physics)')

        remove_break = self.manager.describe({'type': 'break-timing', 'requestData': {}})
        self.assertEqual(remove_break['action'], 'Remove break')

    def test_group_by_teacher(self):
        groups = self.manager.group_by_teacher(self.manager.filter_approvals(self.data, 'pending'))
        self.assertEqual([g['teacherName'] for g in groups], ['Ravi', 'Teacher t1'])
        self.assertEqual(groups[0]['approvals'][0]['typeLabel'], 'Unit Completion')


if __name__ == '__main__':
    unittest.main()
