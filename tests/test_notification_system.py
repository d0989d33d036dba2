"""
Tests: notification feeds
"""

import unittest
from unittest.mock import MagicMock

from gfi_tracker.modules.api_client import ApiError
from gfi_tracker.modules.notification_system import NotificationSystem, badge_label


ASSIGNMENT = {
    '_id': 'as1',
    'status': 'admin_approved',
    'subject': {'name': 'Physics'},
    'fromTeacher': {'name': 'Asha'},
    'toTeacher': {'name': 'Ravi'},
    'requestedBy': {'name': 'Verifier V'},
    'reason': 'Leave',
    'createdAt': '2026-01-27T12:00:00'
}


class TestMessages(unittest.TestCase):

    def test_unit_messages_per_role(self):
        notification = {
            'type': 'unit-start', 'status': 'approved',
            'requestedBy': {'name': 'Asha'},
            'requestData': {'unitName': 'Motion', 'subjectName': 'Physics'}
        }
        teacher = NotificationSystem(MagicMock(), 'teacher')
        verifier = NotificationSystem(MagicMock(), 'verifier')

        self.assertEqual(teacher.message_for(notification), '✅ Started unit "Motion" in Physics')
        self.assertEqual(verifier.message_for(notification), 'Asha started unit "Motion" in Physics')

    def test_time_slot_messages(self):
        verifier = NotificationSystem(MagicMock(), 'verifier')
        teacher = NotificationSystem(MagicMock(), 'teacher')
        break_request = {'type': 'time-slot', 'status': 'pending', 'requestedBy': {'name': 'Asha'},
                         'requestData': {'isBreak': True, 'breakDuration': 30}}
        rejected = {'type': 'time-slot', 'status': 'rejected', 'requestData': {'slotId': '9-10'}}

        self.assertEqual(verifier.message_for(break_request), 'Asha updated break time to 30 mins')
        self.assertEqual(teacher.message_for(rejected), '❌ Time slot "9-10" request was rejected')

    def test_assignment_messages(self):
        admin = NotificationSystem(MagicMock(), 'admin')
        teacher = NotificationSystem(MagicMock(), 'teacher')
        notification = teacher.assignment_notifications([ASSIGNMENT])[0]

        self.assertEqual(admin.message_for(notification),
                         'Subject assignment "Physics" (Approved by you, waiting for teacher)')
        self.assertIn('accept or reject', teacher.message_for(notification))

        requested = dict(notification, status='pending')
        self.assertEqual(admin.message_for(requested), 'Subject "Physics": Verifier V requests assign to Ravi')

    def test_status_bucket_depends_on_role(self):
        notification = {'status': 'admin_approved'}
        self.assertEqual(NotificationSystem(MagicMock(), 'admin').status_for_filter(notification), 'approved')
        self.assertEqual(NotificationSystem(MagicMock(), 'teacher').status_for_filter(notification), 'pending')
        self.assertEqual(NotificationSystem(MagicMock(), 'teacher').status_for_filter({}), 'pending')

    def test_badge_label(self):
        self.assertEqual(badge_label(3), '3')
        self.assertEqual(badge_label(12), '9+')


class TestFeeds(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()

    def test_teacher_feed_merges_assignments(self):
        self.api.get_notifications.return_value = {'success': True, 'data': [
            {'_id': 'n1', 'type': 'time-slot', 'status': 'approved', 'createdAt': '2026-01-27T09:00:00',
             'requestData': {'slotId': '9-10'}},
            {'_id': 'n2', 'type': 'unit-complete', 'status': 'pending', 'createdAt': '2026-01-27T10:00:00',
             'requestData': {'unitName': 'Motion'}},
        ]}
        self.api.get_teacher_assignments.return_value = {'success': True, 'data': [
            ASSIGNMENT, dict(ASSIGNMENT, _id='as2', status='pending')
        ]}
        system = NotificationSystem(self.api, 'teacher')

        feed = system.feed('pending')

        self.assertTrue(feed['success'])
        self.assertEqual([n['id'] for n in feed['notifications']], ['as1', 'n2'])
        self.assertEqual(feed['counts'], {'pending': 2, 'approved': 1, 'rejected': 0})
        self.assertEqual(feed['notifications'][0]['severity'], 'warning')

    def test_verifier_feed_filters_by_type(self):
        self.api.get_verifier_approvals.return_value = {'success': True, 'data': [
            {'_id': 'x', 'type': 'time-slot', 'status': 'pending'},
            {'_id': 'y', 'type': 'unit-start', 'status': 'approved'},
            {'_id': 'z', 'type': 'subject-assign', 'status': 'pending'},
        ]}
        self.api.get_verifier_assignments.return_value = {'success': True, 'data': [{}, {}]}
        system = NotificationSystem(self.api, 'verifier')

        feed = system.feed(type_filter='unit-start')

        self.assertEqual([n['id'] for n in feed['notifications']], ['y'])
        self.assertEqual(feed['historyCount'], 2)

    def test_feed_failure(self):
        self.api.get_admin_notifications.side_effect = ApiError('down')
        feed = NotificationSystem(self.api, 'admin').feed()
        self.assertFalse(feed['success'])
        self.assertEqual(feed['error'], 'down')
        self.assertEqual(feed['notifications'], [])

    def test_badges(self):
        self.api.get_admin_notifications.return_value = {
            'success': True, 'data': [{'status': 'pending'}] * 11
        }
        self.assertEqual(NotificationSystem(self.api, 'admin').badge(), {'count': 11, 'label': '9+'})

        self.api.get_notifications.side_effect = ApiError('down')
        self.assertEqual(NotificationSystem(self.api, 'teacher').badge(), {'count': 0, 'label': ''})
        self.assertEqual(NotificationSystem(self.api, 'verifier').badge()['count'], 0)

    def test_delete(self):
        self.api.delete_notification.return_value = {'success': False, 'message': 'Not yours'}
        result = NotificationSystem(self.api, 'verifier').delete('n1')
        self.assertEqual(result, {'success': False, 'error': 'Not yours'})


if __name__ == '__main__':
    unittest.main()
