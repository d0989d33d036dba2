"""
Tests: API client

Test coverage:
1. URL building and base URL normalization
2. Response cache (fresh hits, bypass, stale fallback, size limit)
3. Error mapping (401, error envelopes, non-JSON answers, timeouts)
4. Endpoint-specific behaviour
"""

import json
import time
import unittest
from unittest.mock import MagicMock

import requests

from gfi_tracker.modules.api_client import (
    ApiClient, ApiError, normalize_base_url, strip_verifier_dashboard
)
from gfi_tracker.modules.database_manager import DatabaseManager


def make_response(status_code, payload, content_type='application/json'):
    response = requests.Response()
    response.status_code = status_code
    response.headers['content-type'] = content_type
    body = payload if isinstance(payload, str) else json.dumps(payload)
    response._content = body.encode('utf-8')
    response.encoding = 'utf-8'
    return response


class TestHelpers(unittest.TestCase):

    def test_normalize_base_url(self):
        self.assertEqual(normalize_base_url('http://host:5000/'), 'http://host:5000/api')
        self.assertEqual(normalize_base_url('http://host/api/'), 'http://host/api')
        self.assertEqual(normalize_base_url(''), '/api')

    def test_strip_verifier_dashboard(self):
        response = {
            'success': True,
            'data': {
                'pendingApprovals': [{'_id': 'p1', 'requestedBy': {'name': 'A', 'avatar': 'data:...'}}],
                'recentApprovals': [{'_id': f"r{i}", 'requestedBy': {'avatar': 'x'}} for i in range(15)],
                'stats': {'pending': 1}
            }
        }

        cached = strip_verifier_dashboard(response)

        self.assertEqual(len(cached['data']['recentApprovals']), 10)
        self.assertNotIn('avatar', cached['data']['pendingApprovals'][0]['requestedBy'])
        self.assertEqual(cached['data']['pendingApprovals'][0]['requestedBy']['name'], 'A')
        self.assertEqual(cached['data']['stats'], {'pending': 1})
        # original response untouched
        self.assertIn('avatar', response['data']['pendingApprovals'][0]['requestedBy'])

    def test_strip_ignores_failed_responses(self):
        failed = {'success': False, 'message': 'nope'}
        self.assertIs(strip_verifier_dashboard(failed), failed)

    def test_api_error_not_found(self):
        self.assertTrue(ApiError('x', status=404).is_not_found)
        self.assertTrue(ApiError('Batch not found').is_not_found)
        self.assertFalse(ApiError('Server error', status=500).is_not_found)


class TestApiClient(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(':memory:')
        self.http = MagicMock()
        self.client = ApiClient('http://api.test', database_manager=self.db, owner='u1', http=self.http)

    def tearDown(self):
        self.db.close_all_connections()

    def test_get_is_cached_per_owner(self):
        self.http.request.return_value = make_response(200, {'success': True, 'data': [1]})

        first = self.client.get_batch('b1')
        second = self.client.get_batch('b1')

        self.assertEqual(first, second)
        self.assertEqual(self.http.request.call_count, 1)
        method, url = self.http.request.call_args[0]
        self.assertEqual((method, url), ('GET', 'http://api.test/api/batch/b1'))

        other = ApiClient('http://api.test', database_manager=self.db, owner='u2', http=self.http)
        other.get_batch('b1')
        self.assertEqual(self.http.request.call_count, 2)

    def test_zero_max_age_always_hits_network(self):
        self.http.request.return_value = make_response(200, {'success': True, 'data': []})

        self.client.get_batches()
        self.client.get_batches()

        self.assertEqual(self.http.request.call_count, 2)

    def test_stale_cache_served_when_network_fails(self):
        self.db.store_cached_response('u1', 'http://api.test/api/batch', json.dumps({'success': True, 'data': ['old']}),
                                      cached_at=time.time() - 3600)
        self.http.request.side_effect = requests.ConnectionError('refused')

        result = self.client.get_batches()

        self.assertEqual(result['data'], ['old'])

    def test_cache_busting_polls_share_one_cache_row(self):
        self.http.request.return_value = make_response(200, {'success': True, 'data': [{'_id': 'n1'}]})

        for _ in range(50):
            self.client.get_admin_notifications(skip_cache=True)

        self.assertEqual(self.http.request.call_count, 50)
        self.assertIn('_t=', self.http.request.call_args[0][1])
        rows = self.db.execute_query("SELECT cache_key FROM api_cache WHERE owner = ?", ('u1',))
        self.assertEqual(rows, [{'cache_key': 'http://api.test/api/admin/notifications'}])

        # the plain call is served from the row the polls refreshed
        self.assertEqual(self.client.get_admin_notifications()['data'], [{'_id': 'n1'}])
        self.assertEqual(self.http.request.call_count, 50)

    def test_request_sends_json_body(self):
        self.http.request.return_value = make_response(201, {'success': True, 'data': {'_id': 'b9'}})

        result = self.client.request('batch', 'post', json={'name': 'New'})

        self.assertEqual(result['data'], {'_id': 'b9'})
        self.http.request.assert_called_once_with(
            'POST', 'http://api.test/api/batch', json={'name': 'New'}, timeout=self.client.timeout
        )

    def test_timeout_without_cache_raises(self):
        self.http.request.side_effect = requests.Timeout()

        with self.assertRaises(ApiError) as ctx:
            self.client.get_batches()
        self.assertEqual(str(ctx.exception), 'Request timeout - backend may not be running')

    def test_connection_error_on_post_never_uses_cache(self):
        self.http.request.side_effect = requests.ConnectionError('refused')

        with self.assertRaises(ApiError) as ctx:
            self.client.start_unit('unit-1')
        self.assertIn('Unable to reach the API', str(ctx.exception))

    def test_unauthorized(self):
        self.http.request.return_value = make_response(401, {'success': False, 'message': 'expired'})

        with self.assertRaises(ApiError) as ctx:
            self.client.get_current_user()
        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(ctx.exception.message, 'Unauthorized - Please login again')

    def test_error_message_from_envelope(self):
        self.http.request.return_value = make_response(400, {'success': False, 'message': 'Bad unit'})

        with self.assertRaises(ApiError) as ctx:
            self.client.complete_unit('unit-1')
        self.assertEqual(ctx.exception.message, 'Bad unit')
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.payload['message'], 'Bad unit')

    def test_non_json_response(self):
        self.http.request.return_value = make_response(502, '<html>Bad gateway</html>', content_type='text/html')

        with self.assertRaises(ApiError) as ctx:
            self.client.get_users()
        self.assertIn('Bad gateway', ctx.exception.message)

    def test_failed_answers_are_not_cached(self):
        self.http.request.return_value = make_response(500, {'success': False, 'message': 'boom'})

        with self.assertRaises(ApiError):
            self.client.get_batch('b1')
        self.assertIsNone(self.db.get_cached_response('u1', 'http://api.test/api/batch/b1'))

    def test_oversized_payload_not_cached(self):
        client = ApiClient('http://api.test', database_manager=self.db, owner='u1',
                           cache_max_bytes=10, http=self.http)
        self.http.request.return_value = make_response(200, {'success': True, 'data': 'x' * 100})

        client.get_batch('b1')

        self.assertIsNone(self.db.get_cached_response('u1', 'http://api.test/api/batch/b1'))

    def test_health_bypasses_cache(self):
        self.http.request.return_value = make_response(200, {'success': True})

        self.client.health()
        self.client.health()

        self.assertEqual(self.http.request.call_count, 2)
        self.assertIsNone(self.db.get_cached_response('u1', 'http://api.test/api/health'))

    def test_verifier_dashboard_cached_in_stripped_form(self):
        payload = {
            'success': True,
            'data': {'pendingApprovals': [{'_id': 'p1', 'requestedBy': {'avatar': 'big'}}]}
        }
        self.http.request.return_value = make_response(200, payload)

        result = self.client.get_verifier_dashboard()

        self.assertIn('avatar', result['data']['pendingApprovals'][0]['requestedBy'])
        cached = self.db.get_cached_response('u1', 'http://api.test/api/verifier/dashboard')
        self.assertNotIn('avatar', cached['payload']['data']['pendingApprovals'][0]['requestedBy'])

    def test_teacher_dashboard_params(self):
        self.http.request.return_value = make_response(200, {'success': True, 'data': {}})

        self.client.get_teacher_dashboard(batch_id='all', date='2026-01-27')

        url = self.http.request.call_args[0][1]
        self.assertEqual(url, 'http://api.test/api/teacher/dashboard?date=2026-01-27')

    def test_update_time_slot_rewrites_locked_error(self):
        self.http.request.return_value = make_response(400, {'success': False, 'message': 'slot is locked'})

        with self.assertRaises(ApiError) as ctx:
            self.client.update_time_slot('9-10', False, date='2026-01-27')
        self.assertEqual(ctx.exception.message,
                         "Cannot modify locked slot '9-10'. Please contact administrator.")

        body = self.http.request.call_args[1]['json']
        self.assertEqual(body, {'slotId': '9-10', 'checked': False, 'breakDuration': None, 'date': '2026-01-27'})

    def test_logout_clears_cache_even_on_failure(self):
        self.db.store_cached_response('u1', 'http://api.test/api/batch', '{}')
        self.http.request.side_effect = requests.ConnectionError('down')

        with self.assertRaises(ApiError):
            self.client.logout()

        self.assertIsNone(self.db.get_cached_response('u1', 'http://api.test/api/batch'))

    def test_auth_requests_are_not_cached(self):
        self.http.request.return_value = make_response(200, {'success': True, 'data': {'id': 'u1'}})

        self.client.get_current_user()
        self.client.get_current_user()

        self.assertEqual(self.http.request.call_count, 2)

    def test_session_cookies(self):
        client = ApiClient('http://api.test', cookies={'token': 'abc'})
        self.assertEqual(client.get_cookies(), {'token': 'abc'})


if __name__ == '__main__':
    unittest.main()
