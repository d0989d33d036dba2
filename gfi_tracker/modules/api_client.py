"""
API Client Module - GFI Tracker Dashboard Service

This module talks to the GFI REST API. Every endpoint answers with the
envelope {success, data, message}; the client returns that envelope as a
dict and raises ApiError for transport failures and non-2xx answers.

Features:
- Session-cookie authentication forwarded from the signed-in user
- Per-user GET response cache kept in the local store
- Stale cache fallback when the API is unreachable
- One method per API route (auth, teacher, admin, verifier, exam,
  time-table, batch)
"""

import json
import logging
import time
from typing import Dict, List, Any, Optional, Callable
from urllib.parse import urlencode

import requests


DEFAULT_TIMEOUT = 15
DEFAULT_CACHE_MAX_AGE = 120
DEFAULT_CACHE_MAX_BYTES = 4_500_000
CACHE_BUST_PARAM = '_t'


class ApiError(Exception):
    """Error raised for failed API calls."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        text = (self.message or '').lower()
        return self.status == 404 or 'not found' in text or '404' in text

    def __str__(self):
        return self.message


def normalize_base_url(url: str) -> str:
    """Strip trailing slashes and make sure the URL ends with /api."""
    url = (url or '').strip().rstrip('/')
    if not url:
        return '/api'
    if not url.endswith('/api'):
        url = f"{url}/api"
    return url


def strip_verifier_dashboard(response: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shrink a verifier dashboard response before it is cached.
    Pending approvals are all kept; processed ones are cut to the latest ten.
    Requester avatars are removed from both lists.
    """
    if not isinstance(response, dict) or not response.get('success') or not response.get('data'):
        return response

    def without_avatars(approvals):
        stripped = []
        for approval in approvals:
            approval = dict(approval)
            if isinstance(approval.get('requestedBy'), dict):
                requested_by = dict(approval['requestedBy'])
                requested_by.pop('avatar', None)
                approval['requestedBy'] = requested_by
            stripped.append(approval)
        return stripped

    cached = dict(response)
    cached['data'] = dict(response['data'])
    if cached['data'].get('recentApprovals'):
        cached['data']['recentApprovals'] = without_avatars(cached['data']['recentApprovals'][:10])
    if cached['data'].get('pendingApprovals'):
        cached['data']['pendingApprovals'] = without_avatars(cached['data']['pendingApprovals'])
    return cached


class ApiClient:
    """
    HTTP client for the GFI REST API.
    One instance serves one signed-in user; its cache entries are keyed by owner.
    """

    def __init__(self, base_url: str, database_manager=None, owner: str = 'anonymous',
                 timeout: float = DEFAULT_TIMEOUT, cache_max_age: float = DEFAULT_CACHE_MAX_AGE,
                 cache_max_bytes: int = DEFAULT_CACHE_MAX_BYTES,
                 cookies: Optional[Dict[str, str]] = None, http: Optional[requests.Session] = None):
        """
        Args:
            base_url (str): API root, '/api' is appended when missing
            database_manager: Local store used for the response cache (optional)
            owner (str): Cache owner, normally the signed-in user's id
            timeout (float): Request timeout in seconds
            cache_max_age (float): Seconds a cached GET answer stays fresh
            cache_max_bytes (int): Larger payloads are never cached
            cookies (Dict[str, str]): API session cookies to send
            http (requests.Session): Session to use instead of a new one
        """
        self.base_url = normalize_base_url(base_url)
        self.db = database_manager
        self.owner = str(owner)
        self.timeout = timeout
        self.cache_max_age = cache_max_age
        self.cache_max_bytes = cache_max_bytes
        self.logger = logging.getLogger(__name__)

        self.http = http if http is not None else requests.Session()
        self.http.headers.update({'Content-Type': 'application/json'})
        if cookies:
            self.http.cookies.update(cookies)

    def get_cookies(self) -> Dict[str, str]:
        """API session cookies currently held by the client."""
        return requests.utils.dict_from_cookiejar(self.http.cookies)

    def _build_url(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        path = endpoint if endpoint.startswith('/') else f"/{endpoint}"
        url = f"{self.base_url}{path}"
        if params:
            query = urlencode([(k, v) for k, v in params.items() if v is not None])
            if query:
                url = f"{url}?{query}"
        return url

    def request(self, endpoint: str, method: str = 'GET', json: Any = None,
                params: Optional[Dict[str, Any]] = None, cache_max_age: Optional[float] = None,
                transform_cache: Optional[Callable[[Any], Any]] = None,
                cache: bool = True) -> Dict[str, Any]:
        """
        Send a request to the API.

        Args:
            endpoint (str): Path below the API root
            method (str): HTTP method
            json (Any): JSON request body
            params (Dict[str, Any]): Query parameters (None values dropped)
            cache_max_age (float): Freshness window for this call, 0 always hits the network
            transform_cache (Callable): Applied to the response before it is cached
            cache (bool): False bypasses the response cache entirely

        Returns:
            Dict[str, Any]: Decoded response envelope

        Raises:
            ApiError: On timeouts, network failures without cache, non-JSON or non-2xx answers
        """
        method = method.upper()
        url = self._build_url(endpoint, params)
        use_cache = cache and method == 'GET' and '/auth/' not in url and self.db is not None
        max_age = self.cache_max_age if cache_max_age is None else cache_max_age
        # One cache row per endpoint and query, whatever the cache-bust value
        cache_key = self._build_url(
            endpoint, {k: v for k, v in (params or {}).items() if k != CACHE_BUST_PARAM}
        )

        if use_cache:
            cached = self.db.get_cached_response(self.owner, cache_key)
            if cached and cached['payload'] is not None and (time.time() - cached['cached_at']) < max_age:
                self.logger.debug(f"Cache hit (fresh): {url}")
                return cached['payload']

        self.logger.info(f"API request: {method} {url}")
        try:
            response = self.http.request(method, url, json=json, timeout=self.timeout)
        except requests.Timeout:
            stale = self._stale_response(use_cache, cache_key)
            if stale is not None:
                return stale
            self.logger.error(f"API request timeout: {url}")
            raise ApiError('Request timeout - backend may not be running')
        except requests.ConnectionError as e:
            stale = self._stale_response(use_cache, cache_key)
            if stale is not None:
                return stale
            self.logger.error(f"API request failed and no cache available: {url}")
            raise ApiError(f"Unable to reach the API: {str(e)}")

        data = self._decode(response)

        if not response.ok:
            if response.status_code == 401:
                raise ApiError('Unauthorized - Please login again', status=401, payload=data)
            message = self._error_message(data, response.status_code)
            self.logger.error(f"API error {response.status_code} {url}: {message}")
            raise ApiError(message, status=response.status_code, payload=data)

        if use_cache:
            self._store(cache_key, data, transform_cache)

        return data

    def _decode(self, response) -> Any:
        content_type = response.headers.get('content-type', '')
        if 'application/json' not in content_type:
            raise ApiError(response.text or 'Invalid response format', status=response.status_code)
        try:
            return response.json()
        except ValueError:
            raise ApiError(f"Invalid JSON response: {response.text}", status=response.status_code)

    def _error_message(self, data: Any, status: int) -> str:
        if isinstance(data, dict):
            message = data.get('message') or data.get('error')
            if message:
                return str(message)
            if data:
                return json.dumps(data)
        elif data:
            return str(data)
        return f"Request failed with status {status}"

    def _store(self, url: str, data: Any, transform_cache: Optional[Callable[[Any], Any]]) -> None:
        to_cache = data
        if transform_cache is not None:
            try:
                to_cache = transform_cache(data)
            except (TypeError, KeyError, AttributeError) as e:
                self.logger.warning(f"Cache transform failed: {str(e)}")

        payload_text = json.dumps(to_cache)
        if len(payload_text) > self.cache_max_bytes:
            size_mb = len(payload_text) / 1024 / 1024
            self.logger.warning(f"Data too large to cache ({size_mb:.2f} MB): {url}")
            return

        self.db.store_cached_response(self.owner, url, payload_text)

    def _stale_response(self, use_cache: bool, url: str) -> Any:
        if not use_cache:
            return None
        cached = self.db.get_cached_response(self.owner, url)
        if cached is None:
            return None
        self.logger.warning(f"Network request failed, serving cached data for: {url}")
        return cached['payload']

    # Auth endpoints

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self.request('/auth/login', 'POST', {'email': email, 'password': password})

    def register(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request('/auth/register', 'POST', user_data)

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self.request('/auth/forgot-password', 'POST', {'email': email})

    def verify_otp(self, email: str, otp: str) -> Dict[str, Any]:
        return self.request('/auth/verify-otp', 'POST', {'email': email, 'otp': otp})

    def reset_password(self, email: str, otp: str, password: str) -> Dict[str, Any]:
        return self.request('/auth/reset-password', 'POST',
                            {'email': email, 'otp': otp, 'password': password})

    def get_current_user(self) -> Dict[str, Any]:
        return self.request('/auth/me')

    def update_profile(self, name: str, email: str, avatar: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/auth/profile', 'PUT', {'name': name, 'email': email, 'avatar': avatar})

    def logout(self) -> Dict[str, Any]:
        """Sign out and drop every cached response of this user."""
        try:
            return self.request('/auth/logout', 'POST')
        finally:
            if self.db is not None:
                self.db.clear_cache(owner=self.owner)

    # Teacher endpoints

    def get_teacher_dashboard(self, batch_id: Optional[str] = None, date: Optional[str] = None) -> Dict[str, Any]:
        params = {}
        if batch_id and batch_id != 'all':
            params['batchId'] = batch_id
        if date:
            params['date'] = date
        return self.request('/teacher/dashboard', params=params, cache_max_age=0)

    def update_time_slot(self, slot_id: str, checked: bool, break_duration: Optional[int] = None,
                         date: Optional[str] = None) -> Dict[str, Any]:
        try:
            return self.request('/teacher/time-slots', 'POST', {
                'slotId': slot_id,
                'checked': checked,
                'breakDuration': break_duration,
                'date': date
            })
        except ApiError as e:
            self.logger.error(f"Error updating slot {slot_id} to {checked}: {str(e)}")
            if 'not found' in e.message:
                raise ApiError(f"Time slot '{slot_id}' not found. Please refresh the page.",
                               status=e.status, payload=e.payload)
            if 'locked' in e.message:
                raise ApiError(f"Cannot modify locked slot '{slot_id}'. Please contact administrator.",
                               status=e.status, payload=e.payload)
            raise

    def update_break_timing(self, break_duration: int, date: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/teacher/time-slots/break', 'POST',
                            {'breakDuration': break_duration, 'date': date})

    def start_unit(self, unit_id: str) -> Dict[str, Any]:
        return self.request(f"/teacher/units/{unit_id}/start", 'POST')

    def complete_unit(self, unit_id: str) -> Dict[str, Any]:
        return self.request(f"/teacher/units/{unit_id}/complete", 'POST')

    def get_pending_approvals(self) -> Dict[str, Any]:
        return self.request('/teacher/pending-approvals')

    def get_notifications(self) -> Dict[str, Any]:
        return self.request('/teacher/notifications', cache_max_age=0)

    def approve_teacher_assignment(self, assignment_id: str) -> Dict[str, Any]:
        return self.request(f"/teacher/assignments/{assignment_id}/approve", 'POST')

    def reject_teacher_assignment(self, assignment_id: str, reason: str) -> Dict[str, Any]:
        return self.request(f"/teacher/assignments/{assignment_id}/reject", 'POST', {'reason': reason})

    def get_time_slot_approval_status(self, date: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/teacher/time-slots/approval-status',
                            params={'date': date} if date else None, cache_max_age=0)

    def cancel_approval_request(self, approval_id: str) -> Dict[str, Any]:
        return self.request(f"/teacher/approvals/{approval_id}/cancel", 'POST')

    def get_teacher_assignments(self) -> Dict[str, Any]:
        return self.request('/teacher/assignments', cache_max_age=0)

    def get_teacher_calendar(self, start_date: str, end_date: str) -> Dict[str, Any]:
        return self.request('/teacher/calendar', params={'startDate': start_date, 'endDate': end_date})

    def update_teacher_calendar_day(self, date: str, subject_name: str, batch: str) -> Dict[str, Any]:
        return self.request('/teacher/calendar/day', 'PATCH',
                            {'date': date, 'subjectName': subject_name, 'batch': batch})

    # Admin endpoints

    def get_admin_dashboard(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request('/admin/dashboard', params=filters or None, cache_max_age=0)

    def get_admin_progress(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request('/admin/progress', params=filters or None)

    def get_teachers(self) -> Dict[str, Any]:
        return self.request('/admin/teachers', cache_max_age=0)

    def get_users(self) -> Dict[str, Any]:
        return self.request('/admin/users', cache_max_age=0)

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request('/admin/users', 'POST', user_data)

    def update_user(self, user_id: str, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request(f"/admin/users/{user_id}", 'PUT', user_data)

    def delete_user(self, user_id: str) -> Dict[str, Any]:
        return self.request(f"/admin/users/{user_id}", 'DELETE')

    def get_admin_notifications(self, skip_cache: bool = False) -> Dict[str, Any]:
        if skip_cache:
            return self.request('/admin/notifications', params={CACHE_BUST_PARAM: int(time.time() * 1000)},
                                cache_max_age=0)
        return self.request('/admin/notifications')

    def get_assignments(self, status: str = 'all') -> Dict[str, Any]:
        return self.request('/admin/assignments', params={'status': status} if status != 'all' else None)

    def approve_assignment(self, assignment_id: str) -> Dict[str, Any]:
        return self.request(f"/admin/assignments/{assignment_id}/approve", 'POST')

    def reject_assignment(self, assignment_id: str, reason: str) -> Dict[str, Any]:
        return self.request(f"/admin/assignments/{assignment_id}/reject", 'POST', {'reason': reason})

    # Verifier endpoints

    def get_verifier_dashboard(self) -> Dict[str, Any]:
        return self.request('/verifier/dashboard', cache_max_age=0,
                            transform_cache=strip_verifier_dashboard)

    def get_verifier_approvals(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request('/verifier/approvals', params=filters or None)

    def approve_request(self, approval_id: str) -> Dict[str, Any]:
        return self.request(f"/verifier/approvals/{approval_id}/approve", 'POST')

    def reject_request(self, approval_id: str, reason: str) -> Dict[str, Any]:
        return self.request(f"/verifier/approvals/{approval_id}/reject", 'POST', {'reason': reason})

    def get_verifier_notifications(self) -> Dict[str, Any]:
        return self.request('/verifier/notifications', cache_max_age=0)

    def delete_notification(self, notification_id: str) -> Dict[str, Any]:
        return self.request(f"/verifier/notifications/{notification_id}", 'DELETE')

    def get_teachers_with_incomplete_subjects(self, batch_id: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/verifier/assign/teachers-incomplete',
                            params={'batchId': batch_id} if batch_id else None)

    def get_available_teachers(self, batch_id: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/verifier/assign/available-teachers',
                            params={'batchId': batch_id} if batch_id else None)

    def get_subject_units(self, subject_id: str, teacher_id: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/verifier/assign/subject-units',
                            params={'subjectId': subject_id, 'teacherId': teacher_id})

    def get_verifier_subjects(self, batch_id: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/verifier/subjects', params={'batchId': batch_id} if batch_id else None)

    def create_subject(self, name: str, teacher_id: Optional[str], batch_id: Optional[str] = None,
                       unit_names: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.request('/verifier/subjects', 'POST', {
            'name': name,
            'teacherId': teacher_id,
            'batchId': batch_id,
            'unitNames': unit_names or []
        })

    def create_assignment_request(self, from_teacher_id: Optional[str], to_teacher_id: str,
                                  subject_id: str, reason: str, unit_ids: Optional[List[str]] = None,
                                  batch_id: Optional[str] = None) -> Dict[str, Any]:
        return self.request('/verifier/assign/request', 'POST', {
            'fromTeacherId': from_teacher_id,
            'toTeacherId': to_teacher_id,
            'subjectId': subject_id,
            'reason': reason,
            'unitIds': unit_ids or [],
            'batchId': batch_id
        })

    def get_verifier_assignments(self, status: str = 'all', skip_cache: bool = False) -> Dict[str, Any]:
        return self.request('/verifier/assign/assignments', params={'status': status},
                            cache_max_age=0 if skip_cache else None)

    def delete_verifier_assignment(self, assignment_id: str) -> Dict[str, Any]:
        return self.request(f"/verifier/assign/assignments/{assignment_id}", 'DELETE')

    def get_verifier_admin_data(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request('/verifier/admin-data', params=filters or None)

    # Exam endpoints

    def get_exam_batches(self, skip_cache: bool = False) -> Dict[str, Any]:
        return self.request('/verifier/exam/batches', cache_max_age=0 if skip_cache else None)

    def delete_exam_batch(self, batch_id: str) -> Dict[str, Any]:
        return self.request(f"/verifier/exam/batches/{batch_id}", 'DELETE')

    def get_exam_subjects(self, batch_id: str) -> Dict[str, Any]:
        return self.request('/verifier/exam/subjects', params={'batchId': batch_id})

    def get_exam_units(self, subject_id: str) -> Dict[str, Any]:
        return self.request('/verifier/exam/units', params={'subjectId': subject_id}, cache_max_age=0)

    def toggle_exam_status(self, unit_id: str, is_finished: bool) -> Dict[str, Any]:
        return self.request('/verifier/exam/toggle', 'POST', {'unitId': unit_id, 'isFinished': is_finished})

    # Time-table endpoints

    def get_time_table_history(self) -> Dict[str, Any]:
        return self.request('/verifier/time-table/history', cache_max_age=0)

    def delete_time_table_history(self, history_id: str) -> Dict[str, Any]:
        return self.request(f"/verifier/time-table/history/{history_id}", 'DELETE')

    def apply_time_table_from_import(self, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.request('/verifier/time-table/apply', 'POST', {'entries': entries})

    # Batch endpoints

    def get_batches(self) -> Dict[str, Any]:
        return self.request('/batch', cache_max_age=0)

    def create_batch(self, name: str, year: Optional[str], description: Optional[str],
                     student_ids: Optional[List[str]] = None,
                     teacher_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.request('/batch', 'POST', {
            'name': name,
            'year': year,
            'description': description,
            'studentIds': student_ids or [],
            'teacherIds': teacher_ids or []
        })

    def get_batch(self, batch_id: str) -> Dict[str, Any]:
        return self.request(f"/batch/{batch_id}")

    def update_batch(self, batch_id: str, name: str, year: Optional[str], description: Optional[str],
                     student_ids: Optional[List[str]] = None,
                     teacher_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.request(f"/batch/{batch_id}", 'PUT', {
            'name': name,
            'year': year,
            'description': description,
            'studentIds': student_ids or [],
            'teacherIds': teacher_ids or []
        })

    def delete_batch(self, batch_id: str) -> Dict[str, Any]:
        return self.request(f"/batch/{batch_id}", 'DELETE')

    def get_batch_students(self, batch_id: str) -> Dict[str, Any]:
        return self.request(f"/batch/{batch_id}/students")

    def health(self) -> Dict[str, Any]:
        return self.request('/health', cache=False)
