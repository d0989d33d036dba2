"""
Authentication Manager Module - GFI Tracker Dashboard Service

This module forwards sign-in, profile and password reset requests to the
API and holds the role/permission table the dashboard routes check.
Credentials are never stored here; the API session cookie is.

Features:
- Role-based permissions (admin, verifier, teacher)
- Login/logout and current user lookup
- Profile update with avatar size limit
- Password reset flow (forgot -> verify OTP -> reset)
- User management for admins
"""

import logging
from typing import Dict, List, Any, Optional

from .api_client import ApiError


PASSWORD_MIN_LENGTH = 6
AVATAR_MAX_BYTES = 5 * 1024 * 1024


def user_id(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    return user.get('id') or user.get('_id')


def data_url_size(value: Optional[str]) -> int:
    """Decoded size in bytes of a base64 data URL."""
    if not value or not value.startswith('data:'):
        return 0
    encoded = value.split(',', 1)[-1]
    return len(encoded) * 3 // 4 - encoded.count('=', -2)


class AuthManager:
    """
    Sign-in, profile and user administration through the API.
    """

    def __init__(self, api):
        """
        Args:
            api: ApiClient instance
        """
        self.api = api
        self.logger = logging.getLogger(__name__)

        self.USER_TYPES = {
            'ADMIN': 'admin',
            'VERIFIER': 'verifier',
            'TEACHER': 'teacher'
        }

        self.PERMISSIONS = {
            'admin': [
                'view_analytics', 'export_reports', 'manage_users', 'approve_assignments',
                'manage_batches', 'view_notifications'
            ],
            'verifier': [
                'approve_requests', 'create_assignment_requests', 'manage_batches',
                'manage_subjects', 'import_time_table', 'manage_exams', 'view_notifications'
            ],
            'teacher': [
                'track_units', 'select_time_slots', 'respond_assignments', 'view_calendar',
                'view_notifications'
            ]
        }

    def get_user_permissions(self, role: str) -> List[str]:
        return self.PERMISSIONS.get(role, [])

    def has_permission(self, role: str, permission: str) -> bool:
        return permission in self.get_user_permissions(role)

    # Session

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Sign in with the API.

        Returns:
            Dict[str, Any]: success and user, or error
        """
        email = (email or '').strip()
        if not email or not password:
            return {'success': False, 'error': 'Email and password are required'}

        try:
            response = self.api.login(email, password)
        except ApiError as e:
            self.logger.warning(f"Login failed for {email}: {str(e)}")
            return {'success': False, 'error': e.message or 'Login failed. Please check your credentials.'}

        if not response.get('success') or not response.get('user'):
            return {'success': False, 'error': response.get('message') or 'Login failed. Please check your credentials.'}

        user = response['user']
        if user.get('role') not in self.PERMISSIONS:
            self.logger.warning(f"Login refused for {email}: unknown role {user.get('role')}")
            return {'success': False, 'error': 'Your account role is not supported'}

        self.logger.info(f"User logged in: {email} ({user.get('role')})")
        return {'success': True, 'user': user}

    def logout(self) -> Dict[str, Any]:
        try:
            self.api.logout()
        except ApiError as e:
            self.logger.warning(f"Logout request failed: {str(e)}")
            return {'success': True, 'message': 'Logged out locally'}
        return {'success': True, 'message': 'Logged out'}

    def current_user(self) -> Dict[str, Any]:
        try:
            response = self.api.get_current_user()
        except ApiError as e:
            return {'success': False, 'error': e.message, 'status': e.status}
        if not response.get('success') or not response.get('user'):
            return {'success': False, 'error': response.get('message') or 'Not authenticated'}
        return {'success': True, 'user': response['user']}

    def update_profile(self, name: str, email: str, avatar: Optional[str] = None) -> Dict[str, Any]:
        if not (name or '').strip() or not (email or '').strip():
            return {'success': False, 'error': 'Name and email are required'}
        if data_url_size(avatar) > AVATAR_MAX_BYTES:
            return {'success': False, 'error': 'File size too large. Max 5MB.'}

        try:
            response = self.api.update_profile(name.strip(), email.strip(), avatar)
        except ApiError as e:
            self.logger.error(f"Profile update failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Failed to update profile'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Failed to update profile'}
        return {'success': True, 'user': response.get('user') or response.get('data')}

    # Password reset

    def forgot_password(self, email: str) -> Dict[str, Any]:
        if not (email or '').strip():
            return {'success': False, 'error': 'Email is required'}
        try:
            response = self.api.forgot_password(email.strip())
        except ApiError as e:
            return {'success': False, 'error': e.message or 'Failed to send OTP. Please check your email.'}
        return {'success': bool(response.get('success')), 'message': response.get('message') or 'OTP sent'}

    def verify_otp(self, email: str, otp: str) -> Dict[str, Any]:
        if not (otp or '').strip():
            return {'success': False, 'error': 'OTP is required'}
        try:
            response = self.api.verify_otp((email or '').strip(), otp.strip())
        except ApiError as e:
            return {'success': False, 'error': e.message or 'Invalid OTP. Please try again.'}
        return {'success': bool(response.get('success')), 'message': response.get('message') or 'OTP verified'}

    def reset_password(self, email: str, otp: str, password: str,
                       confirm_password: Optional[str] = None) -> Dict[str, Any]:
        if confirm_password is not None and password != confirm_password:
            return {'success': False, 'error': 'Passwords do not match'}
        if len(password or '') < PASSWORD_MIN_LENGTH:
            return {'success': False, 'error': f'Password must be at least {PASSWORD_MIN_LENGTH} characters'}
        try:
            response = self.api.reset_password((email or '').strip(), (otp or '').strip(), password)
        except ApiError as e:
            return {'success': False, 'error': e.message or 'Failed to reset password.'}
        self.logger.info(f"Password reset for {email}")
        return {'success': bool(response.get('success')), 'message': response.get('message') or 'Password reset'}

    # User management

    def list_users(self, query: str = '') -> Dict[str, Any]:
        """All users, optionally filtered on name or email."""
        try:
            response = self.api.get_users()
        except ApiError as e:
            self.logger.error(f"Error loading users: {str(e)}")
            return {'success': False, 'users': [], 'error': e.message or 'Failed to load users'}

        if not response.get('success'):
            return {'success': False, 'users': [], 'error': response.get('message') or 'Failed to load users'}

        users = response.get('data') or []
        needle = (query or '').strip().lower()
        if needle:
            users = [
                u for u in users
                if needle in (u.get('name') or '').lower() or needle in (u.get('email') or '').lower()
            ]
        return {'success': True, 'users': users}

    def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        fields = {field: str(data.get(field) or '') for field in ('name', 'email', 'password')}
        missing = [field for field, value in fields.items() if not value.strip()]
        if missing:
            return {'success': False, 'error': f"Missing required fields: {', '.join(missing)}"}

        role = str(data.get('role') or self.USER_TYPES['TEACHER'])
        if role not in self.PERMISSIONS:
            return {'success': False, 'error': f'Invalid role: {role}'}

        payload = {
            'name': fields['name'].strip(),
            'email': fields['email'].strip(),
            'password': fields['password'],
            'role': role
        }
        try:
            response = self.api.create_user(payload)
        except ApiError as e:
            self.logger.error(f"Create user failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Operation failed'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Operation failed'}
        self.logger.info(f"User created: {payload['email']} ({role})")
        return {'success': True, 'user': response.get('data'), 'message': 'User created successfully'}

    def update_user(self, target_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in data.items() if k in ('name', 'email', 'role', 'password')}
        if not payload.get('password'):
            payload.pop('password', None)
        if 'role' in payload and str(payload['role']) not in self.PERMISSIONS:
            return {'success': False, 'error': f"Invalid role: {payload['role']}"}

        try:
            response = self.api.update_user(target_id, payload)
        except ApiError as e:
            self.logger.error(f"Update user {target_id} failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Operation failed'}

        if not response.get('success'):
            return {'success': False, 'error': response.get('message') or 'Operation failed'}
        return {'success': True, 'user': response.get('data'), 'message': 'User updated successfully'}

    def delete_user(self, target: Dict[str, Any]) -> Dict[str, Any]:
        """
        Delete a user record.

        Args:
            target (Dict[str, Any]): The user as listed (admins cannot be deleted)
        """
        if target.get('role') == self.USER_TYPES['ADMIN']:
            return {'success': False, 'error': 'Admin users cannot be deleted'}

        target_id = user_id(target)
        try:
            self.api.delete_user(target_id)
        except ApiError as e:
            self.logger.error(f"Delete user {target_id} failed: {str(e)}")
            return {'success': False, 'error': e.message or 'Delete failed'}

        self.logger.info(f"User deleted: {target_id}")
        return {'success': True, 'message': 'User deleted successfully'}
