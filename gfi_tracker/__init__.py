# GFI Tracker - Dashboard Service Package
"""
Dashboard service for GFI Tracker.
Teachers track units and time slots, verifiers approve requests and import
time-tables, admins follow progress and manage batches and users.
"""

__version__ = "1.0.0"
__description__ = "Flask dashboard service for the GFI Tracker teaching workflow"

from .modules.database_manager import DatabaseManager
from .modules.api_client import ApiClient, ApiError
from .modules.time_slots import TimeSlotManager
from .modules.unit_manager import UnitManager
from .modules.approval_manager import ApprovalManager
from .modules.assignment_manager import AssignmentManager
from .modules.notification_system import NotificationSystem
from .modules.timetable_import import TimeTableImporter
from .modules.report_generator import ReportGenerator
from .modules.batch_manager import BatchManager
from .modules.auth_manager import AuthManager
from .modules.calendar_manager import CalendarManager

__all__ = [
    'DatabaseManager',
    'ApiClient',
    'ApiError',
    'TimeSlotManager',
    'UnitManager',
    'ApprovalManager',
    'AssignmentManager',
    'NotificationSystem',
    'TimeTableImporter',
    'ReportGenerator',
    'BatchManager',
    'AuthManager',
    'CalendarManager'
]
