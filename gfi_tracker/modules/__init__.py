# GFI Tracker - Modules Package
"""
Workflow modules of the GFI Tracker dashboard service.
"""

MODULES = {
    'database_manager': 'Local store for response cache, status snapshots and import drafts',
    'api_client': 'REST API client with per-user response cache',
    'time_slots': 'Daily time slot selection and break timing',
    'unit_manager': 'Teacher dashboard and unit start/complete',
    'approval_manager': 'Verifier approval queue',
    'assignment_manager': 'Subject reassignment requests',
    'notification_system': 'Notification feeds and badge counts',
    'timetable_import': 'Spreadsheet time-table import',
    'report_generator': 'Admin analytics and report export',
    'batch_manager': 'Batches, subjects and exams',
    'auth_manager': 'Sign-in, profile and user management',
    'calendar_manager': 'Teacher calendar and planning'
}


def get_module_info():
    """Get information about available modules"""
    return MODULES
