"""
GFI Tracker Dashboard Service - Main Application

This module is the entry point of the dashboard service. It builds the Flask
application, keeps the signed-in user's API session in the Flask session and
exposes the workflow managers as JSON view-models for the UI.

Features:
- Teacher dashboard, unit start/complete and time slot editor
- Verifier approval queue, assignment requests and time-table import
- Admin analytics, report export, assignments and user management
- Batches, subjects, exams and notifications
"""

import io
import logging
import os
from datetime import datetime
from functools import wraps

from flask import Flask, Blueprint, current_app, g, jsonify, request, send_file, session
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from config import init_config
from gfi_tracker.modules.api_client import ApiClient, ApiError
from gfi_tracker.modules.approval_manager import ApprovalManager
from gfi_tracker.modules.assignment_manager import AssignmentManager
from gfi_tracker.modules.auth_manager import AuthManager, user_id
from gfi_tracker.modules.batch_manager import BatchManager, can_manage
from gfi_tracker.modules.calendar_manager import CalendarManager
from gfi_tracker.modules.database_manager import DatabaseManager
from gfi_tracker.modules.notification_system import NotificationSystem
from gfi_tracker.modules.report_generator import ReportGenerator, normalize_filters
from gfi_tracker.modules.time_slots import TimeSlotManager, validate_break
from gfi_tracker.modules.timetable_import import TimeTableImporter
from gfi_tracker.modules.unit_manager import UnitManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)

ui = Blueprint('ui', __name__, url_prefix='/api/ui')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


# Helpers

def envelope(success, data=None, message='', status=200):
    return jsonify({'success': success, 'data': data, 'message': message}), status


def respond(result, error_status=400):
    """Turn a manager result dict into the {success, data, message} envelope."""
    payload = {k: v for k, v in result.items() if k not in ('success', 'message', 'error')}
    if set(payload) == {'data'}:
        payload = payload['data']
    if result.get('success'):
        return envelope(True, payload, result.get('message') or '')
    return envelope(False, payload, result.get('error') or result.get('message') or 'Request failed',
                    error_status)


def body():
    return request.get_json(silent=True) or {}


def get_db():
    return current_app.extensions['gfi_db']


def get_api():
    """API client of the current user, built once per request."""
    if 'api' not in g:
        g.api = current_app.extensions['gfi_api_factory'](
            session.get('user_id', 'anonymous'),
            session.get('api_cookies')
        )
    return g.api


def current_user_id():
    return session.get('user_id')


def current_role():
    return session.get('role')


def login_required(f):
    """Decorator to require login for protected routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return envelope(False, None, 'Please log in to continue.', 401)
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    """Decorator to require one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if 'user_id' not in session:
                return envelope(False, None, 'Please log in to continue.', 401)
            if session.get('role') not in roles:
                logger.warning(f"Role {session.get('role')} refused on {request.path}")
                return envelope(False, None, 'You do not have permission to perform this action.', 403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@ui.after_app_request
def persist_api_session(response):
    api = g.get('api')
    if api is not None and 'user_id' in session:
        cookies = api.get_cookies()
        if isinstance(cookies, dict) and cookies != session.get('api_cookies'):
            session['api_cookies'] = cookies
    return response


# Auth

@ui.route('/auth/login', methods=['POST'])
def login():
    data = body()
    result = AuthManager(get_api()).login(data.get('email', ''), data.get('password', ''))
    if not result['success']:
        return envelope(False, None, result['error'], 401)

    user = result['user']
    cookies = get_api().get_cookies()
    session.clear()
    session['user_id'] = str(user_id(user))
    session['role'] = user.get('role')
    session['name'] = user.get('name')
    session['email'] = user.get('email')
    session['api_cookies'] = cookies if isinstance(cookies, dict) else {}
    session.permanent = True
    return envelope(True, {'user': user}, f"Welcome back, {user.get('name') or user.get('email')}!")


@ui.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    name = session.get('name', 'Unknown')
    result = AuthManager(get_api()).logout()
    session.clear()
    g.pop('api', None)
    logger.info(f"User {name} logged out")
    return respond(result)


@ui.route('/auth/me')
@login_required
def me():
    result = AuthManager(get_api()).current_user()
    if not result['success'] and result.get('status') == 401:
        session.clear()
        return envelope(False, None, result['error'], 401)
    return respond(result)


@ui.route('/auth/profile', methods=['PUT'])
@login_required
def update_profile():
    data = body()
    result = AuthManager(get_api()).update_profile(data.get('name', ''), data.get('email', ''), data.get('avatar'))
    if result['success'] and result.get('user'):
        session['name'] = result['user'].get('name', session.get('name'))
        session['email'] = result['user'].get('email', session.get('email'))
    return respond(result)


@ui.route('/auth/forgot-password', methods=['POST'])
def forgot_password():
    return respond(AuthManager(get_api()).forgot_password(body().get('email', '')))


@ui.route('/auth/verify-otp', methods=['POST'])
def verify_otp():
    data = body()
    return respond(AuthManager(get_api()).verify_otp(data.get('email', ''), data.get('otp', '')))


@ui.route('/auth/reset-password', methods=['POST'])
def reset_password():
    data = body()
    return respond(AuthManager(get_api()).reset_password(
        data.get('email', ''), data.get('otp', ''), data.get('password', ''), data.get('confirmPassword')
    ))


# Teacher

@ui.route('/teacher/dashboard')
@role_required('teacher')
def teacher_dashboard():
    manager = UnitManager(get_api(), get_db(), current_user_id())
    return respond(manager.load_dashboard(request.args.get('batchId'), request.args.get('date')), 502)


@ui.route('/teacher/units/<unit_id>/start', methods=['POST'])
@role_required('teacher')
def start_unit(unit_id):
    result = UnitManager(get_api()).start_unit(unit_id)
    return respond(result, 409 if result.get('conflict') else 400)


@ui.route('/teacher/units/<unit_id>/complete', methods=['POST'])
@role_required('teacher')
def complete_unit(unit_id):
    return respond(UnitManager(get_api()).complete_unit(unit_id))


@ui.route('/teacher/time-slots')
@role_required('teacher')
def time_slot_editor():
    date = request.args.get('date')
    selected = request.args.get('selected')
    current_break = request.args.get('breakDuration', type=int)

    if selected is None:
        dashboard = UnitManager(get_api(), get_db(), current_user_id()).load_dashboard(date=date)
        if not dashboard['success']:
            return respond(dashboard, 502)
        selected_slots = dashboard['data']['selectedSlots']
        if current_break is None:
            current_break = dashboard['data']['breakDuration']
    else:
        selected_slots = [s for s in selected.split(',') if s]

    manager = TimeSlotManager(get_api(), get_db(), current_user_id())
    return envelope(True, manager.load_editor(selected_slots, current_break, date))


@ui.route('/teacher/time-slots/toggle', methods=['POST'])
@role_required('teacher')
def toggle_time_slot():
    data = body()
    manager = TimeSlotManager(get_api(), get_db(), current_user_id())
    approval_map, _ = manager.get_approval_status(data.get('date'))
    result = manager.toggle_slot(data.get('slotId', ''), data.get('selection') or [], approval_map)
    if not result['success']:
        return envelope(False, result, result['message'], 423 if result.get('blocked') else 400)
    return envelope(True, result, result.get('notice') or '')


@ui.route('/teacher/time-slots', methods=['POST'])
@role_required('teacher')
def save_time_slots():
    data = body()
    valid, break_minutes, error = validate_break(data.get('breakDuration'))
    if not valid:
        return envelope(False, None, error, 400)

    manager = TimeSlotManager(get_api(), get_db(), current_user_id())
    result = manager.save_selection(data.get('selected') or [], break_minutes,
                                    data.get('initialBreak'), data.get('date'))
    status = 200 if result['success'] else 400
    return envelope(result['success'], result, result['message'], status)


@ui.route('/teacher/time-slots/notices')
@role_required('teacher')
def time_slot_notices():
    date = request.args.get('date')
    manager = TimeSlotManager(get_api(), get_db(), current_user_id())
    approval_map, break_status = manager.get_approval_status(date)
    notices = manager.detect_transitions(date, approval_map, break_status,
                                         request.args.get('breakDuration', type=int))
    return envelope(True, {'notices': [vars(n) for n in notices]})


@ui.route('/teacher/assignments')
@role_required('teacher')
def teacher_assignments():
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.teacher_assignments(), 502)


@ui.route('/teacher/assignments/<assignment_id>/<action>', methods=['POST'])
@role_required('teacher')
def respond_assignment(assignment_id, action):
    if action not in ('accept', 'reject'):
        return envelope(False, None, f'Unknown action: {action}', 404)

    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    listed = manager.teacher_assignments()
    assignment = manager.find(assignment_id, listed['assignments'])
    if assignment is None:
        return envelope(False, None, 'Assignment not found', 404)

    if action == 'accept':
        return respond(manager.teacher_accept(assignment))
    return respond(manager.teacher_reject(assignment, body().get('reason', '')))


@ui.route('/teacher/calendar')
@role_required('teacher')
def teacher_calendar():
    today = datetime.now()
    year = request.args.get('year', today.year, type=int)
    month = request.args.get('month', today.month, type=int)
    if not 1 <= month <= 12:
        return envelope(False, None, 'Month must be between 1 and 12', 400)

    manager = CalendarManager(get_api())
    result = manager.month_view(year, month)
    if result['success']:
        result['planning'] = manager.planning(result['days'])
    return respond(result, 502)


@ui.route('/teacher/calendar/day', methods=['PATCH'])
@role_required('teacher')
def update_calendar_day():
    data = body()
    return respond(CalendarManager(get_api()).update_day(data.get('date'), data.get('subjectName', ''),
                                                         data.get('batch')))


# Verifier

@ui.route('/verifier/dashboard')
@role_required('verifier')
def verifier_dashboard():
    manager = ApprovalManager(get_api(), current_user_id())
    result = manager.load_dashboard()
    if not result['success']:
        return respond(result, 502)

    approvals = manager.filter_approvals(result['data'], request.args.get('status', 'pending'),
                                         request.args.get('type', 'all'))
    return envelope(True, {
        'stats': result['data']['stats'],
        'approvals': approvals,
        'groups': manager.group_by_teacher(approvals)
    })


@ui.route('/verifier/approvals/<approval_id>/<action>', methods=['POST'])
@role_required('verifier')
def decide_approval(approval_id, action):
    if action not in ('approve', 'reject'):
        return envelope(False, None, f'Unknown action: {action}', 404)

    manager = ApprovalManager(get_api(), current_user_id())
    loaded = manager.load_dashboard()
    data = loaded.get('data') or {}
    if action == 'approve':
        result = manager.approve(approval_id, data)
    else:
        result = manager.reject(approval_id, body().get('reason', ''), data)
    return respond(result)


@ui.route('/verifier/teachers')
@role_required('verifier', 'admin')
def available_teachers():
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.available_teachers(request.args.get('batchId')), 502)


@ui.route('/verifier/subjects/<subject_id>/units')
@role_required('verifier')
def remaining_units(subject_id):
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.remaining_units(subject_id, request.args.get('teacherId')), 502)


@ui.route('/verifier/assignments')
@role_required('verifier')
def assignment_history():
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.history(request.args.get('status', 'pending')), 502)


@ui.route('/verifier/assignments', methods=['POST'])
@role_required('verifier')
def create_assignment_request():
    data = body()
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    result = manager.create_request(
        data.get('toTeacherId'), data.get('subjectId'), data.get('fromTeacherId'),
        data.get('reason'), data.get('unitIds'), data.get('batchId')
    )
    return respond(result)


@ui.route('/verifier/assignments/<assignment_id>', methods=['DELETE'])
@role_required('verifier')
def delete_assignment(assignment_id):
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.delete(assignment_id))


# Time-table import

def importer():
    return TimeTableImporter(get_api(), get_db(), current_user_id())


@ui.route('/timetable/template')
@role_required('verifier')
def timetable_template():
    filename, content = importer().build_template()
    return send_file(io.BytesIO(content), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


@ui.route('/timetable/upload', methods=['POST'])
@role_required('verifier')
def timetable_upload():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return envelope(False, None, 'No file uploaded', 400)

    filename = secure_filename(upload.filename) or 'timetable.xlsx'
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension not in current_app.config['ALLOWED_IMPORT_EXTENSIONS']:
        return envelope(False, None, 'Please upload an Excel (.xlsx, .xls) or CSV file', 400)

    result = importer().upload(io.BytesIO(upload.read()), filename)
    return respond(result)


@ui.route('/timetable/drafts/<int:draft_id>/send', methods=['POST'])
@role_required('verifier')
def timetable_send(draft_id):
    result = importer().send_draft(draft_id)
    if result['applied'] > 0:
        return envelope(True, result, f"Time table sent: {result['applied']} entries applied")
    first_error = 'Nothing was sent'
    if result['errors']:
        error = result['errors'][0]
        first_error = error.get('message') if isinstance(error, dict) else str(error)
    return envelope(False, result, first_error, 400)


@ui.route('/timetable/drafts/<int:draft_id>', methods=['PUT'])
@role_required('verifier')
def timetable_update_draft(draft_id):
    entries = body().get('entries')
    if not isinstance(entries, list):
        return envelope(False, None, 'Entries must be a list', 400)
    result = importer().update_draft(draft_id, entries)
    return respond(result, 404)


@ui.route('/timetable/drafts/<int:draft_id>', methods=['DELETE'])
@role_required('verifier')
def timetable_discard(draft_id):
    if not importer().discard_draft(draft_id):
        return envelope(False, None, 'Import not found', 404)
    return envelope(True, None, 'Import discarded')


@ui.route('/timetable/history')
@role_required('verifier')
def timetable_history():
    return respond(importer().history(), 502)


@ui.route('/timetable/history/<history_id>', methods=['DELETE'])
@role_required('verifier')
def timetable_history_delete(history_id):
    return respond(importer().delete_history(history_id))


@ui.route('/timetable/history/<history_id>/export')
@role_required('verifier')
def timetable_history_export(history_id):
    manager = importer()
    history = manager.history()
    item = next((h for h in history['history'] if h.get('_id') == history_id), None)
    if item is None:
        return envelope(False, None, 'History record not found', 404)

    exported = manager.export_history(item)
    if exported is None:
        return envelope(False, None, 'This upload has no entries', 400)
    filename, content = exported
    return send_file(io.BytesIO(content), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


# Exams

@ui.route('/exams/batches')
@role_required('verifier', 'admin', 'teacher')
def exam_batches():
    return respond(BatchManager(get_api(), current_role()).exam_batches(request.args.get('refresh') == '1'), 502)


@ui.route('/exams/batches/<batch_id>/subjects')
@role_required('verifier', 'admin', 'teacher')
def exam_subjects(batch_id):
    return respond(BatchManager(get_api(), current_role()).exam_subjects(batch_id), 502)


@ui.route('/exams/subjects/<subject_id>/units')
@role_required('verifier', 'admin', 'teacher')
def exam_units(subject_id):
    return respond(BatchManager(get_api(), current_role()).exam_units(subject_id), 502)


@ui.route('/exams/units/<unit_id>/toggle', methods=['POST'])
@role_required('verifier')
def toggle_exam(unit_id):
    data = body()
    manager = BatchManager(get_api(), current_role())
    units = manager.exam_units(data.get('subjectId', ''))
    if not units['success']:
        return respond(units, 502)
    return respond(manager.toggle_exam(unit_id, bool(data.get('finished')), units['units']))


@ui.route('/exams/batches/<batch_id>', methods=['DELETE'])
@role_required('verifier')
def delete_exam_batch(batch_id):
    return respond(BatchManager(get_api(), current_role()).delete_exam_batch(batch_id))


# Batches and subjects

@ui.route('/batches')
@login_required
def list_batches():
    allowed = request.args.get('allowed')
    allowed_ids = [b for b in allowed.split(',') if b] if allowed else None
    result = BatchManager(get_api(), current_role()).list_batches(allowed_ids, request.args.get('q', ''))
    result['canManage'] = can_manage(current_role())
    return respond(result, 502)


@ui.route('/batches', methods=['POST'])
@role_required('admin', 'verifier')
def create_batch():
    data = body()
    result = BatchManager(get_api(), current_role()).create_batch(
        data.get('name', ''), data.get('year'), data.get('description'),
        data.get('teacherIds'), data.get('subjects')
    )
    return respond(result)


@ui.route('/batches/<batch_id>')
@login_required
def get_batch(batch_id):
    result = BatchManager(get_api(), current_role()).get_batch(batch_id)
    return respond(result, 404 if result.get('not_found') else 502)


@ui.route('/batches/<batch_id>', methods=['PUT'])
@role_required('admin', 'verifier')
def update_batch(batch_id):
    data = body()
    result = BatchManager(get_api(), current_role()).update_batch(
        batch_id, data.get('name', ''), data.get('year'), data.get('description'),
        data.get('studentIds'), data.get('teacherIds')
    )
    return respond(result)


@ui.route('/batches/<batch_id>', methods=['DELETE'])
@role_required('admin', 'verifier')
def delete_batch(batch_id):
    return respond(BatchManager(get_api(), current_role()).delete_batch(batch_id))


@ui.route('/batches/<batch_id>/students')
@role_required('admin', 'verifier')
def batch_students(batch_id):
    return respond(BatchManager(get_api(), current_role()).batch_students(batch_id), 502)


@ui.route('/subjects')
@role_required('admin', 'verifier')
def list_subjects():
    return respond(BatchManager(get_api(), current_role()).list_subjects(request.args.get('batchId')), 502)


@ui.route('/subjects', methods=['POST'])
@role_required('admin', 'verifier')
def create_subject():
    data = body()
    result = BatchManager(get_api(), current_role()).create_subject(
        data.get('name', ''), data.get('teacherId'), data.get('batchId'), data.get('unitNames')
    )
    return respond(result)


# Admin

@ui.route('/admin/analytics')
@role_required('admin')
def admin_analytics():
    filters = normalize_filters(request.args.to_dict())
    reports = ReportGenerator(get_api(), current_app.config['EXPORTS_FOLDER'])

    dashboard = reports.load_dashboard(filters)
    progress = reports.load_progress(filters)
    if not progress['success']:
        return respond(progress, 502)

    teachers = reports.load_teachers()
    logs = dashboard.get('unitLogs') or []
    return envelope(True, {
        'filters': filters,
        'progress': progress,
        'metrics': dashboard.get('metrics') or {},
        'unitLogs': reports.search_logs(logs, request.args.get('q', '')),
        'delayedUnits': dashboard.get('delayedUnits') or [],
        'teachers': ['all'] + [t.get('name') for t in teachers['teachers'] if t.get('name')],
        'subjects': reports.subjects_for_filter(filters['teacherId'], teachers['teachers']),
        'dashboardError': None if dashboard['success'] else dashboard.get('error')
    })


@ui.route('/admin/analytics/export')
@role_required('admin')
def admin_analytics_export():
    filters = normalize_filters(request.args.to_dict())
    reports = ReportGenerator(get_api(), current_app.config['EXPORTS_FOLDER'])
    dashboard = reports.load_dashboard(filters)
    if not dashboard['success']:
        return respond(dashboard, 502)

    logs = reports.search_logs(dashboard['unitLogs'], request.args.get('q', ''))
    result = reports.export(logs, request.args.get('format', 'excel'), filters)
    if not result['success']:
        return respond(result)
    return send_file(os.path.abspath(result['filepath']), as_attachment=True, download_name=result['filename'])


@ui.route('/admin/assignments')
@role_required('admin')
def admin_assignments():
    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    return respond(manager.pending_for_admin(), 502)


@ui.route('/admin/assignments/<assignment_id>/<action>', methods=['POST'])
@role_required('admin')
def decide_assignment(assignment_id, action):
    if action not in ('approve', 'reject'):
        return envelope(False, None, f'Unknown action: {action}', 404)

    manager = AssignmentManager(get_api(), current_role(), current_user_id())
    pending = manager.pending_for_admin()
    assignment = manager.find(assignment_id, pending['assignments'])
    if assignment is None:
        return envelope(False, None, 'Assignment not found', 404)

    if action == 'approve':
        return respond(manager.admin_approve(assignment))
    return respond(manager.admin_reject(assignment, body().get('reason', '')))


@ui.route('/admin/users')
@role_required('admin')
def list_users():
    return respond(AuthManager(get_api()).list_users(request.args.get('q', '')), 502)


@ui.route('/admin/users', methods=['POST'])
@role_required('admin')
def create_user():
    return respond(AuthManager(get_api()).create_user(body()))


@ui.route('/admin/users/<target_id>', methods=['PUT'])
@role_required('admin')
def update_user(target_id):
    return respond(AuthManager(get_api()).update_user(target_id, body()))


@ui.route('/admin/users/<target_id>', methods=['DELETE'])
@role_required('admin')
def delete_user(target_id):
    manager = AuthManager(get_api())
    listed = manager.list_users()
    target = next((u for u in listed['users'] if str(user_id(u)) == target_id), None)
    if target is None:
        return envelope(False, None, 'User not found', 404)
    return respond(manager.delete_user(target))


@ui.route('/admin/reports/cleanup', methods=['POST'])
@role_required('admin')
def cleanup_reports():
    reports = ReportGenerator(get_api(), current_app.config['EXPORTS_FOLDER'])
    return respond(reports.delete_old_reports(current_app.config['EXPORTS_RETENTION_DAYS']))


# Notifications

@ui.route('/notifications')
@login_required
def notifications():
    system = NotificationSystem(get_api(), current_role())
    return respond(system.feed(request.args.get('status', 'pending'), request.args.get('type', 'all')), 502)


@ui.route('/notifications/badge')
@login_required
def notification_badge():
    return envelope(True, NotificationSystem(get_api(), current_role()).badge())


@ui.route('/notifications/<notification_id>', methods=['DELETE'])
@role_required('verifier')
def delete_notification(notification_id):
    return respond(NotificationSystem(get_api(), current_role()).delete(notification_id))


# Application factory

def default_api_factory(app, database_manager):
    def factory(owner, cookies):
        return ApiClient(
            app.config['API_BASE_URL'],
            database_manager,
            owner=owner,
            timeout=app.config['API_TIMEOUT'],
            cache_max_age=app.config['API_CACHE_MAX_AGE'],
            cache_max_bytes=app.config['API_CACHE_MAX_BYTES'],
            cookies=cookies
        )
    return factory


def create_app(config_name=None, api_factory=None):
    """
    Build the dashboard application.

    Args:
        config_name (str): development, testing or production (FLASK_ENV when None)
        api_factory: Callable (owner, cookies) -> API client, for tests
    """
    app = Flask(__name__)
    init_config(app, config_name)

    db_manager = DatabaseManager(app.config['DATABASE_PATH'])
    app.extensions['gfi_db'] = db_manager
    app.extensions['gfi_api_factory'] = api_factory or default_api_factory(app, db_manager)

    app.register_blueprint(ui)

    @app.route('/health')
    def health():
        """Service health including the API and local store"""
        status = {'database': 'ok', 'api': 'ok'}
        try:
            db_manager.execute_query("SELECT 1", fetch_all=False)
        except Exception as e:
            logger.error(f"Health check database error: {str(e)}")
            status['database'] = 'error'

        api = app.extensions['gfi_api_factory']('health', None)
        try:
            api.health()
        except ApiError as e:
            logger.warning(f"Health check API error: {str(e)}")
            status['api'] = 'unreachable'

        healthy = status['database'] == 'ok'
        return envelope(healthy, status, 'ok' if healthy else 'degraded', 200 if healthy else 503)

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status == 401:
            session.clear()
            return envelope(False, None, error.message, 401)
        logger.error(f"API error on {request.path}: {str(error)}")
        return envelope(False, None, error.message, 404 if error.is_not_found else 502)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return envelope(False, None, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.error(f"Unhandled error on {request.path}: {str(error)}")
        return envelope(False, None, 'An unexpected error occurred', 500)

    logger.info(f"GFI Tracker dashboard ready (API: {app.config['API_BASE_URL']})")
    return app


if __name__ == '__main__':
    application = create_app()
    application.run(debug=application.config['DEBUG'], host='0.0.0.0', port=int(os.environ.get('PORT', 8000)))
