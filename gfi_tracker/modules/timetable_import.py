"""
Time Table Import Module - GFI Tracker Dashboard Service

This module turns a class schedule spreadsheet into time-table entries,
validates them against the teachers, subjects and batches known to the API,
and sends the approved entries to the teachers' calendars.

Features:
- Excel/CSV parsing with pandas
- Merged cell carry-over and non-teaching row skipping
- Time range to hourly slot conversion ("9.30 - 4.30")
- Row format validation and reference validation
- Teacher resolution by email or faculty name
- Drafts kept between upload and send
- Template and sent-history workbooks
"""

import io
import logging
import math
import re
import zipfile
from dataclasses import dataclass, asdict
from datetime import datetime, date as date_type, timedelta
from typing import Dict, List, Any, Optional, Tuple

import pandas as pd
import xlrd

from .api_client import ApiError
from .time_slots import SLOT_IDS


REQUIRED_COLUMNS = ['DATE', 'DAY', 'BATCH', 'SUBJECT', 'FACULTY', 'EMAIL', 'TIME']
EMAIL_HEADERS = ('email', 'teacher email')
SKIP_FACULTY = re.compile(r'CELEBRATION|WEEK OFF|OFF', re.IGNORECASE)
TIME_RANGE = re.compile(r'(\d{1,2})[.:]?\s*(\d{0,2})\s*[-–—]\s*(\d{1,2})[.:]?\s*(\d{0,2})', re.IGNORECASE)
DMY_DATE = re.compile(r'^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$')
STANDARD_BREAKS = (15, 30, 45, 60)

TEMPLATE_ROWS = [
    ['26/1/2026', 'MONDAY', 'CMA INTER JUNE 2026', '', 'CELEBRATION DAY', '', ''],
    ['27/1/2026', 'TUESDAY', 'CMA INTER JUNE 2026', 'FM', 'CMA BIJU T J', 'teacher@example.com', '9.30 - 4.30'],
    ['28/1/2026', 'WEDNESDAY', 'CMA INTER JUNE 2026', 'FM', 'CMA BIJU T J', 'teacher@example.com', '9.30 - 4.30'],
    ['29/1/2026', 'THURSDAY', 'CMA INTER JUNE 2026', 'FM', 'CMA BIJU T J', 'teacher@example.com', '9.30 - 4.30'],
    ['30/1/2026', 'FRIDAY', 'CMA INTER JUNE 2026', 'FM', 'CMA BIJU T J', 'teacher@example.com', '9.30 - 4.30'],
    ['31/1/2026', 'SATURDAY', 'CMA INTER JUNE 2026', 'FM', 'CMA BIJU T J', 'teacher@example.com', '9.30 - 4.30'],
    ['1/2/2026', 'SUNDAY', 'CMA INTER JUNE 2026', '', 'WEEK OFF', '', ''],
]


@dataclass
class ValidationError:
    """A problem found in one spreadsheet row (row 1 is the header)."""
    row_index: int
    column: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'rowIndex': self.row_index, 'column': self.column, 'message': self.message}

    def describe(self) -> str:
        return f"Row {self.row_index} ({self.column}): {self.message}"


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def cell_text(value) -> str:
    """Text of a cell the way it reads in the sheet."""
    if _is_blank(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value).strip()


def parse_time_range(value) -> List[str]:
    """
    Convert a time range such as "9.30 - 4.30" to hourly slot ids.
    An end hour before noon that is not after the start is read as PM;
    minutes past the end hour add that hour's slot.
    """
    if not isinstance(value, str) or not value.strip():
        return []
    match = TIME_RANGE.search(value.strip())
    if not match:
        return []

    start_hour = int(match.group(1))
    end_hour = int(match.group(3))
    end_minute = int(match.group(4) or '0')
    if end_hour < 12 and end_hour <= start_hour:
        end_hour += 12

    end_slot = end_hour + (1 if end_minute > 0 else 0)
    slots = []
    for hour in range(start_hour, end_slot):
        slot_id = f"{hour}-{hour + 1}"
        if slot_id in SLOT_IDS:
            slots.append(slot_id)
    return slots


def parse_slot_string(value) -> List[str]:
    """Explicit slot list such as "9-10, 10-11"; unknown ids are dropped."""
    if not isinstance(value, str) or not value:
        return []
    return [part.strip() for part in re.split(r'[,;\s]+', value) if part.strip() in SLOT_IDS]


def parse_date_cell(value) -> str:
    """
    Normalise a DATE cell to YYYY-MM-DD.
    Accepts Excel serial numbers, d/m/y or d-m-y text (two digit years are
    20xx), date objects and ISO strings.
    """
    if _is_blank(value):
        return ''
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date_type):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            converted = datetime(1970, 1, 1) + timedelta(days=float(value) - 25569)
        except OverflowError:
            return ''
        return converted.date().isoformat()

    text = str(value).strip()
    match = DMY_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        try:
            return date_type(year, month, day).isoformat()
        except ValueError:
            return ''
    return text.split('T')[0]


def parse_break(value) -> Optional[int]:
    """Standard breaks are kept; anything else is rounded into 0-60 minutes."""
    if _is_blank(value) or value == '':
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(minutes):
        return None
    if minutes in STANDARD_BREAKS:
        return int(minutes)
    return int(min(60, max(0, round(minutes))))


def is_valid_date(value: str) -> bool:
    if not value:
        return False
    return not pd.isna(pd.to_datetime(value, errors='coerce'))


def missing_columns(header_row: List[Any]) -> List[str]:
    normalized = [cell_text(h).upper() for h in header_row]
    if 'TEACHER EMAIL' in normalized:
        normalized.append('EMAIL')
    return [column for column in REQUIRED_COLUMNS if column not in normalized]


def names_match(sheet_name: str, teacher_name: str) -> bool:
    """Equal or one contained in the other, ignoring case; blanks never match."""
    left = (sheet_name or '').strip().lower()
    right = (teacher_name or '').strip().lower()
    if not left or not right:
        return False
    return left == right or left in right or right in left


class TimeTableImporter:
    """
    Spreadsheet time-table import for verifiers.
    """

    def __init__(self, api, database_manager=None, owner: Optional[str] = None):
        """
        Args:
            api: ApiClient instance
            database_manager: Local store for drafts (optional)
            owner (str): Signed-in verifier id
        """
        self.api = api
        self.db = database_manager
        self.owner = owner
        self.logger = logging.getLogger(__name__)

    # Parsing

    def read_rows(self, source, filename: str = '') -> List[List[Any]]:
        """
        Read the first sheet as a list of raw rows (header included).

        Args:
            source: Path or binary file object
            filename (str): Used to pick the reader (.csv vs Excel)
        """
        name = (filename or (source if isinstance(source, str) else '')).lower()
        if name.endswith('.csv'):
            df = pd.read_csv(source, header=None, dtype=str, keep_default_na=False)
        else:
            # pandas picks xlrd for .xls content and openpyxl for .xlsx
            df = pd.read_excel(source, sheet_name=0, header=None, dtype=object)
        return [
            [None if _is_blank(cell) else cell for cell in row]
            for row in df.itertuples(index=False, name=None)
        ]

    def parse(self, source, filename: str = '') -> Dict[str, Any]:
        """
        Parse an uploaded schedule.

        Returns:
            Dict[str, Any]: success, entries and error message
        """
        try:
            rows = self.read_rows(source, filename)
        except (ValueError, OSError, zipfile.BadZipFile, xlrd.XLRDError) as e:
            self.logger.error(f"Could not read time table file {filename}: {str(e)}")
            return {'success': False, 'entries': [], 'error': str(e) or 'Invalid Excel file.'}
        return self.parse_rows(rows)

    def parse_rows(self, rows: List[List[Any]]) -> Dict[str, Any]:
        if len(rows) < 2:
            return {'success': False, 'entries': [],
                    'error': 'File must have a header row and at least one data row.'}

        header_row = rows[0]
        missing = missing_columns(header_row)
        if missing:
            return {
                'success': False,
                'entries': [],
                'error': (f"Missing required columns: {', '.join(missing)}. "
                          f"File must have all: {', '.join(REQUIRED_COLUMNS)}.")
            }

        header = [cell_text(h).lower() for h in header_row]

        def index_of(*names):
            for i, h in enumerate(header):
                if h in names:
                    return i
            return -1

        columns = {
            'date': index_of('date'),
            'day': index_of('day'),
            'batch': index_of('batch'),
            'subject': index_of('subject'),
            'time': index_of('time'),
            'faculty': index_of('faculty'),
            'email': index_of(*EMAIL_HEADERS),
            'break': index_of('break')
        }

        def cell(row, key):
            index = columns[key]
            if index < 0 or index >= len(row):
                return None
            return row[index]

        carried = {'date': '', 'day': '', 'batch': '', 'subject': '', 'faculty': '', 'email': ''}
        entries = []

        for row in rows[1:]:
            if not isinstance(row, (list, tuple)):
                continue
            first_cell = cell_text(row[0] if row else None).upper()
            if first_cell == 'BREAK':
                continue

            # An unreadable date keeps its text so validation reports it
            raw_date = cell(row, 'date')
            values = {
                'date': parse_date_cell(raw_date) or cell_text(raw_date),
                'day': cell_text(cell(row, 'day')),
                'batch': cell_text(cell(row, 'batch')),
                'subject': cell_text(cell(row, 'subject')),
                'faculty': cell_text(cell(row, 'faculty')),
                'email': cell_text(cell(row, 'email'))
            }
            # Merged cells arrive empty below their first row
            for key, value in values.items():
                if value:
                    carried[key] = value
                else:
                    values[key] = carried[key]

            time_text = cell_text(cell(row, 'time'))

            if not values['date'] or not values['faculty']:
                continue
            if not time_text or SKIP_FACULTY.search(values['faculty']):
                continue

            slot_ids = parse_time_range(time_text) or parse_slot_string(time_text)
            if not slot_ids:
                continue

            entries.append({
                'teacherName': values['faculty'],
                'teacherEmail': values['email'],
                'date': values['date'],
                'slotIds': slot_ids,
                'breakMinutes': parse_break(cell(row, 'break')),
                'day': values['day'] or None,
                'timeDisplay': time_text or None,
                'batch': values['batch'] or None,
                'subject': values['subject'] or None
            })

        if not entries:
            return {
                'success': False,
                'entries': [],
                'error': ('No valid rows found. Use DATE, DAY, BATCH, SUBJECT, FACULTY, EMAIL, TIME '
                          '(e.g. 9.30 - 4.30). Skip WEEK OFF / CELEBRATION rows.')
            }

        self.logger.info(f"Parsed {len(entries)} time table entries")
        return {'success': True, 'entries': entries}

    # Validation

    def validate_row(self, entry: Dict[str, Any], index: int,
                     require_email: bool = False) -> List[ValidationError]:
        errors = []
        row = index + 2

        entry_date = (entry.get('date') or '').strip()
        if not entry_date:
            errors.append(ValidationError(row, 'DATE', 'Date is required'))
        elif not is_valid_date(entry_date):
            errors.append(ValidationError(row, 'DATE', 'Invalid date format'))

        if not (entry.get('teacherName') or '').strip() and not (entry.get('teacherEmail') or '').strip():
            errors.append(ValidationError(row, 'FACULTY / EMAIL', 'Faculty name or Email is required'))

        if require_email and not (entry.get('teacherEmail') or '').strip():
            errors.append(ValidationError(
                row, 'EMAIL',
                'Teacher email is required (fill EMAIL or ensure faculty name matches a teacher)'
            ))

        if not (entry.get('subject') or '').strip():
            errors.append(ValidationError(row, 'SUBJECT', 'Subject is required'))

        if not entry.get('slotIds'):
            errors.append(ValidationError(
                row, 'TIME',
                'Time range is required and must parse to at least one slot (e.g. 9.30 - 4.30)'
            ))

        return errors

    def validate_format(self, entries: List[Dict[str, Any]], require_email: bool = False) -> List[ValidationError]:
        errors = []
        for index, entry in enumerate(entries):
            errors.extend(self.validate_row(entry, index, require_email))
        return errors

    def load_reference(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Teachers, subjects and batches known to the API.

        Raises:
            ApiError: When any list cannot be loaded
        """
        def unwrap(response):
            if isinstance(response, dict) and 'data' in response:
                return response.get('data') or []
            return response or []

        return {
            'teachers': unwrap(self.api.get_available_teachers(None)),
            'subjects': unwrap(self.api.get_verifier_subjects(None)),
            'batches': unwrap(self.api.get_batches())
        }

    def find_teacher(self, entry: Dict[str, Any], teachers: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Match on email first, then on the faculty name."""
        email = (entry.get('teacherEmail') or '').strip().lower()
        if email:
            for teacher in teachers:
                if (teacher.get('teacherEmail') or '').strip().lower() == email:
                    return teacher
        for teacher in teachers:
            if names_match(entry.get('teacherName'), teacher.get('teacherName')):
                return teacher
        return None

    def resolve_teachers(self, entries: List[Dict[str, Any]],
                         teachers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Fill in teacher details: a row is matched on its email first, then on
        the faculty name.
        """
        resolved = []
        for entry in entries:
            entry = dict(entry)
            email = (entry.get('teacherEmail') or '').strip().lower()
            match = self.find_teacher(entry, teachers)
            if match:
                if email and (match.get('teacherEmail') or '').strip().lower() == email:
                    entry['teacherName'] = match.get('teacherName') or entry.get('teacherName')
                else:
                    entry['teacherEmail'] = match.get('teacherEmail') or entry.get('teacherEmail')
                entry['resolvedTeacherName'] = match.get('teacherName')
                entry['resolvedTeacherEmail'] = match.get('teacherEmail')
            resolved.append(entry)
        return resolved

    def validate_references(self, entries: List[Dict[str, Any]],
                            reference: Dict[str, List[Dict[str, Any]]]) -> List[ValidationError]:
        errors = []
        subject_names = {(s.get('name') or '').strip().lower() for s in reference.get('subjects') or []}
        batch_names = {(b.get('name') or '').strip().lower() for b in reference.get('batches') or []}

        for index, entry in enumerate(entries):
            row = index + 2
            email = (entry.get('teacherEmail') or '').strip()
            faculty = (entry.get('teacherName') or '').strip()

            if self.find_teacher(entry, reference.get('teachers') or []) is None:
                if email:
                    errors.append(ValidationError(
                        row, 'EMAIL',
                        f'Teacher not found with email "{email}". '
                        f'Add them in the app or use a valid teacher email.'
                    ))
                elif faculty:
                    errors.append(ValidationError(
                        row, 'FACULTY',
                        f'Teacher not found: "{faculty}". '
                        f'Add them in the app or fill EMAIL with their login email.'
                    ))

            subject = (entry.get('subject') or '').strip()
            if subject and subject.lower() not in subject_names:
                errors.append(ValidationError(
                    row, 'SUBJECT',
                    f'Subject "{subject}" does not exist. Create it in the app or use a valid subject name.'
                ))

            batch = (entry.get('batch') or '').strip()
            if not batch:
                errors.append(ValidationError(row, 'BATCH', 'Batch is required and must exist in the app.'))
            elif batch.lower() not in batch_names:
                errors.append(ValidationError(
                    row, 'BATCH',
                    f'Batch "{batch}" does not exist. Create it in the app or use a valid batch name.'
                ))

        return errors

    def validate(self, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Full validation: row format, then teachers/subjects/batches.

        Returns:
            Dict[str, Any]: valid, entries (teacher details resolved), errors
        """
        if not entries:
            return {'valid': True, 'entries': [], 'errors': []}

        errors = self.validate_format(entries)
        try:
            reference = self.load_reference()
        except ApiError as e:
            self.logger.error(f"Could not load reference data: {str(e)}")
            errors.append(ValidationError(
                0, 'Validation',
                f"Could not load reference data: {e.message or 'Network error'}. Fix and try again."
            ))
            return {'valid': False, 'entries': entries, 'errors': [x.to_dict() for x in errors]}

        resolved = self.resolve_teachers(entries, reference['teachers'])
        errors.extend(self.validate_references(resolved, reference))
        return {
            'valid': not errors,
            'entries': resolved,
            'errors': [x.to_dict() for x in errors]
        }

    # Sending

    def build_payload(self, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        payload = []
        for entry in entries:
            item = {
                'teacherEmail': entry.get('teacherEmail'),
                'teacherName': entry.get('teacherName'),
                'date': entry.get('date'),
                'day': entry.get('day'),
                'slotIds': entry.get('slotIds'),
                'breakMinutes': entry.get('breakMinutes'),
                'subjectName': entry.get('subject'),
                'batch': entry.get('batch'),
                'timeDisplay': entry.get('timeDisplay')
            }
            payload.append({k: v for k, v in item.items() if v is not None})
        return payload

    def apply(self, entries: List[Dict[str, Any]],
              validation_errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Send validated entries to the teachers' calendars.

        Args:
            entries (List[Dict[str, Any]]): Parsed (and resolved) entries
            validation_errors (List[Dict[str, Any]]): Outstanding validation errors

        Returns:
            Dict[str, Any]: applied count and errors [{entry, message}]
        """
        if not entries:
            return {'applied': 0, 'errors': [{'entry': None, 'message': 'No entries to send'}]}

        if validation_errors:
            return {
                'applied': 0,
                'errors': [
                    {'entry': None, 'message': ValidationError(e['rowIndex'], e['column'], e['message']).describe()}
                    for e in validation_errors
                ]
            }

        try:
            resolved = entries
            if any(e.get('teacherName') and not e.get('teacherEmail') for e in entries):
                teachers = self.load_reference_teachers()
                errors = []
                resolved = []
                for entry in entries:
                    if entry.get('teacherEmail'):
                        resolved.append(entry)
                        continue
                    match = self.find_teacher(entry, teachers)
                    if match:
                        resolved.append(dict(entry, teacherEmail=match.get('teacherEmail')))
                    else:
                        name = (entry.get('teacherName') or '').strip()
                        errors.append({
                            'entry': entry,
                            'message': (f'Teacher not found: "{name}". '
                                        f'Add them in the app or use Teacher Email in the sheet.')
                        })
                if errors:
                    return {'applied': 0, 'errors': errors}

            send_errors = self.validate_format(resolved, require_email=True)
            if send_errors:
                return {'applied': 0, 'errors': [{'entry': None, 'message': e.describe()} for e in send_errors]}

            response = self.api.apply_time_table_from_import(self.build_payload(resolved))
        except ApiError as e:
            self.logger.error(f"Time table apply failed: {str(e)}")
            return {'applied': 0, 'errors': [{'entry': None, 'message': e.message or 'Request failed'}]}

        if not response or not response.get('success'):
            return {'applied': 0, 'errors': [{'entry': None, 'message': (response or {}).get('message') or 'Failed to apply'}]}

        data = response.get('data') if isinstance(response.get('data'), dict) else {}
        applied = response.get('applied', data.get('applied', 0)) or 0
        errors = response.get('errors', data.get('errors')) or []
        self.logger.info(f"Time table applied: {applied} entries, {len(errors)} errors")
        return {'applied': applied, 'errors': errors}

    def load_reference_teachers(self) -> List[Dict[str, Any]]:
        response = self.api.get_available_teachers(None)
        if isinstance(response, dict) and 'data' in response:
            return response.get('data') or []
        return response or []

    # Drafts

    def upload(self, source, filename: str) -> Dict[str, Any]:
        """
        Parse and validate a file, keeping the result as a draft.

        Returns:
            Dict[str, Any]: success, draftId, entries, errors (or error)
        """
        parsed = self.parse(source, filename)
        if not parsed['success']:
            return parsed

        validation = self.validate(parsed['entries'])
        draft_id = None
        if self.db is not None and self.owner is not None:
            draft_id = self.db.save_import_draft(self.owner, filename, validation['entries'])

        return {
            'success': True,
            'draftId': draft_id,
            'entries': validation['entries'],
            'errors': validation['errors'],
            'valid': validation['valid']
        }

    def send_draft(self, draft_id: int) -> Dict[str, Any]:
        """Re-validate a stored draft and send it; the draft is dropped once anything is applied."""
        if self.db is None:
            return {'applied': 0, 'errors': [{'entry': None, 'message': 'Drafts are not available'}]}

        draft = self.db.get_import_draft(draft_id, self.owner)
        if draft is None:
            return {'applied': 0, 'errors': [{'entry': None, 'message': 'Import not found. Upload the file again.'}]}

        validation = self.validate(draft['entries'])
        result = self.apply(validation['entries'], validation['errors'])
        if result['applied'] > 0:
            self.db.delete_import_draft(draft_id, self.owner)
        return result

    def update_draft(self, draft_id: int, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Replace the entries of a draft after the verifier corrected them, then re-validate."""
        if self.db is None or not self.db.update_import_draft(draft_id, self.owner, entries):
            return {'success': False, 'error': 'Import not found. Upload the file again.'}
        validation = self.validate(entries)
        return {
            'success': True,
            'draftId': draft_id,
            'entries': validation['entries'],
            'errors': validation['errors'],
            'valid': validation['valid']
        }

    def discard_draft(self, draft_id: int) -> bool:
        if self.db is None:
            return False
        return self.db.delete_import_draft(draft_id, self.owner)

    # History and workbooks

    def history(self) -> Dict[str, Any]:
        try:
            response = self.api.get_time_table_history()
        except ApiError as e:
            self.logger.error(f"Error fetching history: {str(e)}")
            return {'success': False, 'history': [], 'error': e.message}
        return {'success': bool(response.get('success')), 'history': response.get('data') or []}

    def delete_history(self, history_id: str) -> Dict[str, Any]:
        try:
            self.api.delete_time_table_history(history_id)
        except ApiError as e:
            self.logger.error(f"Error deleting history {history_id}: {str(e)}")
            return {'success': False, 'error': 'Failed to delete history record'}
        return {'success': True}

    def _workbook(self, rows: List[List[Any]], sheet_name: str) -> bytes:
        buffer = io.BytesIO()
        df = pd.DataFrame(rows, columns=REQUIRED_COLUMNS)
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
        return buffer.getvalue()

    def build_template(self) -> Tuple[str, bytes]:
        return 'time-table-template.xlsx', self._workbook(TEMPLATE_ROWS, 'Time Table')

    def export_history(self, item: Dict[str, Any]) -> Optional[Tuple[str, bytes]]:
        """
        Workbook of the entries sent in one upload.

        Returns:
            Optional[Tuple[str, bytes]]: (filename, xlsx bytes), None when the upload has no entries
        """
        entries = item.get('entries') or []
        if not entries:
            return None

        records = []
        for entry in entries:
            day = entry.get('day') or ''
            if not day and entry.get('date'):
                parsed = pd.to_datetime(entry['date'], errors='coerce')
                if not pd.isna(parsed):
                    day = parsed.strftime('%A').upper()

            slot_ids = entry.get('slotIds') or []
            records.append({
                'DATE': entry.get('date'),
                'DAY': day,
                'BATCH': entry.get('batch') or '',
                'SUBJECT': entry.get('subject') or entry.get('subjectName') or '',
                'FACULTY': (entry.get('teacherName') or entry.get('resolvedTeacherName')
                            or entry.get('teacherEmail') or ''),
                'SENT TO': entry.get('resolvedTeacherName') or entry.get('teacherName') or '',
                'EMAIL': entry.get('teacherEmail') or '',
                'TIME': entry.get('timeDisplay') or (f"{len(slot_ids)} slots" if slot_ids else '')
            })

        columns = ['DATE', 'DAY', 'BATCH', 'SUBJECT', 'FACULTY', 'SENT TO', 'EMAIL', 'TIME']
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            pd.DataFrame(records, columns=columns).to_excel(writer, sheet_name='Sent Time Table', index=False)

        created = pd.to_datetime(item.get('createdAt'), errors='coerce')
        date_text = created.strftime('%Y-%m-%d') if not pd.isna(created) else datetime.now().strftime('%Y-%m-%d')
        return f"Sent_TimeTable_{date_text}.xlsx", buffer.getvalue()
