"""
Tests: time-table spreadsheet import

Test coverage:
1. Cell helpers (time ranges, dates, breaks, names)
2. Parsing Excel and CSV schedules
3. Format and reference validation
4. Applying entries and drafts
5. Template and history workbooks
"""

import io
import unittest
from datetime import datetime
from unittest.mock import MagicMock, patch

import pandas as pd
import xlrd

from gfi_tracker.modules.api_client import ApiError
from gfi_tracker.modules.database_manager import DatabaseManager
from gfi_tracker.modules.timetable_import import (
    TimeTableImporter, ValidationError, parse_time_range, parse_slot_string,
    parse_date_cell, parse_break, missing_columns, names_match, REQUIRED_COLUMNS
)


TEACHERS = {'success': True, 'data': [
    {'teacherName': 'CMA BIJU T J', 'teacherEmail': 'biju@example.com'},
    {'teacherName': 'Asha Menon', 'teacherEmail': 'asha@example.com'},
]}
SUBJECTS = {'success': True, 'data': [{'name': 'FM'}, {'name': 'Costing'}]}
BATCHES = {'success': True, 'data': [{'name': 'CMA INTER JUNE 2026'}]}


def entry(**overrides):
    base = {
        'teacherName': 'Asha Menon',
        'teacherEmail': 'asha@example.com',
        'date': '2026-01-27',
        'slotIds': ['9-10', '10-11'],
        'breakMinutes': None,
        'day': 'TUESDAY',
        'timeDisplay': '9-11',
        'batch': 'CMA INTER JUNE 2026',
        'subject': 'FM'
    }
    base.update(overrides)
    return base


def mock_api():
    api = MagicMock()
    api.get_available_teachers.return_value = TEACHERS
    api.get_verifier_subjects.return_value = SUBJECTS
    api.get_batches.return_value = BATCHES
    return api


class TestCellHelpers(unittest.TestCase):

    def test_parse_time_range(self):
        self.assertEqual(parse_time_range('9.30 - 4.30'),
                         ['9-10', '10-11', '11-12', '12-13', '13-14', '14-15', '15-16', '16-17'])
        self.assertEqual(parse_time_range('9:00-12:00'), ['9-10', '10-11', '11-12'])
        self.assertEqual(parse_time_range('10 - 1'), ['10-11', '11-12', '12-13'])
        self.assertEqual(parse_time_range('13-15'), ['13-14', '14-15'])
        self.assertEqual(parse_time_range('WEEK OFF'), [])
        self.assertEqual(parse_time_range(None), [])

    def test_parse_slot_string(self):
        self.assertEqual(parse_slot_string('9-10, 10-11; 20-21'), ['9-10', '10-11'])

    def test_parse_date_cell(self):
        self.assertEqual(parse_date_cell('27/1/2026'), '2026-01-27')
        self.assertEqual(parse_date_cell('27-01-26'), '2026-01-27')
        self.assertEqual(parse_date_cell(46049), '2026-01-27')
        self.assertEqual(parse_date_cell(datetime(2026, 1, 27, 9, 0)), '2026-01-27')
        self.assertEqual(parse_date_cell('2026-01-27T00:00:00Z'), '2026-01-27')
        self.assertEqual(parse_date_cell('31/2/2026'), '')
        self.assertEqual(parse_date_cell(None), '')

    def test_parse_break(self):
        self.assertEqual(parse_break('30'), 30)
        self.assertEqual(parse_break(90), 60)
        self.assertEqual(parse_break(22.4), 22)
        self.assertIsNone(parse_break(''))
        self.assertIsNone(parse_break('lunch'))

    def test_missing_columns(self):
        self.assertEqual(missing_columns(REQUIRED_COLUMNS), [])
        header = ['Date', 'Day', 'Batch', 'Subject', 'Faculty', 'Teacher Email', 'Time']
        self.assertEqual(missing_columns(header), [])
        self.assertEqual(missing_columns(['DATE', 'FACULTY']), ['DAY', 'BATCH', 'SUBJECT', 'EMAIL', 'TIME'])

    def test_names_match(self):
        self.assertTrue(names_match('BIJU', 'CMA BIJU T J'))
        self.assertTrue(names_match('asha menon', 'Asha Menon'))
        self.assertFalse(names_match('', 'Asha Menon'))
        self.assertFalse(names_match('Ravi', 'Asha Menon'))

    def test_validation_error_describe(self):
        error = ValidationError(3, 'DATE', 'Date is required')
        self.assertEqual(error.describe(), 'Row 3 (DATE): Date is required')
        self.assertEqual(error.to_dict(), {'rowIndex': 3, 'column': 'DATE', 'message': 'Date is required'})


class TestParsing(unittest.TestCase):

    def setUp(self):
        self.importer = TimeTableImporter(mock_api())

    def test_template_parses_teaching_days(self):
        filename, content = self.importer.build_template()
        self.assertEqual(filename, 'time-table-template.xlsx')

        result = self.importer.parse(io.BytesIO(content), filename)

        self.assertTrue(result['success'])
        entries = result['entries']
        self.assertEqual(len(entries), 5)
        self.assertEqual(entries[0]['date'], '2026-01-27')
        self.assertEqual(entries[0]['teacherName'], 'CMA BIJU T J')
        self.assertEqual(len(entries[0]['slotIds']), 8)
        self.assertEqual(entries[-1]['day'], 'SATURDAY')

    def test_csv_with_merged_cells_and_break(self):
        content = (
            "DATE,DAY,BATCH,SUBJECT,FACULTY,EMAIL,TIME,BREAK\n"
            "27/1/2026,TUESDAY,CMA INTER JUNE 2026,FM,Asha Menon,,9:00-12:00,30\n"
            ",,,,,,13-15,\n"
            "BREAK,,,,,,,\n"
        ).encode('utf-8')

        result = self.importer.parse(io.BytesIO(content), 'week.csv')

        self.assertTrue(result['success'])
        first, second = result['entries']
        self.assertEqual(first['breakMinutes'], 30)
        self.assertEqual(second['teacherName'], 'Asha Menon')
        self.assertEqual(second['date'], '2026-01-27')
        self.assertEqual(second['slotIds'], ['13-14', '14-15'])
        self.assertIsNone(second['breakMinutes'])

    def test_invalid_date_is_not_replaced_by_previous_row(self):
        rows = [
            REQUIRED_COLUMNS,
            ['27/1/2026', 'TUESDAY', 'CMA INTER JUNE 2026', 'FM', 'Asha Menon', '', '9-11'],
            ['31/2/2026', 'WEDNESDAY', 'CMA INTER JUNE 2026', 'FM', 'Asha Menon', '', '9-11'],
            [None, 'THURSDAY', 'CMA INTER JUNE 2026', 'FM', 'Asha Menon', '', '9-11'],
        ]

        entries = self.importer.parse_rows(rows)['entries']

        self.assertEqual([e['date'] for e in entries], ['2026-01-27', '31/2/2026', '31/2/2026'])
        described = [e.describe() for e in self.importer.validate_format(entries)]
        self.assertIn('Row 3 (DATE): Invalid date format', described)
        self.assertNotIn('Row 2 (DATE): Invalid date format', described)

    def test_missing_columns_reported(self):
        result = self.importer.parse_rows([['DATE', 'FACULTY'], ['27/1/2026', 'Asha']])
        self.assertFalse(result['success'])
        self.assertIn('Missing required columns: DAY, BATCH, SUBJECT, EMAIL, TIME', result['error'])

    def test_header_only(self):
        result = self.importer.parse_rows([REQUIRED_COLUMNS])
        self.assertEqual(result['error'], 'File must have a header row and at least one data row.')

    def test_no_teaching_rows(self):
        rows = [REQUIRED_COLUMNS, ['1/2/2026', 'SUNDAY', 'B', '', 'WEEK OFF', '', '']]
        result = self.importer.parse_rows(rows)
        self.assertFalse(result['success'])
        self.assertTrue(result['error'].startswith('No valid rows found.'))

    def test_unreadable_file(self):
        result = self.importer.parse(io.BytesIO(b'not a spreadsheet'), 'week.xlsx')
        self.assertFalse(result['success'])
        self.assertEqual(result['entries'], [])

    def test_xls_file(self):
        sheet = pd.DataFrame([
            REQUIRED_COLUMNS,
            ['27/1/2026', 'TUESDAY', 'CMA INTER JUNE 2026', 'FM', 'Asha Menon', 'asha@example.com', '9-11'],
        ])
        source = io.BytesIO(b'\xd0\xcf\x11\xe0')

        with patch('gfi_tracker.modules.timetable_import.pd.read_excel', return_value=sheet) as read_excel:
            result = self.importer.parse(source, 'week.xls')

        self.assertTrue(result['success'])
        self.assertEqual(result['entries'][0]['slotIds'], ['9-10', '10-11'])
        read_excel.assert_called_once_with(source, sheet_name=0, header=None, dtype=object)

    def test_corrupt_xls_file(self):
        with patch('gfi_tracker.modules.timetable_import.pd.read_excel',
                   side_effect=xlrd.XLRDError('Unsupported format, or corrupt file')):
            result = self.importer.parse(io.BytesIO(b'\xd0\xcf\x11\xe0'), 'week.xls')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Unsupported format, or corrupt file')


class TestValidation(unittest.TestCase):

    def setUp(self):
        self.api = mock_api()
        self.importer = TimeTableImporter(self.api)

    def test_format_errors(self):
        errors = self.importer.validate_format([
            entry(date='', subject='', slotIds=[]),
            entry(date='not a date', teacherName='', teacherEmail='')
        ])
        described = [e.describe() for e in errors]
        self.assertIn('Row 2 (DATE): Date is required', described)
        self.assertIn('Row 2 (SUBJECT): Subject is required', described)
        self.assertIn('Row 3 (DATE): Invalid date format', described)
        self.assertIn('Row 3 (FACULTY / EMAIL): Faculty name or Email is required', described)
        self.assertEqual(len([e for e in errors if e.column == 'TIME']), 1)

    def test_valid_entries_resolve_teacher_email(self):
        result = self.importer.validate([entry(teacherName='BIJU', teacherEmail='')])

        self.assertTrue(result['valid'])
        resolved = result['entries'][0]
        self.assertEqual(resolved['teacherEmail'], 'biju@example.com')
        self.assertEqual(resolved['resolvedTeacherName'], 'CMA BIJU T J')

    def test_unknown_email_falls_back_to_faculty_name(self):
        result = self.importer.validate([entry(teacherName='Asha Menon', teacherEmail='typo@example.com')])

        self.assertTrue(result['valid'])
        self.assertEqual(result['errors'], [])
        resolved = result['entries'][0]
        self.assertEqual(resolved['teacherEmail'], 'asha@example.com')
        self.assertEqual(resolved['resolvedTeacherName'], 'Asha Menon')

    def test_unknown_email_and_name(self):
        result = self.importer.validate([entry(teacherName='Nobody', teacherEmail='typo@example.com')])
        self.assertFalse(result['valid'])
        self.assertEqual(result['errors'][0]['column'], 'EMAIL')

    def test_unknown_subject_and_batch(self):
        result = self.importer.validate([entry(subject='Tax', batch='Nope')])
        columns = [e['column'] for e in result['errors']]
        self.assertEqual(columns, ['SUBJECT', 'BATCH'])

    def test_reference_load_failure(self):
        self.api.get_batches.side_effect = ApiError('down')

        result = self.importer.validate([entry()])

        self.assertFalse(result['valid'])
        self.assertEqual(result['errors'][-1]['rowIndex'], 0)
        self.assertIn('Could not load reference data: down', result['errors'][-1]['message'])


class TestApplyAndDrafts(unittest.TestCase):

    def setUp(self):
        self.api = mock_api()
        self.db = DatabaseManager(':memory:')
        self.importer = TimeTableImporter(self.api, self.db, 'v1')

    def tearDown(self):
        self.db.close_all_connections()

    def test_apply_sends_payload(self):
        self.api.apply_time_table_from_import.return_value = {
            'success': True, 'data': {'applied': 1, 'errors': []}
        }

        result = self.importer.apply([entry(breakMinutes=30)])

        self.assertEqual(result, {'applied': 1, 'errors': []})
        payload = self.api.apply_time_table_from_import.call_args[0][0]
        self.assertEqual(payload[0]['subjectName'], 'FM')
        self.assertEqual(payload[0]['breakMinutes'], 30)
        self.assertNotIn('subject', payload[0])

    def test_apply_blocked_by_validation_errors(self):
        result = self.importer.apply([entry()], [{'rowIndex': 2, 'column': 'BATCH', 'message': 'Batch is required'}])
        self.assertEqual(result['errors'], [{'entry': None, 'message': 'Row 2 (BATCH): Batch is required'}])
        self.api.apply_time_table_from_import.assert_not_called()

    def test_apply_unresolved_faculty(self):
        result = self.importer.apply([entry(teacherName='Ravi', teacherEmail='')])
        self.assertEqual(result['applied'], 0)
        self.assertIn('Teacher not found: "Ravi"', result['errors'][0]['message'])

    def test_apply_api_failure(self):
        self.api.apply_time_table_from_import.side_effect = ApiError('Server error')
        result = self.importer.apply([entry()])
        self.assertEqual(result, {'applied': 0, 'errors': [{'entry': None, 'message': 'Server error'}]})

    def test_apply_nothing(self):
        self.assertEqual(self.importer.apply([])['errors'][0]['message'], 'No entries to send')

    def test_upload_send_and_discard(self):
        content = (
            "DATE,DAY,BATCH,SUBJECT,FACULTY,EMAIL,TIME\n"
            "27/1/2026,TUESDAY,CMA INTER JUNE 2026,FM,Asha Menon,asha@example.com,9-11\n"
        ).encode('utf-8')
        self.api.apply_time_table_from_import.return_value = {'success': True, 'applied': 1, 'errors': []}

        uploaded = self.importer.upload(io.BytesIO(content), 'week.csv')

        self.assertTrue(uploaded['valid'])
        self.assertIsNotNone(uploaded['draftId'])

        result = self.importer.send_draft(uploaded['draftId'])
        self.assertEqual(result['applied'], 1)
        self.assertIsNone(self.db.get_import_draft(uploaded['draftId'], 'v1'))
        self.assertFalse(self.importer.discard_draft(uploaded['draftId']))

    def test_update_draft_revalidates(self):
        draft_id = self.db.save_import_draft('v1', 'week.xlsx', [entry(batch='Nope')])

        result = self.importer.update_draft(draft_id, [entry()])

        self.assertTrue(result['success'])
        self.assertTrue(result['valid'])
        self.assertFalse(self.importer.update_draft(9999, [entry()])['success'])

    def test_send_missing_draft(self):
        result = self.importer.send_draft(42)
        self.assertEqual(result['errors'][0]['message'], 'Import not found. Upload the file again.')


class TestHistory(unittest.TestCase):

    def setUp(self):
        self.api = mock_api()
        self.importer = TimeTableImporter(self.api)

    def test_history(self):
        self.api.get_time_table_history.return_value = {'success': True, 'data': [{'_id': 'h1'}]}
        self.assertEqual(self.importer.history(), {'success': True, 'history': [{'_id': 'h1'}]})

    def test_delete_history_failure(self):
        self.api.delete_time_table_history.side_effect = ApiError('nope')
        self.assertEqual(self.importer.delete_history('h1'),
                         {'success': False, 'error': 'Failed to delete history record'})

    def test_export_history(self):
        item = {
            'createdAt': '2026-01-27T10:00:00Z',
            'entries': [{'date': '2026-01-27', 'slotIds': ['9-10'], 'teacherName': 'Asha Menon',
                         'teacherEmail': 'asha@example.com', 'subjectName': 'FM'}]
        }

        filename, content = self.importer.export_history(item)

        self.assertEqual(filename, 'Sent_TimeTable_2026-01-27.xlsx')
        df = pd.read_excel(io.BytesIO(content), sheet_name='Sent Time Table')
        self.assertEqual(list(df.columns), ['DATE', 'DAY', 'BATCH', 'SUBJECT', 'FACULTY', 'SENT TO', 'EMAIL', 'TIME'])
        self.assertEqual(df.loc[0, 'DAY'], 'TUESDAY')
        self.assertEqual(df.loc[0, 'SUBJECT'], 'FM')
        self.assertEqual(df.loc[0, 'TIME'], '1 slots')

    def test_export_history_without_entries(self):
        self.assertIsNone(self.importer.export_history({'entries': []}))


if __name__ == '__main__':
    unittest.main()
