"""
Time Slot Module - GFI Tracker Dashboard Service

This module reconciles a teacher's hourly time-slot selection with what the
API has saved. Selecting a slot creates an approval request for a verifier;
deselecting a saved slot is applied immediately.

Features:
- Fixed 9:00-17:00 hourly slot table
- Baseline computation (saved slots minus rejected ones)
- Change set between baseline and the edited selection
- Sequential submission with per-slot failure reporting
- Slot toggle rules (same-day rejection lock, pending cancellation)
- Break timing validation and saving
- Pending -> approved/rejected transition notices
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, date as date_type, timedelta
from typing import Dict, List, Any, Optional, Tuple

from .api_client import ApiError


TIME_SLOTS = [
    {'id': '9-10', 'label': '9:00 - 10:00', 'value': 1},
    {'id': '10-11', 'label': '10:00 - 11:00', 'value': 1},
    {'id': '11-12', 'label': '11:00 - 12:00', 'value': 1},
    {'id': '12-13', 'label': '12:00 - 13:00', 'value': 1},
    {'id': '13-14', 'label': '13:00 - 14:00', 'value': 1},
    {'id': '14-15', 'label': '14:00 - 15:00', 'value': 1},
    {'id': '15-16', 'label': '15:00 - 16:00', 'value': 1},
    {'id': '16-17', 'label': '16:00 - 17:00', 'value': 1},
]

SLOT_IDS = [slot['id'] for slot in TIME_SLOTS]
SLOT_LABELS = {slot['id']: slot['label'] for slot in TIME_SLOTS}
SLOT_VALUES = {slot['id']: slot['value'] for slot in TIME_SLOTS}

BREAK_KEY = 'break-timing'
BREAK_SLIDER = {'min': 0, 'max': 120, 'step': 5}
BREAK_MAX_MINUTES = 300


@dataclass
class SlotChange:
    """One slot to submit: checked=True selects, checked=False deselects."""
    slot_id: str
    checked: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'slotId': self.slot_id, 'checked': self.checked}


@dataclass
class StatusNotice:
    """A status change the teacher has not seen yet."""
    slot_id: str
    type: str
    message: str


def slot_label(slot_id: str) -> str:
    return SLOT_LABELS.get(slot_id, slot_id)


def format_date(value) -> Optional[str]:
    """Normalise a date/datetime/ISO string to YYYY-MM-DD."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date_type):
        return value.isoformat()
    return str(value).split('T')[0]


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an API timestamp into a naive local datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def total_hours(slots: List[str], break_duration: Optional[int] = None) -> float:
    """Sum of slot values minus the break, never below zero."""
    hours = sum(SLOT_VALUES.get(slot_id, 0) for slot_id in slots)
    if break_duration:
        hours -= break_duration / 60
    return max(0, hours)


def validate_break(value) -> Tuple[bool, Optional[int], Optional[str]]:
    """
    Validate a break duration typed by the teacher.

    Returns:
        Tuple[bool, Optional[int], Optional[str]]: (valid, minutes or None, error)
    """
    if value is None or value == '':
        return True, None, None
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return False, None, 'Break duration must be a whole number of minutes'
    if minutes < 0 or minutes > BREAK_MAX_MINUTES:
        return False, None, f'Break duration must be between 0 and {BREAK_MAX_MINUTES} minutes'
    return True, minutes, None


class TimeSlotManager:
    """
    Time slot workflow for one signed-in teacher.
    """

    def __init__(self, api, database_manager=None, owner: Optional[str] = None):
        """
        Args:
            api: ApiClient instance
            database_manager: Local store for status snapshots (optional)
            owner (str): Signed-in user id used for snapshots
        """
        self.api = api
        self.db = database_manager
        self.owner = owner
        self.logger = logging.getLogger(__name__)

    def get_approval_status(self, date=None) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        """
        Fetch the approval status of every slot for a day.

        Returns:
            Tuple: (slot status map, break timing status or None)

        Raises:
            ApiError: When the API call fails
        """
        response = self.api.get_time_slot_approval_status(format_date(date))
        status_map = dict(response.get('data') or {}) if response.get('success') else {}
        break_status = status_map.pop(BREAK_KEY, None)
        return status_map, break_status

    def get_baseline(self, date=None) -> List[str]:
        """
        Slots the API currently holds as saved for the day.
        Rejected slots are left out; an unreachable dashboard yields an empty
        baseline so nothing is ever deselected by mistake.
        """
        try:
            response = self.api.get_teacher_dashboard(date=format_date(date))
        except ApiError as e:
            self.logger.error(f"Could not fetch current slots, using empty baseline: {str(e)}")
            return []

        data = response.get('data') or {}
        slots = (data.get('timeSlots') or {}).get('slots') or []
        checked = [slot['slotId'] for slot in slots if slot.get('checked') is True]

        try:
            status_map, _ = self.get_approval_status(date)
        except ApiError as e:
            self.logger.warning(f"Could not fetch approval status, using all checked slots: {str(e)}")
            return checked

        return [
            slot_id for slot_id in checked
            if (status_map.get(slot_id) or {}).get('status') != 'rejected'
        ]

    def compute_changes(self, baseline: List[str], selected: List[str]) -> List[SlotChange]:
        """
        Selections first (in selection order), then deselections of baseline slots.
        An empty baseline never produces deselections.
        """
        saved = set(baseline)
        chosen = set(selected)
        changes = []
        seen = set()

        for slot_id in selected:
            if slot_id not in saved and slot_id not in seen:
                changes.append(SlotChange(slot_id, True))
                seen.add(slot_id)

        if baseline:
            for slot_id in baseline:
                if slot_id not in chosen:
                    changes.append(SlotChange(slot_id, False))

        return changes

    def save_break(self, break_duration: Optional[int], initial_break: Optional[int],
                   date=None) -> Dict[str, Any]:
        """Save break timing when it differs from the value loaded for the day."""
        if break_duration == initial_break:
            return {'success': True, 'changed': False}

        try:
            response = self.api.update_break_timing(break_duration, format_date(date))
            self.logger.info(f"Break timing saved: {break_duration}")
            return {'success': True, 'changed': True, 'message': response.get('message', '')}
        except ApiError as e:
            self.logger.error(f"Error saving break timing: {str(e)}")
            return {
                'success': False,
                'changed': True,
                'error': f"Break timing could not be saved: {e.message or 'Unknown error'}"
            }

    def save_selection(self, selected: List[str], break_duration: Optional[int] = None,
                       initial_break: Optional[int] = None, date=None) -> Dict[str, Any]:
        """
        Persist an edited selection.

        Args:
            selected (List[str]): Slot ids the teacher ended up with
            break_duration (int): Break minutes chosen in the editor
            initial_break (int): Break minutes when editing started
            date: Day being edited (today when None)

        Returns:
            Dict[str, Any]: success, type (success/info/error), message, warnings and per-slot details
        """
        warnings = []
        invalid = [slot_id for slot_id in selected if slot_id not in SLOT_LABELS]
        if invalid:
            return {
                'success': False,
                'type': 'error',
                'message': f"Unknown time slot(s): {', '.join(invalid)}",
                'warnings': warnings
            }

        break_result = self.save_break(break_duration, initial_break, date)
        if not break_result['success']:
            warnings.append(break_result['error'])

        baseline = self.get_baseline(date)
        changes = self.compute_changes(baseline, selected)

        if not changes:
            return {
                'success': True,
                'type': 'info',
                'message': ('No changes detected. The selected time slots are already saved. '
                            'If you want to change them, select different slots and click Done again.'),
                'changes': [],
                'warnings': warnings
            }

        results = []
        for change in changes:
            try:
                response = self.api.update_time_slot(change.slot_id, change.checked, date=format_date(date))
                results.append({'change': change, 'success': True, 'response': response or {}})
            except ApiError as e:
                self.logger.error(f"Error updating slot {change.slot_id}: {str(e)}")
                results.append({'change': change, 'success': False, 'error': e.message})

        failed = [r for r in results if not r['success']]
        if failed:
            failed_ids = ', '.join(r['change'].slot_id for r in failed)
            return {
                'success': False,
                'type': 'error',
                'message': f"Failed to update {len(failed)} slot(s): {failed_ids}",
                'changes': [c.to_dict() for c in changes],
                'failed': [{'slotId': r['change'].slot_id, 'error': r['error']} for r in failed],
                'warnings': warnings
            }

        pending, immediate = [], []
        for r in results:
            message = r['response'].get('message') or ''
            is_immediate = ('deselected successfully' in message
                            or (r['response'].get('data') or {}).get('immediate') is True)
            if is_immediate:
                immediate.append(r['change'].slot_id)
            elif 'pending' in message or 'approval' in message:
                pending.append(r['change'].slot_id)

        selected_count = len([c for c in changes if c.checked])
        deselected_count = len(changes) - selected_count

        if pending:
            message = f"{len(changes)} time slot update request(s) submitted!"
            if selected_count and deselected_count:
                message += (f" ({selected_count} selected - pending approval, "
                            f"{deselected_count} deselected - saved immediately)")
            elif selected_count:
                message += f" ({selected_count} selected - waiting for verifier approval)"
            elif deselected_count:
                message += f" ({deselected_count} deselected - saved immediately)"
        elif deselected_count:
            message = f"{deselected_count} time slot(s) deselected and saved immediately!"
        else:
            message = 'Time slots saved successfully!'

        self.logger.info(f"Time slots saved: {len(changes)} change(s), {len(pending)} pending")
        return {
            'success': True,
            'type': 'success',
            'message': message,
            'changes': [c.to_dict() for c in changes],
            'pending': pending,
            'immediate': immediate,
            'warnings': warnings
        }

    def is_rejection_locked(self, slot_status: Optional[Dict[str, Any]],
                            now: Optional[datetime] = None) -> bool:
        """A slot rejected today stays locked until midnight."""
        if not slot_status or slot_status.get('status') != 'rejected':
            return False
        rejected_at = parse_timestamp(slot_status.get('rejectedAt'))
        if rejected_at is None:
            return False
        now = now or datetime.now()
        today = datetime(now.year, now.month, now.day)
        return today <= rejected_at < today + timedelta(days=1)

    def toggle_slot(self, slot_id: str, selection: List[str], approval_map: Dict[str, Any],
                    now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Toggle one slot inside the editor.

        Args:
            slot_id (str): Slot being clicked
            selection (List[str]): Current editor selection
            approval_map (Dict[str, Any]): Slot approval statuses for the day
            now (datetime): Clock override

        Returns:
            Dict[str, Any]: success, selection (new list), and notice/message
        """
        if slot_id not in SLOT_LABELS:
            return {'success': False, 'selection': list(selection), 'message': f'Unknown time slot: {slot_id}'}

        now = now or datetime.now()
        slot_status = approval_map.get(slot_id) or {}

        if self.is_rejection_locked(slot_status, now):
            tomorrow = datetime(now.year, now.month, now.day) + timedelta(days=1)
            seconds_left = (tomorrow - now).total_seconds()
            hours_left = int(seconds_left // 3600)
            minutes_left = int(seconds_left // 60) % 60
            reason = slot_status.get('rejectionReason') or 'Not provided'
            return {
                'success': False,
                'blocked': True,
                'selection': list(selection),
                'hours_left': hours_left,
                'minutes_left': minutes_left,
                'message': (f"This time slot was rejected today and cannot be selected until midnight.\n\n"
                            f"Reason: {reason}\n\nTime remaining: {hours_left}h {minutes_left}m")
            }

        notice = None
        if slot_status.get('status') == 'pending' and slot_status.get('approvalId'):
            try:
                self.api.cancel_approval_request(slot_status['approvalId'])
                notice = f"Pending request for {slot_label(slot_id)} canceled"
                self.logger.info(f"Pending request canceled for slot {slot_id}")
            except ApiError as e:
                self.logger.error(f"Error canceling request for slot {slot_id}: {str(e)}")
                return {
                    'success': False,
                    'selection': list(selection),
                    'message': e.message or 'Failed to cancel pending request. Please try again.'
                }

        requested_checked = (slot_status.get('requestData') or {}).get('checked') is True
        is_selected = (
            slot_id in selection
            or (slot_status.get('status') in ('approved', 'pending') and requested_checked)
        )

        if is_selected:
            new_selection = [s for s in selection if s != slot_id]
        else:
            new_selection = list(selection) + [slot_id]

        return {'success': True, 'selection': new_selection, 'selected': not is_selected, 'notice': notice}

    def edit_selection(self, selected: List[str], approval_map: Dict[str, Any]) -> List[str]:
        """
        Selection shown when the editor opens: saved slots that are approved
        or have no approval record, plus every slot approved for selection.
        """
        from_selected = [
            slot_id for slot_id in selected
            if not approval_map.get(slot_id) or approval_map[slot_id].get('status') == 'approved'
        ]
        from_status = [
            slot_id for slot_id, status in approval_map.items()
            if status and status.get('status') == 'approved'
            and (status.get('requestData') or {}).get('checked') is True
        ]

        combined = []
        for slot_id in from_selected + from_status:
            if slot_id not in combined:
                combined.append(slot_id)
        return combined

    def initial_break(self, break_status: Optional[Dict[str, Any]],
                      current_break: Optional[int]) -> Optional[int]:
        """Break shown in the editor: the approved request's value when present."""
        if break_status and break_status.get('status') == 'approved':
            requested = (break_status.get('requestData') or {}).get('breakDuration')
            if requested is not None:
                return requested
        return current_break

    def display_hours(self, slots: List[str], break_duration: Optional[int],
                      approved_hours: Optional[float] = None) -> float:
        """Hours to show: the API's approved total when it sent one."""
        if approved_hours is not None:
            return approved_hours
        return total_hours(slots, break_duration)

    def detect_transitions(self, date, approval_map: Dict[str, Any],
                           break_status: Optional[Dict[str, Any]] = None,
                           current_break: Optional[int] = None) -> List[StatusNotice]:
        """
        Compare the statuses with the snapshot taken on the previous poll and
        report every pending request that was approved or rejected since.
        """
        if self.db is None or self.owner is None:
            return []

        scope = f"time-slots:{format_date(date) or format_date(datetime.now())}"
        previous = self.db.get_status_snapshot(self.owner, scope)
        notices = []

        for slot_id, status in approval_map.items():
            new_status = (status or {}).get('status')
            if previous.get(slot_id) != 'pending':
                continue
            if new_status == 'approved':
                notices.append(StatusNotice(slot_id, 'success',
                                            f"Time slot {slot_label(slot_id)} has been approved!"))
            elif new_status == 'rejected':
                reason = status.get('rejectionReason') or ''
                notices.append(StatusNotice(slot_id, 'error',
                                            f"Time slot {slot_label(slot_id)} was rejected. {reason}"))

        if break_status and previous.get(BREAK_KEY) == 'pending':
            if break_status.get('status') == 'approved':
                minutes = (break_status.get('requestData') or {}).get('breakDuration') or current_break
                notices.append(StatusNotice(BREAK_KEY, 'success',
                                            f"Break timing ({minutes} min) has been approved!"))
            elif break_status.get('status') == 'rejected':
                reason = break_status.get('rejectionReason') or ''
                notices.append(StatusNotice(BREAK_KEY, 'error', f"Break timing was rejected. {reason}"))

        snapshot = {slot_id: status.get('status') for slot_id, status in approval_map.items()
                    if status and status.get('status')}
        if break_status and break_status.get('status'):
            snapshot[BREAK_KEY] = break_status['status']
        self.db.save_status_snapshot(self.owner, scope, snapshot)

        return notices

    def load_editor(self, selected: List[str], current_break: Optional[int], date=None) -> Dict[str, Any]:
        """State needed to open the slot editor for a day."""
        try:
            approval_map, break_status = self.get_approval_status(date)
        except ApiError as e:
            self.logger.warning(f"Error loading approval status: {str(e)}")
            approval_map, break_status = {}, None

        notices = self.detect_transitions(date, approval_map, break_status, current_break)
        editing = self.edit_selection(selected, approval_map)
        break_minutes = self.initial_break(break_status, current_break)

        slots = []
        now = datetime.now()
        for slot in TIME_SLOTS:
            status = approval_map.get(slot['id']) or {}
            slots.append({
                'id': slot['id'],
                'label': slot['label'],
                'value': slot['value'],
                'selected': slot['id'] in editing,
                'status': status.get('status'),
                'locked': self.is_rejection_locked(status, now),
                'rejectionReason': status.get('rejectionReason')
            })

        return {
            'slots': slots,
            'selection': editing,
            'breakDuration': break_minutes,
            'breakStatus': break_status,
            'breakSlider': BREAK_SLIDER,
            'totalHours': total_hours(editing, break_minutes),
            'notices': [asdict(n) for n in notices]
        }
