"""
Appointment creation wizard.

Linear flow datetime -> service -> staff -> space -> client -> notes -> review
accumulating a draft appointment. Submitting sends the payload one way and
resets the wizard immediately; persistence is the receiver's job.
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from agenda.domain.records import ServiceRecord
from agenda.exceptions import ValidationError

logger = logging.getLogger(__name__)

STEP_DATETIME = 'datetime'
STEP_SERVICE = 'service'
STEP_STAFF = 'staff'
STEP_SPACE = 'space'
STEP_CLIENT = 'client'
STEP_NOTES = 'notes'
STEP_REVIEW = 'review'

STEPS = (STEP_DATETIME, STEP_SERVICE, STEP_STAFF, STEP_SPACE, STEP_CLIENT, STEP_NOTES, STEP_REVIEW)

# Wizard phases
EDITING = 'editing'
SUBMITTING = 'submitting'
SUBMITTED = 'submitted'
CANCELLED = 'cancelled'

DEFAULT_MAX_PREFERRED_STAFF = 3

TIME_12H_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$')
TIME_24H_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')


def time_slots(first: str = '07:00', last: str = '19:00', step_minutes: int = 15) -> Tuple[str, ...]:
    """
    Bookable times of day, both ends included.

    Examples:
        time_slots()[:2] -> ('07:00', '07:15')
        time_slots()[-1] -> '19:00'
    """
    start = datetime.strptime(first, '%H:%M')
    end = datetime.strptime(last, '%H:%M')
    slots = []
    current = start
    while current <= end:
        slots.append(current.strftime('%H:%M'))
        current += timedelta(minutes=step_minutes)
    return tuple(slots)


def normalize_time(value: str) -> str:
    """
    Convert "9:00", "09:00" or "9:00 AM" to "HH:MM".

    Raises:
        ValidationError: if the value is not a time of day
    """
    text = str(value or '').strip()
    match = TIME_12H_PATTERN.match(text)
    if match:
        hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hours <= 12:
            raise ValidationError(f"Invalid time: '{text}'")
        if hours == 12:
            hours = 0
        if meridiem == 'PM':
            hours += 12
    else:
        match = TIME_24H_PATTERN.match(text)
        if not match:
            raise ValidationError(f"Invalid time: '{text}'")
        hours, minutes = int(match.group(1)), int(match.group(2))

    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time: '{text}'")
    return f"{hours:02d}:{minutes:02d}"


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"Invalid date: '{value}'. Use YYYY-MM-DD")


class AppointmentWizard:
    """
    Draft appointment plus the step it is on.

    Args:
        company_id: Company the appointment is booked at
        is_owner: Owners assign one staff member; everyone else picks up to
            three preferred staff members
        service_lookup: Callable returning the ServiceRecord for an id
            (raises NotFoundError for unknown ids)
        dispatch: One-way sink for the submitted payload
    """

    def __init__(self, company_id: int, is_owner: bool,
                 service_lookup: Callable[[Any], ServiceRecord],
                 dispatch: Optional[Callable[[Dict[str, Any]], None]] = None,
                 slots: Optional[Tuple[str, ...]] = None,
                 max_preferred_staff: int = DEFAULT_MAX_PREFERRED_STAFF):
        self.company_id = company_id
        self.is_owner = bool(is_owner)
        self.service_lookup = service_lookup
        self.dispatch = dispatch
        self.slots = tuple(slots) if slots else time_slots()
        self.max_preferred_staff = max_preferred_staff
        self.phase = EDITING
        self._clear()

    def _clear(self) -> None:
        self.step_index = 0
        self.date: Optional[date] = None
        self.time: Optional[str] = None
        self.service_id = None
        self.staff_id = None
        self.preferred_staff_ids: List[Any] = []
        self.space_id = None
        self.client_id = None
        self.notes = ''

    @property
    def step(self) -> str:
        return STEPS[self.step_index]

    @property
    def is_open(self) -> bool:
        return self.phase == EDITING

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise ValidationError(f"Wizard is {self.phase}; open a new one")

    # Setters

    def set_date(self, value, today: Optional[date] = None) -> None:
        self._ensure_open()
        chosen = parse_date(value)
        today = today or date.today()
        if chosen < today:
            raise ValidationError('Past dates cannot be booked')
        self.date = chosen

    def set_time(self, value: str) -> None:
        self._ensure_open()
        normalized = normalize_time(value)
        if normalized not in self.slots:
            raise ValidationError(f"{normalized} is not an available time slot")
        self.time = normalized

    def select_service(self, service_id) -> ServiceRecord:
        self._ensure_open()
        service = self.service_lookup(service_id)
        self.service_id = service.id
        return service

    def select_staff(self, staff_id) -> None:
        self._ensure_open()
        if not self.is_owner:
            raise ValidationError('Only company owners assign staff directly; choose preferred staff instead')
        self.staff_id = staff_id

    def toggle_preferred_staff(self, staff_id) -> List[Any]:
        """Add or remove a preferred staff member (non-owners only)."""
        self._ensure_open()
        if self.is_owner:
            raise ValidationError('Company owners assign a single staff member')
        if staff_id in self.preferred_staff_ids:
            self.preferred_staff_ids.remove(staff_id)
        elif len(self.preferred_staff_ids) >= self.max_preferred_staff:
            raise ValidationError(f'You can select up to {self.max_preferred_staff} preferred staff members')
        else:
            self.preferred_staff_ids.append(staff_id)
        return list(self.preferred_staff_ids)

    def select_space(self, space_id) -> None:
        self._ensure_open()
        self.space_id = space_id or None

    def select_client(self, client_id) -> None:
        self._ensure_open()
        self.client_id = client_id

    def set_notes(self, notes: Optional[str]) -> None:
        self._ensure_open()
        self.notes = notes or ''

    # Navigation

    def _step_error(self, step: str) -> Optional[str]:
        """Message for an unmet step predicate, None when the step is valid."""
        if step == STEP_DATETIME:
            if not (self.date and self.time):
                return 'Please select date and time'
        elif step == STEP_SERVICE:
            if not self.service_id:
                return 'Please select a service'
        elif step == STEP_STAFF:
            if self.is_owner and not self.staff_id:
                return 'Please select a staff member'
            if not self.is_owner and not self.preferred_staff_ids:
                return 'Please select at least one preferred staff member'
        elif step == STEP_CLIENT:
            if not self.client_id:
                return 'Please select a client'
        elif step not in STEPS:
            return f"Unknown step: {step}"
        return None

    def is_step_valid(self, step=None) -> bool:
        if step is None:
            step = self.step
        elif isinstance(step, int):
            if not 0 <= step < len(STEPS):
                return False
            step = STEPS[step]
        return self._step_error(step) is None

    def can_advance(self) -> bool:
        return self.is_open and self.is_step_valid()

    def next(self) -> Optional[Dict[str, Any]]:
        """Advance one step; on the review step this submits and returns the payload."""
        self._ensure_open()
        error = self._step_error(self.step)
        if error:
            raise ValidationError(error)
        if self.step_index == len(STEPS) - 1:
            return self.submit()
        self.step_index += 1
        return None

    def previous(self) -> None:
        self._ensure_open()
        if self.step_index == 0:
            raise ValidationError('Already at the first step')
        self.step_index -= 1

    def reset(self) -> None:
        self._clear()
        self.phase = EDITING

    def cancel(self) -> None:
        self._clear()
        self.phase = CANCELLED

    # Submission

    def build_payload(self) -> Dict[str, Any]:
        for step in STEPS:
            error = self._step_error(step)
            if error:
                raise ValidationError(error)

        service = self.service_lookup(self.service_id)
        payload = {
            'companyId': self.company_id,
            'clientId': self.client_id,
            'serviceId': self.service_id,
            # Calendar date as picked, no timezone shift
            'date': self.date.isoformat(),
            'time': self.time,
            'duration': service.duration or 30,
            'status': 'Pending',
            'price': service.price,
            'paymentStatus': 'Pending',
        }

        if self.is_owner:
            payload['staffId'] = self.staff_id
        elif len(self.preferred_staff_ids) == 1:
            payload['staffId'] = self.preferred_staff_ids[0]
        else:
            payload['preferredStaffIds'] = list(self.preferred_staff_ids)

        if self.space_id:
            payload['spaceId'] = self.space_id

        notes = (self.notes or '').strip()
        if notes:
            payload['notes'] = notes
        return payload

    def submit(self) -> Dict[str, Any]:
        """Dispatch the draft and reset without waiting for it to be stored."""
        self._ensure_open()
        payload = self.build_payload()
        self.phase = SUBMITTING
        try:
            if self.dispatch is not None:
                self.dispatch(payload)
        except Exception:
            self.phase = EDITING
            raise
        logger.info(
            f"[APPOINTMENTS] Wizard submitted for company {self.company_id}: "
            f"service={payload['serviceId']} date={payload['date']} time={payload['time']}"
        )
        self._clear()
        self.phase = SUBMITTED
        return payload

    # Session storage

    def to_dict(self) -> Dict[str, Any]:
        return {
            'companyId': self.company_id,
            'isOwner': self.is_owner,
            'phase': self.phase,
            'step': self.step,
            'stepIndex': self.step_index,
            'date': self.date.isoformat() if self.date else None,
            'time': self.time,
            'serviceId': self.service_id,
            'staffId': self.staff_id,
            'preferredStaffIds': list(self.preferred_staff_ids),
            'spaceId': self.space_id,
            'clientId': self.client_id,
            'notes': self.notes,
            'canAdvance': self.can_advance(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], service_lookup, dispatch=None,
                  slots=None, max_preferred_staff: int = DEFAULT_MAX_PREFERRED_STAFF) -> 'AppointmentWizard':
        wizard = cls(
            company_id=data['companyId'],
            is_owner=data.get('isOwner', False),
            service_lookup=service_lookup,
            dispatch=dispatch,
            slots=slots,
            max_preferred_staff=max_preferred_staff,
        )
        wizard.phase = data.get('phase') or EDITING
        wizard.step_index = int(data.get('stepIndex') or 0)
        wizard.date = parse_date(data['date']) if data.get('date') else None
        wizard.time = data.get('time')
        wizard.service_id = data.get('serviceId')
        wizard.staff_id = data.get('staffId')
        wizard.preferred_staff_ids = list(data.get('preferredStaffIds') or [])
        wizard.space_id = data.get('spaceId')
        wizard.client_id = data.get('clientId')
        wizard.notes = data.get('notes') or ''
        return wizard
