"""
Data structures for the babylog infant-care tracking core.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Optional

METRICS = ('weight', 'length', 'head_circumference')
SEXES = ('male', 'female')

# Boolean event flags carried by every log entry
ENTRY_FLAGS = (
    'stool', 'urination', 'vomiting', 'breastfed',
    'vitamin_d', 'vitamin_c', 'probiotic', 'tummy_time',
    'sterilization', 'bathing', 'anti_gas_drops', 'iron_supplement',
)


@dataclass
class LogEntry:
    id: str
    baby_profile_id: str
    date_time: datetime
    stool: bool = False
    urination: bool = False
    vomiting: bool = False
    breastfed: bool = False
    vitamin_d: bool = False
    vitamin_c: bool = False
    probiotic: bool = False
    tummy_time: bool = False
    sterilization: bool = False
    bathing: bool = False
    anti_gas_drops: bool = False
    iron_supplement: bool = False
    breast_milk_ml: float = 0
    formula_ml: float = 0
    tummy_time_seconds: Optional[int] = None
    notes: str = ''

    def __post_init__(self):
        if not isinstance(self.date_time, datetime):
            raise ValueError(f"Entry {self.id}: date_time must be a datetime")
        if self.breast_milk_ml < 0 or self.formula_ml < 0:
            raise ValueError(f"Entry {self.id}: volumes must be non-negative")
        if self.tummy_time_seconds is not None and self.tummy_time_seconds < 0:
            raise ValueError(f"Entry {self.id}: tummy time cannot be negative")

    @property
    def total_ml(self) -> float:
        return self.breast_milk_ml + self.formula_ml

    def edited(self, **changes) -> 'LogEntry':
        """Return a copy with the given fields replaced; the id is preserved."""
        changes.pop('id', None)
        return replace(self, **changes)


@dataclass
class Measurement:
    id: str
    baby_profile_id: str
    measured_at: datetime
    weight_grams: float = 0
    height_cm: float = 0
    head_circumference_cm: float = 0
    notes: str = ''
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ('weight_grams', 'height_cm', 'head_circumference_cm'):
            if getattr(self, name) < 0:
                raise ValueError(f"Measurement {self.id}: {name} must be non-negative")

    def value_for(self, metric: str) -> Optional[float]:
        """Value in the reference table's unit, or None when not recorded (0)."""
        if metric == 'weight':
            return self.weight_grams / 1000.0 if self.weight_grams > 0 else None
        if metric == 'length':
            return self.height_cm if self.height_cm > 0 else None
        if metric == 'head_circumference':
            return self.head_circumference_cm if self.head_circumference_cm > 0 else None
        raise ValueError(f"Unknown metric '{metric}'")


@dataclass
class BabyProfile:
    id: str
    name: str
    birth_date: datetime
    birth_time: str = ''
    birth_weight_grams: float = 0
    birth_height_cm: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SleepSession:
    id: str
    baby_profile_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    notes: str = ''
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def ongoing(self) -> bool:
        return self.end_time is None


@dataclass
class DoctorVisit:
    id: str
    baby_profile_id: str
    visit_date: date
    visit_time: str
    doctor_type: str
    doctor_name: str = ''
    location: str = ''
    notes: str = ''
    completed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ReminderState:
    """Derived on every pass from the live log; never persisted."""
    last_occurrence: Optional[datetime]
    occurrences_in_window: int
    days_since_last: int

    @property
    def never_recorded(self) -> bool:
        return self.last_occurrence is None


@dataclass
class ReminderResult:
    name: str
    due_for_attention: bool
    current_status: str
    target_description: str
    state: Optional[ReminderState] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        state = None
        if self.state is not None:
            state = {
                'last_occurrence': (self.state.last_occurrence.isoformat()
                                    if self.state.last_occurrence else None),
                'occurrences_in_window': self.state.occurrences_in_window,
                'days_since_last': self.state.days_since_last,
            }
        return {
            'name': self.name,
            'due_for_attention': self.due_for_attention,
            'current_status': self.current_status,
            'target_description': self.target_description,
            'state': state,
            'details': self.details,
        }


@dataclass
class Notification:
    title: str
    body: str
    tag: str


@dataclass
class PeriodStats:
    total_feedings: int = 0
    total_ml: float = 0
    stool_count: int = 0
    urination_count: int = 0
    vomit_count: int = 0
    breastfed_count: int = 0
    vitamin_d_count: int = 0
    tummy_time_count: int = 0


@dataclass
class SleepStats:
    session_count: int = 0
    total_minutes: int = 0
    average_minutes: Optional[float] = None
    longest_minutes: Optional[int] = None


@dataclass
class FormulaGuideRow:
    weight_kg: float
    daily_ml_150: int
    daily_ml_180: int
    dose_ml_150: int
    dose_ml_180: int
    current: bool = False
