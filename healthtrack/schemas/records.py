"""
Extraction Record Schemas

Typed views over the structured tool output returned by the extraction
service. Each ``from_tool_input`` accepts the raw dict and tolerates missing
optional keys; only the schema contract is validated, never prompt-level rules.
"""
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel

from healthtrack.utils.exceptions import ExtractionFailed

IMAGING_DATE_NOT_VISIBLE = "NOT_VISIBLE"


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _expect(value: Any, expected: type, field: str) -> Any:
    """Raise ExtractionFailed when a present value has the wrong JSON type"""
    if value is not None and not isinstance(value, expected):
        raise ExtractionFailed(
            f"Extraction returned {type(value).__name__} for {field}, expected {expected.__name__}"
        )
    return value


def parse_flag(value: Any) -> bool:
    """Timing flags arrive as booleans or as "true"/"TRUE" strings"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


# ==================== MEASUREMENTS ====================

class NumericMeasurement(BaseModel):
    kind: Literal["numeric"] = "numeric"
    value: float
    normal_range_min: Optional[float] = None
    normal_range_max: Optional[float] = None


class TextMeasurement(BaseModel):
    kind: Literal["text"] = "text"
    value: str
    normal_range_text: Optional[str] = None


Measurement = Union[NumericMeasurement, TextMeasurement]


def measurement_from(raw: Dict[str, Any]) -> Optional[Measurement]:
    """
    Pick the measurement variant from the runtime type of ``raw["value"]``.

    Numbers (not booleans) become NumericMeasurement with min/max bounds;
    anything else that is present becomes TextMeasurement with the
    free-text range. A missing value gives None.
    """
    value = raw.get("value")
    if value is None:
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return NumericMeasurement(
            value=float(value),
            normal_range_min=_optional_float(raw.get("normal_range_min")),
            normal_range_max=_optional_float(raw.get("normal_range_max")),
        )

    if isinstance(value, bool):
        value = "true" if value else "false"

    return TextMeasurement(
        value=str(value),
        normal_range_text=_optional_str(raw.get("normal_range_text")),
    )


# ==================== HEALTH RECORDS ====================

class TestComponent(BaseModel):
    __test__ = False

    component: str
    unit: Optional[str] = None
    measurement: Optional[Measurement] = None

    @classmethod
    def from_tool_input(cls, raw: Dict[str, Any]) -> "TestComponent":
        return cls(
            component=str(raw.get("component") or "").strip(),
            unit=_optional_str(raw.get("unit")),
            measurement=measurement_from(raw),
        )


class TestResult(BaseModel):
    __test__ = False

    date: Optional[str] = None
    components: List[TestComponent] = []

    @classmethod
    def from_tool_input(cls, raw: Dict[str, Any]) -> "TestResult":
        components = _expect(raw.get("components"), list, "components") or []
        return cls(
            date=_optional_str(raw.get("date")),
            components=[
                TestComponent.from_tool_input(item)
                for item in components
                if isinstance(item, dict) and item.get("component")
            ],
        )


# ==================== IMAGING ====================

class ImagingResult(BaseModel):
    test_title: Optional[str] = None
    test_date: str
    observations: Optional[str] = None
    doctor_name: Optional[str] = None

    @classmethod
    def from_tool_input(cls, raw: Dict[str, Any]) -> "ImagingResult":
        return cls(
            test_title=_optional_str(raw.get("test_title")),
            test_date=_optional_str(raw.get("test_date")) or IMAGING_DATE_NOT_VISIBLE,
            observations=_optional_str(raw.get("observations")),
            doctor_name=_optional_str(raw.get("doctor_name")),
        )


# ==================== PRESCRIPTIONS ====================

class MedicineTimes(BaseModel):
    morning: bool = False
    afternoon: bool = False
    evening: bool = False
    night: bool = False

    @classmethod
    def from_tool_input(cls, raw: Optional[Dict[str, Any]]) -> "MedicineTimes":
        raw = _expect(raw, dict, "medicine_times") or {}
        return cls(
            morning=parse_flag(raw.get("morning")),
            afternoon=parse_flag(raw.get("afternoon")),
            evening=parse_flag(raw.get("evening")),
            night=parse_flag(raw.get("night")),
        )


class Medicine(BaseModel):
    medicine: str
    before_after_food: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    notes: Optional[str] = None
    medicine_times: MedicineTimes = MedicineTimes()

    @classmethod
    def from_tool_input(cls, raw: Dict[str, Any]) -> "Medicine":
        return cls(
            medicine=str(raw.get("medicine") or "").strip(),
            before_after_food=_optional_str(raw.get("before_after_food")),
            start_date=_optional_str(raw.get("start_date")),
            end_date=_optional_str(raw.get("end_date")),
            notes=_optional_str(raw.get("notes")),
            medicine_times=MedicineTimes.from_tool_input(raw.get("medicine_times")),
        )


class PrescriptionResult(BaseModel):
    prescription_date: Optional[str] = None
    doctor: Optional[str] = None
    medicines: List[Medicine] = []

    @classmethod
    def from_tool_input(cls, raw: Dict[str, Any]) -> "PrescriptionResult":
        medicines = _expect(raw.get("medicines"), list, "medicines") or []
        return cls(
            prescription_date=_optional_str(raw.get("prescription_date")),
            doctor=_optional_str(raw.get("doctor")),
            medicines=[
                Medicine.from_tool_input(item)
                for item in medicines
                if isinstance(item, dict) and item.get("medicine")
            ],
        )


ExtractedRecord = Union[TestResult, ImagingResult, PrescriptionResult]
