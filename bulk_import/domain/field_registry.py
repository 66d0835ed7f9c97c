"""
bulk_import/domain/field_registry.py

Declarative editor kinds for imported fields.

The registry decides how each column is edited and displayed: free text,
an enumerated picker (backed by a lookup list or static choices), a date,
or an email address or phone number checked for shape before it is kept.
It is consulted by the row renderer, by the correction overlay before a value
is accepted, and by the commit merge.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from bulk_import.domain.errors import FieldValueError
from bulk_import.domain.import_report import Scalar

EMPTY_DISPLAY = "-"

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_COUNTRY_CODE = "92"
PHONE_DIGITS_RANGE = (10, 13)


class FieldKind:
    TEXT = "text"
    ENUM = "enum"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class LookupOption:
    """
    One selectable value of an enumerated field.
    """

    id: str
    name: str


@dataclass(frozen=True)
class FieldSpec:
    """
    Editor definition for one field.
    """

    name: str
    label: str
    kind: str = FieldKind.TEXT
    lookup: str | None = None
    choices: tuple[LookupOption, ...] = ()

    @property
    def is_enumerated(self) -> bool:
        return self.kind == FieldKind.ENUM


class ReferenceData:
    """
    Option lists supplied by the foreign-key lookup backend, keyed by lookup name.
    """

    def __init__(self, lookups: Mapping[str, Sequence[LookupOption]] | None = None) -> None:
        self._lookups: dict[str, tuple[LookupOption, ...]] = {
            name: tuple(options) for name, options in (lookups or {}).items()
        }

    @classmethod
    def empty(cls) -> ReferenceData:
        return cls()

    @property
    def lookup_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._lookups))

    def options(self, lookup: str) -> tuple[LookupOption, ...]:
        return self._lookups.get(lookup, ())

    def __bool__(self) -> bool:
        return any(self._lookups.values())


class FieldRegistry:
    """
    Ordered field name -> FieldSpec mapping with editor and display helpers.
    """

    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self._fields: dict[str, FieldSpec] = {spec.name: spec for spec in fields}

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return tuple(self._fields.values())

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._fields)

    def get(self, name: str) -> FieldSpec:
        spec = self._fields.get(name)
        if spec is not None:
            return spec
        return FieldSpec(name=name, label=name.replace("_", " ").title())

    def columns_for(self, rows: Iterable[Mapping[str, Any]]) -> tuple[str, ...]:
        """
        Registered fields first, then any extra keys seen in the rows.
        """

        columns = list(self._fields)
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        return tuple(columns)

    def options_for(self, name: str, reference_data: ReferenceData) -> tuple[LookupOption, ...]:
        spec = self.get(name)
        if not spec.is_enumerated:
            return ()
        if spec.lookup is not None:
            return reference_data.options(spec.lookup)
        return spec.choices

    def coerce_edit(self, name: str, value: Any, reference_data: ReferenceData) -> Scalar:
        """
        Validate an operator-entered value against the field's editor kind.
        """

        spec = self.get(name)
        if spec.is_enumerated:
            text = "" if value is None else str(value).strip()
            if text == "":
                return ""
            allowed = {option.id for option in self.options_for(name, reference_data)}
            if text not in allowed:
                raise FieldValueError(
                    field=name,
                    message=f"'{text}' is not a selectable option for {spec.label}.",
                )
            return text

        if spec.kind == FieldKind.DATE:
            if value is None or value == "":
                return ""
            if isinstance(value, datetime):
                return value.date().isoformat()
            if isinstance(value, date):
                return value.isoformat()
            text = str(value).strip()
            try:
                return date.fromisoformat(text).isoformat()
            except ValueError as exc:
                raise FieldValueError(
                    field=name,
                    message=f"{spec.label} must be a date in YYYY-MM-DD format.",
                ) from exc

        if spec.kind == FieldKind.EMAIL:
            text = "" if value is None else str(value).strip()
            if text and not EMAIL_PATTERN.match(text):
                raise FieldValueError(field=name, message="Invalid email format")
            return text

        if spec.kind == FieldKind.PHONE:
            text = "" if value is None else str(value).strip()
            if text:
                digits = re.sub(r"\D", "", text)
                if not digits.startswith(PHONE_COUNTRY_CODE):
                    digits = PHONE_COUNTRY_CODE + digits
                low, high = PHONE_DIGITS_RANGE
                if not low <= len(digits) <= high:
                    raise FieldValueError(
                        field=name,
                        message=f"Invalid phone number format for {spec.label}",
                    )
            return text

        if isinstance(value, (bool, int, float)) or value is None:
            return value
        return str(value)

    def display_value(
        self,
        name: str,
        value: Scalar,
        reference_data: ReferenceData,
        *,
        editing: bool = False,
    ) -> str:
        """
        Text shown in a read-only cell; enumerated ids resolve to their label.
        """

        if value is None or value == "":
            return "" if editing else EMPTY_DISPLAY
        if editing:
            return str(value)
        for option in self.options_for(name, reference_data):
            if option.id == str(value):
                return option.name
        return str(value)

    def normalize_for_commit(self, name: str, value: Scalar) -> Scalar:
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if self.get(name).kind == FieldKind.DATE and stripped:
            # Spreadsheet exports often carry a midnight time component.
            try:
                return date.fromisoformat(stripped[:10]).isoformat()
            except ValueError:
                return stripped
        return stripped


def build_customer_field_registry() -> FieldRegistry:
    """
    Default registry for the customer import layout.
    """

    return FieldRegistry(
        (
            FieldSpec(name="internet_id", label="Internet ID"),
            FieldSpec(name="first_name", label="First Name"),
            FieldSpec(name="last_name", label="Last Name"),
            FieldSpec(name="email", label="Email", kind=FieldKind.EMAIL),
            FieldSpec(name="phone_1", label="Phone 1", kind=FieldKind.PHONE),
            FieldSpec(name="phone_2", label="Phone 2", kind=FieldKind.PHONE),
            FieldSpec(name="area_id", label="Area", kind=FieldKind.ENUM, lookup="areas"),
            FieldSpec(name="installation_address", label="Address"),
            FieldSpec(name="service_plan_id", label="Plan", kind=FieldKind.ENUM, lookup="servicePlans"),
            FieldSpec(name="isp_id", label="ISP", kind=FieldKind.ENUM, lookup="isps"),
            FieldSpec(
                name="connection_type",
                label="Connection Type",
                kind=FieldKind.ENUM,
                choices=(
                    LookupOption(id="internet", name="Internet"),
                    LookupOption(id="tv_cable", name="TV Cable"),
                    LookupOption(id="both", name="Both"),
                ),
            ),
            FieldSpec(
                name="internet_connection_type",
                label="Internet Connection",
                kind=FieldKind.ENUM,
                choices=(
                    LookupOption(id="wire", name="Wire"),
                    LookupOption(id="wireless", name="Wireless"),
                ),
            ),
            FieldSpec(
                name="tv_cable_connection_type",
                label="TV Cable Connection",
                kind=FieldKind.ENUM,
                choices=(
                    LookupOption(id="analog", name="Analog"),
                    LookupOption(id="digital", name="Digital"),
                ),
            ),
            FieldSpec(name="installation_date", label="Installation Date", kind=FieldKind.DATE),
            FieldSpec(name="cnic", label="CNIC"),
            FieldSpec(name="gps_coordinates", label="GPS"),
        )
    )
