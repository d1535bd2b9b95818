"""Search and filter compilation for the dashboard feed.

``compile_filters`` validates the raw ``filterBy`` mapping and returns a tuple of
predicate values. Each predicate renders to a SQLAlchemy expression with bound
parameters for the live path and evaluates against a ``DashboardRow`` for the
snapshot path, so both paths share one definition of every filter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import false, or_, true

from .documents import DOC_TYPE_LABELS, DashboardRow, DocType
from .errors import Stage, ValidationError

_NON_ALNUM = re.compile(r"[^0-9a-z]+")

# Abbreviations used by the procurement team, on top of tokens and display labels.
_EXTRA_ALIASES: dict[str, DocType] = {
    "rs": DocType.REQUISITION,
    "requisitionslip": DocType.REQUISITION,
    "cs": DocType.CANVASS,
    "canvasssheet": DocType.CANVASS,
    "po": DocType.PURCHASE_ORDER,
    "order": DocType.PURCHASE_ORDER,
    "dr": DocType.DELIVERY_RECEIPT,
    "rr": DocType.DELIVERY_RECEIPT,
    "receivingreport": DocType.DELIVERY_RECEIPT,
    "ir": DocType.INVOICE,
    "invoicereport": DocType.INVOICE,
    "pr": DocType.PAYMENT_REQUEST,
    "vr": DocType.PAYMENT_REQUEST,
    "voucher": DocType.PAYMENT_REQUEST,
    "nr": DocType.NON_REQUISITION,
    "nonrs": DocType.NON_REQUISITION,
}


def normalize_alias(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower())


def _build_alias_table() -> dict[str, DocType]:
    table: dict[str, DocType] = {}
    for doc_type in DocType:
        table[normalize_alias(doc_type.value)] = doc_type
        table[normalize_alias(DOC_TYPE_LABELS[doc_type])] = doc_type
    table.update(_EXTRA_ALIASES)
    return table


DOC_TYPE_ALIASES: dict[str, DocType] = _build_alias_table()


def resolve_doc_type(text: str | None) -> DocType | None:
    if not text:
        return None
    return DOC_TYPE_ALIASES.get(normalize_alias(text))


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_text(value: Any) -> str:
    if isinstance(value, DocType):
        return value.value
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring over one or more fields (any field may match)."""

    fields: tuple[str, ...]
    text: str

    def matches(self, row: DashboardRow) -> bool:
        needle = self.text.lower()
        return any(needle in _as_text(row.value(name)).lower() for name in self.fields)

    def expression(self, columns):
        pattern = f"%{escape_like(self.text)}%"
        return or_(*(columns[name].ilike(pattern, escape="\\") for name in self.fields))


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def matches(self, row: DashboardRow) -> bool:
        return _normalize(row.value(self.field)) == _normalize(self.value)

    def expression(self, columns):
        return columns[self.field] == _normalize(self.value)


@dataclass(frozen=True)
class OneOf:
    field: str
    values: tuple[Any, ...]

    def matches(self, row: DashboardRow) -> bool:
        return _normalize(row.value(self.field)) in {_normalize(value) for value in self.values}

    def expression(self, columns):
        if not self.values:
            return false()
        return columns[self.field].in_([_normalize(value) for value in self.values])


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of other predicates."""

    predicates: tuple["Predicate", ...]

    def matches(self, row: DashboardRow) -> bool:
        return any(predicate.matches(row) for predicate in self.predicates)

    def expression(self, columns):
        if not self.predicates:
            return true()
        return or_(*(predicate.expression(columns) for predicate in self.predicates))


Predicate = Union[Contains, Equals, OneOf, AnyOf]


def _normalize(value: Any) -> Any:
    if isinstance(value, DocType):
        return value.value
    return value


class FilterBy(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ref_number: Optional[str] = None
    type: Optional[str] = None
    company: Optional[str] = None
    project_department: Optional[str] = None
    requestor: Optional[str] = None
    status: Optional[Union[str, list[str]]] = None
    statuses: Optional[list[str]] = None
    companies: Optional[list[int]] = None
    updated_at: Optional[str] = None

    @field_validator("ref_number", "type", "company", "project_department", "requestor", "updated_at")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("status")
    @classmethod
    def _blank_status(cls, value):
        if isinstance(value, str):
            return value if value.strip() else None
        if isinstance(value, list):
            cleaned = [item for item in value if item and item.strip()]
            return cleaned or None
        return value

    @field_validator("statuses", "companies")
    @classmethod
    def _empty_list_to_none(cls, value):
        return value or None


def parse_filter_by(raw: Mapping[str, Any] | FilterBy | None) -> FilterBy:
    if raw is None:
        return FilterBy()
    if isinstance(raw, FilterBy):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError("filterBy must be an object", stage=Stage.FILTER_COMPILE)
    try:
        return FilterBy.model_validate(dict(raw))
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'filterBy'}: {error['msg']}" for error in exc.errors()
        )
        raise ValidationError(f"Invalid filterBy: {problems}", stage=Stage.FILTER_COMPILE) from exc


GLOBAL_SEARCH_FIELDS = ("ref_number", "doc_type", "company_name", "requestor_name", "status")


def compile_filters(raw: Mapping[str, Any] | FilterBy | None) -> tuple[Predicate, ...]:
    """Turn ``filterBy`` into a conjunctive tuple of predicates. Blank inputs add nothing."""
    filter_by = parse_filter_by(raw)
    predicates: list[Predicate] = []

    if filter_by.ref_number:
        search: list[Predicate] = [Contains(GLOBAL_SEARCH_FIELDS, filter_by.ref_number)]
        aliased = resolve_doc_type(filter_by.ref_number)
        if aliased is not None:
            search.append(Equals("doc_type", aliased))
        predicates.append(AnyOf(tuple(search)))

    if filter_by.type:
        aliased = resolve_doc_type(filter_by.type)
        if aliased is not None:
            predicates.append(Equals("doc_type", aliased))
        else:
            predicates.append(Contains(("doc_type",), filter_by.type))

    if filter_by.company:
        predicates.append(Contains(("company_name",), filter_by.company))

    if filter_by.project_department:
        predicates.append(Contains(("department_name", "project_name"), filter_by.project_department.strip()))

    if filter_by.requestor:
        predicates.append(Contains(("requestor_name",), filter_by.requestor))

    if isinstance(filter_by.status, list):
        predicates.append(OneOf("status", tuple(filter_by.status)))
    elif filter_by.status:
        predicates.append(Equals("status", filter_by.status))

    if filter_by.statuses:
        predicates.append(OneOf("status", tuple(filter_by.statuses)))

    if filter_by.companies:
        predicates.append(OneOf("company_id", tuple(filter_by.companies)))

    return tuple(predicates)


def matches_all(predicates: tuple[Predicate, ...], row: DashboardRow) -> bool:
    return all(predicate.matches(row) for predicate in predicates)
