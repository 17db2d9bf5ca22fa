"""Inland tax templates and the detail lines recorded with dividend entries."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class InlandTaxTemplateField:
    """One tax component of a template."""

    code: str
    label: str
    currency: str
    sort_order: int


@dataclass(frozen=True)
class InlandTaxTemplate:
    """A country's set of inland tax components."""

    template: str
    label: str
    currency: str
    fields: tuple[InlandTaxTemplateField, ...]


_DETAIL_KEYS = {"code": "Code", "label": "Label", "amount": "Amount", "currency": "Currency"}


@dataclass(frozen=True)
class InlandTaxDetail:
    """One booked inland tax amount."""

    code: str = ""
    label: str = ""
    amount: str = ""
    currency: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the detail with its JSON field names."""
        return {json_key: getattr(self, attr) for attr, json_key in _DETAIL_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> InlandTaxDetail:
        """Build a detail from a JSON object; key names match case-insensitively."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise TypeError("inland tax detail must be a JSON object")
        values: dict[str, str] = {}
        for key, value in data.items():
            attr = str(key).lower()
            if attr not in _DETAIL_KEYS:
                continue
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"inland tax detail field {key!r} must be a string")
            values[attr] = value
        return cls(**values)


INLAND_TAX_TEMPLATES: Mapping[str, InlandTaxTemplate] = MappingProxyType(
    {
        "DE": InlandTaxTemplate(
            template="DE",
            label="Deutschland",
            currency="EUR",
            fields=(
                InlandTaxTemplateField("capital_gains_tax", "Kapitalertragsteuer", "EUR", 10),
                InlandTaxTemplateField("church_tax", "Kirchensteuer", "EUR", 20),
                InlandTaxTemplateField("solidarity_surcharge", "Solidaritätszuschlag", "EUR", 30),
            ),
        ),
    }
)