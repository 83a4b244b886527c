"""
User-defined organizational buckets ("folders") receipts are filed into.
"""

import re
from datetime import datetime
from typing import List

from pydantic import Field, field_validator

from reseet.models.receipt import CamelModel, new_id, utc_now

HEX_COLOR = re.compile(r'^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')

# Seeded for a user who has no categories yet, in display order
DEFAULT_CATEGORIES = [
    ("Business", "#558E00"),
    ("Personal", "#6b7280"),
]


def is_hex_color(value: str) -> bool:
    return bool(value) and bool(HEX_COLOR.match(value))


class Category(CamelModel):
    """A folder. Labels are display strings and need not be unique."""
    id: str = Field(default_factory=new_id, frozen=True)
    label: str
    color: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('label')
    @classmethod
    def validate_label(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Category label must not be empty')
        return v

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        if not is_hex_color(v):
            raise ValueError(f'Invalid hex color: {v!r}')
        return v


def default_categories() -> List[Category]:
    return [Category(label=label, color=color) for label, color in DEFAULT_CATEGORIES]
