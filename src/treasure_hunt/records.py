"""
Treasure records and the configuration document consumed by the AR client.

Field names on the wire are camelCase; the Python attributes are snake_case.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import DuplicateImageName


def _to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


class Vector3(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class TreasureRecord(BaseModel):
    """One physical marker plus its clue."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    image_name: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    physical_size_in_meters: float = Field(0.15, gt=0)
    clue_index: int = Field(..., ge=0)
    clue_name: str
    spawn_offset: Vector3 = Field(default_factory=Vector3)
    spawn_rotation: Vector3 = Field(default_factory=Vector3)
    clue_text: str = ''
    latitude: float = 0.0
    longitude: float = 0.0
    has_physical_game: bool = False
    physical_game_instruction: str = ''
    physical_game_secret_code: str = ''
    validation_score: Optional[int] = None
    verified: bool = True

    @model_validator(mode='after')
    def blank_unused_physical_game(self) -> 'TreasureRecord':
        """Instruction and secret code only exist alongside a physical game."""
        if not self.has_physical_game:
            self.physical_game_instruction = ''
            self.physical_game_secret_code = ''
        return self

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def image_name_for(clue_index: int, label: str) -> str:
    """``clue_<index>_<label lowercased, whitespace as underscores>``."""
    slug = re.sub(r'\s+', '_', label.strip().lower())
    return f"clue_{clue_index}_{slug}"


def file_name_for(label: str) -> str:
    """Asset file name: every non-alphanumeric character becomes ``_``."""
    stem = re.sub(r'[^a-zA-Z0-9]', '_', label.strip())
    return f"{stem}.png"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


class TreasureConfiguration(BaseModel):
    """
    The exported document: ``{images, lastUpdated, totalTreasures}``.

    ``totalTreasures`` is derived from ``images`` and never stored on its own;
    a value read from disk or the server is discarded.
    """

    model_config = ConfigDict(populate_by_name=True)

    images: List[TreasureRecord] = Field(default_factory=list)
    last_updated: str = Field(default_factory=_utc_now_iso, alias='lastUpdated')

    @model_validator(mode='after')
    def image_names_unique(self) -> 'TreasureConfiguration':
        seen = set()
        for record in self.images:
            if record.image_name in seen:
                raise DuplicateImageName(
                    f"Duplicate imageName '{record.image_name}' in configuration",
                    payload={'imageName': record.image_name},
                )
            seen.add(record.image_name)
        return self

    @property
    def total_treasures(self) -> int:
        return len(self.images)

    @classmethod
    def build(cls, records: Sequence[TreasureRecord]) -> 'TreasureConfiguration':
        """Fresh document with ``lastUpdated`` set to now."""
        return cls(images=list(records))

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> 'TreasureConfiguration':
        data = dict(data or {})
        data.pop('totalTreasures', None)
        data.setdefault('images', [])
        if data['images'] is None:
            data['images'] = []
        return cls.model_validate(data)

    def to_wire(self) -> Dict[str, Any]:
        return {
            'images': [record.to_wire() for record in self.images],
            'lastUpdated': self.last_updated,
            'totalTreasures': self.total_treasures,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), indent=2, ensure_ascii=False) + '\n'

    def find(self, image_name: str) -> Optional[TreasureRecord]:
        for record in self.images:
            if record.image_name == image_name:
                return record
        return None

    def without(self, image_name: str) -> List[TreasureRecord]:
        return [r for r in self.images if r.image_name != image_name]

    def next_clue_index(self) -> int:
        if not self.images:
            return 0
        return max(r.clue_index for r in self.images) + 1
