"""CCI catalog data models."""

from __future__ import annotations

from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..compliance.families import derive_families


class CciEntry(BaseModel):
    """One CCI item and the NIST controls it implements."""

    model_config = ConfigDict(frozen=True)

    cci_id: str = Field(pattern=r"^CCI-\d+$")
    nist_controls: list[str] = []
    definition: Optional[str] = None

    @property
    def families(self) -> list[str]:
        return derive_families(self.nist_controls)


class Catalog(BaseModel):
    """Immutable CCI lookup table.

    A new catalog always replaces the old one wholesale; there is no way
    to add or remove entries from an existing instance.
    """

    model_config = ConfigDict(frozen=True)

    entries: dict[str, CciEntry] = {}
    source: str = ""
    reference_title: str = ""

    def get(self, cci_id: str) -> Optional[CciEntry]:
        return self.entries.get(cci_id)

    def __contains__(self, cci_id: object) -> bool:
        return cci_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def values(self) -> Iterator[CciEntry]:
        return iter(self.entries.values())
