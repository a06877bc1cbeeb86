"""Data models for the canonical family graph and the tagged-entry detail tree."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Dates
# ============================================================================

DateQualifier = Literal["abt", "cal", "est"]


class PartialDate(BaseModel):
    """A date where any of year, month and day may be unknown.

    `text` holds a literal that could not be parsed into structured fields
    (for example a decade such as "1990s").
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    year: int | None = None
    month: int | None = Field(default=None, ge=1, le=12)
    day: int | None = Field(default=None, ge=1, le=31)
    qualifier: DateQualifier | None = None
    text: str | None = None

    @model_validator(mode="after")
    def _text_excludes_fields(self) -> "PartialDate":
        if self.text is not None and self.has_fields():
            raise ValueError("A date with a text literal cannot have year, month or day")
        return self

    def has_fields(self) -> bool:
        return self.year is not None or self.month is not None or self.day is not None


class DateRange(BaseModel):
    """A range with an optional lower (`from`) and upper (`to`) bound."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: PartialDate | None = Field(default=None, alias="from")
    to: PartialDate | None = None


class DateOrRange(BaseModel):
    """Either an exact (possibly partial) date or a date range."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: PartialDate | None = None
    date_range: DateRange | None = Field(default=None, alias="dateRange")

    @model_validator(mode="after")
    def _one_of(self) -> "DateOrRange":
        if self.date is not None and self.date_range is not None:
            raise ValueError("Only one of date and dateRange can be set")
        return self


class Event(DateOrRange):
    """Birth, death or marriage: a date or range with an optional place."""

    place: str | None = None


# ============================================================================
# Canonical graph
# ============================================================================

class Image(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    title: str | None = None


class Individual(BaseModel):
    """A person node in the canonical graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    sex: Literal["M", "F"] | None = None
    birth: Event | None = None
    death: Event | None = None
    famc: str | None = None
    fams: list[str] = Field(default_factory=list)
    images: list[Image] | None = None
    hide_id: bool | None = Field(default=None, alias="hideId")


class Family(BaseModel):
    """A parents-and-children unit in the canonical graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    wife: str | None = None
    husb: str | None = None
    children: list[str] = Field(default_factory=list)
    marriage: Event | None = None


class GraphData(BaseModel):
    """Chart interchange format: individuals and families in normalized order."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    indis: list[Individual] = Field(default_factory=list)
    fams: list[Family] = Field(default_factory=list)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Tagged-entry tree
# ============================================================================

@dataclass
class GedcomEntry:
    """One tagged entry with its sub-entries, e.g. `1 BIRT` with `2 DATE 1990`."""

    level: int
    pointer: str
    tag: str
    data: str
    tree: list["GedcomEntry"] = field(default_factory=list)


@dataclass
class GedcomData:
    # The HEAD entry.
    head: GedcomEntry
    # INDI entries mapped by id.
    indis: dict[str, GedcomEntry] = field(default_factory=dict)
    # FAM entries mapped by id.
    fams: dict[str, GedcomEntry] = field(default_factory=dict)
    # Other entries mapped by id, e.g. NOTE, SOUR, OBJE.
    other: dict[str, GedcomEntry] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadedData:
    """Result of a load: the chart graph plus the detail-panel entry tree."""

    chart_data: GraphData
    gedcom: GedcomData
