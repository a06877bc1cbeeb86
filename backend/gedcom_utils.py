"""GEDCOM parsing, tagged-entry helpers and family graph normalization."""

import logging
import os
import tempfile
from functools import cmp_to_key
from typing import Callable

from gedcom.element.element import Element
from gedcom.parser import Parser

from date_utils import compare_dates, get_date
from tree_errors import READ_FAILED, TreeError
from tree_models import (
    Event,
    Family,
    GedcomData,
    GedcomEntry,
    GraphData,
    Image,
    Individual,
    LoadedData,
)

logger = logging.getLogger("familygraph.gedcom_utils")


IMAGE_EXTENSIONS = [".jpg", ".png", ".gif"]


# ============================================================================
# Pointers and lookups
# ============================================================================

def pointer_to_id(pointer: str) -> str:
    """
    Returns the identifier extracted from a pointer string.
    E.g. '@I123@' -> 'I123'
    """
    return pointer[1:-1]


def id_to_indi_map(data: GraphData) -> dict[str, Individual]:
    return {indi.id: indi for indi in data.indis}


def id_to_fam_map(data: GraphData) -> dict[str, Family]:
    return {fam.id: fam for fam in data.fams}


def dereference(
    entry: GedcomEntry,
    gedcom: GedcomData,
    getter: Callable[[GedcomData], dict[str, GedcomEntry]],
) -> GedcomEntry:
    """
    If the entry is a reference to a top-level entry, the referenced entry is
    returned. Otherwise, returns the given entry unmodified.
    """
    if entry.data:
        dereferenced = getter(gedcom).get(pointer_to_id(entry.data))
        if dereferenced is not None:
            return dereferenced
    return entry


def get_data(entry: GedcomEntry) -> list[str]:
    """
    Returns the data for the given entry as a list of lines. Supports
    continuations with CONT and CONC.
    """
    result = [entry.data]
    for sub_entry in entry.tree:
        if sub_entry.tag == "CONC" and sub_entry.data:
            result[-1] += sub_entry.data
        elif sub_entry.tag == "CONT" and sub_entry.data:
            result.append(sub_entry.data)
    return result


def get_name(person: GedcomEntry) -> str | None:
    """Display name of a person, preferring a name that is not the married name."""
    names = [sub_entry for sub_entry in person.tree if sub_entry.tag == "NAME"]
    not_married = next(
        (
            name for name in names
            if not any(t.tag == "TYPE" and t.data == "married" for t in name.tree)
        ),
        None,
    )
    name = not_married or (names[0] if names else None)
    return name.data.replace("/", "") if name else None


def get_software(head: GedcomEntry | None) -> str | None:
    """Name of the program that produced the GEDCOM file."""
    if head is None:
        return None
    sour = next((entry for entry in head.tree if entry.tag == "SOUR"), None)
    name = next((entry for entry in sour.tree if entry.tag == "NAME"), None) if sour else None
    return name.data if name and name.data else None


# ============================================================================
# Normalization
# ============================================================================

def strcmp(a: str, b: str) -> int:
    return (a > b) - (a < b)


def birth_dates_comparator(data: GraphData) -> Callable[[str, str], int]:
    """Birth date comparator for individual ids, tie-broken by id."""
    indi_map = id_to_indi_map(data)

    def compare(indi_id1: str, indi_id2: str) -> int:
        indi1 = indi_map.get(indi_id1)
        indi2 = indi_map.get(indi_id2)
        return compare_dates(
            indi1.birth if indi1 else None,
            indi2.birth if indi2 else None,
        ) or strcmp(indi_id1, indi_id2)

    return compare


def marriage_dates_comparator(data: GraphData) -> Callable[[str, str], int]:
    """Marriage date comparator for family ids, tie-broken by id."""
    fam_map = id_to_fam_map(data)

    def compare(fam_id1: str, fam_id2: str) -> int:
        fam1 = fam_map.get(fam_id1)
        fam2 = fam_map.get(fam_id2)
        return compare_dates(
            fam1.marriage if fam1 else None,
            fam2.marriage if fam2 else None,
        ) or strcmp(fam_id1, fam_id2)

    return compare


def sort_children(data: GraphData) -> GraphData:
    """Sorts children by birth date. Does not modify the input."""
    key = cmp_to_key(birth_dates_comparator(data))
    fams = [
        fam.model_copy(update={"children": sorted(fam.children, key=key)})
        for fam in data.fams
    ]
    return data.model_copy(update={"fams": fams})


def sort_spouses(data: GraphData) -> GraphData:
    """Sorts each individual's families by marriage date. Does not modify the input."""
    key = cmp_to_key(marriage_dates_comparator(data))
    indis = [
        indi.model_copy(update={"fams": sorted(indi.fams, key=key)})
        for indi in data.indis
    ]
    return data.model_copy(update={"indis": indis})


def normalize_gedcom(data: GraphData) -> GraphData:
    """Sorts children and spouses."""
    return sort_spouses(sort_children(data))


# ============================================================================
# GEDCOM text -> tagged entries
# ============================================================================

def element_to_entry(element: Element) -> GedcomEntry:
    """Converts a python-gedcom element (and its children) to a GedcomEntry."""
    return GedcomEntry(
        level=element.get_level(),
        pointer=element.get_pointer() or "",
        tag=element.get_tag(),
        data=element.get_value() or "",
        tree=[element_to_entry(child) for child in element.get_child_elements()],
    )


def parse_gedcom_content(content: str) -> list[GedcomEntry]:
    """Parse GEDCOM content from a string into top-level entries."""
    # Write content to temp file (python-gedcom requires file path)
    with tempfile.NamedTemporaryFile(mode="w", suffix=".ged", delete=False, encoding="utf-8") as f:
        f.write(content)
        temp_path = f.name

    try:
        parser = Parser()
        parser.parse_file(temp_path, strict=False)
        return [element_to_entry(element) for element in parser.get_root_child_elements()]
    finally:
        os.unlink(temp_path)


def prepare_gedcom(entries: list[GedcomEntry]) -> GedcomData:
    head = next(
        (entry for entry in entries if entry.tag == "HEAD"),
        GedcomEntry(level=0, pointer="", tag="HEAD", data=""),
    )
    gedcom = GedcomData(head=head)
    for entry in entries:
        if entry.tag == "INDI":
            gedcom.indis[pointer_to_id(entry.pointer)] = entry
        elif entry.tag == "FAM":
            gedcom.fams[pointer_to_id(entry.pointer)] = entry
        elif entry.pointer:
            gedcom.other[pointer_to_id(entry.pointer)] = entry
    return gedcom


def export_gedcom_content(gedcom: GedcomData) -> str:
    """Serializes the entry tree back to GEDCOM text."""
    lines = []

    def entry_to_lines(entry: GedcomEntry, level: int) -> None:
        line = f"{level} {entry.pointer} {entry.tag}" if entry.pointer else f"{level} {entry.tag}"
        if entry.data:
            line += f" {entry.data}"
        lines.append(line)
        for sub_entry in entry.tree:
            entry_to_lines(sub_entry, level + 1)

    for entry in [gedcom.head, *gedcom.indis.values(), *gedcom.fams.values(), *gedcom.other.values()]:
        entry_to_lines(entry, 0)
    lines.append("0 TRLR")
    return "\n".join(lines)


# ============================================================================
# Tagged entries -> canonical graph
# ============================================================================

def _first(entry: GedcomEntry, tag: str) -> GedcomEntry | None:
    return next((sub_entry for sub_entry in entry.tree if sub_entry.tag == tag), None)


def _split_name(data: str) -> tuple[str | None, str | None]:
    """'John /Smith/' -> ('John', 'Smith')"""
    if "/" not in data:
        return data.strip() or None, None
    first, _, rest = data.partition("/")
    last = rest.split("/")[0]
    return first.strip() or None, last.strip() or None


def _entry_to_event(entry: GedcomEntry) -> Event:
    date_entry = _first(entry, "DATE")
    place_entry = _first(entry, "PLAC")
    date_or_range = get_date(date_entry.data) if date_entry else None
    return Event(
        date=date_or_range.date if date_or_range else None,
        date_range=date_or_range.date_range if date_or_range else None,
        place=place_entry.data if place_entry and place_entry.data else None,
    )


def _entry_images(entry: GedcomEntry, gedcom: GedcomData) -> list[Image]:
    images = []
    for object_entry in (sub_entry for sub_entry in entry.tree if sub_entry.tag == "OBJE"):
        object_entry = dereference(object_entry, gedcom, lambda g: g.other)
        file_entry = _first(object_entry, "FILE")
        if file_entry is None or not file_entry.data:
            continue
        title_entry = _first(file_entry, "TITL") or _first(object_entry, "TITL")
        images.append(Image(url=file_entry.data, title=title_entry.data if title_entry else None))
    return images


def gedcom_entries_to_json(entries: list[GedcomEntry]) -> GraphData:
    """
    Converts top-level GEDCOM entries to the chart graph. References to
    individuals or families missing from the file are dropped.
    """
    gedcom = prepare_gedcom(entries)
    indi_ids = set(gedcom.indis)
    fam_ids = set(gedcom.fams)

    def resolve(pointer: str, known: set[str]) -> str | None:
        target = pointer_to_id(pointer) if pointer else ""
        if target in known:
            return target
        logger.debug(f"Dropping unresolved reference {pointer}")
        return None

    indis = []
    for indi_id, entry in gedcom.indis.items():
        name_entry = _first(entry, "NAME")
        first_name, last_name = _split_name(name_entry.data) if name_entry else (None, None)
        sex_entry = _first(entry, "SEX")
        famc_entry = _first(entry, "FAMC")
        birth_entry = _first(entry, "BIRT")
        death_entry = _first(entry, "DEAT")
        fams = []
        for sub_entry in entry.tree:
            if sub_entry.tag == "FAMS":
                fam_id = resolve(sub_entry.data, fam_ids)
                if fam_id and fam_id not in fams:
                    fams.append(fam_id)
        images = _entry_images(entry, gedcom)
        indis.append(Individual(
            id=indi_id,
            first_name=first_name,
            last_name=last_name,
            sex=sex_entry.data if sex_entry and sex_entry.data in ("M", "F") else None,
            birth=_entry_to_event(birth_entry) if birth_entry else None,
            death=_entry_to_event(death_entry) if death_entry else None,
            famc=resolve(famc_entry.data, fam_ids) if famc_entry else None,
            fams=fams,
            images=images or None,
        ))

    fams = []
    for fam_id, entry in gedcom.fams.items():
        husb_entry = _first(entry, "HUSB")
        wife_entry = _first(entry, "WIFE")
        marriage_entry = _first(entry, "MARR")
        children = []
        for sub_entry in entry.tree:
            if sub_entry.tag == "CHIL":
                child = resolve(sub_entry.data, indi_ids)
                if child and child not in children:
                    children.append(child)
        fams.append(Family(
            id=fam_id,
            husb=resolve(husb_entry.data, indi_ids) if husb_entry else None,
            wife=resolve(wife_entry.data, indi_ids) if wife_entry else None,
            children=children,
            marriage=_entry_to_event(marriage_entry) if marriage_entry else None,
        ))

    return GraphData(indis=indis, fams=fams)


def is_image_file(file_name: str) -> bool:
    """Returns True if the given file name has a known image extension."""
    return file_name.lower().endswith(tuple(IMAGE_EXTENSIONS))


def filter_images(data: GraphData, images: dict[str, str]) -> GraphData:
    """
    Removes images that are not HTTP links or do not have known image
    extensions, unless the file was uploaded alongside (`images` maps file
    name to URL). Does not modify the input.
    """
    indis = []
    for indi in data.indis:
        if not indi.images:
            indis.append(indi)
            continue
        kept = []
        for image in indi.images:
            file_name = image.url.replace("\\", "/").rsplit("/", 1)[-1]
            if file_name in images:
                kept.append(image.model_copy(update={"url": images[file_name]}))
            elif image.url.startswith("http") and is_image_file(image.url):
                kept.append(image)
            else:
                logger.debug(f"Skipping image {image.url} of {indi.id}")
        indis.append(indi.model_copy(update={"images": kept}))
    return data.model_copy(update={"indis": indis})


def convert_gedcom(content: str, images: dict[str, str] | None = None) -> LoadedData:
    """
    Converts GEDCOM text into chart data and the detail entry tree:
    - sorts children by birth date and spouses by marriage date
    - removes images that are not HTTP links and aren't mapped in `images`
    """
    entries = parse_gedcom_content(content)
    data = gedcom_entries_to_json(entries)
    if not data.indis or not data.fams:
        logger.warning(f"GEDCOM has {len(data.indis)} individuals and {len(data.fams)} families")
        raise TreeError(READ_FAILED, "Failed to read GEDCOM file")

    logger.info(f"Converted GEDCOM with {len(data.indis)} individuals and {len(data.fams)} families")
    return LoadedData(
        chart_data=filter_images(normalize_gedcom(data), images or {}),
        gedcom=prepare_gedcom(entries),
    )
