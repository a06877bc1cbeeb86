"""Builds the tagged-entry tree shown in the details panel from the chart graph."""

from date_utils import date_or_range_to_gedcom, is_valid_date_or_range
from tree_config import WIKITREE_URL
from tree_models import Event, Family, GedcomData, GedcomEntry, GraphData, Image, Individual

# Individual ids starting with this are not real WikiTree profiles.
HIDDEN_ID_MARKER = "~"


def _entry(level: int, tag: str, data: str = "", tree: list[GedcomEntry] | None = None) -> GedcomEntry:
    return GedcomEntry(level=level, pointer="", tag=tag, data=data, tree=tree or [])


def event_to_gedcom(event: Event) -> list[GedcomEntry]:
    result = []
    if is_valid_date_or_range(event):
        result.append(_entry(2, "DATE", date_or_range_to_gedcom(event)))
    elif event.date is not None and event.date.text:
        result.append(_entry(2, "DATE", event.date.text))
    if event.place:
        result.append(_entry(2, "PLAC", event.place))
    return result


def image_to_gedcom(image: Image, full_size_photo_url: str | None) -> list[GedcomEntry]:
    title = image.title or ""
    name, _, extension = title.rpartition(".")
    return [
        _entry(2, "FILE", full_size_photo_url or image.url, [
            _entry(3, "FORM", extension),
            _entry(3, "TITL", name if name else extension),
        ]),
    ]


def _name_entries(indi: Individual, variants: list[tuple[str, str]] | None) -> list[GedcomEntry]:
    first_name = indi.first_name or ""
    if not variants:
        return [_entry(1, "NAME", f"{first_name} /{indi.last_name or ''}/")]
    return [
        _entry(1, "NAME", f"{first_name} /{surname}/", [_entry(2, "TYPE", name_type)])
        for surname, name_type in variants
    ]


def indi_to_gedcom(
    indi: Individual,
    full_size_photo_urls: dict[str, str],
    name_variants: dict[str, list[tuple[str, str]]],
) -> GedcomEntry:
    record = GedcomEntry(
        level=0,
        pointer=f"@{indi.id}@",
        tag="INDI",
        data="",
        tree=_name_entries(indi, name_variants.get(indi.id)),
    )
    if indi.birth:
        record.tree.append(_entry(1, "BIRT", tree=event_to_gedcom(indi.birth)))
    if indi.death:
        record.tree.append(_entry(1, "DEAT", tree=event_to_gedcom(indi.death)))
    if indi.famc:
        record.tree.append(_entry(1, "FAMC", f"@{indi.famc}@"))
    for fams in indi.fams:
        record.tree.append(_entry(1, "FAMS", f"@{fams}@"))
    if not indi.id.startswith(HIDDEN_ID_MARKER):
        # WikiTree URLs replace spaces with underscores.
        escaped_id = indi.id.replace(" ", "_")
        record.tree.append(_entry(1, "WWW", f"{WIKITREE_URL}/wiki/{escaped_id}"))
    for image in indi.images or []:
        record.tree.append(
            _entry(1, "OBJE", tree=image_to_gedcom(image, full_size_photo_urls.get(indi.id)))
        )
    return record


def fam_to_gedcom(fam: Family) -> GedcomEntry:
    record = GedcomEntry(level=0, pointer=f"@{fam.id}@", tag="FAM", data="")
    if fam.wife:
        record.tree.append(_entry(1, "WIFE", f"@{fam.wife}@"))
    if fam.husb:
        record.tree.append(_entry(1, "HUSB", f"@{fam.husb}@"))
    for child in fam.children:
        record.tree.append(_entry(1, "CHILD", f"@{child}@"))
    if fam.marriage:
        record.tree.append(_entry(1, "MARR", tree=event_to_gedcom(fam.marriage)))
    return record


def build_gedcom(
    data: GraphData,
    full_size_photo_urls: dict[str, str] | None = None,
    name_variants: dict[str, list[tuple[str, str]]] | None = None,
) -> GedcomData:
    """
    Creates a GEDCOM structure for the purpose of displaying the details panel.

    `name_variants` maps an individual id to (surname, type) pairs where type is
    one of "birth", "married" or "aka".
    """
    full_size_photo_urls = full_size_photo_urls or {}
    name_variants = name_variants or {}
    return GedcomData(
        head=_entry(0, "HEAD"),
        indis={indi.id: indi_to_gedcom(indi, full_size_photo_urls, name_variants) for indi in data.indis},
        fams={fam.id: fam_to_gedcom(fam) for fam in data.fams},
        other={},
    )
