"""WikiTree API client and family graph builder.

The builder collects the ancestors of a person and of their spouses, plus a
bounded number of generations of descendants, and converts the person-keyed
WikiTree records into canonical individuals and families.
"""

import asyncio
import logging
from collections import defaultdict
from difflib import SequenceMatcher
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from date_utils import parse_decade, parse_wikitree_date
from detail_tree import build_gedcom
from gedcom_utils import normalize_gedcom
from sources.cache import KeyValueCache
from tree_config import (
    DESCENDANT_GENERATION_LIMIT,
    NAME_SIMILARITY_THRESHOLD,
    PRIVATE_ID_OFFSET,
    WIKITREE_API_URL,
    WIKITREE_TIMEOUT,
    WIKITREE_URL,
)
from tree_errors import PROFILE_NOT_ACCESSIBLE, PROFILE_NOT_FOUND, TreeError
from tree_models import Event, Family, GraphData, Image, Individual, LoadedData

logger = logging.getLogger("familygraph.sources.wikitree")


# Prefix for IDs of private individuals.
PRIVATE_ID_PREFIX = "~Private"
# WikiTree placeholder for an unknown date.
EMPTY_DATE = "0000-00-00"
UNKNOWN = "Unknown"

MESSAGES = {
    "wikitree.private": "Private",
}


# ============================================================================
# WikiTree records
# ============================================================================

class DataStatus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    birth_date: str | None = Field(default=None, alias="BirthDate")
    death_date: str | None = Field(default=None, alias="DeathDate")


class PhotoData(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    path: str | None = None
    url: str | None = None


class ExternalPerson(BaseModel):
    """Person record as returned by the WikiTree API.

    Parent ids of 0 mean "unknown" and negative ids mark private profiles.
    Spouses and children are keyed by numeric id.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int = Field(default=0, alias="Id")
    name: str = Field(default="", alias="Name")
    first_name: str | None = Field(default=None, alias="FirstName")
    real_name: str | None = Field(default=None, alias="RealName")
    last_name_at_birth: str | None = Field(default=None, alias="LastNameAtBirth")
    last_name_current: str | None = Field(default=None, alias="LastNameCurrent")
    last_name_other: str | None = Field(default=None, alias="LastNameOther")
    gender: str | None = Field(default=None, alias="Gender")
    mother: int = Field(default=0, alias="Mother")
    father: int = Field(default=0, alias="Father")
    spouses: dict[int, "ExternalPerson"] = Field(default_factory=dict, alias="Spouses")
    children: dict[int, "ExternalPerson"] = Field(default_factory=dict, alias="Children")
    birth_date: str | None = Field(default=None, alias="BirthDate")
    death_date: str | None = Field(default=None, alias="DeathDate")
    birth_location: str | None = Field(default=None, alias="BirthLocation")
    death_location: str | None = Field(default=None, alias="DeathLocation")
    birth_date_decade: str | None = Field(default=None, alias="BirthDateDecade")
    death_date_decade: str | None = Field(default=None, alias="DeathDateDecade")
    data_status: DataStatus | None = Field(default=None, alias="DataStatus")
    photo: str | None = Field(default=None, alias="Photo")
    photo_data: PhotoData | None = Field(default=None, alias="PhotoData")
    marriage_date: str | None = None
    marriage_location: str | None = None

    @field_validator("id", "mother", "father", mode="before")
    @classmethod
    def _unknown_id(cls, value: Any) -> Any:
        return value or 0

    @field_validator("spouses", "children", mode="before")
    @classmethod
    def _relatives_map(cls, value: Any) -> Any:
        # The API returns an empty list instead of an empty object.
        return value or {}

    @field_validator("data_status", "photo_data", mode="before")
    @classmethod
    def _optional_object(cls, value: Any) -> Any:
        return value or None

    @property
    def is_private(self) -> bool:
        return self.id < 0

    @property
    def has_parents(self) -> bool:
        return self.mother != 0 or self.father != 0

    @property
    def key(self) -> str:
        """Human-readable id; private profiles without a name get a synthetic one."""
        if self.name:
            return self.name
        return f"{PRIVATE_ID_PREFIX}{self.id}" if self.is_private else ""


ExternalPerson.model_rebuild()


class ClientLoginResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    result: str
    username: str | None = None


# ============================================================================
# Repository
# ============================================================================

class PersonRepository(Protocol):
    """Source of WikiTree person records."""

    async def get_ancestors(self, key: str) -> list[ExternalPerson]:
        """All known ancestors of the given person."""
        ...

    async def get_relatives(self, keys: list[str]) -> list[ExternalPerson]:
        """Records of the given people including their spouses and children."""
        ...


class WikiTreeClient:
    """WikiTree API client. Responses are memoized in the injected cache."""

    def __init__(
        self,
        cache: KeyValueCache | None = None,
        api_url: str = WIKITREE_API_URL,
        timeout: float = WIKITREE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._cache = cache
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport
        self._cookies = httpx.Cookies()
        self.username: str | None = None

    async def _get(self, request: dict[str, str]) -> Any:
        """Sends a request to the WikiTree API. Returns the parsed response JSON."""
        data = {"format": "json", **request}
        headers = {"User-Agent": "FamilyGraph/1.0 (genealogy chart loader) httpx"}
        logger.info(f"WikiTree {request['action']} request")
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, cookies=self._cookies
        ) as client:
            try:
                response = await client.post(self._api_url, data=data, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"WikiTree {request['action']} request failed: {e}")
                raise
            self._cookies.update(response.cookies)
            return response.json()

    def _cache_get(self, key: str) -> Any:
        return self._cache.get(key) if self._cache is not None else None

    def _cache_put(self, key: str, value: Any) -> None:
        if self._cache is not None:
            self._cache.put(key, value)

    async def get_ancestors(self, key: str) -> list[ExternalPerson]:
        cache_key = f"wikitree:ancestors:{key}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        response = await self._get({"action": "getAncestors", "key": key, "fields": "*"})
        ancestors = response[0].get("ancestors") or []
        result = [ExternalPerson.model_validate(person) for person in ancestors]
        logger.info(f"WikiTree returned {len(result)} ancestors for '{key}'")
        self._cache_put(cache_key, result)
        return result

    async def get_relatives(self, keys: list[str]) -> list[ExternalPerson]:
        result: list[ExternalPerson] = []
        keys_to_fetch = []
        for key in keys:
            cached = self._cache_get(f"wikitree:relatives:{key}")
            if cached is not None:
                result.append(cached)
            else:
                keys_to_fetch.append(key)
        if not keys_to_fetch:
            return result

        response = await self._get({
            "action": "getRelatives",
            "keys": ",".join(keys_to_fetch),
            "getChildren": "true",
            "getSpouses": "true",
        })
        items = response[0].get("items")
        if items is None:
            key = keys_to_fetch[0]
            raise TreeError(PROFILE_NOT_FOUND, f"WikiTree profile {key} not found", {"id": key})

        fetched = [ExternalPerson.model_validate(item["person"]) for item in items]
        for person in fetched:
            self._cache_put(f"wikitree:relatives:{person.name}", person)
        logger.info(f"WikiTree returned {len(fetched)} relatives records for {len(keys_to_fetch)} keys")
        return result + fetched

    async def client_login(self, authcode: str) -> ClientLoginResponse:
        """Logs in with an authcode. Cached anonymous responses are dropped on success."""
        response = await self._get({"action": "clientLogin", "authcode": authcode})
        login = ClientLoginResponse.model_validate(response["clientLogin"])
        if login.result == "Success":
            self.username = login.username
            if self._cache is not None:
                self._cache.clear()
        return login


# ============================================================================
# Private profiles
# ============================================================================

def offset_private_ids(
    ancestor_lists: list[list[ExternalPerson]],
    offset: int = PRIVATE_ID_OFFSET,
) -> tuple[list[list[ExternalPerson]], dict[int, int], dict[int, int]]:
    """
    Adjusts private individual ids so that there are no collisions when
    ancestors were collected for more than one person. List `i` is shifted by
    `offset * i`.

    Returns the adjusted lists and maps from person id to private father id and
    private mother id.
    """
    private_fathers: dict[int, int] = {}
    private_mothers: dict[int, int] = {}
    adjusted_lists = []
    for index, ancestors in enumerate(ancestor_lists):
        shift = offset * index
        adjusted = []
        for person in ancestors:
            update: dict[str, Any] = {}
            person_id = person.id
            if person.is_private:
                person_id = person.id - shift
                update["id"] = person_id
                update["name"] = f"{PRIVATE_ID_PREFIX}{person_id}"
            if person.father < 0:
                update["father"] = person.father - shift
                private_fathers[person_id] = update["father"]
            if person.mother < 0:
                update["mother"] = person.mother - shift
                private_mothers[person_id] = update["mother"]
            adjusted.append(person.model_copy(update=update) if update else person)
        adjusted_lists.append(adjusted)
    return adjusted_lists, private_fathers, private_mothers


def restore_private_parents(
    people: list[ExternalPerson],
    private_fathers: dict[int, int],
    private_mothers: dict[int, int],
) -> list[ExternalPerson]:
    """Sets private parents again because getRelatives doesn't return them."""
    result = []
    for person in people:
        update = {}
        if person.id in private_fathers:
            update["father"] = private_fathers[person.id]
        if person.id in private_mothers:
            update["mother"] = private_mothers[person.id]
        result.append(person.model_copy(update=update) if update else person)
    return result


# ============================================================================
# Fetching
# ============================================================================

async def fetch_descendants(
    key: str,
    repository: PersonRepository,
    generation_limit: int = DESCENDANT_GENERATION_LIMIT,
) -> list[ExternalPerson]:
    """
    Fetches the person, their descendants and the descendants' spouses.
    The number of generations is limited because there may be tens of
    generations for some profiles.
    """
    people_found: list[ExternalPerson] = []
    to_fetch = [key]
    generation = 0
    while to_fetch and generation <= generation_limit:
        people = await repository.get_relatives(to_fetch)
        people_found.extend(people)
        for person in people:
            people_found.extend(person.spouses.values())
        to_fetch = [
            child.name
            for person in people
            for child in person.children.values()
            if child.name
        ]
        logger.debug(f"Descendant generation {generation}: {len(people)} people, {len(to_fetch)} children")
        generation += 1
    return people_found


# ============================================================================
# Conversion
# ============================================================================

def family_id(spouse1: int, spouse2: int) -> str:
    """Creates a family identifier given 2 spouse identifiers."""
    return f"{min(spouse1, spouse2)}_{max(spouse1, spouse2)}"


class FamilyMemberships:
    """Families collected from person records, keyed by family id."""

    def __init__(self):
        # Person id -> families where they are a spouse (insertion ordered).
        self.families: dict[int, dict[str, None]] = defaultdict(dict)
        # Family id -> children ids (insertion ordered).
        self.children: dict[str, dict[int, None]] = defaultdict(dict)
        # Family id -> (wife id, husband id, spouse record carrying marriage data).
        self.spouses: dict[str, tuple[int, int, ExternalPerson | None]] = {}
        # Person id -> family in which they are a child.
        self.child_family: dict[int, str] = {}
        # Family ids defined through a spouse relationship.
        self._marriages: set[str] = set()

    def add_parents(self, person: ExternalPerson) -> None:
        if not person.has_parents or person.id in self.child_family:
            return
        fam_id = family_id(person.mother, person.father)
        self.child_family[person.id] = fam_id
        for parent in (person.mother, person.father):
            if parent:
                self.families[parent][fam_id] = None
        self.children[fam_id][person.id] = None
        if fam_id not in self.spouses:
            self.spouses[fam_id] = (person.mother, person.father, None)

    def add_spouses(self, person: ExternalPerson) -> None:
        for spouse in person.spouses.values():
            fam_id = family_id(person.id, spouse.id)
            self.families[person.id][fam_id] = None
            self.families[spouse.id][fam_id] = None
            if fam_id in self._marriages:
                continue
            self._marriages.add(fam_id)
            if person.gender == "Male":
                self.spouses[fam_id] = (spouse.id, person.id, spouse)
            else:
                self.spouses[fam_id] = (person.id, spouse.id, spouse)


def deduplicate(people: list[ExternalPerson]) -> list[ExternalPerson]:
    """Keeps the first record for every numeric id, preserving order."""
    seen: dict[int, ExternalPerson] = {}
    for person in people:
        if person.id not in seen:
            seen[person.id] = person
    return list(seen.values())


def build_memberships(everyone: list[ExternalPerson]) -> FamilyMemberships:
    memberships = FamilyMemberships()
    for person in everyone:
        memberships.add_parents(person)
    for person in everyone:
        memberships.add_spouses(person)
    return memberships


def _event(
    date: str | None,
    data_status: str | None,
    decade: str | None,
    place: str | None,
) -> Event | None:
    has_date = bool(date) and date != EMPTY_DATE
    has_decade = bool(decade) and decade != "unknown"
    if not (has_date or place or has_decade):
        return None
    parsed = parse_wikitree_date(date, data_status) or parse_decade(decade)
    return Event(
        date=parsed.date if parsed else None,
        date_range=parsed.date_range if parsed else None,
        place=place or None,
    )


def convert_person(
    person: ExternalPerson,
    memberships: FamilyMemberships,
    messages: dict[str, str] | None = None,
) -> Individual:
    messages = {**MESSAGES, **(messages or {})}
    key = person.key
    first_name = None
    hide_id = None
    if key.startswith(PRIVATE_ID_PREFIX):
        hide_id = True
        first_name = messages["wikitree.private"]
    if person.first_name and person.first_name != UNKNOWN:
        first_name = person.first_name
    elif person.real_name and person.real_name != UNKNOWN:
        first_name = person.real_name

    sex = {"Male": "M", "Female": "F"}.get(person.gender or "")
    data_status = person.data_status or DataStatus()
    images = None
    if person.photo_data and person.photo_data.url:
        images = [Image(url=f"{WIKITREE_URL}{person.photo_data.url}", title=person.photo)]

    return Individual(
        id=key,
        first_name=first_name,
        last_name=person.last_name_at_birth
        if person.last_name_at_birth and person.last_name_at_birth != UNKNOWN
        else None,
        sex=sex,
        birth=_event(person.birth_date, data_status.birth_date, person.birth_date_decade, person.birth_location),
        death=_event(person.death_date, data_status.death_date, person.death_date_decade, person.death_location),
        famc=memberships.child_family.get(person.id),
        fams=list(memberships.families.get(person.id, {})),
        images=images,
        hide_id=hide_id,
    )


def convert_families(memberships: FamilyMemberships, id_to_key: dict[int, str]) -> list[Family]:
    fams = []
    for fam_id, (wife, husband, spouse) in memberships.spouses.items():
        marriage = None
        if spouse is not None and (
            (spouse.marriage_date and spouse.marriage_date != EMPTY_DATE) or spouse.marriage_location
        ):
            parsed = parse_wikitree_date(spouse.marriage_date)
            marriage = Event(
                date=parsed.date if parsed else None,
                date_range=parsed.date_range if parsed else None,
                place=spouse.marriage_location or None,
            )
        fams.append(Family(
            id=fam_id,
            wife=id_to_key.get(wife) if wife else None,
            husb=id_to_key.get(husband) if husband else None,
            children=[id_to_key[child] for child in memberships.children.get(fam_id, {})],
            marriage=marriage,
        ))
    return fams


def is_similar_name(name1: str, name2: str, threshold: float = NAME_SIMILARITY_THRESHOLD) -> bool:
    """Fuzzy surname match tolerating declension, e.g. 'Nowakowa' and 'Nowak'."""
    ratio = SequenceMatcher(None, name1.lower().strip(), name2.lower().strip()).ratio()
    return ratio >= threshold


def surname_variants(person: ExternalPerson, spouse_surnames: list[str]) -> list[tuple[str, str]]:
    """
    Surnames to show in the details panel with their types: the birth name,
    a married name if it matches a spouse's birth name, and other names.
    """
    def known(name: str | None) -> str | None:
        name = (name or "").strip()
        return name if name and name != UNKNOWN else None

    birth = known(person.last_name_at_birth)
    variants = []
    if birth:
        variants.append((birth, "birth"))

    married = known(person.last_name_current)
    if married and married != birth and any(is_similar_name(married, s) for s in spouse_surnames):
        variants.append((married, "married"))
    else:
        married = None

    for other in (person.last_name_other or "").split(","):
        other = known(other)
        if other and other not in (birth, married) and (other, "aka") not in variants:
            variants.append((other, "aka"))
    return variants


def _spouse_surnames(person: ExternalPerson, by_id: dict[int, ExternalPerson]) -> list[str]:
    surnames = []
    for spouse_id, spouse in person.spouses.items():
        record = by_id.get(spouse.id or spouse_id, spouse)
        surname = record.last_name_at_birth or spouse.last_name_at_birth
        if surname:
            surnames.append(surname)
    return surnames


# ============================================================================
# Loading
# ============================================================================

async def load_wikitree(
    key: str,
    repository: PersonRepository,
    messages: dict[str, str] | None = None,
    generation_limit: int = DESCENDANT_GENERATION_LIMIT,
) -> LoadedData:
    """
    Loads data from WikiTree to populate an hourglass chart starting from the
    given person.
    """
    logger.info(f"Loading WikiTree data for '{key}'")

    # Fetch the ancestors of the input person and ancestors of their spouses.
    first_person = await repository.get_relatives([key])
    if not first_person:
        raise TreeError(PROFILE_NOT_FOUND, f"WikiTree profile {key} not found", {"id": key})
    if not first_person[0].name:
        raise TreeError(
            PROFILE_NOT_ACCESSIBLE,
            f"WikiTree profile {key} is not accessible. Try logging in.",
            {"id": key},
        )

    spouse_keys = [spouse.name for spouse in first_person[0].spouses.values() if spouse.name]
    ancestor_lists = await asyncio.gather(
        *(repository.get_ancestors(person_key) for person_key in [key, *spouse_keys])
    )
    ancestor_lists, private_fathers, private_mothers = offset_private_ids(list(ancestor_lists))

    ancestor_keys = [
        person.name
        for ancestors in ancestor_lists
        for person in ancestors
        if person.name and not person.is_private
    ]
    ancestor_details = restore_private_parents(
        await repository.get_relatives(ancestor_keys) if ancestor_keys else [],
        private_fathers,
        private_mothers,
    )
    private_ancestors = [person for ancestors in ancestor_lists for person in ancestors if person.is_private]

    everyone = [*ancestor_details, *private_ancestors]
    everyone.extend(await fetch_descendants(key, repository, generation_limit))

    memberships = build_memberships(everyone)
    people = deduplicate(everyone)
    id_to_key = {person.id: person.key for person in people}
    by_id = {person.id: person for person in people}

    indis = []
    full_size_photo_urls = {}
    name_variants = {}
    for person in people:
        indis.append(convert_person(person, memberships, messages))
        if person.photo_data and person.photo_data.path:
            full_size_photo_urls[person.key] = f"{WIKITREE_URL}{person.photo_data.path}"
        if not person.is_private:
            variants = surname_variants(person, _spouse_surnames(person, by_id))
            if len(variants) > 1:
                name_variants[person.key] = variants

    fams = convert_families(memberships, id_to_key)
    chart_data = normalize_gedcom(GraphData(indis=indis, fams=fams))
    logger.info(f"Loaded {len(indis)} individuals and {len(fams)} families from WikiTree for '{key}'")
    return LoadedData(
        chart_data=chart_data,
        gedcom=build_gedcom(chart_data, full_size_photo_urls, name_variants),
    )
