"""Data sources that load a family graph: uploaded files, GEDCOM URLs and WikiTree."""

import logging
import re
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

import httpx

from gedcom_utils import convert_gedcom, get_software
from sources.cache import KeyValueCache
from sources.wikitree import PersonRepository, WikiTreeClient, load_wikitree
from tree_errors import ERROR_LOADING_UPLOADED_FILE, ID_NOT_PROVIDED, TreeError
from tree_models import GraphData, LoadedData

logger = logging.getLogger("familygraph.sources.data_source")


GOOGLE_DRIVE_PATTERNS = [
    re.compile(r"https://drive\.google\.com/file/d/(.*)/.*"),
    re.compile(r"https://drive\.google\.com/open\?id=([^&]*)&?.*"),
]


@dataclass(frozen=True)
class IndiInfo:
    """Selected individual and the generation shown around them."""

    id: str
    generation: int = 0


@dataclass
class UploadSourceSpec:
    # Hash of the GEDCOM contents.
    hash: str
    gedcom: str | None = None
    images: dict[str, str] = field(default_factory=dict)


@dataclass
class UrlSourceSpec:
    # URL of the data that is loaded or is being loaded.
    url: str


@dataclass
class WikiTreeSourceSpec:
    authcode: str | None = None


SpecT = TypeVar("SpecT")


@dataclass
class SourceSelection(Generic[SpecT]):
    """Data source parameters together with the selected individual."""

    spec: SpecT
    selection: IndiInfo | None = None


class DataSource(Protocol[SpecT]):
    def is_new_data(
        self,
        new_source: SourceSelection[SpecT],
        old_source: SourceSelection[SpecT],
        data: LoadedData | None = None,
    ) -> bool:
        """
        Returns True if a completely new data set is being loaded and the
        existing one should be discarded.
        """
        ...

    async def load_data(self, source: SourceSelection[SpecT]) -> LoadedData:
        """Loads data from the data source."""
        ...


def get_selection(data: GraphData, selection: IndiInfo | None = None) -> IndiInfo:
    """
    Returns a valid selection: the given one if the individual exists in the
    data, otherwise the first individual at generation 0.
    """
    if selection is not None and any(indi.id == selection.id for indi in data.indis):
        return IndiInfo(id=selection.id, generation=selection.generation or 0)
    return IndiInfo(id=data.indis[0].id, generation=selection.generation if selection else 0)


def _prepare_data(
    gedcom: str,
    cache_id: str,
    cache: KeyValueCache | None,
    images: dict[str, str] | None = None,
) -> LoadedData:
    data = convert_gedcom(gedcom, images or {})
    if cache is not None and cache_id:
        cache.put(cache_id, data)
    return data


def load_gedcom(
    hash_: str,
    gedcom: str | None = None,
    images: dict[str, str] | None = None,
    cache: KeyValueCache | None = None,
) -> LoadedData:
    """Loads data from the given GEDCOM contents, or from the cache by hash."""
    cached = cache.get(hash_) if cache is not None and hash_ else None
    if cached is not None:
        logger.debug(f"Using cached data for {hash_}")
        return cached
    if not gedcom:
        raise TreeError(
            ERROR_LOADING_UPLOADED_FILE,
            "Error loading data. Please upload your file again.",
        )
    return _prepare_data(gedcom, hash_, cache, images)


def resolve_download_url(url: str) -> str:
    """Turns Google Drive share links into direct download links."""
    for pattern in GOOGLE_DRIVE_PATTERNS:
        match = pattern.match(url)
        if match:
            return f"https://drive.google.com/uc?id={match.group(1)}&export=download"
    return url


async def load_from_url(
    url: str,
    cache: KeyValueCache | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LoadedData:
    """Fetches a GEDCOM file from the given URL."""
    cached = cache.get(url) if cache is not None else None
    if cached is not None:
        logger.debug(f"Using cached data for {url}")
        return cached

    download_url = resolve_download_url(url)
    logger.info(f"Fetching GEDCOM from {download_url}")
    async with httpx.AsyncClient(timeout=30.0, transport=transport, follow_redirects=True) as client:
        response = await client.get(download_url)
        response.raise_for_status()
    return _prepare_data(response.text, url, cache)


class UploadedDataSource:
    """Files opened from the local computer."""

    def __init__(self, cache: KeyValueCache | None = None):
        self._cache = cache

    def is_new_data(self, new_source, old_source, data=None) -> bool:
        return new_source.spec.hash != old_source.spec.hash

    async def load_data(self, source: SourceSelection[UploadSourceSpec]) -> LoadedData:
        data = load_gedcom(source.spec.hash, source.spec.gedcom, source.spec.images, self._cache)
        logger.info(
            f"Loaded uploaded file (software: {get_software(data.gedcom.head)}, "
            f"images: {len(source.spec.images)})"
        )
        return data


class GedcomUrlDataSource:
    """GEDCOM file loaded by pointing to a URL."""

    def __init__(self, cache: KeyValueCache | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._cache = cache
        self._transport = transport

    def is_new_data(self, new_source, old_source, data=None) -> bool:
        return new_source.spec.url != old_source.spec.url

    async def load_data(self, source: SourceSelection[UrlSourceSpec]) -> LoadedData:
        data = await load_from_url(source.spec.url, self._cache, self._transport)
        logger.info(f"Loaded GEDCOM from URL (software: {get_software(data.gedcom.head)})")
        return data


class WikiTreeDataSource:
    """Loading data from the WikiTree API."""

    def __init__(self, repository: PersonRepository, messages: dict[str, str] | None = None):
        self._repository = repository
        self._messages = messages

    def is_new_data(
        self,
        new_source: SourceSelection[WikiTreeSourceSpec],
        old_source: SourceSelection[WikiTreeSourceSpec],
        data: LoadedData | None = None,
    ) -> bool:
        if new_source.selection is None:
            return False
        if old_source.selection is not None and old_source.selection.id == new_source.selection.id:
            # Selection unchanged -> don't reload.
            return False
        if data is not None and any(
            indi.id == new_source.selection.id for indi in data.chart_data.indis
        ):
            # New selection exists in current view -> no reload needed.
            return False
        return True

    async def load_data(self, source: SourceSelection[WikiTreeSourceSpec]) -> LoadedData:
        if source.selection is None or not source.selection.id:
            raise TreeError(ID_NOT_PROVIDED, "WikiTree id needs to be provided")

        if (
            source.spec.authcode
            and isinstance(self._repository, WikiTreeClient)
            and not self._repository.username
        ):
            login = await self._repository.client_login(source.spec.authcode)
            logger.info(f"WikiTree login result: {login.result}")

        try:
            return await load_wikitree(source.selection.id, self._repository, self._messages)
        except Exception:
            logger.warning(f"Failed to load WikiTree data for '{source.selection.id}'")
            raise
