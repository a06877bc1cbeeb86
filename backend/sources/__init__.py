"""Data sources for the family graph: uploaded GEDCOM files, GEDCOM URLs and WikiTree."""

from .cache import KeyValueCache, LRUTTLCache
from .data_source import (
    DataSource,
    GedcomUrlDataSource,
    IndiInfo,
    SourceSelection,
    UploadedDataSource,
    UploadSourceSpec,
    UrlSourceSpec,
    WikiTreeDataSource,
    WikiTreeSourceSpec,
    get_selection,
    load_from_url,
    load_gedcom,
)
from .wikitree import ExternalPerson, PersonRepository, WikiTreeClient, load_wikitree

__all__ = [
    "KeyValueCache",
    "LRUTTLCache",
    "DataSource",
    "GedcomUrlDataSource",
    "IndiInfo",
    "SourceSelection",
    "UploadedDataSource",
    "UploadSourceSpec",
    "UrlSourceSpec",
    "WikiTreeDataSource",
    "WikiTreeSourceSpec",
    "get_selection",
    "load_from_url",
    "load_gedcom",
    "ExternalPerson",
    "PersonRepository",
    "WikiTreeClient",
    "load_wikitree",
]
