"""Tests for the WikiTree client and family graph builder."""

import asyncio
import json
import os
import sys
from urllib.parse import parse_qs

import httpx
import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sources.cache import LRUTTLCache
from sources.wikitree import (
    ExternalPerson,
    WikiTreeClient,
    family_id,
    fetch_descendants,
    is_similar_name,
    load_wikitree,
    offset_private_ids,
    restore_private_parents,
    surname_variants,
)
from tree_errors import PROFILE_NOT_ACCESSIBLE, PROFILE_NOT_FOUND, TreeError


def person(**fields) -> ExternalPerson:
    return ExternalPerson.model_validate(fields)


class FakeRepository:
    """In-memory person repository recording the calls made to it."""

    def __init__(self, relatives=None, ancestors=None):
        self.relatives = relatives or {}
        self.ancestors = ancestors or {}
        self.relatives_calls = []
        self.ancestors_calls = []

    async def get_ancestors(self, key):
        self.ancestors_calls.append(key)
        return self.ancestors.get(key, [])

    async def get_relatives(self, keys):
        self.relatives_calls.append(list(keys))
        return [self.relatives[key] for key in keys if key in self.relatives]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def repository():
    """Root with a spouse and a child; both partners have a private grandparent."""
    root = person(
        Id=1,
        Name="Root-1",
        FirstName="Jan",
        LastNameAtBirth="Kowalski",
        Gender="Male",
        Father=3,
        Mother=None,
        BirthDate="1900-05-00",
        DataStatus={"BirthDate": "guess"},
        DeathDate="0000-00-00",
        DeathDateDecade="1960s",
        BirthLocation="Warsaw",
        Photo="jan.jpg",
        PhotoData={"path": "/photo.php/jan.jpg", "url": "/images/thumb/jan.jpg"},
        Spouses={"2": {
            "Id": 2,
            "Name": "Spouse-2",
            "marriage_date": "1925-06-00",
            "marriage_location": "Kraków",
        }},
        Children={"5": {"Id": 5, "Name": "Child-5"}},
    )
    spouse = person(
        Id=2,
        Name="Spouse-2",
        FirstName="Unknown",
        RealName="Anna",
        LastNameAtBirth="Nowak",
        LastNameCurrent="Kowalska",
        LastNameOther="Nowakówna",
        Gender="Female",
        Mother=4,
        Spouses={"1": {"Id": 1, "Name": "Root-1", "LastNameAtBirth": "Kowalski"}},
        Children=[],
    )
    father = person(Id=3, Name="Father-3", FirstName="Adam", LastNameAtBirth="Kowalski", Gender="Male")
    mother = person(Id=4, Name="Mother-4", FirstName="Ewa", LastNameAtBirth="Nowak", Gender="Female")
    child = person(Id=5, Name="Child-5", FirstName="Piotr", LastNameAtBirth="Kowalski", Mother=2, Father=1)

    return FakeRepository(
        relatives={
            "Root-1": root,
            "Spouse-2": spouse,
            "Father-3": father,
            "Mother-4": mother,
            "Child-5": child,
        },
        ancestors={
            "Root-1": [
                root,
                person(Id=3, Name="Father-3", Father=-1),
                person(Id=-1, Gender="Male"),
            ],
            "Spouse-2": [
                spouse,
                person(Id=4, Name="Mother-4", Mother=-1),
                person(Id=-1, Gender="Female"),
            ],
        },
    )


@pytest.fixture
def loaded(repository):
    return asyncio.run(load_wikitree("Root-1", repository))


def find_indi(loaded, indi_id):
    return next(indi for indi in loaded.chart_data.indis if indi.id == indi_id)


def find_fam(loaded, fam_id):
    return next(fam for fam in loaded.chart_data.fams if fam.id == fam_id)


# ============================================================================
# Record Tests
# ============================================================================

class TestExternalPerson:
    """Tests for WikiTree record normalization."""

    def test_unknown_ids(self):
        record = person(Id=7, Name="A-7", Mother=None, Father=0)
        assert record.mother == 0
        assert not record.has_parents

    def test_empty_relatives_list(self):
        record = person(Id=7, Spouses=[], Children=[])
        assert record.spouses == {}
        assert record.children == {}

    def test_private_key(self):
        assert person(Id=-3).key == "~Private-3"
        assert person(Id=-3).is_private
        assert person(Id=3, Name="A-3").key == "A-3"


# ============================================================================
# Private Id Tests
# ============================================================================

class TestPrivateIds:
    """Tests for private profile id handling."""

    def test_offset_per_list(self):
        lists = [
            [person(Id=-1), person(Id=10, Name="A-10", Father=-1)],
            [person(Id=-1), person(Id=20, Name="B-20", Mother=-1)],
        ]
        adjusted, fathers, mothers = offset_private_ids(lists)
        assert [p.key for p in adjusted[0]] == ["~Private-1", "A-10"]
        assert [p.key for p in adjusted[1]] == ["~Private-1001", "B-20"]
        assert fathers == {10: -1}
        assert mothers == {20: -1001}

    def test_input_not_modified(self):
        lists = [[person(Id=5, Name="A-5")], [person(Id=-1)]]
        offset_private_ids(lists)
        assert lists[1][0].id == -1
        assert lists[1][0].name == ""

    def test_restore_private_parents(self):
        people = [person(Id=10, Name="A-10"), person(Id=20, Name="B-20")]
        restored = restore_private_parents(people, {10: -1}, {20: -1001})
        assert restored[0].father == -1
        assert restored[1].mother == -1001
        assert people[0].father == 0

    def test_branches_do_not_collide(self, loaded):
        ids = [indi.id for indi in loaded.chart_data.indis]
        assert "~Private-1" in ids
        assert "~Private-1001" in ids
        assert len(ids) == len(set(ids))

    def test_private_individual(self, loaded):
        private = find_indi(loaded, "~Private-1")
        assert private.hide_id is True
        assert private.first_name == "Private"
        assert private.sex == "M"


# ============================================================================
# Family Tests
# ============================================================================

class TestFamilies:
    """Tests for family identity and membership."""

    @pytest.mark.parametrize("a,b", [(1, 2), (2, 1), (-1001, 5), (0, 3)])
    def test_family_id_symmetric(self, a, b):
        assert family_id(a, b) == family_id(b, a)

    def test_family_id_format(self):
        assert family_id(5, 2) == "2_5"

    def test_couple_family(self, loaded):
        family = find_fam(loaded, "1_2")
        assert family.husb == "Root-1"
        assert family.wife == "Spouse-2"
        assert family.children == ["Child-5"]
        assert family.marriage.date.year == 1925
        assert family.marriage.date.month == 6
        assert family.marriage.place == "Kraków"

    def test_single_parent_family(self, loaded):
        family = find_fam(loaded, "0_3")
        assert family.husb == "Father-3"
        assert family.wife is None
        assert family.children == ["Root-1"]
        assert family.marriage is None

    def test_private_parent_family(self, loaded):
        assert find_fam(loaded, "-1_0").husb == "~Private-1"
        assert find_fam(loaded, "-1001_0").wife == "~Private-1001"
        assert find_indi(loaded, "Mother-4").famc == "-1001_0"

    def test_memberships(self, loaded):
        root = find_indi(loaded, "Root-1")
        assert root.famc == "0_3"
        assert root.fams == ["1_2"]
        assert find_indi(loaded, "Child-5").famc == "1_2"


# ============================================================================
# Conversion Tests
# ============================================================================

class TestConversion:
    """Tests for WikiTree person conversion."""

    def test_root_fields(self, loaded):
        root = find_indi(loaded, "Root-1")
        assert root.first_name == "Jan"
        assert root.last_name == "Kowalski"
        assert root.sex == "M"
        assert root.birth.date.year == 1900
        assert root.birth.date.month == 5
        assert root.birth.date.qualifier == "abt"
        assert root.birth.place == "Warsaw"

    def test_decade_fallback(self, loaded):
        assert find_indi(loaded, "Root-1").death.date.text == "1960s"

    def test_real_name_fallback(self, loaded):
        assert find_indi(loaded, "Spouse-2").first_name == "Anna"

    def test_photo(self, loaded):
        images = find_indi(loaded, "Root-1").images
        assert images[0].url == "https://www.wikitree.com/images/thumb/jan.jpg"
        assert images[0].title == "jan.jpg"
        file_entry = next(e for e in loaded.gedcom.indis["Root-1"].tree if e.tag == "OBJE").tree[0]
        assert file_entry.data == "https://www.wikitree.com/photo.php/jan.jpg"

    def test_name_variants_in_details(self, loaded):
        names = [e for e in loaded.gedcom.indis["Spouse-2"].tree if e.tag == "NAME"]
        assert [(n.data, n.tree[0].data) for n in names] == [
            ("Anna /Nowak/", "birth"),
            ("Anna /Kowalska/", "married"),
            ("Anna /Nowakówna/", "aka"),
        ]

    def test_ancestors_fetched_in_parallel_branches(self, repository, loaded):
        assert sorted(repository.ancestors_calls) == ["Root-1", "Spouse-2"]


# ============================================================================
# Name Policy Tests
# ============================================================================

class TestNamePolicy:
    """Tests for surname variants."""

    def test_similar_names(self):
        assert is_similar_name("Nowakowa", "Nowak")
        assert is_similar_name("Kowalska", "Kowalski")
        assert not is_similar_name("Smith", "Jones")

    def test_married_name_matching_spouse(self):
        record = person(Id=1, LastNameAtBirth="Skłodowska", LastNameCurrent="Curie")
        assert surname_variants(record, ["Curie"]) == [("Skłodowska", "birth"), ("Curie", "married")]

    def test_married_name_not_matching_spouse(self):
        record = person(Id=1, LastNameAtBirth="Nowak", LastNameCurrent="Smith")
        assert surname_variants(record, ["Jones"]) == [("Nowak", "birth")]

    def test_current_same_as_birth(self):
        record = person(Id=1, LastNameAtBirth="Nowak", LastNameCurrent="Nowak")
        assert surname_variants(record, ["Nowak"]) == [("Nowak", "birth")]

    def test_other_names(self):
        record = person(
            Id=1,
            LastNameAtBirth="Skłodowska",
            LastNameCurrent="Curie",
            LastNameOther="Curie, Sklodowska-Curie",
        )
        assert surname_variants(record, ["Curie"]) == [
            ("Skłodowska", "birth"),
            ("Curie", "married"),
            ("Sklodowska-Curie", "aka"),
        ]


# ============================================================================
# Loading Tests
# ============================================================================

class TestLoading:
    """Tests for the load failure modes and the descendant walk."""

    def test_profile_not_found(self):
        with pytest.raises(TreeError) as excinfo:
            asyncio.run(load_wikitree("Nobody-1", FakeRepository()))
        assert excinfo.value.code == PROFILE_NOT_FOUND
        assert excinfo.value.args_map == {"id": "Nobody-1"}

    def test_profile_not_accessible(self):
        repository = FakeRepository(relatives={"Hidden-1": person(Id=1)})
        with pytest.raises(TreeError) as excinfo:
            asyncio.run(load_wikitree("Hidden-1", repository))
        assert excinfo.value.code == PROFILE_NOT_ACCESSIBLE

    def test_repository_failure_propagates(self, repository):
        async def failing(key):
            raise httpx.ConnectError("offline")

        repository.get_ancestors = failing
        with pytest.raises(httpx.ConnectError):
            asyncio.run(load_wikitree("Root-1", repository))

    def test_generation_limit(self):
        relatives = {}
        for index in range(10):
            children = {str(index + 1): {"Id": index + 1, "Name": f"A-{index + 1}"}}
            relatives[f"A-{index}"] = person(Id=index, Name=f"A-{index}", Children=children)
        repository = FakeRepository(relatives=relatives)

        people = asyncio.run(fetch_descendants("A-0", repository, generation_limit=2))

        assert [p.name for p in people] == ["A-0", "A-1", "A-2"]
        assert repository.relatives_calls == [["A-0"], ["A-1"], ["A-2"]]

    def test_descendants_include_spouses(self, repository):
        people = asyncio.run(fetch_descendants("Root-1", repository))
        assert [p.name for p in people] == ["Root-1", "Spouse-2", "Child-5"]


# ============================================================================
# Client Tests
# ============================================================================

class TestWikiTreeClient:
    """Tests for the WikiTree API client."""

    @pytest.fixture
    def requests(self):
        return []

    def make_client(self, requests, responses, cache=None):
        def handler(request: httpx.Request) -> httpx.Response:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            requests.append(form)
            status, body = responses[form["action"]]
            return httpx.Response(status, content=json.dumps(body))

        return WikiTreeClient(
            cache=cache,
            api_url="https://api.example.com/api.php",
            transport=httpx.MockTransport(handler),
        )

    def test_get_ancestors(self, requests):
        client = self.make_client(requests, {
            "getAncestors": (200, [{"ancestors": [{"Id": 1, "Name": "A-1"}, {"Id": -2}]}]),
        })
        ancestors = asyncio.run(client.get_ancestors("A-1"))
        assert [a.key for a in ancestors] == ["A-1", "~Private-2"]
        assert requests[0]["format"] == "json"
        assert requests[0]["key"] == "A-1"

    def test_get_ancestors_cached(self, requests):
        client = self.make_client(requests, {
            "getAncestors": (200, [{"ancestors": [{"Id": 1, "Name": "A-1"}]}]),
        }, cache=LRUTTLCache())

        async def fetch_twice():
            await client.get_ancestors("A-1")
            return await client.get_ancestors("A-1")

        assert [a.name for a in asyncio.run(fetch_twice())] == ["A-1"]
        assert len(requests) == 1

    def test_get_relatives_fetches_uncached_keys(self, requests):
        cache = LRUTTLCache()
        cache.put("wikitree:relatives:A-1", person(Id=1, Name="A-1"))
        client = self.make_client(requests, {
            "getRelatives": (200, [{"items": [{"key": "B-2", "person": {"Id": 2, "Name": "B-2"}}]}]),
        }, cache=cache)

        people = asyncio.run(client.get_relatives(["A-1", "B-2"]))

        assert [p.name for p in people] == ["A-1", "B-2"]
        assert requests[0]["keys"] == "B-2"
        assert cache.get("wikitree:relatives:B-2").id == 2

    def test_get_relatives_empty_keys(self, requests):
        client = self.make_client(requests, {})
        assert asyncio.run(client.get_relatives([])) == []
        assert requests == []

    def test_get_relatives_not_found(self, requests):
        client = self.make_client(requests, {"getRelatives": (200, [{"items": None}])})
        with pytest.raises(TreeError) as excinfo:
            asyncio.run(client.get_relatives(["Nobody-1"]))
        assert excinfo.value.code == PROFILE_NOT_FOUND

    def test_http_error(self, requests):
        client = self.make_client(requests, {"getAncestors": (500, {"error": "down"})})
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(client.get_ancestors("A-1"))

    def test_client_login(self, requests):
        client = self.make_client(requests, {
            "clientLogin": (200, {"clientLogin": {"result": "Success", "username": "Jan"}}),
        })
        login = asyncio.run(client.client_login("secret"))
        assert login.result == "Success"
        assert requests[0]["authcode"] == "secret"
        assert client.username == "Jan"

    def test_login_drops_anonymous_responses(self, requests):
        responses = {
            "getAncestors": (200, [{"ancestors": [{"Id": -7}]}]),
            "clientLogin": (200, {"clientLogin": {"result": "Success", "username": "Jan"}}),
        }
        client = self.make_client(requests, responses, cache=LRUTTLCache())

        async def fetch_login_fetch():
            before = await client.get_ancestors("Root-1")
            await client.client_login("secret")
            responses["getAncestors"] = (200, [{"ancestors": [{"Id": 7, "Name": "Anna-7"}]}])
            after = await client.get_ancestors("Root-1")
            return before, after

        before, after = asyncio.run(fetch_login_fetch())
        assert [a.id for a in before] == [-7]
        assert [a.id for a in after] == [7]
        assert [r["action"] for r in requests] == ["getAncestors", "clientLogin", "getAncestors"]

    def test_failed_login_keeps_cache(self, requests):
        cache = LRUTTLCache()
        cache.put("wikitree:relatives:A-1", person(Id=1, Name="A-1"))
        client = self.make_client(requests, {
            "clientLogin": (200, {"clientLogin": {"result": "Failure"}}),
        }, cache=cache)
        login = asyncio.run(client.client_login("wrong"))
        assert login.result == "Failure"
        assert client.username is None
        assert cache.get("wikitree:relatives:A-1").id == 1
