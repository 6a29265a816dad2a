"""Tests for repository keys and the approved library registry."""

import pytest

from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.libraries.schemas import ApprovedLibrary, RepositoryKey
from ris_collector.storage import keys


class TestRepositoryKey:
    """Tests for RepositoryKey."""

    def test_parse(self):
        key = RepositoryKey.parse("acme/widgets")

        assert key == RepositoryKey("acme", "widgets")
        assert str(key) == "acme/widgets"

    @pytest.mark.parametrize("value", ["acme", "acme/widgets/extra", "/widgets", "acme/", ""])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            RepositoryKey.parse(value)

    def test_hashable_and_ordered(self):
        keys_ = {RepositoryKey("b", "x"), RepositoryKey("a", "y"), RepositoryKey("a", "y")}

        assert sorted(keys_) == [RepositoryKey("a", "y"), RepositoryKey("b", "x")]


class TestLibraryRegistry:
    """Tests for LibraryRegistry."""

    @pytest.fixture
    def registry(self, store):
        store.hashes[keys.APPROVED_LIBRARIES] = {
            "acme/widgets": ApprovedLibrary(
                owner="acme", repo="widgets", library_name="widgets-js", approved_by="ops"
            ).model_dump_json(),
            "zeta/gears": ApprovedLibrary(owner="zeta", repo="gears").model_dump_json(),
            "broken/entry": "{not json",
        }
        return LibraryRegistry(store)

    @pytest.mark.asyncio
    async def test_get_approved_skips_malformed(self, registry):
        libraries = await registry.get_approved()

        assert [lib.key for lib in libraries] == [
            RepositoryKey("acme", "widgets"),
            RepositoryKey("zeta", "gears"),
        ]
        assert libraries[0].library_name == "widgets-js"
        assert libraries[0].model_extra == {"approved_by": "ops"}

    @pytest.mark.asyncio
    async def test_is_approved(self, registry):
        assert await registry.is_approved(RepositoryKey("acme", "widgets"))
        assert not await registry.is_approved(RepositoryKey("acme", "other"))

    @pytest.mark.asyncio
    async def test_get_approved_library(self, registry):
        library = await registry.get_approved_library(RepositoryKey("zeta", "gears"))

        assert library is not None
        assert library.library_name is None
        assert await registry.get_approved_library(RepositoryKey("broken", "entry")) is None
        assert await registry.get_approved_library(RepositoryKey("no", "such")) is None

    @pytest.mark.asyncio
    async def test_count(self, registry):
        assert await registry.count() == 3
