"""Tests for the SQLite watchlist store."""

import tempfile
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

from dexbot.persist.watchlists import SQLiteWatchlistStore


class TestSQLiteWatchlistStore:
    """Test watchlist store functionality."""

    @pytest_asyncio.fixture
    async def store(self):
        """Create a temporary watchlist store."""
        with tempfile.NamedTemporaryFile(suffix=".sqlite", delete=False) as tmp:
            db_path = tmp.name

        store = SQLiteWatchlistStore(db_path=db_path)
        await store.initialize()

        yield store

        await store.close()
        Path(db_path).unlink(missing_ok=True)

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        """Test creating and loading a watchlist."""
        watchlist = await store.create("Memes")
        loaded = await store.get(watchlist.id)

        assert loaded == watchlist
        assert loaded.name == "Memes"
        assert loaded.created_at == loaded.updated_at
        assert await store.get(9999) is None

    @pytest.mark.asyncio
    async def test_list_all_newest_first(self, store):
        """Test watchlists are listed newest first."""
        first = await store.create("First")
        second = await store.create("Second")

        watchlists = await store.list_all()

        assert [w.id for w in watchlists] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_rename(self, store):
        """Test renaming a watchlist."""
        watchlist = await store.create("Old")

        assert await store.rename(watchlist.id, "New") is True
        assert (await store.get(watchlist.id)).name == "New"
        assert await store.rename(9999, "Nope") is False

    @pytest.mark.asyncio
    async def test_add_token_is_idempotent(self, store):
        """Test adding a symbol twice keeps a single entry."""
        watchlist = await store.create("Memes")

        first = await store.add_token(watchlist.id, "PEPE", "Pepe", "pepe-pair")
        second = await store.add_token(watchlist.id, "PEPE", "Pepe", "other-pair")

        assert second.id == first.id
        assert second.pair_address == "pepe-pair"
        assert len(await store.list_tokens(watchlist.id)) == 1

    @pytest.mark.asyncio
    async def test_add_token_to_missing_watchlist(self, store):
        """Test tokens need an existing watchlist."""
        with pytest.raises(aiosqlite.IntegrityError):
            await store.add_token(9999, "PEPE", "Pepe", "pepe-pair")

    @pytest.mark.asyncio
    async def test_add_token_fields(self, store):
        """Test token entries keep their chain and pair."""
        watchlist = await store.create("Mixed")

        token = await store.add_token(
            watchlist.id, "WETH", "Wrapped Ether", "weth-pair", chain_id="ethereum"
        )

        assert token.watchlist_id == watchlist.id
        assert token.token_symbol == "WETH"
        assert token.token_name == "Wrapped Ether"
        assert token.chain_id == "ethereum"
        assert token.added_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_token_in_two_watchlists(self, store):
        """Test a symbol stays watchlisted until removed everywhere."""
        memes = await store.create("Memes")
        frogs = await store.create("Frogs")
        await store.add_token(memes.id, "PEPE", "Pepe", "pepe-pair")
        await store.add_token(frogs.id, "PEPE", "Pepe", "pepe-pair")

        holders = await store.watchlists_for_token("PEPE")
        assert {w.id for w in holders} == {memes.id, frogs.id}

        assert await store.remove_token(memes.id, "PEPE") is True
        assert await store.is_token_watchlisted("PEPE") is True

        assert await store.remove_token(frogs.id, "PEPE") is True
        assert await store.is_token_watchlisted("PEPE") is False
        assert await store.watchlists_for_token("PEPE") == []

    @pytest.mark.asyncio
    async def test_remove_missing_token(self, store):
        """Test removing an absent symbol reports False."""
        watchlist = await store.create("Empty")

        assert await store.remove_token(watchlist.id, "NOPE") is False

    @pytest.mark.asyncio
    async def test_delete_cascades_to_tokens(self, store):
        """Test deleting a watchlist removes its tokens."""
        watchlist = await store.create("Doomed")
        await store.add_token(watchlist.id, "BONK", "Bonk", "bonk-pair")
        await store.add_token(watchlist.id, "WIF", "dogwifhat", "wif-pair")

        assert await store.delete(watchlist.id) is True

        assert await store.get(watchlist.id) is None
        assert await store.list_tokens(watchlist.id) == []
        assert await store.list_all_tokens() == []
        assert await store.is_token_watchlisted("BONK") is False
        assert await store.delete(watchlist.id) is False

    @pytest.mark.asyncio
    async def test_list_all_tokens(self, store):
        """Test listing entries across watchlists."""
        memes = await store.create("Memes")
        blue = await store.create("Blue chips")
        await store.add_token(memes.id, "BONK", "Bonk", "bonk-pair")
        await store.add_token(blue.id, "SOL", "Solana", "sol-pair")
        await store.add_token(blue.id, "BONK", "Bonk", "bonk-pair")

        tokens = await store.list_all_tokens()

        assert len(tokens) == 3
        assert sorted(t.token_symbol for t in tokens) == ["BONK", "BONK", "SOL"]

    @pytest.mark.asyncio
    async def test_list_with_token_counts(self, store):
        """Test token counts include empty watchlists."""
        memes = await store.create("Memes")
        empty = await store.create("Empty")
        await store.add_token(memes.id, "BONK", "Bonk", "bonk-pair")
        await store.add_token(memes.id, "WIF", "dogwifhat", "wif-pair")

        counts = {w.id: count for w, count in await store.list_with_token_counts()}

        assert counts == {memes.id: 2, empty.id: 0}

    @pytest.mark.asyncio
    async def test_add_token_touches_watchlist(self, store):
        """Test adding a token bumps the watchlist update time."""
        watchlist = await store.create("Memes")

        await store.add_token(watchlist.id, "BONK", "Bonk", "bonk-pair")
        loaded = await store.get(watchlist.id)

        assert loaded.updated_at >= watchlist.updated_at
