"""
Tests for statistic entities and the fetch/push contract.

Run with: python -m pytest tests/test_entities.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from statsdb import PlayerData, TotalBlocksData, encode_bool, get_timestamp
from statsdb.tables import PlayersTable, TotalBlocksTable


def player_rows(db, player_id):
    return db.query(PlayersTable.TABLE_NAME).condition(PlayersTable.PLAYER_ID, player_id).select()


class TestEncoding:

    def test_encode_bool(self):
        assert encode_bool(True) == 1
        assert encode_bool(False) == 0

    def test_timestamp_is_integer_seconds(self):
        stamp = get_timestamp()
        assert isinstance(stamp, int)
        assert stamp > 1_000_000_000


class TestPlayerData:
    """Player 42 joins for the first time at t=1000"""

    @pytest.fixture
    def player(self, patched_db):
        return PlayerData(patched_db, 'Steve', now=1000)

    def test_fetch_inserts_defaults(self, patched_db, player):
        player.fetch_data(42)

        rows = player_rows(patched_db, 42)
        assert len(rows) == 1
        row = rows[0]
        assert row.get_int(PlayersTable.PLAYER_ID) == 42
        assert row.get_string(PlayersTable.NAME) == 'Steve'
        assert row.get_int(PlayersTable.ONLINE) == 1
        assert row.get_long(PlayersTable.SESSION_START) == 1000
        assert row.get_long(PlayersTable.FIRST_LOGIN) == 1000
        assert row.get_int(PlayersTable.LOGINS) == 0

        # In-memory entity keeps the defaults it inserted
        assert player.online is True
        assert player.session_start == 1000
        assert player.first_join == 1000
        assert player.logins == 0

    def test_second_fetch_does_not_insert(self, patched_db, player):
        player.fetch_data(42)
        player.fetch_data(42)

        assert len(player_rows(patched_db, 42)) == 1

    def test_push_overwrites_row(self, patched_db, player):
        player.fetch_data(42)
        player.logins = 1

        assert player.push_data(42) is True

        row = player_rows(patched_db, 42)[0]
        assert row.get_int(PlayersTable.LOGINS) == 1
        assert row.get_int(PlayersTable.ONLINE) == 1
        assert row.get_long(PlayersTable.SESSION_START) == 1000
        assert row.get_long(PlayersTable.FIRST_LOGIN) == 1000
        assert row.get_string(PlayersTable.NAME) == 'Steve'

    def test_fetch_existing_row_loads_history(self, patched_db, player):
        player.fetch_data(42)
        player.logins = 7
        player.push_data(42)

        returning = PlayerData(patched_db, 'Steve', now=5000)
        returning.fetch_data(42)

        assert returning.logins == 7
        assert returning.first_join == 1000
        # Current session comes from the live session, not the store
        assert returning.session_start == 5000
        assert returning.online is True

    def test_offline_is_stored_as_zero(self, patched_db, player):
        player.fetch_data(42)
        player.set_online(False)
        player.push_data(42)

        row = player_rows(patched_db, 42)[0]
        assert row.get_int(PlayersTable.ONLINE) == 0
        assert row.get_bool(PlayersTable.ONLINE) is False

    def test_record_login(self, player):
        player.set_online(False)
        player.record_login(now=2000)
        assert player.logins == 1
        assert player.online is True
        assert player.session_start == 2000

    def test_get_values_is_stable(self, player):
        assert player.get_values(42) == player.get_values(42)

    def test_get_values_matches_table_columns(self, patched_db, player):
        player.fetch_data(42)
        row = player_rows(patched_db, 42)[0]
        assert set(player.get_values(42)) == set(row)

    def test_push_without_row_is_false(self, player):
        assert player.push_data(404) is False

    def test_custom_patch_marks_players_offline(self, patched_db, player):
        from statsdb import Patcher
        player.fetch_data(42)

        assert Patcher(patched_db).apply_custom('reset_sessions') is True
        assert player_rows(patched_db, 42)[0].get_int(PlayersTable.ONLINE) == 0


class TestTotalBlocksData:

    @pytest.fixture
    def player_id(self, patched_db):
        PlayerData(patched_db, 'Steve', now=1000).fetch_data(42)
        return 42

    def block_rows(self, db, player_id):
        return db.query(TotalBlocksTable.TABLE_NAME).condition(TotalBlocksTable.PLAYER_ID, player_id).select()

    def test_fetch_creates_row_per_material(self, patched_db, player_id):
        TotalBlocksData(patched_db, material_id=1).fetch_data(player_id)
        TotalBlocksData(patched_db, material_id=4).fetch_data(player_id)

        rows = self.block_rows(patched_db, player_id)
        assert sorted(r.get_int(TotalBlocksTable.MATERIAL_ID) for r in rows) == [1, 4]

    def test_counters_round_trip(self, patched_db, player_id):
        stone = TotalBlocksData(patched_db, material_id=1)
        stone.fetch_data(player_id)
        stone.add_destroyed(3)
        stone.add_placed()
        assert stone.push_data(player_id) is True

        reloaded = TotalBlocksData(patched_db, material_id=1)
        reloaded.fetch_data(player_id)
        assert reloaded.destroyed == 3
        assert reloaded.placed == 1

    def test_material_data_is_part_of_key(self, patched_db, player_id):
        plain = TotalBlocksData(patched_db, material_id=5, material_data=0)
        variant = TotalBlocksData(patched_db, material_id=5, material_data=2)
        plain.fetch_data(player_id)
        variant.fetch_data(player_id)

        variant.add_placed(4)
        variant.push_data(player_id)

        plain.fetch_data(player_id)
        assert plain.placed == 0
        assert len(self.block_rows(patched_db, player_id)) == 2

    def test_fetch_without_player_row_does_not_raise(self, patched_db):
        # Foreign key rejects the insert; the failure is logged, not raised
        orphan = TotalBlocksData(patched_db, material_id=1)
        orphan.fetch_data(999)
        assert self.block_rows(patched_db, 999) == []
