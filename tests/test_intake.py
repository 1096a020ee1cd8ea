"""
Tests for StatsIntake pause/resume and local buffering.

Run with: python -m pytest tests/test_intake.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from statsdb import DataEntity, PlayerData, StatsIntake
from statsdb.tables import PlayersTable


class MockEntity(DataEntity):
    """Entity whose pushes succeed or fail on demand"""
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.pushes = []

    def fetch_data(self, owner_key):
        pass

    def push_data(self, owner_key):
        self.pushes.append(owner_key)
        return self.succeed

    def get_values(self, owner_key):
        return {'owner': owner_key}


class TestIntake:

    def test_running_submit_pushes_now(self):
        intake = StatsIntake()
        entity = MockEntity()

        assert intake.submit(entity, 1) is True
        assert entity.pushes == [1]
        assert intake.pending_count == 0

    def test_paused_submit_buffers(self):
        intake = StatsIntake()
        entity = MockEntity()
        intake.pause()

        assert intake.submit(entity, 1) is False
        assert entity.pushes == []
        assert intake.pending_count == 1

        intake.resume()
        assert entity.pushes == [1]
        assert intake.pending_count == 0

    def test_repeated_submit_keeps_latest_only(self):
        intake = StatsIntake()
        entity = MockEntity()
        intake.pause()
        intake.submit(entity, 1)
        intake.submit(entity, 1)

        assert intake.pending_count == 1
        intake.resume()
        assert entity.pushes == [1]

    def test_failed_push_is_retried_on_flush(self):
        intake = StatsIntake()
        entity = MockEntity(succeed=False)

        assert intake.submit(entity, 1) is False
        assert intake.pending_count == 1

        entity.succeed = True
        assert intake.flush() == 1
        assert intake.pending_count == 0
        assert entity.pushes == [1, 1]

    def test_flush_while_paused_does_nothing(self):
        intake = StatsIntake()
        intake.pause()
        intake.submit(MockEntity(), 1)
        assert intake.flush() == 0
        assert intake.pending_count == 1

    def test_buffer_drops_oldest(self):
        intake = StatsIntake(max_pending=2)
        intake.pause()
        first, second, third = MockEntity(), MockEntity(), MockEntity()
        intake.submit(first, 1)
        intake.submit(second, 2)
        intake.submit(third, 3)

        assert intake.pending_count == 2
        assert intake.dropped == 1
        intake.resume()
        assert first.pushes == []
        assert second.pushes == [2]
        assert third.pushes == [3]

    def test_wait_until_running(self):
        intake = StatsIntake()
        assert intake.wait_until_running(timeout=0) is True
        intake.pause()
        assert intake.wait_until_running(timeout=0.01) is False

    def test_status(self):
        intake = StatsIntake()
        intake.pause()
        intake.submit(MockEntity(), 1)
        assert intake.get_status() == {'paused': True, 'pending': 1, 'dropped': 0}


class TestIntakeWithDatabase:

    def test_buffered_player_reaches_database(self, patched_db):
        intake = StatsIntake()
        player = PlayerData(patched_db, 'Steve', now=1000)
        player.fetch_data(42)

        intake.pause()
        player.logins = 3
        intake.submit(player, 42)
        row = patched_db.query(PlayersTable.TABLE_NAME).condition(PlayersTable.PLAYER_ID, 42).select_first()
        assert row.get_int(PlayersTable.LOGINS) == 0

        intake.resume()
        row = patched_db.query(PlayersTable.TABLE_NAME).condition(PlayersTable.PLAYER_ID, 42).select_first()
        assert row.get_int(PlayersTable.LOGINS) == 3
