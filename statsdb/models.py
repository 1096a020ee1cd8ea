"""
Statistic Entities

In-memory records for tracked statistics. Each one is created from a live
game session and synchronised with its table through the DataEntity
contract (fetch on join, push on save / quit).

Tracks:
- Player sessions (online flag, session start, first login, login count)
- Blocks destroyed and placed, per material
"""

from typing import Any, Dict, Optional

from .entity import KeyedEntity, encode_bool, get_timestamp
from .result import QueryResult
from .tables import PlayersTable, TotalBlocksTable


class PlayerData(KeyedEntity):
    """
    Per-player session statistics.

    The online flag and session start describe the current session and are
    always written from memory; first login and login count are history and
    are taken from the store when the player already has a row.
    """

    TABLE_NAME = PlayersTable.TABLE_NAME

    def __init__(self, db, player_name: str, now: Optional[int] = None):
        super().__init__(db)
        timestamp = get_timestamp() if now is None else now

        self.player_name = player_name
        self.online = True
        self.session_start = timestamp
        self.first_join = timestamp
        self.logins = 0

    def __repr__(self):
        return f"<PlayerData({self.player_name}: online={self.online}, logins={self.logins})>"

    def key_columns(self, owner_key: Any) -> Dict[str, Any]:
        return {PlayersTable.PLAYER_ID: owner_key}

    def load_row(self, row: QueryResult) -> None:
        self.first_join = row.get_long(PlayersTable.FIRST_LOGIN)
        self.logins = row.get_int(PlayersTable.LOGINS)

    def get_values(self, owner_key: Any) -> Dict[str, Any]:
        return {
            PlayersTable.PLAYER_ID: owner_key,
            PlayersTable.NAME: self.player_name,
            PlayersTable.ONLINE: encode_bool(self.online),
            PlayersTable.SESSION_START: self.session_start,
            PlayersTable.FIRST_LOGIN: self.first_join,
            PlayersTable.LOGINS: self.logins,
        }

    def set_online(self, online: bool) -> None:
        self.online = online

    def record_login(self, now: Optional[int] = None) -> None:
        """Start a new session"""
        self.logins += 1
        self.online = True
        self.session_start = get_timestamp() if now is None else now


class TotalBlocksData(KeyedEntity):
    """Blocks of one material destroyed and placed by a player"""

    TABLE_NAME = TotalBlocksTable.TABLE_NAME

    def __init__(self, db, material_id: int, material_data: int = 0):
        super().__init__(db)
        self.material_id = material_id
        self.material_data = material_data
        self.destroyed = 0
        self.placed = 0

    def __repr__(self):
        return (f"<TotalBlocksData({self.material_id}:{self.material_data} "
                f"destroyed={self.destroyed}, placed={self.placed})>")

    def key_columns(self, owner_key: Any) -> Dict[str, Any]:
        return {
            TotalBlocksTable.PLAYER_ID: owner_key,
            TotalBlocksTable.MATERIAL_ID: self.material_id,
            TotalBlocksTable.MATERIAL_DATA: self.material_data,
        }

    def load_row(self, row: QueryResult) -> None:
        self.destroyed = row.get_int(TotalBlocksTable.DESTROYED)
        self.placed = row.get_int(TotalBlocksTable.PLACED)

    def get_values(self, owner_key: Any) -> Dict[str, Any]:
        values = self.key_columns(owner_key)
        values[TotalBlocksTable.DESTROYED] = self.destroyed
        values[TotalBlocksTable.PLACED] = self.placed
        return values

    def add_destroyed(self, count: int = 1) -> None:
        self.destroyed += count

    def add_placed(self, count: int = 1) -> None:
        self.placed += count
