"""
Table and column names for the statistics schema.

The schema itself is created by the SQL patches in statsdb/patches; these
constants are the only identifiers the query builder ever receives.
"""


class SettingsTable:
    """Key/value settings stored in the remote database"""
    TABLE_NAME = 'settings'

    KEY = 'setting_key'
    VALUE = 'setting_value'

    # Known keys
    VERSION = 'version'


class PlayersTable:
    """One row per tracked player"""
    TABLE_NAME = 'players'

    PLAYER_ID = 'player_id'
    NAME = 'name'
    ONLINE = 'online'
    SESSION_START = 'session_start'
    FIRST_LOGIN = 'first_login'
    LOGINS = 'logins'


class TotalBlocksTable:
    """Blocks destroyed and placed, per player and material"""
    TABLE_NAME = 'total_blocks'

    MATERIAL_ID = 'material_id'
    MATERIAL_DATA = 'material_data'
    PLAYER_ID = 'player_id'
    DESTROYED = 'destroyed'
    PLACED = 'placed'
