import os
from dataclasses import dataclass

# Try to load credentials from credentials.py (not committed to git)
# Note: Do NOT name this file "secrets.py" - it shadows Python's stdlib secrets module
try:
    from credentials import DB_PASSWORD as _SECRETS_PASSWORD
except ImportError:
    _SECRETS_PASSWORD = None


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return float(value)


@dataclass
class Config:
    """Configuration for the statistics persistence engine"""

    # Remote database
    # Any SQLAlchemy URL works; production runs against MySQL through PyMySQL
    DB_URL: str = os.environ.get('STATKEEPER_DB_URL', 'mysql+pymysql://localhost:3306/statistics')
    DB_USER: str = os.environ.get('STATKEEPER_DB_USER', '')
    # Password priority: env var > credentials.py > empty
    DB_PASSWORD: str = os.environ.get('STATKEEPER_DB_PASSWORD', _SECRETS_PASSWORD or '')

    # Verbose error logging (tracebacks for failed statements)
    DEBUG: bool = os.environ.get('STATKEEPER_DEBUG', 'False').lower() == 'true'

    # Connection health
    PROBE_TIMEOUT: float = _env_float('STATKEEPER_PROBE_TIMEOUT', 10.0)   # seconds for the liveness probe
    RETRY_DELAY: float = _env_float('STATKEEPER_RETRY_DELAY', 1.0)        # base reconnect backoff
    MAX_RETRY_DELAY: float = _env_float('STATKEEPER_MAX_RETRY_DELAY', 60.0)  # backoff cap

    # Paths
    BASE_DIR: str = os.path.dirname(os.path.abspath(__file__))
    DATA_DIR: str = os.environ.get('STATKEEPER_DATA_DIR', os.path.join(BASE_DIR, 'data'))
    LOG_DIR: str = os.environ.get('STATKEEPER_LOG_DIR', os.path.join(BASE_DIR, 'logs'))
    # Empty means the patches bundled with the statsdb package
    PATCH_DIR: str = os.environ.get('STATKEEPER_PATCH_DIR', '')

    def ensure_dirs(self):
        """Ensure directories exist"""
        os.makedirs(self.DATA_DIR, exist_ok=True)
        os.makedirs(self.LOG_DIR, exist_ok=True)


# Create global config instance
config = Config()
