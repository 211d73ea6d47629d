import os
import secrets
import logging
from dotenv import load_dotenv

# Load environment variables from .env file(s)
# 1) Project root .env
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))
data_dir = os.environ.get('PETBOOK_DATA_DIR') or os.path.join(basedir, 'data')

# 2) Overlay data/.env so settings saved at runtime persist via the mounted volume
data_env_path = os.path.join(data_dir, '.env')
if os.path.exists(data_env_path):
    load_dotenv(dotenv_path=data_env_path, override=True)


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ['true', 'on', '1', 'yes']


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    # Expose data directory path for other modules
    DATA_DIR = data_dir

    # Security
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY and (os.environ.get('FLASK_ENV') == 'development' or _env_flag('FLASK_DEBUG')):
        # For development, generate a temporary secret key
        SECRET_KEY = secrets.token_hex(32)
        logging.getLogger(__name__).warning(
            "Using temporary SECRET_KEY for development. Set SECRET_KEY in .env for production!"
        )

    # Ownership store: 'kuzu' (embedded graph database) or 'memory'
    OWNERSHIP_STORE = os.environ.get('OWNERSHIP_STORE', 'kuzu').lower()

    # Kuzu Database Configuration
    KUZU_DB_PATH = os.environ.get('KUZU_DB_PATH') or os.path.join(data_dir, 'kuzu')
    KUZU_SLOW_QUERY_MS = _env_int('KUZU_SLOW_QUERY_MS', 150)

    # Application settings
    SITE_NAME = os.environ.get('SITE_NAME', 'Petbook')

    # Logging (root + Flask logger level)
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'ERROR').upper()


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    OWNERSHIP_STORE = 'memory'
