import os
import secrets
from dotenv import load_dotenv

# Load environment variables from .env file(s)
# 1) Project root .env
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))
data_dir = os.path.join(basedir, 'data')

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
    if not SECRET_KEY and _env_flag('FLASK_DEBUG'):
        # For development, generate a temporary secret key.
        # Tokens signed with it stop validating after a restart.
        SECRET_KEY = secrets.token_hex(32)
        print("⚠️  WARNING: Using temporary SECRET_KEY for development. Set SECRET_KEY in .env for production!")

    # Registration with role=admin must present this value
    ADMIN_SECRET = os.environ.get('ADMIN_SECRET')

    # Capability tokens
    TOKEN_MAX_AGE_SECONDS = _env_int('TOKEN_MAX_AGE_SECONDS', 30 * 24 * 60 * 60)  # 30 days
    TOKEN_SALT = os.environ.get('TOKEN_SALT', 'folio-capability')

    # Password policy
    PASSWORD_MIN_LENGTH = _env_int('PASSWORD_MIN_LENGTH', 8)

    # Kuzu Database Configuration
    KUZU_DB_PATH = os.environ.get('KUZU_DB_PATH') or os.path.join(data_dir, 'kuzu', 'folio.kuzu')
    KUZU_BUFFER_POOL_SIZE = _env_int('KUZU_BUFFER_POOL_SIZE', 256 * 1024 * 1024)
    KUZU_MAX_DB_SIZE = _env_int('KUZU_MAX_DB_SIZE', 1 << 34)

    # File uploads are stored elsewhere; only URLs travel through the API
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    # AI reading companion
    AI_PROVIDER = os.environ.get('AI_PROVIDER', 'openai')
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY') or os.environ.get('GROQ_API_KEY')
    OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL', 'https://api.groq.com/openai/v1')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'llama-3.1-8b-instant')
    OLLAMA_BASE_URL = os.environ.get('OLLAMA_BASE_URL', 'http://localhost:11434')
    OLLAMA_MODEL = os.environ.get('OLLAMA_MODEL', 'llama3.1:8b-instruct')
    AI_FALLBACK_ENABLED = os.environ.get('AI_FALLBACK_ENABLED', 'false')
    AI_TIMEOUT = os.environ.get('AI_TIMEOUT', '30')
    AI_MAX_TOKENS = os.environ.get('AI_MAX_TOKENS', '800')
    AI_TEMPERATURE = os.environ.get('AI_TEMPERATURE', '0.3')
    AI_MAX_PAGE_CHARS = _env_int('AI_MAX_PAGE_CHARS', 6000)
    AI_MAX_HISTORY_TURNS = _env_int('AI_MAX_HISTORY_TURNS', 20)

    # Application settings
    SITE_NAME = os.environ.get('SITE_NAME', 'Folio')

    # Python logging level (see create_app)
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'ERROR')
