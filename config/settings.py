import os
from dotenv import load_dotenv

# Only load the .env file if we're not on Render (i.e., we are in a local environment)
if os.environ.get("RENDER") != "true":
    load_dotenv()

# Flask Configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'a_very_secret_key_that_should_be_changed')
CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Lobby and session lifecycle (seconds)
LOBBY_STALE_SECONDS = int(os.getenv('LOBBY_STALE_SECONDS', 300))
SWEEP_INTERVAL_SECONDS = int(os.getenv('SWEEP_INTERVAL_SECONDS', 60))
SESSION_RETENTION_SECONDS = int(os.getenv('SESSION_RETENTION_SECONDS', 60))
NEGOTIATION_DEADLINE_SECONDS = int(os.getenv('NEGOTIATION_DEADLINE_SECONDS', 30))

# Channel negotiation
SIGNATURE_TIMEOUT_SECONDS = float(os.getenv('SIGNATURE_TIMEOUT_SECONDS', 15))
LEDGER_URL = os.getenv('LEDGER_URL')
LEDGER_TIMEOUT_SECONDS = float(os.getenv('LEDGER_TIMEOUT_SECONDS', 15))
LEDGER_MAX_RETRIES = int(os.getenv('LEDGER_MAX_RETRIES', 2))
CHANNEL_ASSET = os.getenv('CHANNEL_ASSET', 'ytest.usd')

# Two final metrics further apart than this are flagged as disputed
METRIC_TOLERANCE = float(os.getenv('METRIC_TOLERANCE', 1.0))

# Rule configuration (tiers, fee rate, stake per mode)
RULES_PATH = os.getenv(
    'FLASHPOINT_RULES_PATH',
    os.path.join(os.path.dirname(__file__), 'modes.json')
)

# Player client default server
MATCHMAKING_URL = os.getenv('MATCHMAKING_URL', 'http://localhost:3001')

# Server Configuration
ASYNC_MODE = os.getenv('SOCKETIO_ASYNC_MODE', 'eventlet')
PORT = int(os.getenv('PORT', 3001))
DEBUG = os.environ.get('RENDER', '') != 'true'

# Render Configuration
IS_RENDER = os.environ.get("RENDER", "") == "true"
