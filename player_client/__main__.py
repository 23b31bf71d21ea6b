"""
Headless player: queue for a mode and wait for the session to finish.

    python -m player_client <participant_id> [mode_id]
"""

import logging
import sys

from config import settings
from channel import LedgerClient
from .client import PlayerClient
from .physics import RecordingPhysics

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(__doc__.strip())
        return 2

    client = PlayerClient(
        participant_id=argv[0],
        mode_id=argv[1] if len(argv) > 1 else 'tower_collab',
        ledger=LedgerClient(
            settings.LEDGER_URL,
            timeout=settings.LEDGER_TIMEOUT_SECONDS,
            max_retries=settings.LEDGER_MAX_RETRIES
        ),
        physics=RecordingPhysics(),
        signature_timeout=settings.SIGNATURE_TIMEOUT_SECONDS,
        asset=settings.CHANNEL_ASSET
    )

    try:
        client.connect(settings.MATCHMAKING_URL)
        client.join()
        client.finished.wait()
    except KeyboardInterrupt:
        client.leave()
    finally:
        if client.sio.connected:
            client.sio.disconnect()
    return 0


if __name__ == '__main__':
    sys.exit(main())
