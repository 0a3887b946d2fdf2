"""Point the SQL thread at the harvested relay logs and start replay."""

import logging
import random
from pathlib import Path

logger = logging.getLogger(__name__)

# First event follows the 4 byte binlog magic header
RELAY_LOG_START_POS = 4
DUMMY_MASTER_HOST = 'dummy'
MAX_SERVER_ID = 2 ** 32 - 1


def new_server_id() -> int:
    """A random server_id, unlikely to collide with the host the logs came from."""
    return random.SystemRandom().randint(2, MAX_SERVER_ID)


def _sql_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def build_replication_sql(first_relay_log: str, server_id: int) -> str:
    return (
        f"SET GLOBAL server_id={int(server_id)};"
        f"CHANGE MASTER TO RELAY_LOG_FILE={_sql_string(first_relay_log)}, "
        f"RELAY_LOG_POS={RELAY_LOG_START_POS}, "
        f"MASTER_HOST={_sql_string(DUMMY_MASTER_HOST)} FOR CHANNEL '';"
        "START SLAVE SQL_THREAD FOR CHANNEL ''"
    )


def fix_ownership(runner, config, datadir: Path):
    runner.run("can't change ownership", ['chown', '-R', config.service_user, str(datadir)])


def start_replay(runner, first_relay_log: str, server_id=None):
    """Issue CHANGE MASTER TO and START SLAVE SQL_THREAD on the running server."""
    if server_id is None:
        server_id = new_server_id()
    logger.info(f"Starting relay log replay from {first_relay_log} with server_id {server_id}")
    runner.run("can't setup replication", ['mysql', '-e', build_replication_sql(first_relay_log, server_id)])
