"""Read MySQL server settings from `mysqld --verbose --help`."""

import logging
import re
from pathlib import Path

from mysql_pitr.utils.errors import ConfigError

logger = logging.getLogger(__name__)

RELAY_LOG_INDEX_RE = re.compile(r'^relay-log-index\s+(\S.*?)\s*$', re.MULTILINE)
DATADIR_RE = re.compile(r'^datadir\s+(\S.*?)\s*$', re.MULTILINE)
NO_DEFAULT = '(No default value)'


class MysqlVars:
    """Data directory and relay log index file name of the local server."""

    __slots__ = ('datadir', 'relay_log_index')

    def __init__(self, datadir, relay_log_index):
        object.__setattr__(self, 'datadir', Path(datadir))
        object.__setattr__(self, 'relay_log_index', relay_log_index)

    def __setattr__(self, name, value):
        raise AttributeError("MysqlVars is read-only")

    def __repr__(self):
        return f"MysqlVars(datadir={str(self.datadir)!r}, relay_log_index={self.relay_log_index!r})"


def _first_value(pattern, output):
    match = pattern.search(output)
    if not match:
        return None
    value = match.group(1)
    if value == NO_DEFAULT:
        return None
    return value


def parse_mysql_vars(output: str) -> MysqlVars:
    """
    Extract datadir and relay-log-index from mysqld help output.

    Raises ConfigError when either value is missing.
    """
    relay_log_index = _first_value(RELAY_LOG_INDEX_RE, output)
    datadir = _first_value(DATADIR_RE, output)

    if not datadir:
        raise ConfigError("Can't determine MySQL data directory from mysqld --verbose --help")
    if not relay_log_index:
        raise ConfigError("Can't find relay log files index location, set relay-log-index in my.cnf")

    return MysqlVars(datadir=datadir, relay_log_index=relay_log_index)


def discover_mysql_vars(runner) -> MysqlVars:
    """Run mysqld --verbose --help and parse the server settings from it."""
    result = runner.run("relay log index location", ['mysqld', '--verbose', '--help'])
    mysql_vars = parse_mysql_vars(result['output'])
    logger.info(f"MySQL data directory: {mysql_vars.datadir}")
    logger.info(f"Relay log index file: {mysql_vars.relay_log_index}")
    return mysql_vars
