import subprocess

import pytest

from mysql_pitr.utils.errors import CommandError

CONFIG_ENV_VARS = [
    'BACKUP_SOURCE', 'BINLOG_DIRECTORY', 'STORAGE', 'S3_REGION', 'S3_ENDPOINT',
    'AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY', 'S3_BUCKET', 'S3_BUCKET_LOOKUP',
    'BACKUP_PREFIX', 'MYSQL_SERVICE', 'MYSQL_USER', 'RELAY_LOG_PREFIX',
    'COMMAND_TIMEOUT', 'XBCLOUD_PARALLEL', 'SORT_BINLOGS', 'LOG_DIR', 'LOCK_FILE',
]


def mysqld_help(datadir, relay_log_index='mysql1-relay-bin.index'):
    """Trimmed `mysqld --verbose --help` output."""
    return f"""mysqld  Ver 8.0.36 for Linux on x86_64 (MySQL Community Server - GPL)
Usage: mysqld [OPTIONS]

  --datadir=name      Path to the database root directory
  --relay-log-index=name
                      File that holds the names for relay log files.

Variables (--variable-name=value)
and boolean options {{FALSE|TRUE}}                            Value (after reading options)
------------------------------------------------------------ -------------
character-sets-dir                                           /usr/share/mysql/charsets/
datadir                                                      {datadir}/
default-time-zone                                            (No default value)
relay-log                                                    mysql1-relay-bin
relay-log-index                                              {relay_log_index}
relay-log-info-file                                          relay-log.info
"""


class FakeRunner:
    """Records commands instead of running them.

    Commands named in fail_on raise CommandError. Commands named in execute
    are really run, for steps whose effect on disk a test checks.
    """

    def __init__(self, outputs=None, fail_on=(), execute=()):
        self.outputs = outputs or {}
        self.fail_on = set(fail_on)
        self.execute = set(execute)
        self.commands = []
        self.envs = []

    def _result(self, cmd, output=''):
        return {
            'success': True,
            'ignored': False,
            'error': None,
            'duration': 0,
            'returncode': 0,
            'output': output,
            'command': ' '.join(cmd),
        }

    def run(self, purpose, cmd, ignore_pattern=None, env=None):
        cmd = [str(arg) for arg in cmd]
        self.commands.append(cmd)
        self.envs.append(env)
        if cmd[0] in self.fail_on:
            raise CommandError(purpose, {'error': f"{cmd[0]} failed", 'output': ''})
        if cmd[0] in self.execute:
            subprocess.run(cmd, check=True)
        return self._result(cmd, self.outputs.get(cmd[0], ''))

    def run_pipeline(self, purpose, producer_cmd, consumer_cmd, env=None):
        cmd = [str(arg) for arg in producer_cmd] + ['|'] + [str(arg) for arg in consumer_cmd]
        self.commands.append(cmd)
        self.envs.append(env)
        if producer_cmd[0] in self.fail_on or consumer_cmd[0] in self.fail_on:
            raise CommandError(purpose, {'error': 'pipeline failed', 'output': 'Failed to connect'})
        return self._result(cmd)

    def programs(self):
        return [cmd[0] for cmd in self.commands]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env files out of the tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def datadir(tmp_path):
    path = tmp_path / 'mysql'
    path.mkdir()
    return path


@pytest.fixture
def binlog_dir(tmp_path):
    path = tmp_path / 'binlogs'
    path.mkdir()
    return path


@pytest.fixture
def fake_runner(datadir):
    return FakeRunner(outputs={'mysqld': mysqld_help(datadir)})
