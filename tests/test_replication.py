"""Tests for starting relay log replay."""

from conftest import FakeRunner
from mysql_pitr.restore.replication import (
    MAX_SERVER_ID,
    build_replication_sql,
    fix_ownership,
    new_server_id,
    start_replay,
)
from mysql_pitr.utils.config import RestoreConfig


class TestBuildReplicationSql:

    def test_statement(self):
        sql = build_replication_sql('mysql1-relay-bin.000001', 123456)

        assert sql == (
            "SET GLOBAL server_id=123456;"
            "CHANGE MASTER TO RELAY_LOG_FILE='mysql1-relay-bin.000001', RELAY_LOG_POS=4, "
            "MASTER_HOST='dummy' FOR CHANNEL '';"
            "START SLAVE SQL_THREAD FOR CHANNEL ''"
        )

    def test_quotes_file_name(self):
        sql = build_replication_sql("odd'name.000001", 2)

        assert "RELAY_LOG_FILE='odd\\'name.000001'" in sql


class TestServerId:

    def test_in_range(self):
        for _ in range(100):
            server_id = new_server_id()
            assert 2 <= server_id <= MAX_SERVER_ID


class TestCommands:

    def test_start_replay(self):
        runner = FakeRunner()

        start_replay(runner, 'mysql1-relay-bin.000001', server_id=42)

        assert runner.commands == [['mysql', '-e', build_replication_sql('mysql1-relay-bin.000001', 42)]]

    def test_start_replay_picks_server_id(self):
        runner = FakeRunner()

        start_replay(runner, 'mysql1-relay-bin.000001')

        assert runner.commands[0][2].startswith('SET GLOBAL server_id=')

    def test_fix_ownership(self, datadir):
        runner = FakeRunner()

        fix_ownership(runner, RestoreConfig(service_user='mysqlsvc'), datadir)

        assert runner.commands == [['chown', '-R', 'mysqlsvc', str(datadir)]]
