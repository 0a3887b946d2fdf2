#!/usr/bin/env python3
"""
MySQL Point-in-Time Restore

Restores a base backup, copies binary logs into the data directory as relay
logs and starts the SQL thread to replay them.
"""

import sys
import logging
from datetime import datetime
from pathlib import Path
from argparse import ArgumentParser

from mysql_pitr.restore.binlogs import harvest_binlogs
from mysql_pitr.restore.materialize import materialize_backup
from mysql_pitr.restore.mysql_vars import discover_mysql_vars
from mysql_pitr.restore.replication import fix_ownership, start_replay
from mysql_pitr.utils.config import RestoreConfig
from mysql_pitr.utils.errors import ConfigError, RestoreError
from mysql_pitr.utils.lock import FileLock
from mysql_pitr.utils.subprocess_utils import SubprocessRunner

logger = logging.getLogger('mysql_pitr')

IDLE = 'Idle'
CONFIG_DISCOVERED = 'ConfigDiscovered'
BACKUP_MATERIALIZED = 'BackupMaterialized'
LOGS_HARVESTED = 'LogsHarvested'
OWNERSHIP_FIXED = 'OwnershipFixed'
REPLICATION_BOOTSTRAPPED = 'ReplicationBootstrapped'
DONE = 'Done'


def setup_logging(log_dir: Path) -> str:
    """Setup file and console logging."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f'pitr-restore-{datetime.now().strftime("%Y%m%d-%H%M%S")}.log'

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return str(log_file)


def section(title: str):
    logger.info("=" * 70)
    logger.info(title)
    logger.info("=" * 70)


def step(title: str):
    logger.info("-" * 70)
    logger.info(title)
    logger.info("-" * 70)


class PitrRestore:
    """Runs the restore steps in order; any exception aborts the run."""

    def __init__(self, config: RestoreConfig, runner: SubprocessRunner = None):
        self.config = config
        self.runner = runner or SubprocessRunner(timeout=config.timeout)
        self.state = IDLE
        self.mysql_vars = None
        self.first_relay_log = None

    def discover(self):
        step("STEP 1: Reading MySQL configuration")
        self.mysql_vars = discover_mysql_vars(self.runner)
        if self.config.binlog_directory is None:
            raise ConfigError("PiTR binary logs directory is not defined, use --binlog-directory <location>")
        self.state = CONFIG_DISCOVERED

    def restore_backup(self):
        step("STEP 2: Full backup")
        if materialize_backup(self.runner, self.config, self.mysql_vars.datadir):
            self.state = BACKUP_MATERIALIZED
        else:
            logger.info("Using existing database")

    def copy_binlogs(self):
        step("STEP 3: Binary logs")
        self.first_relay_log = harvest_binlogs(
            self.config.binlog_directory,
            self.mysql_vars.datadir,
            self.mysql_vars.relay_log_index,
            self.config.relay_log_prefix,
            sort_by_name=self.config.sort_binlogs,
        )
        self.state = LOGS_HARVESTED

    def fix_datadir_ownership(self):
        step("STEP 4: Data directory ownership")
        fix_ownership(self.runner, self.config, self.mysql_vars.datadir)
        self.state = OWNERSHIP_FIXED

    def start_replication(self):
        step("STEP 5: Relay log replay")
        start_replay(self.runner, self.first_relay_log)
        self.state = REPLICATION_BOOTSTRAPPED

    def run(self) -> str:
        """Run every step. Returns the relay log replay starts from."""
        self.discover()
        self.restore_backup()
        self.copy_binlogs()
        self.fix_datadir_ownership()
        self.start_replication()
        self.state = DONE
        return self.first_relay_log


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description='MySQL point-in-time restore from a base backup and binary logs')
    parser.add_argument('--env-file', help='Path to .env file (default: .env in current directory if present)')
    parser.add_argument('--backup-source',
                        help='Remove data directory and unpack tar.gz or tar.* archive with MySQL data files')
    parser.add_argument('--binlog-directory', help='Binary logs directory location')
    parser.add_argument('--storage', help="Backup storage type, 's3' restores an xbcloud backup")
    parser.add_argument('--s3-region', help='S3 region (default: us-east-1)')
    parser.add_argument('--s3-endpoint', help='S3 endpoint URL')
    parser.add_argument('--s3-access-key', help='S3 access key id')
    parser.add_argument('--s3-secret-key', help='S3 secret access key')
    parser.add_argument('--s3-bucket', help='S3 bucket name')
    parser.add_argument('--s3-bucket-lookup', help='S3 bucket addressing: auto, path or dns (default: auto)')
    parser.add_argument('--backup-prefix', help='Backup name inside the bucket')
    parser.add_argument('--service-name', help='systemd unit of the MySQL server (default: mysql)')
    parser.add_argument('--service-user', help='Account owning the data directory (default: mysql)')
    parser.add_argument('--relay-log-prefix', help='Relay log base name (default: mysql1-relay-bin)')
    parser.add_argument('--timeout', help='Timeout for each external command in seconds (default: 600)')
    parser.add_argument('--parallel', help='xbcloud and xbstream threads (default: 10)')
    parser.add_argument('--sort-binlogs', action='store_true',
                        help='Number binary logs by file name instead of directory order')
    parser.add_argument('--log-dir', help='Directory for the restore log file (default: current directory)')
    parser.add_argument('--lock-file', help='Lock file preventing concurrent restores')
    return parser


def main(argv=None):
    """Main restore program. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = RestoreConfig.from_args(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    try:
        log_file = setup_logging(config.log_dir)
    except OSError as e:
        print(f"ERROR: Can't set up logging in {config.log_dir}: {e}", file=sys.stderr)
        return 1

    section("MySQL point-in-time restore started")
    logger.info(f"  Binary logs: {config.binlog_directory}")
    logger.info(f"  Backup source: {config.backup_source!r}")
    logger.info(f"  Log file: {log_file}")

    restore = PitrRestore(config)
    try:
        with FileLock(config.lock_file):
            first_relay_log = restore.run()
    except RestoreError as e:
        logger.error(f"Restore FAILED after {restore.state}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error after {restore.state}: {e}", exc_info=True)
        return 1
    except KeyboardInterrupt:
        logger.warning("Restore interrupted by user")
        return 130

    section("Restore completed successfully")
    logger.info(f"Replaying relay logs from {first_relay_log}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
