"""Replace the MySQL data directory with a full base backup."""

import logging
from pathlib import Path

from mysql_pitr.utils.config import LocalArchiveSource, ObjectStorageSource
from mysql_pitr.utils.errors import ConfigError
from mysql_pitr.utils.s3_utils import (
    build_extract_command,
    build_fetch_command,
    check_xbcloud_installed,
    get_xbcloud_env,
)
from mysql_pitr.utils.subprocess_utils import validate_path

logger = logging.getLogger(__name__)


def stop_mysql(runner, config):
    runner.run("can't stop mysqld", ['systemctl', 'stop', config.service_name])


def start_mysql(runner, config):
    runner.run("can't start mysqld", ['systemctl', 'start', config.service_name])


def restore_local_archive(runner, config, source: LocalArchiveSource, datadir: Path):
    """
    Unpack a tar archive of the data directory at /.

    The archive must hold paths relative to /, so it recreates datadir where
    it was on the original host. Nothing is touched if the archive is missing.
    """
    try:
        archive = validate_path(source.path, must_exist=True)
    except ValueError as e:
        raise ConfigError(f"Can't find backup archive: {e}")
    if not archive.is_file():
        raise ConfigError(f"Backup archive is not a file: {archive}")

    size_mb = archive.stat().st_size / (1024 * 1024)
    logger.info(f"Restoring full backup from {archive} ({size_mb:.2f} MB)")

    stop_mysql(runner, config)
    runner.run("cleanup data directory", ['rm', '-rf', str(datadir)])
    runner.run("restore full backup", ['tar', '-C', '/', '-xaf', str(archive)])
    start_mysql(runner, config)


def restore_object_storage(runner, config, source: ObjectStorageSource, datadir: Path):
    """
    Stream an xbcloud backup into an empty data directory, prepare it and start mysqld.

    If the download fails the data directory is left empty and nothing after
    the stream runs.
    """
    if not check_xbcloud_installed():
        raise ConfigError("xbcloud and xbstream are required to restore from object storage")

    logger.info(f"Restoring full backup from s3://{source.bucket}/{source.backup_prefix} via {source.endpoint}")

    stop_mysql(runner, config)
    runner.run("cleanup data directory", ['rm', '-rf', str(datadir)])
    runner.run("create data directory", ['mkdir', '-p', str(datadir)])

    env = get_xbcloud_env(source.access_key, source.secret_key, source.region)
    runner.run_pipeline(
        "download backup from object storage",
        build_fetch_command(source, parallel=config.parallel),
        build_extract_command(datadir, parallel=config.parallel),
        env=env,
    )

    runner.run("prepare backup", ['xtrabackup', '--prepare', f'--target-dir={datadir}'])
    runner.run("can't change ownership", ['chown', '-R', config.service_user, str(datadir)])
    start_mysql(runner, config)


def materialize_backup(runner, config, datadir: Path):
    """Restore config.backup_source into datadir. Returns False when there is nothing to restore."""
    source = config.backup_source
    if source is None:
        return False

    if isinstance(source, LocalArchiveSource):
        restore_local_archive(runner, config, source, datadir)
    elif isinstance(source, ObjectStorageSource):
        restore_object_storage(runner, config, source, datadir)
    else:
        raise ConfigError(f"Unsupported backup source: {source!r}")

    logger.info("Full backup restored")
    return True
