"""Configuration loader for the MySQL PITR restore."""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

from mysql_pitr.utils.errors import ConfigError
from mysql_pitr.utils.subprocess_utils import DEFAULT_TIMEOUT

S3_BUCKET_LOOKUP_MODES = ('auto', 'path', 'dns')
SUPPORTED_STORAGE = ('s3',)


class LocalArchiveSource:
    """Base backup packed as a tar archive with paths relative to /."""

    def __init__(self, path):
        self.path = Path(path)

    def __repr__(self):
        return f"LocalArchiveSource(path={str(self.path)!r})"


class ObjectStorageSource:
    """Base backup streamed with xbcloud from an S3-compatible bucket."""

    def __init__(self, region, endpoint, access_key, secret_key, bucket, bucket_lookup, backup_prefix):
        self.region = region
        self.endpoint = endpoint
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket = bucket
        self.bucket_lookup = bucket_lookup
        self.backup_prefix = backup_prefix

    def __repr__(self):
        return (
            f"ObjectStorageSource(endpoint={self.endpoint!r}, region={self.region!r}, "
            f"bucket={self.bucket!r}, bucket_lookup={self.bucket_lookup!r}, "
            f"backup_prefix={self.backup_prefix!r}, access_key={self.access_key!r}, secret_key='***')"
        )


def _setting(value, env_var, default=None):
    if value is not None and value != '':
        return value
    env_value = os.getenv(env_var)
    if env_value is not None and env_value.strip() != '':
        return env_value.strip()
    return default


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_positive_int(value, name) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise ConfigError(f"{name} must be >= 1, got {number}")
    return number


def load_env_file(env_file=None):
    """Load variables from env_file, or from ./.env when present. Existing variables win."""
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigError(f"Environment file not found: {env_file}")
        load_dotenv(env_file)
    elif Path('.env').exists():
        load_dotenv('.env')


class RestoreConfig:
    """Settings for one restore run, built once and passed to every step."""

    def __init__(self,
                 binlog_directory=None,
                 backup_source=None,
                 service_name='mysql',
                 service_user='mysql',
                 relay_log_prefix='mysql1-relay-bin',
                 timeout=DEFAULT_TIMEOUT,
                 parallel=10,
                 sort_binlogs=False,
                 log_dir=None,
                 lock_file=None):
        self.binlog_directory = Path(binlog_directory) if binlog_directory else None
        self.backup_source = backup_source
        self.service_name = service_name
        self.service_user = service_user
        self.relay_log_prefix = relay_log_prefix
        self.timeout = timeout
        self.parallel = parallel
        self.sort_binlogs = sort_binlogs
        self.log_dir = Path(log_dir) if log_dir else Path.cwd()
        self.lock_file = Path(lock_file) if lock_file else Path(tempfile.gettempdir()) / 'mysql-pitr-restore.lock'

    @classmethod
    def from_args(cls, args):
        """
        Build configuration from parsed CLI arguments, falling back to environment variables.

        Raises ConfigError on invalid values. A missing binlog directory is not
        checked here; the restore reports it after the server variables are read.
        """
        load_env_file(getattr(args, 'env_file', None))

        backup_source = _select_backup_source(args)

        return cls(
            binlog_directory=_setting(args.binlog_directory, 'BINLOG_DIRECTORY'),
            backup_source=backup_source,
            service_name=_setting(args.service_name, 'MYSQL_SERVICE', 'mysql'),
            service_user=_setting(args.service_user, 'MYSQL_USER', 'mysql'),
            relay_log_prefix=_setting(args.relay_log_prefix, 'RELAY_LOG_PREFIX', 'mysql1-relay-bin'),
            timeout=_parse_positive_int(_setting(args.timeout, 'COMMAND_TIMEOUT', DEFAULT_TIMEOUT), 'COMMAND_TIMEOUT'),
            parallel=_parse_positive_int(_setting(args.parallel, 'XBCLOUD_PARALLEL', 10), 'XBCLOUD_PARALLEL'),
            sort_binlogs=args.sort_binlogs or _parse_bool(os.getenv('SORT_BINLOGS', 'false')),
            log_dir=_setting(args.log_dir, 'LOG_DIR'),
            lock_file=_setting(args.lock_file, 'LOCK_FILE'),
        )


def _select_backup_source(args):
    """Local archive wins over object storage; neither means reuse the existing database."""
    archive = _setting(args.backup_source, 'BACKUP_SOURCE')
    if archive:
        return LocalArchiveSource(archive)

    storage = _setting(args.storage, 'STORAGE')
    if not storage:
        return None

    storage = storage.lower()
    if storage not in SUPPORTED_STORAGE:
        raise ConfigError(f"Unsupported storage {storage!r}, expected one of: {', '.join(SUPPORTED_STORAGE)}")

    source = ObjectStorageSource(
        region=_setting(args.s3_region, 'S3_REGION', 'us-east-1'),
        endpoint=_setting(args.s3_endpoint, 'S3_ENDPOINT'),
        access_key=_setting(args.s3_access_key, 'AWS_ACCESS_KEY_ID'),
        secret_key=_setting(args.s3_secret_key, 'AWS_SECRET_ACCESS_KEY'),
        bucket=_setting(args.s3_bucket, 'S3_BUCKET'),
        bucket_lookup=_setting(args.s3_bucket_lookup, 'S3_BUCKET_LOOKUP', 'auto').lower(),
        backup_prefix=_setting(args.backup_prefix, 'BACKUP_PREFIX'),
    )

    required = {
        'S3_ENDPOINT': source.endpoint,
        'S3_BUCKET': source.bucket,
        'AWS_ACCESS_KEY_ID': source.access_key,
        'AWS_SECRET_ACCESS_KEY': source.secret_key,
        'BACKUP_PREFIX': source.backup_prefix,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigError(f"Object storage restore requires: {', '.join(missing)}")

    if source.bucket_lookup not in S3_BUCKET_LOOKUP_MODES:
        raise ConfigError(
            f"Invalid S3 bucket lookup {source.bucket_lookup!r}, expected one of: {', '.join(S3_BUCKET_LOOKUP_MODES)}"
        )

    return source
