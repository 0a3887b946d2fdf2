"""Object storage helpers for streaming backups with xbcloud and xbstream."""

import os
import shutil
import logging
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)


def check_xbcloud_installed() -> bool:
    """Check if xbcloud and xbstream are available on PATH."""
    missing = [tool for tool in ('xbcloud', 'xbstream') if shutil.which(tool) is None]
    if missing:
        logger.error(f"Required tools not found on PATH: {', '.join(missing)}")
        return False
    return True


def get_xbcloud_env(access_key_id: str, secret_access_key: str, region: str) -> Dict[str, str]:
    """Get environment variables for xbcloud S3 operations, keeping credentials off the command line."""
    env = os.environ.copy()
    env['AWS_ACCESS_KEY_ID'] = access_key_id
    env['AWS_SECRET_ACCESS_KEY'] = secret_access_key
    env['AWS_DEFAULT_REGION'] = region
    return env


def build_fetch_command(source, parallel: int = 10) -> List[str]:
    """
    Build the xbcloud command that streams a backup to stdout.

    Args:
        source: ObjectStorageSource describing the bucket and backup name
        parallel: Number of parallel download threads

    Returns:
        Command as a list of arguments
    """
    return [
        'xbcloud',
        'get',
        '--storage=s3',
        f'--s3-endpoint={source.endpoint}',
        f'--s3-region={source.region}',
        f'--s3-bucket={source.bucket}',
        f'--s3-bucket-lookup={source.bucket_lookup}',
        f'--parallel={parallel}',
        source.backup_prefix.strip('/'),
    ]


def build_extract_command(target_dir: Path, parallel: int = 10) -> List[str]:
    """Build the xbstream command that unpacks and decompresses a stream into target_dir."""
    return [
        'xbstream',
        '-x',
        '--decompress',
        f'--parallel={parallel}',
        '-C', str(target_dir),
    ]
