"""Common subprocess utilities shared by every restore step."""

import logging
import re
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from mysql_pitr.utils.errors import CommandError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


def quote_command(cmd: List[str]) -> str:
    """Render a command line with every argument shell-quoted."""
    return ' '.join(shlex.quote(str(arg)) for arg in cmd)


class SubprocessRunner:
    """Subprocess execution with consistent logging, timeouts and error handling."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def run_command(self,
                    cmd: List[str],
                    ignore_pattern: Optional[str] = None,
                    env: Optional[Dict[str, str]] = None) -> Dict[str, Union[bool, str, float, int, None]]:
        """
        Execute command, capturing stdout and stderr together.

        A nonzero exit whose output matches ignore_pattern is reported as a success
        with 'ignored' set. Never raises.

        Returns dict with keys: success, ignored, error, duration, returncode, output, command
        """
        command_txt = quote_command(cmd)
        logger.info(command_txt)

        result = {
            'success': False,
            'ignored': False,
            'error': None,
            'duration': 0,
            'returncode': -1,
            'output': '',
            'command': command_txt
        }

        start = time.time()
        try:
            process = subprocess.run(
                [str(arg) for arg in cmd],
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors='replace',
                timeout=self.timeout
            )
            result['duration'] = time.time() - start
            result['returncode'] = process.returncode
            result['output'] = process.stdout or ''

            if process.returncode == 0:
                result['success'] = True
            elif ignore_pattern and re.search(ignore_pattern, result['output']):
                logger.info("ignoring error")
                result['success'] = True
                result['ignored'] = True
            else:
                result['error'] = f"Command failed with exit code {process.returncode}"

        except subprocess.TimeoutExpired as e:
            result['duration'] = time.time() - start
            result['error'] = f"Command timed out after {self.timeout} seconds"
            if e.output:
                result['output'] = e.output.decode('utf-8', errors='replace') if isinstance(e.output, bytes) else str(e.output)
        except FileNotFoundError:
            result['error'] = f"Command not found: {cmd[0] if cmd else 'unknown'}"
        except OSError as e:
            result['error'] = f"Could not execute command: {e}"

        return result

    def run(self,
            purpose: str,
            cmd: List[str],
            ignore_pattern: Optional[str] = None,
            env: Optional[Dict[str, str]] = None) -> Dict[str, Union[bool, str, float, int, None]]:
        """Execute command and raise CommandError unless it succeeded or its failure is ignorable."""
        result = self.run_command(cmd, ignore_pattern=ignore_pattern, env=env)
        if not result['success']:
            if result['output']:
                logger.error(result['output'].rstrip())
            logger.error(f"{purpose}: {result['error']}")
            raise CommandError(purpose, result)
        return result

    def run_pipeline(self,
                     purpose: str,
                     producer_cmd: List[str],
                     consumer_cmd: List[str],
                     env: Optional[Dict[str, str]] = None) -> Dict[str, Union[bool, str, float, int, None]]:
        """
        Run producer_cmd piped into consumer_cmd as one step.

        Both processes share a single deadline. When either side fails or the
        deadline passes, the other side is killed and CommandError is raised.
        """
        command_txt = f"{quote_command(producer_cmd)} | {quote_command(consumer_cmd)}"
        logger.info(command_txt)

        result = {
            'success': False,
            'ignored': False,
            'error': None,
            'duration': 0,
            'returncode': -1,
            'output': '',
            'command': command_txt
        }

        producer = None
        consumer = None
        consumer_output = b''
        start = time.time()

        # Producer stderr goes to a file so a chatty producer cannot fill a pipe nobody reads
        with tempfile.TemporaryFile() as producer_stderr:
            try:
                producer = subprocess.Popen(
                    [str(arg) for arg in producer_cmd],
                    stdout=subprocess.PIPE,
                    stderr=producer_stderr,
                    env=env
                )
                consumer = subprocess.Popen(
                    [str(arg) for arg in consumer_cmd],
                    stdin=producer.stdout,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    env=env
                )
                # Let the producer receive SIGPIPE if the consumer exits
                producer.stdout.close()

                consumer_output, _ = consumer.communicate(timeout=self.timeout)
                if consumer.returncode != 0:
                    producer.kill()
                remaining = max(self.timeout - (time.time() - start), 0)
                producer.wait(timeout=remaining)

                if producer.returncode != 0 and consumer.returncode == 0:
                    result['error'] = f"{producer_cmd[0]} failed with exit code {producer.returncode}"
                    result['returncode'] = producer.returncode
                elif consumer.returncode != 0:
                    result['error'] = f"{consumer_cmd[0]} failed with exit code {consumer.returncode}"
                    result['returncode'] = consumer.returncode
                else:
                    result['success'] = True
                    result['returncode'] = 0

            except subprocess.TimeoutExpired:
                result['error'] = f"Pipeline timed out after {self.timeout} seconds"
            except FileNotFoundError as e:
                result['error'] = f"Command not found: {e.filename}"
            except OSError as e:
                result['error'] = f"Could not execute pipeline: {e}"
            finally:
                for process in (consumer, producer):
                    if process is not None and process.poll() is None:
                        process.kill()
                        process.wait()
                if producer is not None and producer.stdout and not producer.stdout.closed:
                    producer.stdout.close()

                producer_stderr.seek(0)
                producer_output = producer_stderr.read().decode('utf-8', errors='replace')

        result['duration'] = time.time() - start
        result['output'] = producer_output + (consumer_output or b'').decode('utf-8', errors='replace')

        if not result['success']:
            if result['output']:
                logger.error(result['output'].rstrip())
            logger.error(f"{purpose}: {result['error']}")
            raise CommandError(purpose, result)
        return result


def validate_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """
    Validate and normalize a path.

    Args:
        path: Path to validate
        must_exist: Whether path must exist

    Returns:
        Normalized Path object

    Raises:
        ValueError: If path validation fails
    """
    if isinstance(path, str):
        path = Path(path)

    try:
        path = path.resolve()
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Invalid path: {e}")

    if must_exist and not path.exists():
        raise ValueError(f"Path does not exist: {path}")

    return path
