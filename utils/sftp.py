"""
SFTP Client Utilities

Provides SFTP upload with SSH key authentication and automatic retries.
Supports file uploads with directory creation and size verification.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import paramiko
from paramiko import SFTPClient, SSHClient
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import Settings

logger = logging.getLogger(__name__)


class SftpUploader:
    """Uploads finished batch files to an SFTP server."""

    def __init__(self, settings: Settings) -> None:
        """
        Initialize uploader.

        Args:
            settings: Resolved settings holding the SFTP_* values
        """
        self.host = settings.SFTP_HOST
        self.port = settings.SFTP_PORT
        self.username = settings.SFTP_USERNAME
        self.key_path = Path(settings.SFTP_KEY_PATH)
        self.key_passphrase = settings.SFTP_KEY_PASSPHRASE
        self.timeout = settings.SFTP_TIMEOUT
        self.retries = settings.SFTP_RETRIES

    def connect(self) -> Tuple[SSHClient, SFTPClient]:
        """
        Open an SSH connection and SFTP channel using key authentication.

        Returns:
            Tuple of (ssh_client, sftp_client)

        Raises:
            ValueError: If SFTP configuration is incomplete
            FileNotFoundError: If SSH key file not found
            IOError: If connection cannot be established
        """
        if not self.host:
            raise ValueError("SFTP_HOST is not configured")

        if not self.username:
            raise ValueError("SFTP_USERNAME is not configured")

        if not self.key_path.exists():
            raise FileNotFoundError(f"SSH key file not found: {self.key_path}")

        try:
            private_key = paramiko.RSAKey.from_private_key_file(
                str(self.key_path),
                password=self.key_passphrase or None,
            )
        except paramiko.PasswordRequiredException:
            raise ValueError("SSH key requires passphrase but SFTP_KEY_PASSPHRASE not set")
        except paramiko.SSHException as e:
            raise paramiko.SSHException(f"Failed to load SSH key: {e}") from e

        ssh_client = SSHClient()
        ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            ssh_client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=private_key,
                timeout=self.timeout,
                auth_timeout=self.timeout,
            )
            return ssh_client, ssh_client.open_sftp()

        except Exception as e:
            ssh_client.close()
            raise IOError(f"Failed to establish SFTP connection: {e}") from e

    def upload(self, local_path: str, remote_dir: str, remote_name: Optional[str] = None) -> str:
        """
        Upload file to SFTP server with automatic retry and directory creation.

        Args:
            local_path: Path to local file to upload
            remote_dir: Remote directory path (will be created if needed)
            remote_name: Remote filename (uses local basename if None)

        Returns:
            Remote path of the uploaded file

        Raises:
            FileNotFoundError: If local file doesn't exist
            IOError: If upload fails after all retries
        """
        local_file = Path(local_path)
        if not local_file.is_file():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        remote_path = f"{remote_dir.rstrip('/')}/{remote_name or local_file.name}"

        retrying = Retrying(
            retry=retry_if_exception_type((IOError, paramiko.SSHException)),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            retrying(self._put, local_file, remote_dir, remote_path)
        except (IOError, paramiko.SSHException) as e:
            logger.error(
                "SFTP upload failed after %d attempts: remote_path=%s, error=%s",
                self.retries + 1, remote_path, str(e)
            )
            raise IOError(f"SFTP upload failed: {e}") from e

        logger.info("Uploaded to SFTP: remote_path=%s", remote_path)
        return remote_path

    def _put(self, local_file: Path, remote_dir: str, remote_path: str) -> None:
        ssh_client, sftp_client = self.connect()
        try:
            _ensure_remote_dir(sftp_client, remote_dir)
            sftp_client.put(str(local_file), remote_path)

            remote_size = sftp_client.stat(remote_path).st_size
            local_size = local_file.stat().st_size
            if remote_size != local_size:
                raise IOError(
                    f"Upload verification failed: size mismatch (local={local_size}, remote={remote_size})"
                )
        finally:
            sftp_client.close()
            ssh_client.close()


def _ensure_remote_dir(sftp_client: SFTPClient, remote_dir: str) -> None:
    """
    Ensure remote directory exists, creating it recursively if needed.

    Raises:
        IOError: If directory creation fails
    """
    if not remote_dir or remote_dir == "/":
        return

    remote_dir = remote_dir.rstrip("/")

    try:
        sftp_client.stat(remote_dir)
        return
    except FileNotFoundError:
        pass

    parent_dir = str(Path(remote_dir).parent)
    if parent_dir not in ("/", ".", remote_dir):
        _ensure_remote_dir(sftp_client, parent_dir)

    try:
        sftp_client.mkdir(remote_dir)
        logger.debug("Created remote directory: %s", remote_dir)
    except IOError as e:
        # Another process may have created it in the meantime
        try:
            sftp_client.stat(remote_dir)
        except FileNotFoundError:
            raise IOError(f"Failed to create remote directory {remote_dir}: {e}") from e
