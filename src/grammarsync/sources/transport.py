"""Retrieval primitives used by package sources.

Three operations, each failing with FetchError naming the origin:
- download: HTTP GET to a local file (httpx, follows redirects)
- extract_tarball: unpack a (compressed) tar archive into a directory
- svn_export: ``svn export`` of a repository path

Security protections on extraction:
- Absolute member paths and ``..`` components are rejected
- Symbolic and hard links are skipped
"""

from __future__ import annotations

import logging
import subprocess
import tarfile
from pathlib import Path

import httpx

from grammarsync.config import ARCHIVE_TIMEOUT, GRAMMAR_TIMEOUT
from grammarsync.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "grammar-sync/0.1"

# Extraction filters exist from 3.12 (and late 3.10/3.11 patch releases)
EXTRACT_KWARGS = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}


def is_path_safe(member_path: str, target_dir: Path) -> bool:
    """Check that an archive member stays inside target_dir.

    Args:
        member_path: Path from archive member
        target_dir: Directory files will be extracted to

    Returns:
        True if path is safe, False otherwise
    """
    if member_path.startswith("/") or member_path.startswith("\\"):
        return False
    # Windows drive letters
    if len(member_path) >= 2 and member_path[1] == ":":
        return False

    normalized = member_path.replace("\\", "/")
    if ".." in normalized.split("/"):
        return False

    full_path = (target_dir / member_path).resolve()
    try:
        full_path.relative_to(target_dir.resolve())
        return True
    except ValueError:
        return False


def is_tar_member_link(member: tarfile.TarInfo) -> bool:
    """Check if a TarInfo entry is a symbolic or hard link."""
    return member.issym() or member.islnk()


class Transport:
    """Black-box retrieval used by every package source.

    Usage:
        transport = Transport(archive_timeout=30, grammar_timeout=10)
        transport.download(url, workdir / "archive", transport.archive_timeout)

    Args:
        client: httpx client to reuse (tests pass one backed by MockTransport)
        archive_timeout: Timeout for archive downloads, in seconds
        grammar_timeout: Timeout for single-grammar downloads, in seconds
        svn_command: Executable used for Subversion exports
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        archive_timeout: float = ARCHIVE_TIMEOUT,
        grammar_timeout: float = GRAMMAR_TIMEOUT,
        svn_command: str = "svn",
    ):
        self.client = client
        self.archive_timeout = archive_timeout
        self.grammar_timeout = grammar_timeout
        self.svn_command = svn_command

    def download(self, url: str, out_path: Path, timeout: float) -> Path:
        """Download a URL to a file path atomically.

        Writes to a .tmp file first, then renames so a failed download
        never leaves a partial file behind.
        """
        tmp_path = out_path.with_name(out_path.name + ".tmp")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Downloading %s -> %s", url, out_path)

        client = self.client or httpx.Client(
            follow_redirects=True, headers={"User-Agent": USER_AGENT}
        )
        try:
            with client.stream("GET", url, timeout=timeout) as response:
                response.raise_for_status()
                with open(tmp_path, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
            tmp_path.replace(out_path)
        except httpx.HTTPStatusError as e:
            raise FetchError(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
            if self.client is None:
                client.close()
        return out_path

    def extract_tarball(self, archive: Path, target_dir: Path, origin: str = "") -> Path:
        """Extract a tar archive (any compression tarfile detects).

        Raises:
            FetchError: Archive unreadable or contains unsafe paths
        """
        origin = origin or str(archive)
        target_dir.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(archive, "r:*") as tf:
                members = []
                for member in tf.getmembers():
                    if not is_path_safe(member.name, target_dir):
                        raise FetchError(
                            origin, f"Unsafe path in archive: {member.name}"
                        )
                    if is_tar_member_link(member):
                        logger.debug("Skipping link in archive: %s", member.name)
                        continue
                    if not (member.isfile() or member.isdir()):
                        continue
                    members.append(member)
                tf.extractall(target_dir, members=members, **EXTRACT_KWARGS)
        except (tarfile.TarError, OSError) as e:
            raise FetchError(
                origin, f"Failed to uncompress tarball {archive}: {e}"
            ) from e
        return target_dir

    def svn_export(self, url: str, target_dir: Path) -> Path:
        """Export a Subversion path into target_dir (which must not exist)."""
        cmd = [self.svn_command, "export", "-q", url, str(target_dir)]
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise FetchError(url, f"Failed to export SVN repository: {detail}") from e
        except OSError as e:
            raise FetchError(url, f"{self.svn_command} not runnable: {e}") from e
        return target_dir
