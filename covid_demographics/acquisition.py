#!/usr/bin/env python3
"""
acquisition.py

Downloads the three inputs of the analysis:

1. JHU CSSE cumulative confirmed cases (CSV)
2. JHU CSSE cumulative deaths (CSV)
3. UN WPP demographic indicators (zip archive holding one CSV)

Every failure is raised as an AcquisitionError naming the source, so a broken
run always says which of the three inputs was at fault. Locators may also be
local paths (or file:// URLs), which is how tests and offline runs work.
"""

import io
import tempfile
import threading
import time
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import requests
from tqdm import tqdm

from covid_demographics.config import SourceParameters
from covid_demographics.errors import AcquisitionError

USER_AGENT = "covid-demographics/1.0"


class DataAcquirer:
    """Fetches the case, death and demographic tables.

    Args:
        sources: Source locators and download settings
        session: HTTP session to use (a new requests.Session by default)
        cancel_event: Set this event from another thread to abort the run
        verbose: Whether to print progress and show download progress bars
    """

    def __init__(self, sources: SourceParameters = None,
                 session: Optional[requests.Session] = None,
                 cancel_event: Optional[threading.Event] = None,
                 verbose: bool = True):
        self.sources = sources or SourceParameters()
        self.cancel_event = cancel_event
        self.verbose = verbose
        self._owns_session = session is None
        self.session = session or requests.Session()
        if self._owns_session:
            self.session.headers.update({
                'User-Agent': USER_AGENT,
                'Accept': 'text/csv,application/zip,*/*',
            })

    def __enter__(self) -> 'DataAcquirer':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def _check_cancelled(self, source: str, locator: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise AcquisitionError(source, locator, "cancelled by caller")

    @staticmethod
    def _local_path(locator: str) -> Optional[Path]:
        """Return the filesystem path for local locators, None for remote ones."""
        if locator.startswith("file://"):
            return Path(locator[len("file://"):])
        if "://" not in locator:
            return Path(locator)
        return None

    @staticmethod
    def _read_csv(source: str, locator: str, buffer) -> pd.DataFrame:
        try:
            df = pd.read_csv(buffer, low_memory=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise AcquisitionError(source, locator, f"unreadable CSV ({exc})") from exc
        except OSError as exc:
            raise AcquisitionError(source, locator, f"cannot read file ({exc})") from exc
        if df.empty:
            raise AcquisitionError(source, locator, "CSV contains no rows")
        return df

    def _get(self, source: str, locator: str, stream: bool = False) -> requests.Response:
        try:
            response = self.session.get(locator, timeout=self.sources.request_timeout, stream=stream)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise AcquisitionError(
                source, locator, f"timed out after {self.sources.request_timeout:g}s"
            ) from exc
        except requests.HTTPError as exc:
            raise AcquisitionError(source, locator, f"HTTP error ({exc})") from exc
        except requests.RequestException as exc:
            raise AcquisitionError(source, locator, f"network error ({exc})") from exc
        return response

    def fetch_csv(self, source: str, locator: str) -> pd.DataFrame:
        """
        Fetch a flat CSV file and parse it.

        Args:
            source: Logical source name used in error messages
            locator: URL or local path

        Returns:
            Parsed table
        """
        self._check_cancelled(source, locator)
        self._log(f"Downloading {source} data from {locator}...")

        local = self._local_path(locator)
        if local is not None:
            if not local.exists():
                raise AcquisitionError(source, locator, "file not found")
            df = self._read_csv(source, locator, local)
        else:
            response = self._get(source, locator)
            df = self._read_csv(source, locator, io.StringIO(response.text))

        self._log(f"Downloaded {source} data: {len(df)} rows, {len(df.columns)} columns")
        return df

    def _download_to(self, source: str, locator: str, destination: Path) -> None:
        """Stream a remote file to disk, checking for cancellation and the deadline between chunks."""
        deadline = time.monotonic() + self.sources.download_timeout
        with self._get(source, locator, stream=True) as response:
            total = int(response.headers.get('content-length', 0) or 0)
            try:
                with open(destination, 'wb') as fh, tqdm(
                    total=total or None, unit='B', unit_scale=True,
                    desc=f"Downloading {source}", disable=not self.verbose
                ) as progress:
                    for chunk in response.iter_content(chunk_size=self.sources.chunk_size):
                        self._check_cancelled(source, locator)
                        if time.monotonic() > deadline:
                            raise AcquisitionError(
                                source, locator,
                                f"download exceeded {self.sources.download_timeout:g}s"
                            )
                        fh.write(chunk)
                        progress.update(len(chunk))
            except requests.RequestException as exc:
                raise AcquisitionError(source, locator, f"download interrupted ({exc})") from exc

    def _read_archive_member(self, source: str, locator: str,
                             archive_path: Path, member: str) -> pd.DataFrame:
        try:
            with zipfile.ZipFile(archive_path) as archive:
                names = archive.namelist()
                if member not in names:
                    raise AcquisitionError(
                        source, locator,
                        f"member {member!r} not in archive (found: {', '.join(names) or 'nothing'})"
                    )
                with archive.open(member) as fh:
                    return self._read_csv(source, f"{locator}!{member}", fh)
        except zipfile.BadZipFile as exc:
            raise AcquisitionError(source, locator, f"corrupt archive ({exc})") from exc
        except OSError as exc:
            raise AcquisitionError(source, locator, f"cannot read archive ({exc})") from exc

    def fetch_archive_member(self, source: str, locator: str, member: str) -> pd.DataFrame:
        """
        Fetch a zip archive and parse one CSV member from it.

        Remote archives are downloaded into a temporary directory that is
        removed when this method returns or raises.

        Args:
            source: Logical source name used in error messages
            locator: URL or local path of the zip archive
            member: Name of the CSV inside the archive

        Returns:
            Parsed member table
        """
        self._check_cancelled(source, locator)
        self._log(f"Downloading {source} archive from {locator}...")

        local = self._local_path(locator)
        if local is not None:
            if not local.exists():
                raise AcquisitionError(source, locator, "file not found")
            df = self._read_archive_member(source, locator, local, member)
        else:
            with tempfile.TemporaryDirectory(prefix="covid_demographics_") as tmp_dir:
                archive_path = Path(tmp_dir) / "archive.zip"
                self._download_to(source, locator, archive_path)
                df = self._read_archive_member(source, locator, archive_path, member)

        self._log(f"Extracted {member}: {len(df)} rows, {len(df.columns)} columns")
        return df

    def fetch_all(self) -> Dict[str, pd.DataFrame]:
        """Fetch all three inputs, aborting on the first failure."""
        return {
            'cases': self.fetch_csv('cases', self.sources.cases_url),
            'deaths': self.fetch_csv('deaths', self.sources.deaths_url),
            'demographics': self.fetch_archive_member(
                'demographics', self.sources.demographics_url, self.sources.demographics_member
            ),
        }
