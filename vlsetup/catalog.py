"""Listing of the distro images published on the virt-lightning site."""
import re
from typing import List, Protocol

import sh

from vlsetup.utils import log_info, log_warn


class DistroParser(Protocol):
    def parse(self, html: str) -> List[str]:
        """Return the distro names found in html."""
        ...


class ListItemParser:
    """Extract the text of single-line ``<li>...</li>`` items."""

    pattern = re.compile(r'<li>(.*?)</li>')

    def parse(self, html: str) -> List[str]:
        """Return every list item, in page order."""
        names = []
        for line in html.splitlines():
            names.extend(self.pattern.findall(line))
        return names


def fetch_index(url: str) -> str:
    """Fetch the image index page, returning an empty string on failure."""
    try:
        return str(sh.curl("-s", url))
    except (sh.ErrorReturnCode, sh.CommandNotFound) as e:
        log_warn(f"Could not fetch {url}: {e.__class__.__name__}")
        return ""


def list_online_distros(url: str, parser: DistroParser = None, fetch=fetch_index) -> List[str]:
    """Return the distro names listed at url, sorted, duplicates kept."""
    parser = parser or ListItemParser()
    log_info(f"Fetching available distros from {url}...")
    return sorted(parser.parse(fetch(url)))
