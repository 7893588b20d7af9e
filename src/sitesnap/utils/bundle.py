"""
Bundle Writing Utilities

This module persists a finished snapshot: index.html, styles.css and the
assets/ directory the downloaded files live in.
"""

import os
from pathlib import Path
import logging

from bs4 import BeautifulSoup

from ..core.errors import BundleWriteError
from ..core.models import Bundle
from .urls import ASSETS_DIRNAME


STYLESHEET_NAME = "styles.css"
INDEX_NAME = "index.html"


class BundleWriter:
    """
    Writes the snapshot bundle into one output directory.

    Directory creation is idempotent and re-running into the same directory
    overwrites the previous index.html and styles.css.
    """

    def __init__(self, output_dir: str):
        """
        Initialize the bundle writer.

        Args:
            output_dir: Directory that receives the bundle
        """
        self.output_dir = Path(output_dir)
        self.assets_dir = self.output_dir / ASSETS_DIRNAME
        self.logger = logging.getLogger(__name__)

    def ensure_directories(self) -> str:
        """
        Create the output and assets directories.

        Returns:
            Path of the assets directory

        Raises:
            BundleWriteError: if the directories cannot be created
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self.assets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BundleWriteError(f"Cannot create output directory {self.output_dir}: {e}") from e

        self.logger.info(f"Output directory ready at: {self.output_dir.absolute()}")
        return str(self.assets_dir)

    def inject_stylesheet_link(self, html: str) -> str:
        """Add a <link> to styles.css as the last element of <head>."""
        soup = BeautifulSoup(html, 'lxml')
        head = soup.head
        if head is None:
            head = soup.new_tag('head')
            if soup.html is not None:
                soup.html.insert(0, head)
            else:
                soup.insert(0, head)
        link = soup.new_tag('link', rel='stylesheet', href=f"./{STYLESHEET_NAME}")
        head.append(link)
        return str(soup)

    def write(self, bundle: Bundle) -> str:
        """
        Write index.html and styles.css.

        Each file is written next to its destination first and then moved
        into place, so an interrupted run never leaves a half-written file.

        Returns:
            Path of the written index.html

        Raises:
            BundleWriteError: on any filesystem error
        """
        self.ensure_directories()
        html_path = self.output_dir / INDEX_NAME
        css_path = self.output_dir / STYLESHEET_NAME

        self._write_text(html_path, bundle.html)
        self._write_text(css_path, bundle.css)

        self.logger.info(f"Saved bundle ({os.path.getsize(html_path)} bytes HTML, "
                         f"{os.path.getsize(css_path)} bytes CSS): {self.output_dir}")
        return str(html_path)

    def _write_text(self, path: Path, content: str) -> None:
        tmp_path = path.with_name(path.name + '.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise BundleWriteError(f"Failed to write {path}: {e}") from e
