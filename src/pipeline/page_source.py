"""Resolution of uploaded documents into ordered page images.

Raster images are used as-is after being written to the file's working
directory. PDFs are rasterized with poppler's ``pdftoppm``, one PNG per
page, and the pages are returned in numeric page order.
"""

import asyncio
import re
import shutil
from pathlib import Path

from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from pdf2image.pdf2image import pdfinfo_from_path

from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .errors import ConversionError

logger = get_logger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
PDF_EXTENSION = ".pdf"
ALLOWED_EXTENSIONS = (*IMAGE_EXTENSIONS, PDF_EXTENSION)

_PAGE_FILE = re.compile(r"^page-(\d+)\.png$")
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(name: str) -> str:
    """Replace characters that are unsafe in a file name with underscores."""
    return _UNSAFE_CHARS.sub("_", name)


def collect_page_images(output_dir: Path) -> list[Path]:
    """List rasterized ``page-<n>.png`` files sorted by page number.

    pdftoppm zero-pads page numbers only to the width of the last page,
    so lexical order is not reliable.
    """
    pages: list[tuple[int, Path]] = []
    for path in output_dir.iterdir():
        match = _PAGE_FILE.match(path.name)
        if match:
            pages.append((int(match.group(1)), path))
    return [path for _, path in sorted(pages)]


def rasterizer_command(config: AppConfig) -> str:
    """Return the pdftoppm executable, honouring a configured poppler path."""
    if config.poppler_path:
        return str(Path(config.poppler_path) / "pdftoppm")
    return "pdftoppm"


def rasterizer_available(config: AppConfig) -> bool:
    """Check whether the pdftoppm executable can be resolved."""
    return shutil.which(rasterizer_command(config)) is not None


class PageSource:
    """Turns one uploaded file into a list of page image paths.

    Args:
        config: Application configuration (DPI and poppler location).
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    async def resolve(self, file_name: str, content: bytes, work_dir: Path) -> list[Path]:
        """Persist an upload and return its page images in page order.

        Args:
            file_name: Original upload name; its extension picks the route.
            content: Raw upload bytes.
            work_dir: Working directory owned by this file's job.

        Returns:
            Page image paths, page 1 first.

        Raises:
            ConversionError: If the extension is not supported or a PDF
                cannot be rasterized.
        """
        extension = Path(file_name).suffix.lower()
        upload_path = work_dir / sanitize_file_name(file_name)
        upload_path.write_bytes(content)

        if extension in IMAGE_EXTENSIONS:
            return [upload_path]
        if extension == PDF_EXTENSION:
            return await self.rasterize(upload_path, work_dir)
        raise ConversionError(f"Cannot convert files of type {extension or '(none)'}")

    async def rasterize(self, pdf_path: Path, output_dir: Path) -> list[Path]:
        """Render every page of a PDF to PNG at the configured DPI.

        Raises:
            ConversionError: If poppler is missing, pdfinfo reports no
                pages, pdftoppm exits non-zero, or no pages were produced.
        """
        page_count = await asyncio.to_thread(self._page_count, pdf_path)
        if page_count == 0:
            raise ConversionError("PDF conversion produced no pages")
        logger.debug("PDF %s reports %s pages", pdf_path.name, page_count)

        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [
            rasterizer_command(self.config),
            "-r",
            str(self.config.pdf_dpi),
            "-png",
            str(pdf_path),
            str(output_dir / "page"),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ConversionError(f"Failed to start pdftoppm: {exc}") from exc

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise ConversionError(
                f"pdftoppm failed with exit code {process.returncode}: {detail}"
            )

        pages = collect_page_images(output_dir)
        if not pages:
            raise ConversionError("PDF conversion produced no pages")
        if page_count is not None and len(pages) != page_count:
            logger.warning(
                "pdftoppm produced %d images for %s, pdfinfo reported %d pages",
                len(pages),
                pdf_path.name,
                page_count,
            )

        logger.info(
            "Converted PDF %s to %d images at %d DPI",
            pdf_path.name,
            len(pages),
            self.config.pdf_dpi,
        )
        return pages

    def _page_count(self, pdf_path: Path) -> int | None:
        """Read the page count with pdfinfo.

        A PDF that pdfinfo cannot read is still handed to pdftoppm, which
        decides on its own; ``None`` is returned in that case.
        """
        try:
            info = pdfinfo_from_path(str(pdf_path), poppler_path=self.config.poppler_path)
        except PDFInfoNotInstalledError as exc:
            raise ConversionError("Poppler is not installed or not on PATH") from exc
        except (PDFPageCountError, PDFSyntaxError) as exc:
            logger.warning("pdfinfo could not read %s: %s", pdf_path.name, exc)
            return None
        pages = info.get("Pages")
        return int(pages) if pages is not None else None
