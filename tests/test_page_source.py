"""Tests for upload persistence and PDF rasterization."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError

from src.pipeline.errors import ConversionError
from src.pipeline.page_source import (
    PageSource,
    collect_page_images,
    rasterizer_available,
    rasterizer_command,
    sanitize_file_name,
)
from src.utils.config import AppConfig


def _fake_process(
    returncode: int = 0,
    stderr: bytes = b"",
    pages_to_write: list[Path] | None = None,
):
    """Create a stand-in for an asyncio subprocess."""
    process = MagicMock()
    process.returncode = returncode

    async def _communicate() -> tuple[bytes, bytes]:
        for page in pages_to_write or []:
            page.write_bytes(b"png")
        return b"", stderr

    process.communicate = AsyncMock(side_effect=_communicate)
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestHelpers:
    """Tests for file naming and page ordering helpers."""

    def test_sanitize_file_name(self) -> None:
        assert sanitize_file_name("my scan (1).pdf") == "my_scan__1_.pdf"
        assert sanitize_file_name("../etc/passwd") == ".._etc_passwd"
        assert sanitize_file_name("ok-name_1.png") == "ok-name_1.png"

    def test_pages_sorted_numerically(self, tmp_path: Path) -> None:
        for number in [10, 2, 1, 9, 3, 4, 5, 6, 7, 8]:
            (tmp_path / f"page-{number}.png").write_bytes(b"png")
        (tmp_path / "upload.pdf").write_bytes(b"%PDF")
        (tmp_path / "page-x.png").write_bytes(b"png")

        pages = collect_page_images(tmp_path)

        assert [p.name for p in pages] == [f"page-{n}.png" for n in range(1, 11)]

    def test_zero_padded_pages_sorted(self, tmp_path: Path) -> None:
        for number in ["01", "02", "10", "11"]:
            (tmp_path / f"page-{number}.png").write_bytes(b"png")

        pages = collect_page_images(tmp_path)

        assert [p.name for p in pages] == [
            "page-01.png",
            "page-02.png",
            "page-10.png",
            "page-11.png",
        ]

    def test_rasterizer_command_uses_poppler_path(self) -> None:
        assert rasterizer_command(AppConfig()) == "pdftoppm"
        config = AppConfig(poppler_path="/opt/poppler/bin")
        assert rasterizer_command(config) == str(Path("/opt/poppler/bin") / "pdftoppm")

    @patch("src.pipeline.page_source.shutil.which")
    def test_rasterizer_available(self, mock_which: MagicMock) -> None:
        mock_which.return_value = "/usr/bin/pdftoppm"
        assert rasterizer_available(AppConfig()) is True
        mock_which.return_value = None
        assert rasterizer_available(AppConfig()) is False


class TestResolveImages:
    """Tests for raster image uploads."""

    def test_image_is_single_page(self, tmp_path: Path) -> None:
        source = PageSource(AppConfig())

        pages = asyncio.run(source.resolve("my scan.PNG", b"image-bytes", tmp_path))

        assert pages == [tmp_path / "my_scan.PNG"]
        assert pages[0].read_bytes() == b"image-bytes"

    def test_unknown_extension_fails(self, tmp_path: Path) -> None:
        source = PageSource(AppConfig())
        with pytest.raises(ConversionError):
            asyncio.run(source.resolve("notes.txt", b"text", tmp_path))


class TestRasterize:
    """Tests for PDF rasterization through pdftoppm."""

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_pdf_pages_in_order(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.return_value = {"Pages": 10}
        written = [tmp_path / f"page-{n:02d}.png" for n in range(10, 0, -1)]
        process = _fake_process(pages_to_write=written)
        source = PageSource(AppConfig(pdf_dpi=150))

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ) as mock_exec:
            pages = asyncio.run(source.resolve("doc.pdf", b"%PDF-1.4", tmp_path))

        assert [p.name for p in pages] == [f"page-{n:02d}.png" for n in range(1, 11)]
        args = mock_exec.call_args.args
        assert args[:4] == ("pdftoppm", "-r", "150", "-png")
        assert args[4] == str(tmp_path / "doc.pdf")
        assert args[5] == str(tmp_path / "page")
        assert (tmp_path / "doc.pdf").read_bytes() == b"%PDF-1.4"

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_nonzero_exit_reports_stderr(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.return_value = {"Pages": 1}
        process = _fake_process(returncode=1, stderr=b"Syntax Error: broken xref\n")
        source = PageSource(AppConfig())

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            with pytest.raises(ConversionError, match="exit code 1: Syntax Error: broken xref"):
                asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_no_pages_produced(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.return_value = {"Pages": 1}
        source = PageSource(AppConfig())

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=_fake_process()),
        ):
            with pytest.raises(ConversionError, match="produced no pages"):
                asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_missing_executable(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.return_value = {"Pages": 1}
        source = PageSource(AppConfig())

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("pdftoppm")),
        ):
            with pytest.raises(ConversionError, match="Failed to start pdftoppm"):
                asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_poppler_not_installed(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.side_effect = PDFInfoNotInstalledError("no pdfinfo")
        source = PageSource(AppConfig())

        with pytest.raises(ConversionError, match="Poppler is not installed"):
            asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_empty_pdf_skips_rasterizer(self, mock_info: MagicMock, tmp_path: Path) -> None:
        mock_info.return_value = {"Pages": 0}
        source = PageSource(AppConfig())

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(),
        ) as mock_exec:
            with pytest.raises(ConversionError, match="produced no pages"):
                asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

        mock_exec.assert_not_called()

    @patch("src.pipeline.page_source.pdfinfo_from_path")
    def test_pdfinfo_rejection_defers_to_rasterizer(
        self, mock_info: MagicMock, tmp_path: Path
    ) -> None:
        mock_info.side_effect = PDFPageCountError("Unable to get page count")
        process = _fake_process(pages_to_write=[tmp_path / "page-1.png", tmp_path / "page-2.png"])
        source = PageSource(AppConfig())

        with patch(
            "src.pipeline.page_source.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            pages = asyncio.run(source.rasterize(tmp_path / "doc.pdf", tmp_path))

        assert [p.name for p in pages] == ["page-1.png", "page-2.png"]
