"""Resume text extraction from a downloadable PDF."""

from __future__ import annotations

import fitz  # PyMuPDF
import httpx
import structlog

from pathquest.errors import DependencyFailure, InvalidArgument

logger = structlog.get_logger()

MIN_EXTRACTED_CHARS = 50


def extract_pdf_text(content: bytes) -> str:
    """Extract plain text from PDF bytes."""
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as exc:
        raise InvalidArgument("Could not read the resume PDF") from exc

    with doc:
        text_parts = [page.get_text() for page in doc]
    return "\n\n".join(text_parts)


async def fetch_resume_text(
    url: str,
    timeout: float = 20.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Download a resume PDF and return its text.

    Raises ``InvalidArgument`` when too little text could be extracted
    (e.g. a scanned image without a text layer).
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning("resume_download_failed", url=url, status=exc.response.status_code)
        raise InvalidArgument(f"Could not download resume (HTTP {exc.response.status_code})") from exc
    except httpx.HTTPError as exc:
        logger.warning("resume_download_failed", url=url, error=str(exc))
        raise DependencyFailure("Could not download resume") from exc

    text = extract_pdf_text(response.content).strip()
    if len(text) < MIN_EXTRACTED_CHARS:
        raise InvalidArgument(
            "Could not extract enough text from the resume. Please upload a text-based PDF.",
            extracted_chars=len(text),
        )

    logger.info("resume_text_extracted", url=url, chars=len(text))
    return text
