"""Pure helpers of the generation package."""

import random

import fitz
import httpx
import pytest

from pathquest.errors import InvalidArgument
from pathquest.generation.cache import content_hash, normalize_text
from pathquest.generation.extractor import extract_pdf_text, fetch_resume_text
from pathquest.generation.resume_service import cache_input
from pathquest.generation.roadmap_service import level_score, node_positions, theme_for_index
from pathquest.generation.schemas import ResumeAnalyzeRequest, UserProfile


def _pdf_with_text(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class TestContentHash:
    def test_whitespace_insensitive(self):
        assert normalize_text("  a \n\n b\tc ") == "a b c"
        assert content_hash("a  b") == content_hash("a\nb")

    def test_distinct_content(self):
        assert content_hash("resume one") != content_hash("resume two")

    def test_resume_key_includes_target(self):
        assert cache_input("text", "Backend", None) != cache_input("text", "Frontend", None)
        assert cache_input("text", None, None) == cache_input("text ", None, None)


class TestRoadmapLayout:
    def test_grid_with_jitter(self):
        positions = node_positions(5, random.Random(7))
        assert len(positions) == 5
        # 3 columns for 5 nodes
        for i, (x, y) in enumerate(positions):
            assert (i % 3) * 250 <= x < (i % 3) * 250 + 50
            assert (i // 3) * 200 <= y < (i // 3) * 200 + 50

    def test_empty(self):
        assert node_positions(0) == []

    def test_theme_progression(self):
        assert theme_for_index(0) == "grassland"
        assert theme_for_index(2) == "forest"
        assert theme_for_index(7) == "space"
        assert theme_for_index(30) == "space"

    def test_level_scores(self):
        assert level_score("Beginner") == 25
        assert level_score("Expert") == 100
        assert level_score(None) == 0
        assert level_score({"level": "Expert"}) == 0


class TestSchemas:
    def test_profile_requires_goal(self):
        with pytest.raises(ValueError):
            UserProfile(career_goal="x", current_skills=[], timeline_months=6)

    def test_resume_request_needs_text_or_url(self):
        with pytest.raises(ValueError):
            ResumeAnalyzeRequest(file_name="cv.pdf")
        assert ResumeAnalyzeRequest(resume_url="https://files.test/cv.pdf").resume_url


class TestExtractor:
    def test_extract_pdf_text(self):
        text = extract_pdf_text(_pdf_with_text("Senior Python Engineer"))
        assert "Senior Python Engineer" in text

    def test_invalid_pdf(self):
        with pytest.raises(InvalidArgument):
            extract_pdf_text(b"definitely not a pdf")

    @pytest.mark.asyncio
    async def test_fetch_resume(self):
        body = _pdf_with_text("Experienced backend engineer with Python, SQL and cloud deployment skills")
        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=body))
        text = await fetch_resume_text("https://files.test/cv.pdf", transport=transport)
        assert "backend engineer" in text

    @pytest.mark.asyncio
    async def test_fetch_resume_http_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(404))
        with pytest.raises(InvalidArgument, match="HTTP 404"):
            await fetch_resume_text("https://files.test/missing.pdf", transport=transport)

    @pytest.mark.asyncio
    async def test_fetch_resume_too_little_text(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=_pdf_with_text("CV")))
        with pytest.raises(InvalidArgument, match="Could not extract enough text"):
            await fetch_resume_text("https://files.test/cv.pdf", transport=transport)
