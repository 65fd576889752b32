"""Tests for CLI commands."""

import json
import subprocess
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

import sitemapwalk.services.crawl as crawl_module
from sitemapwalk.cli import app
from sitemapwalk.exceptions import AbortedError
from sitemapwalk.models import ErrorRecord, FetchResult

SITEMAP = "https://example.com/sitemap.xml"


class FakeCrawler:
    """Stands in for SitemapCrawler and records the config it was built with."""

    instances: list["FakeCrawler"] = []
    result = FetchResult(url=SITEMAP, sites=[], errors=[])
    error: BaseException | None = None

    def __init__(self, config):
        self.config = config
        self.signal = None
        FakeCrawler.instances.append(self)

    async def fetch(self, url=None, signal=None):
        self.signal = signal
        if FakeCrawler.error is not None:
            raise FakeCrawler.error
        return FakeCrawler.result


@pytest.fixture
def fake_crawler(monkeypatch: pytest.MonkeyPatch) -> type[FakeCrawler]:
    """Replace the crawler used by the fetch command."""
    FakeCrawler.instances = []
    FakeCrawler.result = FetchResult(
        url=SITEMAP,
        sites=["https://example.com/a", {"loc": "https://example.com/b", "lastmod": "2024-06-01"}],
        errors=[],
    )
    FakeCrawler.error = None
    monkeypatch.setattr(crawl_module, "SitemapCrawler", FakeCrawler)
    return FakeCrawler


class TestFetchCommand:
    """Tests for the fetch command."""

    def test_text_output_lists_sites(self, fake_crawler: type[FakeCrawler]) -> None:
        result = CliRunner().invoke(app, ["fetch", SITEMAP])

        assert result.exit_code == 0, result.output
        assert "https://example.com/a" in result.output
        assert '"lastmod": "2024-06-01"' in result.output

    def test_options_build_config(self, fake_crawler: type[FakeCrawler]) -> None:
        """Test that command options reach the crawl configuration."""
        result = CliRunner().invoke(
            app,
            [
                "fetch",
                SITEMAP,
                "--timeout",
                "2000",
                "-c",
                "4",
                "--retries",
                "2",
                "--lastmod",
                "1704067200000",
                "--exclude",
                "/tag/",
                "--field",
                "lastmod",
                "--field",
                "sitemap",
                "--insecure",
                "--header",
                "X-Test: yes",
            ],
        )

        assert result.exit_code == 0, result.output
        config = fake_crawler.instances[0].config
        assert config.url == SITEMAP
        assert config.timeout == 2000
        assert config.concurrency == 4
        assert config.retries == 2
        assert config.lastmod == 1704067200000
        assert [pattern.pattern for pattern in config.exclusions] == ["/tag/"]
        assert config.selected_fields == ("lastmod", "sitemap")
        assert config.reject_unauthorized is False
        assert config.request_headers["X-Test"] == "yes"
        assert fake_crawler.instances[0].signal is not None

    def test_json_output_to_file(self, fake_crawler: type[FakeCrawler], tmp_path: Path) -> None:
        output_file = tmp_path / "sites.json"

        result = CliRunner().invoke(app, ["fetch", SITEMAP, "--format", "json", "--output", str(output_file)])

        assert result.exit_code == 0, result.output
        data = json.loads(output_file.read_text(encoding="utf-8"))
        assert data["url"] == SITEMAP
        assert data["sites"][0] == "https://example.com/a"
        assert data["errors"] == []

    def test_errors_are_reported(self, fake_crawler: type[FakeCrawler]) -> None:
        fake_crawler.result = FetchResult(
            url=SITEMAP,
            sites=["https://example.com/a"],
            errors=[ErrorRecord(kind="HTTPError", message="HTTP Error occurred", url=SITEMAP, retries=1)],
        )

        result = CliRunner().invoke(app, ["fetch", SITEMAP])

        assert result.exit_code == 0
        assert "HTTPError" in result.output

    def test_only_errors_exits_non_zero(self, fake_crawler: type[FakeCrawler]) -> None:
        fake_crawler.result = FetchResult(
            url=SITEMAP,
            sites=[],
            errors=[ErrorRecord(kind="TimeoutError", message="timed out", url=SITEMAP, retries=0)],
        )

        result = CliRunner().invoke(app, ["fetch", SITEMAP])

        assert result.exit_code == 1

    def test_abort_exits_130(self, fake_crawler: type[FakeCrawler]) -> None:
        fake_crawler.error = AbortedError(url=SITEMAP)

        result = CliRunner().invoke(app, ["fetch", SITEMAP])

        assert result.exit_code == 130
        assert "Aborted." in result.output

    def test_bad_header_is_a_usage_error(self, fake_crawler: type[FakeCrawler]) -> None:
        result = CliRunner().invoke(app, ["fetch", SITEMAP, "--header", "no-colon"])

        assert result.exit_code == 2
        assert fake_crawler.instances == []

    def test_invalid_config_is_a_usage_error(self, fake_crawler: type[FakeCrawler]) -> None:
        result = CliRunner().invoke(app, ["fetch", SITEMAP, "--exclude", "(unclosed"])

        assert result.exit_code == 2
        assert "Invalid exclusion pattern" in result.output

    def test_unknown_field_is_rejected(self, fake_crawler: type[FakeCrawler]) -> None:
        result = CliRunner().invoke(app, ["fetch", SITEMAP, "--field", "title"])

        assert result.exit_code == 2


@pytest.mark.e2e
class TestModuleEntryPoint:
    """E2E tests running the CLI as a module."""

    def test_help_lists_fetch(self) -> None:
        result = subprocess.run(
            [sys.executable, "-m", "sitemapwalk", "--help"],
            capture_output=True,
            text=True,
            timeout=60,
        )
        assert result.returncode == 0, f"Command failed: {result.stderr}"
        assert "fetch" in result.stdout
