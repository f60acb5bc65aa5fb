import argparse
import json
from contextlib import asynccontextmanager

import pytest

import pagecap_core.cli as cli
from conftest import FakePage, make_document, open_png
from pagecap_core.exceptions import NotConnectedError


@pytest.fixture
def fast_config(monkeypatch, tmp_path):
    monkeypatch.setattr(cli.config, "repaint_delay", 0)
    monkeypatch.setattr(cli.config, "scroll_settle_delay", 0)
    monkeypatch.setattr(cli.config, "max_captures_per_second", 0)
    monkeypatch.setattr(cli.config, "screenshot_dir", tmp_path / "screenshots")
    monkeypatch.setattr(cli.config, "connected_credential", None)
    return cli.config


@pytest.fixture
def fake_browser(monkeypatch):
    pages = []

    @asynccontextmanager
    async def fake_open_page(url, config, viewport_width=None, viewport_height=None):
        page = FakePage(make_document(200, 1400), viewport_height=viewport_height or 600)
        page.url = url
        pages.append(page)
        yield page

    monkeypatch.setattr(cli, "open_page", fake_open_page)
    return pages


def test_parse_viewport():
    assert cli.parse_viewport("1280x800") == (1280, 800)
    assert cli.parse_viewport("1024X768") == (1024, 768)
    assert cli.parse_viewport(None) == (None, None)
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_viewport("wide")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_viewport("0x600")


def test_deliver_to_output(tmp_path):
    out = tmp_path / "nested" / "shot.png"
    assert cli.deliver(b"png", "https://example.com", str(out), "fullpage") == str(out)
    assert out.read_bytes() == b"png"


def test_deliver_needs_connection(fast_config):
    with pytest.raises(NotConnectedError):
        cli.deliver(b"png", "https://example.com", None, "fullpage")


def test_deliver_to_store_when_connected(fast_config, monkeypatch):
    monkeypatch.setattr(cli.config, "connected_credential", "0xabc")
    path = cli.deliver(b"png", "https://www.example.com/a", None, "fullpage")
    assert "example.com" in path
    assert path.endswith("fullpage.png")


def test_main_without_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "pagecap" in capsys.readouterr().out


def test_capture_writes_output(fast_config, fake_browser, tmp_path, capsys):
    out = tmp_path / "page.png"
    rc = cli.main(["capture", "example.com", "-o", str(out), "--viewport", "200x500"])

    assert rc == 0
    assert capsys.readouterr().out.strip() == str(out)
    assert open_png(out.read_bytes()).size == (200, 1400)
    assert fake_browser[0].url == "https://example.com"
    assert fake_browser[0].scroll_calls == [0, 500, 1000]


def test_capture_with_run_log(fast_config, fake_browser, tmp_path):
    out = tmp_path / "page.png"
    logs = tmp_path / "logs"
    rc = cli.main(["capture", "https://example.com", "-o", str(out), "--log-dir", str(logs)])

    assert rc == 0
    content = next(logs.glob("run-*.md")).read_text()
    assert "## Geometry" in content
    assert "| 3 | 1200 | 200 |" in content
    assert "**Status:** SUCCESS" in content


def test_capture_not_connected_json(fast_config, fake_browser, capsys):
    rc = cli.main(["capture", "https://example.com", "--json"])

    assert rc == 2
    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is False
    assert payload["error"]["kind"] == "not_connected"


def test_capture_failure_reports_error(fast_config, fake_browser, monkeypatch, tmp_path, capsys):
    async def broken_screenshot(**kwargs):
        raise RuntimeError("Target closed")

    monkeypatch.setattr(FakePage, "screenshot", lambda self, **kw: broken_screenshot(**kw))

    rc = cli.main(["capture", "https://example.com", "-o", str(tmp_path / "x.png")])

    assert rc == 1
    err = capsys.readouterr().err
    assert "Failed to capture full page:" in err
    assert "Target closed" in err
    assert not (tmp_path / "x.png").exists()


def test_viewport_command(fast_config, fake_browser, tmp_path):
    out = tmp_path / "vp.png"
    assert cli.main(["viewport", "https://example.com", "-o", str(out)]) == 0
    assert open_png(out.read_bytes()).size == (200, 600)


def test_cleanup_command(fast_config, capsys):
    assert cli.main(["cleanup", "--days", "3"]) == 0
    assert "Removed 0 run directories" in capsys.readouterr().out


def test_save_refusal_is_not_reported_as_capture_failure(fast_config, fake_browser, capsys):
    rc = cli.main(["capture", "https://example.com"])

    assert rc == 2
    err = capsys.readouterr().err
    assert "Failed to save screenshot: Please connect an account" in err
    assert "Failed to capture full page" not in err


def test_viewport_failure_names_viewport(fast_config, fake_browser, monkeypatch, capsys):
    async def broken_screenshot(**kwargs):
        raise RuntimeError("Target closed")

    monkeypatch.setattr(FakePage, "screenshot", lambda self, **kw: broken_screenshot(**kw))

    assert cli.main(["viewport", "https://example.com", "-o", "unused.png"]) == 1
    err = capsys.readouterr().err
    assert "Failed to capture viewport: " in err
    assert "Failed to capture full page" not in err
