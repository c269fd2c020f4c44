import io
import json

import pytest
from conftest import PROGRAM_URL
from rich.console import Console
from typer.testing import CliRunner

from pagesweep import cli, config, log

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch, services):
    monkeypatch.setattr(log, "console", Console(file=io.StringIO()))
    monkeypatch.setattr(cli, "_SERVICES", services)


@pytest.fixture
def html_file(tmp_path, program_html):
    path = tmp_path / "page.html"
    path.write_text(program_html, encoding="utf-8")
    return path


def test_init_creates_dirs_and_tables(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATA_DIR", tmp_path / "data")
    monkeypatch.setattr(config, "EXPORT_DIR", tmp_path / "data" / "exports")
    monkeypatch.setattr(config, "DB_URL", f"sqlite:///{tmp_path / 'data' / 'ps.db'}")
    res = runner.invoke(cli.app, ["init"])
    assert res.exit_code == 0, res.output
    assert (tmp_path / "data" / "exports").is_dir()
    assert (tmp_path / "data" / "ps.db").exists()


def test_extract_from_snapshot(html_file):
    res = runner.invoke(cli.app, ["extract", PROGRAM_URL, "--html", str(html_file)])
    assert res.exit_code == 0, res.output
    assert "== FEES SYNTHESIS ==" in res.stdout
    assert "B.Tech — ₹1,20,000/year" in res.stdout


def test_extract_json(html_file):
    res = runner.invoke(cli.app, ["extract", PROGRAM_URL, "--html", str(html_file), "--json"])
    assert res.exit_code == 0, res.output
    payload = json.loads(res.stdout)
    assert payload["ok"] is True
    assert payload["meta"]["feeLines"] == 1


def test_extract_fetches_without_snapshot():
    res = runner.invoke(cli.app, ["extract", PROGRAM_URL])
    assert res.exit_code == 0, res.output
    assert "H1: B.Tech Admissions 2024" in res.stdout


def test_extract_refuses_unlisted_domain(html_file):
    res = runner.invoke(cli.app, ["extract", "https://evil.org/", "--html", str(html_file)])
    assert res.exit_code == 1
    assert "Error: Domain not allowlisted" in res.stdout


def test_capture_list_show_select_export_delete(html_file, services, tmp_path):
    res = runner.invoke(cli.app, ["capture", PROGRAM_URL, "--html", str(html_file), "--label", "Fees"])
    assert res.exit_code == 0, res.output
    assert "Stored capture" in res.stdout

    res = runner.invoke(cli.app, ["capture", PROGRAM_URL, "--html", str(html_file)])
    assert "Duplicate" in res.stdout

    key = "example.edu/programs/btech"
    res = runner.invoke(cli.app, ["pages", "--domain", "example.edu"])
    assert key in res.stdout
    assert "[1 captures, 1 selected]" in res.stdout

    cid = services.captures.pages[key].captures[0].id
    res = runner.invoke(cli.app, ["show", key])
    assert cid in res.stdout and "Fees" in res.stdout

    res = runner.invoke(cli.app, ["export", key])
    assert res.stdout.rstrip().endswith(f"Source: {PROGRAM_URL}")

    res = runner.invoke(cli.app, ["export", key, "--out", "btech.txt"])
    assert res.exit_code == 0, res.output
    assert (tmp_path / "exports" / "btech.txt").read_text(encoding="utf-8").startswith("== TITLE ==")

    res = runner.invoke(cli.app, ["export", key, "--prompts"])
    assert "CONTENT START" in res.stdout

    runner.invoke(cli.app, ["select", cid, "--off"])
    res = runner.invoke(cli.app, ["export", key])
    assert res.exit_code == 1
    assert "Nothing selected" in res.stdout

    res = runner.invoke(cli.app, ["delete", key, "--page"])
    assert res.exit_code == 0
    assert key not in services.captures.pages
    assert runner.invoke(cli.app, ["delete", key, "--page"]).exit_code == 1


def test_memory_stats(html_file):
    runner.invoke(cli.app, ["extract", PROGRAM_URL, "--html", str(html_file)])
    res = runner.invoke(cli.app, ["memory", "--snapshot", "2"])
    assert res.exit_code == 0
    assert "=== Line memory ===" in res.stdout
    assert res.stdout.count("\n - ") == 2


def test_chunk_command(tmp_path):
    path = tmp_path / "big.txt"
    path.write_text("\n".join("x" * 99 for _ in range(30)))
    res = runner.invoke(cli.app, ["chunk", str(path), "--max-chunk", "1000", "--min-chunk", "0"])
    assert res.exit_code == 0
    assert res.stdout.startswith("3 chunk(s)")


def test_allowed_command():
    assert runner.invoke(cli.app, ["allowed", "https://sub.example.edu/"]).exit_code == 0
    assert runner.invoke(cli.app, ["allowed", "https://evil.org/"]).exit_code == 1


def test_extract_readable_and_llm_formats(html_file):
    res = runner.invoke(cli.app, ["extract", PROGRAM_URL, "--html", str(html_file), "--format", "text"])
    assert res.exit_code == 0, res.output
    assert res.stdout.startswith("B.Tech Admissions | Example University\n=====")
    assert "Tabular Data (Extracted):" in res.stdout

    res = runner.invoke(cli.app, ["extract", PROGRAM_URL, "--html", str(html_file), "--format", "llm"])
    assert res.exit_code == 0, res.output
    assert "HOSTEL/FEES TABLES:\nFEE STRUCTURE" in res.stdout


def test_export_formats(html_file):
    runner.invoke(cli.app, ["capture", PROGRAM_URL, "--html", str(html_file)])
    key = "example.edu/programs/btech"
    res = runner.invoke(cli.app, ["export", key, "--format", "json"])
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["content"]["processed_text"]

    res = runner.invoke(cli.app, ["export", key, "--format", "pdf"])
    assert res.exit_code == 1
    assert "unknown format: pdf" in res.stdout
