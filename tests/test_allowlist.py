import json

from pagesweep.allowlist import Allowlist


def test_host_and_parent_domains(tmp_path):
    path = tmp_path / "allowed.json"
    path.write_text(json.dumps(["Example.edu", "vit.ac.in", 42]))
    allow = Allowlist.from_file(path)

    assert allow.is_allowed_url("https://example.edu/fees")
    assert allow.is_allowed_url("https://admissions.example.edu/x")
    assert allow.is_allowed_url("https://www.vit.ac.in/")
    assert not allow.is_allowed_url("https://example.edu.evil.com/")
    assert not allow.is_allowed_url("https://ac.in/")
    assert not allow.is_allowed_url("not a url")
    assert allow.snapshot() == ["example.edu", "vit.ac.in"]


def test_missing_file_allows_nothing(tmp_path):
    allow = Allowlist.from_file(tmp_path / "missing.json")
    assert not allow.is_allowed_url("https://example.edu/")
    assert allow.last_error


def test_wrong_shape_allows_nothing(tmp_path):
    path = tmp_path / "allowed.json"
    path.write_text(json.dumps({"domains": ["example.edu"]}))
    allow = Allowlist.from_file(path)
    assert not allow.is_allowed_url("https://example.edu/")
    assert "expected array" in allow.last_error


def test_bad_json_allows_nothing(tmp_path):
    path = tmp_path / "allowed.json"
    path.write_text("[example.edu")
    assert not Allowlist.from_file(path).is_allowed_url("https://example.edu/")


def test_inline_domains():
    allow = Allowlist(["example.edu"])
    assert allow.is_allowed_host("EXAMPLE.EDU.")
    assert not allow.is_allowed_host("")
