import pytest
from conftest import PROGRAM_URL
from fastapi.testclient import TestClient

from pagesweep.pipeline import VERSION
from pagesweep.ui import server


@pytest.fixture
def client(services):
    server.set_services(services)
    yield TestClient(server.app)
    server.set_services(None)


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "version": VERSION}


def test_message_round_trip(client, program_html):
    r = client.post("/message", json={"action": "pipelineExtract", "url": PROGRAM_URL, "html": program_html})
    assert r.status_code == 200
    assert r.json()["extract"]["fees"] == ["B.Tech — ₹1,20,000/year"]

    r = client.post("/message", content=b"not json", headers={"content-type": "application/json"})
    assert r.json() == {"ok": False, "error": "body must be JSON"}


def test_pages_and_combined(client, services):
    services.captures.add_capture(PROGRAM_URL, "B.Tech", "Fees", "Tuition ₹1,20,000")
    pages = client.get("/pages", params={"domain": "example.edu"}).json()
    assert [p["key"] for p in pages] == ["example.edu/programs/btech"]
    assert pages[0]["captures"] == 1 and pages[0]["selected"] == 1

    r = client.get("/pages/example.edu/programs/btech/combined")
    assert r.json() == {
        "key": "example.edu/programs/btech",
        "text": f"Tuition ₹1,20,000\n\nSource: {PROGRAM_URL}",
    }
    assert client.get("/pages/nowhere.org/x/combined").status_code == 404
