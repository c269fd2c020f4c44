# pagesweep/ui/server.py
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..messaging import dispatch
from ..pipeline import VERSION
from ..services import Services, build_services

# ---------- Services ----------

_SERVICES: Optional[Services] = None


def get_services() -> Services:
    global _SERVICES
    if _SERVICES is None:
        _SERVICES = build_services()
    return _SERVICES


def set_services(services: Optional[Services]) -> None:
    global _SERVICES
    _SERVICES = services


# ---------- FastAPI ----------

app = FastAPI(title="PageSweep")
app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "version": VERSION}


@app.post("/message")
async def message(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {"ok": False, "error": "body must be JSON"}
    return dispatch(payload, get_services())


@app.get("/pages")
def list_pages(domain: Optional[str] = None) -> List[Dict[str, Any]]:
    store = get_services().captures
    keys = store.pages_for_domain(domain) if domain else [k for k, _ in store.list_pages()]
    out = []
    for k in keys:
        p = store.pages[k]
        out.append(
            {
                "key": k,
                "url": p.url,
                "title": p.title,
                "captures": len(p.captures),
                "selected": sum(1 for c in p.captures if c.selected),
                "updatedAt": p.updatedAt,
                "collapsed": p.collapsed,
            }
        )
    return out


@app.get("/pages/{key:path}/combined")
def combined(key: str, kind: str = "raw") -> Dict[str, Any]:
    store = get_services().captures
    if key not in store.pages:
        raise HTTPException(status_code=404, detail=f"unknown page: {key}")
    return {"key": key, "text": store.combined_text(key, kind)}
