from __future__ import annotations

import json
import sys
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

# allow importing the scanner from repo root
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from superthanks_logging import configure_logging, get_logger  # noqa: E402
from superthanks_parser import (  # noqa: E402
    CommentBlock,
    ScanState,
    VideoUrlError,
    build_report,
    canonical_watch_url,
    finding_to_json,
    iso_timestamp,
    totals_to_json,
)


APP_DIR = Path(__file__).resolve().parent
CONFIG_PATH = APP_DIR / "config.json"
DEFAULT_MAX_ACTIVE_SCANS = 32

logger = get_logger("superthanks.web")


@dataclass(frozen=True)
class User:
    username: str
    token: str
    role: str


@dataclass
class ScanSession:
    scan_id: str
    owner: str
    url: str
    video_id: str
    created_at: datetime
    state: ScanState
    # Ingestion into one scan is single-writer.
    lock: threading.Lock = field(default_factory=threading.Lock)


class LoginRequest(BaseModel):
    token: str


class CreateScanRequest(BaseModel):
    url: str
    min_amount: Decimal = Field(default=Decimal("0"), ge=0)


class BlockIn(BaseModel):
    text: str
    author: str = ""
    badge: bool = False
    content: Optional[str] = None


class BatchRequest(BaseModel):
    blocks: List[BlockIn]


def load_config() -> dict:
    if not CONFIG_PATH.exists():
        raise RuntimeError(f"Missing config file: {CONFIG_PATH}")
    return json.loads(CONFIG_PATH.read_text(encoding="utf-8"))


def build_user_index(cfg: dict) -> Dict[str, User]:
    users: Dict[str, User] = {}
    for raw in cfg.get("users", []):
        token = str(raw.get("token", "")).strip()
        if not token:
            continue
        role = str(raw.get("role", "user")).strip().lower()
        if role not in {"admin", "user"}:
            raise RuntimeError(f"unsupported role: {role}")
        users[token] = User(
            username=str(raw.get("username", "unknown")),
            token=token,
            role=role,
        )
    return users


def can_access_scan(user: User, scan: ScanSession) -> bool:
    return user.role == "admin" or scan.owner == user.username


def scan_summary(scan: ScanSession) -> dict:
    return {
        "scan_id": scan.scan_id,
        "owner": scan.owner,
        "url": scan.url,
        "videoId": scan.video_id,
        "createdAt": iso_timestamp(scan.created_at),
        "count": scan.state.count,
    }


def create_app(cfg: Optional[dict] = None) -> FastAPI:
    cfg = load_config() if cfg is None else cfg
    configure_logging(cfg.get("logging", {}).get("level"))

    user_index = build_user_index(cfg)
    max_active = int(cfg.get("scans", {}).get("max_active", DEFAULT_MAX_ACTIVE_SCANS))
    scans: Dict[str, ScanSession] = {}
    registry_lock = threading.Lock()

    app = FastAPI(title="Super Thanks Scanner API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.get("server", {}).get("cors_origins", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    bearer = HTTPBearer(auto_error=False)

    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(bearer),
    ) -> User:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(status_code=401, detail="missing bearer token")
        token = credentials.credentials.strip()
        user = user_index.get(token)
        if user is None:
            raise HTTPException(status_code=401, detail="invalid token")
        return user

    def get_scan_or_404(scan_id: str, user: User) -> ScanSession:
        with registry_lock:
            scan = scans.get(scan_id)
        if scan is None:
            raise HTTPException(status_code=404, detail="scan not found")
        if not can_access_scan(user, scan):
            raise HTTPException(status_code=403, detail="forbidden")
        return scan

    @app.get("/api/health")
    def health() -> dict:
        return {"ok": True}

    @app.post("/api/login")
    def login(payload: LoginRequest) -> dict:
        token = payload.token.strip()
        user = user_index.get(token)
        if not user:
            raise HTTPException(status_code=401, detail="invalid token")
        return {
            "username": user.username,
            "role": user.role,
            "token": user.token,
        }

    @app.get("/api/me")
    def me(user: User = Depends(get_current_user)) -> dict:
        return {
            "username": user.username,
            "role": user.role,
        }

    @app.post("/api/scans", status_code=201)
    def create_scan(payload: CreateScanRequest, user: User = Depends(get_current_user)) -> dict:
        try:
            video_id, url = canonical_watch_url(payload.url)
        except VideoUrlError as e:
            raise HTTPException(status_code=400, detail=f"invalid video url: {e}")

        scan = ScanSession(
            scan_id=uuid.uuid4().hex,
            owner=user.username,
            url=url,
            video_id=video_id,
            created_at=datetime.now(timezone.utc),
            state=ScanState(min_amount=payload.min_amount),
        )
        with registry_lock:
            if len(scans) >= max_active:
                raise HTTPException(status_code=429, detail="too many active scans")
            scans[scan.scan_id] = scan
        logger.info("Scan %s started by %s for video %s", scan.scan_id, user.username, video_id)
        return scan_summary(scan)

    @app.get("/api/scans")
    def list_scans(user: User = Depends(get_current_user)) -> dict:
        with registry_lock:
            visible = [s for s in scans.values() if can_access_scan(user, s)]
        visible.sort(key=lambda s: s.created_at)
        return {"items": [scan_summary(s) for s in visible]}

    @app.post("/api/scans/{scan_id}/batches")
    def ingest_batch(
        scan_id: str,
        payload: BatchRequest,
        user: User = Depends(get_current_user),
    ) -> dict:
        scan = get_scan_or_404(scan_id, user)
        blocks = [
            CommentBlock(text=b.text, author=b.author, badge=b.badge, content=b.content)
            for b in payload.blocks
        ]
        with scan.lock:
            new = scan.state.ingest_batch(blocks)
            totals = scan.state.snapshot_totals()
            count = scan.state.count
        return {
            "new": [finding_to_json(f) for f in new],
            "totals": totals_to_json(totals),
            "count": count,
        }

    @app.get("/api/scans/{scan_id}")
    def get_scan_report(scan_id: str, user: User = Depends(get_current_user)) -> dict:
        scan = get_scan_or_404(scan_id, user)
        with scan.lock:
            return build_report(scan.state, scan.url, scan.video_id)

    @app.delete("/api/scans/{scan_id}")
    def delete_scan(scan_id: str, user: User = Depends(get_current_user)) -> dict:
        scan = get_scan_or_404(scan_id, user)
        with registry_lock:
            scans.pop(scan.scan_id, None)
        logger.info("Scan %s discarded by %s", scan.scan_id, user.username)
        return {"deleted": scan.scan_id}

    return app


app = create_app()
