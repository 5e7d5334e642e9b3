from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
import os
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional
from sqlalchemy import Column, Integer, String, UniqueConstraint, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
import json
import logging

from vnexplorer import ItemKind, close_session, normalise_bookmark_ids

# =========================
# ログ設定
# =========================
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# =========================
# データベース設定
# =========================
DB_URL = os.environ.get("VNEXPLORER_DB_URL", "sqlite+aiosqlite:///db/bookmarks.db")

engine: AsyncEngine = create_async_engine(
    DB_URL,
    echo=False,
    pool_pre_ping=True,
    pool_recycle=3600,
)

SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


def get_db_session() -> AsyncSession:
    return SessionLocal()

# =========================
# モデル
# =========================
Base = declarative_base()


class Bookmark(Base):
    __tablename__ = 'bookmarks'
    __table_args__ = (UniqueConstraint('kind', 'item_id', name='uq_bookmarks_kind_item'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False, index=True)  # 'vn' or 'char'
    item_id = Column(String, nullable=False)
    created_at = Column(String)  # ISO8601 文字列

    def __repr__(self):
        return f"<Bookmark(kind='{self.kind}', item_id='{self.item_id}')>"

# =========================
# DB 初期化
# =========================


def _ensure_sqlite_directory(url: str) -> None:
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


async def init_database() -> None:
    """
    アプリ起動時: bookmarks テーブルを作成（存在しない場合のみ）
    """
    _ensure_sqlite_directory(DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

# =========================
# ユーティリティ
# =========================


def _parse_kind(value: Optional[str]) -> ItemKind:
    try:
        return ItemKind(value or ItemKind.VN.value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown bookmark type: {value}") from exc


def _legacy_member(item_id: str) -> str:
    # 旧バージョンでは '["v24"]' の形で保存されていた
    return json.dumps([item_id])


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _load_bookmark_ids(db: AsyncSession, kind: ItemKind) -> List[str]:
    stmt = (
        select(Bookmark.item_id)
        .where(Bookmark.kind == kind.value)
        .order_by(Bookmark.created_at, Bookmark.id)
    )
    result = await db.execute(stmt)
    return normalise_bookmark_ids(result.scalars().all())


async def _add_bookmark(db: AsyncSession, kind: ItemKind, item_id: str) -> None:
    stmt = select(Bookmark).where(Bookmark.kind == kind.value, Bookmark.item_id == item_id)
    result = await db.execute(stmt)
    if result.scalars().first() is not None:
        return
    db.add(Bookmark(kind=kind.value, item_id=item_id, created_at=datetime.utcnow().isoformat()))
    await db.commit()


async def _remove_bookmark(db: AsyncSession, kind: ItemKind, item_id: str) -> None:
    stmt = delete(Bookmark).where(
        Bookmark.kind == kind.value,
        Bookmark.item_id.in_([item_id, _legacy_member(item_id)]),
    )
    await db.execute(stmt)
    await db.commit()

# =========================
# FastAPI
# =========================
app = FastAPI()

# =========================
# ブックマーク API
# =========================
@app.get("/api/bookmarks")
async def list_bookmarks(type: Optional[str] = Query(default=None)) -> Any:
    kind = _parse_kind(type)
    try:
        async with get_db_session() as db:
            return await _load_bookmark_ids(db, kind)
    except Exception as exc:
        logger.error("ブックマーク取得エラー: %s", exc)
        return _error_response("Internal Server Error", 500)


@app.post("/api/bookmarks")
async def add_bookmark(
    type: Optional[str] = Query(default=None),
    id: Optional[str] = Query(default=None),
) -> Any:
    kind = _parse_kind(type)
    item_id = (id or "").strip()
    if not item_id:
        return _error_response("ID is required", 400)
    try:
        async with get_db_session() as db:
            await _add_bookmark(db, kind, item_id)
    except Exception as exc:
        logger.error("ブックマーク追加エラー: %s (%s/%s)", exc, kind.value, item_id)
        return _error_response("Internal Server Error", 500)
    return {"success": True}


@app.delete("/api/bookmarks")
async def remove_bookmark(
    type: Optional[str] = Query(default=None),
    id: Optional[str] = Query(default=None),
) -> Any:
    kind = _parse_kind(type)
    item_id = (id or "").strip()
    if not item_id:
        return _error_response("ID is required", 400)
    try:
        async with get_db_session() as db:
            await _remove_bookmark(db, kind, item_id)
    except Exception as exc:
        logger.error("ブックマーク削除エラー: %s (%s/%s)", exc, kind.value, item_id)
        return _error_response("Internal Server Error", 500)
    return {"success": True}


# =========================
# ライフサイクル
# =========================
@app.on_event("startup")
async def startup_event():
    await init_database()
    logger.info("ブックマークDB初期化完了")


@app.on_event("shutdown")
async def shutdown_event():
    await close_session()
    await engine.dispose()
    logger.info("HTTP クライアントと DB エンジンを解放しました")

# =========================
# エントリポイント
# =========================
if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Run the bookmark API server")
    parser.add_argument("--host", type=str, default="localhost", help="Server host (default: localhost)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--log", type=str, choices=["critical", "error", "warning", "info", "debug", "trace"],
                        default="info", help="Logging level (default: info)")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log)
