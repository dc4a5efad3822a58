import csv
import logging
from collections import OrderedDict
from io import StringIO
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Body, FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from plexmix.config import (
    MatchingSettings,
    load_matching_settings,
    save_matching_settings,
    settings,
    update_matching_settings,
)
from plexmix.models import MatchedPlaylist, MixOptions
from plexmix.services.csv_loader import CSVParseError, parse_playlist_csv, playlist_from_csv, serialize_tracks
from plexmix.services.library import LibraryUnavailableError
from plexmix.services.matching import match_playlist
from plexmix.services.mix_builder import build_custom_mix
from plexmix.services.named_mixes import generate_all_mixes
from plexmix.services.plex_library import PlexLibrary
from plexmix.services.progress import progress_tracker


def configure_logging(log_level: str, log_dir: str) -> None:
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    file_handler = logging.FileHandler(log_path / "plexmix.log", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)


configure_logging(settings.log_level, settings.log_dir)
logger = logging.getLogger(__name__)

app = FastAPI(title="Plex Mix & Match")
app.state.matching_settings = load_matching_settings(settings.matching_settings_file)

REPORT_STORE: "OrderedDict[str, str]" = OrderedDict()
REPORT_STORE_LIMIT = 50


class CustomMixRequest(BaseModel):
    title: Optional[str] = None
    options: MixOptions = Field(default_factory=MixOptions)


def get_library(music_section: Optional[str] = None) -> PlexLibrary:
    return PlexLibrary(
        plex_url=settings.plex_url,
        plex_token=settings.plex_token,
        music_section=music_section or settings.default_music_section,
    )


def current_matching_settings() -> MatchingSettings:
    return app.state.matching_settings


def _form_bool(value: Optional[str]) -> bool:
    return value is not None and value.lower() in {"on", "true", "1", "yes"}


@app.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/settings/matching")
async def get_matching_settings() -> JSONResponse:
    return JSONResponse(current_matching_settings().model_dump(mode="json"))


@app.put("/settings/matching")
async def put_matching_settings(changes: Dict[str, Any] = Body(default={})) -> JSONResponse:
    try:
        updated = update_matching_settings(current_matching_settings(), changes)
    except ValidationError as exc:
        logger.warning("Rejected matching settings update: %s", exc)
        details = exc.errors(include_url=False, include_context=False)
        return JSONResponse({"error": "Invalid matching settings.", "details": details}, status_code=422)

    app.state.matching_settings = updated
    if settings.matching_settings_file:
        save_matching_settings(updated, settings.matching_settings_file)
    logger.info("Matching settings updated: %s", sorted(changes))
    return JSONResponse(updated.model_dump(mode="json"))


@app.post("/preview")
async def preview_playlist(
    csv_text: str = Form(""),
    csv_file: Optional[UploadFile] = File(None),
) -> JSONResponse:
    csv_bytes: Optional[bytes] = None
    if csv_file and csv_file.filename:
        csv_bytes = await csv_file.read()

    try:
        tracks = parse_playlist_csv(csv_text=csv_text, csv_bytes=csv_bytes)
    except CSVParseError as exc:
        logger.exception("CSV preview failed: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=400)

    return JSONResponse({"csv": serialize_tracks(tracks), "entryCount": len(tracks)})


@app.post("/match")
async def match_csv_playlist(
    playlist_name: str = Form(""),
    music_section: str = Form(""),
    csv_text: str = Form(""),
    csv_file: Optional[UploadFile] = File(None),
    create_playlist: Optional[str] = Form(None),
    job_id: str = Form(""),
) -> JSONResponse:
    active_playlist_name = playlist_name.strip() or "Imported Playlist"
    matching = current_matching_settings()
    logger.info("Received match request for playlist '%s'", active_playlist_name)

    csv_bytes: Optional[bytes] = None
    if csv_file and csv_file.filename:
        csv_bytes = await csv_file.read()

    job_id = job_id.strip()
    if job_id:
        progress_tracker.start(job_id, 0)

    try:
        playlist = playlist_from_csv(active_playlist_name, csv_text=csv_text, csv_bytes=csv_bytes)
    except CSVParseError as exc:
        logger.exception("CSV parsing failed: %s", exc)
        _fail_job(job_id)
        return JSONResponse({"error": str(exc)}, status_code=400)

    if job_id:
        progress_tracker.update(job_id, 0, total=len(playlist.tracks))

    try:
        library = get_library(music_section.strip() or None)
        result = await match_playlist(
            playlist,
            library.search,
            matching,
            on_progress=progress_tracker.callback_for(job_id) if job_id else None,
        )
        created = False
        if _form_bool(create_playlist) and result.matched_keys:
            created = await library.create_playlist(active_playlist_name, result.matched_keys)
    except LibraryUnavailableError as exc:
        logger.exception("Playlist match failed: %s", exc)
        _fail_job(job_id)
        return JSONResponse({"error": str(exc)}, status_code=502)

    if job_id:
        progress_tracker.finish(job_id)

    body = result.model_dump(mode="json")
    body["created"] = created
    body["report_token"] = _store_report(result)
    return JSONResponse(body)


@app.get("/progress/{job_id}")
async def get_progress(job_id: str) -> JSONResponse:
    snapshot = progress_tracker.snapshot(job_id)
    if snapshot is None:
        return JSONResponse({"status": "unknown"}, status_code=404)
    if snapshot.get("status") in {"completed", "error"}:
        progress_tracker.pop(job_id)
    return JSONResponse(snapshot)


@app.get("/report/{token}")
async def download_report(token: str) -> Response:
    csv_data = REPORT_STORE.pop(token, None)
    if not csv_data:
        return JSONResponse({"error": "Report expired or not found."}, status_code=404)
    return Response(
        content=csv_data,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=match-report-{token}.csv"},
    )


@app.post("/mixes/custom")
async def create_custom_mix(request: CustomMixRequest) -> JSONResponse:
    try:
        library = get_library()
        track_keys = await build_custom_mix(request.options, library, current_matching_settings())
        created = False
        if request.title and track_keys:
            created = await library.create_playlist(request.title, track_keys)
    except LibraryUnavailableError as exc:
        logger.exception("Custom mix failed: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=502)
    return JSONResponse({"track_keys": track_keys, "created": created})


@app.post("/mixes/generate")
async def generate_mixes() -> JSONResponse:
    try:
        library = get_library()
    except LibraryUnavailableError as exc:
        return JSONResponse({"error": str(exc)}, status_code=502)
    created = await generate_all_mixes(library, current_matching_settings())
    return JSONResponse({"created": created})


def _fail_job(job_id: str) -> None:
    if job_id:
        progress_tracker.error(job_id)


def _store_report(result: MatchedPlaylist) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Artist", "Track", "Status", "Plex Artist", "Plex Title", "Score"])
    for track in result.tracks:
        if track.matched:
            status = "Matched"
        elif track.best_score is not None:
            status = f"Best score {track.best_score:.1f} < threshold"
        else:
            status = "Not found in library"
        writer.writerow([
            track.artist,
            track.title,
            status,
            track.plex_artist or "",
            track.plex_title or "",
            "" if track.score is None else f"{track.score:.1f}",
        ])

    token = uuid4().hex
    REPORT_STORE[token] = buffer.getvalue()
    while len(REPORT_STORE) > REPORT_STORE_LIMIT:
        REPORT_STORE.popitem(last=False)
    return token


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.app_port)
