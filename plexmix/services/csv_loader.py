from __future__ import annotations

import csv
import io
import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from plexmix.models import ExternalPlaylist, ExternalTrack

logger = logging.getLogger(__name__)


class CSVParseError(Exception):
    pass


COLUMN_ALIASES: Dict[str, str] = {
    "track name": "title",
    "title": "title",
    "track": "title",
    "song": "title",
    "artist name": "artist",
    "artist": "artist",
    "artist name(s)": "artist",
    "album": "album",
    "album name": "album",
}

REQUIRED_COLUMNS = {"title", "artist"}


def parse_playlist_csv(csv_text: str = "", csv_bytes: Optional[bytes] = None) -> List[ExternalTrack]:
    """Read a CSV export into external tracks, keeping row order.

    Rows missing a title or an artist are skipped; duplicates are kept since
    each one is matched on its own.
    """
    raw_csv = _resolve_csv_payload(csv_text, csv_bytes)

    try:
        dataframe = pd.read_csv(
            io.StringIO(raw_csv),
            sep=None,
            engine="python",
            dtype=str,
            keep_default_na=False,
        )
    except Exception as exc:  # pragma: no cover - pandas parses many edge cases
        raise CSVParseError(f"Unable to parse CSV: {exc}") from exc

    if dataframe.empty:
        raise CSVParseError("The CSV file is empty.")

    normalized = {_normalize_header(col): col for col in dataframe.columns}
    column_map: Dict[str, str] = {}
    for friendly, field in COLUMN_ALIASES.items():
        if friendly in normalized and field not in column_map:
            column_map[field] = normalized[friendly]

    missing = REQUIRED_COLUMNS - column_map.keys()
    if missing:
        pretty = ", ".join(sorted(missing))
        raise CSVParseError(f"Missing required columns: {pretty}.")

    tracks: List[ExternalTrack] = []
    for display_index, row in enumerate(dataframe.to_dict(orient="records"), start=2):
        title = _clean_cell(row.get(column_map["title"]))
        artist = _clean_cell(row.get(column_map["artist"]))
        if not title or not artist:
            logger.debug("Skipping row %s due to missing title/artist: '%s' / '%s'", display_index, title, artist)
            continue
        album = _clean_cell(row.get(column_map["album"])) if "album" in column_map else ""
        tracks.append(ExternalTrack(title=title, artist=artist, album=album or None))

    if not tracks:
        raise CSVParseError("No valid tracks found in the CSV.")

    logger.info("Parsed %s rows into %s external tracks", len(dataframe), len(tracks))
    return tracks


def playlist_from_csv(name: str, csv_text: str = "", csv_bytes: Optional[bytes] = None) -> ExternalPlaylist:
    tracks = parse_playlist_csv(csv_text=csv_text, csv_bytes=csv_bytes)
    return ExternalPlaylist(id=name, name=name, description=f"Imported from CSV ({len(tracks)} tracks)", tracks=tracks)


def serialize_tracks(tracks: Sequence[ExternalTrack]) -> str:
    header = ["Artist name", "Album", "Track name"]
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    for track in tracks:
        writer.writerow([track.artist, track.album or "", track.title])
    return output.getvalue().strip()


def _resolve_csv_payload(csv_text: str, csv_bytes: Optional[bytes]) -> str:
    candidate = csv_text.strip()
    if candidate:
        return candidate

    if csv_bytes is None:
        raise CSVParseError("No CSV content provided.")

    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return csv_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CSVParseError("Unable to decode CSV. Please use UTF-8 or Latin-1 encoding.")


def _normalize_header(column_name: str) -> str:
    return column_name.strip().lower().replace("_", " ")


def _clean_cell(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip()
