import pytest

from plexmix.services.csv_loader import CSVParseError, parse_playlist_csv, playlist_from_csv, serialize_tracks

SPOTIFY_EXPORT = """Track Name,Artist Name(s),Album Name
Hurt,Johnny Cash,American IV
Bohemian Rhapsody,Queen,A Night at the Opera
,Missing Title,
Hurt,Johnny Cash,American IV
"""


def test_parses_aliased_columns_in_order():
    tracks = parse_playlist_csv(SPOTIFY_EXPORT)

    assert [(t.title, t.artist) for t in tracks] == [
        ("Hurt", "Johnny Cash"),
        ("Bohemian Rhapsody", "Queen"),
        ("Hurt", "Johnny Cash"),
    ]
    assert tracks[1].album == "A Night at the Opera"


def test_semicolon_separated_bytes():
    data = "artist;title\nBeyoncé;Halo\n".encode("utf-8-sig")
    [track] = parse_playlist_csv(csv_bytes=data)
    assert track.artist == "Beyoncé"
    assert track.title == "Halo"
    assert track.album is None


def test_missing_columns():
    with pytest.raises(CSVParseError, match="artist"):
        parse_playlist_csv("title,album\nHurt,American IV\n")


def test_no_content():
    with pytest.raises(CSVParseError):
        parse_playlist_csv("")


def test_no_valid_rows():
    with pytest.raises(CSVParseError):
        parse_playlist_csv("title,artist\n,\n")


def test_playlist_from_csv():
    playlist = playlist_from_csv("Road Trip", SPOTIFY_EXPORT)
    assert playlist.name == "Road Trip"
    assert playlist.source == "csv"
    assert len(playlist.tracks) == 3


def test_serialize_tracks():
    tracks = parse_playlist_csv("artist,title\nQueen,Radio Ga Ga\n")
    assert serialize_tracks(tracks) == "Artist name,Album,Track name\r\nQueen,,Radio Ga Ga"
