"""
Metadata extraction for audio files.

The catalog consumes extraction through the ``MetadataExtractor`` callable
type; ``extract_track_metadata`` is the default implementation backed by
Mutagen. Nothing here touches the database.
"""

import re
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from .models import ExtendedMetadata, TrackMetadata

MetadataExtractor = Callable[[str], TrackMetadata]

# Tag names per field: ID3 frames, MP4 atoms, then Vorbis/FLAC/APE keys
TAG_NAMES = {
    "title": ["TIT2", "\xa9nam", "TITLE", "title"],
    "artist": ["TPE1", "\xa9ART", "ARTIST", "artist"],
    "album": ["TALB", "\xa9alb", "ALBUM", "album"],
    "album_artist": ["TPE2", "aART", "ALBUMARTIST", "albumartist", "album artist"],
    "composer": ["TCOM", "\xa9wrt", "COMPOSER", "composer"],
    "genre": ["TCON", "\xa9gen", "GENRE", "genre"],
    "year": ["TDRC", "TYER", "\xa9day", "DATE", "YEAR", "date", "year"],
    "original_release_date": ["TDOR", "ORIGINALDATE", "originaldate"],
    "track_number": ["TRCK", "trkn", "TRACKNUMBER", "tracknumber"],
    "disc_number": ["TPOS", "disk", "DISCNUMBER", "discnumber"],
    "bpm": ["TBPM", "tmpo", "BPM", "bpm"],
    "compilation": ["TCMP", "cpil", "COMPILATION", "compilation"],
    "media_type": ["TMED", "MEDIA", "media"],
    "sort_title": ["TSOT", "sonm", "TITLESORT", "titlesort"],
    "sort_artist": ["TSOP", "soar", "ARTISTSORT", "artistsort"],
    "sort_album": ["TSOA", "soal", "ALBUMSORT", "albumsort"],
    "sort_album_artist": ["TSO2", "soaa", "ALBUMARTISTSORT", "albumartistsort"],
}

EXTENDED_TAG_NAMES = {
    "isrc": ["TSRC", "ISRC", "isrc"],
    "barcode": ["TXXX:BARCODE", "BARCODE", "barcode"],
    "catalog_number": ["TXXX:CATALOGNUMBER", "CATALOGNUMBER", "catalognumber"],
    "label": ["TPUB", "LABEL", "label", "ORGANIZATION", "organization"],
    "copyright": ["TCOP", "cprt", "COPYRIGHT", "copyright"],
    "musicbrainz_artist_id": ["TXXX:MusicBrainz Artist Id", "MUSICBRAINZ_ARTISTID", "musicbrainz_artistid"],
    "musicbrainz_album_id": ["TXXX:MusicBrainz Album Id", "MUSICBRAINZ_ALBUMID", "musicbrainz_albumid"],
    "musicbrainz_album_artist_id": ["TXXX:MusicBrainz Album Artist Id", "MUSICBRAINZ_ALBUMARTISTID", "musicbrainz_albumartistid"],
    "musicbrainz_track_id": ["UFID:http://musicbrainz.org", "MUSICBRAINZ_TRACKID", "musicbrainz_trackid"],
    "musicbrainz_release_group_id": ["TXXX:MusicBrainz Release Group Id", "MUSICBRAINZ_RELEASEGROUPID", "musicbrainz_releasegroupid"],
    "acoustid": ["TXXX:Acoustid Id", "ACOUSTID_ID", "acoustid_id"],
    "producer": ["TXXX:PRODUCER", "PRODUCER", "producer"],
    "engineer": ["TXXX:ENGINEER", "ENGINEER", "engineer"],
    "lyricist": ["TEXT", "LYRICIST", "lyricist"],
    "conductor": ["TPE3", "CONDUCTOR", "conductor"],
    "remixer": ["TPE4", "REMIXER", "remixer"],
    "mood": ["TMOO", "MOOD", "mood"],
    "language": ["TLAN", "LANGUAGE", "language"],
    "comment": ["COMM::eng", "\xa9cmt", "COMMENT", "comment"],
    "encoded_by": ["TENC", "\xa9too", "ENCODEDBY", "encodedby"],
    "encoder_settings": ["TSSE", "ENCODERSETTINGS", "encodersettings"],
    "replay_gain_track": ["TXXX:REPLAYGAIN_TRACK_GAIN", "REPLAYGAIN_TRACK_GAIN", "replaygain_track_gain"],
    "replay_gain_album": ["TXXX:REPLAYGAIN_ALBUM_GAIN", "REPLAYGAIN_ALBUM_GAIN", "replaygain_album_gain"],
    "key": ["TKEY", "INITIALKEY", "initialkey", "KEY", "key"],
}

CODECS_BY_SUFFIX = {
    ".mp3": "MP3",
    ".m4a": "AAC",
    ".aac": "AAC",
    ".flac": "FLAC",
    ".wav": "PCM",
    ".aiff": "PCM",
    ".aif": "PCM",
}


def get_tag_value(audio_file: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    tags = getattr(audio_file, "tags", None)
    if tags is None:
        return None
    for tag_name in tag_names:
        try:
            value = tags.get(tag_name)
        except (KeyError, ValueError):
            # Some formats (like Vorbis) raise ValueError for non-existent keys
            continue
        if not value:
            continue
        if isinstance(value, list):
            value = value[0]
            # MP4 number pairs, e.g. trkn = [(3, 12)]
            if isinstance(value, tuple):
                value = "/".join(str(v) for v in value if v)
        text = getattr(value, "text", None)
        if text:
            value = text[0]
        value = str(value).strip()
        if value:
            return value
    return None


def parse_number_pair(value: Optional[str]) -> tuple[Optional[int], Optional[int]]:
    """Parse '3/12' style values into (3, 12)."""
    if not value:
        return None, None
    parts = value.split("/", 1)

    def to_int(text: str) -> Optional[int]:
        match = re.match(r"\s*(\d+)", text)
        return int(match.group(1)) if match else None

    number = to_int(parts[0])
    total = to_int(parts[1]) if len(parts) > 1 else None
    return number, total


def parse_year(value: Optional[str]) -> Optional[str]:
    """Return the four-digit year at the start of a date tag."""
    if not value:
        return None
    match = re.match(r"\s*(\d{4})", value)
    return match.group(1) if match else None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _extract_artwork(audio_file: Any) -> Optional[bytes]:
    """Get the first embedded picture, if any."""
    pictures = getattr(audio_file, "pictures", None)
    if pictures:
        return bytes(pictures[0].data)

    tags = getattr(audio_file, "tags", None)
    if tags is None:
        return None

    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return bytes(frames[0].data)

    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        return bytes(covers[0])
    return None


def extract_metadata_from_filename(local_path: str) -> TrackMetadata:
    """Extract basic info from filename as fallback."""
    title = Path(local_path).stem
    artist = None

    # Try to parse "Artist - Title" format
    if " - " in title:
        parts = title.split(" - ", 1)
        artist = parts[0].strip() or None
        title = parts[1].strip() or title

    return TrackMetadata(title=title, artist=artist)


def extract_track_metadata(local_path: str) -> TrackMetadata:
    """Extract metadata from an audio file using mutagen."""
    try:
        audio_file = MutagenFile(local_path)
    except (MutagenError, OSError) as e:
        logger.warning(f"Could not read metadata from {local_path}: {e}")
        return extract_metadata_from_filename(local_path)

    if audio_file is None:
        # File couldn't be read by mutagen, use filename
        return extract_metadata_from_filename(local_path)

    values = {name: get_tag_value(audio_file, tags) for name, tags in TAG_NAMES.items()}
    track_number, total_tracks = parse_number_pair(values.pop("track_number"))
    disc_number, total_discs = parse_number_pair(values.pop("disc_number"))
    date_value = values.pop("year")
    compilation = values.pop("compilation")
    bpm = _to_int(values.pop("bpm"))

    extended = ExtendedMetadata(
        **{
            name: get_tag_value(audio_file, tags)
            for name, tags in EXTENDED_TAG_NAMES.items()
        }
    )

    info = getattr(audio_file, "info", None)
    duration = float(getattr(info, "length", 0.0) or 0.0)
    bitrate = getattr(info, "bitrate", None)
    suffix = Path(local_path).suffix.lower()

    metadata = TrackMetadata(
        **values,
        year=parse_year(date_value),
        release_date=date_value if date_value and len(date_value) > 4 else None,
        duration=duration,
        artwork_data=_extract_artwork(audio_file),
        track_number=track_number,
        total_tracks=total_tracks,
        disc_number=disc_number,
        total_discs=total_discs,
        compilation=compilation in ("1", "True", "true") if compilation else None,
        bpm=bpm,
        bitrate=bitrate // 1000 if bitrate else None,  # kbps
        sample_rate=getattr(info, "sample_rate", None),
        channels=getattr(info, "channels", None),
        bit_depth=getattr(info, "bits_per_sample", None),
        codec=CODECS_BY_SUFFIX.get(suffix),
        extended=extended,
    )

    # Fallback to filename if no title
    if not metadata.title:
        fallback = extract_metadata_from_filename(local_path)
        metadata.title = fallback.title
        if not metadata.artist:
            metadata.artist = fallback.artist

    return metadata
