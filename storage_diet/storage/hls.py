"""
HLS layout and playlist generation for transcoded videos.

Object layout for a video (all keys relative to the bucket root):

    <permlink>/default.m3u8              master playlist
    <permlink>/<rendition>.m3u8          rendition playlist
    <permlink>/<rendition>/<index>.ts    media segments

The playlist text produced here is consumed directly by players, so the
templates are exact: tag order, the codec string and trailing newlines
must not change.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence

PLAYLIST_CONTENT_TYPE = 'application/vnd.apple.mpegurl'
MASTER_PLAYLIST_NAME = 'default.m3u8'

# Nominal segment length written into rebuilt playlists; segments are not probed
TARGET_DURATION = 10

_SEGMENT_PATTERN = re.compile(r'^(\d+)\.ts$')
_STREAM_INF_PREFIX = '#EXT-X-STREAM-INF:'


class UnknownRenditionError(ValueError):
    """Raised when a rendition tier outside the fixed set is requested."""
    pass


class Rendition(Enum):
    """Quality tiers produced by the encoder, ordered by ascending quality."""
    P360 = '360p'
    P480 = '480p'
    P720 = '720p'
    P1080 = '1080p'

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other):
        if not isinstance(other, Rendition):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Rendition):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Rendition):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Rendition):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def ascending(cls) -> List['Rendition']:
        return sorted(cls, key=lambda r: r.rank)

    @classmethod
    def parse(cls, value) -> 'Rendition':
        """Accept a Rendition or its string form ('720p')."""
        if isinstance(value, Rendition):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            raise UnknownRenditionError(f"Unknown resolution: {value}") from None


_RANKS = {
    Rendition.P360: 1,
    Rendition.P480: 2,
    Rendition.P720: 3,
    Rendition.P1080: 4,
}


@dataclass(frozen=True)
class RenditionSpec:
    """Stream attributes advertised in the master playlist."""
    bandwidth: int
    resolution: str
    codec_profile: str = '42001e'

    @property
    def codecs(self) -> str:
        return f"avc1.{self.codec_profile},mp4a.40.2"


RENDITION_SPECS: Dict[Rendition, RenditionSpec] = {
    Rendition.P360: RenditionSpec(bandwidth=600000, resolution='640x360'),
    Rendition.P480: RenditionSpec(bandwidth=800000, resolution='854x480'),
    Rendition.P720: RenditionSpec(bandwidth=1200000, resolution='1280x720'),
    Rendition.P1080: RenditionSpec(bandwidth=2000000, resolution='1920x1080'),
}


def master_playlist_key(permlink: str) -> str:
    return f"{permlink}/{MASTER_PLAYLIST_NAME}"


def rendition_playlist_key(permlink: str, rendition) -> str:
    return f"{permlink}/{Rendition.parse(rendition).value}.m3u8"


def segment_prefix(permlink: str, rendition) -> str:
    """Prefix holding every segment of one rendition (with trailing slash)."""
    return f"{permlink}/{Rendition.parse(rendition).value}/"


def segment_key(permlink: str, rendition, index: int) -> str:
    return f"{segment_prefix(permlink, rendition)}{index}.ts"


def _stream_inf(rendition: Rendition) -> str:
    spec = RENDITION_SPECS.get(rendition)
    if spec is None:
        raise UnknownRenditionError(f"Unknown resolution: {rendition}")
    return (
        f'{_STREAM_INF_PREFIX}BANDWIDTH={spec.bandwidth},RESOLUTION={spec.resolution},'
        f'CODECS="{spec.codecs}"\n'
        f'{rendition.value}.m3u8\n'
    )


def synthesize_master_playlist(rendition) -> str:
    """Build a master playlist that references a single rendition.

    Args:
        rendition: Rendition (or its string form) to keep

    Returns:
        Master playlist text

    Raises:
        UnknownRenditionError: if the tier is not one of 360p/480p/720p/1080p
    """
    return "#EXTM3U\n#EXT-X-VERSION:3\n" + _stream_inf(Rendition.parse(rendition))


def synthesize_variant_playlist(renditions: Iterable) -> str:
    """Build a master playlist listing several renditions, highest quality first."""
    parsed = sorted({Rendition.parse(r) for r in renditions}, key=lambda r: r.rank, reverse=True)
    if not parsed:
        raise ValueError("A master playlist needs at least one rendition")
    return "#EXTM3U\n#EXT-X-VERSION:3\n" + "".join(_stream_inf(r) for r in parsed)


def synthesize_rendition_playlist(segment_filenames: Sequence[str], path_prefix: str) -> str:
    """Build a VOD rendition playlist.

    Segments are written in the order given; sorting is the caller's job
    (see sort_segment_filenames). Every segment is advertised with the
    nominal TARGET_DURATION.

    Args:
        segment_filenames: Segment file names, e.g. ['0.ts', '1.ts']
        path_prefix: Prefix prepended to each name, e.g. '1080p/'

    Returns:
        Rendition playlist text
    """
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{TARGET_DURATION}",
        "#EXT-X-MEDIA-SEQUENCE:0",
        "#EXT-X-PLAYLIST-TYPE:VOD",
    ]
    for segment in segment_filenames:
        lines.append(f"#EXTINF:{TARGET_DURATION:.1f},")
        lines.append(f"{path_prefix}{segment}")
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def segment_index(filename: str) -> int:
    """Numeric index embedded in a segment name ('12.ts' -> 12)."""
    match = _SEGMENT_PATTERN.match(filename.rsplit('/', 1)[-1])
    if not match:
        raise ValueError(f"Not a segment filename: {filename}")
    return int(match.group(1))


def sort_segment_filenames(keys: Iterable[str]) -> List[str]:
    """Reduce keys to bare segment names sorted by numeric index.

    Anything that is not '<int>.ts' is dropped.
    """
    names = []
    for key in keys:
        name = key.rsplit('/', 1)[-1]
        if _SEGMENT_PATTERN.match(name):
            names.append(name)
    return sorted(names, key=segment_index)


def parse_master_playlist(text: str) -> List[Rendition]:
    """Return the renditions a master playlist references, in file order."""
    renditions = []
    expecting_uri = False
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith(_STREAM_INF_PREFIX):
            expecting_uri = True
            continue
        if expecting_uri and not line.startswith('#'):
            name = line.rsplit('/', 1)[-1]
            if name.endswith('.m3u8'):
                renditions.append(Rendition.parse(name[:-len('.m3u8')]))
            expecting_uri = False
    return renditions
