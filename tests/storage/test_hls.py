"""
Tests for HLS key layout and playlist generation.
"""

import pytest

from storage_diet.storage.hls import (
    Rendition,
    UnknownRenditionError,
    master_playlist_key,
    parse_master_playlist,
    rendition_playlist_key,
    segment_key,
    segment_prefix,
    sort_segment_filenames,
    synthesize_master_playlist,
    synthesize_rendition_playlist,
    synthesize_variant_playlist,
)


class TestRendition:

    def test_ascending_order(self):
        assert Rendition.ascending() == [Rendition.P360, Rendition.P480, Rendition.P720, Rendition.P1080]

    def test_comparison_uses_quality_not_name(self):
        assert Rendition.P480 < Rendition.P1080
        assert Rendition.P1080 > Rendition.P720
        assert min([Rendition.P1080, Rendition.P480, Rendition.P720]) == Rendition.P480

    def test_parse_accepts_strings_and_members(self):
        assert Rendition.parse('720p') == Rendition.P720
        assert Rendition.parse(' 360p ') == Rendition.P360
        assert Rendition.parse(Rendition.P1080) is Rendition.P1080

    def test_parse_rejects_unknown_tier(self):
        with pytest.raises(UnknownRenditionError):
            Rendition.parse('240p')


class TestKeyLayout:

    def test_keys(self):
        assert master_playlist_key('abc') == 'abc/default.m3u8'
        assert rendition_playlist_key('abc', '720p') == 'abc/720p.m3u8'
        assert segment_prefix('abc', Rendition.P480) == 'abc/480p/'
        assert segment_key('abc', '1080p', 12) == 'abc/1080p/12.ts'


class TestMasterPlaylist:

    def test_single_rendition_is_exact(self):
        expected = (
            "#EXTM3U\n"
            "#EXT-X-VERSION:3\n"
            '#EXT-X-STREAM-INF:BANDWIDTH=600000,RESOLUTION=640x360,CODECS="avc1.42001e,mp4a.40.2"\n'
            "360p.m3u8\n"
        )
        assert synthesize_master_playlist('360p') == expected

    @pytest.mark.parametrize("rendition,bandwidth,resolution", [
        ('480p', 800000, '854x480'),
        ('720p', 1200000, '1280x720'),
        ('1080p', 2000000, '1920x1080'),
    ])
    def test_stream_attributes(self, rendition, bandwidth, resolution):
        text = synthesize_master_playlist(rendition)
        assert f"BANDWIDTH={bandwidth},RESOLUTION={resolution}," in text
        assert text.endswith(f"{rendition}.m3u8\n")

    def test_unknown_rendition_raises(self):
        with pytest.raises(UnknownRenditionError):
            synthesize_master_playlist('4k')

    def test_variant_lists_highest_first(self):
        text = synthesize_variant_playlist(['360p', '1080p'])
        assert text.index('1080p.m3u8') < text.index('360p.m3u8')
        assert text.count('#EXT-X-STREAM-INF') == 2

    def test_variant_requires_a_rendition(self):
        with pytest.raises(ValueError):
            synthesize_variant_playlist([])

    def test_parse_round_trips_references(self):
        text = synthesize_variant_playlist(['360p', '720p', '1080p'])
        assert parse_master_playlist(text) == [Rendition.P1080, Rendition.P720, Rendition.P360]


class TestRenditionPlaylist:

    def test_exact_output(self):
        text = synthesize_rendition_playlist(['0.ts', '1.ts'], '360p/')
        assert text == (
            "#EXTM3U\n"
            "#EXT-X-VERSION:3\n"
            "#EXT-X-TARGETDURATION:10\n"
            "#EXT-X-MEDIA-SEQUENCE:0\n"
            "#EXT-X-PLAYLIST-TYPE:VOD\n"
            "#EXTINF:10.0,\n"
            "360p/0.ts\n"
            "#EXTINF:10.0,\n"
            "360p/1.ts\n"
            "#EXT-X-ENDLIST\n"
        )

    def test_segments_sorted_numerically(self):
        keys = ['v/360p/10.ts', 'v/360p/2.ts', 'v/360p/1.ts', 'v/360p/thumb.jpg']
        assert sort_segment_filenames(keys) == ['1.ts', '2.ts', '10.ts']
