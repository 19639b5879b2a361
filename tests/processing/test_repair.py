"""
Tests for PlaylistRepairer.
"""

from storage_diet.processing.repair import PlaylistRepairer
from storage_diet.storage.hls import Rendition, synthesize_rendition_playlist, synthesize_variant_playlist


class TestPlaylistRepairer:

    def setup_method(self):
        self.segments = {
            'urw/1080p/0.ts', 'urw/1080p/1.ts', 'urw/1080p/10.ts', 'urw/1080p/2.ts',
            'urw/360p/0.ts', 'urw/360p/1.ts',
        }

    def test_rebuilds_all_playlists(self, fake_s3):
        for key in self.segments:
            fake_s3.objects[key] = b'x'
        fake_s3.objects['urw/default.m3u8'] = 'broken'

        result = PlaylistRepairer(fake_s3).repair('urw')

        assert result.success is True
        assert result.renditions == [Rendition.P360, Rendition.P1080]
        assert fake_s3.objects['urw/1080p.m3u8'] == synthesize_rendition_playlist(
            ['0.ts', '1.ts', '2.ts', '10.ts'], '1080p/')
        assert fake_s3.objects['urw/360p.m3u8'] == synthesize_rendition_playlist(['0.ts', '1.ts'], '360p/')
        assert fake_s3.objects['urw/default.m3u8'] == synthesize_variant_playlist(['1080p', '360p'])
        assert 'urw/720p.m3u8' not in fake_s3.objects

    def test_no_segments_writes_nothing(self, fake_s3):
        result = PlaylistRepairer(fake_s3).repair('empty')
        assert result.success is False
        assert result.uploaded == []
        assert 'No segments found' in result.message
        assert fake_s3.objects == {}

    def test_dry_run_only_counts(self, fake_s3):
        for key in self.segments:
            fake_s3.objects[key] = b'x'

        result = PlaylistRepairer(fake_s3).repair('urw', dry_run=True)

        assert result.segment_counts[Rendition.P1080] == 4
        assert result.segment_counts[Rendition.P720] == 0
        assert result.uploaded == []
        assert not [op for op, _ in fake_s3.operations if op == 'put']

    def test_upload_failure_reported(self, fake_s3):
        for key in self.segments:
            fake_s3.objects[key] = b'x'
        fake_s3.fail_puts.add('urw/default.m3u8')

        result = PlaylistRepairer(fake_s3).repair('urw')

        assert result.success is False
        assert result.failed == ['urw/default.m3u8']
        assert result.to_dict()['segments']['360p'] == 2
