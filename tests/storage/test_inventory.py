"""
Tests for RenditionInventory and RenditionAnalysis.
"""

from unittest.mock import MagicMock

import pytest

from storage_diet.storage.hls import Rendition
from storage_diet.storage.inventory import RenditionAnalysis, RenditionInventory
from storage_diet.storage.s3_utils import S3ConnectionError


class TestRenditionAnalysis:

    @pytest.mark.parametrize("available,smallest,to_delete", [
        ([Rendition.P1080, Rendition.P360], Rendition.P360, [Rendition.P1080]),
        ([Rendition.P720, Rendition.P480, Rendition.P1080], Rendition.P480, [Rendition.P720, Rendition.P1080]),
        ([Rendition.P720], Rendition.P720, []),
        ([], None, []),
    ])
    def test_smallest_and_to_delete(self, available, smallest, to_delete):
        analysis = RenditionAnalysis(permlink='v', available=available)
        assert analysis.smallest == smallest
        assert analysis.to_delete == to_delete
        assert smallest not in analysis.to_delete

    def test_flags(self):
        assert RenditionAnalysis('v', [Rendition.P360]).is_already_optimized is True
        assert RenditionAnalysis('v', []).has_content is False
        assert RenditionAnalysis('v', [Rendition.P360, Rendition.P480]).is_already_optimized is False

    def test_to_dict(self):
        data = RenditionAnalysis('v', [Rendition.P1080, Rendition.P360]).to_dict()
        assert data == {
            'permlink': 'v',
            'available': ['360p', '1080p'],
            'smallest': '360p',
            'to_delete': ['1080p'],
        }


class TestRenditionInventory:

    def test_inspect_probes_rendition_playlists(self, fake_s3):
        fake_s3.add_video('abc', ['1080p', '480p'])
        analysis = RenditionInventory(fake_s3).inspect('abc')
        assert analysis.available == [Rendition.P480, Rendition.P1080]
        probed = [key for op, key in fake_s3.operations if op == 'head']
        assert probed == ['abc/360p.m3u8', 'abc/480p.m3u8', 'abc/720p.m3u8', 'abc/1080p.m3u8']

    def test_segments_without_playlist_are_not_available(self, fake_s3):
        fake_s3.objects['abc/720p/0.ts'] = b'x'
        assert RenditionInventory(fake_s3).inspect('abc').available == []

    def test_before_probe_called_for_each_rendition(self, fake_s3):
        hook = MagicMock()
        RenditionInventory(fake_s3, before_probe=hook).inspect('abc')
        assert hook.call_count == 4

    def test_connection_errors_propagate(self, fake_s3):
        fake_s3.unreachable = True
        with pytest.raises(S3ConnectionError):
            RenditionInventory(fake_s3).inspect('abc')
