"""
Tests for the read-only IPFS and cluster queries.
"""

from unittest.mock import MagicMock

import pytest
import requests

from storage_diet.services.ipfs import IpfsConfig, IpfsService, IpfsServiceError

CID = 'QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG'


def response(status_code=200, json_data=None, text=''):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = json_data
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"HTTP {status_code}")
    return resp


class TestIpfsConfig:

    def test_from_dict(self):
        config = IpfsConfig.from_dict(
            {'api_url': 'http://node:5001/api/v0/', 'timeout': '3'},
            {'api_url': 'http://cluster:9094'},
        )
        assert config.api_url == 'http://node:5001/api/v0'
        assert config.cluster_api_url == 'http://cluster:9094'
        assert config.cluster_pins_url == 'http://cluster:9094'
        assert config.timeout == 3.0


class TestIpfsNode:

    def setup_method(self):
        self.session = MagicMock()
        self.service = IpfsService(
            IpfsConfig(api_url='http://node:5001/api/v0', cluster_api_url='http://cluster:9094'),
            session=self.session,
        )

    def test_is_pinned(self):
        self.session.post.return_value = response(json_data={'Keys': {CID: {'Type': 'recursive'}}})
        assert self.service.is_pinned(CID) is True
        self.session.post.assert_called_once_with(
            'http://node:5001/api/v0/pin/ls',
            params={'arg': CID, 'type': 'all'},
            timeout=10.0,
        )

    def test_not_pinned_500_is_false(self):
        self.session.post.return_value = response(500, text='{"Message":"path \'x\' is not pinned"}')
        assert self.service.is_pinned(CID) is False

    def test_timeout_is_false(self):
        self.session.post.side_effect = requests.exceptions.Timeout()
        assert self.service.is_pinned(CID) is False

    def test_other_errors_raise(self):
        self.session.post.side_effect = requests.exceptions.ConnectionError('refused')
        with pytest.raises(IpfsServiceError):
            self.service.is_pinned(CID)

    def test_unexpected_status_raises(self):
        self.session.post.return_value = response(500, text='internal error')
        with pytest.raises(IpfsServiceError):
            self.service.is_pinned(CID)

    def test_list_pinned_hashes(self):
        self.session.post.return_value = response(json_data={'Keys': {CID: {}, 'QmOther': {}}})
        assert self.service.list_pinned_hashes() == [CID, 'QmOther']
        assert self.session.post.call_args.kwargs['params'] == {'type': 'recursive'}

    def test_service_info(self):
        self.session.post.return_value = response(json_data={'Version': '0.20.0'})
        assert self.service.get_service_info() == {'Version': '0.20.0'}


class TestIpfsCluster:

    def setup_method(self):
        self.session = MagicMock()
        self.service = IpfsService(IpfsConfig(cluster_api_url='http://cluster:9094'), session=self.session)

    def test_cluster_status(self):
        self.session.get.return_value = response(json_data={'name': 'peer-1', 'addresses': ['/ip4/1.2.3.4']})
        status = self.service.get_cluster_status()
        assert status['peername'] == 'peer-1'
        assert status['health']['reachable'] is True

    def test_cluster_status_offline(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError('down')
        status = self.service.get_cluster_status()
        assert status['peername'] == 'offline'
        assert status['health']['reachable'] is False

    def test_cluster_metrics(self):
        self.session.get.side_effect = [
            response(json_data=[{'peername': 'peer-1', 'ipfs': {'id': 'ipfs-1'}, 'version': '1.0'}]),
            response(json_data=[{'cid': CID}, {'cid': 'QmOther'}]),
        ]
        metrics = self.service.get_cluster_metrics()
        assert metrics['status'] == 'active'
        assert metrics['total_pins'] == 2
        assert metrics['peers'][0]['ipfs'] == 'ipfs-1'

    def test_is_cluster_pinned(self):
        self.session.get.return_value = response(200)
        assert self.service.is_cluster_pinned(CID) is True
        self.session.get.assert_called_once_with(f'http://cluster:9094/api/v0/pins/{CID}', timeout=10.0)

    def test_is_cluster_pinned_404(self):
        self.session.get.return_value = response(404)
        assert self.service.is_cluster_pinned(CID) is False

    def test_list_cluster_pins_ndjson(self):
        resp = response(text=f'{{"cid": "{CID}"}}\n{{"cid": "QmOther"}}\n')
        resp.json.side_effect = ValueError('extra data')
        self.session.get.return_value = resp
        assert self.service.list_cluster_pins() == [CID, 'QmOther']

    def test_cluster_not_configured(self):
        service = IpfsService(IpfsConfig(), session=self.session)
        with pytest.raises(IpfsServiceError):
            service.list_cluster_pins()


class TestExtractHash:

    @pytest.mark.parametrize("filename,expected", [
        (f'ipfs://{CID}', CID),
        (f'ipfs://{CID}/manifest.m3u8', CID),
        (CID, CID),
        (f'{CID}/480p/index.m3u8', CID),
        ('abc123.mp4', None),
        ('', None),
        (None, None),
    ])
    def test_extract(self, filename, expected):
        assert IpfsService.extract_hash_from_filename(filename) == expected
