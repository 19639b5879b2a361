"""
Read-only pin status queries against an IPFS node and an IPFS cluster.

Nothing here pins or unpins content.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

_CID_V0_PATTERN = re.compile(r'^Qm[a-zA-Z0-9]{44}$')


class IpfsServiceError(Exception):
    """Raised when an IPFS node query fails for a reason other than 'not pinned'"""
    pass


class IpfsConfig:
    """Endpoints and timeouts for the IPFS node and cluster APIs"""

    def __init__(
        self,
        api_url: str = 'http://127.0.0.1:5001/api/v0',
        cluster_api_url: Optional[str] = None,
        cluster_pins_url: Optional[str] = None,
        timeout: float = 10.0,
        list_timeout: float = 60.0,
        version_timeout: float = 5.0,
    ):
        self.api_url = api_url.rstrip('/')
        self.cluster_api_url = cluster_api_url.rstrip('/') if cluster_api_url else None
        # Pin lookups can go to a different cluster node than status queries
        pins_url = cluster_pins_url or cluster_api_url
        self.cluster_pins_url = pins_url.rstrip('/') if pins_url else None
        self.timeout = float(timeout)
        self.list_timeout = float(list_timeout)
        self.version_timeout = float(version_timeout)

    @classmethod
    def from_dict(cls, ipfs_section: Dict[str, Any], cluster_section: Optional[Dict[str, Any]] = None) -> 'IpfsConfig':
        cluster_section = cluster_section or {}
        return cls(
            api_url=ipfs_section.get('api_url') or 'http://127.0.0.1:5001/api/v0',
            cluster_api_url=cluster_section.get('api_url'),
            cluster_pins_url=cluster_section.get('pins_url'),
            timeout=ipfs_section.get('timeout', 10.0),
            list_timeout=ipfs_section.get('list_timeout', 60.0),
            version_timeout=ipfs_section.get('version_timeout', 5.0),
        )


def _parse_cluster_pins(response: requests.Response) -> List[Dict[str, Any]]:
    """Cluster pin listings are a JSON array or newline-delimited JSON objects."""
    try:
        data = response.json()
    except ValueError:
        data = [json.loads(line) for line in response.text.splitlines() if line.strip()]
    if isinstance(data, dict):
        return [{'cid': cid} for cid in data.keys()]
    return [pin if isinstance(pin, dict) else {'cid': pin} for pin in data]


class IpfsService:
    """Pin status lookups over the IPFS HTTP API and the cluster REST API."""

    def __init__(self, config: IpfsConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _require_cluster(self, url: Optional[str]) -> str:
        if not url:
            raise IpfsServiceError("No cluster API URL configured")
        return url

    def is_pinned(self, ipfs_hash: str) -> bool:
        """Check if a hash is pinned on the node.

        A 500 reply saying the hash is not pinned, and a timeout, both mean
        False. Other failures raise IpfsServiceError.
        """
        try:
            response = self.session.post(
                f"{self.config.api_url}/pin/ls",
                params={'arg': ipfs_hash, 'type': 'all'},
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout:
            logger.info(f"Timeout checking pin status for {ipfs_hash} - assuming not pinned")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to check pin status for {ipfs_hash}: {e}")
            raise IpfsServiceError(f"Pin status check failed for {ipfs_hash}: {e}") from e

        if response.status_code == 500 and 'not pinned' in response.text:
            return False
        if response.status_code != 200:
            logger.error(f"Failed to check pin status for {ipfs_hash}: HTTP {response.status_code}")
            raise IpfsServiceError(f"Pin status check failed for {ipfs_hash}: HTTP {response.status_code}")

        keys = response.json().get('Keys') or {}
        return ipfs_hash in keys

    def list_pinned_hashes(self) -> List[str]:
        """List every recursively pinned hash on the node."""
        try:
            response = self.session.post(
                f"{self.config.api_url}/pin/ls",
                params={'type': 'recursive'},
                timeout=self.config.list_timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to list pinned hashes: {e}")
            raise IpfsServiceError(f"Could not list pinned hashes: {e}") from e
        return list((response.json().get('Keys') or {}).keys())

    def get_service_info(self) -> Dict[str, Any]:
        """Version information reported by the node."""
        try:
            response = self.session.post(f"{self.config.api_url}/version", timeout=self.config.version_timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to get IPFS service info: {e}")
            raise IpfsServiceError(f"Could not get IPFS service info: {e}") from e
        return response.json()

    def get_cluster_status(self) -> Dict[str, Any]:
        """Identity and reachability of the cluster peer. Never raises for network errors."""
        url = self._require_cluster(self.config.cluster_api_url)
        try:
            response = self.session.get(f"{url}/api/v0/status", timeout=self.config.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to get cluster status: {e}")
            return {
                'peername': 'offline',
                'peer_addresses': [],
                'trusted_peers': [],
                'health': {'reachable': False, 'error_rate': 1},
            }

        return {
            'peername': data.get('name') or 'unknown',
            'peer_addresses': data.get('addresses') or [],
            'trusted_peers': data.get('trusted_peers') or [],
            'health': {'reachable': True, 'error_rate': 0},
        }

    def get_cluster_metrics(self) -> Dict[str, Any]:
        """Peer list and pin totals. An unreachable cluster reports status 'offline'."""
        url = self._require_cluster(self.config.cluster_api_url)
        try:
            response = self.session.get(f"{url}/api/v0/peers", timeout=self.config.timeout)
            response.raise_for_status()
            peers = _parse_cluster_pins(response)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to get cluster metrics: {e}")
            return {'total_pins': 0, 'pinned_size': 0, 'peers': [], 'status': 'offline'}

        peer_infos = []
        for peer in peers:
            peer_infos.append({
                'peername': peer.get('peername') or peer.get('name') or peer.get('id') or 'unknown',
                'ipfs': (peer.get('ipfs') or {}).get('id', 'unknown'),
                'addresses': peer.get('addresses') or [],
                'version': peer.get('version') or 'unknown',
                'commit': peer.get('commit') or 'unknown',
            })

        total_pins = 0
        try:
            pins_response = self.session.get(
                f"{url}/api/v0/pins",
                params={'filter': 'all'},
                timeout=self.config.list_timeout,
            )
            pins_response.raise_for_status()
            total_pins = len(_parse_cluster_pins(pins_response))
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Could not retrieve pin count from cluster: {e}")

        return {'total_pins': total_pins, 'pinned_size': 0, 'peers': peer_infos, 'status': 'active'}

    def is_cluster_pinned(self, ipfs_hash: str) -> bool:
        """Check if a hash is pinned in the cluster. 404 and any failure mean False."""
        url = self._require_cluster(self.config.cluster_pins_url)
        try:
            response = self.session.get(f"{url}/api/v0/pins/{ipfs_hash}", timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to check cluster pin status for {ipfs_hash}: {e}")
            return False
        if response.status_code == 404:
            return False
        if response.status_code != 200:
            logger.error(f"Failed to check cluster pin status for {ipfs_hash}: HTTP {response.status_code}")
            return False
        return True

    def list_cluster_pins(self) -> List[str]:
        """List the CIDs of every pin the cluster tracks."""
        url = self._require_cluster(self.config.cluster_pins_url)
        try:
            response = self.session.get(
                f"{url}/api/v0/pins",
                params={'filter': 'all'},
                timeout=self.config.list_timeout,
            )
            response.raise_for_status()
            pins = _parse_cluster_pins(response)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to list cluster pins: {e}")
            raise IpfsServiceError(f"Could not list cluster pins: {e}") from e
        return [pin['cid'] for pin in pins if pin.get('cid')]

    @staticmethod
    def extract_hash_from_filename(filename: Optional[str]) -> Optional[str]:
        """Pull the CID out of 'ipfs://<cid>[/path]' or a bare v0 CID."""
        if not filename:
            return None
        if filename.startswith('ipfs://'):
            return filename[len('ipfs://'):].split('/')[0] or None
        if _CID_V0_PATTERN.match(filename):
            return filename
        if '/' in filename:
            candidate = filename.split('/')[0]
            if _CID_V0_PATTERN.match(candidate):
                return candidate
        return None
