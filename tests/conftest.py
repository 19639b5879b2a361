"""
Shared fixtures: an in-memory object store and an in-memory SQLite session.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storage_diet.database.models import Base, Video
from storage_diet.storage.hls import (
    PLAYLIST_CONTENT_TYPE,
    master_playlist_key,
    rendition_playlist_key,
    segment_key,
    synthesize_variant_playlist,
)
from storage_diet.storage.s3_utils import PrefixDeleteResult, S3ConnectionError


class FakeS3:
    """Dict-backed stand-in for S3Storage with switchable failures."""

    def __init__(self):
        self.objects = {}
        self.content_types = {}
        self.fail_puts = set()
        self.fail_deletes = set()
        self.fail_listings = set()
        self.unreachable = False
        self.operations = []

    def _check(self):
        if self.unreachable:
            raise S3ConnectionError("bucket unreachable")

    def file_exists(self, key):
        self._check()
        self.operations.append(('head', key))
        return key in self.objects

    def read_text(self, key):
        self._check()
        return self.objects.get(key)

    def put_text(self, key, content, content_type=PLAYLIST_CONTENT_TYPE):
        self.operations.append(('put', key))
        if self.unreachable or key in self.fail_puts:
            return False
        self.objects[key] = content
        self.content_types[key] = content_type
        return True

    def list_files(self, prefix='', max_keys=1000, raise_errors=False):
        if prefix in self.fail_listings:
            if raise_errors:
                raise S3ConnectionError(f"could not list {prefix}")
            return []
        return sorted(k for k in self.objects if k.startswith(prefix))[:max_keys]

    def list_all_files(self, prefix=''):
        self._check()
        return sorted(k for k in self.objects if k.startswith(prefix))

    def delete_file(self, key):
        self.operations.append(('delete', key))
        if self.unreachable or key in self.fail_deletes:
            return False
        self.objects.pop(key, None)
        return True

    def delete_prefix(self, prefix):
        result = PrefixDeleteResult(prefix=prefix)
        try:
            keys = self.list_files(prefix, raise_errors=True)
        except S3ConnectionError:
            result.errors = 1
            return result
        for key in keys:
            if self.delete_file(key):
                result.deleted += 1
            else:
                result.errors += 1
        return result

    def add_video(self, permlink, renditions, segments=3):
        """Store a master, rendition playlists and segments for a video."""
        self.objects[master_playlist_key(permlink)] = synthesize_variant_playlist(renditions)
        for rendition in renditions:
            self.objects[rendition_playlist_key(permlink, rendition)] = f"playlist {rendition}"
            for index in range(segments):
                self.objects[segment_key(permlink, rendition, index)] = b"segment"

    def keys_under(self, permlink):
        return sorted(k for k in self.objects if k.startswith(f"{permlink}/"))


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def db_session():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_video():
    """Factory for Video rows; not added to any session."""
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        n = counter['n']
        fields = {
            'id': f"vid-{n}",
            'owner': 'alice',
            'permlink': f"perm{n}",
            'title': f"Video {n}",
            'filename': f"perm{n}.mp4",
            'size': 100 * 1024 * 1024,
            'created': datetime(2023, 1, 15, tzinfo=timezone.utc),
            'status': 'published',
            'optimized_storage': False,
        }
        fields.update(overrides)
        return Video(**fields)

    return _make
