"""
Tests for configuration loading and path resolution.
"""

import pytest

from storage_diet.utils.config import as_bool, get_section, load_config
from storage_diet.utils.paths import get_config_path


class TestLoadConfig:

    def test_substitutes_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('TEST_BUCKET', 'video-bucket')
        monkeypatch.delenv('TEST_MISSING', raising=False)
        config_file = tmp_path / 'config.yaml'
        config_file.write_text(
            "storage:\n"
            "  s3:\n"
            "    bucket_name: ${TEST_BUCKET}\n"
            "    endpoint_url: ${TEST_MISSING}\n"
            "    prefixes: ['${TEST_BUCKET}/a']\n"
        )

        config = load_config(config_file)

        assert config['storage']['s3']['bucket_name'] == 'video-bucket'
        assert config['storage']['s3']['endpoint_url'] == ''
        assert config['storage']['s3']['prefixes'] == ['video-bucket/a']

    def test_substitution_can_be_disabled(self, tmp_path):
        config_file = tmp_path / 'config.yaml'
        config_file.write_text("key: ${SOMETHING}\n")
        assert load_config(config_file, substitute_env=False) == {'key': '${SOMETHING}'}

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / 'config.yaml'
        config_file.write_text("")
        assert load_config(config_file) == {}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            load_config(tmp_path / 'nope.yaml')

    def test_env_override_of_config_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv('STORAGE_DIET_CONFIG', str(tmp_path / 'custom.yaml'))
        assert get_config_path() == tmp_path / 'custom.yaml'
        assert get_config_path('other.yaml').name == 'other.yaml'


class TestHelpers:

    def test_get_section(self):
        config = {'storage': {'s3': {'bucket_name': 'b'}}, 'safety': None}
        assert get_section(config, 'storage', 's3') == {'bucket_name': 'b'}
        assert get_section(config, 'safety') == {}
        assert get_section(config, 'missing', 'deeper') == {}

    @pytest.mark.parametrize("value,default,expected", [
        (True, False, True),
        ('true', False, True),
        ('Yes', False, True),
        ('0', True, False),
        ('', True, True),
        (None, False, False),
    ])
    def test_as_bool(self, value, default, expected):
        assert as_bool(value, default) is expected
