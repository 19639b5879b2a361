"""
Tests for report formatting, error results and worker logging.
"""

import logging

import pytest

from storage_diet.utils.error_codes import (
    ErrorCode,
    create_error_result,
    create_skipped_result,
    create_success_result,
    get_error_category,
)
from storage_diet.utils.formatting import calculate_cost_savings, format_bytes, format_megabytes
from storage_diet.utils.logger import WorkerLogFormatter, setup_worker_logger

GB = 1024 ** 3


class TestFormatting:

    def test_format_bytes(self):
        assert format_bytes(1536 * GB) == ('1536.00', '1.500')
        assert format_bytes(0) == ('0.00', '0.000')

    def test_format_megabytes(self):
        assert format_megabytes(5 * 1024 * 1024) == '5.00 MB'

    def test_cost_savings(self):
        cost = calculate_cost_savings(1000 * GB)
        assert cost['daily_cost'] == pytest.approx(0.22754)
        assert cost['monthly_cost'] == pytest.approx(0.22754 * 30)
        assert cost['annual_cost'] == pytest.approx(0.22754 * 365)


class TestErrorResults:

    def test_error_result(self):
        result = create_error_result(ErrorCode.PLAYLIST_REWRITE_FAILED, 'master upload failed', {'permlink': 'x'})
        assert result == {
            'status': 'failed',
            'error_code': 'playlist_rewrite_failed',
            'error_message': 'master upload failed',
            'error_details': {'permlink': 'x'},
            'permanent': False,
        }

    def test_skipped_result_uses_reason_text(self):
        result = create_skipped_result(ErrorCode.NO_CONTENT)
        assert result['status'] == 'skipped'
        assert result['reason'] == 'no content found'

    def test_success_result(self):
        assert create_success_result(message='done') == {'status': 'completed', 'data': {}, 'message': 'done'}

    def test_categories(self):
        assert get_error_category(ErrorCode.ALREADY_OPTIMIZED) == 'skip'
        assert get_error_category(ErrorCode.PLAYLIST_REWRITE_FAILED) == 'degraded'


class TestWorkerLogger:

    def test_writes_to_log_dir(self, tmp_path):
        logger = setup_worker_logger('reporting_test', log_dir=tmp_path, console=False)
        logger.info('hello')
        for handler in logger.handlers:
            handler.flush()

        log_files = list(tmp_path.glob('*_reporting_test.log'))
        assert len(log_files) == 1
        assert '[INFO] hello' in log_files[0].read_text()
        assert setup_worker_logger('reporting_test', log_dir=tmp_path) is logger

    def test_formatter(self):
        record = logging.LogRecord('storage_diet.processing.reduction', logging.WARNING, __file__, 1, 'careful', None, None)
        line = WorkerLogFormatter().format(record)
        assert line.endswith('.reduction] [WARNING] careful')
