# forkchan/utils/test_datetime_utils.py
"""
시간 처리 유틸리티 기능 테스트

사용법: python -m pytest forkchan/utils/test_datetime_utils.py -v
"""

import pytest
from datetime import datetime, date, timezone, timedelta
from forkchan.utils.datetime_utils import DateTimeUtils

def test_parse_iso_datetime():
    """ISO 포맷 파싱 테스트"""
    test_cases = [
        "2024-01-15T10:30:00Z",
        "2024-01-15T10:30:00+09:00",
        "2024-01-15T10:30:00.123456Z",
        "2024-01-15T10:30:00"
    ]

    for iso_string in test_cases:
        dt = DateTimeUtils.parse_iso_datetime(iso_string)
        assert isinstance(dt, datetime)
        assert dt.tzinfo == timezone.utc  # UTC로 정규화되어야 함

def test_for_firestore():
    """Firestore 변환 테스트"""
    test_data = {
        'createdAt': datetime(2024, 1, 15, 10, 30),
        'nested': {'day': date(2023, 12, 25)},
        'items': [{'createdAt': datetime(2024, 1, 1)}],
        'text': 'hello',
    }

    converted = DateTimeUtils.for_firestore(test_data)

    assert converted['createdAt'].tzinfo == timezone.utc
    assert isinstance(converted['nested']['day'], datetime)
    assert converted['items'][0]['createdAt'].tzinfo == timezone.utc
    assert converted['text'] == 'hello'

def test_from_firestore_normalizes_offsets():
    """다른 timezone의 datetime도 UTC로 변환되어야 함"""
    kst = timezone(timedelta(hours=9))
    converted = DateTimeUtils.from_firestore({'createdAt': datetime(2024, 1, 15, 19, 30, tzinfo=kst)})
    assert converted['createdAt'] == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert converted['createdAt'].tzinfo == timezone.utc

def test_timestamp_ms_round_trip():
    """채팅 메시지 timestamp 변환 테스트"""
    dt = DateTimeUtils.from_timestamp_ms(1_700_000_000_123)
    assert dt.tzinfo == timezone.utc
    assert DateTimeUtils.to_timestamp_ms(dt) == 1_700_000_000_123

def test_coerce_accepts_store_formats():
    """저장소에서 올 수 있는 여러 시간 형식 변환"""
    expected = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert DateTimeUtils.coerce("2024-01-15T10:30:00Z") == expected
    assert DateTimeUtils.coerce(DateTimeUtils.to_timestamp_ms(expected)) == expected
    assert DateTimeUtils.coerce(datetime(2024, 1, 15, 10, 30)) == expected

def test_error_handling():
    """오류 처리 테스트"""
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("invalid-date")

    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("")

    with pytest.raises(ValueError):
        DateTimeUtils.from_timestamp_ms("1700000000")

    with pytest.raises(ValueError):
        DateTimeUtils.coerce(object())

def test_package_exports_only_date_time_utils():
    """모든 시간 변환은 DateTimeUtils 한 곳을 거침"""
    import forkchan.utils as utils
    import forkchan.utils.datetime_utils as datetime_utils

    assert utils.__all__ == ['DateTimeUtils']
    assert utils.DateTimeUtils is DateTimeUtils
    for name in ('now', 'parse_iso', 'to_iso', 'for_firestore', 'from_firestore'):
        assert not hasattr(datetime_utils, name)
