# forkchan/schemas/fields.py
from marshmallow import fields, ValidationError

from forkchan.utils.datetime_utils import DateTimeUtils


class StoreTimestamp(fields.Field):
    """
    저장소의 시간 값(Firestore timestamp, ISO 문자열, 밀리초 정수)을 UTC datetime으로 읽습니다.
    쓰기 시에는 값을 그대로 넘겨 저장소가 네이티브 타입으로 저장하도록 합니다.
    """

    def _serialize(self, value, attr, obj, **kwargs):
        return value

    def _deserialize(self, value, attr, data, **kwargs):
        try:
            return DateTimeUtils.coerce(value)
        except ValueError as e:
            raise ValidationError(str(e)) from e
