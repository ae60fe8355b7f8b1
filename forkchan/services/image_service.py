# forkchan/services/image_service.py
"""
게시글/프로필 이미지를 Firestore 문서에 인라인으로 저장하기 위한 base64 인코딩 도우미.
모바일 앱과 같은 기준(JPEG, 게시글 200KB 이하, 프로필 500px 이하)을 사용합니다.
"""

import base64
import binascii
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from forkchan.models.post import is_remote_reference

logger = logging.getLogger(__name__)

MIN_JPEG_QUALITY = 10
QUALITY_STEP = 10


def _open_rgb(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"이미지 디코딩 실패: {e}")
        raise ValueError("지원하지 않는 이미지 형식입니다.") from e

    # JPEG 저장을 위해 RGB 채널로 통일
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def _to_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def compress_jpeg(image_bytes: bytes, max_kb: int = 200) -> bytes:
    """
    품질 100부터 10씩 낮추며 max_kb 이하가 될 때까지 JPEG로 다시 인코딩합니다.
    품질 10에서도 크면 그 결과를 그대로 반환합니다.
    """
    image = _open_rgb(image_bytes)
    quality = 100
    encoded = _to_jpeg(image, quality)
    while len(encoded) // 1024 > max_kb and quality > MIN_JPEG_QUALITY:
        quality -= QUALITY_STEP
        encoded = _to_jpeg(image, quality)
    logger.debug(f"이미지 압축 완료: quality={quality}, size={len(encoded)} bytes")
    return encoded


def resize_to_max_dimension(image: Image.Image, max_dimension: int) -> Image.Image:
    """긴 변이 max_dimension보다 클 때만 비율을 유지하며 축소합니다."""
    width, height = image.size
    ratio = max_dimension / max(width, height)
    if ratio >= 1:
        return image
    return image.resize((max(1, int(width * ratio)), max(1, int(height * ratio))), Image.LANCZOS)


def encode_post_image(image_bytes: bytes, max_kb: int = 200) -> str:
    """게시글 이미지를 압축하여 base64 문자열로 반환합니다."""
    return base64.b64encode(compress_jpeg(image_bytes, max_kb)).decode("ascii")


def encode_profile_image(image_bytes: bytes, max_dimension: int = 500, quality: int = 70) -> str:
    """프로필 이미지를 max_dimension 이하로 줄여 base64 문자열로 반환합니다."""
    image = resize_to_max_dimension(_open_rgb(image_bytes), max_dimension)
    return base64.b64encode(_to_jpeg(image, quality)).decode("ascii")


def decode_image_payload(payload: Optional[str]) -> Optional[bytes]:
    """
    인라인 이미지면 바이트를, 원격 URL이거나 비어 있으면 None을 반환합니다.
    """
    if not payload or is_remote_reference(payload):
        return None
    try:
        # 안드로이드 Base64.DEFAULT는 76자마다 줄바꿈을 넣으므로 공백을 제거하고 디코딩
        return base64.b64decode("".join(payload.split()), validate=True)
    except binascii.Error as e:
        raise ValueError("이미지 데이터가 올바른 base64 형식이 아닙니다.") from e
