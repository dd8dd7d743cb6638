# services/acquisition/image_loader.py
import io
import logging
import time
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from core.exceptions import AcquisitionError
from core.models import ImageFile

logger = logging.getLogger(__name__)

# Pillow format name -> MIME type
FORMAT_MIME_TYPES = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'GIF': 'image/gif',
    'BMP': 'image/bmp',
    'WEBP': 'image/webp',
    'TIFF': 'image/tiff',
}


def load_image_bytes(content: bytes, filename: str, local_path: Optional[Path] = None) -> ImageFile:
    """
    Validate raw bytes as an image and describe them

    Raises:
        AcquisitionError: empty, unreadable or unsupported image data
    """
    if not content:
        raise AcquisitionError("Empty image data", filename=filename)

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen for the size
        with Image.open(io.BytesIO(content)) as img:
            image_format = img.format
            width, height = img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise AcquisitionError(f"Unreadable image {filename}: {e}", filename=filename) from e

    mime_type = FORMAT_MIME_TYPES.get(image_format or '')
    if mime_type is None:
        raise AcquisitionError(f"Unsupported image format {image_format} for {filename}", filename=filename)

    logger.debug(f"🖼️ Loaded {filename}: {image_format} {width}x{height}, {len(content)} bytes")
    return ImageFile(
        filename=filename,
        content=content,
        mime_type=mime_type,
        width=width,
        height=height,
        local_path=local_path,
    )


def load_image_file(path: Union[str, Path]) -> ImageFile:
    """Read and validate an image file from disk"""
    path = Path(path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise AcquisitionError(f"Cannot read {path}: {e}", filename=path.name) from e

    return load_image_bytes(content, path.name, local_path=path)


def encode_frame(frame: Image.Image, prefix: str = "frame", quality: int = 90) -> ImageFile:
    """Encode a captured frame as JPEG, named like frame-<epoch ms>.jpg"""
    buffer = io.BytesIO()
    try:
        frame.convert('RGB').save(buffer, format='JPEG', quality=quality)
    except (OSError, ValueError) as e:
        raise AcquisitionError(f"Cannot encode frame: {e}") from e

    filename = f"{prefix}-{int(time.time() * 1000)}.jpg"
    return ImageFile(
        filename=filename,
        content=buffer.getvalue(),
        mime_type='image/jpeg',
        width=frame.width,
        height=frame.height,
    )
