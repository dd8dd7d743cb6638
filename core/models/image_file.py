# core/models/image_file.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class ImageFile:
    """An acquired image ready for upload/inference"""
    filename: str
    content: bytes
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    local_path: Optional[Path] = None  # local-only display reference, never persisted

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        if self.width and self.height:
            return (self.width, self.height)
        return None

    def as_multipart(self) -> Tuple[str, bytes, str]:
        return (self.filename, self.content, self.mime_type)
