from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HWPX_MEDIA_TYPE = "application/hwp+zip"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\r\n\t]')


@dataclass(frozen=True)
class ExportedFile:
    """메모리 상의 결과물 (파일명 + 바이트)"""
    filename: str
    content: bytes
    media_type: str

    def save(self, out_dir: Union[str, Path, None] = None) -> Path:
        out_dir = Path(out_dir) if out_dir else Path.cwd()
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / self.filename

        # 다 쓴 뒤에 이름을 바꾼다 (중간에 실패해도 반쪽 파일이 남지 않게)
        tmp_path = out_path.with_name(out_path.name + ".part")
        try:
            tmp_path.write_bytes(self.content)
            os.replace(tmp_path, out_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info("saved %s (%d bytes)", out_path, len(self.content))
        return out_path


def safe_filename_part(text: str, default: str = "") -> str:
    """파일명에 못 쓰는 문자를 '_'로"""
    cleaned = _UNSAFE_CHARS.sub("_", (text or "").strip())
    return cleaned or default


def deliver(
    exported: ExportedFile,
    out_dir: Union[str, Path, None] = None,
    return_file: bool = False,
) -> Union[ExportedFile, Path]:
    """return_file=True 면 결과물 객체를 그대로, 아니면 out_dir 에 저장하고 경로를 돌려준다."""
    if return_file:
        return exported
    return exported.save(out_dir)

