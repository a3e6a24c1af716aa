import io
import logging
import sys
import zipfile
from pathlib import Path

import pytest

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


def build_zip(entries: dict) -> bytes:
    """
    Build zip bytes from {name: content}. A name ending in '/' is a directory;
    a (content, mode) tuple sets unix permission bits.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            mode = None
            if isinstance(content, tuple):
                content, mode = content
            info = zipfile.ZipInfo(name)
            if mode is not None:
                info.external_attr = mode << 16
            elif name.endswith("/"):
                info.external_attr = (0o40755 << 16) | 0x10
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(info, content or b"")
    return buffer.getvalue()


@pytest.fixture
def zip_bytes():
    """Factory fixture returning `build_zip`."""
    return build_zip


@pytest.fixture(autouse=True)
def reset_ionhost_logger():
    """Undo `configure_logging` so caplog keeps seeing ionhost records."""
    yield
    logger = logging.getLogger("ionhost")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
