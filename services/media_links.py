"""Google Drive share links -> URLs that can be embedded directly."""
from __future__ import annotations

import re
from typing import Optional

_DRIVE_FILE_RE = re.compile(r"drive\.google\.com/file/d/([^/?#]+)")


def google_drive_file_id(url: str) -> Optional[str]:
    if not url:
        return None
    m = _DRIVE_FILE_RE.search(url)
    return m.group(1) if m else None


def format_drive_link(url: str, kind: str = "image", width: Optional[int] = None, height: Optional[int] = None) -> str:
    """
    Images become lh3.googleusercontent.com links (optionally resized with
    =w<width> / =h<height>); videos become the Drive preview player. Anything
    that is not a Drive file link is returned unchanged.
    """
    file_id = google_drive_file_id(url)
    if not file_id:
        return url
    if kind == "image":
        size = ""
        if width:
            size = f"=w{width}"
        elif height:
            size = f"=h{height}"
        return f"https://lh3.googleusercontent.com/d/{file_id}{size}"
    if kind == "video":
        return f"https://drive.google.com/file/d/{file_id}/preview"
    return url
