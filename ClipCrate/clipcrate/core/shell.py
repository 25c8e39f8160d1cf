from __future__ import annotations

import os
import webbrowser
from pathlib import Path


def open_path_in_shell(path: str | Path) -> bool:
    try:
        target = Path(path).expanduser()
        if not target.exists():
            return False
        if os.name == "nt":
            os.startfile(str(target))
            return True
        return bool(webbrowser.open(target.resolve().as_uri()))
    except Exception:
        return False
