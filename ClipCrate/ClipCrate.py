"""
ClipCrate - convert and crop media files with ffmpeg

This program is licensed under the GNU General Public License v3.0
See the LICENSE file in the project root for the full license text.

SPDX-License-Identifier: GPL-3.0-or-later
"""
from __future__ import annotations

from clipcrate.app_controller import main


if __name__ == "__main__":
    raise SystemExit(main())
