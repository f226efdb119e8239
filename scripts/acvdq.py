#!/usr/bin/env python3
"""
Script wrapper for pyacvdq: simplify a mesh with ACVD, keeping fixed vertices.

Usage:
  python scripts/acvdq.py file nvertices gradation [-s threshold] [-d 0/1/2] [-o dir]
                          [-fv vertex_ids.txt | -ft face_ids.txt] [...]

Run without arguments for the full option list. The installed console
script ``acvdq`` is equivalent.
"""
from __future__ import annotations

import sys

from pyacvdq.cli import main


if __name__ == "__main__":
    sys.exit(main())
