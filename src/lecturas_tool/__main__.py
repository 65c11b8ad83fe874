"""Punto de entrada: python -m lecturas_tool."""

from __future__ import annotations

from lecturas_tool.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
