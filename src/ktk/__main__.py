"""Module entrypoint for `python -m ktk`."""

from ktk.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
