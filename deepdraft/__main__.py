"""Module entrypoint for running DeepDraft as ``python -m deepdraft``."""

from __future__ import annotations

from deepdraft.cli import main


if __name__ == "__main__":
    main()
