from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "lockstake" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _reset_metrics():
    from lockstake.runtime import metrics

    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(autouse=True)
def _signatures_required(monkeypatch):
    # Tests that want unsigned dev requests opt in explicitly.
    monkeypatch.delenv("LOCKSTAKE_UNSAFE_DEV", raising=False)
