"""
Shared pytest fixtures for the test suite.

Grids matching the two model setups, in-memory output sinks, and a
loguru capture helper.
"""

import pytest
import numpy as np
from pathlib import Path
from loguru import logger

from meltflow.grid import GridDescriptor


# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
EXAMPLE_CONFIG_DIR = PROJECT_ROOT / "config" / "examples"


# =============================================================================
# Grids
# =============================================================================

@pytest.fixture
def channel_grid():
    """32³ channel, 10 km × 10 km × 1 km (point and line source runs)."""
    return GridDescriptor(32, 32, 32, 10000.0, 10000.0, 1000.0)


@pytest.fixture
def box_model_grid():
    """1 × 256 × 64 slab, 5 km long and 300 m deep (2-D box model)."""
    return GridDescriptor(1, 256, 64, 5000.0 / 256, 5000.0, 300.0)


@pytest.fixture
def small_grid():
    """Tiny 4 × 6 × 5 grid with 100 m × 100 m × 10 m cells."""
    return GridDescriptor(4, 6, 5, 400.0, 600.0, 50.0)


# =============================================================================
# Output sinks
# =============================================================================

class RecordingSink:
    """Sink that keeps every write in memory."""

    def __init__(self):
        self.writes = []
        self.closed = 0

    def write(self, name, payload, time):
        self.writes.append((name, time, payload))

    def close(self):
        self.closed += 1

    @property
    def times(self):
        return [t for _, t, _ in self.writes]


class FailingSink(RecordingSink):
    """Sink whose write and/or close raise OSError."""

    def __init__(self, fail_write=False, fail_close=False):
        super().__init__()
        self.fail_write = fail_write
        self.fail_close = fail_close

    def write(self, name, payload, time):
        if self.fail_write:
            raise OSError("disk full")
        super().write(name, payload, time)

    def close(self):
        super().close()
        if self.fail_close:
            raise OSError("close failed")


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def recording_sink_factory():
    return RecordingSink


@pytest.fixture
def failing_sink_factory():
    return FailingSink


# =============================================================================
# Logging
# =============================================================================

@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]),
                            level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def log_records():
    """Collect (level name, message) pairs emitted during a test."""
    records = []
    handler_id = logger.add(
        lambda m: records.append((m.record["level"].name, m.record["message"])),
        level="DEBUG", format="{message}",
    )
    yield records
    logger.remove(handler_id)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)
