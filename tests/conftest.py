import os
import sys
from pathlib import Path

import pytest

# Ensure the repo root is importable here and in spawned workers (python -m tazatools...)
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.environ["PYTHONPATH"] = os.pathsep.join(p for p in (str(ROOT), os.environ.get("PYTHONPATH")) if p)

from tazatools.core.correlator import RpcCorrelator  # noqa: E402
from tazatools.core.process_channel import LaunchSpec, ProcessChannel  # noqa: E402

WORKER = Path(__file__).resolve().parent / "workers" / "scripted.py"


def scripted_spec(*args, env=None):
    return LaunchSpec(command=sys.executable, args=[str(WORKER), *args], env=dict(env or {}))


@pytest.fixture
def make_spec():
    return scripted_spec


@pytest.fixture
def channel():
    ch = ProcessChannel(name="test-worker")
    yield ch
    ch.stop(timeout=2.0)


@pytest.fixture
def echo_channel(channel):
    channel.start(scripted_spec("echo"))
    return channel


@pytest.fixture
def correlator(echo_channel):
    corr = RpcCorrelator(echo_channel, default_timeout_s=5.0)
    yield corr
    corr.close()
