# type: ignore
import pytest

import hvm.runtime.cpu as cpu
import hvm.runtime.emulator as emulator


@pytest.fixture
def with_loader():
    proc = cpu.CPU()
    emulator.boot(proc)
    yield proc
