# /*
# Copyright 2026 The Provision Manager Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Tests for the host-wide install lock."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest

from provision_manager.locking import install_lock


class TestInstallLock:
    def test_writes_pid_and_creates_parents(self, tmp_path: Path):
        lock = tmp_path / "nested" / "provision.lock"
        with install_lock(lock):
            assert lock.read_text() == str(os.getpid())

    def test_released_when_body_raises(self, tmp_path: Path):
        lock = tmp_path / "provision.lock"
        with pytest.raises(RuntimeError):
            with install_lock(lock):
                raise RuntimeError("boom")
        with install_lock(lock):
            pass

    def test_second_holder_waits(self, tmp_path: Path):
        """A concurrent acquirer only enters after the first holder leaves."""
        lock = tmp_path / "provision.lock"
        events: list[str] = []
        entered = threading.Event()

        def second() -> None:
            entered.wait()
            with install_lock(lock):
                events.append("second")

        worker = threading.Thread(target=second)
        worker.start()
        with install_lock(lock):
            entered.set()
            time.sleep(0.3)
            events.append("first")
        worker.join(timeout=5)

        assert events == ["first", "second"]
