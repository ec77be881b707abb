"""Shared fixtures for ram_guard tests."""

import os

import pytest

from ram_guard import EligibilityContext, MemorySnapshot, ProcessRecord

GB = 1024**3


def make_record(pid, command="/usr/bin/true", *, ppid=1, user="alice", mem_percent=1.0, elapsed=0.0, name=""):
    """Build a ProcessRecord with harmless defaults."""
    return ProcessRecord(
        pid=pid,
        ppid=ppid,
        user=user,
        mem_percent=mem_percent,
        command=command,
        elapsed_seconds=elapsed,
        name=name,
    )


@pytest.fixture
def memory_16gb():
    """16 GB machine at 96 % usage."""
    return MemorySnapshot(used_bytes=int(15.36 * GB), total_bytes=16 * GB)


@pytest.fixture
def empty_ctx():
    """Context with no gateway, no messenger and an empty process table."""
    return EligibilityContext.build([])


OWN_PID = 999_999


@pytest.fixture(autouse=True)
def fixed_own_pid(monkeypatch, tmp_path_factory):
    """Pin os.getpid() so test pids never collide with the test runner."""
    tmp_path_factory.getbasetemp()
    monkeypatch.setattr(os, "getpid", lambda: OWN_PID)
    return OWN_PID
