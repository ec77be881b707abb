#!/usr/bin/env python3
"""
ram_guard.py
============

A one-shot macOS RAM probe meant to be called by a heartbeat/cron job.

1. **Samples system memory** and classifies it into a tier:
   - below 90 %: ``ok`` (silence),
   - 90-94 %: ``warning`` (report only, nothing is touched),
   - 95 % and above: ``critical`` (reclaim memory).
2. **At the critical tier it kills, in strict order**:
   every Brave Browser process, then every iTerm2 process, then whatever in
   the top memory consumers looks reclaimable (test runners, caches, build
   jobs, orphaned node processes, long-running python interpreters).
3. **Never touches protected processes**: init, the openclaw gateway, Beeper
   and its children, Proton Mail Bridge, ``_``-prefixed service accounts and
   the core macOS daemons. Protection is re-checked even for the priority
   kills.
4. **Writes one JSON object to stdout** per run (timestamp, RAM %, tier, top
   consumers, kills) and appends every real kill to an audit log.

Operator messages go to stderr so stdout stays machine readable.

────────────────────────────────────────────────────────────────────────────
USAGE EXAMPLES
────────────────────────────────────────────────────────────────────────────
# 1) Normal run (kills at >= 95 %)
./ram_guard.py

# 2) See what would be killed without killing anything
./ram_guard.py --dry-run

# 3) Tighter thresholds for a small machine
./ram_guard.py --warning 85 --critical 92

# 4) Use the PhysMem figures reported by top(1) instead of psutil
./ram_guard.py --physmem --log-file /var/log/ram-kills.log
────────────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import argparse
import functools
import json
import math
import os
import re
import subprocess
import sys
import time
from collections import defaultdict, deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import psutil

# Version information
try:
    from _version import __version__
except ImportError:
    __version__ = "unknown"

# ──────────────────────────────── Defaults ──────────────────────────────────
DEF_WARNING_PCT = 90.0  # alert only at ≥
DEF_CRITICAL_PCT = 95.0  # kill at ≥
DEF_TOP_N = 10  # size of the top-consumers list
PYTHON_MAX_AGE_SEC = 3600  # python older than this is reclaimable
LOG_ROTATE_BYTES = 50 * 1024 * 1024

# ───────────────────────────────  Files / paths ─────────────────────────────
LOG_FILE = Path.home() / "logs" / "ram-kills.log"

# ──────────────────────────────  Policy markers  ────────────────────────────
GATEWAY_MARKER = "openclaw-gateway"
MESSENGER_NAME = "Beeper"
MAIL_BRIDGE_MARKERS = ("Proton Mail Bridge", "bridge-gui", "/bridge --grpc")
CORE_OS_PROCESSES = (
    "kernel_task",
    "loginwindow",
    "WindowServer",
    "launchd",
    "systemstats",
    "sshd",
)
# matched case-sensitively
RECLAIMABLE_MARKERS = ("pnpm test", "jest", "/tmp/", "cache", "build")

REASON_PRIORITY = "critical - priority kill"
REASON_SAFE = "critical - safe to kill"


# ─────────────────────────────────  Errors  ─────────────────────────────────
class ProbeError(Exception):
    """A collaborator could not produce the data a run needs."""


class SamplerUnavailable(ProbeError):
    pass


class ListerUnavailable(ProbeError):
    pass


# ──────────────────────────────  Data structures  ───────────────────────────
@functools.total_ordering
class Level(Enum):
    """Severity tier, ordered ok < warning < critical."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Level).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Level):
            return NotImplemented
        return self.rank < other.rank


class KillOutcome(Enum):
    KILLED = "killed"
    WOULD_KILL = "would-kill"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Thresholds:
    warning: float = DEF_WARNING_PCT
    critical: float = DEF_CRITICAL_PCT

    def __post_init__(self) -> None:
        if not 0 < self.warning < self.critical <= 100:
            raise ValueError(f"thresholds must satisfy 0 < warning ({self.warning}) < critical ({self.critical}) <= 100")


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """Used/total physical memory, captured once per run."""

    used_bytes: int
    total_bytes: int

    @property
    def used_percent(self) -> float:
        if self.total_bytes <= 0 or self.used_bytes < 0:
            return 0.0
        return round(self.used_bytes / self.total_bytes * 100, 1)

    @property
    def used_gb(self) -> float:
        return round(max(self.used_bytes, 0) / 1024**3, 2)

    @property
    def total_gb(self) -> float:
        return round(max(self.total_bytes, 0) / 1024**3, 2)

    @property
    def total_mb(self) -> float:
        return max(self.total_bytes, 0) / 1024**2

    def ram_mb(self, mem_percent: float) -> float:
        """RAM held by a process owning ``mem_percent`` of physical memory."""
        return round(mem_percent / 100 * self.total_mb, 1)


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """One row of the process table, valid for a single run."""

    pid: int
    ppid: int | None  # None when psutil could not read it
    user: str
    mem_percent: float
    command: str
    elapsed_seconds: float = 0.0
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or process_name(self.command)


@dataclass(slots=True, frozen=True)
class KillRecord:
    pid: int
    name: str
    ram_mb: float
    reason: str
    outcome: KillOutcome

    def to_dict(self) -> dict[str, object]:
        return {
            "pid": self.pid,
            "name": self.name,
            "ram_mb": self.ram_mb,
            "reason": self.reason,
            "outcome": self.outcome.value,
        }


@dataclass(slots=True, frozen=True)
class RunResult:
    """Everything a run reports; the only thing printed on stdout."""

    timestamp: str
    memory: MemorySnapshot
    level: Level
    top_processes: tuple[ProcessRecord, ...]
    killed: tuple[KillRecord, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "ram_pct": self.memory.used_percent,
            "ram_used_gb": self.memory.used_gb,
            "ram_total_gb": self.memory.total_gb,
            "level": self.level.value,
            "top_processes": [
                {
                    "pid": rec.pid,
                    "name": rec.display_name,
                    "ram_mb": self.memory.ram_mb(rec.mem_percent),
                    "user": rec.user,
                }
                for rec in self.top_processes
            ],
            "killed": [kill.to_dict() for kill in self.killed],
        }


# ─────────────────────────────  Tiny helpers  ───────────────────────────────
def log(msg: str) -> None:
    """Operator channel. Goes to stderr, stdout belongs to the JSON result."""
    print(f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {msg}", file=sys.stderr, flush=True)


def utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def process_name(command: str) -> str:
    """Short name for a command line: basename of the executable, first word."""
    words = command.split()
    if not words:
        return ""
    return words[0].rstrip("/").rsplit("/", 1)[-1] or words[0]


def _contains_ci(haystack: str, needle: str) -> bool:
    return needle.lower() in haystack.lower()


def top_processes(records: Iterable[ProcessRecord], n: int = DEF_TOP_N) -> list[ProcessRecord]:
    """The ``n`` biggest memory consumers, ties broken by pid."""
    return sorted(records, key=lambda r: (-r.mem_percent, r.pid))[:n]


# ──────────────────────────────  Classifier  ────────────────────────────────
def classify(used_percent: float, thresholds: Thresholds | None = None) -> Level:
    """Map a RAM percentage to a tier. Garbage in means ``ok``."""
    thresholds = thresholds or Thresholds()
    try:
        pct = float(used_percent)
    except (TypeError, ValueError):
        return Level.OK
    if math.isnan(pct) or pct < 0:
        return Level.OK
    if pct >= thresholds.critical:
        return Level.CRITICAL
    if pct >= thresholds.warning:
        return Level.WARNING
    return Level.OK


# ───────────────────────────  Eligibility engine  ───────────────────────────
@dataclass
class EligibilityContext:
    """Process table indexes plus the pids the protection rules look up."""

    by_pid: dict[int, ProcessRecord]
    by_ppid: dict[int | None, list[ProcessRecord]]
    gateway_pids: frozenset[int] = frozenset()
    messenger_pids: frozenset[int] = frozenset()

    @classmethod
    def build(cls, records: Iterable[ProcessRecord]) -> EligibilityContext:
        records = list(records)
        by_pid = {rec.pid: rec for rec in records}
        by_ppid: dict[int | None, list[ProcessRecord]] = defaultdict(list)
        for rec in records:
            by_ppid[rec.ppid].append(rec)

        gateway = frozenset(rec.pid for rec in records if GATEWAY_MARKER in rec.command)
        roots = [rec.pid for rec in records if _contains_ci(rec.command, MESSENGER_NAME)]
        return cls(
            by_pid=by_pid,
            by_ppid=dict(by_ppid),
            gateway_pids=gateway,
            messenger_pids=frozenset(_descendants(roots, by_ppid)),
        )


def _descendants(roots: Iterable[int], by_ppid: dict[int | None, list[ProcessRecord]]) -> set[int]:
    """``roots`` and every pid below them in the process tree."""
    seen: set[int] = set()
    queue = deque(roots)
    while queue:
        pid = queue.popleft()
        if pid in seen:
            continue
        seen.add(pid)
        queue.extend(child.pid for child in by_ppid.get(pid, ()))
    return seen


@dataclass(frozen=True)
class Rule:
    """A named predicate; the name shows up in operator logs and tests."""

    name: str
    check: Callable[..., bool]


def _is_init(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return rec.pid == 1


def _is_gateway(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return rec.pid in ctx.gateway_pids


def _in_messenger_tree(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return rec.pid in ctx.messenger_pids


def _runs_messenger(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return _contains_ci(rec.command, MESSENGER_NAME)


def _runs_mail_bridge(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return any(_contains_ci(rec.command, marker) for marker in MAIL_BRIDGE_MARKERS)


def _is_service_account(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return rec.user.startswith("_")


def _is_core_os(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return any(name in rec.command for name in CORE_OS_PROCESSES)


# Evaluated top to bottom, first match wins.
PROTECTION_RULES: tuple[Rule, ...] = (
    Rule("init", _is_init),
    Rule("gateway", _is_gateway),
    Rule("messenger-tree", _in_messenger_tree),
    Rule("messenger", _runs_messenger),
    Rule("mail-bridge", _runs_mail_bridge),
    Rule("service-account", _is_service_account),
    Rule("core-os", _is_core_os),
)


def _is_artifact(rec: ProcessRecord, ctx: EligibilityContext, age: float) -> bool:
    return any(marker in rec.command for marker in RECLAIMABLE_MARKERS)


def _is_orphaned_node(rec: ProcessRecord, ctx: EligibilityContext, age: float) -> bool:
    return "node" in rec.command and rec.ppid is not None and rec.ppid not in ctx.by_pid


def _is_stale_python(rec: ProcessRecord, ctx: EligibilityContext, age: float) -> bool:
    return "python" in rec.command and age > PYTHON_MAX_AGE_SEC


# Independent conditions, any one qualifies.
RECLAIM_RULES: tuple[Rule, ...] = (
    Rule("artifact", _is_artifact),
    Rule("orphaned-node", _is_orphaned_node),
    Rule("stale-python", _is_stale_python),
)


def matching_protection_rule(rec: ProcessRecord, ctx: EligibilityContext) -> str | None:
    """Name of the first protection rule that matches, or None."""
    for rule in PROTECTION_RULES:
        if rule.check(rec, ctx):
            return rule.name
    return None


def is_protected(rec: ProcessRecord, ctx: EligibilityContext) -> bool:
    return matching_protection_rule(rec, ctx) is not None


def matching_reclaim_rule(rec: ProcessRecord, ctx: EligibilityContext, age_seconds: float | None = None) -> str | None:
    age = rec.elapsed_seconds if age_seconds is None else age_seconds
    for rule in RECLAIM_RULES:
        if rule.check(rec, ctx, age):
            return rule.name
    return None


def is_safe_to_kill(rec: ProcessRecord, ctx: EligibilityContext, age_seconds: float | None = None) -> bool:
    """True for unprotected processes that match any reclaim rule.

    Protection always wins: a protected process is never safe to kill, whatever
    the reclaim rules say.
    """
    if is_protected(rec, ctx):
        return False
    return matching_reclaim_rule(rec, ctx, age_seconds) is not None


# ─────────────────────────────────  Audit log  ──────────────────────────────
class AuditLog:
    """Append-only kill log, created with a header on first write.

    Write problems are reported on the operator channel, never raised.
    """

    def __init__(self, path: Path | str = LOG_FILE, max_bytes: int = LOG_ROTATE_BYTES) -> None:
        self.path = Path(path).expanduser()
        self.max_bytes = max_bytes

    def header(self, timestamp: str) -> str:
        return f"# RAM Kill Log - Created {timestamp}\n# Format: timestamp | PID | process_name | ram_mb | reason\n---\n"

    def append(self, kill: KillRecord, timestamp: str) -> bool:
        line = f"{timestamp} | {kill.pid} | {kill.name} | {kill.ram_mb:.1f} | {kill.reason}\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate()
            fresh = not self.path.exists()
            with self.path.open("a", encoding="utf-8", errors="backslashreplace") as fp:
                if fresh:
                    fp.write(self.header(timestamp))
                fp.write(line)
        except (OSError, UnicodeError) as e:
            log(f"[AUDIT] Could not write {self.path}: {e}")
            return False
        return True

    def _rotate(self) -> None:
        """Move the log to ``.old`` once it passes ``max_bytes``."""
        try:
            if self.path.exists() and self.path.stat().st_size > self.max_bytes:
                backup = self.path.with_suffix(".old")
                backup.unlink(missing_ok=True)
                self.path.rename(backup)
        except OSError as e:
            log(f"[AUDIT] Rotation of {self.path} failed, appending anyway: {e}")


# ────────────────────────────  Memory samplers  ─────────────────────────────
def sample_memory() -> MemorySnapshot:
    """Used/total bytes from psutil."""
    try:
        vm = psutil.virtual_memory()
    except (OSError, RuntimeError, psutil.Error) as e:
        raise SamplerUnavailable(f"cannot read memory counters: {e}") from e
    return MemorySnapshot(used_bytes=int(vm.used), total_bytes=int(vm.total))


_PHYSMEM_RE = re.compile(r"PhysMem:\s*([0-9.]+)([BKMGT])\s+used.*?([0-9.]+)([BKMGT])\s+unused")
_UNIT = {"B": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}


def parse_physmem(line: str) -> MemorySnapshot:
    """Parse top's ``PhysMem: 15G used (2G wired), 1024M unused.`` line.

    Total is taken as used + unused, the way Activity Monitor reports it.
    """
    match = _PHYSMEM_RE.search(line)
    if not match:
        raise SamplerUnavailable(f"unrecognised PhysMem line: {line.strip()!r}")
    try:
        used = float(match.group(1)) * _UNIT[match.group(2)]
        unused = float(match.group(3)) * _UNIT[match.group(4)]
    except ValueError as e:
        raise SamplerUnavailable(f"bad number in PhysMem line: {line.strip()!r}") from e
    return MemorySnapshot(used_bytes=int(used), total_bytes=int(used + unused))


def sample_physmem() -> MemorySnapshot:
    """Used/total bytes from one sample of macOS ``top``."""
    try:
        result = subprocess.run(
            ["top", "-l", "1", "-n", "0"],
            capture_output=True,
            text=True,
            check=False,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise SamplerUnavailable(f"top failed: {e}") from e
    for line in result.stdout.splitlines():
        if "PhysMem" in line:
            return parse_physmem(line)
    raise SamplerUnavailable(f"top printed no PhysMem line (exit {result.returncode})")


# ─────────────────────────────  Process lister  ─────────────────────────────
def list_processes(now: float | None = None) -> list[ProcessRecord]:
    """
    Snapshot the process table.

    Processes that vanish or deny access mid-scan are skipped; failing to walk
    the table at all raises ListerUnavailable.
    """
    now = time.time() if now is None else now
    attrs = ["pid", "ppid", "name", "username", "memory_percent", "cmdline", "create_time"]
    records: list[ProcessRecord] = []

    try:
        for proc in psutil.process_iter(attrs=attrs):
            try:
                with proc.oneshot():
                    info = proc.info
                    cmdline = info.get("cmdline") or []
                    name = info.get("name") or ""
                    create_time = info.get("create_time")
                    records.append(
                        ProcessRecord(
                            pid=info.get("pid", proc.pid),
                            ppid=info.get("ppid"),
                            user=info.get("username") or "unknown",
                            mem_percent=info.get("memory_percent") or 0.0,
                            command=" ".join(cmdline) if cmdline else name,
                            elapsed_seconds=max(0.0, now - create_time) if create_time else 0.0,
                            name=name,
                        )
                    )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
    except (OSError, psutil.Error) as e:
        raise ListerUnavailable(f"cannot list processes: {e}") from e

    if not records:
        raise ListerUnavailable("process table came back empty")
    return records


# ────────────────────────────────  Terminators  ─────────────────────────────
Terminator = Callable[[int], KillOutcome]


def kill_pid(pid: int) -> KillOutcome:
    """SIGKILL ``pid``. A process that is already gone counts as a failure."""
    try:
        psutil.Process(pid).kill()
    except (psutil.NoSuchProcess, psutil.AccessDenied, OSError) as e:
        log(f"kill({pid}) refused: {e}")
        return KillOutcome.FAILED
    return KillOutcome.KILLED


def simulate_kill(pid: int) -> KillOutcome:  # noqa: ARG001
    return KillOutcome.WOULD_KILL


# ───────────────────────────  Remediation passes  ───────────────────────────
@dataclass(frozen=True)
class PriorityTarget:
    """An application whose every process is killed before anything else."""

    label: str
    marker: str

    def matches(self, command: str) -> bool:
        return _contains_ci(command, self.marker)


PRIORITY_TARGETS: tuple[PriorityTarget, ...] = (
    PriorityTarget("Brave Browser", "brave browser"),
    PriorityTarget("iTerm2", "iterm"),
)


class Remediator:
    """
    Critical-tier kill sequence.

    Runs each priority target pass in order, then the safe-to-kill pass over
    the top consumers. Every pass finishes before the next starts, a failed
    kill is logged and skipped, and a Remediator runs at most once.

    Policy: protection is checked in the priority passes too, matching a
    priority marker never overrides it.
    """

    def __init__(
        self,
        memory: MemorySnapshot,
        ctx: EligibilityContext,
        terminate: Terminator,
        audit_log: AuditLog | None,
        timestamp: str,
        targets: Sequence[PriorityTarget] = PRIORITY_TARGETS,
    ) -> None:
        self.memory = memory
        self.ctx = ctx
        self.terminate = terminate
        self.audit_log = audit_log
        self.timestamp = timestamp
        self.targets = tuple(targets)
        self.killed: list[KillRecord] = []
        self._attempted: set[int] = set()
        self._own_pid = os.getpid()
        self._done = False

    def run(self, processes: Sequence[ProcessRecord], top: Sequence[ProcessRecord]) -> list[KillRecord]:
        if self._done:
            raise RuntimeError("remediation already ran")
        self._done = True
        for target in self.targets:
            self.priority_pass(target, processes)
        self.safe_kill_pass(top)
        return self.killed

    def priority_pass(self, target: PriorityTarget, processes: Sequence[ProcessRecord]) -> None:
        log(f"[CRITICAL] killing ALL {target.label} processes...")
        for rec in processes:
            if self._skip(rec) or not target.matches(rec.command):
                continue
            rule = matching_protection_rule(rec, self.ctx)
            if rule is not None:
                log(f"Sparing PID {rec.pid} ({target.label}): protected by rule {rule!r}")
                continue
            self._attempt(rec, target.label, f"{REASON_PRIORITY}: {target.label}")

    def safe_kill_pass(self, top: Sequence[ProcessRecord]) -> None:
        log("[CRITICAL] checking safe-to-kill processes...")
        for rec in top:
            if self._skip(rec):
                continue
            if any(target.matches(rec.command) for target in self.targets):
                continue
            if is_safe_to_kill(rec, self.ctx, rec.elapsed_seconds):
                self._attempt(rec, rec.display_name, REASON_SAFE)

    def _skip(self, rec: ProcessRecord) -> bool:
        """Already tried this run, or the probe itself."""
        return rec.pid in self._attempted or rec.pid == self._own_pid

    def _attempt(self, rec: ProcessRecord, name: str, reason: str) -> None:
        self._attempted.add(rec.pid)
        ram_mb = self.memory.ram_mb(rec.mem_percent)
        outcome = self.terminate(rec.pid)

        if outcome is KillOutcome.FAILED:
            log(f"Failed to kill PID {rec.pid} ({name})")
            return

        kill = KillRecord(pid=rec.pid, name=name, ram_mb=ram_mb, reason=reason, outcome=outcome)
        self.killed.append(kill)
        if outcome is KillOutcome.WOULD_KILL:
            log(f"[DRY-RUN] Would kill PID {rec.pid} ({name}, {ram_mb}MB) - {reason}")
            return

        log(f"Killed PID {rec.pid} ({name}, {ram_mb}MB) - {reason}")
        if self.audit_log is not None:
            self.audit_log.append(kill, self.timestamp)


# ───────────────────────────────── One run  ─────────────────────────────────
def run_probe(
    *,
    sampler: Callable[[], MemorySnapshot] = sample_memory,
    lister: Callable[[], list[ProcessRecord]] = list_processes,
    terminate: Terminator = kill_pid,
    audit_log: AuditLog | None = None,
    thresholds: Thresholds | None = None,
    top_n: int = DEF_TOP_N,
    now: datetime | None = None,
) -> RunResult:
    """
    Sample, list, classify, remediate if critical, report.

    The top-consumers list is taken before any kill so a process killed in
    this run is still reported in it. Raises ProbeError if memory or the
    process table cannot be read.
    """
    timestamp = utc_timestamp(now)
    memory = sampler()
    processes = lister()
    level = classify(memory.used_percent, thresholds)
    top = top_processes(processes, top_n)

    killed: list[KillRecord] = []
    if level is Level.CRITICAL:
        log(f"[CRITICAL] RAM {memory.used_percent}% - reclaiming memory")
        ctx = EligibilityContext.build(processes)
        killed = Remediator(memory, ctx, terminate, audit_log, timestamp).run(processes, top)
    elif level is Level.WARNING:
        log(f"[WARNING] RAM {memory.used_percent}% - alert only, nothing killed")

    return RunResult(
        timestamp=timestamp,
        memory=memory,
        level=level,
        top_processes=tuple(top),
        killed=tuple(killed),
    )


# ────────────────────────────  CLI / argparse  ──────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    epilog = """
TIERS:
  ram <  --warning          ok        report only
  ram >= --warning          warning   report only, nothing is killed
  ram >= --critical         critical  kill, in this order:
      1. every Brave Browser process
      2. every iTerm2 process
      3. reclaimable processes among the --top consumers

PROTECTED (never killed, not even in steps 1-2):
  init, openclaw-gateway, Beeper and its children, Proton Mail Bridge,
  users starting with '_', kernel_task/loginwindow/WindowServer/launchd/
  systemstats/sshd.

OUTPUT:
  One JSON object on stdout. Exit status is 0 for every tier and 1 when
  memory or the process table cannot be read.
"""
    p = argparse.ArgumentParser(
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Report RAM usage and relieve critical memory pressure.",
        epilog=epilog,
    )

    p.add_argument("--version", action="version", version=f"RAM Guard v{__version__}")
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be killed without sending any signal or touching the audit log.",
    )
    p.add_argument(
        "--warning",
        type=float,
        default=DEF_WARNING_PCT,
        help=f"RAM percentage that raises the warning tier. (default: {DEF_WARNING_PCT})",
    )
    p.add_argument(
        "--critical",
        type=float,
        default=DEF_CRITICAL_PCT,
        help=f"RAM percentage that triggers killing. Must be > --warning. (default: {DEF_CRITICAL_PCT})",
    )
    p.add_argument(
        "--top",
        type=int,
        default=DEF_TOP_N,
        help=f"Number of top memory consumers to report and consider for reclaim. (default: {DEF_TOP_N})",
    )
    p.add_argument(
        "--log-file",
        type=Path,
        default=LOG_FILE,
        help=f"Audit log for real kills. (default: {LOG_FILE})",
    )
    p.add_argument(
        "--physmem",
        action="store_true",
        help="Read memory from the PhysMem line of top(1) instead of psutil (macOS).",
    )
    return p


# ───────────────────────────── entry-point ──────────────────────────────────
def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    # Validate arguments
    try:
        thresholds = Thresholds(args.warning, args.critical)
    except ValueError as e:
        sys.exit(f"Error: {e}")
    if args.top < 1:
        sys.exit("Error: --top must be at least 1")

    sampler = sample_physmem if args.physmem else sample_memory
    if args.dry_run:
        terminate, audit_log = simulate_kill, None
    else:
        terminate, audit_log = kill_pid, AuditLog(args.log_file)

    try:
        result = run_probe(
            sampler=sampler,
            lister=list_processes,
            terminate=terminate,
            audit_log=audit_log,
            thresholds=thresholds,
            top_n=args.top,
        )
    except ProbeError as e:
        sys.exit(f"Error: {e}")

    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
