"""
OsMetricCollector - host metrics for Level 0.

Reads /proc/stat, /proc/meminfo and /proc/loadavg, and samples vmstat,
iostat and `sar -u 1 1` when they are installed. Missing tools are not
errors; they are reported as unavailable samples.
"""

import subprocess
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple


MAX_COMMAND_OUTPUT_CHARS = 4000
COMMAND_TIMEOUT_SECS = 10

DEFAULT_COMMANDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("vmstat", ()),
    ("iostat", ()),
    ("sar", ("-u", "1", "1")),
)


@dataclass
class ProcCpuStat:
    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0


@dataclass
class ProcMemInfo:
    mem_total_kb: int = 0
    mem_available_kb: int = 0
    swap_total_kb: int = 0
    swap_free_kb: int = 0


@dataclass
class LoadAverage:
    one: float = 0.0
    five: float = 0.0
    fifteen: float = 0.0
    running_tasks: str = ""
    last_pid: int = 0


@dataclass
class CommandSample:
    """Result of running one optional OS tool."""
    command: str
    args: List[str] = field(default_factory=list)
    available: bool = False
    status_code: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class OsSnapshot:
    proc_cpu: Optional[ProcCpuStat] = None
    proc_mem: Optional[ProcMemInfo] = None
    load_average: Optional[LoadAverage] = None
    commands: Dict[str, CommandSample] = field(default_factory=dict)

    def has_any_metric(self) -> bool:
        return (
            self.proc_cpu is not None
            or self.proc_mem is not None
            or self.load_average is not None
            or any(sample.available for sample in self.commands.values())
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proc_cpu": asdict(self.proc_cpu) if self.proc_cpu else None,
            "proc_mem": asdict(self.proc_mem) if self.proc_mem else None,
            "load_average": asdict(self.load_average) if self.load_average else None,
            **{name: asdict(sample) for name, sample in self.commands.items()},
        }


def parse_proc_cpu_stat(content: str) -> Optional[ProcCpuStat]:
    """Aggregate `cpu` line of /proc/stat."""
    lines = content.splitlines()
    if not lines:
        return None
    parts = lines[0].split()
    if not parts or parts[0] != "cpu" or len(parts) < 5:
        return None
    try:
        values = [int(value) for value in parts[1:5]]
    except ValueError:
        return None
    optional = []
    for value in parts[5:9]:
        try:
            optional.append(int(value))
        except ValueError:
            optional.append(0)
    optional.extend([0] * (4 - len(optional)))
    return ProcCpuStat(*values, *optional)


def parse_proc_meminfo(content: str) -> Optional[ProcMemInfo]:
    """MemTotal/MemAvailable are required, swap fields default to 0."""
    values: Dict[str, int] = {}
    for line in content.splitlines():
        key, sep, rest = line.partition(":")
        if not sep:
            continue
        fields = rest.split()
        if fields and fields[0].isdigit():
            values[key.strip()] = int(fields[0])

    if "MemTotal" not in values or "MemAvailable" not in values:
        return None
    return ProcMemInfo(
        mem_total_kb=values["MemTotal"],
        mem_available_kb=values["MemAvailable"],
        swap_total_kb=values.get("SwapTotal", 0),
        swap_free_kb=values.get("SwapFree", 0),
    )


def parse_load_average(content: str) -> Optional[LoadAverage]:
    parts = content.split()
    if len(parts) < 5:
        return None
    try:
        return LoadAverage(
            one=float(parts[0]),
            five=float(parts[1]),
            fifteen=float(parts[2]),
            running_tasks=parts[3],
            last_pid=int(parts[4]),
        )
    except ValueError:
        return None


def truncate_output(text: str, limit: int = MAX_COMMAND_OUTPUT_CHARS) -> Optional[str]:
    if not text:
        return None
    if len(text) > limit:
        return text[:limit] + "\n...[truncated]"
    return text


def run_optional_command(command: str, args: Tuple[str, ...] = (), timeout: int = COMMAND_TIMEOUT_SECS) -> CommandSample:
    """Run a tool that may not be installed."""
    sample = CommandSample(command=command, args=list(args))
    try:
        result = subprocess.run(
            [command, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        sample.error = "command not found"
        return sample
    except subprocess.TimeoutExpired:
        sample.available = True
        sample.error = f"timed out after {timeout}s"
        return sample
    except OSError as e:
        sample.available = True
        sample.error = str(e)
        return sample

    sample.available = True
    sample.status_code = result.returncode
    sample.output = truncate_output(result.stdout.strip())
    if result.returncode != 0:
        stderr = result.stderr.strip()
        sample.error = stderr or f"exit status: {result.returncode}"
    return sample


class OsMetricCollector:
    """
    Collects host metrics on the machine running the collector.

    Args:
        proc_root: where to find stat/meminfo/loadavg (tests point this at fixtures)
        commands: (command, args) pairs to sample
    """

    def __init__(
        self,
        proc_root: str = "/proc",
        commands: Tuple[Tuple[str, Tuple[str, ...]], ...] = DEFAULT_COMMANDS,
    ):
        self.proc_root = Path(proc_root)
        self.commands = commands

    def collect(self) -> Tuple[OsSnapshot, List[str]]:
        """Returns the snapshot and warnings for anything that failed."""
        snapshot = OsSnapshot()
        warnings: List[str] = []

        for name, parser, attr in (
            ("stat", parse_proc_cpu_stat, "proc_cpu"),
            ("meminfo", parse_proc_meminfo, "proc_mem"),
            ("loadavg", parse_load_average, "load_average"),
        ):
            path = self.proc_root / name
            try:
                setattr(snapshot, attr, parser(path.read_text()))
            except OSError as e:
                warnings.append(f"failed reading {path}: {e}")

        for command, args in self.commands:
            sample = run_optional_command(command, args)
            snapshot.commands[command] = sample
            if sample.available and sample.error:
                warnings.append(f"{command} failed: {sample.error}")

        return snapshot, warnings
