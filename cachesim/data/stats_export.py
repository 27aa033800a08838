"""Statistics and exporter.
"""
import csv
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

COUNTER_FIELDS = (
    'hits', 'misses', 'reads', 'writes', 'write_hits', 'write_misses',
    'memory_reads', 'memory_writes',
)


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100.0 if whole else 0.0


class _Rates:
    """Derived values shared by the live counters and their snapshots.

    All rates are percentages; a rate with no accesses behind it is 0.0.
    """

    @property
    def total_accesses(self) -> int:
        return self.hits + self.misses

    @property
    def read_hits(self) -> int:
        return self.hits - self.write_hits

    @property
    def read_misses(self) -> int:
        return self.misses - self.write_misses

    @property
    def hit_rate(self) -> float:
        return _percent(self.hits, self.total_accesses)

    @property
    def miss_rate(self) -> float:
        return _percent(self.misses, self.total_accesses)

    @property
    def read_hit_rate(self) -> float:
        return _percent(self.read_hits, self.read_hits + self.read_misses)

    @property
    def write_hit_rate(self) -> float:
        return _percent(self.write_hits, self.write_hits + self.write_misses)

    def as_dict(self) -> Dict[str, float]:
        data = {name: getattr(self, name) for name in COUNTER_FIELDS}
        data.update({
            'total_accesses': self.total_accesses,
            'hit_rate': self.hit_rate,
            'miss_rate': self.miss_rate,
            'read_hit_rate': self.read_hit_rate,
            'write_hit_rate': self.write_hit_rate,
        })
        return data

    def to_text(self) -> str:
        lines = [
            "Cache Statistics:",
            f"  Total Accesses: {self.total_accesses}",
            f"  Hits: {self.hits}",
            f"  Misses: {self.misses}",
            f"  Hit Rate: {self.hit_rate:.2f}%",
            f"  Miss Rate: {self.miss_rate:.2f}%",
            "",
            f"  Read Accesses: {self.reads}",
            f"  Write Accesses: {self.writes}",
            f"  Read Hit Rate: {self.read_hit_rate:.2f}%",
            f"  Write Hit Rate: {self.write_hit_rate:.2f}%",
            "",
            f"  Read Hits: {self.read_hits}",
            f"  Read Misses: {self.read_misses}",
            f"  Write Hits: {self.write_hits}",
            f"  Write Misses: {self.write_misses}",
            "",
            f"  Memory Reads: {self.memory_reads}",
            f"  Memory Writes: {self.memory_writes}",
        ]
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class StatisticsSnapshot(_Rates):
    """Point-in-time copy of the counters. Never changes after creation."""

    hits: int = 0
    misses: int = 0
    reads: int = 0
    writes: int = 0
    write_hits: int = 0
    write_misses: int = 0
    memory_reads: int = 0
    memory_writes: int = 0


class CacheStatistics(_Rates):
    def __init__(self):
        self.reset()

    def reset(self):
        # counters start from zero
        self.hits = 0
        self.misses = 0
        self.reads = 0
        self.writes = 0
        self.write_hits = 0
        self.write_misses = 0
        self.memory_reads = 0
        self.memory_writes = 0

    def record_read(self):
        self.reads += 1

    def record_write(self):
        self.writes += 1

    def record_hit(self):
        self.hits += 1

    def record_miss(self):
        self.misses += 1

    # a write hit/miss is also a hit/miss
    def record_write_hit(self):
        self.write_hits += 1
        self.hits += 1

    def record_write_miss(self):
        self.write_misses += 1
        self.misses += 1

    def record_memory_read(self):
        self.memory_reads += 1

    def record_memory_write(self):
        self.memory_writes += 1

    def snapshot(self) -> StatisticsSnapshot:
        return StatisticsSnapshot(**{name: getattr(self, name) for name in COUNTER_FIELDS})


def format_report(
    configuration_text: str,
    stats,
    accesses: Sequence,
    results: Sequence,
    simulation_time: float,
    trace_file: Optional[str] = None,
    verbose: bool = False,
) -> str:
    """Render the plain-text statistics report.

    `accesses` is a sequence of (address, operation) pairs and `results` the
    matching access results; both enums are rendered by member name.
    Per-access details are included when `verbose` is set or the run is
    small (100 accesses or fewer).
    """
    rule = "=" * 40
    out: List[str] = [
        rule,
        "Cache Simulator Statistics Report",
        rule,
        f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}",
        "",
        "CACHE CONFIGURATION:",
        "-------------------",
        configuration_text,
        "SIMULATION DETAILS:",
        "------------------",
        f"Total Memory Accesses: {len(accesses)}",
        f"Simulation Time: {simulation_time:.6f} seconds",
    ]
    if trace_file:
        out.append(f"Input Trace File: {trace_file}")
    out += ["", "CACHE STATISTICS:", "-----------------", stats.to_text()]

    if verbose or len(accesses) <= 100:
        out += ["ACCESS DETAILS:", "--------------"]
        for i, ((address, operation), result) in enumerate(zip(accesses, results), start=1):
            label = result.name.replace('_', ' ')
            out.append(f"{i:>6}: 0x{address:08x} ({operation.name:>5}) -> {label}")
        out.append("")

    out += ["PERFORMANCE SUMMARY:", "-------------------"]
    if accesses and simulation_time > 0:
        out.append(f"Accesses per second: {len(accesses) / simulation_time:.0f}")
        out.append(f"Average access time: {simulation_time * 1e6 / len(accesses):.3f} microseconds")
    else:
        out.append("Accesses per second: n/a")
    out += ["", rule, "End of Report", rule]
    return "\n".join(out) + "\n"


def export_chart_json(hit_rate_history: List[float], stats, fpath: str) -> str:
    """Export hit-rate history and stats to a JSON file. Returns the saved path.
    """
    data = {
        'hit_rate_history': list(hit_rate_history),
        'stats': stats.as_dict(),
    }
    with open(fpath, 'w', encoding='utf-8') as fh:
        json.dump(data, fh, indent=2)
    return fpath


def export_chart_pdf(hit_rate_history: List[float], fpath: str) -> str:
    """Render the hit-rate history (percent per access) with matplotlib.

    The output format follows the file extension (pdf, png, svg...).
    """
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    data = list(hit_rate_history) or [0]
    fig, ax = plt.subplots(figsize=(6, 2))
    ax.plot(range(len(data)), data, color='#FFA500', linewidth=2)
    ax.fill_between(range(len(data)), data, color='#FFA500', alpha=0.1)
    ax.set_ylim(0, 100)
    ax.set_xlabel('Access')
    ax.set_ylabel('Hit rate (%)')
    ax.grid(False)
    fig.tight_layout()
    fig.savefig(fpath, dpi=150)
    plt.close(fig)
    return fpath


class Exporter:
    @staticmethod
    def export_stats_csv(path: str, stats):
        with open(path, 'w', newline='') as f:
            writer = csv.writer(f)
            data = stats.as_dict()
            writer.writerow(list(data))
            writer.writerow(list(data.values()))

    @staticmethod
    def export_stats_json(path: str, stats, configuration=None):
        payload = {'stats': stats.as_dict()}
        if configuration is not None:
            payload['configuration'] = configuration.as_dict()
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
