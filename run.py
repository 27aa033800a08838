"""Entry point for the Cache Memory Simulator.

Usage:
    python run.py                                  # default test pattern, 1KB 4-way LRU
    python run.py -s 512 -b 16 -a 2 -r FIFO -A 0x0,0x10,0x20 -O r,w,r
    python run.py -t trace.txt -o results.txt -q
    python run.py --scenario "Matrix Traversal" --chart hit_rate.pdf
    python run.py --config cache.yaml -v
"""
import argparse
import sys
import time

import yaml

from cachesim.config import SimulatorSettings
from cachesim.core.errors import InvalidConfiguration
from cachesim.data.stats_export import Exporter, export_chart_pdf, format_report
from cachesim.data.trace import TraceFormatError
from cachesim.simulation import SCENARIOS, Simulation
from cachesim.utils.logging import get_logger


def build_parser():
    p = argparse.ArgumentParser(
        prog="cachesim",
        description="Cache Simulator - Command Line Interface",
    )
    # defaults live in SimulatorSettings; None means "not given" so YAML values survive
    p.add_argument("-s", "--cache-size", dest="cache_size", type=int, help="Cache size in bytes (default: 1024)")
    p.add_argument("-b", "--block-size", dest="block_size", type=int, help="Block size in bytes (default: 32)")
    p.add_argument("-a", "--associativity", type=int, help="Associativity (1=direct, 0=fully, default: 4)")
    p.add_argument("-r", "--replacement", dest="replacement_policy", help="LRU|FIFO|RANDOM (default: LRU)")
    p.add_argument("-w", "--write-policy", dest="write_policy", help="WRITE_THROUGH|WRITE_BACK (default: WRITE_THROUGH)")
    p.add_argument("-m", "--write-miss", dest="write_miss_policy",
                   help="WRITE_ALLOCATE|NO_WRITE_ALLOCATE (default: WRITE_ALLOCATE)")
    p.add_argument("--seed", type=int, help="Seed for the Random policy and the Random Access scenario")
    p.add_argument("-t", "--trace-file", dest="trace_file", help="Input trace file, one '<op> <address>' per line")
    p.add_argument("-A", "--addresses", help="Comma-separated addresses (e.g. 0x0,0x20,64)")
    p.add_argument("-O", "--operations", help="Comma-separated operations (e.g. read,WRITE,r)")
    p.add_argument("--scenario", choices=SCENARIOS, help="Built-in access pattern (default: Default)")
    p.add_argument("--passes", dest="num_passes", type=int, help="Number of passes over the sequence")
    p.add_argument("-o", "--output-file", dest="output_file", help="Output statistics report (default: stats.txt)")
    p.add_argument("--json", dest="json_file", help="Also export statistics as JSON")
    p.add_argument("--csv", dest="csv_file", help="Also export statistics as CSV")
    p.add_argument("--chart", dest="chart_file", help="Save the hit-rate history chart (pdf/png)")
    p.add_argument("--config", help="YAML file with settings; command-line options override it")
    p.add_argument("-v", "--verbose", action="store_true", default=None, help="Verbose output")
    p.add_argument("-q", "--quiet", action="store_true", default=None, help="Suppress console output")
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        settings = SimulatorSettings.from_args(args)
        logger = get_logger(verbose=settings.verbose, quiet=settings.quiet)
        sim = Simulation(settings)
        start = time.perf_counter()
        steps = sim.run_simulation()
        elapsed = time.perf_counter() - start
    except (InvalidConfiguration, TraceFormatError, yaml.YAMLError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    def say(text=""):
        if not settings.quiet:
            print(text)

    cache = sim.cache
    say("Cache Simulator CLI")
    say("==================")
    say(cache.describe())
    if settings.trace_file:
        loaded = sum(1 for info in steps if info['_pass'] == 0)
        logger.info("Loaded %d memory accesses from %s", loaded, settings.trace_file)
    elif not settings.addresses:
        say(f"Using scenario: {settings.scenario}\n")

    say("Memory Access Simulation:")
    say("========================")
    for info in steps:
        label = info['result'].name.replace('_', ' ')
        say(f"Access 0x{info['address']:x} ({info['operation'].name}) -> {label}")

    stats = cache.statistics()
    say()
    say(stats.to_text())
    if settings.verbose:
        say(cache.format_contents())

    accesses = [(info['address'], info['operation']) for info in steps]
    results = [info['result'] for info in steps]
    report = format_report(cache.describe(), stats, accesses, results, elapsed,
                           trace_file=settings.trace_file or None, verbose=settings.verbose)
    try:
        with open(settings.output_file, 'w', encoding='utf-8') as fh:
            fh.write(report)
        say(f"Statistics successfully written to {settings.output_file}")
        if settings.json_file:
            Exporter.export_stats_json(settings.json_file, stats, cache.configuration)
        if settings.csv_file:
            Exporter.export_stats_csv(settings.csv_file, stats)
        if settings.chart_file:
            export_chart_pdf(sim.simulator.hit_rate_history, settings.chart_file)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
