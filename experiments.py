"""
Huffman codec experiments: tree-walk vs reverse-table decoding,
frequency-table vs code-table containers.

Outputs (in --outdir):
  - metrics.csv     (raw row per run per configuration)
  - summary.csv     (grouped mean/stdev)
  - *.png           (charts, unless --no_plots)

How to run:
  python experiments.py --outdir results --runs 5
  python experiments.py --outdir results --runs 3 --exp1_size_kb 64 --exp2_max_kb 512
  python experiments.py --outdir results --runs 5 --exp1_generators uniform256,zipf128,single_symbol
"""

from __future__ import annotations

import argparse
import csv
import random
import statistics
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

import huffman as huff
import huffman_container as container

PIPELINES = ("tree", "table")


# Utilities

def now_ns() -> int:
    return time.perf_counter_ns()

def ns_to_ms(ns: int) -> float:
    return ns / 1_000_000.0

def safe_mkdir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


# Synthetic dataset generators

def _sample_cdf(rng: random.Random, cdf: List[float]) -> int:
    r = rng.random()
    lo, hi = 0, len(cdf) - 1
    while lo < hi:
        mid = (lo + hi) // 2
        if r <= cdf[mid]:
            hi = mid
        else:
            lo = mid + 1
    return lo

def _cdf(weights: List[float]) -> List[float]:
    total = sum(weights)
    cdf = []
    acc = 0.0
    for w in weights:
        acc += w / total
        cdf.append(acc)
    cdf[-1] = 1.0 # float sums can fall short of 1
    return cdf

def gen_uniform(size: int, alphabet: int = 256, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    return bytes(rng.randrange(0, alphabet) for _ in range(size))

def gen_repetitive(size: int, dominant: int = ord('A'), dom_frac: float = 0.90, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    other_symbols = [i for i in range(256) if i != dominant]
    out = bytearray()
    for _ in range(size):
        if rng.random() < dom_frac:
            out.append(dominant)
        else:
            out.append(rng.choice(other_symbols))
    return bytes(out)

def gen_zipf_like(size: int, alphabet: int = 128, s: float = 1.2, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    cdf = _cdf([1.0 / ((i + 1) ** s) for i in range(alphabet)])
    return bytes(_sample_cdf(rng, cdf) for _ in range(size))

def gen_english_like(size: int, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    chars = " etaoinshrdlcumwfgypbvkjxqETAOINSHRDLCUMWFGYPBVKJXQ\n"
    weights = []
    for ch in chars:
        if ch == ' ':
            weights.append(13.0)
        elif ch == '\n':
            weights.append(1.5)
        elif ch.lower() in "etaoinshrdlu":
            weights.append(6.0)
        elif ch.lower() in "cmfwgypbvk":
            weights.append(2.5)
        else:
            weights.append(1.2)
    cdf = _cdf(weights)
    return bytes(ord(chars[_sample_cdf(rng, cdf)]) for _ in range(size))

def gen_fibonacci_skew(size: int, alphabet: int = 20, seed: int = 0) -> bytes:
    """Fibonacci weights produce the deepest possible tree for the alphabet."""
    rng = random.Random(seed)
    fib = [1, 1]
    while len(fib) < alphabet:
        fib.append(fib[-1] + fib[-2])
    cdf = _cdf([float(f) for f in fib[:alphabet]])
    return bytes(_sample_cdf(rng, cdf) for _ in range(size))

GENERATOR_REGISTRY: Dict[str, Callable[[int, int], bytes]] = {
    "uniform256": lambda size, seed: gen_uniform(size, alphabet=256, seed=seed),
    "uniform16": lambda size, seed: gen_uniform(size, alphabet=16, seed=seed),
    "zipf128": lambda size, seed: gen_zipf_like(size, alphabet=128, s=1.2, seed=seed),
    "repetitive90": lambda size, seed: gen_repetitive(size, dominant=ord('A'), dom_frac=0.90, seed=seed),
    "repetitive99": lambda size, seed: gen_repetitive(size, dominant=ord('A'), dom_frac=0.99, seed=seed),
    "english_like": lambda size, seed: gen_english_like(size, seed=seed),
    "fibonacci20": lambda size, seed: gen_fibonacci_skew(size, alphabet=20, seed=seed),
    "single_symbol": lambda size, seed: bytes([ord('a')]) * size,
}

def generate_dataset(name: str, size_bytes: int, seed: int) -> bytes:
    fn = GENERATOR_REGISTRY.get(name)
    if fn is None:
        raise ValueError(f"unknown generator {name!r}; choose from {', '.join(sorted(GENERATOR_REGISTRY))}")
    return fn(size_bytes, seed)


# Experiment runner

@dataclass
class MetricRow:
    exp_name: str
    dataset_name: str
    file_size_bytes: int
    run_id: int
    pipeline: str  # "tree" or "table" decoder
    unique_symbols: int
    tree_depth: int

    build_ms: float
    encode_ms: float
    decode_ms: float
    write_ms: float
    read_ms: float
    total_ms: float

    payload_bytes: int
    pad_bits: int
    container_freq_bytes: int
    container_codes_bytes: int
    compression_ratio: float

    entropy_bits: float
    avg_code_length: float
    redundancy_bits: float
    correctness_ok: int  # 1 or 0


def run_one(data: bytes, pipeline: str) -> MetricRow:
    if pipeline not in PIPELINES:
        raise ValueError(f"pipeline must be one of {PIPELINES}")

    # Build
    t0 = now_ns()
    ft = huff.count_frequencies(data)
    tree = huff.build_huffman_tree(ft)
    codes = huff.generate_huffman_codes(tree)
    t1 = now_ns()

    # Encode
    payload = huff.huffman_encode(data, codes)
    t2 = now_ns()

    # Container write (frequency table) and read back
    blob = container.write_container(payload, frequencies=ft)
    t3 = now_ns()
    restored = container.read_container(blob)
    t4 = now_ns()
    codes_blob = container.write_container(payload, code_table=codes)

    # Decode
    correctness_ok = 1
    t5 = now_ns()
    try:
        bits = huff.iter_bits(restored.payload.data, restored.payload.bit_length)
        if pipeline == "tree":
            decoded = huff.decode_bits(bits, restored.tree)
        else:
            decoded = huff.decode_with_table(bits, restored.codes)
    except huff.HuffmanError as exc:
        print(f"decode failed ({pipeline}): {exc}")
        decoded = []
        correctness_ok = 0
    t6 = now_ns()
    if bytes(decoded) != data:
        correctness_ok = 0

    entropy = huff.shannon_entropy(ft)
    avg_len = huff.average_code_length(ft, codes)
    build_ms = ns_to_ms(t1 - t0)
    encode_ms = ns_to_ms(t2 - t1)
    write_ms = ns_to_ms(t3 - t2)
    read_ms = ns_to_ms(t4 - t3)
    decode_ms = ns_to_ms(t6 - t5)

    return MetricRow(
        exp_name="",
        dataset_name="",
        file_size_bytes=len(data),
        run_id=0,
        pipeline=pipeline,
        unique_symbols=len(ft),
        tree_depth=huff.tree_stats(tree)["depth"],
        build_ms=build_ms,
        encode_ms=encode_ms,
        decode_ms=decode_ms,
        write_ms=write_ms,
        read_ms=read_ms,
        total_ms=build_ms + encode_ms + write_ms + read_ms + decode_ms,
        payload_bytes=len(payload.data),
        pad_bits=payload.pad_bits,
        container_freq_bytes=len(blob),
        container_codes_bytes=len(codes_blob),
        compression_ratio=huff.compression_ratio(len(data), len(blob)),
        entropy_bits=entropy,
        avg_code_length=avg_len,
        redundancy_bits=avg_len - entropy,
        correctness_ok=correctness_ok,
    )


def write_csv(path: Path, rows: List[MetricRow]) -> None:
    fields = list(MetricRow.__dataclass_fields__.keys())
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fields)
        w.writeheader()
        for r in rows:
            w.writerow({k: getattr(r, k) for k in fields})


SUMMARY_METRICS = (
    "compression_ratio",
    "avg_code_length",
    "redundancy_bits",
    "build_ms",
    "encode_ms",
    "decode_ms",
    "total_ms",
)


def mean_stdev(vals: List[float]) -> Tuple[float, float]:
    if len(vals) == 1:
        return vals[0], 0.0
    return statistics.mean(vals), statistics.stdev(vals)


def group_summary(rows: List[MetricRow], out_path: Path) -> None:
    """
    Group by exp_name, dataset_name, file_size_bytes, pipeline and compute mean/stdev
    """
    key_to: Dict[Tuple[str, str, int, str], List[MetricRow]] = {}
    for r in rows:
        key = (r.exp_name, r.dataset_name, r.file_size_bytes, r.pipeline)
        key_to.setdefault(key, []).append(r)

    summary_fields = ["exp_name", "dataset_name", "file_size_bytes", "pipeline", "n_runs"]
    for m in SUMMARY_METRICS:
        summary_fields += [f"{m}_mean", f"{m}_stdev"]
    summary_fields.append("correctness_ok_rate")

    with out_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=summary_fields)
        w.writeheader()
        for key, items in sorted(key_to.items()):
            exp_name, dataset_name, size_b, pipeline = key
            row = {
                "exp_name": exp_name,
                "dataset_name": dataset_name,
                "file_size_bytes": size_b,
                "pipeline": pipeline,
                "n_runs": len(items),
                "correctness_ok_rate": sum(x.correctness_ok for x in items) / len(items),
            }
            for m in SUMMARY_METRICS:
                row[f"{m}_mean"], row[f"{m}_stdev"] = mean_stdev([getattr(x, m) for x in items])
            w.writerow(row)


# Plotting

def _line_chart(outdir: Path, name: str, x, series: Dict[str, List[float]], title: str, ylabel: str,
                xticks: List[str] = None, xlabel: str = None) -> None:
    plt.figure()
    for label, y in series.items():
        plt.plot(x, y, marker="o", label=label)
    if xticks is not None:
        plt.xticks(x, xticks, rotation=20, ha="right")
    if xlabel:
        plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    if len(series) > 1:
        plt.legend()
    plt.tight_layout()
    plt.savefig(outdir / name, dpi=200)
    plt.close()


def plot_experiment_1(rows: List[MetricRow], outdir: Path) -> None:
    exp_rows = [r for r in rows if r.exp_name == "exp1_distribution"]
    if not exp_rows:
        return

    datasets = sorted(set(r.dataset_name for r in exp_rows))
    x = list(range(len(datasets)))

    def mean_for(dataset: str, field: str, pipeline: str = "tree") -> float:
        vals = [getattr(r, field) for r in exp_rows if r.dataset_name == dataset and r.pipeline == pipeline]
        return statistics.mean(vals) if vals else float("nan")

    _line_chart(outdir, "exp1_compression_ratio.png", x,
                {"container": [mean_for(d, "compression_ratio") for d in datasets]},
                "Experiment 1: Compression Ratio by Distribution", "Container Bytes / Original Bytes",
                xticks=datasets)
    _line_chart(outdir, "exp1_code_length.png", x,
                {"entropy H": [mean_for(d, "entropy_bits") for d in datasets],
                 "average code length L": [mean_for(d, "avg_code_length") for d in datasets]},
                "Experiment 1: Entropy vs Average Code Length", "Bits per Symbol",
                xticks=datasets)
    _line_chart(outdir, "exp1_decode_time.png", x,
                {p: [mean_for(d, "decode_ms", p) for d in datasets] for p in PIPELINES},
                "Experiment 1: Decode Time by Distribution", "Decode Time (ms)",
                xticks=datasets)


def plot_experiment_2(rows: List[MetricRow], outdir: Path) -> None:
    exp_rows = [r for r in rows if r.exp_name == "exp2_size_scaling"]
    if not exp_rows:
        return

    for dist in sorted(set(r.dataset_name for r in exp_rows)):
        dist_rows = [r for r in exp_rows if r.dataset_name == dist]
        sizes = sorted(set(r.file_size_bytes for r in dist_rows))

        def mean_size(size: int, field: str, pipeline: str = "tree") -> float:
            vals = [getattr(r, field) for r in dist_rows if r.file_size_bytes == size and r.pipeline == pipeline]
            return statistics.mean(vals) if vals else float("nan")

        _line_chart(outdir, f"exp2_encode_time_{dist}.png", sizes,
                    {"encode": [mean_size(s, "encode_ms") for s in sizes]},
                    f"Experiment 2: Encode Time vs Size ({dist})", "Encode Time (ms)",
                    xlabel="File Size (bytes)")
        _line_chart(outdir, f"exp2_decode_time_{dist}.png", sizes,
                    {p: [mean_size(s, "decode_ms", p) for s in sizes] for p in PIPELINES},
                    f"Experiment 2: Decode Time vs Size ({dist})", "Decode Time (ms)",
                    xlabel="File Size (bytes)")
        _line_chart(outdir, f"exp2_compression_ratio_{dist}.png", sizes,
                    {"container": [mean_size(s, "compression_ratio") for s in sizes]},
                    f"Experiment 2: Compression Ratio vs Size ({dist})", "Container Bytes / Original Bytes",
                    xlabel="File Size (bytes)")


def plot_experiment_3(rows: List[MetricRow], outdir: Path) -> None:
    exp_rows = [r for r in rows if r.exp_name == "exp3_table_overhead" and r.pipeline == "tree"]
    if not exp_rows:
        return

    datasets = sorted(set(r.dataset_name for r in exp_rows))
    x = list(range(len(datasets)))

    def mean_for(dataset: str, field: str) -> float:
        return statistics.mean(getattr(r, field) for r in exp_rows if r.dataset_name == dataset)

    _line_chart(outdir, "exp3_container_size.png", x,
                {"frequency table": [mean_for(d, "container_freq_bytes") for d in datasets],
                 "code table": [mean_for(d, "container_codes_bytes") for d in datasets]},
                "Experiment 3: Container Size by Table Kind", "Container Size (bytes)",
                xticks=datasets)


# Main

def parse_csv_list(s: str) -> List[str]:
    return [x.strip() for x in s.split(",") if x.strip()]

def run_config(rows: List[MetricRow], exp_name: str, gen_name: str, size_b: int, runs: int, seed: int,
               label: str = None) -> None:
    for run_id in range(1, runs + 1):
        data = generate_dataset(gen_name, size_b, seed + run_id)
        for pipeline in PIPELINES:
            row = run_one(data, pipeline)
            row.exp_name = exp_name
            row.dataset_name = label or gen_name
            row.run_id = run_id
            rows.append(row)

def main(argv: List[str] = None) -> int:
    ap = argparse.ArgumentParser(description="Huffman codec experiments")
    ap.add_argument("--outdir", type=str, default="results", help="Output directory for CSV and plots")
    ap.add_argument("--runs", type=int, default=5, help="Repetitions per configuration (>=3 recommended for timing)")
    ap.add_argument("--seed", type=int, default=123, help="Base random seed")
    ap.add_argument("--no_plots", action="store_true", help="Write CSV files only")

    # Experiment toggles
    ap.add_argument("--no_exp1", action="store_true", help="Disable experiment 1 (distribution)")
    ap.add_argument("--no_exp2", action="store_true", help="Disable experiment 2 (size scaling)")
    ap.add_argument("--no_exp3", action="store_true", help="Disable experiment 3 (table overhead)")

    # Experiment 1 controls
    ap.add_argument("--exp1_size_kb", type=int, default=64, help="Experiment 1 fixed file size in KB")
    ap.add_argument("--exp1_generators", type=str,
                    default="uniform256,zipf128,repetitive90,english_like,fibonacci20,single_symbol",
                    help="Comma-separated dataset generator names for experiment 1")

    # Experiment 2 controls
    ap.add_argument("--exp2_min_kb", type=int, default=4, help="Experiment 2 min size in KB (power-of-two growth)")
    ap.add_argument("--exp2_max_kb", type=int, default=256, help="Experiment 2 max size in KB (power-of-two growth)")
    ap.add_argument("--exp2_generators", type=str, default="uniform256,zipf128,repetitive90",
                    help="Comma-separated dataset generator names for experiment 2")

    args = ap.parse_args(argv)

    for names in (args.exp1_generators, args.exp2_generators):
        unknown = [n for n in parse_csv_list(names) if n not in GENERATOR_REGISTRY]
        if unknown:
            ap.error(f"unknown generator(s): {', '.join(unknown)}")

    outdir = Path(args.outdir)
    safe_mkdir(outdir)

    rows: List[MetricRow] = []

    # Experiment 1: distributions (fixed size)
    if not args.no_exp1:
        fixed_size = max(1, args.exp1_size_kb) * 1024
        for gen_name in parse_csv_list(args.exp1_generators):
            run_config(rows, "exp1_distribution", gen_name, fixed_size, args.runs, args.seed)

    # Experiment 2: size scaling (multiple sizes, powers of 2)
    if not args.no_exp2:
        sizes: List[int] = []
        s = max(1, args.exp2_min_kb) * 1024
        while s <= max(1, args.exp2_max_kb) * 1024:
            sizes.append(s)
            s *= 2

        for gen_name in parse_csv_list(args.exp2_generators):
            for size_b in sizes:
                run_config(rows, "exp2_size_scaling", gen_name, size_b, args.runs, args.seed + 10_000 + size_b)

    # Experiment 3: table overhead on small inputs, where the table dominates the container
    if not args.no_exp3:
        for gen_name, size_b in [("english_like", 256), ("uniform16", 256), ("uniform256", 1024),
                                 ("zipf128", 1024), ("repetitive99", 4096)]:
            run_config(rows, "exp3_table_overhead", gen_name, size_b, args.runs, args.seed + 200_000 + size_b,
                       label=f"{gen_name}_{size_b}b")

    metrics_csv = outdir / "metrics.csv"
    summary_csv = outdir / "summary.csv"
    write_csv(metrics_csv, rows)
    group_summary(rows, summary_csv)

    if not args.no_plots:
        plot_experiment_1(rows, outdir)
        plot_experiment_2(rows, outdir)
        plot_experiment_3(rows, outdir)

    ok_rate = sum(r.correctness_ok for r in rows) / max(1, len(rows))
    print(f"Wrote {len(rows)} rows to {metrics_csv}")
    print(f"Wrote grouped summary to {summary_csv}")
    print(f"Correctness rate across all runs: {ok_rate:.3f}")
    if not args.no_plots:
        print("Charts saved in:", outdir.resolve())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
