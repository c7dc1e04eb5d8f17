import argparse
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from photo_inspector.scanning.aesthetic import AestheticScanner
from photo_inspector.scoring import load_scorer


def run_once(src: Path, scorer_spec: str, min_score: float, workers: int, recursive: bool) -> float:
    scanner = AestheticScanner(load_scorer(scorer_spec), max_workers=workers, recursive=recursive)
    t0 = time.perf_counter()
    scanner.find(src, min_score)
    return time.perf_counter() - t0


def benchmark(src: Path, scorer_spec: str, min_score: float, workers: Iterable[int], repeats: int, recursive: bool, out_file: Path):
    worker_list = list(workers)
    results = []
    for w in worker_list:
        warm_avg: Optional[float] = None
        times: List[float] = [run_once(src, scorer_spec, min_score, w, recursive) for _ in range(repeats)]
        cold = times[0]
        warm_runs = times[1:]
        if warm_runs:
            warm_avg = sum(warm_runs) / len(warm_runs)
            print(f"{w} workers: {cold:.2f}s (cold), avg warm over {len(warm_runs)} runs: {warm_avg:.2f}s")
        else:
            print(f"{w} workers: {cold:.2f}s (single run)")
        results.append(
            {
                "workers": w,
                "times": times,
                "cold": cold,
                "warm_avg": warm_avg,
            }
        )

    out_file.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "timestamp": datetime.now().isoformat(),
        "src": str(src),
        "scorer": scorer_spec,
        "min_score": min_score,
        "recursive": recursive,
        "repeats": repeats,
        "workers": worker_list,
        "results": results,
    }
    out_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote results to {out_file}")


def parse_args():
    p = argparse.ArgumentParser(description="Benchmark the aesthetic scan with different worker counts.")
    p.add_argument("src", type=Path, help="Folder to scan")
    p.add_argument("--scorer", required=True, help="Scorer to load, as 'module:attribute'")
    p.add_argument("--min-score", type=float, default=0.5, help="Threshold passed to every run")
    p.add_argument("--workers", type=int, nargs="+", default=[1, 2, 4, 8], help="Worker counts to test")
    p.add_argument("--repeats", type=int, default=3, help="Runs per worker; first is treated as cold")
    p.add_argument("--top-level-only", action="store_true", help="Do not descend into subfolders")
    p.add_argument("--output", type=Path, default=Path("bench_scan_results.json"), help="Path to write JSON results")
    return p.parse_args()


def main():
    args = parse_args()
    benchmark(args.src, args.scorer, args.min_score, args.workers, args.repeats, not args.top_level_only, args.output)


if __name__ == "__main__":
    main()
