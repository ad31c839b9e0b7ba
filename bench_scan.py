import argparse
import json
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from music_indexer.config import ScanConfig
from music_indexer.core import start_sync


def run_once(src: Path, workers: int, batch_size: int, preload: bool, db_dir: Path) -> float:
    db_dir.mkdir(parents=True, exist_ok=True)
    db_path = db_dir / f"bench_{uuid.uuid4().hex}.db"
    cfg = ScanConfig(
        music_path=str(src),
        show_progress=False,
        batch_size=batch_size,
        max_in_flight=workers,
        use_optimized_scanning=not preload,
    )
    try:
        t0 = time.perf_counter()
        start_sync(db_path, cfg)
        return time.perf_counter() - t0
    finally:
        for suffix in ("", "-wal", "-shm"):
            p = Path(f"{db_path}{suffix}")
            try:
                p.unlink()
            except FileNotFoundError:
                pass


def benchmark(src: Path, workers: Iterable[int], repeats: int, batch_size: int, preload: bool, db_dir: Path, out_file: Path):
    worker_list = list(workers)
    results = []
    for w in worker_list:
        warm_avg: Optional[float] = None
        times: List[float] = [run_once(src, w, batch_size, preload, db_dir) for _ in range(repeats)]
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
        "batch_size": batch_size,
        "preload": preload,
        "repeats": repeats,
        "workers": worker_list,
        "results": results,
    }
    out_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote results to {out_file}")


def parse_args():
    p = argparse.ArgumentParser(description="Benchmark a full library sync with different concurrency ceilings.")
    p.add_argument("src", type=Path, help="Music folder to index")
    p.add_argument("--workers", type=int, nargs="+", default=[1, 2, 4, 8], help="Concurrency ceilings to test")
    p.add_argument("--repeats", type=int, default=3, help="Runs per ceiling; first is treated as cold")
    p.add_argument("--batch-size", type=int, default=100, help="Records per upsert")
    p.add_argument("--preload", action="store_true", help="Use full-preload change detection")
    p.add_argument("--db-dir", type=Path, default=Path(".bench"), help="Directory for the per-run temp SQLite DBs (each run starts empty)")
    p.add_argument("--output", type=Path, default=Path("bench_scan_results.json"), help="Path to write JSON results")
    return p.parse_args()


def main():
    args = parse_args()
    benchmark(args.src, args.workers, args.repeats, args.batch_size, args.preload, args.db_dir, args.output)


if __name__ == "__main__":
    main()
