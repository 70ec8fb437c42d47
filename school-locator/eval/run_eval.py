"""Offline evaluation harness for the school locator.

Seeds a running instance with schools, replays listing queries and checks that
every response is ordered by distance and starts with the expected school.

Usage:
  python run_eval.py --base http://localhost:3000 --out eval/report_v1
"""

from __future__ import annotations

import argparse
import csv
import json
import math
import statistics
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import requests


def load_jsonl(path: Path) -> list[dict[str, Any]]:
  with path.open('r', encoding='utf-8') as fh:
    return [json.loads(line) for line in fh if line.strip()]


def is_sorted_by_distance(schools: list[dict[str, Any]]) -> bool:
  distances = [s.get('distance') for s in schools]
  if not all(isinstance(d, (int, float)) for d in distances):
    return False
  return all(a <= b for a, b in zip(distances, distances[1:]))


@dataclass
class EvalResult:
  qid: str
  latency_ms: float
  returned: int
  sorted_ok: bool
  top_ok: bool
  nearest_km: float
  error: str | None = None


def seed_schools(base_url: str, schools: list[dict[str, Any]], timeout: float) -> list[str]:
  ids: list[str] = []
  for school in schools:
    response = requests.post(f'{base_url}/addSchool', json=school, timeout=timeout)
    if response.status_code != 201:
      raise RuntimeError(f"seeding {school.get('name')!r} failed: HTTP {response.status_code}: {response.text[:200]}")
    ids.append(response.json()['id'])
  return ids


def evaluate_query(base_url: str, payload: dict[str, Any], timeout: float) -> EvalResult:
  params = {'latitude': payload['latitude'], 'longitude': payload['longitude']}
  started = time.perf_counter()
  response = requests.get(f'{base_url}/listSchools', params=params, timeout=timeout)
  latency_ms = (time.perf_counter() - started) * 1000

  if not response.ok:
    return EvalResult(
      qid=payload['qid'],
      latency_ms=latency_ms,
      returned=0,
      sorted_ok=False,
      top_ok=False,
      nearest_km=float('nan'),
      error=f'HTTP {response.status_code}: {response.text[:200]}',
    )

  try:
    schools = response.json()
  except ValueError as exc:
    return EvalResult(
      qid=payload['qid'],
      latency_ms=latency_ms,
      returned=0,
      sorted_ok=False,
      top_ok=False,
      nearest_km=float('nan'),
      error=f'invalid json: {exc}',
    )

  expected_first = payload.get('expect_first')
  top_ok = True
  if expected_first:
    top_ok = bool(schools) and schools[0].get('name') == expected_first

  nearest = schools[0].get('distance') if schools else None
  return EvalResult(
    qid=payload['qid'],
    latency_ms=latency_ms,
    returned=len(schools),
    sorted_ok=is_sorted_by_distance(schools),
    top_ok=top_ok,
    nearest_km=float(nearest) if isinstance(nearest, (int, float)) else float('nan'),
  )


def main() -> None:
  parser = argparse.ArgumentParser(description='Offline evaluation for the school locator')
  parser.add_argument('--base', default='http://localhost:3000', help='Service base URL')
  parser.add_argument('--schools', default='eval/schools_v1.jsonl', help='Schools JSONL to seed')
  parser.add_argument('--queries', default='eval/queries_v1.jsonl', help='Queries JSONL path')
  parser.add_argument('--skip-seed', action='store_true', help='Do not register the seed schools')
  parser.add_argument('--concurrency', type=int, default=4, help='Number of worker threads')
  parser.add_argument('--out', default='eval/report_v1', help='Output directory for reports')
  parser.add_argument('--timeout', type=float, default=10.0, help='Request timeout in seconds')
  args = parser.parse_args()

  base_url = args.base.rstrip('/')
  out_dir = Path(args.out)
  out_dir.mkdir(parents=True, exist_ok=True)

  queries_path = Path(args.queries)
  if not queries_path.exists():
    raise FileNotFoundError(f'queries file not found: {queries_path}')
  queries = load_jsonl(queries_path)

  seeded = 0
  if not args.skip_seed:
    schools_path = Path(args.schools)
    if not schools_path.exists():
      raise FileNotFoundError(f'schools file not found: {schools_path}')
    seeded = len(seed_schools(base_url, load_jsonl(schools_path), args.timeout))

  results: list[EvalResult] = []
  errors: list[dict[str, Any]] = []

  def task(payload: dict[str, Any]) -> EvalResult:
    try:
      return evaluate_query(base_url, payload, args.timeout)
    except requests.RequestException as exc:
      return EvalResult(
        qid=payload['qid'],
        latency_ms=float('nan'),
        returned=0,
        sorted_ok=False,
        top_ok=False,
        nearest_km=float('nan'),
        error=str(exc),
      )

  workers = max(1, args.concurrency)
  with ThreadPoolExecutor(max_workers=workers) as executor:
    future_map = {executor.submit(task, payload): payload for payload in queries}
    for future in as_completed(future_map):
      result = future.result()
      results.append(result)
      if result.error:
        errors.append({'qid': result.qid, 'error': result.error})

  results.sort(key=lambda item: item.qid)

  metrics_path = out_dir / 'metrics.csv'
  with metrics_path.open('w', newline='', encoding='utf-8') as fh:
    writer = csv.writer(fh)
    writer.writerow(['qid', 'latency_ms', 'returned', 'sorted_ok', 'top_ok', 'nearest_km', 'error'])
    for item in results:
      writer.writerow([
        item.qid,
        f'{item.latency_ms:.1f}' if math.isfinite(item.latency_ms) else 'nan',
        item.returned,
        int(item.sorted_ok),
        int(item.top_ok),
        f'{item.nearest_km:.3f}' if math.isfinite(item.nearest_km) else 'nan',
        item.error or '',
      ])

  ok_results = [item for item in results if not item.error]
  latencies = [item.latency_ms for item in ok_results if math.isfinite(item.latency_ms)]

  def rate(values: Iterable[bool]) -> float:
    values = list(values)
    return sum(1 for v in values if v) / len(values) if values else 0.0

  summary_path = out_dir / 'report.md'
  with summary_path.open('w', encoding='utf-8') as fh:
    fh.write('# Evaluation Summary\n\n')
    fh.write(f'- Schools seeded: {seeded}\n')
    fh.write(f'- Queries evaluated: {len(results)}\n')
    fh.write(f'- Errors: {len(errors)}\n')
    fh.write(f'- Sorted by distance: {rate(item.sorted_ok for item in ok_results):.3f}\n')
    fh.write(f'- Expected nearest first: {rate(item.top_ok for item in ok_results):.3f}\n')
    if latencies:
      fh.write(f'- Latency mean / median (ms): {statistics.mean(latencies):.1f} / {statistics.median(latencies):.1f}\n')
    fh.write('\n')

    if errors:
      fh.write('## Errors\n')
      for item in errors:
        fh.write(f"- {item['qid']}: {item['error']}\n")

  if errors:
    errors_path = out_dir / 'errors.jsonl'
    with errors_path.open('w', encoding='utf-8') as fh:
      for item in errors:
        fh.write(json.dumps(item, ensure_ascii=False) + '\n')

  print(f'Evaluation finished. Metrics written to {metrics_path}')


if __name__ == '__main__':
  main()
