"""Eval harness for the Gov24 requirements connector.

Runs each entry in evals/dataset.json through answer_requirements() against the
live search endpoint and checks that a match title contains the expected title.

Output: per-sample verdict + aggregate pass rate printed to stdout.
"""
from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, List

from gov24.config import Settings
from gov24.main import answer_requirements

# Resolve dataset path relative to this file
DATASET_PATH = Path(__file__).parent / "dataset.json"


def _verdict(titles: List[str], expected: str) -> str:
    return "pass" if any(expected in title for title in titles) else "fail"


async def _run_sample(sample: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    t0 = time.time()
    answer = await answer_requirements(
        sample["message"],
        documents=sample.get("documents"),
        items=sample.get("items"),
        settings=settings,
    )
    elapsed = time.time() - t0
    titles = [item.title for item in answer.matches]
    return {
        "id": sample["id"],
        "category": sample["category"],
        "verdict": _verdict(titles, sample["expected_title"]),
        "elapsed_s": round(elapsed, 1),
        "titles": titles,
    }


# ---------------------------------------------------------------------------
# Main eval runner
# ---------------------------------------------------------------------------

def run_eval() -> None:
    settings = Settings.from_env()

    dataset: List[Dict[str, Any]] = json.loads(DATASET_PATH.read_text(encoding="utf-8"))
    total = len(dataset)
    passed = 0
    results = []

    print(f"Running eval on {total} samples...\n{'='*60}")

    for sample in dataset:
        print(f"\n[{sample['id']}] category={sample['category']}")
        print(f"  message: {sample['message']}")

        try:
            result = asyncio.run(_run_sample(sample, settings))
        except Exception as exc:
            print(f"  ERROR: {exc}")
            results.append({
                "id": sample["id"],
                "category": sample["category"],
                "verdict": "error",
                "error": str(exc),
            })
            continue

        if result["verdict"] == "pass":
            passed += 1
            status = "✓ PASS"
        else:
            status = "✗ FAIL"
        print(f"  {status} ({result['elapsed_s']}s) expected: {sample['expected_title']}")
        for title in result["titles"]:
            print(f"    - {title}")
        results.append(result)

    # Summary
    print(f"\n{'='*60}")
    print(f"RESULTS: {passed}/{total} passed ({100*passed//total if total else 0}%)")
    print(f"{'='*60}")
    for r in results:
        icon = "✓" if r["verdict"] == "pass" else ("✗" if r["verdict"] == "fail" else "!")
        print(f"  {icon} [{r['id']}] {r['category']:20s}")

    # Write JSON results
    out_path = Path(__file__).parent / "results.json"
    out_path.write_text(json.dumps(results, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"\nDetailed results written to {out_path}")


if __name__ == "__main__":
    run_eval()
